from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

from class_playlist.repositories.ledger_repository import LedgerRepository
from class_playlist.services.errors import PlaylistSyncError
from class_playlist.services.playlist_gateway import RemotePlaylistEntry

LOGGER = logging.getLogger("class_playlist.sync")

SyncStrategy = Literal["ledger", "remote"]


class RemotePlaylist(Protocol):
    def list_entries(self) -> list[RemotePlaylistEntry]:
        ...

    def add_entry(self, external_video_id: str) -> str | None:
        ...

    def remove_entry(self, remote_entry_id: str) -> bool:
        ...


@dataclass(frozen=True)
class PlaylistDiff:
    to_add: tuple[str, ...]
    to_remove: tuple[RemotePlaylistEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


@dataclass(frozen=True)
class SyncReport:
    strategy: SyncStrategy
    attempted: bool
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed


def diff_playlists(
    local_ids: Iterable[str],
    remote_entries: Sequence[RemotePlaylistEntry],
) -> PlaylistDiff:
    """Set difference keyed by external video id; order is never compared.

    Local ids missing remotely are returned in their input order. Every
    remote entry whose video is not in the ledger is removed, duplicates
    included.
    """
    local_order: list[str] = []
    seen_local: set[str] = set()
    for external_id in local_ids:
        if external_id not in seen_local:
            seen_local.add(external_id)
            local_order.append(external_id)

    remote_ids = {entry.external_video_id for entry in remote_entries}
    to_add = tuple(external_id for external_id in local_order if external_id not in remote_ids)
    to_remove = tuple(
        entry for entry in remote_entries if entry.external_video_id not in seen_local
    )
    return PlaylistDiff(to_add=to_add, to_remove=to_remove)


class PlaylistSynchronizer:
    def __init__(
        self,
        *,
        ledger_repository: LedgerRepository,
        gateway: RemotePlaylist,
        strategy: SyncStrategy = "ledger",
    ) -> None:
        self._ledger_repository = ledger_repository
        self._gateway = gateway
        self._strategy: SyncStrategy = strategy

    @property
    def strategy(self) -> SyncStrategy:
        return self._strategy

    @property
    def writes_remote(self) -> bool:
        return self._strategy == "remote"

    def sync(self) -> SyncReport:
        if not self.writes_remote:
            return SyncReport(strategy=self._strategy, attempted=False)

        local_videos = self._ledger_repository.list_videos()
        try:
            remote_entries = self._gateway.list_entries()
        except PlaylistSyncError as exc:
            LOGGER.warning("playlist remote_sync_aborted reason=list_failed", exc_info=True)
            return SyncReport(strategy=self._strategy, attempted=True, error=str(exc))

        # Oldest first so the remote playlist gains videos in ledger order.
        diff = diff_playlists(
            (video.external_id for video in reversed(local_videos)),
            remote_entries,
        )
        added: list[str] = []
        removed: list[str] = []
        failed: list[str] = []

        for external_id in diff.to_add:
            try:
                remote_entry_id = self._gateway.add_entry(external_id)
            except PlaylistSyncError:
                LOGGER.warning("playlist remote_add_failed video_id=%s", external_id, exc_info=True)
                failed.append(external_id)
                continue
            if remote_entry_id is None:
                failed.append(external_id)
                continue
            self._ledger_repository.set_playlist_entry_id(
                external_id=external_id,
                playlist_entry_id=remote_entry_id,
            )
            added.append(external_id)

        for entry in diff.to_remove:
            try:
                removed_ok = self._gateway.remove_entry(entry.remote_entry_id)
            except PlaylistSyncError:
                LOGGER.warning(
                    "playlist remote_remove_failed remote_entry_id=%s",
                    entry.remote_entry_id,
                    exc_info=True,
                )
                removed_ok = False
            if removed_ok:
                removed.append(entry.external_video_id)
            else:
                failed.append(entry.external_video_id)

        LOGGER.info(
            "playlist remote_sync added=%s removed=%s failed=%s",
            len(added),
            len(removed),
            len(failed),
        )
        return SyncReport(
            strategy=self._strategy,
            attempted=True,
            added=tuple(added),
            removed=tuple(removed),
            failed=tuple(failed),
        )
