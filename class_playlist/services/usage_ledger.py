from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from class_playlist.repositories.ledger_repository import LedgerRepository, NewVideo
from class_playlist.services.content_scanner import ContentScanner, require_valid_external_id
from class_playlist.services.errors import AuthError, RemoteLookupFailure, TransportError
from class_playlist.services.playlist_cache import PlaylistCache
from class_playlist.services.playlist_gateway import VideoMetadata

LOGGER = logging.getLogger("class_playlist.ledger")


class MetadataSource(Protocol):
    def fetch_metadata(self, external_video_id: str) -> VideoMetadata | None:
        ...


@dataclass(frozen=True)
class ItemSyncResult:
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class UsageLedger:
    def __init__(
        self,
        *,
        repository: LedgerRepository,
        metadata_source: MetadataSource,
        network_id: str,
        cache: PlaylistCache | None = None,
        scanner: ContentScanner | None = None,
    ) -> None:
        self._repository = repository
        self._metadata_source = metadata_source
        self._network_id = network_id
        self._cache = cache
        self._scanner = scanner or ContentScanner()

    def record_usage(self, tenant_id: str, item_id: str, external_id: str) -> bool:
        """Record that an item uses a video; returns True when a new usage row was written.

        Raises RemoteLookupFailure when the video is new to the ledger and its
        metadata cannot be fetched; nothing is written in that case.
        """
        require_valid_external_id(external_id)

        new_video: NewVideo | None = None
        if self._repository.get_video(external_id) is None:
            metadata = self._lookup_metadata(external_id)
            new_video = NewVideo(
                title=metadata.title,
                link=metadata.link,
                thumbnail_url=metadata.thumbnail_url,
                published_at=metadata.published_at,
            )

        recorded = self._repository.record_usage(
            tenant_id=tenant_id,
            item_id=item_id,
            external_id=external_id,
            new_video=new_video,
        )
        if recorded is None:
            # The video was removed between the lookup and the insert.
            raise RemoteLookupFailure(
                f"Video {external_id} could not be stored", external_id=external_id
            )

        if recorded.video_created:
            LOGGER.info("ledger video_created video_id=%s title=%s", external_id, recorded.video.title)
        if recorded.usage_created:
            LOGGER.info(
                "ledger usage_recorded tenant=%s item=%s video_id=%s",
                tenant_id,
                item_id,
                external_id,
            )
            self._invalidate()
        return recorded.usage_created

    def remove_usage(self, tenant_id: str, item_id: str, external_id: str) -> bool:
        removal = self._repository.remove_usage(
            tenant_id=tenant_id,
            item_id=item_id,
            external_id=external_id,
        )
        if removal.usage_removed:
            LOGGER.info(
                "ledger usage_removed tenant=%s item=%s video_id=%s",
                tenant_id,
                item_id,
                external_id,
            )
        if removal.video_deleted:
            LOGGER.info("ledger video_deleted video_id=%s", external_id)
        if removal.usage_removed or removal.video_deleted:
            self._invalidate()
        return removal.usage_removed

    def sync_item(self, tenant_id: str, item_id: str, content: str | None) -> ItemSyncResult:
        current = self._scanner.extract(content)
        recorded = set(self._repository.list_item_external_ids(tenant_id=tenant_id, item_id=item_id))

        added: list[str] = []
        skipped: list[str] = []
        for external_id in sorted(current - recorded):
            try:
                if self.record_usage(tenant_id, item_id, external_id):
                    added.append(external_id)
            except RemoteLookupFailure:
                LOGGER.warning(
                    "ledger usage_skipped reason=metadata_unavailable tenant=%s item=%s video_id=%s",
                    tenant_id,
                    item_id,
                    external_id,
                    exc_info=True,
                )
                skipped.append(external_id)

        removed = [
            external_id
            for external_id in sorted(recorded - current)
            if self.remove_usage(tenant_id, item_id, external_id)
        ]
        return ItemSyncResult(added=tuple(added), removed=tuple(removed), skipped=tuple(skipped))

    def remove_item(self, tenant_id: str, item_id: str) -> ItemSyncResult:
        return self.sync_item(tenant_id, item_id, None)

    def _lookup_metadata(self, external_id: str) -> VideoMetadata:
        try:
            metadata = self._metadata_source.fetch_metadata(external_id)
        except (TransportError, AuthError) as exc:
            raise RemoteLookupFailure(
                f"Metadata lookup failed for {external_id}: {exc}", external_id=external_id
            ) from exc
        if metadata is None:
            raise RemoteLookupFailure(
                f"YouTube reports no video with id {external_id}", external_id=external_id
            )
        return metadata

    def _invalidate(self) -> None:
        if self._cache is not None:
            self._cache.invalidate(self._network_id)
