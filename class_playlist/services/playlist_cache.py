from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import cast

from class_playlist.repositories.ledger_repository import LedgerRepository
from class_playlist.repositories.playlist_cache_repository import PlaylistCacheRepository

LOGGER = logging.getLogger("class_playlist.cache")

DEFAULT_TTL_SECONDS = 300


@dataclass(frozen=True)
class UsageView:
    tenant: str
    item_id: str


@dataclass(frozen=True)
class PlaylistViewEntry:
    external_id: str
    title: str
    link: str
    thumbnail_url: str | None
    added_at: str
    usage: tuple[UsageView, ...]
    published_at: str | None = None


@dataclass(frozen=True)
class PlaylistViewResult:
    entries: list[PlaylistViewEntry]
    cache_hit: bool
    expires_at: datetime


class CacheMiss(Exception):
    """Raised internally when no fresh cached view exists; always answered by a rebuild."""


def _default_clock() -> datetime:
    return datetime.now(UTC)


class PlaylistCache:
    def __init__(
        self,
        *,
        cache_repository: PlaylistCacheRepository,
        ledger_repository: LedgerRepository,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._cache_repository = cache_repository
        self._ledger_repository = ledger_repository
        self._ttl_seconds = max(0, ttl_seconds)
        self._clock = clock or _default_clock

    def get_playlist_view(self, network_id: str) -> list[PlaylistViewEntry]:
        return self.get_playlist_view_with_metadata(network_id).entries

    def get_playlist_view_with_metadata(self, network_id: str) -> PlaylistViewResult:
        now = self._clock()
        try:
            return self._read_fresh(network_id, now)
        except CacheMiss:
            pass

        entries = self._build_entries()
        expires_at = now + timedelta(seconds=self._ttl_seconds)
        self._cache_repository.replace(
            network_id=network_id,
            entries=[_entry_to_payload(entry) for entry in entries],
            cached_at=now,
            expires_at=expires_at,
        )
        LOGGER.info(
            "playlist cache_rebuild network_id=%s entries=%s ttl_seconds=%s",
            network_id,
            len(entries),
            self._ttl_seconds,
        )
        return PlaylistViewResult(entries=entries, cache_hit=False, expires_at=expires_at)

    def invalidate(self, network_id: str) -> None:
        dropped = self._cache_repository.delete(network_id)
        LOGGER.debug("playlist cache_invalidate network_id=%s dropped=%s", network_id, dropped)

    def _read_fresh(self, network_id: str, now: datetime) -> PlaylistViewResult:
        cached = self._cache_repository.get(network_id)
        if cached is None or now >= cached.expires_at:
            raise CacheMiss(network_id)

        entries: list[PlaylistViewEntry] = []
        for payload in cached.entries:
            entry = _payload_to_entry(payload)
            if entry is None:
                raise CacheMiss(network_id)
            entries.append(entry)
        return PlaylistViewResult(entries=entries, cache_hit=True, expires_at=cached.expires_at)

    def _build_entries(self) -> list[PlaylistViewEntry]:
        usages_by_video = self._ledger_repository.list_usages_by_video()
        entries: list[PlaylistViewEntry] = []
        for video in self._ledger_repository.list_videos():
            usages = usages_by_video.get(video.internal_id, [])
            entries.append(
                PlaylistViewEntry(
                    external_id=video.external_id,
                    title=video.title,
                    link=video.link or f"https://www.youtube.com/watch?v={video.external_id}",
                    thumbnail_url=video.thumbnail_url,
                    added_at=video.added_at,
                    usage=tuple(
                        UsageView(tenant=usage.tenant_id, item_id=usage.item_id)
                        for usage in usages
                    ),
                    published_at=video.published_at,
                )
            )
        return entries


def _entry_to_payload(entry: PlaylistViewEntry) -> dict[str, object]:
    return {
        "external_id": entry.external_id,
        "title": entry.title,
        "link": entry.link,
        "thumbnail_url": entry.thumbnail_url,
        "added_at": entry.added_at,
        "usage": [{"tenant": usage.tenant, "item_id": usage.item_id} for usage in entry.usage],
        "published_at": entry.published_at,
    }


def _payload_to_entry(payload: dict[str, object]) -> PlaylistViewEntry | None:
    external_id = payload.get("external_id")
    title = payload.get("title")
    link = payload.get("link")
    added_at = payload.get("added_at")
    if not isinstance(external_id, str) or not isinstance(title, str):
        return None
    if not isinstance(link, str) or not isinstance(added_at, str):
        return None
    thumbnail_url = payload.get("thumbnail_url")
    published_at = payload.get("published_at")

    usage: list[UsageView] = []
    raw_usage = payload.get("usage")
    if isinstance(raw_usage, list):
        for item in cast(list[object], raw_usage):
            if not isinstance(item, dict):
                continue
            item_dict = cast(dict[str, object], item)
            tenant = item_dict.get("tenant")
            item_id = item_dict.get("item_id")
            if isinstance(tenant, str) and isinstance(item_id, str):
                usage.append(UsageView(tenant=tenant, item_id=item_id))

    return PlaylistViewEntry(
        external_id=external_id,
        title=title,
        link=link,
        thumbnail_url=thumbnail_url if isinstance(thumbnail_url, str) else None,
        added_at=added_at,
        usage=tuple(usage),
        published_at=published_at if isinstance(published_at, str) else None,
    )
