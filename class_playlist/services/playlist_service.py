from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from class_playlist.repositories.options_repository import PlaylistOptionsRepository
from class_playlist.services.host_site import PLAYLIST_PAGE_DEFAULT_NAME, HostSite
from class_playlist.services.playlist_cache import PlaylistCache, PlaylistViewEntry
from class_playlist.services.playlist_synchronizer import PlaylistSynchronizer, SyncReport
from class_playlist.services.usage_ledger import ItemSyncResult, UsageLedger
from class_playlist.telemetry import TelemetryClient

LOGGER = logging.getLogger("class_playlist.service")

REMOTE_PLAYLIST_URL_TEMPLATE = "http://www.youtube.com/playlist?p=%s"
PUBLISHED_STATUS = "publish"
INHERITED_STATUS = "inherit"


@dataclass(frozen=True)
class ContentSyncOutcome:
    handled: bool
    item: ItemSyncResult | None = None
    remote: SyncReport | None = None
    error: str | None = None


class ClassPlaylistService:
    """Entry points called by the host blog network.

    The content hooks never raise. Failures are logged and reported through
    telemetry and the returned outcome. The ledger catches up on the next
    publish of the same item and the remote playlist on the next handled hook.
    """

    def __init__(
        self,
        *,
        ledger: UsageLedger,
        synchronizer: PlaylistSynchronizer,
        cache: PlaylistCache,
        options_repository: PlaylistOptionsRepository,
        host_site: HostSite,
        network_id: str,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._ledger = ledger
        self._synchronizer = synchronizer
        self._cache = cache
        self._options_repository = options_repository
        self._host_site = host_site
        self._network_id = network_id
        self._telemetry = telemetry or TelemetryClient.disabled()

    @property
    def network_id(self) -> str:
        return self._network_id

    def is_active(self) -> bool:
        options = self._options_repository.load(self._network_id)
        if not options.account_linked:
            return False
        if self._synchronizer.writes_remote:
            return bool(options.youtube_playlist)
        return True

    def on_content_published(self, tenant_id: str, item_id: str, content: str | None) -> ContentSyncOutcome:
        return self._run_content_hook(
            "published",
            tenant_id,
            item_id,
            lambda: self._ledger.sync_item(tenant_id, item_id, content),
        )

    def on_content_unpublished(self, tenant_id: str, item_id: str) -> ContentSyncOutcome:
        return self._run_content_hook(
            "unpublished",
            tenant_id,
            item_id,
            lambda: self._ledger.remove_item(tenant_id, item_id),
            removal=True,
        )

    def on_content_deleted(self, tenant_id: str, item_id: str) -> ContentSyncOutcome:
        return self._run_content_hook(
            "deleted",
            tenant_id,
            item_id,
            lambda: self._ledger.remove_item(tenant_id, item_id),
            removal=True,
        )

    def on_status_transition(
        self,
        tenant_id: str,
        item_id: str,
        *,
        new_status: str,
        old_status: str,
        content: str | None,
    ) -> ContentSyncOutcome:
        if new_status == INHERITED_STATUS:
            return ContentSyncOutcome(handled=False)
        was_published = old_status == PUBLISHED_STATUS
        is_published = new_status == PUBLISHED_STATUS
        if was_published and not is_published:
            return self.on_content_unpublished(tenant_id, item_id)
        if is_published and not was_published:
            return self.on_content_published(tenant_id, item_id, content)
        return ContentSyncOutcome(handled=False)

    def get_playlist_view(self, limit: int | None = None) -> list[dict[str, Any]]:
        result = self._cache.get_playlist_view_with_metadata(self._network_id)
        if not result.cache_hit:
            self._telemetry.emit(
                "playlist.cache.rebuild",
                network_id=self._network_id,
                entries=len(result.entries),
            )
        entries = result.entries
        if limit is not None and limit >= 0:
            entries = entries[:limit]
        return [_entry_to_view(entry) for entry in entries]

    def get_playlist_page_url(self) -> str | None:
        page_id = self._options_repository.load(self._network_id).playlist_page_id
        if not page_id:
            return None
        return self._host_site.page_url(page_id)

    def get_remote_playlist_page_url(self) -> str | None:
        playlist_id = self._options_repository.load(self._network_id).youtube_playlist
        if not playlist_id:
            return None
        return REMOTE_PLAYLIST_URL_TEMPLATE % playlist_id

    def ensure_playlist_page(self) -> str:
        options = self._options_repository.load(self._network_id)
        current_page_id = options.playlist_page_id or None
        page_id = self._host_site.ensure_page(PLAYLIST_PAGE_DEFAULT_NAME, current_page_id)
        if page_id != options.playlist_page_id:
            self._options_repository.update(self._network_id, playlist_page_id=page_id)
            LOGGER.info("playlist page_created network_id=%s page_id=%s", self._network_id, page_id)
        return page_id

    def _run_content_hook(
        self,
        action: str,
        tenant_id: str,
        item_id: str,
        apply: Callable[[], ItemSyncResult],
        *,
        removal: bool = False,
    ) -> ContentSyncOutcome:
        active = self.is_active()
        # Removals only touch the ledger and apply without a linked account.
        if not active and not removal:
            LOGGER.debug(
                "content sync_skipped reason=inactive action=%s tenant=%s item=%s",
                action,
                tenant_id,
                item_id,
            )
            return ContentSyncOutcome(handled=False)

        try:
            with self._telemetry.span(
                "content.sync",
                action=action,
                tenant_id=tenant_id,
                item_id=item_id,
            ) as span:
                item_result = apply()
                span.set(
                    added=item_result.added,
                    removed=item_result.removed,
                    skipped=item_result.skipped,
                )
                remote_report = self._sync_remote() if active else None
        except Exception as exc:
            LOGGER.exception(
                "content sync_failed action=%s tenant=%s item=%s",
                action,
                tenant_id,
                item_id,
            )
            return ContentSyncOutcome(handled=True, error=str(exc))

        return ContentSyncOutcome(handled=True, item=item_result, remote=remote_report)

    def _sync_remote(self) -> SyncReport | None:
        # Every handled hook syncs, whether or not the item changed.
        if not self._synchronizer.writes_remote:
            return None
        report = self._synchronizer.sync()
        self._telemetry.emit(
            "playlist.remote_sync.finish",
            added=report.added,
            removed=report.removed,
            failed=report.failed,
            ok=report.ok,
        )
        return report


def _entry_to_view(entry: PlaylistViewEntry) -> dict[str, Any]:
    return {
        "external_id": entry.external_id,
        "title": entry.title,
        "link": entry.link,
        "thumbnail_url": entry.thumbnail_url,
        "added_at": entry.added_at,
        "published_at": entry.published_at,
        "usage": [{"tenant": usage.tenant, "item_id": usage.item_id} for usage in entry.usage],
    }
