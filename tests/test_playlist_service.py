from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

from class_playlist.repositories.database import Database
from class_playlist.repositories.ledger_repository import LedgerRepository
from class_playlist.repositories.options_repository import PlaylistOptionsRepository
from class_playlist.repositories.playlist_cache_repository import PlaylistCacheRepository
from class_playlist.services.errors import TransportError
from class_playlist.services.host_site import StaticHostSite
from class_playlist.services.playlist_cache import PlaylistCache
from class_playlist.services.playlist_gateway import RemotePlaylistEntry, VideoMetadata
from class_playlist.services.playlist_service import ClassPlaylistService
from class_playlist.services.playlist_synchronizer import PlaylistSynchronizer
from class_playlist.services.usage_ledger import UsageLedger
from class_playlist.telemetry import TelemetryClient

RICK = "dQw4w9WgXcQ"
GANGNAM = "9bZkp7q19f0"


def _watch(video_id: str) -> str:
    return f'<p><a href="https://www.youtube.com/watch?v={video_id}">watch</a></p>'


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class _FakeYouTube:
    """Metadata source and remote playlist in one, like the real gateway."""

    def __init__(self) -> None:
        self.entries: list[RemotePlaylistEntry] = []
        self.metadata_calls: list[str] = []
        self.metadata_error: Exception | None = None
        self.list_error: Exception | None = None

    def fetch_metadata(self, external_video_id: str) -> VideoMetadata | None:
        self.metadata_calls.append(external_video_id)
        if self.metadata_error is not None:
            raise self.metadata_error
        return VideoMetadata(
            external_id=external_video_id,
            title=f"Video {external_video_id}",
            link=f"https://www.youtube.com/watch?v={external_video_id}",
            thumbnail_url=f"https://i.ytimg.com/vi/{external_video_id}/default.jpg",
            published_at="2012-03-01T10:00:00.000Z",
        )

    def list_entries(self) -> list[RemotePlaylistEntry]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.entries)

    def add_entry(self, external_video_id: str) -> str | None:
        remote_entry_id = f"PLE-{external_video_id}"
        self.entries.append(
            RemotePlaylistEntry(remote_entry_id=remote_entry_id, external_video_id=external_video_id)
        )
        return remote_entry_id

    def remove_entry(self, remote_entry_id: str) -> bool:
        self.entries = [entry for entry in self.entries if entry.remote_entry_id != remote_entry_id]
        return True


def _build_service(
    tmp_path: Path,
    *,
    strategy: str = "ledger",
    linked: bool = True,
    playlist: str = "",
) -> tuple[ClassPlaylistService, _FakeYouTube, _CaptureSink, PlaylistOptionsRepository]:
    db = Database(tmp_path / "state.db")
    db.initialize()
    options = PlaylistOptionsRepository(db)
    if linked:
        options.update("default", account_linked=True, youtube_user_id="classadmin")
    if playlist:
        options.update("default", youtube_playlist=playlist)

    ledger_repository = LedgerRepository(db)
    cache = PlaylistCache(
        cache_repository=PlaylistCacheRepository(db),
        ledger_repository=ledger_repository,
    )
    youtube = _FakeYouTube()
    sink = _CaptureSink()
    service = ClassPlaylistService(
        ledger=UsageLedger(
            repository=ledger_repository,
            metadata_source=youtube,
            network_id="default",
            cache=cache,
        ),
        synchronizer=PlaylistSynchronizer(
            ledger_repository=ledger_repository,
            gateway=youtube,
            strategy=cast(Any, strategy),
        ),
        cache=cache,
        options_repository=options,
        host_site=StaticHostSite("https://classes.example.edu"),
        network_id="default",
        telemetry=TelemetryClient(enabled=True, sink=sink),
    )
    return service, youtube, sink, options


def test_hooks_are_ignored_until_account_is_linked(tmp_path: Path) -> None:
    service, youtube, sink, _ = _build_service(tmp_path, linked=False)

    outcome = service.on_content_published("blog-1", "post-1", _watch(RICK))

    assert outcome.handled is False
    assert youtube.metadata_calls == []
    assert service.get_playlist_view() == []
    assert "content.sync.finish" not in sink.names()


def test_remote_strategy_requires_selected_playlist(tmp_path: Path) -> None:
    service, _, _, options = _build_service(tmp_path, strategy="remote")
    assert service.is_active() is False

    options.update("default", youtube_playlist="PLclass")
    assert service.is_active() is True


def test_publish_records_usage_and_updates_view(tmp_path: Path) -> None:
    service, _, sink, _ = _build_service(tmp_path)

    outcome = service.on_content_published("blog-1", "post-1", _watch(RICK) + _watch(GANGNAM))

    assert outcome.handled is True
    assert outcome.error is None
    assert outcome.item is not None
    assert sorted(outcome.item.added) == sorted([RICK, GANGNAM])
    assert outcome.remote is None

    view = service.get_playlist_view()
    assert {entry["external_id"] for entry in view} == {RICK, GANGNAM}
    rick = next(entry for entry in view if entry["external_id"] == RICK)
    assert rick["title"] == f"Video {RICK}"
    assert rick["usage"] == [{"tenant": "blog-1", "item_id": "post-1"}]
    assert rick["published_at"] == "2012-03-01T10:00:00.000Z"
    assert service.get_playlist_view() == view
    assert len(service.get_playlist_view(limit=1)) == 1

    finish_events = [attrs for name, attrs in sink.events if name == "content.sync.finish"]
    assert finish_events[0]["action"] == "published"
    assert finish_events[0]["added"] == 2
    assert "playlist.cache.rebuild" in sink.names()


def test_second_usage_keeps_video_until_last_reference_goes(tmp_path: Path) -> None:
    service, youtube, _, _ = _build_service(tmp_path)
    service.on_content_published("blog-1", "post-1", _watch(RICK))
    service.on_content_published("blog-2", "post-9", _watch(RICK))

    assert youtube.metadata_calls == [RICK]

    service.on_content_deleted("blog-1", "post-1")
    view = service.get_playlist_view()
    assert [entry["external_id"] for entry in view] == [RICK]
    assert view[0]["usage"] == [{"tenant": "blog-2", "item_id": "post-9"}]

    outcome = service.on_content_unpublished("blog-2", "post-9")
    assert outcome.item is not None and outcome.item.removed == (RICK,)
    assert service.get_playlist_view() == []


def test_metadata_failures_are_skipped_not_raised(tmp_path: Path) -> None:
    service, youtube, _, _ = _build_service(tmp_path)
    youtube.metadata_error = TransportError("timed out")

    outcome = service.on_content_published("blog-1", "post-1", _watch(RICK))

    assert outcome.handled is True
    assert outcome.error is None
    assert outcome.item is not None and outcome.item.skipped == (RICK,)
    assert service.get_playlist_view() == []


def test_unexpected_failures_are_reported_on_the_outcome(tmp_path: Path) -> None:
    service, youtube, sink, _ = _build_service(tmp_path)
    youtube.metadata_error = RuntimeError("boom")

    outcome = service.on_content_published("blog-1", "post-1", _watch(RICK))

    assert outcome.handled is True
    assert outcome.error == "boom"
    error_events = [attrs for name, attrs in sink.events if name == "content.sync.error"]
    assert error_events[0]["error_type"] == "RuntimeError"


def test_status_transitions_route_to_publish_and_unpublish(tmp_path: Path) -> None:
    service, _, _, _ = _build_service(tmp_path)

    published = service.on_status_transition(
        "blog-1", "post-1", new_status="publish", old_status="draft", content=_watch(RICK)
    )
    assert published.item is not None and published.item.added == (RICK,)

    unchanged = service.on_status_transition(
        "blog-1", "post-1", new_status="publish", old_status="publish", content=_watch(RICK)
    )
    assert unchanged.handled is False

    revision = service.on_status_transition(
        "blog-1", "post-1", new_status="inherit", old_status="publish", content=None
    )
    assert revision.handled is False
    assert len(service.get_playlist_view()) == 1

    unpublished = service.on_status_transition(
        "blog-1", "post-1", new_status="draft", old_status="publish", content=None
    )
    assert unpublished.item is not None and unpublished.item.removed == (RICK,)
    assert service.get_playlist_view() == []


def test_remote_strategy_pushes_ledger_to_playlist(tmp_path: Path) -> None:
    service, youtube, sink, _ = _build_service(tmp_path, strategy="remote", playlist="PLclass")
    youtube.entries.append(
        RemotePlaylistEntry(remote_entry_id="PLE-stale", external_video_id=GANGNAM)
    )

    outcome = service.on_content_published("blog-1", "post-1", _watch(RICK))

    assert outcome.remote is not None
    assert outcome.remote.added == (RICK,)
    assert outcome.remote.removed == (GANGNAM,)
    assert [entry.external_video_id for entry in youtube.entries] == [RICK]
    remote_events = [attrs for name, attrs in sink.events if name == "playlist.remote_sync.finish"]
    assert remote_events[0]["added"] == 1
    assert remote_events[0]["ok"] is True


def test_playlist_urls_and_page_creation(tmp_path: Path) -> None:
    service, _, _, options = _build_service(tmp_path)
    assert service.get_playlist_page_url() is None
    assert service.get_remote_playlist_page_url() is None

    page_id = service.ensure_playlist_page()

    assert page_id == "our-youtube-class-playlist"
    assert options.load("default").playlist_page_id == page_id
    assert service.ensure_playlist_page() == page_id
    assert service.get_playlist_page_url() == "https://classes.example.edu/our-youtube-class-playlist/"

    options.update("default", youtube_playlist="PLclass")
    assert service.get_remote_playlist_page_url() == "http://www.youtube.com/playlist?p=PLclass"


def test_failed_remote_sync_converges_on_republish(tmp_path: Path) -> None:
    service, youtube, _, _ = _build_service(tmp_path, strategy="remote", playlist="PLclass")
    youtube.list_error = TransportError("remote down")

    first = service.on_content_published("blog-1", "post-1", _watch(RICK))

    assert first.remote is not None and first.remote.error == "remote down"
    assert youtube.entries == []

    youtube.list_error = None
    second = service.on_content_published("blog-1", "post-1", _watch(RICK))

    assert second.item is not None and second.item.changed is False
    assert second.remote is not None and second.remote.added == (RICK,)
    assert [entry.external_video_id for entry in youtube.entries] == [RICK]


def test_removals_apply_to_ledger_after_unlink(tmp_path: Path) -> None:
    service, youtube, _, options = _build_service(tmp_path)
    service.on_content_published("blog-1", "post-1", _watch(RICK))
    options.update("default", account_linked=False)

    republished = service.on_content_published("blog-1", "post-2", _watch(RICK))
    deleted = service.on_content_deleted("blog-1", "post-1")

    assert republished.handled is False
    assert deleted.handled is True
    assert deleted.item is not None and deleted.item.removed == (RICK,)
    assert deleted.remote is None
    assert service.get_playlist_view() == []
    assert youtube.metadata_calls == [RICK]
