from __future__ import annotations

from pathlib import Path

from class_playlist.repositories.database import Database
from class_playlist.repositories.ledger_repository import LedgerRepository, NewVideo
from class_playlist.services.errors import AuthError, TransportError
from class_playlist.services.playlist_gateway import RemotePlaylistEntry
from class_playlist.services.playlist_synchronizer import PlaylistSynchronizer, diff_playlists


class _FakeRemotePlaylist:
    def __init__(
        self,
        entries: list[RemotePlaylistEntry],
        *,
        list_error: Exception | None = None,
        rejected_adds: set[str] | None = None,
        add_errors: dict[str, Exception] | None = None,
        rejected_removals: set[str] | None = None,
        remove_errors: dict[str, Exception] | None = None,
    ) -> None:
        self.entries = list(entries)
        self.added: list[str] = []
        self.removed: list[str] = []
        self._list_error = list_error
        self._rejected_adds = rejected_adds or set()
        self._add_errors = add_errors or {}
        self._rejected_removals = rejected_removals or set()
        self._remove_errors = remove_errors or {}

    def list_entries(self) -> list[RemotePlaylistEntry]:
        if self._list_error is not None:
            raise self._list_error
        return list(self.entries)

    def add_entry(self, external_video_id: str) -> str | None:
        if external_video_id in self._add_errors:
            raise self._add_errors[external_video_id]
        if external_video_id in self._rejected_adds:
            return None
        self.added.append(external_video_id)
        remote_entry_id = f"PLE-{external_video_id}"
        self.entries.append(
            RemotePlaylistEntry(remote_entry_id=remote_entry_id, external_video_id=external_video_id)
        )
        return remote_entry_id

    def remove_entry(self, remote_entry_id: str) -> bool:
        if remote_entry_id in self._remove_errors:
            raise self._remove_errors[remote_entry_id]
        if remote_entry_id in self._rejected_removals:
            return False
        self.removed.append(remote_entry_id)
        self.entries = [entry for entry in self.entries if entry.remote_entry_id != remote_entry_id]
        return True


def _entry(remote_entry_id: str, external_video_id: str) -> RemotePlaylistEntry:
    return RemotePlaylistEntry(remote_entry_id=remote_entry_id, external_video_id=external_video_id)


def _ledger_repository(tmp_path: Path, *external_ids: str) -> LedgerRepository:
    db = Database(tmp_path / "state.db")
    db.initialize()
    repository = LedgerRepository(db)
    for index, external_id in enumerate(external_ids):
        repository.record_usage(
            tenant_id="blog-1",
            item_id=f"post-{index}",
            external_id=external_id,
            new_video=NewVideo(title=external_id),
        )
    return repository


def test_diff_playlists_is_a_set_difference() -> None:
    diff = diff_playlists(
        ["dQw4w9WgXcQ", "9bZkp7q19f0", "dQw4w9WgXcQ"],
        [_entry("E1", "9bZkp7q19f0"), _entry("E2", "kJQP7kiw5Fk"), _entry("E3", "kJQP7kiw5Fk")],
    )

    assert diff.to_add == ("dQw4w9WgXcQ",)
    assert [entry.remote_entry_id for entry in diff.to_remove] == ["E2", "E3"]


def test_diff_playlists_ignores_order() -> None:
    diff = diff_playlists(
        ["dQw4w9WgXcQ", "9bZkp7q19f0"],
        [_entry("E1", "9bZkp7q19f0"), _entry("E2", "dQw4w9WgXcQ")],
    )

    assert diff.is_empty


def test_ledger_strategy_never_touches_remote(tmp_path: Path) -> None:
    remote = _FakeRemotePlaylist([_entry("E1", "kJQP7kiw5Fk")])
    synchronizer = PlaylistSynchronizer(
        ledger_repository=_ledger_repository(tmp_path, "dQw4w9WgXcQ"),
        gateway=remote,
    )

    report = synchronizer.sync()

    assert report.attempted is False
    assert synchronizer.writes_remote is False
    assert remote.added == [] and remote.removed == []


def test_remote_strategy_converges_and_records_entry_ids(tmp_path: Path) -> None:
    repository = _ledger_repository(tmp_path, "dQw4w9WgXcQ", "9bZkp7q19f0")
    remote = _FakeRemotePlaylist([_entry("E1", "9bZkp7q19f0"), _entry("E2", "kJQP7kiw5Fk")])
    synchronizer = PlaylistSynchronizer(
        ledger_repository=repository,
        gateway=remote,
        strategy="remote",
    )

    report = synchronizer.sync()

    assert report.ok
    assert report.added == ("dQw4w9WgXcQ",)
    assert report.removed == ("kJQP7kiw5Fk",)
    assert {entry.external_video_id for entry in remote.entries} == {"dQw4w9WgXcQ", "9bZkp7q19f0"}
    video = repository.get_video("dQw4w9WgXcQ")
    assert video is not None and video.playlist_entry_id == "PLE-dQw4w9WgXcQ"

    second = synchronizer.sync()
    assert second.added == () and second.removed == ()


def test_remote_strategy_adds_oldest_videos_first(tmp_path: Path) -> None:
    repository = _ledger_repository(tmp_path, "dQw4w9WgXcQ", "9bZkp7q19f0", "kJQP7kiw5Fk")
    remote = _FakeRemotePlaylist([])

    PlaylistSynchronizer(ledger_repository=repository, gateway=remote, strategy="remote").sync()

    assert remote.added == ["dQw4w9WgXcQ", "9bZkp7q19f0", "kJQP7kiw5Fk"]


def test_listing_failure_aborts_without_writes(tmp_path: Path) -> None:
    remote = _FakeRemotePlaylist([], list_error=TransportError("HTTP 500"))
    synchronizer = PlaylistSynchronizer(
        ledger_repository=_ledger_repository(tmp_path, "dQw4w9WgXcQ"),
        gateway=remote,
        strategy="remote",
    )

    report = synchronizer.sync()

    assert report.attempted is True
    assert report.error == "HTTP 500"
    assert report.ok is False
    assert remote.added == []


def test_rejected_adds_are_reported_as_failures(tmp_path: Path) -> None:
    remote = _FakeRemotePlaylist([], rejected_adds={"9bZkp7q19f0"})
    synchronizer = PlaylistSynchronizer(
        ledger_repository=_ledger_repository(tmp_path, "dQw4w9WgXcQ", "9bZkp7q19f0"),
        gateway=remote,
        strategy="remote",
    )

    report = synchronizer.sync()

    assert report.added == ("dQw4w9WgXcQ",)
    assert report.failed == ("9bZkp7q19f0",)
    assert report.ok is False


def test_failed_add_does_not_stop_remaining_writes(tmp_path: Path) -> None:
    remote = _FakeRemotePlaylist(
        [_entry("E1", "kJQP7kiw5Fk")],
        add_errors={"dQw4w9WgXcQ": TransportError("HTTP 503")},
    )
    synchronizer = PlaylistSynchronizer(
        ledger_repository=_ledger_repository(tmp_path, "dQw4w9WgXcQ", "9bZkp7q19f0"),
        gateway=remote,
        strategy="remote",
    )

    report = synchronizer.sync()

    assert report.failed == ("dQw4w9WgXcQ",)
    assert report.added == ("9bZkp7q19f0",)
    assert report.removed == ("kJQP7kiw5Fk",)
    assert remote.added == ["9bZkp7q19f0"]
    assert remote.removed == ["E1"]
    assert report.ok is False


def test_rejected_removal_is_reported_and_others_proceed(tmp_path: Path) -> None:
    remote = _FakeRemotePlaylist(
        [_entry("E1", "kJQP7kiw5Fk"), _entry("E2", "OPf0YbXqDm0")],
        rejected_removals={"E1"},
    )
    synchronizer = PlaylistSynchronizer(
        ledger_repository=_ledger_repository(tmp_path, "dQw4w9WgXcQ"),
        gateway=remote,
        strategy="remote",
    )

    report = synchronizer.sync()

    assert report.failed == ("kJQP7kiw5Fk",)
    assert report.removed == ("OPf0YbXqDm0",)
    assert report.added == ("dQw4w9WgXcQ",)
    assert remote.removed == ["E2"]
    assert {entry.external_video_id for entry in remote.entries} == {
        "kJQP7kiw5Fk",
        "dQw4w9WgXcQ",
    }


def test_raising_removal_is_reported_and_others_proceed(tmp_path: Path) -> None:
    remote = _FakeRemotePlaylist(
        [_entry("E1", "kJQP7kiw5Fk"), _entry("E2", "OPf0YbXqDm0")],
        remove_errors={"E1": AuthError("token revoked")},
    )
    synchronizer = PlaylistSynchronizer(
        ledger_repository=_ledger_repository(tmp_path, "dQw4w9WgXcQ"),
        gateway=remote,
        strategy="remote",
    )

    report = synchronizer.sync()

    assert report.attempted is True
    assert report.error is None
    assert report.failed == ("kJQP7kiw5Fk",)
    assert report.removed == ("OPf0YbXqDm0",)
    assert report.added == ("dQw4w9WgXcQ",)
    assert remote.removed == ["E2"]
    assert report.ok is False
