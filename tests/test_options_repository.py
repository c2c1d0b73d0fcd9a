from __future__ import annotations

from pathlib import Path

import pytest

from class_playlist.repositories.database import Database
from class_playlist.repositories.options_repository import PlaylistOptionsRepository


def _database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "state.db")
    db.initialize()
    return db


def test_options_default_when_nothing_is_stored(tmp_path: Path) -> None:
    options = PlaylistOptionsRepository(_database(tmp_path)).load("default")

    assert options.account_linked is False
    assert options.access_token == ""
    assert options.has_access_token is False
    assert options.has_request_token is False


def test_updates_persist_across_repository_instances(tmp_path: Path) -> None:
    db = _database(tmp_path)
    PlaylistOptionsRepository(db).update(
        "default",
        access_token="token",
        access_token_secret="secret",
        account_linked=True,
        youtube_playlist="PL1",
    )

    reloaded = PlaylistOptionsRepository(db).load("default")

    assert reloaded.access_token == "token"
    assert reloaded.account_linked is True
    assert reloaded.youtube_playlist == "PL1"
    assert reloaded.has_access_token is True


def test_reset_restores_defaults_and_removes_rows(tmp_path: Path) -> None:
    db = _database(tmp_path)
    repository = PlaylistOptionsRepository(db)
    repository.update("default", request_token="req", account_linked=True)

    repository.reset("default", "request_token", "account_linked")

    with db.connection() as conn:
        count = conn.execute("SELECT COUNT(*) AS total FROM playlist_options").fetchone()
    assert count is not None and int(count["total"]) == 0
    assert PlaylistOptionsRepository(db).load("default").account_linked is False


def test_options_are_scoped_per_network(tmp_path: Path) -> None:
    repository = PlaylistOptionsRepository(_database(tmp_path))
    repository.update("network-a", youtube_playlist="PLA")

    assert repository.load("network-b").youtube_playlist == ""


def test_unknown_option_is_rejected(tmp_path: Path) -> None:
    repository = PlaylistOptionsRepository(_database(tmp_path))

    with pytest.raises(ValueError, match="not_an_option"):
        repository.update("default", not_an_option="x")
