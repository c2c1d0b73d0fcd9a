from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from class_playlist.dependencies import reset_cached_dependencies
from class_playlist.main import create_app
from class_playlist.repositories.database import Database
from class_playlist.repositories.options_repository import PlaylistOptionsRepository


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    runtime_dir = tmp_path / "runtime-data"
    runtime_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("CLASS_PLAYLIST_DATA_DIR", str(runtime_dir))
    monkeypatch.setenv("CLASS_PLAYLIST_SITE_BASE_URL", "https://classes.example.edu")
    monkeypatch.setenv("CLASS_PLAYLIST_TELEMETRY_SINK", "none")
    for name in ("CLASS_PLAYLIST_DB_PATH", "CLASS_PLAYLIST_LOG_DIR", "CLASS_PLAYLIST_SYNC_STRATEGY"):
        monkeypatch.delenv(name, raising=False)
    return runtime_dir


@pytest.fixture
def linked_account(data_dir: Path) -> PlaylistOptionsRepository:
    db = Database(data_dir / "state.db")
    db.initialize()
    options = PlaylistOptionsRepository(db)
    options.update(
        "default",
        access_token="access",
        access_token_secret="access-secret",
        account_linked=True,
        youtube_user_id="classadmin",
    )
    return options


@pytest.fixture
def client(data_dir: Path) -> Iterator[TestClient]:
    reset_cached_dependencies()

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
