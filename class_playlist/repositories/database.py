from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS yt_videos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    youtube_id TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    link TEXT NULL,
    thumbnail_url TEXT NULL,
    published_at TEXT NULL,
    playlist_entry_id TEXT NULL,
    added_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_yt_videos_added_at
ON yt_videos(added_at DESC);

CREATE TABLE IF NOT EXISTS yt_videos_usage (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    on_blog TEXT NOT NULL,
    for_post TEXT NOT NULL,
    video_id INTEGER NOT NULL,
    UNIQUE (on_blog, for_post, video_id),
    FOREIGN KEY(video_id) REFERENCES yt_videos(id)
);

CREATE INDEX IF NOT EXISTS idx_yt_videos_usage_video
ON yt_videos_usage(video_id);

CREATE TABLE IF NOT EXISTS playlist_options (
    network_id TEXT NOT NULL,
    option_key TEXT NOT NULL,
    value_text TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (network_id, option_key)
);

CREATE TABLE IF NOT EXISTS playlist_cache (
    network_id TEXT PRIMARY KEY,
    payload_json TEXT NOT NULL,
    cached_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);
"""


class Database:
    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)
