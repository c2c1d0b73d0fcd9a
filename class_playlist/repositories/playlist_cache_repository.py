from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import cast

from class_playlist.repositories.common import parse_timestamp
from class_playlist.repositories.database import Database


@dataclass(frozen=True)
class CachedPlaylistRow:
    network_id: str
    entries: list[dict[str, object]]
    cached_at: datetime
    expires_at: datetime


class PlaylistCacheRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def get(self, network_id: str) -> CachedPlaylistRow | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT network_id, payload_json, cached_at, expires_at
                FROM playlist_cache
                WHERE network_id = ?
                """,
                (network_id,),
            ).fetchone()

        if row is None:
            return None
        cached_at = parse_timestamp(row["cached_at"])
        expires_at = parse_timestamp(row["expires_at"])
        if cached_at is None or expires_at is None:
            return None
        entries = _decode_entries(row["payload_json"])
        if entries is None:
            return None
        return CachedPlaylistRow(
            network_id=str(row["network_id"]),
            entries=entries,
            cached_at=cached_at,
            expires_at=expires_at,
        )

    def replace(
        self,
        *,
        network_id: str,
        entries: list[dict[str, object]],
        cached_at: datetime,
        expires_at: datetime,
    ) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO playlist_cache (network_id, payload_json, cached_at, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    payload_json = excluded.payload_json,
                    cached_at = excluded.cached_at,
                    expires_at = excluded.expires_at
                """,
                (
                    network_id,
                    json.dumps(entries, sort_keys=True, ensure_ascii=True),
                    cached_at.isoformat(),
                    expires_at.isoformat(),
                ),
            )

    def delete(self, network_id: str) -> bool:
        with self._db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM playlist_cache WHERE network_id = ?",
                (network_id,),
            )
        return cursor.rowcount > 0


def _decode_entries(raw_value: object) -> list[dict[str, object]] | None:
    if not isinstance(raw_value, str):
        return None
    try:
        parsed = cast(object, json.loads(raw_value))
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, list):
        return None

    entries: list[dict[str, object]] = []
    for item in cast(list[object], parsed):
        if not isinstance(item, dict):
            return None
        item_dict = cast(dict[object, object], item)
        entries.append({str(key): value for key, value in item_dict.items()})
    return entries
