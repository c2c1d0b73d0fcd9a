from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any

from class_playlist.repositories.common import utc_now_iso
from class_playlist.repositories.database import Database


@dataclass(frozen=True)
class PlaylistOptions:
    access_token: str = ""
    access_token_secret: str = ""
    request_token: str = ""
    request_token_secret: str = ""
    account_linked: bool = False
    youtube_user_id: str = ""
    youtube_playlist: str = ""
    playlist_page_id: str = ""

    @property
    def has_access_token(self) -> bool:
        return bool(self.access_token)

    @property
    def has_request_token(self) -> bool:
        return bool(self.request_token)


_DEFAULT_OPTIONS = PlaylistOptions()
_OPTION_NAMES: tuple[str, ...] = tuple(field.name for field in fields(PlaylistOptions))


class PlaylistOptionsRepository:
    """Flat key/value options scoped per network.

    Options are read from storage once per network and kept in memory; every
    update writes the changed keys back immediately.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._loaded: dict[str, PlaylistOptions] = {}

    def load(self, network_id: str) -> PlaylistOptions:
        cached = self._loaded.get(network_id)
        if cached is not None:
            return cached

        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT option_key, value_text
                FROM playlist_options
                WHERE network_id = ?
                """,
                (network_id,),
            ).fetchall()

        raw_values = {str(row["option_key"]): str(row["value_text"]) for row in rows}
        options = _decode_options(raw_values)
        self._loaded[network_id] = options
        return options

    def update(self, network_id: str, **changes: Any) -> PlaylistOptions:
        unknown = sorted(set(changes) - set(_OPTION_NAMES))
        if unknown:
            raise ValueError(f"Unknown playlist options: {', '.join(unknown)}")

        current = self.load(network_id)
        updated = replace(current, **changes)
        changed_names = [
            name for name in _OPTION_NAMES if getattr(updated, name) != getattr(current, name)
        ]
        if not changed_names:
            return current

        now_iso = utc_now_iso()
        with self._db.connection() as conn:
            for name in changed_names:
                value = getattr(updated, name)
                if value == getattr(_DEFAULT_OPTIONS, name):
                    conn.execute(
                        "DELETE FROM playlist_options WHERE network_id = ? AND option_key = ?",
                        (network_id, name),
                    )
                    continue
                conn.execute(
                    """
                    INSERT INTO playlist_options (network_id, option_key, value_text, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(network_id, option_key) DO UPDATE SET
                        value_text = excluded.value_text,
                        updated_at = excluded.updated_at
                    """,
                    (network_id, name, _encode_value(value), now_iso),
                )

        self._loaded[network_id] = updated
        return updated

    def reset(self, network_id: str, *names: str) -> PlaylistOptions:
        defaults = {name: getattr(_DEFAULT_OPTIONS, name) for name in names}
        return self.update(network_id, **defaults)


def _encode_value(value: object) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _decode_options(raw_values: dict[str, str]) -> PlaylistOptions:
    values: dict[str, Any] = {}
    for name in _OPTION_NAMES:
        raw_value = raw_values.get(name)
        if raw_value is None:
            continue
        if isinstance(getattr(_DEFAULT_OPTIONS, name), bool):
            values[name] = raw_value.strip() in {"1", "true"}
        else:
            values[name] = raw_value
    return replace(_DEFAULT_OPTIONS, **values)
