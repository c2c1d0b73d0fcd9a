from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from class_playlist.repositories.common import to_optional_str, utc_now_iso
from class_playlist.repositories.database import Database


@dataclass(frozen=True)
class LedgerVideo:
    internal_id: int
    external_id: str
    title: str
    link: str | None
    thumbnail_url: str | None
    published_at: str | None
    playlist_entry_id: str | None
    added_at: str


@dataclass(frozen=True)
class NewVideo:
    title: str
    link: str | None = None
    thumbnail_url: str | None = None
    published_at: str | None = None


@dataclass(frozen=True)
class UsageRef:
    tenant_id: str
    item_id: str


@dataclass(frozen=True)
class RecordedUsage:
    video: LedgerVideo
    video_created: bool
    usage_created: bool


@dataclass(frozen=True)
class UsageRemoval:
    usage_removed: bool
    video_deleted: bool


class LedgerRepository:
    """Videos referenced by network content and the items referencing them.

    A video row only exists while at least one usage row points at it: usages
    are recorded together with their video and the video is deleted in the
    same transaction that drops its last usage.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def get_video(self, external_id: str) -> LedgerVideo | None:
        with self._db.connection() as conn:
            return _select_video(conn, external_id)

    def record_usage(
        self,
        *,
        tenant_id: str,
        item_id: str,
        external_id: str,
        new_video: NewVideo | None,
    ) -> RecordedUsage | None:
        """Ensure the usage row exists, creating the video from `new_video` if needed.

        Returns None when the video is unknown and no metadata was supplied.
        """
        with self._db.connection() as conn:
            video_created = False
            if new_video is not None:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO yt_videos
                    (youtube_id, title, link, thumbnail_url, published_at,
                     playlist_entry_id, added_at)
                    VALUES (?, ?, ?, ?, ?, NULL, ?)
                    """,
                    (
                        external_id,
                        new_video.title,
                        new_video.link,
                        new_video.thumbnail_url,
                        new_video.published_at,
                        utc_now_iso(),
                    ),
                )
                video_created = cursor.rowcount == 1

            video = _select_video(conn, external_id)
            if video is None:
                return None

            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO yt_videos_usage (on_blog, for_post, video_id)
                VALUES (?, ?, ?)
                """,
                (tenant_id, item_id, video.internal_id),
            )
            return RecordedUsage(
                video=video,
                video_created=video_created,
                usage_created=cursor.rowcount == 1,
            )

    def remove_usage(self, *, tenant_id: str, item_id: str, external_id: str) -> UsageRemoval:
        with self._db.connection() as conn:
            video = _select_video(conn, external_id)
            if video is None:
                return UsageRemoval(usage_removed=False, video_deleted=False)

            cursor = conn.execute(
                """
                DELETE FROM yt_videos_usage
                WHERE on_blog = ? AND for_post = ? AND video_id = ?
                """,
                (tenant_id, item_id, video.internal_id),
            )
            usage_removed = cursor.rowcount > 0

            remaining = conn.execute(
                "SELECT COUNT(*) AS uses FROM yt_videos_usage WHERE video_id = ?",
                (video.internal_id,),
            ).fetchone()
            video_deleted = False
            if remaining is None or int(remaining["uses"]) == 0:
                conn.execute("DELETE FROM yt_videos WHERE id = ?", (video.internal_id,))
                video_deleted = True
            return UsageRemoval(usage_removed=usage_removed, video_deleted=video_deleted)

    def list_item_external_ids(self, *, tenant_id: str, item_id: str) -> list[str]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT v.youtube_id
                FROM yt_videos_usage AS vu
                JOIN yt_videos AS v ON v.id = vu.video_id
                WHERE vu.on_blog = ? AND vu.for_post = ?
                ORDER BY v.youtube_id
                """,
                (tenant_id, item_id),
            ).fetchall()
        return [str(row["youtube_id"]) for row in rows]

    def list_videos(self) -> list[LedgerVideo]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, youtube_id, title, link, thumbnail_url, published_at,
                    playlist_entry_id, added_at
                FROM yt_videos
                ORDER BY added_at DESC, id DESC
                """
            ).fetchall()
        return [_row_to_video(row) for row in rows]

    def list_usages_by_video(self) -> dict[int, list[UsageRef]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT video_id, on_blog, for_post
                FROM yt_videos_usage
                ORDER BY video_id, id
                """
            ).fetchall()

        usages: dict[int, list[UsageRef]] = {}
        for row in rows:
            usages.setdefault(int(row["video_id"]), []).append(
                UsageRef(tenant_id=str(row["on_blog"]), item_id=str(row["for_post"]))
            )
        return usages

    def set_playlist_entry_id(self, *, external_id: str, playlist_entry_id: str | None) -> None:
        with self._db.connection() as conn:
            conn.execute(
                "UPDATE yt_videos SET playlist_entry_id = ? WHERE youtube_id = ?",
                (playlist_entry_id, external_id),
            )

    def clear_playlist_entry_ids(self) -> None:
        with self._db.connection() as conn:
            conn.execute("UPDATE yt_videos SET playlist_entry_id = NULL")


def _select_video(conn: sqlite3.Connection, external_id: str) -> LedgerVideo | None:
    row = conn.execute(
        """
        SELECT id, youtube_id, title, link, thumbnail_url, published_at,
            playlist_entry_id, added_at
        FROM yt_videos
        WHERE youtube_id = ?
        """,
        (external_id,),
    ).fetchone()
    if row is None:
        return None
    return _row_to_video(row)


def _row_to_video(row: sqlite3.Row) -> LedgerVideo:
    return LedgerVideo(
        internal_id=int(row["id"]),
        external_id=str(row["youtube_id"]),
        title=str(row["title"]),
        link=to_optional_str(row["link"]),
        thumbnail_url=to_optional_str(row["thumbnail_url"]),
        published_at=to_optional_str(row["published_at"]),
        playlist_entry_id=to_optional_str(row["playlist_entry_id"]),
        added_at=str(row["added_at"]),
    )
