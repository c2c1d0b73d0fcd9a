from __future__ import annotations

import re
from typing import Protocol

PLAYLIST_PAGE_DEFAULT_NAME = "Our YouTube Class Playlist"
ADMIN_PAGE_PATH = "/admin/class-playlist"


class HostSite(Protocol):
    """The pieces of the hosting blog network this engine needs."""

    def ensure_page(self, title: str, current_page_id: str | None) -> str:
        ...

    def page_url(self, page_id: str) -> str:
        ...

    def admin_url(self) -> str:
        ...


class StaticHostSite:
    """Host boundary derived from the network's public base URL.

    Pages are addressed by slug, so `ensure_page` keeps an existing id and
    otherwise derives one from the title.
    """

    def __init__(self, base_url: str, *, admin_path: str = ADMIN_PAGE_PATH) -> None:
        self._base_url = base_url.rstrip("/")
        self._admin_path = "/" + admin_path.strip("/")

    def ensure_page(self, title: str, current_page_id: str | None) -> str:
        if current_page_id:
            return current_page_id
        return slugify(title)

    def page_url(self, page_id: str) -> str:
        return f"{self._base_url}/{page_id.strip('/')}/"

    def admin_url(self) -> str:
        return f"{self._base_url}{self._admin_path}"


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.strip().lower()).strip("-")
    return slug or "playlist"
