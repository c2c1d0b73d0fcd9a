from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from html.parser import HTMLParser
from typing import Protocol

from class_playlist.services.errors import ScanFormatError

EXTERNAL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")

_YOUTUBE_HOST = r"(?:https?:)?//(?:www\.|m\.)?youtube(?:-nocookie)?\.com"
WATCH_URL_PATTERN = re.compile(
    _YOUTUBE_HOST + r"/watch\?(?P<query>[^\s\"'<>#]*)",
    re.IGNORECASE,
)
EMBED_PATH_PATTERN = re.compile(
    _YOUTUBE_HOST + r"/(?P<kind>embed|v)/(?P<candidate>[^\s\"'<>&?#/]*)",
    re.IGNORECASE,
)
_WATCH_QUERY_VIDEO_PATTERN = re.compile(r"(?:^|&(?:amp;)?)v=(?P<candidate>[^&#]*)")


def is_valid_external_id(candidate: str) -> bool:
    return bool(EXTERNAL_ID_PATTERN.match(candidate))


def require_valid_external_id(candidate: str) -> str:
    if not is_valid_external_id(candidate):
        raise ScanFormatError(candidate)
    return candidate


class VideoFinder(Protocol):
    def find(self, content: str) -> list[str]:
        ...


class WatchUrlFinder:
    """Candidates from `youtube.com/watch?v=<id>` links, wherever `v` sits in the query."""

    def find(self, content: str) -> list[str]:
        candidates: list[str] = []
        for match in WATCH_URL_PATTERN.finditer(content):
            query_match = _WATCH_QUERY_VIDEO_PATTERN.search(match.group("query"))
            if query_match is not None:
                candidates.append(query_match.group("candidate"))
        return candidates


class EmbedPathFinder:
    """Candidates from `/embed/<id>` and legacy `/v/<id>` player URLs."""

    def __init__(self, kinds: Iterable[str] = ("embed", "v")) -> None:
        self._kinds = frozenset(kind.lower() for kind in kinds)

    def find(self, content: str) -> list[str]:
        return [
            match.group("candidate")
            for match in EMBED_PATH_PATTERN.finditer(content)
            if match.group("kind").lower() in self._kinds
        ]


class EmbedMarkupFinder:
    """Candidates from embed markup: `iframe`/`embed` sources and `<param name="src">`.

    Attribute values are unescaped by the HTML parser, so entity-encoded URLs
    that the plain-text finders miss are still picked up.
    """

    def __init__(self, path_finder: EmbedPathFinder | None = None) -> None:
        self._path_finder = path_finder or EmbedPathFinder()

    def find(self, content: str) -> list[str]:
        collector = _EmbedSourceCollector()
        collector.feed(content)
        collector.close()

        candidates: list[str] = []
        for url in collector.urls:
            candidates.extend(self._path_finder.find(url))
        return candidates


class _EmbedSourceCollector(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.urls: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        attributes = {name.lower(): value or "" for name, value in attrs}
        if tag in {"iframe", "embed"}:
            source = attributes.get("src", "")
            if source:
                self.urls.append(source)
        elif tag == "param" and attributes.get("name", "").lower() in {"src", "movie"}:
            value = attributes.get("value", "")
            if value:
                self.urls.append(value)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self.handle_starttag(tag, attrs)


def default_finders() -> tuple[VideoFinder, ...]:
    return (WatchUrlFinder(), EmbedPathFinder(), EmbedMarkupFinder())


class ContentScanner:
    def __init__(self, finders: Sequence[VideoFinder] | None = None) -> None:
        self._finders: tuple[VideoFinder, ...] = (
            tuple(finders) if finders is not None else default_finders()
        )

    def extract(self, content: str | None) -> set[str]:
        if not content:
            return set()

        external_ids: set[str] = set()
        for finder in self._finders:
            for candidate in finder.find(content):
                try:
                    external_ids.add(require_valid_external_id(candidate.strip()))
                except ScanFormatError:
                    continue
        return external_ids


_DEFAULT_SCANNER = ContentScanner()


def extract(content: str | None) -> set[str]:
    return _DEFAULT_SCANNER.extract(content)
