from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from urllib.parse import quote, urlsplit

from class_playlist.repositories.options_repository import PlaylistOptionsRepository
from class_playlist.services.errors import AccountNotLinkedError, AuthError, TransportError
from class_playlist.services.http_transport import HttpRequest, HttpResponse, HttpTransport
from class_playlist.services.oauth_signer import OAuthSigner

LOGGER = logging.getLogger("class_playlist.gateway")

ATOM_NS = "http://www.w3.org/2005/Atom"
MEDIA_NS = "http://search.yahoo.com/mrss/"
YT_NS = "http://gdata.youtube.com/schemas/2007"
GDATA_API_VERSION = 2
PLAYLIST_API_BASE = "/feeds/api/playlists/"
VIDEO_API_BASE = "/feeds/api/videos/"
USER_INFO_PATH = "/feeds/api/users/default"
USER_PLAYLISTS_PATH = f"/feeds/api/users/default/playlists?v={GDATA_API_VERSION}"
WATCH_URL_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"
DEFAULT_THUMBNAIL_PATTERN = re.compile(r"default\.\w{3,4}$")
ADD_VIDEO_PAYLOAD_TEMPLATE = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<entry xmlns="http://www.w3.org/2005/Atom" '
    'xmlns:yt="http://gdata.youtube.com/schemas/2007">\n'
    "<id>{video_id}</id>\n"
    "</entry>"
)


@dataclass(frozen=True)
class RemotePlaylistEntry:
    remote_entry_id: str
    external_video_id: str


@dataclass(frozen=True)
class VideoMetadata:
    external_id: str
    title: str
    link: str
    thumbnail_url: str | None
    published_at: str | None


@dataclass(frozen=True)
class UserPlaylist:
    playlist_id: str
    name: str


class PlaylistGateway:
    def __init__(
        self,
        *,
        signer: OAuthSigner,
        options_repository: PlaylistOptionsRepository,
        network_id: str,
        transport: HttpTransport | None = None,
        base_url: str = "https://gdata.youtube.com",
        api_key: str | None = None,
        timeout_seconds: float = 7.0,
    ) -> None:
        self._signer = signer
        self._options_repository = options_repository
        self._network_id = network_id
        self._transport = transport or HttpTransport()
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_seconds = max(1.0, timeout_seconds)

    @property
    def playlist_id(self) -> str | None:
        playlist_id = self._options_repository.load(self._network_id).youtube_playlist
        return playlist_id or None

    def list_entries(self) -> list[RemotePlaylistEntry]:
        playlist_id = self.playlist_id
        if playlist_id is None:
            return []

        response = self._request("GET", f"{_playlist_path(playlist_id)}?v={GDATA_API_VERSION}")
        if response.status != 200:
            raise TransportError(f"Playlist listing returned HTTP {response.status}")

        feed = _parse_xml(response)
        entries: list[RemotePlaylistEntry] = []
        for entry in feed.iter(f"{{{ATOM_NS}}}entry"):
            remote_entry_id = _id_suffix(_first_text(entry, f"{{{ATOM_NS}}}id"))
            external_video_id = _first_text(entry, f"{{{YT_NS}}}videoid")
            if not remote_entry_id or not external_video_id:
                LOGGER.debug("gateway playlist_entry_skipped reason=missing_ids")
                continue
            entries.append(
                RemotePlaylistEntry(
                    remote_entry_id=remote_entry_id,
                    external_video_id=external_video_id,
                )
            )
        return entries

    def add_entry(self, external_video_id: str) -> str | None:
        playlist_id = self.playlist_id
        if playlist_id is None:
            LOGGER.warning("gateway add_entry_skipped reason=no_playlist video_id=%s", external_video_id)
            return None

        payload = ADD_VIDEO_PAYLOAD_TEMPLATE.format(video_id=external_video_id)
        response = self._request("POST", _playlist_path(playlist_id), payload.encode("utf-8"))
        if response.status != 201:
            LOGGER.warning(
                "gateway add_entry_failed video_id=%s status=%s",
                external_video_id,
                response.status,
            )
            return None

        remote_entry_id = _location_entry_id(response.header("location"))
        if remote_entry_id is None:
            LOGGER.warning(
                "gateway add_entry_missing_location video_id=%s", external_video_id
            )
            return None
        LOGGER.info(
            "gateway add_entry video_id=%s remote_entry_id=%s",
            external_video_id,
            remote_entry_id,
        )
        return remote_entry_id

    def remove_entry(self, remote_entry_id: str) -> bool:
        playlist_id = self.playlist_id
        if playlist_id is None:
            return False

        path = f"{_playlist_path(playlist_id)}/{quote(remote_entry_id, safe='')}"
        try:
            response = self._request("DELETE", path)
        except TransportError:
            LOGGER.warning(
                "gateway remove_entry_failed remote_entry_id=%s",
                remote_entry_id,
                exc_info=True,
            )
            return False

        if response.status not in {200, 204}:
            LOGGER.warning(
                "gateway remove_entry_failed remote_entry_id=%s status=%s",
                remote_entry_id,
                response.status,
            )
            return False
        LOGGER.info("gateway remove_entry remote_entry_id=%s", remote_entry_id)
        return True

    def fetch_metadata(self, external_video_id: str) -> VideoMetadata | None:
        path = f"{VIDEO_API_BASE}{quote(external_video_id, safe='')}?v={GDATA_API_VERSION}"
        response = self._request("GET", path)
        if response.status in {400, 404}:
            LOGGER.info(
                "gateway video_not_found video_id=%s status=%s",
                external_video_id,
                response.status,
            )
            return None
        if response.status != 200:
            raise TransportError(
                f"Video metadata lookup returned HTTP {response.status} for {external_video_id}"
            )

        entry = _parse_xml(response)
        title = _first_text(entry, f"{{{ATOM_NS}}}title")
        if not title:
            return None
        return VideoMetadata(
            external_id=external_video_id,
            title=title,
            link=_alternate_link(entry) or WATCH_URL_TEMPLATE.format(video_id=external_video_id),
            thumbnail_url=_default_thumbnail(entry),
            published_at=_first_text(entry, f"{{{ATOM_NS}}}published")
            or _first_text(entry, f"{{{ATOM_NS}}}updated"),
        )

    def fetch_user_id(self) -> str | None:
        response = self._request("GET", USER_INFO_PATH)
        if response.status != 200:
            LOGGER.warning("gateway user_info_failed status=%s", response.status)
            return None
        return _first_text(_parse_xml(response), f"{{{YT_NS}}}username")

    def list_user_playlists(self) -> list[UserPlaylist]:
        response = self._request("GET", USER_PLAYLISTS_PATH)
        if response.status != 200:
            raise TransportError(f"Playlist catalog returned HTTP {response.status}")

        playlists: dict[str, UserPlaylist] = {}
        for entry in _parse_xml(response).iter(f"{{{ATOM_NS}}}entry"):
            playlist_id = _first_text(entry, f"{{{YT_NS}}}playlistId") or _id_suffix(
                _first_text(entry, f"{{{ATOM_NS}}}id")
            )
            name = _first_text(entry, f"{{{ATOM_NS}}}title")
            if playlist_id and name:
                playlists[name] = UserPlaylist(playlist_id=playlist_id, name=name)
        return [playlists[name] for name in sorted(playlists)]

    def _request(self, method: str, path: str, body: bytes = b"") -> HttpResponse:
        credentials = self._signer.access_credentials()
        if credentials is None:
            raise AccountNotLinkedError("No YouTube account is linked to this network.")

        params = self._signer.signed_params(
            f"{self._base_url}{path}",
            method,
            token=credentials.token,
            token_secret=credentials.secret,
        )
        headers = {
            "Content-Type": "application/atom+xml",
            "GData-Version": "2.0",
            "Authorization": self._signer.authorization_header(params),
        }
        if self._api_key:
            headers["X-GData-Key"] = f"key={self._api_key}"

        parts = urlsplit(self._base_url)
        response = self._transport.execute(
            HttpRequest(
                method=method,
                scheme=parts.scheme or "https",
                host=parts.hostname or "",
                path=path,
                headers=headers,
                body=body,
                timeout_seconds=self._timeout_seconds,
            )
        )
        if response.status in {401, 403}:
            LOGGER.warning(
                "gateway auth_rejected method=%s path=%s status=%s",
                method,
                path.split("?", 1)[0],
                response.status,
            )
            raise AuthError(
                "YouTube rejected the stored access token. Unlink and link the account again."
            )
        return response


def _playlist_path(playlist_id: str) -> str:
    return f"{PLAYLIST_API_BASE}{quote(playlist_id, safe='')}"


def _parse_xml(response: HttpResponse) -> ET.Element:
    try:
        return ET.fromstring(response.body)
    except ET.ParseError as exc:
        raise TransportError(f"Response body is not valid XML: {exc}") from exc


def _first_text(element: ET.Element, tag: str) -> str | None:
    if element.tag == tag and element.text:
        return element.text.strip() or None
    for child in element.iter(tag):
        if child.text and child.text.strip():
            return child.text.strip()
    return None


def _id_suffix(raw_id: str | None) -> str | None:
    if not raw_id:
        return None
    suffix = raw_id.rsplit(":", 1)[-1].rsplit("/", 1)[-1].strip()
    return suffix or None


def _alternate_link(entry: ET.Element) -> str | None:
    for link in entry.iter(f"{{{ATOM_NS}}}link"):
        if link.get("rel") == "alternate" and link.get("type") == "text/html":
            href = link.get("href")
            if href:
                return href
    return None


def _default_thumbnail(entry: ET.Element) -> str | None:
    for thumbnail in entry.iter(f"{{{MEDIA_NS}}}thumbnail"):
        url = thumbnail.get("url") or ""
        if DEFAULT_THUMBNAIL_PATTERN.search(url) and thumbnail.get("time") is None:
            return url
    return None


def _location_entry_id(location: str | None) -> str | None:
    if not location:
        return None
    path = urlsplit(location.strip()).path.rstrip("/")
    segment = path.rsplit("/", 1)[-1]
    return segment or None
