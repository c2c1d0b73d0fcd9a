from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Literal
from urllib.parse import parse_qs, parse_qsl, quote, urlencode, urlsplit

from class_playlist.repositories.options_repository import PlaylistOptionsRepository
from class_playlist.services.errors import AuthError, TransportError
from class_playlist.services.http_transport import HttpRequest, HttpResponse, HttpTransport

LOGGER = logging.getLogger("class_playlist.oauth")

OAUTH_VERSION = "1.0"
OAUTH_SIGNATURE_METHOD = "HMAC-SHA1"
REQUEST_TOKEN_PATH = "/accounts/OAuthGetRequestToken"
AUTHORIZE_TOKEN_PATH = "/accounts/OAuthAuthorizeToken"
ACCESS_TOKEN_PATH = "/accounts/OAuthGetAccessToken"
DEFAULT_SCOPE = "https://gdata.youtube.com"
DEFAULT_DISPLAY_NAME = "YouTube Class Playlist"

TokenKind = Literal["request", "access"]


@dataclass(frozen=True)
class OAuthToken:
    token: str
    secret: str
    kind: TokenKind


def percent_encode(value: object) -> str:
    """RFC 3986 encoding: everything but unreserved characters is escaped."""
    return quote(str(value), safe="~")


def _default_nonce() -> str:
    return hashlib.md5(secrets.token_bytes(16)).hexdigest()


def _default_clock() -> float:
    return time.time()


def normalize_parameters(url: str, params: Mapping[str, str]) -> str:
    merged: list[tuple[str, str]] = [
        (key, value) for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True)
    ]
    merged.extend((key, str(value)) for key, value in params.items() if key != "oauth_signature")
    encoded = sorted((percent_encode(key), percent_encode(value)) for key, value in merged)
    return "&".join(f"{key}={value}" for key, value in encoded)


def signature_base_string(url: str, params: Mapping[str, str], method: str) -> str:
    base_url = url.split("?", 1)[0]
    return "&".join(
        (
            method.strip().upper(),
            percent_encode(base_url),
            percent_encode(normalize_parameters(url, params)),
        )
    )


def hmac_sha1_signature(base_string: str, consumer_secret: str, token_secret: str) -> str:
    key = f"{percent_encode(consumer_secret)}&{percent_encode(token_secret)}"
    digest = hmac.new(key.encode("utf-8"), base_string.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


class OAuthSigner:
    """OAuth 1.0a signing plus the request/access token exchange.

    Tokens are persisted in the network's playlist options so the
    authorization flow survives across requests.
    """

    def __init__(
        self,
        *,
        consumer_key: str,
        consumer_secret: str,
        options_repository: PlaylistOptionsRepository,
        network_id: str,
        transport: HttpTransport | None = None,
        accounts_base_url: str = "https://www.google.com",
        scope: str = DEFAULT_SCOPE,
        display_name: str = DEFAULT_DISPLAY_NAME,
        timeout_seconds: float = 20.0,
        nonce_factory: Callable[[], str] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._options_repository = options_repository
        self._network_id = network_id
        self._transport = transport or HttpTransport()
        self._accounts_base_url = accounts_base_url.rstrip("/")
        self._scope = scope
        self._display_name = display_name
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._nonce_factory = nonce_factory or _default_nonce
        self._clock = clock or _default_clock

    def oauth_params(
        self,
        params: Mapping[str, str] | None = None,
        *,
        token: str | None = None,
    ) -> dict[str, str]:
        merged = dict(params or {})
        if token:
            merged["oauth_token"] = token
        merged["oauth_consumer_key"] = self._consumer_key
        merged["oauth_nonce"] = self._nonce_factory()
        merged["oauth_timestamp"] = str(int(self._clock()))
        merged["oauth_version"] = OAUTH_VERSION
        return merged

    def sign(
        self,
        url: str,
        params: Mapping[str, str],
        method: str,
        token_secret: str = "",
    ) -> dict[str, str]:
        signed = dict(params)
        signed["oauth_signature_method"] = OAUTH_SIGNATURE_METHOD
        base_string = signature_base_string(url, signed, method)
        signature = hmac_sha1_signature(base_string, self._consumer_secret, token_secret)
        signed["oauth_signature"] = percent_encode(signature)
        return signed

    def signed_params(
        self,
        url: str,
        method: str,
        params: Mapping[str, str] | None = None,
        *,
        token: str | None = None,
        token_secret: str = "",
    ) -> dict[str, str]:
        return self.sign(url, self.oauth_params(params, token=token), method, token_secret)

    @staticmethod
    def authorization_header(params: Mapping[str, str]) -> str:
        parts: list[str] = []
        for key, value in params.items():
            if not key.startswith("oauth_"):
                continue
            # The signature is stored already encoded.
            encoded = value if key == "oauth_signature" else percent_encode(value)
            parts.append(f'{key}="{encoded}"')
        return "OAuth " + ",".join(parts)

    @staticmethod
    def query_string(params: Mapping[str, str]) -> str:
        plain = [(key, value) for key, value in params.items() if not key.startswith("oauth_")]
        if not plain:
            return ""
        return "?" + urlencode(plain, quote_via=quote, safe="~")

    def access_credentials(self) -> OAuthToken | None:
        options = self._options_repository.load(self._network_id)
        if not options.access_token:
            return None
        return OAuthToken(
            token=options.access_token,
            secret=options.access_token_secret,
            kind="access",
        )

    def pending_request_token(self) -> OAuthToken | None:
        options = self._options_repository.load(self._network_id)
        if not options.request_token:
            return None
        return OAuthToken(
            token=options.request_token,
            secret=options.request_token_secret,
            kind="request",
        )

    def request_token(self, callback_url: str) -> OAuthToken:
        url = f"{self._accounts_base_url}{REQUEST_TOKEN_PATH}"
        params = self.signed_params(
            url,
            "GET",
            {
                "oauth_callback": callback_url,
                "scope": self._scope,
                "xoauth_displayname": self._display_name,
            },
        )
        response = self._execute(
            "GET",
            REQUEST_TOKEN_PATH + self.query_string(params),
            params,
        )
        if response.status != 200:
            LOGGER.warning("oauth request_token_failed status=%s", response.status)
            raise AuthError(f"Request token endpoint returned HTTP {response.status}")

        token = _parse_token_body(response, kind="request")
        self._options_repository.update(
            self._network_id,
            request_token=token.token,
            request_token_secret=token.secret,
        )
        LOGGER.info("oauth request_token_stored network_id=%s", self._network_id)
        return token

    def authorization_url(self) -> str:
        pending = self.pending_request_token()
        if pending is None:
            raise AuthError("No request token is available to authorize.")
        return (
            f"{self._accounts_base_url}{AUTHORIZE_TOKEN_PATH}"
            f"?oauth_token={percent_encode(pending.token)}"
        )

    def access_token(self, verifier: str) -> OAuthToken:
        pending = self.pending_request_token()
        if pending is None:
            raise AuthError("No pending authorization request; start the authorization again.")

        url = f"{self._accounts_base_url}{ACCESS_TOKEN_PATH}"
        params = self.signed_params(
            url,
            "POST",
            {"oauth_verifier": verifier},
            token=pending.token,
            token_secret=pending.secret,
        )
        response = self._execute("POST", ACCESS_TOKEN_PATH, params)
        if response.status != 200:
            LOGGER.warning("oauth access_token_failed status=%s", response.status)
            raise AuthError(f"Access token endpoint returned HTTP {response.status}")

        token = _parse_token_body(response, kind="access")
        # The request token is single-use once exchanged.
        self._options_repository.update(
            self._network_id,
            access_token=token.token,
            access_token_secret=token.secret,
            request_token="",
            request_token_secret="",
        )
        LOGGER.info("oauth access_token_stored network_id=%s", self._network_id)
        return token

    def _execute(self, method: str, path: str, params: Mapping[str, str]) -> HttpResponse:
        parts = urlsplit(self._accounts_base_url)
        request = HttpRequest(
            method=method,
            scheme=parts.scheme or "https",
            host=parts.hostname or "",
            path=path,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Authorization": self.authorization_header(params),
            },
            timeout_seconds=self._timeout_seconds,
        )
        try:
            return self._transport.execute(request)
        except TransportError:
            LOGGER.warning(
                "oauth transport_failed method=%s path=%s",
                method,
                path.split("?", 1)[0],
                exc_info=True,
            )
            raise


def _parse_token_body(response: HttpResponse, *, kind: TokenKind) -> OAuthToken:
    parsed = parse_qs(response.text.strip(), keep_blank_values=True)
    token_values = parsed.get("oauth_token") or []
    secret_values = parsed.get("oauth_token_secret") or []
    if not token_values or not token_values[0]:
        raise AuthError(f"OAuth {kind} token response did not include a token.")
    secret = secret_values[0] if secret_values else ""
    return OAuthToken(token=token_values[0], secret=secret, kind=kind)
