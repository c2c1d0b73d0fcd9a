from __future__ import annotations

import logging
from dataclasses import dataclass

from class_playlist.repositories.ledger_repository import LedgerRepository
from class_playlist.repositories.options_repository import PlaylistOptions, PlaylistOptionsRepository
from class_playlist.services.errors import AccountNotLinkedError, AuthError, TransportError
from class_playlist.services.host_site import HostSite
from class_playlist.services.oauth_signer import OAuthSigner
from class_playlist.services.playlist_cache import PlaylistCache
from class_playlist.services.playlist_gateway import PlaylistGateway, UserPlaylist

LOGGER = logging.getLogger("class_playlist.account")

AUTHORIZATION_UNAVAILABLE_MESSAGE = (
    "The YouTube authorization process cannot be started. Try again."
)
ACCOUNT_NOT_LINKED_MESSAGE = "No YouTube account is linked to this network."


@dataclass(frozen=True)
class AccountStatus:
    linked: bool
    youtube_user_id: str | None
    playlist_id: str | None
    authorization_pending: bool


class AccountLinkingService:
    """State transitions of the account linking flow.

    unlinked -> authorization pending (request token) -> linked (access token
    and user id) -> playlist selected; unlink returns to unlinked and drops
    every piece of state that depended on the link.
    """

    def __init__(
        self,
        *,
        signer: OAuthSigner,
        gateway: PlaylistGateway,
        options_repository: PlaylistOptionsRepository,
        ledger_repository: LedgerRepository,
        cache: PlaylistCache,
        host_site: HostSite,
        network_id: str,
    ) -> None:
        self._signer = signer
        self._gateway = gateway
        self._options_repository = options_repository
        self._ledger_repository = ledger_repository
        self._cache = cache
        self._host_site = host_site
        self._network_id = network_id

    def status(self) -> AccountStatus:
        return _status_from_options(self._options())

    def start_authorization(self) -> str:
        if self._options().account_linked:
            raise AuthError("A YouTube account is already linked. Unlink it first.")
        try:
            self._signer.request_token(self._host_site.admin_url())
        except (AuthError, TransportError) as exc:
            LOGGER.warning("account authorization_start_failed", exc_info=True)
            raise AuthError(AUTHORIZATION_UNAVAILABLE_MESSAGE) from exc
        return self._signer.authorization_url()

    def complete_authorization(self, verifier: str, *, oauth_token: str | None = None) -> AccountStatus:
        pending = self._signer.pending_request_token()
        if pending is None:
            raise AuthError("No authorization is in progress. Start linking the account again.")
        if oauth_token is not None and oauth_token != pending.token:
            raise AuthError("The authorization response does not match the pending request.")

        try:
            self._signer.access_token(verifier)
        except TransportError as exc:
            raise AuthError(f"Could not exchange the authorization for an access token: {exc}") from exc

        if not self.maybe_link_account():
            raise AuthError("Your YouTube account could not be linked to this network.")
        return self.status()

    def maybe_link_account(self) -> bool:
        options = self._options()
        if options.account_linked:
            return True
        if not options.has_access_token:
            return False

        try:
            user_id = self._gateway.fetch_user_id()
        except (AuthError, TransportError):
            LOGGER.warning("account link_failed reason=user_lookup", exc_info=True)
            return False
        if not user_id:
            return False

        self._options_repository.update(
            self._network_id,
            youtube_user_id=user_id,
            account_linked=True,
            request_token="",
            request_token_secret="",
        )
        LOGGER.info("account linked network_id=%s youtube_user_id=%s", self._network_id, user_id)
        return True

    def list_playlists(self) -> list[UserPlaylist]:
        self._require_linked()
        return self._gateway.list_user_playlists()

    def select_playlist(self, playlist_id: str) -> AccountStatus:
        options = self._require_linked()
        normalized = playlist_id.strip()
        if normalized != options.youtube_playlist:
            # Entry ids belong to the previous playlist.
            self._ledger_repository.clear_playlist_entry_ids()
            self._cache.invalidate(self._network_id)
            LOGGER.info(
                "account playlist_selected network_id=%s playlist_id=%s",
                self._network_id,
                normalized or None,
            )
        self._options_repository.update(self._network_id, youtube_playlist=normalized)
        return self.status()

    def unlink(self) -> AccountStatus:
        self._options_repository.reset(
            self._network_id,
            "access_token",
            "access_token_secret",
            "request_token",
            "request_token_secret",
            "account_linked",
            "youtube_user_id",
            "youtube_playlist",
        )
        self._ledger_repository.clear_playlist_entry_ids()
        self._cache.invalidate(self._network_id)
        LOGGER.info("account unlinked network_id=%s", self._network_id)
        return self.status()

    def _options(self) -> PlaylistOptions:
        return self._options_repository.load(self._network_id)

    def _require_linked(self) -> PlaylistOptions:
        options = self._options()
        if not options.account_linked:
            raise AccountNotLinkedError(ACCOUNT_NOT_LINKED_MESSAGE)
        return options


def _status_from_options(options: PlaylistOptions) -> AccountStatus:
    return AccountStatus(
        linked=options.account_linked,
        youtube_user_id=options.youtube_user_id or None,
        playlist_id=options.youtube_playlist or None,
        authorization_pending=options.has_request_token and not options.account_linked,
    )
