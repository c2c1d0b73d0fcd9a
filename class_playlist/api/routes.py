from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from structlog.contextvars import bind_contextvars, reset_contextvars

from class_playlist.config import AppSettings
from class_playlist.dependencies import get_account_service, get_playlist_service, get_settings
from class_playlist.models.contracts import (
    AccountStatusResponse,
    AuthorizationStartResponse,
    ContentPublishedRequest,
    ContentRemovedRequest,
    ContentSyncResponse,
    PlaylistEntry,
    PlaylistResponse,
    PlaylistUrlsResponse,
    RemoteSyncSummary,
    SelectPlaylistRequest,
    StatusTransitionRequest,
    UserPlaylistResponse,
)
from class_playlist.services.account_linking import AccountLinkingService, AccountStatus
from class_playlist.services.errors import AccountNotLinkedError, AuthError, TransportError
from class_playlist.services.playlist_service import ClassPlaylistService, ContentSyncOutcome

router = APIRouter()


def _to_sync_response(outcome: ContentSyncOutcome) -> ContentSyncResponse:
    remote = None
    if outcome.remote is not None:
        remote = RemoteSyncSummary(
            strategy=outcome.remote.strategy,
            attempted=outcome.remote.attempted,
            added=list(outcome.remote.added),
            removed=list(outcome.remote.removed),
            failed=list(outcome.remote.failed),
            error=outcome.remote.error,
        )
    item = outcome.item
    return ContentSyncResponse(
        handled=outcome.handled,
        added=list(item.added) if item is not None else [],
        removed=list(item.removed) if item is not None else [],
        skipped=list(item.skipped) if item is not None else [],
        remote=remote,
        error=outcome.error,
    )


def _to_status_response(status: AccountStatus, settings: AppSettings) -> AccountStatusResponse:
    return AccountStatusResponse(
        linked=status.linked,
        youtube_user_id=status.youtube_user_id,
        playlist_id=status.playlist_id,
        authorization_pending=status.authorization_pending,
        sync_strategy=settings.sync_strategy,
    )


def _account_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, AccountNotLinkedError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, TransportError) or isinstance(exc.__cause__, TransportError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=409, detail=str(exc))


@router.post(
    "/content/published",
    response_model=ContentSyncResponse,
    tags=["content"],
    operation_id="content_published",
)
def content_published(
    request: ContentPublishedRequest,
    service: Annotated[ClassPlaylistService, Depends(get_playlist_service)],
) -> ContentSyncResponse:
    context_tokens = bind_contextvars(tenant_id=request.tenant_id, item_id=request.item_id)
    try:
        outcome = service.on_content_published(request.tenant_id, request.item_id, request.content)
    finally:
        reset_contextvars(**context_tokens)
    return _to_sync_response(outcome)


@router.post(
    "/content/unpublished",
    response_model=ContentSyncResponse,
    tags=["content"],
    operation_id="content_unpublished",
)
def content_unpublished(
    request: ContentRemovedRequest,
    service: Annotated[ClassPlaylistService, Depends(get_playlist_service)],
) -> ContentSyncResponse:
    return _to_sync_response(service.on_content_unpublished(request.tenant_id, request.item_id))


@router.post(
    "/content/deleted",
    response_model=ContentSyncResponse,
    tags=["content"],
    operation_id="content_deleted",
)
def content_deleted(
    request: ContentRemovedRequest,
    service: Annotated[ClassPlaylistService, Depends(get_playlist_service)],
) -> ContentSyncResponse:
    return _to_sync_response(service.on_content_deleted(request.tenant_id, request.item_id))


@router.post(
    "/content/status-transition",
    response_model=ContentSyncResponse,
    tags=["content"],
    operation_id="content_status_transition",
)
def content_status_transition(
    request: StatusTransitionRequest,
    service: Annotated[ClassPlaylistService, Depends(get_playlist_service)],
) -> ContentSyncResponse:
    outcome = service.on_status_transition(
        request.tenant_id,
        request.item_id,
        new_status=request.new_status,
        old_status=request.old_status,
        content=request.content,
    )
    return _to_sync_response(outcome)


@router.get("/playlist", response_model=PlaylistResponse, tags=["playlist"], operation_id="get_playlist")
def get_playlist(
    service: Annotated[ClassPlaylistService, Depends(get_playlist_service)],
    limit: Annotated[int | None, Query(ge=0)] = None,
) -> PlaylistResponse:
    entries = [PlaylistEntry.model_validate(entry) for entry in service.get_playlist_view(limit)]
    return PlaylistResponse(count=len(entries), entries=entries)


@router.get(
    "/playlist/urls",
    response_model=PlaylistUrlsResponse,
    tags=["playlist"],
    operation_id="get_playlist_urls",
)
def get_playlist_urls(
    service: Annotated[ClassPlaylistService, Depends(get_playlist_service)],
) -> PlaylistUrlsResponse:
    return PlaylistUrlsResponse(
        page_url=service.get_playlist_page_url(),
        remote_playlist_url=service.get_remote_playlist_page_url(),
    )


@router.get("/account", response_model=AccountStatusResponse, tags=["account"], operation_id="get_account")
def get_account(
    accounts: Annotated[AccountLinkingService, Depends(get_account_service)],
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> AccountStatusResponse:
    return _to_status_response(accounts.status(), settings)


@router.post(
    "/account/authorize",
    response_model=AuthorizationStartResponse,
    tags=["account"],
    operation_id="start_account_authorization",
)
def start_account_authorization(
    accounts: Annotated[AccountLinkingService, Depends(get_account_service)],
) -> AuthorizationStartResponse:
    try:
        authorization_url = accounts.start_authorization()
    except AuthError as exc:
        raise _account_http_error(exc) from exc
    return AuthorizationStartResponse(authorization_url=authorization_url)


@router.get(
    "/account/callback",
    response_model=AccountStatusResponse,
    tags=["account"],
    operation_id="complete_account_authorization",
)
def complete_account_authorization(
    accounts: Annotated[AccountLinkingService, Depends(get_account_service)],
    settings: Annotated[AppSettings, Depends(get_settings)],
    oauth_verifier: Annotated[str, Query(min_length=1)],
    oauth_token: str | None = None,
) -> AccountStatusResponse:
    try:
        status = accounts.complete_authorization(oauth_verifier, oauth_token=oauth_token)
    except AuthError as exc:
        raise _account_http_error(exc) from exc
    return _to_status_response(status, settings)


@router.get(
    "/account/playlists",
    response_model=list[UserPlaylistResponse],
    tags=["account"],
    operation_id="list_account_playlists",
)
def list_account_playlists(
    accounts: Annotated[AccountLinkingService, Depends(get_account_service)],
) -> list[UserPlaylistResponse]:
    try:
        playlists = accounts.list_playlists()
    except (AuthError, TransportError) as exc:
        raise _account_http_error(exc) from exc
    return [
        UserPlaylistResponse(playlist_id=playlist.playlist_id, name=playlist.name)
        for playlist in playlists
    ]


@router.post(
    "/account/playlist",
    response_model=AccountStatusResponse,
    tags=["account"],
    operation_id="select_account_playlist",
)
def select_account_playlist(
    request: SelectPlaylistRequest,
    accounts: Annotated[AccountLinkingService, Depends(get_account_service)],
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> AccountStatusResponse:
    try:
        status = accounts.select_playlist(request.playlist_id)
    except AuthError as exc:
        raise _account_http_error(exc) from exc
    return _to_status_response(status, settings)


@router.post(
    "/account/unlink",
    response_model=AccountStatusResponse,
    tags=["account"],
    operation_id="unlink_account",
)
def unlink_account(
    accounts: Annotated[AccountLinkingService, Depends(get_account_service)],
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> AccountStatusResponse:
    return _to_status_response(accounts.unlink(), settings)
