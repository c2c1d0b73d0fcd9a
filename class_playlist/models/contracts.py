from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ContentPublishedRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tenant_id: str = Field(min_length=1)
    item_id: str = Field(min_length=1)
    content: str | None = None


class ContentRemovedRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tenant_id: str = Field(min_length=1)
    item_id: str = Field(min_length=1)


class StatusTransitionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tenant_id: str = Field(min_length=1)
    item_id: str = Field(min_length=1)
    new_status: str
    old_status: str
    content: str | None = None


class RemoteSyncSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    strategy: str
    attempted: bool
    added: list[str]
    removed: list[str]
    failed: list[str]
    error: str | None = None


class ContentSyncResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    handled: bool
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    remote: RemoteSyncSummary | None = None
    error: str | None = None


class PlaylistUsage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tenant: str
    item_id: str


class PlaylistEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    external_id: str
    title: str
    link: str
    thumbnail_url: str | None = None
    published_at: str | None = None
    added_at: str
    usage: list[PlaylistUsage]


class PlaylistResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    count: int
    entries: list[PlaylistEntry]


class PlaylistUrlsResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    page_url: str | None = None
    remote_playlist_url: str | None = None


class AccountStatusResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    linked: bool
    youtube_user_id: str | None = None
    playlist_id: str | None = None
    authorization_pending: bool
    sync_strategy: str


class AuthorizationStartResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    authorization_url: str


class UserPlaylistResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    playlist_id: str
    name: str


class SelectPlaylistRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    playlist_id: str
