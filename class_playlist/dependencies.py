from __future__ import annotations

from functools import lru_cache

from class_playlist.config import AppSettings, load_settings
from class_playlist.repositories.database import Database
from class_playlist.repositories.ledger_repository import LedgerRepository
from class_playlist.repositories.options_repository import PlaylistOptionsRepository
from class_playlist.repositories.playlist_cache_repository import PlaylistCacheRepository
from class_playlist.services.account_linking import AccountLinkingService
from class_playlist.services.host_site import StaticHostSite
from class_playlist.services.http_transport import HttpTransport
from class_playlist.services.oauth_signer import OAuthSigner
from class_playlist.services.playlist_cache import PlaylistCache
from class_playlist.services.playlist_gateway import PlaylistGateway
from class_playlist.services.playlist_service import ClassPlaylistService
from class_playlist.services.playlist_synchronizer import PlaylistSynchronizer
from class_playlist.services.usage_ledger import UsageLedger
from class_playlist.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_database() -> Database:
    database = Database(get_settings().db_path)
    database.initialize()
    return database


@lru_cache(maxsize=1)
def get_options_repository() -> PlaylistOptionsRepository:
    return PlaylistOptionsRepository(get_database())


@lru_cache(maxsize=1)
def get_ledger_repository() -> LedgerRepository:
    return LedgerRepository(get_database())


@lru_cache(maxsize=1)
def get_host_site() -> StaticHostSite:
    return StaticHostSite(get_settings().site_base_url)


@lru_cache(maxsize=1)
def get_playlist_cache() -> PlaylistCache:
    settings = get_settings()
    return PlaylistCache(
        cache_repository=PlaylistCacheRepository(get_database()),
        ledger_repository=get_ledger_repository(),
        ttl_seconds=settings.playlist_cache_ttl_seconds,
    )


@lru_cache(maxsize=1)
def get_signer() -> OAuthSigner:
    settings = get_settings()
    return OAuthSigner(
        consumer_key=settings.oauth_consumer_key,
        consumer_secret=settings.oauth_consumer_secret,
        options_repository=get_options_repository(),
        network_id=settings.network_id,
        transport=HttpTransport(),
        accounts_base_url=settings.google_accounts_base_url,
        timeout_seconds=settings.oauth_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_gateway() -> PlaylistGateway:
    settings = get_settings()
    return PlaylistGateway(
        signer=get_signer(),
        options_repository=get_options_repository(),
        network_id=settings.network_id,
        transport=HttpTransport(),
        base_url=settings.gdata_base_url,
        api_key=settings.gdata_api_key,
        timeout_seconds=settings.gateway_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_playlist_service() -> ClassPlaylistService:
    settings = get_settings()
    cache = get_playlist_cache()
    gateway = get_gateway()
    return ClassPlaylistService(
        ledger=UsageLedger(
            repository=get_ledger_repository(),
            metadata_source=gateway,
            network_id=settings.network_id,
            cache=cache,
        ),
        synchronizer=PlaylistSynchronizer(
            ledger_repository=get_ledger_repository(),
            gateway=gateway,
            strategy=settings.sync_strategy,
        ),
        cache=cache,
        options_repository=get_options_repository(),
        host_site=get_host_site(),
        network_id=settings.network_id,
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_account_service() -> AccountLinkingService:
    return AccountLinkingService(
        signer=get_signer(),
        gateway=get_gateway(),
        options_repository=get_options_repository(),
        ledger_repository=get_ledger_repository(),
        cache=get_playlist_cache(),
        host_site=get_host_site(),
        network_id=get_settings().network_id,
    )


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def reset_cached_dependencies() -> None:
    get_account_service.cache_clear()
    get_playlist_service.cache_clear()
    get_gateway.cache_clear()
    get_signer.cache_clear()
    get_playlist_cache.cache_clear()
    get_host_site.cache_clear()
    get_ledger_repository.cache_clear()
    get_options_repository.cache_clear()
    get_database.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
