from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".class-playlist"
SYNC_STRATEGIES: frozenset[str] = frozenset({"ledger", "remote"})
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("db_path", Path("state.db")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = ("telemetry_enabled",)
_BASE_URL_FIELDS: tuple[str, ...] = (
    "site_base_url",
    "gdata_base_url",
    "google_accounts_base_url",
)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{CLASS_PLAYLIST_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    This class is the single source of truth for config options:
    - what each option controls,
    - where it comes from (`CLASS_PLAYLIST_*`),
    - and what its default is.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLASS_PLAYLIST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths and network identity.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for the ledger database and logs.",
    )
    db_path: Path = Field(
        default=_default_in_data_dir(Path("state.db")),
        description=f"SQLite database path. {_data_dir_default_note(Path('state.db'))}",
    )
    network_id: str = Field(
        default="default",
        description="Identifier of the blog network; scopes persisted options and the cache.",
    )
    site_base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL of the network's main site (playlist page, OAuth callback).",
    )

    # Synchronization behavior.
    sync_strategy: Literal["ledger", "remote"] = Field(
        default="ledger",
        description=(
            "`ledger` serves the playlist from the local ledger only; `remote` also mirrors "
            "the ledger into the linked YouTube playlist after each content change."
        ),
    )
    playlist_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="TTL for the cached playlist view.",
    )
    gateway_timeout_seconds: float = Field(
        default=7.0,
        description="Socket timeout for playlist and metadata API calls.",
    )
    oauth_timeout_seconds: float = Field(
        default=20.0,
        description="Socket timeout for OAuth token exchange calls.",
    )

    # OAuth 1.0a and GData endpoints.
    oauth_consumer_key: str = Field(
        default="anonymous",
        description="OAuth consumer key identifying this installation.",
    )
    oauth_consumer_secret: str = Field(
        default="anonymous",
        description="OAuth consumer secret used to sign requests.",
    )
    gdata_api_key: str | None = Field(
        default=None,
        description="Developer key sent as `X-GData-Key` on playlist API requests.",
    )
    gdata_base_url: str = Field(
        default="https://gdata.youtube.com",
        description="Base URL of the playlist-hosting API.",
    )
    google_accounts_base_url: str = Field(
        default="https://www.google.com",
        description="Base URL of the OAuth identity provider.",
    )

    # Logging.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @field_validator("sync_strategy", mode="before")
    @classmethod
    def _normalize_sync_strategy(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("CLASS_PLAYLIST_SYNC_STRATEGY must be a string.")

        normalized = value.strip().lower()
        if normalized in SYNC_STRATEGIES:
            return normalized

        raise ValueError("CLASS_PLAYLIST_SYNC_STRATEGY must be set to: ledger, remote.")

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("CLASS_PLAYLIST_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("CLASS_PLAYLIST_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("network_id", "oauth_consumer_key", "oauth_consumer_secret", mode="before")
    @classmethod
    def _normalize_required_text(cls, value: Any, info: ValidationInfo) -> str:
        env_name = f"CLASS_PLAYLIST_{str(info.field_name).upper()}"
        if not isinstance(value, str):
            raise ValueError(f"{env_name} must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{env_name} must not be empty.")
        return normalized

    @field_validator(*_BASE_URL_FIELDS, mode="before")
    @classmethod
    def _normalize_base_urls(cls, value: Any, info: ValidationInfo) -> str:
        env_name = f"CLASS_PLAYLIST_{str(info.field_name).upper()}"
        if not isinstance(value, str):
            raise ValueError(f"{env_name} must be a string.")
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError(f"{env_name} must not be empty.")
        if not normalized.startswith(("http://", "https://")):
            raise ValueError(f"{env_name} must start with http:// or https://.")
        return normalized

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator("gdata_api_key", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings() -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    return _resolve_path_fields(settings)
