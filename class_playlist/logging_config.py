from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import TextIO

import structlog
from structlog.typing import EventDict, Processor

from class_playlist.config import AppSettings

ROOT_LOGGER_NAME = "class_playlist"
TELEMETRY_LOGGER_NAME = f"{ROOT_LOGGER_NAME}.telemetry"
LOG_FILE_NAME = "class-playlist.log"
TELEMETRY_LOG_FILE_NAME = "class-playlist-telemetry.log"

# OAuth values can end up in logged paths, headers or token response bodies.
_CREDENTIAL_PATTERN = re.compile(
    r"(?P<key>oauth_(?:token|token_secret|signature|verifier|nonce))"
    r"(?P<sep>=\"?|\":\s*\")"
    r"[^&\",\s]+"
)


def configure_application_logging(settings: AppSettings) -> Path:
    """Console at `settings.log_level`, JSON file at DEBUG, telemetry in its own file."""
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME
    telemetry_log_file = log_dir / TELEMETRY_LOG_FILE_NAME

    logger = _prepare_root_logger()
    logger.addHandler(_console_handler(sys.stdout, _resolve_log_level(settings.log_level)))
    logger.addHandler(_json_file_handler(log_file, logging.DEBUG))

    telemetry_logger = logging.getLogger(TELEMETRY_LOGGER_NAME)
    telemetry_logger.setLevel(logging.INFO)
    telemetry_logger.propagate = False
    _reset_handlers(telemetry_logger)
    telemetry_logger.addHandler(_json_file_handler(telemetry_log_file, logging.INFO))

    logger.info(
        "logging configured console_level=%s path=%s telemetry_path=%s network_id=%s",
        settings.log_level.upper(),
        log_file,
        telemetry_log_file,
        settings.network_id,
    )
    return log_file


def configure_console_logging(level: str = "INFO") -> None:
    """Console-only logging for operator scripts; nothing is written to disk."""
    logger = _prepare_root_logger()
    logger.addHandler(_console_handler(sys.stderr, _resolve_log_level(level)))


def _prepare_root_logger() -> logging.Logger:
    _configure_structlog()
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    _reset_handlers(logger)
    return logger


def _resolve_log_level(raw_level: str) -> int:
    resolved = logging.getLevelName(raw_level.strip().upper())
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _console_handler(stream: TextIO, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream=stream)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_pre_chain(),
            processors=[
                redact_credentials,
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=_stream_supports_color(stream)),
            ],
        )
    )
    return handler


def _json_file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_pre_chain(),
            processors=[
                _add_record_metadata,
                redact_credentials,
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(sort_keys=True),
            ],
        )
    )
    return handler


def _shared_pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def redact_credentials(
    _logger: logging.Logger | None,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event = event_dict.get("event")
    if isinstance(event, str) and "oauth_" in event:
        event_dict["event"] = _CREDENTIAL_PATTERN.sub(r"\g<key>\g<sep>[redacted]", event)
    return event_dict


def _add_record_metadata(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["pathname"] = record.pathname
        event_dict["lineno"] = record.lineno
        event_dict["func_name"] = record.funcName
    return event_dict


def _stream_supports_color(stream: object) -> bool:
    isatty = getattr(stream, "isatty", None)
    if not callable(isatty):
        return False
    try:
        return bool(isatty())
    except (OSError, ValueError):
        return False
