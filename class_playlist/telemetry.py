from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Literal, Protocol

import structlog

TelemetryValue = bool | int | float | str | None

# Matched as substrings of the attribute name.
_SENSITIVE_ATTRIBUTE_TOKENS: frozenset[str] = frozenset(
    {
        "authorization",
        "body",
        "content",
        "secret",
        "signature",
        "token",
        "verifier",
    }
)
_MAX_STRING_LENGTH = 160


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        _ = (event_name, attributes)


class StructuredLogTelemetrySink:
    """Writes events to the `class_playlist.telemetry` logger, which has its own file."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger("class_playlist.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass
class TelemetrySpan:
    """Attributes collected while a timed operation runs; emitted once it ends."""

    attributes: dict[str, Any] = field(default_factory=dict)

    def set(self, **attributes: Any) -> None:
        self.attributes.update(attributes)


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        self.sink.emit(event_name=event_name, attributes=_sanitize_attributes(attributes))

    @contextmanager
    def span(self, event_prefix: str, **attributes: Any) -> Iterator[TelemetrySpan]:
        """Emit `<prefix>.finish` or `<prefix>.error` with `duration_ms` around a block.

        Exceptions are re-raised after the error event is emitted.
        """
        span = TelemetrySpan(dict(attributes))
        started_at = perf_counter()
        try:
            yield span
        except Exception as exc:
            self.emit(
                f"{event_prefix}.error",
                **span.attributes,
                error_type=type(exc).__name__,
                duration_ms=_elapsed_ms(started_at),
            )
            raise
        self.emit(
            f"{event_prefix}.finish",
            **span.attributes,
            duration_ms=_elapsed_ms(started_at),
        )


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if not enabled or sink == "none":
        return TelemetryClient.disabled()
    if sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())

    logging.getLogger("class_playlist.telemetry").warning(
        "telemetry sink_unsupported sink=%s; telemetry disabled",
        sink,
    )
    return TelemetryClient.disabled()


def _elapsed_ms(started_at: float) -> int:
    return int((perf_counter() - started_at) * 1000)


def _sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    sanitized: dict[str, TelemetryValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if any(token in key for token in _SENSITIVE_ATTRIBUTE_TOKENS):
            sanitized[key] = "[redacted]"
        else:
            sanitized[key] = _sanitize_value(raw_value)
    return sanitized


def _sanitize_value(value: Any) -> TelemetryValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        compact = " ".join(value.split())
        if len(compact) <= _MAX_STRING_LENGTH:
            return compact
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    # Collections of ids are reported by size only.
    if isinstance(value, list | tuple | set | frozenset):
        return len(value)
    return type(value).__name__
