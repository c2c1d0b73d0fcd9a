from __future__ import annotations

import logging
import re
import socket
import ssl
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import BinaryIO

from class_playlist.services.errors import TransportError

LOGGER = logging.getLogger("class_playlist.transport")

CRLF = b"\r\n"
MAX_LINE_BYTES = 65_536
STATUS_LINE_PATTERN = re.compile(r"^HTTP/(?P<version>\d\.\d)\s+(?P<status>\d{3})(?:\s+(?P<reason>.*))?$")
DEFAULT_PORTS: dict[str, int] = {"https": 443, "http": 80}


def _default_headers() -> dict[str, str]:
    return {}


@dataclass(frozen=True)
class HttpRequest:
    method: str
    scheme: str
    host: str
    path: str
    headers: dict[str, str] = field(default_factory=_default_headers)
    body: bytes = b""
    timeout_seconds: float = 7.0


@dataclass(frozen=True)
class HttpResponse:
    status: int
    reason: str
    headers: dict[str, str]
    body: bytes

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class HttpTransport:
    """HTTP/1.1 over a raw socket, one request per connection."""

    def __init__(self, *, ssl_context: ssl.SSLContext | None = None) -> None:
        self._ssl_context = ssl_context

    def connect(self, host: str, scheme: str, timeout: float) -> socket.socket:
        normalized_scheme = scheme.strip().lower()
        port = DEFAULT_PORTS["https"] if normalized_scheme == "https" else DEFAULT_PORTS["http"]
        try:
            raw_socket = socket.create_connection((host, port), timeout=timeout)
        except OSError as exc:
            raise TransportError(f"Could not connect to {host}:{port}: {exc}") from exc

        if normalized_scheme != "https":
            return raw_socket

        context = self._ssl_context or ssl.create_default_context()
        try:
            return context.wrap_socket(raw_socket, server_hostname=host)
        except OSError as exc:
            raw_socket.close()
            raise TransportError(f"TLS handshake with {host}:{port} failed: {exc}") from exc

    def send_request(
        self,
        stream: socket.socket,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: bytes = b"",
    ) -> None:
        try:
            stream.sendall(encode_request(method, path, headers, body))
        except OSError as exc:
            raise TransportError(f"Failed to send {method} {path}: {exc}") from exc

    def read_response(self, stream: BinaryIO) -> HttpResponse:
        return read_response(stream)

    def execute(self, request: HttpRequest) -> HttpResponse:
        headers = {"Host": request.host, **request.headers}
        conn = self.connect(request.host, request.scheme, request.timeout_seconds)
        try:
            self.send_request(conn, request.method, request.path, headers, request.body)
            with conn.makefile("rb") as reader:
                response = self.read_response(reader)
        finally:
            conn.close()

        LOGGER.debug(
            "http response method=%s host=%s path=%s status=%s body_bytes=%s",
            request.method,
            request.host,
            _path_without_query(request.path),
            response.status,
            len(response.body),
        )
        return response


def encode_request(
    method: str,
    path: str,
    headers: Mapping[str, str],
    body: bytes = b"",
) -> bytes:
    normalized_method = method.strip().upper()
    lines = [f"{normalized_method} {path} HTTP/1.1"]
    for name, value in headers.items():
        # Framing headers are always derived here.
        if name.lower() in {"connection", "content-length"}:
            continue
        lines.append(f"{name}: {value}")
    if body or normalized_method in {"POST", "PUT"}:
        lines.append(f"Content-Length: {len(body)}")
    lines.append("Connection: close")
    head = "\r\n".join(lines).encode("utf-8") + CRLF + CRLF
    return head + body


def read_response(stream: BinaryIO) -> HttpResponse:
    try:
        status, reason = _read_status_line(stream)
        headers = _read_headers(stream)
        if _is_chunked(headers):
            body = _read_chunked_body(stream)
        else:
            body = stream.read()
    except TimeoutError as exc:
        raise TransportError(f"Timed out reading response: {exc}") from exc
    except OSError as exc:
        raise TransportError(f"Failed to read response: {exc}") from exc
    return HttpResponse(status=status, reason=reason, headers=headers, body=body or b"")


def _read_line(stream: BinaryIO) -> bytes:
    line = stream.readline(MAX_LINE_BYTES + 1)
    if len(line) > MAX_LINE_BYTES:
        raise TransportError("Response line exceeds maximum length")
    return line


def _read_status_line(stream: BinaryIO) -> tuple[int, str]:
    raw_line = _read_line(stream)
    if not raw_line:
        raise TransportError("Connection closed before a status line was received")
    line = raw_line.decode("iso-8859-1").rstrip("\r\n")
    match = STATUS_LINE_PATTERN.match(line)
    if match is None:
        raise TransportError(f"Malformed status line: {line[:80]!r}")
    return int(match.group("status")), (match.group("reason") or "").strip()


def _read_headers(stream: BinaryIO) -> dict[str, str]:
    headers: dict[str, str] = {}
    while True:
        raw_line = _read_line(stream)
        if not raw_line or raw_line in {CRLF, b"\n"}:
            return headers
        line = raw_line.decode("iso-8859-1").rstrip("\r\n")
        name, separator, value = line.partition(":")
        if not separator or not name.strip():
            raise TransportError(f"Malformed header line: {line[:80]!r}")
        key = name.strip().lower()
        if key in headers:
            headers[key] = f"{headers[key]}, {value.strip()}"
        else:
            headers[key] = value.strip()


def _is_chunked(headers: Mapping[str, str]) -> bool:
    encodings = headers.get("transfer-encoding", "")
    return any(token.strip().lower() == "chunked" for token in encodings.split(","))


def _read_chunked_body(stream: BinaryIO) -> bytes:
    payload = bytearray()
    while True:
        size_line = _read_line(stream)
        if not size_line:
            raise TransportError("Connection closed inside a chunked body")
        size_text = size_line.decode("iso-8859-1").split(";", 1)[0].strip()
        try:
            chunk_size = int(size_text, 16)
        except ValueError as exc:
            raise TransportError(f"Malformed chunk size line: {size_text[:40]!r}") from exc
        if chunk_size < 0:
            raise TransportError(f"Negative chunk size: {size_text!r}")

        if chunk_size == 0:
            _discard_trailers(stream)
            return bytes(payload)

        chunk = _read_exact(stream, chunk_size)
        payload.extend(chunk)
        terminator = _read_line(stream)
        if terminator not in {CRLF, b"\n"}:
            raise TransportError("Chunk payload is not followed by CRLF")


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    buffer = bytearray()
    while len(buffer) < size:
        block = stream.read(size - len(buffer))
        if not block:
            raise TransportError(
                f"Connection closed after {len(buffer)} of {size} chunk bytes"
            )
        buffer.extend(block)
    return bytes(buffer)


def _discard_trailers(stream: BinaryIO) -> None:
    while True:
        line = _read_line(stream)
        if not line or line in {CRLF, b"\n"}:
            return


def _path_without_query(path: str) -> str:
    return path.split("?", 1)[0]
