from __future__ import annotations

import contextlib
import logging
import socket
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from ..protocol.codec import (
    IndiCodecError,
    IndiStreamParser,
    build_get_properties,
    build_new_vector,
    parse_message,
)
from ..protocol.indi import IndiProperty
from .base import ProtocolClient, ProtocolEventSink, TransportError, TransportTimeout, dispatch_event

logger = logging.getLogger(__name__)

_RECV_CHUNK: Final[int] = 65536
_TRACE_MAX_CHARS: Final[int] = 240


@dataclass(frozen=True)
class IndiTcpConfig:
    host: str = "127.0.0.1"
    port: int = 7624
    timeout_s: float = 5.0
    poll_s: float = 0.25
    protocol_version: str = "1.7"
    trace_path: Path | None = None


def _utc_ts() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _short_text(blob: bytes) -> str:
    text = blob.decode("utf-8", errors="replace").strip()
    if len(text) > _TRACE_MAX_CHARS:
        return text[:_TRACE_MAX_CHARS] + "..."
    return text


class IndiTcpClient(ProtocolClient):
    """INDI client speaking the XML protocol over TCP.

    `start()` connects, requests all properties and spawns a reader thread that
    parses the stream and forwards each message to the sink. The reader thread
    is the only caller of the sink.
    """

    def __init__(self, config: IndiTcpConfig) -> None:
        self._validate_config(config)
        self._config = config
        self._sock: socket.socket | None = None
        self._send_lock = threading.Lock()
        self._quit = threading.Event()
        self._reader: threading.Thread | None = None

    @staticmethod
    def _validate_config(config: IndiTcpConfig) -> None:
        if not (0 < config.port <= 0xFFFF):
            raise ValueError(f"port must be in range 1..65535, got {config.port}")
        if config.timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        if config.poll_s <= 0:
            raise ValueError("poll_s must be > 0")

    @property
    def endpoint(self) -> str:
        return f"{self._config.host}:{self._config.port}"

    @property
    def quit_requested(self) -> bool:
        return self._quit.is_set()

    def _trace(self, message: str) -> None:
        trace_path = self._config.trace_path
        if trace_path is None:
            return
        # Tracing must never break the session.
        with contextlib.suppress(OSError):
            trace_path.parent.mkdir(parents=True, exist_ok=True)
            with trace_path.open("a", encoding="utf-8") as f:
                f.write(f"{_utc_ts()} {message}\n")

    def start(self, sink: ProtocolEventSink) -> None:
        if self._sock is not None:
            raise TransportError("Client already started")
        addr = (self._config.host, self._config.port)
        try:
            sock = socket.create_connection(addr, timeout=self._config.timeout_s)
        except TimeoutError as exc:
            raise TransportTimeout(f"Timed out connecting to INDI server at {self.endpoint}") from exc
        except OSError as exc:
            raise TransportError(
                f"Failed connecting to INDI server at {self.endpoint}: {exc}"
            ) from exc
        sock.settimeout(self._config.poll_s)
        self._sock = sock
        self._quit.clear()
        logger.info("Connected to INDI server at %s", self.endpoint)

        self._send(build_get_properties(self._config.protocol_version))
        self._reader = threading.Thread(
            target=self._reader_loop,
            args=(sock, sink),
            name="indi-reader",
            daemon=True,
        )
        self._reader.start()

    def close(self) -> None:
        self._quit.set()
        sock = self._sock
        self._sock = None
        if sock is not None:
            with contextlib.suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            with contextlib.suppress(OSError):
                sock.close()
        reader = self._reader
        self._reader = None
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=self._config.timeout_s)

    @contextlib.contextmanager
    def session(self, sink: ProtocolEventSink) -> Iterator[IndiTcpClient]:
        """Connect for the duration of this context."""

        self.start(sink)
        try:
            yield self
        finally:
            self.close()

    def _reader_loop(self, sock: socket.socket, sink: ProtocolEventSink) -> None:
        parser = IndiStreamParser()
        while not self._quit.is_set():
            try:
                data = sock.recv(_RECV_CHUNK)
            except TimeoutError:
                continue
            except OSError as exc:
                if not self._quit.is_set():
                    logger.warning("INDI connection error: %s", exc)
                break
            if not data:
                logger.info("INDI server at %s closed the connection", self.endpoint)
                break
            try:
                messages = parser.feed(data)
            except IndiCodecError as exc:
                logger.error("%s", exc)
                break
            for elem in messages:
                event = parse_message(elem)
                if event is None:
                    logger.debug("Ignoring INDI message <%s>", elem.tag)
                    continue
                self._trace(f"RECV {event.kind} {event.device}.{event.name or ''}")
                dispatch_event(sink, event)
        self._quit.set()

    def _send(self, payload: bytes) -> None:
        sock = self._sock
        if sock is None or self._quit.is_set():
            raise TransportError(f"Not connected to INDI server at {self.endpoint}")
        self._trace(f"SEND {_short_text(payload)}")
        try:
            with self._send_lock:
                sock.sendall(payload)
        except OSError as exc:
            self._quit.set()
            raise TransportError(
                f"Failed talking to INDI server at {self.endpoint}: {exc}"
            ) from exc

    def subscribe(self, prop: IndiProperty) -> None:
        self._send(
            build_get_properties(
                self._config.protocol_version,
                device=prop.device,
                name=prop.name,
            )
        )

    def submit_value(self, prop: IndiProperty) -> None:
        self._send(build_new_vector(prop))

    def submit_switch(self, prop: IndiProperty) -> None:
        if prop.kind != "Switch":
            raise ValueError(f"submit_switch expects a Switch property, got {prop.kind}")
        self._send(build_new_vector(prop))
