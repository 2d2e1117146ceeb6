from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol

from ..protocol.codec import IndiEvent
from ..protocol.indi import IndiProperty


class TransportError(Exception):
    """Base class for transport-layer errors."""


class TransportTimeout(TransportError):
    """Raised when connecting to the INDI server times out."""


class ProtocolEventSink(Protocol):
    """Receiver of inbound INDI events.

    Called from the client's reader thread. Implementations must be quick and
    must not block on user input.
    """

    def on_define(self, prop: IndiProperty) -> None:
        """A property was defined (or re-defined) by the peer."""

    def on_update(self, prop: IndiProperty) -> None:
        """A property's values changed."""

    def on_delete(self, device: str, name: str | None) -> None:
        """A property (or, with `name=None`, a whole device) was deleted."""

    def on_message(self, device: str, message: str | None) -> None:
        """A free-form device message arrived."""


class ProtocolClient(ABC):
    """Outbound side of the INDI connection."""

    @abstractmethod
    def start(self, sink: ProtocolEventSink) -> None:
        """Begin delivering inbound events to `sink`."""

    @abstractmethod
    def close(self) -> None:
        """Request quit and release the connection."""

    @abstractmethod
    def subscribe(self, prop: IndiProperty) -> None:
        """Register interest in a property (sent once per property key)."""

    @abstractmethod
    def submit_value(self, prop: IndiProperty) -> None:
        """Send a new element value (Number/Text)."""

    @abstractmethod
    def submit_switch(self, prop: IndiProperty) -> None:
        """Send a new switch state."""

    @property
    @abstractmethod
    def quit_requested(self) -> bool:
        """True once the connection has ended (peer EOF, error, or close())."""


def dispatch_event(sink: ProtocolEventSink, event: IndiEvent) -> None:
    if event.kind == "define" and event.prop is not None:
        sink.on_define(event.prop)
    elif event.kind == "update" and event.prop is not None:
        sink.on_update(event.prop)
    elif event.kind == "delete":
        sink.on_delete(event.device, event.name)
    elif event.kind == "message":
        sink.on_message(event.device, event.message)
