from __future__ import annotations

import logging
from typing import Final

from ..table.coordinator import DEFAULT_PERIOD_S, RedrawCoordinator, SessionFlags
from ..table.edit import EditController
from ..table.projector import TableProjector
from ..table.registry import Registry
from ..transport.base import ProtocolClient
from .keys import KeySource
from .renderer import TableRenderer

logger = logging.getLogger(__name__)

_MOVES: Final[dict[str, tuple[int, int]]] = {
    "UP": (-1, 0),
    "k": (-1, 0),
    "DOWN": (1, 0),
    "j": (1, 0),
    "LEFT": (0, -1),
    "h": (0, -1),
    "RIGHT": (0, 1),
    "l": (0, 1),
}
_START_ATTEMPTS: Final[int] = 2


class TableApp:
    """Wires the registry, render loop and edit controller to one client.

    The protocol client feeds the registry from its own thread, the
    coordinator repaints from the render thread, and `run()` drives the
    keyboard on the calling thread.
    """

    def __init__(
        self,
        client: ProtocolClient,
        renderer: TableRenderer,
        keys: KeySource,
        *,
        period_s: float = DEFAULT_PERIOD_S,
    ) -> None:
        self._client = client
        self._keys = keys
        self._period_s = period_s
        self.flags = SessionFlags()
        self.registry = Registry(client)
        self.projector = TableProjector(self.registry, renderer)
        self.coordinator = RedrawCoordinator(
            self.registry,
            self.projector,
            client,
            flags=self.flags,
            period_s=period_s,
        )
        self.editor = EditController(
            self.registry,
            self.projector,
            renderer,
            client,
            keys,
            flags=self.flags,
            poll_s=period_s,
        )

    def connect(self) -> None:
        """Start delivering protocol events into the registry.

        Raises:
            TransportError: If the client cannot reach the server.
        """

        self._client.start(self.registry)

    def start_rendering(self) -> bool:
        """Start the render thread, retrying once. Returns False if it can't start."""

        for attempt in range(1, _START_ATTEMPTS + 1):
            if self.coordinator.start():
                return True
            logger.warning("Render thread start attempt %d/%d failed", attempt, _START_ATTEMPTS)
        return False

    def shut_down(self) -> None:
        if self._client.quit_requested:
            self.flags.note_disconnect()
        self.coordinator.stop()
        self._client.close()

    def handle_key(self, key: str) -> bool:
        """Process one key. Returns False when the operator asked to quit."""

        if key in {"q", "Q"}:
            return False
        move = _MOVES.get(key)
        if move is not None:
            with self.registry.lock:
                self.projector.move_cursor(*move)
            return True
        if key in {"PGUP", "PGDN"}:
            with self.registry.lock:
                self.projector.page(-1 if key == "PGUP" else 1)
            return True
        if key in {"HOME", "END"}:
            with self.registry.lock:
                span = len(self.projector.rows)
                self.projector.move_cursor(-span if key == "HOME" else span, 0)
            return True
        if key == "e":
            self.editor.edit_selected()
        elif key == "t":
            self.editor.toggle_selected()
        return True

    def run(self) -> None:
        try:
            while not self.flags.shutdown.is_set() and not self._client.quit_requested:
                key = self._keys.read_key(self._period_s)
                if key is None:
                    continue
                if not self.handle_key(key):
                    break
        finally:
            self.shut_down()
