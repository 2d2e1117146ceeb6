from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Literal

from ..transport.base import ProtocolClient
from .projector import TableProjector
from .registry import Registry

logger = logging.getLogger(__name__)

CycleResult = Literal["full", "partial", "idle"]

DEFAULT_PERIOD_S = 0.25


@dataclass(slots=True)
class SessionFlags:
    """Shutdown/disconnect state shared by the render and interaction paths."""

    shutdown: threading.Event = field(default_factory=threading.Event)
    connection_lost: bool = False

    def note_disconnect(self) -> None:
        # A quit without a requested shutdown means the peer went away.
        if not self.shutdown.is_set():
            self.connection_lost = True


class RedrawCoordinator:
    """Render loop arbitrating between event-side counters and the screen.

    The event path bumps `registry.pending_full` / `registry.pending_partial`
    under the registry lock. Each cycle captures the counter it services,
    renders, then subtracts exactly the captured amount so increments that
    land mid-render survive to the next cycle.
    """

    def __init__(
        self,
        registry: Registry,
        projector: TableProjector,
        client: ProtocolClient,
        *,
        flags: SessionFlags | None = None,
        period_s: float = DEFAULT_PERIOD_S,
    ) -> None:
        if period_s <= 0:
            raise ValueError("period_s must be > 0")
        self._registry = registry
        self._projector = projector
        self._client = client
        self.flags = flags or SessionFlags()
        self._period_s = period_s
        self._thread: threading.Thread | None = None
        self.stopped = False
        self.failed = False

    def _full_pass(self) -> None:
        with self._registry.lock:
            start = self._registry.pending_full
            self._projector.rebuild()
        with self._registry.lock:
            self._registry.pending_full = max(0, self._registry.pending_full - start)
        logger.debug("Full rebuild serviced %d pending changes", start)

    def _partial_pass(self) -> bool:
        """Patch value cells. Returns False if a full rebuild became pending first."""

        with self._registry.lock:
            if self._registry.pending_full > 0:
                return False
            start = self._registry.pending_partial
            repainted = self._projector.patch()
        with self._registry.lock:
            self._registry.pending_partial = max(0, self._registry.pending_partial - start)
        logger.debug("Partial patch serviced %d updates, repainted %d cells", start, repainted)
        return True

    def run_once(self) -> CycleResult:
        """Run one render cycle. A pending full rebuild suppresses the partial patch."""

        with self._registry.lock:
            pending_full = self._registry.pending_full
            pending_partial = self._registry.pending_partial
        if pending_full > 0:
            self._full_pass()
            return "full"
        if pending_partial > 0:
            if self._partial_pass():
                return "partial"
            self._full_pass()
            return "full"
        return "idle"

    def _should_stop(self) -> bool:
        return self.flags.shutdown.is_set() or self._client.quit_requested

    def run(self) -> None:
        """Loop until shutdown or disconnect, then paint the final empty table."""

        try:
            while not self._should_stop():
                self.run_once()
                self.flags.shutdown.wait(self._period_s)
        except Exception:
            logger.exception("Render loop failed")
            self.failed = True
            self.flags.shutdown.set()
        finally:
            self._finish()

    def _finish(self) -> None:
        if self._client.quit_requested:
            self.flags.note_disconnect()
            if self.flags.connection_lost:
                logger.warning("Connection to INDI server lost")
        with self._registry.lock:
            self._projector.clear()
        self.stopped = True

    def start(self) -> bool:
        """Start the render thread. Returns False (and logs) if it cannot be started."""

        if self._thread is not None and self._thread.is_alive():
            return True
        self.stopped = False
        thread = threading.Thread(target=self.run, name="table-render", daemon=True)
        try:
            thread.start()
        except RuntimeError as exc:
            logger.error("Could not start render thread: %s", exc)
            return False
        self._thread = thread
        return True

    def stop(self, timeout_s: float | None = 5.0) -> None:
        self.flags.shutdown.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout_s)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
