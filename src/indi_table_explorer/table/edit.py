from __future__ import annotations

import logging
from enum import Enum

from ..protocol.indi import IndiElement, IndiProperty
from ..transport.base import ProtocolClient, TransportError
from ..ui.keys import KeySource
from ..ui.renderer import TableRenderer
from .coordinator import SessionFlags
from .projector import TableProjector
from .registry import ElementSpec, Registry

logger = logging.getLogger(__name__)


class EditState(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    CONFIRMING = "confirming"
    COMMITTING = "committing"
    CANCELLED = "cancelled"


class EditController:
    """Keystroke-driven edit and toggle flows for the selected element.

    Key reads block on the operator and are always made without holding the
    registry lock; the lock is taken only for prompt updates and the submit.
    """

    def __init__(
        self,
        registry: Registry,
        projector: TableProjector,
        renderer: TableRenderer,
        client: ProtocolClient,
        keys: KeySource,
        *,
        flags: SessionFlags,
        poll_s: float = 0.25,
    ) -> None:
        self._registry = registry
        self._projector = projector
        self._renderer = renderer
        self._client = client
        self._keys = keys
        self._flags = flags
        self._poll_s = poll_s
        self.state = EditState.IDLE

    def _prompt(self, text: str) -> None:
        with self._registry.lock:
            self._renderer.set_prompt(text)

    def _begin(self, prompt: str) -> bool:
        # Caller holds the lock. Returns the cursor visibility to restore later.
        prior = self._renderer.cursor_visible
        self._renderer.set_cursor_visible(True)
        self._renderer.set_prompt(prompt)
        return prior

    def _finish(self, outcome: EditState, cursor_was_visible: bool) -> EditState:
        self.state = outcome
        with self._registry.lock:
            self._renderer.set_prompt("")
            self._renderer.set_cursor_visible(cursor_was_visible)
        self.state = EditState.IDLE
        return outcome

    def _read_key(self) -> str | None:
        """Block for one key. Returns None if the session ended while waiting."""

        while True:
            key = self._keys.read_key(self._poll_s)
            if key is not None:
                return key
            if self._client.quit_requested:
                self._flags.note_disconnect()
                return None
            if self._flags.shutdown.is_set():
                return None

    def edit_selected(self) -> EditState:
        with self._registry.lock:
            target = self._projector.selected_element()
            if target is None:
                return EditState.IDLE
            spec, prop = target
            prefix = f"set: {spec.prop_key}.{spec.name}="
            cursor_was_visible = self._begin(prefix)

        self.state = EditState.CAPTURING
        candidate = ""
        while True:
            key = self._read_key()
            if key is None or key == "ESC":
                return self._finish(EditState.CANCELLED, cursor_was_visible)
            if key == "ENTER":
                break
            if key == "BACKSPACE":
                if candidate:
                    candidate = candidate[:-1]
                    self._prompt(prefix + candidate)
                continue
            if len(key) == 1 and key.isprintable():
                candidate += key
                self._prompt(prefix + candidate)

        self.state = EditState.CONFIRMING
        self._prompt(f"send: {spec.prop_key}.{spec.name}={candidate}? y/n [n]")
        if self._read_key() != "y":
            return self._finish(EditState.CANCELLED, cursor_was_visible)

        self.state = EditState.COMMITTING
        request = IndiProperty(
            device=prop.device,
            name=prop.name,
            kind=prop.kind,
            elements={spec.name: IndiElement(name=spec.name, value=candidate)},
        )
        if not self._submit(spec, request, switch=False):
            return self._finish(EditState.CANCELLED, cursor_was_visible)
        return self._finish(EditState.COMMITTING, cursor_was_visible)

    def toggle_selected(self) -> EditState:
        with self._registry.lock:
            target = self._projector.selected_element()
            if target is None:
                return EditState.IDLE
            spec, prop = target
            element = prop.element(spec.name)
            if prop.kind != "Switch" or element is None:
                return EditState.IDLE
            new_state = element.switch_state.toggled()
            if new_state is None:
                logger.info("Not toggling %s: switch state unknown", spec.key)
                return EditState.IDLE
            cursor_was_visible = self._begin(
                f"toggle {spec.prop_key}.{spec.name} to {new_state.value}? y/n [n]"
            )

        self.state = EditState.CONFIRMING
        if self._read_key() != "y":
            return self._finish(EditState.CANCELLED, cursor_was_visible)

        self.state = EditState.COMMITTING
        request = prop.with_only(IndiElement(name=spec.name, value=new_state.value))
        if not self._submit(spec, request, switch=True):
            return self._finish(EditState.CANCELLED, cursor_was_visible)
        return self._finish(EditState.COMMITTING, cursor_was_visible)

    def _submit(self, spec: ElementSpec, request: IndiProperty, *, switch: bool) -> bool:
        with self._registry.lock:
            try:
                if switch:
                    self._client.submit_switch(request)
                else:
                    self._client.submit_value(request)
            except TransportError as exc:
                logger.warning("Submitting %s failed: %s", spec.key, exc)
                return False
        logger.info("Submitted %s=%s", spec.key, request.elements[spec.name].value)
        return True
