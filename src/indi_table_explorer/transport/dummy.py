from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from ..protocol.indi import IndiProperty, make_property
from .base import ProtocolClient, ProtocolEventSink, TransportError


class DummyClient(ProtocolClient):
    """Fixture-backed client used for --dry-run and tests.

    The fixture is a JSON object with a `properties` list; each entry carries
    `device`, `name`, `kind` and an `elements` object mapping element names to
    value text. `start()` replays every entry as a define event. Outbound
    requests are recorded in `requests` as `(operation, property)` tuples.
    """

    def __init__(
        self,
        fixture_path: Path | None = None,
        *,
        properties: list[IndiProperty] | None = None,
    ) -> None:
        self._properties: list[IndiProperty] = list(properties or [])
        if fixture_path is not None:
            self._properties.extend(load_fixture_properties(fixture_path.read_text(encoding="utf-8")))
        self._quit = threading.Event()
        self._sink: ProtocolEventSink | None = None
        self.requests: list[tuple[str, IndiProperty]] = []

    @property
    def quit_requested(self) -> bool:
        return self._quit.is_set()

    @property
    def sink(self) -> ProtocolEventSink | None:
        return self._sink

    def start(self, sink: ProtocolEventSink) -> None:
        self._sink = sink
        self._quit.clear()
        for prop in self._properties:
            sink.on_define(prop)

    def close(self) -> None:
        self._quit.set()

    def disconnect(self) -> None:
        """Simulate the peer dropping the connection."""

        self._quit.set()

    def _record(self, operation: str, prop: IndiProperty) -> None:
        if self._quit.is_set():
            raise TransportError("Dummy client is closed")
        self.requests.append((operation, prop))

    def subscribe(self, prop: IndiProperty) -> None:
        self._record("subscribe", prop)

    def submit_value(self, prop: IndiProperty) -> None:
        self._record("submit_value", prop)

    def submit_switch(self, prop: IndiProperty) -> None:
        self._record("submit_switch", prop)


def load_fixture_properties(text: str) -> list[IndiProperty]:
    data: Any = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Fixture root must be a JSON object")
    entries = data.get("properties")
    if not isinstance(entries, list):
        raise ValueError('Fixture must contain top-level key "properties" as a list')

    props: list[IndiProperty] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"Fixture property #{idx} must be a JSON object")
        device = entry.get("device")
        name = entry.get("name")
        kind = entry.get("kind")
        elements = entry.get("elements")
        if not isinstance(device, str) or not isinstance(name, str):
            raise ValueError(f"Fixture property #{idx} needs string device and name")
        if not isinstance(kind, str) or not kind:
            raise ValueError(f"Fixture property {device}.{name} needs a kind")
        if not isinstance(elements, dict):
            raise ValueError(f'Fixture property {device}.{name} field "elements" must be an object')
        props.append(
            make_property(
                device,
                name,
                kind,
                {str(k): str(v) for k, v in elements.items()},
                label=entry.get("label") if isinstance(entry.get("label"), str) else None,
                group=entry.get("group") if isinstance(entry.get("group"), str) else None,
            )
        )
    return props
