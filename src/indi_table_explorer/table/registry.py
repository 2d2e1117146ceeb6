from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from dataclasses import dataclass

from ..protocol.indi import IndiProperty, element_key, property_key
from ..transport.base import ProtocolClient, TransportError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ElementSpec:
    prop_key: str
    device: str
    property_name: str
    name: str
    table_row: int | None = None

    @property
    def key(self) -> str:
        return element_key(self.prop_key, self.name)


class PropertySnapshot:
    """Latest known value of each remote property, keyed by `device.name`."""

    def __init__(self) -> None:
        self._props: dict[str, IndiProperty] = {}

    def __len__(self) -> int:
        return len(self._props)

    def __contains__(self, key: object) -> bool:
        return key in self._props

    def get(self, key: str) -> IndiProperty | None:
        return self._props.get(key)

    def keys(self) -> list[str]:
        return sorted(self._props)

    def values(self) -> list[IndiProperty]:
        return [self._props[key] for key in sorted(self._props)]

    def define_or_update(self, prop: IndiProperty) -> bool:
        """Store `prop`, replacing any previous value. Returns True on first insert."""

        key = prop.unique_key
        first = key not in self._props
        self._props[key] = prop
        return first

    def delete(self, device: str, name: str | None = None) -> list[str]:
        if name is not None:
            key = property_key(device, name)
            if self._props.pop(key, None) is None:
                return []
            return [key]
        removed = [key for key, prop in self._props.items() if prop.device == device]
        for key in removed:
            del self._props[key]
        return removed


class ElementIndex:
    """Display metadata and assigned table row for every known element."""

    def __init__(self) -> None:
        self._specs: dict[str, ElementSpec] = {}

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, key: object) -> bool:
        return key in self._specs

    def __iter__(self) -> Iterator[ElementSpec]:
        return iter(self._specs.values())

    def get(self, key: str) -> ElementSpec | None:
        return self._specs.get(key)

    def sorted_specs(self) -> list[ElementSpec]:
        return [self._specs[key] for key in sorted(self._specs)]

    def ensure(self, prop: IndiProperty) -> tuple[int, int]:
        """Add specs for unseen elements of `prop`.

        Returns `(inserted, already_present)` counts.
        """

        inserted = 0
        present = 0
        prop_key = prop.unique_key
        for el_name in prop.elements:
            key = element_key(prop_key, el_name)
            if key in self._specs:
                present += 1
                continue
            self._specs[key] = ElementSpec(
                prop_key=prop_key,
                device=prop.device,
                property_name=prop.name,
                name=el_name,
            )
            inserted += 1
        return inserted, present

    def remove_property(self, prop_key: str) -> int:
        doomed = [key for key, spec in self._specs.items() if spec.prop_key == prop_key]
        for key in doomed:
            del self._specs[key]
        return len(doomed)

    def remove_device(self, device: str) -> int:
        doomed = [key for key, spec in self._specs.items() if spec.device == device]
        for key in doomed:
            del self._specs[key]
        return len(doomed)

    def spec_at_row(self, row: int) -> ElementSpec | None:
        for spec in self._specs.values():
            if spec.table_row == row:
                return spec
        return None

    def reset_rows(self) -> None:
        for spec in self._specs.values():
            spec.table_row = None


class Registry:
    """Shared property/element state plus the pending redraw counters.

    Implements the protocol event sink. All reads and writes of the stores and
    counters happen under `lock`; the event path is the only writer.
    """

    def __init__(self, client: ProtocolClient | None = None) -> None:
        self.lock = threading.Lock()
        self.properties = PropertySnapshot()
        self.elements = ElementIndex()
        self.pending_full = 0
        self.pending_partial = 0
        self._client = client

    def attach_client(self, client: ProtocolClient) -> None:
        self._client = client

    def on_define(self, prop: IndiProperty) -> None:
        if not prop.has_valid_device or not prop.has_valid_name:
            logger.debug("Dropping property without device/name: %r", prop.unique_key)
            return
        with self.lock:
            first = self.properties.define_or_update(prop)
            inserted, present = self.elements.ensure(prop)
            self.pending_full += inserted
            self.pending_partial += present
        if first:
            self._subscribe(prop)

    def on_update(self, prop: IndiProperty) -> None:
        self.on_define(prop)

    def on_delete(self, device: str, name: str | None) -> None:
        if not device or not device.strip():
            logger.debug("Dropping delete without device")
            return
        if name is not None and not name.strip():
            logger.debug("Dropping delete with blank property name for %s", device)
            return
        with self.lock:
            if name is not None:
                removed_props = self.properties.delete(device, name)
                removed_elements = self.elements.remove_property(property_key(device, name))
            else:
                removed_props = self.properties.delete(device)
                removed_elements = self.elements.remove_device(device)
            if removed_props or removed_elements:
                self.pending_full += 1
        logger.debug(
            "Deleted %s: %d properties, %d elements",
            property_key(device, name) if name is not None else device,
            len(removed_props),
            removed_elements,
        )

    def on_message(self, device: str, message: str | None) -> None:
        logger.debug("Message from %s: %s", device or "<server>", message)

    def _subscribe(self, prop: IndiProperty) -> None:
        client = self._client
        if client is None:
            return
        try:
            client.subscribe(prop)
        except TransportError as exc:
            logger.warning("Subscribe for %s failed: %s", prop.unique_key, exc)

    def element_at_row(self, row: int) -> tuple[ElementSpec, IndiProperty] | None:
        """Return the element occupying a table row and its property. Call under `lock`."""

        spec = self.elements.spec_at_row(row)
        if spec is None:
            return None
        prop = self.properties.get(spec.prop_key)
        if prop is None:
            return None
        return spec, prop
