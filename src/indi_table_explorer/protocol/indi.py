from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Final, Literal

PropertyKind = Literal["Switch", "Number", "Text", "Light", "BLOB"]

KNOWN_KINDS: Final[tuple[str, ...]] = ("Switch", "Number", "Text", "Light", "BLOB")


class SwitchState(Enum):
    ON = "On"
    OFF = "Off"
    UNKNOWN = "Unknown"

    @classmethod
    def from_text(cls, text: str) -> SwitchState:
        normalized = text.strip()
        if normalized == "On":
            return cls.ON
        if normalized == "Off":
            return cls.OFF
        return cls.UNKNOWN

    def toggled(self) -> SwitchState | None:
        """Return the opposite state, or None when the state is not On/Off."""

        if self is SwitchState.ON:
            return SwitchState.OFF
        if self is SwitchState.OFF:
            return SwitchState.ON
        return None


@dataclass(frozen=True, slots=True)
class IndiElement:
    name: str
    value: str = ""
    label: str | None = None
    format: str | None = None

    @property
    def switch_state(self) -> SwitchState:
        return SwitchState.from_text(self.value)


@dataclass(frozen=True, slots=True)
class IndiProperty:
    """A named, typed group of elements owned by one device.

    Instances are immutable: every define/set message from the peer produces a
    new object that replaces the stored one wholesale.
    """

    device: str
    name: str
    kind: str
    elements: Mapping[str, IndiElement] = field(default_factory=dict)
    label: str | None = None
    group: str | None = None
    state: str | None = None
    perm: str | None = None
    rule: str | None = None

    @property
    def unique_key(self) -> str:
        return property_key(self.device, self.name)

    @property
    def has_valid_device(self) -> bool:
        return bool(self.device.strip())

    @property
    def has_valid_name(self) -> bool:
        return bool(self.name.strip())

    def element(self, name: str) -> IndiElement | None:
        return self.elements.get(name)

    def with_only(self, element: IndiElement) -> IndiProperty:
        """Return a copy carrying just `element` (used for new-value requests)."""

        return replace(self, elements={element.name: element})


def property_key(device: str, name: str) -> str:
    return f"{device}.{name}"


def element_key(prop_key: str, element_name: str) -> str:
    return f"{prop_key}.{element_name}"


def make_property(
    device: str,
    name: str,
    kind: str,
    values: Mapping[str, str] | Iterable[tuple[str, str]],
    **extra: str | None,
) -> IndiProperty:
    """Build a property from plain `element -> value text` pairs."""

    pairs = values.items() if isinstance(values, Mapping) else values
    elements = {el_name: IndiElement(name=el_name, value=str(text)) for el_name, text in pairs}
    return IndiProperty(device=device, name=name, kind=kind, elements=elements, **extra)


def display_value(prop: IndiProperty, element_name: str) -> str:
    """Return the table text for one element, or "" if the element is absent."""

    element = prop.element(element_name)
    if element is None:
        return ""
    if prop.kind == "Switch":
        return element.switch_state.value
    return element.value
