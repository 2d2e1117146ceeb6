from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Final, Literal

from .indi import IndiElement, IndiProperty

EventKind = Literal["define", "update", "delete", "message"]

_STREAM_ROOT: Final[bytes] = b"<indistream>"
_VECTOR_SUFFIX: Final[str] = "Vector"


class IndiCodecError(Exception):
    """Raised when the inbound XML stream cannot be parsed."""


@dataclass(frozen=True, slots=True)
class IndiEvent:
    kind: EventKind
    device: str
    name: str | None = None
    prop: IndiProperty | None = None
    message: str | None = None


def _vector_kind(tag: str, prefix: str) -> str | None:
    if not tag.startswith(prefix) or not tag.endswith(_VECTOR_SUFFIX):
        return None
    kind = tag[len(prefix) : -len(_VECTOR_SUFFIX)]
    return kind or None


def _element_value(kind: str, child: ET.Element) -> str:
    # BLOB payloads are not displayed; keep the element but drop the data.
    if kind == "BLOB":
        return ""
    return (child.text or "").strip()


def _parse_vector(elem: ET.Element, kind: str) -> IndiProperty:
    elements: dict[str, IndiElement] = {}
    for child in elem:
        el_name = child.get("name")
        if not el_name:
            continue
        elements[el_name] = IndiElement(
            name=el_name,
            value=_element_value(kind, child),
            label=child.get("label"),
            format=child.get("format"),
        )
    return IndiProperty(
        device=elem.get("device", ""),
        name=elem.get("name", ""),
        kind=kind,
        elements=elements,
        label=elem.get("label"),
        group=elem.get("group"),
        state=elem.get("state"),
        perm=elem.get("perm"),
        rule=elem.get("rule"),
    )


def parse_message(elem: ET.Element) -> IndiEvent | None:
    """Translate one top-level INDI message into an event.

    Returns None for tags this client does not handle (e.g. `enableBLOB`).
    """

    tag = elem.tag
    kind = _vector_kind(tag, "def")
    if kind is not None:
        prop = _parse_vector(elem, kind)
        return IndiEvent(kind="define", device=prop.device, name=prop.name, prop=prop)
    kind = _vector_kind(tag, "set")
    if kind is not None:
        prop = _parse_vector(elem, kind)
        return IndiEvent(kind="update", device=prop.device, name=prop.name, prop=prop)
    if tag == "delProperty":
        return IndiEvent(kind="delete", device=elem.get("device", ""), name=elem.get("name"))
    if tag == "message":
        return IndiEvent(
            kind="message",
            device=elem.get("device", ""),
            message=elem.get("message"),
        )
    return None


class IndiStreamParser:
    """Incremental splitter for the INDI XML stream.

    The server sends a sequence of top-level elements with no enclosing
    document; a synthetic root is fed first so the pull parser accepts it.
    """

    def __init__(self) -> None:
        self._parser = ET.XMLPullParser(events=("start", "end"))
        self._depth = 0
        self._root: ET.Element | None = None
        self._parser.feed(_STREAM_ROOT)

    def feed(self, data: bytes) -> list[ET.Element]:
        try:
            self._parser.feed(data)
            events = list(self._parser.read_events())
        except ET.ParseError as exc:
            raise IndiCodecError(f"Malformed INDI XML: {exc}") from exc

        complete: list[ET.Element] = []
        for event, elem in events:
            if event == "start":
                self._depth += 1
                if self._depth == 1:
                    self._root = elem
                continue
            self._depth -= 1
            if self._depth == 1:
                complete.append(elem)
                if self._root is not None:
                    self._root.clear()
        return complete


def build_get_properties(
    version: str,
    *,
    device: str | None = None,
    name: str | None = None,
) -> bytes:
    elem = ET.Element("getProperties", {"version": version})
    if device:
        elem.set("device", device)
        if name:
            elem.set("name", name)
    return ET.tostring(elem, encoding="utf-8", xml_declaration=False) + b"\n"


def build_new_vector(prop: IndiProperty) -> bytes:
    """Serialize a client-to-server `new{Kind}Vector` request."""

    if not prop.has_valid_device or not prop.has_valid_name:
        raise ValueError(f"Property needs device and name, got {prop.unique_key!r}")
    vector = ET.Element(f"new{prop.kind}Vector", {"device": prop.device, "name": prop.name})
    for element in prop.elements.values():
        child = ET.SubElement(vector, f"one{prop.kind}", {"name": element.name})
        child.text = element.value
    return ET.tostring(vector, encoding="utf-8", xml_declaration=False) + b"\n"
