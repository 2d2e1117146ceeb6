from __future__ import annotations

import json
from importlib import resources
from pathlib import Path

import pytest

from indi_table_explorer.protocol.indi import make_property
from indi_table_explorer.table.registry import Registry
from indi_table_explorer.transport.base import TransportError
from indi_table_explorer.transport.dummy import DummyClient, load_fixture_properties


def _write_fixture(tmp_path: Path, payload: object) -> Path:
    path = tmp_path / "fixture.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_packaged_fixture_loads() -> None:
    text = (
        resources.files("indi_table_explorer.fixtures")
        .joinpath("demo_devices.json")
        .read_text(encoding="utf-8")
    )
    props = load_fixture_properties(text)
    keys = {prop.unique_key for prop in props}
    assert "camera1.exposure" in keys
    assert "filterwheel.moving" in keys
    shutter = next(prop for prop in props if prop.unique_key == "camera1.shutter")
    assert shutter.kind == "Switch"
    assert shutter.group == "Main"


def test_start_replays_fixture_into_registry(tmp_path: Path) -> None:
    path = _write_fixture(
        tmp_path,
        {
            "properties": [
                {"device": "scope", "name": "coords", "kind": "Number", "elements": {"ra": 1.5, "dec": -2}},
            ]
        },
    )
    client = DummyClient(path)
    registry = Registry(client)
    client.start(registry)

    assert client.sink is registry
    coords = registry.properties.get("scope.coords")
    assert coords is not None
    assert coords.elements["ra"].value == "1.5"
    assert coords.elements["dec"].value == "-2"
    assert [(op, prop.unique_key) for op, prop in client.requests] == [("subscribe", "scope.coords")]


def test_inline_properties_and_fixture_combine(tmp_path: Path) -> None:
    path = _write_fixture(
        tmp_path,
        {"properties": [{"device": "b", "name": "p", "kind": "Text", "elements": {"x": "1"}}]},
    )
    client = DummyClient(path, properties=[make_property("a", "p", "Text", {"x": "0"})])
    registry = Registry()
    client.start(registry)
    assert registry.properties.keys() == ["a.p", "b.p"]


def test_close_and_disconnect_set_quit() -> None:
    client = DummyClient()
    assert not client.quit_requested
    client.disconnect()
    assert client.quit_requested
    with pytest.raises(TransportError):
        client.submit_value(make_property("a", "p", "Number", {"x": "1"}))

    client.start(Registry())
    assert not client.quit_requested
    client.close()
    assert client.quit_requested


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ([], "root must be a JSON object"),
        ({"props": []}, '"properties"'),
        ({"properties": ["x"]}, "#0 must be a JSON object"),
        ({"properties": [{"device": "a", "kind": "Text", "elements": {}}]}, "string device and name"),
        ({"properties": [{"device": "a", "name": "p", "elements": {}}]}, "needs a kind"),
        ({"properties": [{"device": "a", "name": "p", "kind": "Text", "elements": []}]}, '"elements"'),
    ],
)
def test_invalid_fixture_is_rejected(payload: object, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        load_fixture_properties(json.dumps(payload))


def test_fixture_must_be_json() -> None:
    with pytest.raises(ValueError):
        load_fixture_properties("{not json")
