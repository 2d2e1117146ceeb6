from __future__ import annotations

import random

import pytest

from indi_table_explorer.protocol.indi import IndiProperty, element_key, make_property
from indi_table_explorer.table.registry import Registry
from indi_table_explorer.transport.base import TransportError
from indi_table_explorer.transport.dummy import DummyClient


def _exposure(value: str = "1.0") -> IndiProperty:
    return make_property("camera1", "exposure", "Number", {"value": value})


def _subscriptions(client: DummyClient) -> list[str]:
    return [prop.unique_key for op, prop in client.requests if op == "subscribe"]


def test_first_define_counts_full_and_subscribes_once(
    registry: Registry, client: DummyClient
) -> None:
    registry.on_define(_exposure())
    assert registry.pending_full == 1
    assert registry.pending_partial == 0
    assert "camera1.exposure" in registry.properties
    assert element_key("camera1.exposure", "value") in registry.elements

    registry.on_update(_exposure("2.0"))
    registry.on_define(_exposure("3.0"))
    assert registry.pending_full == 1
    assert registry.pending_partial == 2
    assert registry.properties.get("camera1.exposure") == _exposure("3.0")
    assert _subscriptions(client) == ["camera1.exposure"]


def test_new_elements_on_known_property_are_inserted(registry: Registry) -> None:
    registry.on_define(make_property("camera1", "temp_ccd", "Number", {"current": "-1"}))
    registry.on_define(
        make_property("camera1", "temp_ccd", "Number", {"current": "-2", "target": "-15"})
    )
    assert registry.pending_full == 2
    assert registry.pending_partial == 1
    assert len(registry.elements) == 2


@pytest.mark.parametrize(
    "prop",
    [
        IndiProperty(device="", name="exposure", kind="Number"),
        IndiProperty(device="camera1", name="  ", kind="Number"),
    ],
)
def test_malformed_property_is_dropped(
    registry: Registry, client: DummyClient, prop: IndiProperty
) -> None:
    registry.on_define(prop)
    assert len(registry.properties) == 0
    assert len(registry.elements) == 0
    assert registry.pending_full == 0
    assert client.requests == []


def test_delete_property_removes_elements(registry: Registry) -> None:
    registry.on_define(_exposure())
    registry.on_define(make_property("camera1", "temp_ccd", "Number", {"current": "-1"}))
    registry.pending_full = 0

    registry.on_delete("camera1", "exposure")
    assert registry.pending_full == 1
    assert "camera1.exposure" not in registry.properties
    assert [spec.key for spec in registry.elements] == ["camera1.temp_ccd.current"]


def test_delete_unknown_property_is_quiet(registry: Registry) -> None:
    registry.on_delete("camera1", "nope")
    registry.on_delete("", None)
    assert registry.pending_full == 0


def test_device_delete_cascades(registry: Registry) -> None:
    registry.on_define(_exposure())
    registry.on_define(make_property("camera1", "shutter", "Switch", {"open": "Off"}))
    registry.on_define(make_property("filterwheel", "filter", "Text", {"current": "Ha"}))
    registry.pending_full = 0

    registry.on_delete("camera1", None)
    assert registry.pending_full == 1
    assert registry.properties.keys() == ["filterwheel.filter"]
    assert {spec.device for spec in registry.elements} == {"filterwheel"}


def test_subscribe_failure_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    client = DummyClient()
    client.close()
    registry = Registry(client)
    with caplog.at_level("WARNING"):
        registry.on_define(_exposure())
    assert "camera1.exposure" in registry.properties
    assert "Subscribe for camera1.exposure failed" in caplog.text


def test_subscribe_runs_outside_the_lock() -> None:
    class _LockCheckingClient(DummyClient):
        def __init__(self) -> None:
            super().__init__()
            self.lock_held: list[bool] = []
            self.registry: Registry | None = None

        def subscribe(self, prop: IndiProperty) -> None:
            assert self.registry is not None
            self.lock_held.append(self.registry.lock.locked())
            super().subscribe(prop)

    client = _LockCheckingClient()
    registry = Registry(client)
    client.registry = registry
    registry.on_define(_exposure())
    assert client.lock_held == [False]


def test_registry_without_client_still_stores() -> None:
    bare = Registry()
    bare.on_define(_exposure())
    assert len(bare.elements) == 1
    assert bare.pending_full == 1


def test_attach_client_enables_subscribe() -> None:
    registry = Registry()
    client = DummyClient()
    registry.attach_client(client)
    registry.on_define(_exposure())
    assert _subscriptions(client) == ["camera1.exposure"]


def test_closed_client_rejects_requests() -> None:
    client = DummyClient()
    client.close()
    with pytest.raises(TransportError):
        client.subscribe(_exposure())


def test_random_event_replay_keeps_stores_consistent(registry: Registry) -> None:
    rng = random.Random(1234)
    devices = ["camera1", "filterwheel", "focuser"]
    names = ["a", "b", "c"]
    elements = ["x", "y", "z"]
    expected: dict[str, set[str]] = {}

    for _ in range(400):
        device = rng.choice(devices)
        roll = rng.random()
        if roll < 0.6:
            name = rng.choice(names)
            chosen = rng.sample(elements, rng.randint(1, 3))
            registry.on_define(
                make_property(device, name, "Text", {el: str(rng.random()) for el in chosen})
            )
            expected.setdefault(f"{device}.{name}", set()).update(chosen)
        elif roll < 0.85:
            name = rng.choice(names)
            registry.on_delete(device, name)
            expected.pop(f"{device}.{name}", None)
        else:
            registry.on_delete(device, None)
            for key in [k for k in expected if k.startswith(f"{device}.")]:
                del expected[key]

    assert registry.properties.keys() == sorted(expected)
    assert {spec.key for spec in registry.elements} == {
        element_key(prop_key, el) for prop_key, els in expected.items() for el in els
    }
    for spec in registry.elements:
        assert spec.prop_key in registry.properties


def test_delete_with_blank_name_is_dropped(registry: Registry) -> None:
    registry.on_define(_exposure())
    registry.on_define(make_property("camera1", "shutter", "Switch", {"open": "Off"}))
    registry.pending_full = 0

    registry.on_delete("camera1", "")
    registry.on_delete("camera1", "  ")
    assert registry.properties.keys() == ["camera1.exposure", "camera1.shutter"]
    assert len(registry.elements) == 2
    assert registry.pending_full == 0
