from __future__ import annotations

import pytest

from indi_table_explorer.protocol.indi import (
    IndiElement,
    IndiProperty,
    SwitchState,
    display_value,
    element_key,
    make_property,
    property_key,
)


def test_keys_join_with_dots() -> None:
    assert property_key("camera1", "exposure") == "camera1.exposure"
    assert element_key("camera1.exposure", "value") == "camera1.exposure.value"
    prop = make_property("camera1", "exposure", "Number", {"value": "1.0"})
    assert prop.unique_key == "camera1.exposure"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("On", SwitchState.ON),
        (" Off\n", SwitchState.OFF),
        ("on", SwitchState.UNKNOWN),
        ("", SwitchState.UNKNOWN),
    ],
)
def test_switch_state_from_text(text: str, expected: SwitchState) -> None:
    assert SwitchState.from_text(text) is expected


def test_switch_state_toggled() -> None:
    assert SwitchState.ON.toggled() is SwitchState.OFF
    assert SwitchState.OFF.toggled() is SwitchState.ON
    assert SwitchState.UNKNOWN.toggled() is None


def test_validity_checks_reject_blank_names() -> None:
    assert not IndiProperty(device=" ", name="x", kind="Text").has_valid_device
    assert not IndiProperty(device="d", name="", kind="Text").has_valid_name
    prop = IndiProperty(device="d", name="x", kind="Text")
    assert prop.has_valid_device and prop.has_valid_name


def test_with_only_keeps_metadata_and_single_element() -> None:
    prop = make_property(
        "camera1",
        "shutter",
        "Switch",
        {"open": "Off", "closed": "On"},
        group="Main",
    )
    request = prop.with_only(IndiElement(name="open", value="On"))
    assert request.group == "Main"
    assert list(request.elements) == ["open"]
    assert request.elements["open"].value == "On"
    # The source property is untouched.
    assert prop.elements["open"].value == "Off"


def test_display_value_by_kind() -> None:
    number = make_property("camera1", "temp_ccd", "Number", {"current": "-14.8"})
    switch = make_property("camera1", "shutter", "Switch", {"open": "Off", "closed": "bogus"})

    assert display_value(number, "current") == "-14.8"
    assert display_value(number, "missing") == ""
    assert display_value(switch, "open") == "Off"
    assert display_value(switch, "closed") == "Unknown"
