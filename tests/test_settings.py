"""Unit tests for serialport._settings."""

import pytest

from serialport import DataBits, FlowControl, Parity, StopBits


def test_text_forms():
    assert str(DataBits.SEVEN) == "Seven"
    assert str(StopBits.TWO) == "Two"
    assert str(Parity.EVEN) == "Even"
    assert str(FlowControl.HARDWARE) == "Hardware"


def test_numeric_values():
    assert [int(d) for d in DataBits] == [5, 6, 7, 8]
    assert [int(s) for s in StopBits] == [1, 2]
    assert DataBits(7) is DataBits.SEVEN


def test_parse_parity():
    for text, parity in (
        ("none", Parity.NONE),
        ("N", Parity.NONE),
        ("Odd", Parity.ODD),
        ("o", Parity.ODD),
        (" EVEN ", Parity.EVEN),
        ("e", Parity.EVEN),
    ):
        assert Parity.parse(text) is parity

    for bad in ("", "mark", "space", "x"):
        with pytest.raises(ValueError):
            Parity.parse(bad)


def test_parse_flow_control():
    for text, flow_control in (
        ("none", FlowControl.NONE),
        ("n", FlowControl.NONE),
        ("Software", FlowControl.SOFTWARE),
        ("sw", FlowControl.SOFTWARE),
        ("s", FlowControl.SOFTWARE),
        ("HARDWARE", FlowControl.HARDWARE),
        ("hw", FlowControl.HARDWARE),
        ("h", FlowControl.HARDWARE),
    ):
        assert FlowControl.parse(text) is flow_control

    for bad in ("", "xonxoff", "rtscts"):
        with pytest.raises(ValueError):
            FlowControl.parse(bad)
