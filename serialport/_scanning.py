import logging
import os
import pathlib
import re
import sys

import msgspec
import natsort
from serial.tools import list_ports
from serial.tools import list_ports_common

from serialport import _exceptions
from serialport import _ports
from serialport import _udev

log = logging.getLogger("serialport.scanning")

OVERRIDE_ENV = "SERIALPORT_SCAN_OVERRIDE"

# USB locations end in ":<config>.<interface>" (":x.<interface>" on Windows)
_INTERFACE_RE = re.compile(r":(?:x|\d+)\.(\d+)$")

_FREEBSD_PREFIXES = ("cuaU", "cuau", "cuad")
_FREEBSD_SKIP_SUFFIXES = (".init", ".lock")


def available_ports() -> list[_ports.SerialPortInfo]:
    """
    Returns the serial ports found on the current system, deduplicated and
    in natural name order. This is a snapshot; ports can come and go.
    """

    if ov := os.getenv(OVERRIDE_ENV):
        found = _read_override(ov)
    elif sys.platform.startswith("linux"):
        found = _udev.scan()
    elif sys.platform.startswith("freebsd"):
        found = _scan_freebsd(pathlib.Path("/dev"))
    else:
        found = _scan_pyserial()

    unique: dict[str, _ports.SerialPortInfo] = {}
    for info in found:
        unique.setdefault(info.port_name, info)

    out = list(unique.values())
    keygen = natsort.natsort_keygen(key=lambda p: p.port_name, alg=natsort.ns.P)
    out.sort(key=keygen)
    log.debug("Found %d ports", len(out))
    return out


def _read_override(ov: str) -> list[_ports.SerialPortInfo]:
    try:
        ov_data = msgspec.json.decode(
            pathlib.Path(ov).read_bytes(),
            type=dict[str, _ports.SerialPortType],
        )
    except (OSError, msgspec.DecodeError) as ex:
        msg = f"Can't read ${OVERRIDE_ENV} {ov}"
        raise _exceptions.SerialScanException(msg) from ex

    out = [
        _ports.SerialPortInfo(port_name=name, port_type=port_type)
        for name, port_type in ov_data.items()
    ]
    log.debug("$%s (%s): %d ports", OVERRIDE_ENV, ov, len(out))
    return out


def _scan_freebsd(dev: pathlib.Path) -> list[_ports.SerialPortInfo]:
    try:
        names = sorted(entry.name for entry in dev.iterdir())
    except OSError as ex:
        raise _exceptions.SerialScanException(f"Can't list {dev}") from ex

    return [
        _ports.SerialPortInfo(
            port_name=str(dev / name), port_type=_ports.UnknownPort()
        )
        for name in names
        if name.startswith(_FREEBSD_PREFIXES)
        and not name.endswith(_FREEBSD_SKIP_SUFFIXES)
    ]


def _scan_pyserial() -> list[_ports.SerialPortInfo]:
    try:
        ports = list_ports.comports()
    except OSError as ex:
        raise _exceptions.SerialScanException("Can't scan serial") from ex

    return [
        _ports.SerialPortInfo(port_name=p.device, port_type=_convert_port(p))
        for p in ports
    ]


def _convert_port(p: list_ports_common.ListPortInfo) -> _ports.SerialPortType:
    if p.vid is not None and p.pid is not None:
        match = _INTERFACE_RE.search(p.location or "")
        return _ports.UsbPortInfo(
            vid=p.vid,
            pid=p.pid,
            serial_number=p.serial_number or None,
            manufacturer=p.manufacturer or None,
            product=p.product or None,
            interface=int(match[1]) if match else None,
        )
    if (p.hwid or "").upper().startswith("BTHENUM"):
        return _ports.BluetoothPort()
    if "bluetooth" in p.device.lower():
        return _ports.BluetoothPort()
    if sys.platform == "darwin":
        return _ports.PciPort()
    return _ports.UnknownPort()
