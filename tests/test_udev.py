"""Tests for serialport._udev over fake /sys and /run/udev trees."""

import pathlib
import random

import pytest

import serialport
from serialport import _udev

USB_IFACE = "/sys/devices/pci0000:00/0000:00:14.0/usb1/1-2/1-2:1.0"
ACM_IFACE = "/sys/devices/pci0000:00/0000:00:14.0/usb1/1-3/1-3:1.0"
PCI_DEVICE = "/sys/devices/pci0000:00/0000:00:16.3"
PLATFORM_8250 = "/sys/devices/platform/serial8250"


@pytest.fixture
def sysfs(fs, monkeypatch):
    # rebuild the module's paths so they resolve in the fake filesystem
    for name in ("SYS_CLASS_TTY", "SYS_DEVICES", "UDEV_DATA", "DEV"):
        fake = pathlib.Path(str(getattr(_udev, name)))
        monkeypatch.setattr(_udev, name, fake)
    fs.create_dir("/sys/class/tty")
    fs.create_dir("/sys/devices")
    fs.create_dir("/dev")
    return fs


@pytest.fixture
def udev(sysfs):
    sysfs.create_dir("/run/udev/data")
    return sysfs


def add_device(fs, syspath: str, **uevent):
    text = "".join(f"{k}={v}\n" for k, v in uevent.items())
    fs.create_file(f"{syspath}/uevent", contents=text)


def add_tty(fs, parent: str, name: str, minor: int, props=None):
    syspath = f"{parent}/tty/{name}"
    add_device(fs, syspath, MAJOR=188, MINOR=minor, DEVNAME=name)
    fs.create_symlink(f"/sys/class/tty/{name}", syspath)
    if props is not None:
        lines = ["I:123456", f"S:serial/by-id/{name}"]
        lines += [f"E:{k}={v}" for k, v in props.items()]
        db_text = "".join(line + "\n" for line in lines)
        fs.create_file(f"/run/udev/data/c188:{minor}", contents=db_text)


FTDI_PROPS = {
    "ID_BUS": "usb",
    "ID_VENDOR_ID": "0403",
    "ID_MODEL_ID": "6001",
    "ID_SERIAL_SHORT": "A10K",
    "ID_VENDOR": "FTDI",
    "ID_VENDOR_ENC": "FTDI",
    "ID_MODEL": "FT232R_USB_UART",
    "ID_MODEL_ENC": "FT232R\\x20USB\\x20UART",
    "ID_USB_INTERFACE_NUM": "00",
    "ID_VENDOR_FROM_DATABASE": "Future Technology Devices International",
    "ID_MODEL_FROM_DATABASE": "FT232 Serial (UART) IC",
}


def test_usb_port(udev):
    add_device(udev, USB_IFACE, DEVTYPE="usb_interface")
    add_tty(udev, USB_IFACE, "ttyUSB0", 0, FTDI_PROPS)

    assert _udev.scan() == [
        serialport.SerialPortInfo(
            port_name="/dev/ttyUSB0",
            port_type=serialport.UsbPortInfo(
                vid=0x0403,
                pid=0x6001,
                serial_number="A10K",
                manufacturer="FTDI",
                product="FT232R USB UART",
                interface=0,
            ),
        )
    ]


def test_usb_strings_fall_back_to_database(udev):
    props = {
        k: v
        for k, v in FTDI_PROPS.items()
        if k not in ("ID_VENDOR", "ID_VENDOR_ENC", "ID_USB_INTERFACE_NUM")
    }
    add_device(udev, USB_IFACE, DEVTYPE="usb_interface")
    add_tty(udev, USB_IFACE, "ttyUSB0", 0, props)

    (info,) = _udev.scan()
    vendor = "Future Technology Devices International"
    assert info.port_type.manufacturer == vendor
    assert info.port_type.product == "FT232R USB UART"
    assert info.port_type.interface is None


def test_usb_string_escapes():
    props = {"ID_MODEL_ENC": "Caf\\xc3\\xa9", "ID_MODEL": "Caf_"}
    assert _udev._encoded_or_replaced(props, "ID_MODEL") == "Café"

    props = {"ID_MODEL_ENC": "Bad\\x4", "ID_MODEL": "Bad_Name"}
    assert _udev._encoded_or_replaced(props, "ID_MODEL") == "Bad Name"

    assert _udev._encoded_or_replaced({}, "ID_MODEL") is None


def test_bad_usb_ids_are_unknown(udev):
    props = dict(FTDI_PROPS, ID_VENDOR_ID="+1_0")
    add_device(udev, USB_IFACE, DEVTYPE="usb_interface")
    add_tty(udev, USB_IFACE, "ttyUSB0", 0, props)

    (info,) = _udev.scan()
    assert info.port_type == serialport.UnknownPort()


def test_pci_ports(udev):
    add_device(udev, PCI_DEVICE, DRIVER="serial")
    add_tty(udev, PCI_DEVICE, "ttyS4", 68, {"ID_BUS": "pci"})
    usb_props = {
        "ID_BUS": "pci",
        "ID_USB_VENDOR_ID": "1a86",
        "ID_USB_MODEL_ID": "7523",
        "ID_USB_VENDOR": "QinHeng",
        "ID_USB_MODEL": "USB_Serial",
        "ID_USB_SERIAL_SHORT": "1234",
        "ID_USB_INTERFACE_NUM": "02",
    }
    add_tty(udev, PCI_DEVICE, "ttyS5", 69, usb_props)

    assert _udev.scan() == [
        serialport.SerialPortInfo(
            port_name="/dev/ttyS4", port_type=serialport.PciPort()
        ),
        serialport.SerialPortInfo(
            port_name="/dev/ttyS5",
            port_type=serialport.UsbPortInfo(
                vid=0x1A86,
                pid=0x7523,
                serial_number="1234",
                manufacturer="QinHeng",
                product="USB Serial",
                interface=2,
            ),
        ),
    ]


def test_modalias_fallback(udev):
    modalias = "usb:v303Ap1001d0101dcEFdsc02dp01ic02isc02ip00in00"
    add_device(udev, ACM_IFACE, DEVTYPE="usb_interface", MODALIAS=modalias)
    add_tty(udev, ACM_IFACE, "ttyACM0", 1)

    (info,) = _udev.scan()
    assert info.port_name == "/dev/ttyACM0"
    assert info.port_type == serialport.UsbPortInfo(
        vid=0x303A, pid=0x1001, interface=0
    )


def test_no_bus_without_usb_parent_is_unknown(udev):
    add_device(udev, "/sys/devices/platform/serial-uart", MODALIAS="of:uart")
    add_tty(udev, "/sys/devices/platform/serial-uart", "ttyAMA0", 2)

    (info,) = _udev.scan()
    assert info.port_type == serialport.UnknownPort()


def test_serial8250_needs_to_open(udev, mocker):
    add_device(udev, PLATFORM_8250)
    udev.create_symlink(
        f"{PLATFORM_8250}/driver", "/sys/bus/platform/drivers/serial8250"
    )
    add_tty(udev, PLATFORM_8250, "ttyS0", 64)

    mock_open = mocker.patch.object(_udev, "_can_open", return_value=False)
    assert _udev.scan() == []
    mock_open.assert_called_once_with(pathlib.Path("/dev/ttyS0"))

    mock_open.return_value = True
    assert _udev.scan() == [
        serialport.SerialPortInfo(
            port_name="/dev/ttyS0", port_type=serialport.UnknownPort()
        )
    ]


def test_skipped_entries(udev):
    # no parent device
    add_device(
        udev, "/sys/devices/virtual/tty/tty0", MAJOR=4, MINOR=0, DEVNAME="tty0"
    )
    udev.create_symlink("/sys/class/tty/tty0", "/sys/devices/virtual/tty/tty0")

    # unreadable uevent
    bad = f"{PCI_DEVICE}/tty/ttyBAD"
    add_device(udev, PCI_DEVICE)
    udev.create_dir(f"{bad}/uevent")
    udev.create_symlink("/sys/class/tty/ttyBAD", bad)

    # no device node name
    add_device(udev, f"{PCI_DEVICE}/tty/ttyX", MAJOR=4, MINOR=70)
    udev.create_symlink("/sys/class/tty/ttyX", f"{PCI_DEVICE}/tty/ttyX")

    add_tty(udev, PCI_DEVICE, "ttyS4", 68, {"ID_BUS": "pci"})
    assert [p.port_name for p in _udev.scan()] == ["/dev/ttyS4"]


def test_missing_sysfs(fs, monkeypatch):
    tty = pathlib.Path("/sys/class/tty")
    monkeypatch.setattr(_udev, "SYS_CLASS_TTY", tty)
    with pytest.raises(serialport.SerialScanException):
        _udev.scan()


def test_scan_without_udev(sysfs):
    sysfs.create_dir("/sys/class/tty/tty0")
    sysfs.create_file("/dev/tty0")

    sysfs.create_file(
        "/sys/class/tty/ttyS0/device/driver_override", contents="(null)\n"
    )
    sysfs.create_file("/dev/ttyS0")

    sysfs.create_dir("/sys/class/tty/ttyS1/device")

    sysfs.create_file(
        "/sys/class/tty/ttyUSB0/device/driver_override", contents="ftdi\n"
    )
    sysfs.create_file("/dev/ttyUSB0")

    sysfs.create_dir("/sys/class/tty/ttyACM0/device")
    sysfs.create_file("/dev/ttyACM0")

    assert _udev.scan() == [
        serialport.SerialPortInfo(
            port_name="/dev/ttyACM0", port_type=serialport.UnknownPort()
        ),
        serialport.SerialPortInfo(
            port_name="/dev/ttyUSB0", port_type=serialport.UnknownPort()
        ),
    ]


def test_parse_modalias():
    parse = _udev.parse_modalias
    assert parse("usb:v303Ap1001d0101dcEFdsc02dp01ic02isc02ip00in0C") == (
        serialport.UsbPortInfo(vid=0x303A, pid=0x1001, interface=0x0C)
    )
    assert parse("usb:v0403p6001d0600dc00dsc00dp00icFFiscFFipFF") == (
        serialport.UsbPortInfo(vid=0x0403, pid=0x6001)
    )
    assert parse("junk usb:vABCDpEF01") == (
        serialport.UsbPortInfo(vid=0xABCD, pid=0xEF01)
    )
    assert parse("usb:v0403p6001in0") == (
        serialport.UsbPortInfo(vid=0x0403, pid=0x6001)
    )

    for bad in (
        "",
        "usb",
        "usb:",
        "usb:vdcdc",
        "usb:pdcdc",
        "pci:v00008086d00001E3Dsv",
        "usb:v",
        "usb:v040",
        "usb:v0403",
        "usb:v0403p",
        "usb:v0403p600",
        "usb:v04G3p6001",
        "usb:v+403p6001",
        "usb:v0403p+001",
        "usb:v0403p6_01",
        "usb:v0403p60 1",
        "usb:v0403p６００１",
    ):
        assert parse(bad) is None, bad


def test_parse_modalias_never_raises():
    rng = random.Random(1234)
    alphabet = "usb:vpdin0123456789abcdefABCDEFxyz_+- é"
    for _ in range(5000):
        length = rng.randrange(0, 40)
        text = "".join(rng.choice(alphabet) for _ in range(length))
        if rng.random() < 0.5:
            text = "usb:v" + text
        info = _udev.parse_modalias(text)
        if info is not None:
            assert 0 <= info.vid <= 0xFFFF
            assert 0 <= info.pid <= 0xFFFF
            assert info.interface is None or 0 <= info.interface <= 0xFF
