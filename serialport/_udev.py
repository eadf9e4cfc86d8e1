"""
Linux port discovery from sysfs (/sys/class/tty) and the udev database
(/run/udev/data), read directly from the filesystem.
"""

import logging
import pathlib
import string

from serialport import _builder
from serialport import _exceptions
from serialport import _ports

log = logging.getLogger("serialport.udev")

SYS_CLASS_TTY = pathlib.Path("/sys/class/tty")
SYS_DEVICES = pathlib.Path("/sys/devices")
UDEV_DATA = pathlib.Path("/run/udev/data")
DEV = pathlib.Path("/dev")

# a PCI-bus device with all of these is really a USB device
_PCI_USB_KEYS = (
    "ID_USB_VENDOR_ID",
    "ID_USB_MODEL_ID",
    "ID_USB_VENDOR",
    "ID_USB_MODEL",
    "ID_USB_SERIAL_SHORT",
)


class Device:
    """A sysfs device directory and its udev properties"""

    def __init__(self, syspath: pathlib.Path):
        self.syspath = syspath
        self.uevent = _read_keyvals(syspath / "uevent")
        self._properties: dict[str, str] | None = None

    def __repr__(self) -> str:
        return f"Device({str(self.syspath)!r})"

    def properties(self) -> dict[str, str]:
        """The uevent variables overlaid with udev's E: database entries"""

        if self._properties is None:
            props = dict(self.uevent)
            if db_path := self._db_path():
                for line in _read_lines(db_path):
                    if line.startswith("E:") and "=" in line:
                        key, value = line[2:].split("=", 1)
                        props[key] = value
            self._properties = props
        return self._properties

    def parent(self) -> "Device | None":
        """The nearest ancestor directory that is itself a device"""

        path = self.syspath.parent
        while path != SYS_DEVICES and SYS_DEVICES in path.parents:
            if (path / "uevent").is_file():
                return Device(path)
            path = path.parent
        return None

    def driver(self) -> str | None:
        try:
            return (self.syspath / "driver").readlink().name
        except OSError:
            return None

    def devtype(self) -> str | None:
        return self.uevent.get("DEVTYPE")

    def devnode(self) -> pathlib.Path | None:
        if devname := self.uevent.get("DEVNAME"):
            return DEV / devname
        return None

    def _db_path(self) -> pathlib.Path | None:
        major, minor = self.uevent.get("MAJOR"), self.uevent.get("MINOR")
        if major and minor:
            return UDEV_DATA / f"c{major}:{minor}"
        try:
            subsystem = (self.syspath / "subsystem").readlink().name
        except OSError:
            return None
        return UDEV_DATA / f"+{subsystem}:{self.syspath.name}"


def scan() -> list[_ports.SerialPortInfo]:
    """
    Lists serial ports under /sys/class/tty. With udev metadata available,
    ports are classified by bus; without it, every port is Unknown.
    """

    try:
        entries = sorted(SYS_CLASS_TTY.iterdir())
    except OSError as ex:
        message = f"Can't list {SYS_CLASS_TTY}"
        raise _exceptions.SerialScanException(message) from ex

    with_udev = UDEV_DATA.is_dir()
    log.debug("Scanning %s (udev=%s)", SYS_CLASS_TTY, with_udev)
    out = []
    for entry in entries:
        try:
            info = _scan_udev(entry) if with_udev else _scan_sysfs(entry)
        except OSError:
            log.debug("Skipping %s", entry, exc_info=True)
            continue
        if info is not None:
            out.append(info)
    return out


def _scan_udev(entry: pathlib.Path) -> _ports.SerialPortInfo | None:
    device = Device(entry.resolve())
    parent = device.parent()
    devnode = device.devnode()
    if parent is None or devnode is None:
        return None

    if parent.driver() == "serial8250" and not _can_open(devnode):
        log.debug("Skipping unopenable serial8250 port %s", devnode)
        return None

    return _ports.SerialPortInfo(
        port_name=str(devnode), port_type=port_type(device)
    )


def _scan_sysfs(entry: pathlib.Path) -> _ports.SerialPortInfo | None:
    if not (entry / "device").is_dir():
        return None

    override = entry / "device" / "driver_override"
    if override.is_file() and override.read_text() == "(null)\n":
        return None

    devnode = DEV / entry.name
    if not devnode.exists():
        return None

    return _ports.SerialPortInfo(
        port_name=str(devnode), port_type=_ports.UnknownPort()
    )


def _can_open(devnode: pathlib.Path) -> bool:
    try:
        _builder.new(str(devnode), 9600).open().close()
    except OSError:
        return False
    return True


def port_type(device: Device) -> _ports.SerialPortType:
    """Classifies a tty device by its udev bus properties"""

    props = device.properties()
    bus = props.get("ID_BUS")
    try:
        if bus == "usb":
            return _usb_info(props, "ID_")
        if bus == "pci":
            if all(key in props for key in _PCI_USB_KEYS):
                return _usb_info(props, "ID_USB_")
            return _ports.PciPort()
    except ValueError as ex:
        log.debug("Can't classify %s: %s", device, ex)
        return _ports.UnknownPort()

    if bus is None:
        parent = _usb_interface_parent(device)
        if parent is not None:
            modalias = parent.properties().get("MODALIAS", "")
            if info := parse_modalias(modalias):
                return info

    return _ports.UnknownPort()


def _usb_info(props: dict[str, str], prefix: str) -> _ports.UsbPortInfo:
    manufacturer = _encoded_or_replaced(props, f"{prefix}VENDOR")
    product = _encoded_or_replaced(props, f"{prefix}MODEL")
    if prefix == "ID_":
        # only filled in from the hardware database when the device is silent
        if manufacturer is None:
            manufacturer = props.get("ID_VENDOR_FROM_DATABASE")
        if product is None:
            product = props.get("ID_MODEL_FROM_DATABASE")

    interface = props.get("ID_USB_INTERFACE_NUM")
    return _ports.UsbPortInfo(
        vid=_parse_hex(props.get(f"{prefix}VENDOR_ID", ""), 4),
        pid=_parse_hex(props.get(f"{prefix}MODEL_ID", ""), 4),
        serial_number=props.get(f"{prefix}SERIAL_SHORT"),
        manufacturer=manufacturer,
        product=product,
        interface=_parse_hex(interface, 2) if interface else None,
    )


def _encoded_or_replaced(props: dict[str, str], key: str) -> str | None:
    """
    udev publishes strings twice: KEY_ENC with \\xNN escapes, and KEY with
    whitespace replaced by underscores. Prefer the escaped form.
    """

    if (encoded := props.get(f"{key}_ENC")) is not None:
        try:
            return _unescape(encoded)
        except UnicodeError:
            log.debug("Bad escapes in %s_ENC: %r", key, encoded)
    if (replaced := props.get(key)) is not None:
        return replaced.replace("_", " ")
    return None


def _unescape(text: str) -> str:
    raw = text.encode("utf-8").decode("unicode_escape")
    return raw.encode("latin-1").decode("utf-8")


def _usb_interface_parent(device: Device) -> Device | None:
    parent = device.parent()
    for _ in range(3):
        if parent is None or parent.devtype() == "usb_interface":
            break
        if (up := parent.parent()) is None:
            break
        parent = up
    return parent


def parse_modalias(modalias: str) -> _ports.UsbPortInfo | None:
    """
    Extracts USB ids from a MODALIAS string such as
    "usb:v303Ap1001d0101dcEFdsc02dp01ic02isc02ip00in0C" (vendor 303A,
    product 1001, interface 0C). Returns None for anything malformed.
    """

    start = modalias.find("usb:v")
    if start < 0:
        return None

    tail = modalias[start + 5 :]
    vid = _hex_field(tail[:4], 4)
    tail = tail[4:]
    pid_start = tail.find("p")
    if vid is None or pid_start < 0:
        return None
    pid = _hex_field(tail[pid_start + 1 : pid_start + 5], 4)
    if pid is None:
        return None

    interface = None
    rest = tail[pid_start + 5 :]
    if (in_start := rest.find("in")) >= 0:
        interface = _hex_field(rest[in_start + 2 : in_start + 4], 2)

    return _ports.UsbPortInfo(vid=vid, pid=pid, interface=interface)


def _hex_field(text: str, digits: int) -> int | None:
    if len(text) != digits or not set(text) <= _HEX_DIGITS:
        return None
    return int(text, 16)


def _parse_hex(text: str, digits: int) -> int:
    """Parses 1 to 'digits' hex digits (int() alone would take "+1_0")"""

    if not 0 < len(text) <= digits or not set(text) <= _HEX_DIGITS:
        raise ValueError(f"Bad hex value: {text!r}")
    return int(text, 16)


_HEX_DIGITS = set(string.hexdigits)


def _read_keyvals(path: pathlib.Path) -> dict[str, str]:
    out = {}
    for line in _read_lines(path):
        if "=" in line:
            key, value = line.split("=", 1)
            out[key] = value
    return out


def _read_lines(path: pathlib.Path) -> list[str]:
    try:
        return path.read_text(errors="replace").splitlines()
    except FileNotFoundError:
        return []
