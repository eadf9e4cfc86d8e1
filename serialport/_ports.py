import msgspec


class UsbPortInfo(msgspec.Struct, frozen=True, tag_field="type", tag="usb"):
    """
    Bus identity of a USB-attached serial port.

    'interface' is the USB interface index, which may be the communication
    interface (Linux, Windows) or the data interface (macOS); match both.
    """

    vid: int
    pid: int
    serial_number: str | None = None
    manufacturer: str | None = None
    product: str | None = None
    interface: int | None = None


class PciPort(msgspec.Struct, frozen=True, tag_field="type", tag="pci"):
    """A permanent (PCI/platform) serial port"""


class BluetoothPort(
    msgspec.Struct, frozen=True, tag_field="type", tag="bluetooth"
):
    """A Bluetooth serial port"""


class UnknownPort(msgspec.Struct, frozen=True, tag_field="type", tag="unknown"):
    """A serial port whose attachment could not be determined"""


SerialPortType = UsbPortInfo | PciPort | BluetoothPort | UnknownPort


class SerialPortInfo(msgspec.Struct, frozen=True, order=True):
    """What we know about a potentially available serial port on the system"""

    port_name: str
    port_type: SerialPortType

    def __str__(self):
        return self.port_name
