"""
Serial port library: one blocking port interface over POSIX termios and
Windows Comm API devices, plus port discovery with USB bus identity.
"""

import sys

from beartype.claw import beartype_this_package as _beartype_me

# ruff: noqa: E402
_beartype_me()

from serialport._builder import (
    SerialPortBuilder,
    SerialPortSettings,
    new,
)

from serialport._exceptions import (
    ErrorKind,
    SerialInvalidInput,
    SerialIoException,
    SerialNoDevice,
    SerialPortError,
    SerialScanException,
    SerialTimeout,
    SerialUnknown,
)

from serialport._port import BorrowedSerialPort, SerialPort

from serialport._ports import (
    BluetoothPort,
    PciPort,
    SerialPortInfo,
    SerialPortType,
    UnknownPort,
    UsbPortInfo,
)

from serialport._scanning import available_ports

from serialport._settings import (
    ClearBuffer,
    DataBits,
    FlowControl,
    Parity,
    StopBits,
)

from serialport._windows import COMPort

if sys.platform != "win32":
    from serialport._posix import TTYPort

__all__ = [n for n in dir() if not n.startswith("_") and n != "sys"]
