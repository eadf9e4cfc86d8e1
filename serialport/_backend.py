"""Selects the port implementation for the running platform"""

import sys

from serialport import _port

if sys.platform == "win32":
    from serialport import _windows
else:
    from serialport import _posix


def native_port_type() -> type[_port.SerialPort]:
    """Returns COMPort on Windows, else the TTYPort refinement for this OS"""

    if sys.platform == "win32":
        return _windows.COMPort
    return _posix.native_tty_type()
