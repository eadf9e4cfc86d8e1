import ctypes
import logging
import sys

from serialport import _exceptions
from serialport import _port
from serialport import _settings

if sys.platform == "win32":
    from ctypes import wintypes
    from serial import win32

    _kernel32 = ctypes.WinDLL("kernel32")
    _kernel32.GetCurrentProcess.restype = wintypes.HANDLE
    _kernel32.GetCurrentProcess.argtypes = []
    _kernel32.DuplicateHandle.restype = wintypes.BOOL
    _kernel32.DuplicateHandle.argtypes = [
        wintypes.HANDLE,
        wintypes.HANDLE,
        wintypes.HANDLE,
        ctypes.POINTER(wintypes.HANDLE),
        wintypes.DWORD,
        wintypes.BOOL,
        wintypes.DWORD,
    ]
    _kernel32.FlushFileBuffers.restype = wintypes.BOOL
    _kernel32.FlushFileBuffers.argtypes = [wintypes.HANDLE]

log = logging.getLogger("serialport.windows")

MAXDWORD = 0xFFFFFFFF

# COMMTIMEOUTS counts milliseconds in a DWORD; MAXDWORD itself is special
TIMEOUT_MAX = (MAXDWORD - 1) / 1000

_DUPLICATE_SAME_ACCESS = 2
_DEVICE_PREFIX = "\\\\.\\"


def timeout_millis(timeout: float | int) -> int:
    """Converts seconds to whole milliseconds within COMMTIMEOUTS range"""

    return min(max(0, round(timeout * 1000)), MAXDWORD - 1)


def comm_timeouts(timeout: float | int) -> tuple[int, int, int, int, int]:
    """
    Returns COMMTIMEOUTS fields (ReadIntervalTimeout,
    ReadTotalTimeoutMultiplier, ReadTotalTimeoutConstant,
    WriteTotalTimeoutMultiplier, WriteTotalTimeoutConstant).

    A zero timeout makes ReadFile return at once with whatever is buffered.
    Otherwise ReadFile returns as soon as any byte arrives, or empty after
    the timeout, and WriteFile gives up after the same interval.
    """

    ms = timeout_millis(timeout)
    if ms == 0:
        return (MAXDWORD, 0, 0, 0, 0)
    return (MAXDWORD, MAXDWORD, ms, 0, ms)


def device_path(name: str) -> str:
    """Adds the \\\\.\\ prefix that COM10 and above need"""

    return name if name.startswith(_DEVICE_PREFIX) else _DEVICE_PREFIX + name


class COMPort(_port.SerialPort):
    """
    A serial port backed by a Windows communications device.

    The handle is opened for overlapped I/O, but every call here waits for
    its own completion, so the port behaves as blocking I/O.
    """

    TIMEOUT_MAX = TIMEOUT_MAX

    def __init__(
        self,
        handle: int,
        name: str | None,
    ):
        self._handle: int | None = handle
        super().__init__()
        self._name = name
        self._timeout = 0.0

    @classmethod
    def open(cls, settings) -> "COMPort":
        """Opens and fully configures the device named by the settings"""

        path = settings.path
        handle = win32.CreateFile(
            device_path(path),
            win32.GENERIC_READ | win32.GENERIC_WRITE,
            0,
            None,
            win32.OPEN_EXISTING,
            win32.FILE_ATTRIBUTE_NORMAL | win32.FILE_FLAG_OVERLAPPED,
            0,
        )
        if handle == win32.INVALID_HANDLE_VALUE:
            raise _last_error("CreateFile", path)

        port = cls(handle, path)
        try:
            port._configure(settings)
        except BaseException:
            port.close()
            raise

        log.debug("Opened %r", port)
        return port

    @classmethod
    def from_raw_handle(cls, handle: int) -> "COMPort":
        """Takes ownership of an open COM handle (timeout 0.1s)"""

        port = cls(handle, None)
        port.set_timeout(0.1)
        return port

    def into_raw_handle(self) -> int:
        """Gives up ownership of the handle; this object is closed"""

        handle = self._checked()
        self._handle = None
        self.close()
        return handle

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            if not win32.CloseHandle(handle):
                code = win32.GetLastError()
                log.debug("Error closing %s: %d", self._name, code)
            else:
                log.debug("Closed %s", self._name)
        super().close()

    def readinto(self, buffer) -> int:
        handle = self._checked()
        view = memoryview(buffer).cast("B")
        if not view.nbytes:
            return 0

        buf = ctypes.create_string_buffer(view.nbytes)
        done = win32.DWORD()
        overlapped = win32.OVERLAPPED()
        overlapped.hEvent = win32.CreateEvent(None, True, False, None)
        try:
            ok = win32.ReadFile(
                handle,
                buf,
                view.nbytes,
                ctypes.byref(done),
                ctypes.byref(overlapped),
            )
            self._finish(ok, handle, overlapped, done, "ReadFile")
        finally:
            win32.CloseHandle(overlapped.hEvent)

        if not done.value:
            raise _exceptions.SerialTimeout(port=self._name)
        view[: done.value] = buf.raw[: done.value]
        return done.value

    def write(self, data) -> int:
        handle = self._checked()
        view = memoryview(data).cast("B")
        if not view.nbytes:
            return 0

        buf = bytes(view)
        done = win32.DWORD()
        overlapped = win32.OVERLAPPED()
        overlapped.hEvent = win32.CreateEvent(None, True, False, None)
        try:
            ok = win32.WriteFile(
                handle,
                buf,
                len(buf),
                ctypes.byref(done),
                ctypes.byref(overlapped),
            )
            self._finish(ok, handle, overlapped, done, "WriteFile")
        finally:
            win32.CloseHandle(overlapped.hEvent)

        if not done.value:
            raise _exceptions.SerialTimeout(port=self._name)
        return done.value

    def flush(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed port")
        if self._handle is not None and not _kernel32.FlushFileBuffers(
            self._handle
        ):
            raise _last_error("FlushFileBuffers", self._name)

    def name(self) -> str | None:
        return self._name

    def baud_rate(self) -> int:
        return int(self._get_dcb().BaudRate)

    def data_bits(self) -> _settings.DataBits:
        return dcb_data_bits(self._get_dcb())

    def flow_control(self) -> _settings.FlowControl:
        return dcb_flow_control(self._get_dcb())

    def parity(self) -> _settings.Parity:
        return dcb_parity(self._get_dcb())

    def stop_bits(self) -> _settings.StopBits:
        return dcb_stop_bits(self._get_dcb())

    def timeout(self) -> float:
        return self._timeout

    def set_baud_rate(self, baud_rate: int) -> None:
        if baud_rate <= 0:
            message = f"Bad baud rate: {baud_rate}"
            raise _exceptions.SerialInvalidInput(message, self._name)
        dcb = self._get_dcb()
        dcb.BaudRate = baud_rate
        self._set_dcb(dcb)

    def set_data_bits(self, data_bits: _settings.DataBits) -> None:
        dcb = self._get_dcb()
        dcb.ByteSize = int(data_bits)
        self._set_dcb(dcb)

    def set_flow_control(self, flow_control: _settings.FlowControl) -> None:
        dcb = self._get_dcb()
        dcb_set_flow_control(dcb, flow_control)
        self._set_dcb(dcb)

    def set_parity(self, parity: _settings.Parity) -> None:
        dcb = self._get_dcb()
        dcb_set_parity(dcb, parity)
        self._set_dcb(dcb)

    def set_stop_bits(self, stop_bits: _settings.StopBits) -> None:
        dcb = self._get_dcb()
        dcb_set_stop_bits(dcb, stop_bits)
        self._set_dcb(dcb)

    def set_timeout(self, timeout: float | int) -> None:
        fields = comm_timeouts(timeout)
        timeouts = win32.COMMTIMEOUTS(*fields)
        if not win32.SetCommTimeouts(self._checked(), ctypes.byref(timeouts)):
            raise _last_error("SetCommTimeouts", self._name)
        self._timeout = timeout_millis(timeout) / 1000

    def write_request_to_send(self, level: bool) -> None:
        self._escape(win32.SETRTS if level else win32.CLRRTS)

    def write_data_terminal_ready(self, level: bool) -> None:
        self._escape(win32.SETDTR if level else win32.CLRDTR)

    def read_clear_to_send(self) -> bool:
        return self._read_pin(win32.MS_CTS_ON)

    def read_data_set_ready(self) -> bool:
        return self._read_pin(win32.MS_DSR_ON)

    def read_ring_indicator(self) -> bool:
        return self._read_pin(win32.MS_RING_ON)

    def read_carrier_detect(self) -> bool:
        return self._read_pin(win32.MS_RLSD_ON)

    def bytes_to_read(self) -> int:
        return int(self._comstat().cbInQue)

    def bytes_to_write(self) -> int:
        return int(self._comstat().cbOutQue)

    def clear(self, buffer_to_clear: _settings.ClearBuffer) -> None:
        flags = 0
        if buffer_to_clear is not _settings.ClearBuffer.OUTPUT:
            flags |= win32.PURGE_RXABORT | win32.PURGE_RXCLEAR
        if buffer_to_clear is not _settings.ClearBuffer.INPUT:
            flags |= win32.PURGE_TXABORT | win32.PURGE_TXCLEAR
        if not win32.PurgeComm(self._checked(), flags):
            raise _last_error("PurgeComm", self._name)

    def try_clone(self) -> "COMPort":
        process = _kernel32.GetCurrentProcess()
        cloned = wintypes.HANDLE()
        if not _kernel32.DuplicateHandle(
            process,
            self._checked(),
            process,
            ctypes.byref(cloned),
            0,
            False,
            _DUPLICATE_SAME_ACCESS,
        ):
            raise _last_error("DuplicateHandle", self._name)
        clone = COMPort(cloned.value, self._name)
        clone._timeout = self._timeout
        return clone

    def set_break(self) -> None:
        if not win32.SetCommBreak(self._checked()):
            raise _last_error("SetCommBreak", self._name)

    def clear_break(self) -> None:
        if not win32.ClearCommBreak(self._checked()):
            raise _last_error("ClearCommBreak", self._name)

    def _checked(self) -> int:
        if self.closed or self._handle is None:
            raise ValueError("I/O operation on closed port")
        return self._handle

    def _configure(self, settings) -> None:
        dcb = self._get_dcb()
        dcb.fBinary = 1
        dcb.fDtrControl = win32.DTR_CONTROL_ENABLE
        dcb.fDsrSensitivity = 0
        dcb.fOutxDsrFlow = 0
        dcb.fErrorChar = 0
        dcb.fNull = 0
        dcb.fAbortOnError = 0
        dcb.XonChar = b"\x11"
        dcb.XoffChar = b"\x13"
        dcb.BaudRate = settings.baud_rate
        dcb.ByteSize = int(settings.data_bits)
        dcb_set_parity(dcb, settings.parity)
        dcb_set_stop_bits(dcb, settings.stop_bits)
        dcb_set_flow_control(dcb, settings.flow_control)
        self._set_dcb(dcb)
        self.set_timeout(settings.timeout)

    def _get_dcb(self):
        dcb = win32.DCB()
        if not win32.GetCommState(self._checked(), ctypes.byref(dcb)):
            raise _last_error("GetCommState", self._name)
        return dcb

    def _set_dcb(self, dcb) -> None:
        if not win32.SetCommState(self._checked(), ctypes.byref(dcb)):
            raise _last_error("SetCommState", self._name)

    def _escape(self, function: int) -> None:
        if not win32.EscapeCommFunction(self._checked(), function):
            raise _last_error("EscapeCommFunction", self._name)

    def _read_pin(self, mask: int) -> bool:
        status = win32.DWORD()
        if not win32.GetCommModemStatus(self._checked(), ctypes.byref(status)):
            raise _last_error("GetCommModemStatus", self._name)
        return bool(status.value & mask)

    def _comstat(self):
        errors = win32.DWORD()
        comstat = win32.COMSTAT()
        if not win32.ClearCommError(
            self._checked(), ctypes.byref(errors), ctypes.byref(comstat)
        ):
            raise _last_error("ClearCommError", self._name)
        return comstat

    def _finish(self, ok, handle, overlapped, done, what: str) -> None:
        if not ok and win32.GetLastError() != win32.ERROR_IO_PENDING:
            raise _last_error(what, self._name)
        if not win32.GetOverlappedResult(
            handle, ctypes.byref(overlapped), ctypes.byref(done), True
        ):
            raise _last_error(what, self._name)


def dcb_data_bits(dcb) -> _settings.DataBits:
    try:
        return _settings.DataBits(dcb.ByteSize)
    except ValueError:
        message = f"Unsupported ByteSize: {dcb.ByteSize}"
        raise _exceptions.SerialUnknown(message) from None


def dcb_parity(dcb) -> _settings.Parity:
    if dcb.Parity == win32.NOPARITY:
        return _settings.Parity.NONE
    if dcb.Parity == win32.ODDPARITY:
        return _settings.Parity.ODD
    if dcb.Parity == win32.EVENPARITY:
        return _settings.Parity.EVEN
    raise _exceptions.SerialUnknown(f"Unsupported Parity: {dcb.Parity}")


def dcb_set_parity(dcb, parity: _settings.Parity) -> None:
    dcb.Parity = {
        _settings.Parity.NONE: win32.NOPARITY,
        _settings.Parity.ODD: win32.ODDPARITY,
        _settings.Parity.EVEN: win32.EVENPARITY,
    }[parity]
    dcb.fParity = int(parity is not _settings.Parity.NONE)


def dcb_stop_bits(dcb) -> _settings.StopBits:
    if dcb.StopBits == win32.ONESTOPBIT:
        return _settings.StopBits.ONE
    if dcb.StopBits == win32.TWOSTOPBITS:
        return _settings.StopBits.TWO
    raise _exceptions.SerialUnknown(f"Unsupported StopBits: {dcb.StopBits}")


def dcb_set_stop_bits(dcb, stop_bits: _settings.StopBits) -> None:
    if stop_bits is _settings.StopBits.TWO:
        dcb.StopBits = win32.TWOSTOPBITS
    else:
        dcb.StopBits = win32.ONESTOPBIT


def dcb_flow_control(dcb) -> _settings.FlowControl:
    if dcb.fOutxCtsFlow:
        return _settings.FlowControl.HARDWARE
    if dcb.fOutX and dcb.fInX:
        return _settings.FlowControl.SOFTWARE
    return _settings.FlowControl.NONE


def dcb_set_flow_control(dcb, flow_control: _settings.FlowControl) -> None:
    hardware = flow_control is _settings.FlowControl.HARDWARE
    software = flow_control is _settings.FlowControl.SOFTWARE
    dcb.fOutxCtsFlow = int(hardware)
    dcb.fRtsControl = (
        win32.RTS_CONTROL_HANDSHAKE if hardware else win32.RTS_CONTROL_ENABLE
    )
    dcb.fOutX = int(software)
    dcb.fInX = int(software)


def _last_error(what: str, port: str | None) -> _exceptions.SerialPortError:
    code = win32.GetLastError()
    message = f"{what} failed: {ctypes.FormatError(code).strip()}"
    return _exceptions.from_winerror(code, message, port)
