"""Exception hierarchy for serialport"""

import enum
import errno


class ErrorKind(enum.Enum):
    """Categories of serial port failures (may grow over time)"""

    NO_DEVICE = "no_device"
    INVALID_INPUT = "invalid_input"
    UNKNOWN = "unknown"
    IO = "io"


class SerialPortError(OSError):
    kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        port: str | None = None,
        io_errno: int | None = None,
    ):
        super().__init__(f"{port}: {message}" if port else message)
        self.description = message
        self.port = port
        self.errno = io_errno
        self.strerror = message

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else self.description

    @staticmethod
    def from_os_error(
        ex: OSError, port: str | None = None
    ) -> "SerialPortError":
        """Wraps a host I/O error as-is (kind IO, same errno)"""

        if isinstance(ex, SerialPortError):
            return ex
        message = ex.strerror or str(ex) or type(ex).__name__
        out = SerialIoException(message, port, ex.errno)
        out.__cause__ = ex
        return out

    def to_os_error(self) -> OSError:
        """Collapses this error into the nearest plain OSError"""

        if self.kind is ErrorKind.NO_DEVICE:
            return OSError(errno.ENOENT, self.description)
        if self.kind is ErrorKind.INVALID_INPUT:
            return OSError(errno.EINVAL, self.description)
        if self.kind is ErrorKind.IO and self.errno is not None:
            return OSError(self.errno, self.description)
        return OSError(self.description)


class SerialNoDevice(SerialPortError):
    kind = ErrorKind.NO_DEVICE


class SerialInvalidInput(SerialPortError):
    kind = ErrorKind.INVALID_INPUT


class SerialUnknown(SerialPortError):
    kind = ErrorKind.UNKNOWN


class SerialIoException(SerialPortError):
    kind = ErrorKind.IO


class SerialTimeout(SerialIoException, TimeoutError):
    def __init__(self, message: str = "Operation timed out", port=None):
        super().__init__(message, port, errno.ETIMEDOUT)


class SerialScanException(SerialUnknown):
    pass


_NO_DEVICE_ERRNOS = {errno.ENOENT, errno.ENODEV, errno.ENXIO}

# winerror codes
_ERROR_FILE_NOT_FOUND = 2
_ERROR_PATH_NOT_FOUND = 3
_ERROR_ACCESS_DENIED = 5
_ERROR_INVALID_PARAMETER = 87
_ERROR_DEVICE_NOT_CONNECTED = 1167
_NO_DEVICE_WINERRORS = {
    _ERROR_FILE_NOT_FOUND,
    _ERROR_PATH_NOT_FOUND,
    _ERROR_ACCESS_DENIED,
    _ERROR_DEVICE_NOT_CONNECTED,
}


def classify_errno(ex: OSError, port: str | None = None) -> SerialPortError:
    """Wraps an OSError from a POSIX call with the most specific kind"""

    if isinstance(ex, SerialPortError):
        return ex
    message = ex.strerror or str(ex)
    if ex.errno in _NO_DEVICE_ERRNOS:
        out: SerialPortError = SerialNoDevice(message, port)
    elif ex.errno == errno.EINVAL:
        out = SerialInvalidInput(message, port)
    else:
        return SerialPortError.from_os_error(ex, port)
    out.__cause__ = ex
    return out


def from_winerror(
    winerror: int, message: str, port: str | None = None
) -> SerialPortError:
    """Wraps a Win32 error code with the most specific kind"""

    if winerror in _NO_DEVICE_WINERRORS:
        out: SerialPortError = SerialNoDevice(message, port)
    elif winerror == _ERROR_INVALID_PARAMETER:
        out = SerialInvalidInput(message, port)
    else:
        out = SerialIoException(message, port)
    out.winerror = winerror
    return out
