import array
import errno
import fcntl
import logging
import math
import os
import select
import struct
import sys
import termios

from serial import serialposix

from serialport import _exceptions
from serialport import _locking
from serialport import _port
from serialport import _settings
from serialport import _timeout_math

log = logging.getLogger("serialport.posix")

# VTIME is one byte of deciseconds
VTIME_MAX = 25.5

_STANDARD_SPEEDS = {
    int(name[1:]): getattr(termios, name)
    for name in dir(termios)
    if name.startswith("B") and name[1:].isdigit() and int(name[1:]) > 0
}
_SPEED_RATES = {speed: rate for rate, speed in _STANDARD_SPEEDS.items()}

_CRTSCTS = getattr(termios, "CRTSCTS", getattr(termios, "CNEW_RTSCTS", 0))

_DATA_BITS = {
    _settings.DataBits.FIVE: termios.CS5,
    _settings.DataBits.SIX: termios.CS6,
    _settings.DataBits.SEVEN: termios.CS7,
    _settings.DataBits.EIGHT: termios.CS8,
}

# <sys/ttycom.h> break requests, shared by macOS and the BSDs
_BSD_TIOCSBRK = getattr(serialposix.PlatformSpecific, "TIOCSBRK", 0x2000747B)
_BSD_TIOCCBRK = getattr(serialposix.PlatformSpecific, "TIOCCBRK", 0x2000747A)

_CLEAR_QUEUES = {
    _settings.ClearBuffer.INPUT: termios.TCIFLUSH,
    _settings.ClearBuffer.OUTPUT: termios.TCOFLUSH,
    _settings.ClearBuffer.ALL: termios.TCIOFLUSH,
}

# open() errors meaning the path exists but is no terminal
_NOT_A_TTY_ERRNOS = {errno.EISDIR, errno.ENOTTY}

# tcgetattr() list indexes
_IFLAG, _OFLAG, _CFLAG, _LFLAG, _ISPEED, _OSPEED, _CC = range(7)


def make_raw(attrs: list) -> None:
    """Turns off line editing, echo, signals and byte translation"""

    attrs[_CFLAG] |= termios.CLOCAL | termios.CREAD
    attrs[_LFLAG] &= ~(
        termios.ICANON
        | termios.ECHO
        | termios.ECHOE
        | termios.ECHOK
        | termios.ECHONL
        | termios.ISIG
        | termios.IEXTEN
    )
    attrs[_OFLAG] &= ~(termios.OPOST | termios.ONLCR | termios.OCRNL)
    attrs[_IFLAG] &= ~(
        termios.INLCR
        | termios.IGNCR
        | termios.ICRNL
        | termios.IGNBRK
        | termios.BRKINT
        | termios.PARMRK
        | termios.ISTRIP
        | termios.IXON
    )
    if hasattr(termios, "IUCLC"):
        attrs[_IFLAG] &= ~termios.IUCLC


def set_data_bits(attrs: list, data_bits: _settings.DataBits) -> None:
    attrs[_CFLAG] &= ~termios.CSIZE
    attrs[_CFLAG] |= _DATA_BITS[data_bits]


def get_data_bits(attrs: list) -> _settings.DataBits:
    size = attrs[_CFLAG] & termios.CSIZE
    for data_bits, flag in _DATA_BITS.items():
        if size == flag:
            return data_bits
    raise _exceptions.SerialUnknown(f"Bad character size flags: {size:#o}")


def set_parity(attrs: list, parity: _settings.Parity) -> None:
    attrs[_CFLAG] &= ~(termios.PARENB | termios.PARODD | serialposix.CMSPAR)
    if parity is _settings.Parity.NONE:
        attrs[_IFLAG] &= ~termios.INPCK
        attrs[_IFLAG] |= termios.IGNPAR
    else:
        attrs[_CFLAG] |= termios.PARENB
        if parity is _settings.Parity.ODD:
            attrs[_CFLAG] |= termios.PARODD
        attrs[_IFLAG] |= termios.INPCK
        attrs[_IFLAG] &= ~termios.IGNPAR


def get_parity(attrs: list) -> _settings.Parity:
    cflag = attrs[_CFLAG]
    if not cflag & termios.PARENB:
        return _settings.Parity.NONE
    if cflag & serialposix.CMSPAR:
        raise _exceptions.SerialUnknown("Mark/space parity is not supported")
    if cflag & termios.PARODD:
        return _settings.Parity.ODD
    return _settings.Parity.EVEN


def set_stop_bits(attrs: list, stop_bits: _settings.StopBits) -> None:
    if stop_bits is _settings.StopBits.TWO:
        attrs[_CFLAG] |= termios.CSTOPB
    else:
        attrs[_CFLAG] &= ~termios.CSTOPB


def get_stop_bits(attrs: list) -> _settings.StopBits:
    if attrs[_CFLAG] & termios.CSTOPB:
        return _settings.StopBits.TWO
    return _settings.StopBits.ONE


def set_flow_control(attrs: list, flow_control: _settings.FlowControl) -> None:
    attrs[_IFLAG] &= ~(termios.IXON | termios.IXOFF | termios.IXANY)
    attrs[_CFLAG] &= ~_CRTSCTS
    if flow_control is _settings.FlowControl.SOFTWARE:
        attrs[_IFLAG] |= termios.IXON | termios.IXOFF
    elif flow_control is _settings.FlowControl.HARDWARE:
        if not _CRTSCTS:
            message = "Hardware flow control is not supported"
            raise _exceptions.SerialInvalidInput(message)
        attrs[_CFLAG] |= _CRTSCTS


def get_flow_control(attrs: list) -> _settings.FlowControl:
    if attrs[_CFLAG] & _CRTSCTS:
        return _settings.FlowControl.HARDWARE
    xonxoff = termios.IXON | termios.IXOFF
    if attrs[_IFLAG] & xonxoff == xonxoff:
        return _settings.FlowControl.SOFTWARE
    return _settings.FlowControl.NONE


def set_timeout_chars(attrs: list, timeout: float | int) -> None:
    attrs[_CC][termios.VMIN] = 0
    attrs[_CC][termios.VTIME] = min(math.ceil(timeout * 10), 255)


class TTYPort(_port.SerialPort):
    """
    A serial port backed by a POSIX terminal device.

    Opening claims exclusive access (TIOCEXCL); set_exclusive(False) lets
    other processes open the device too. Closing drops the claim and the
    descriptor without draining output; call flush() first if that matters.
    """

    TIMEOUT_MAX = _timeout_math.TIMEOUT_MAX
    _TIOCSBRK = serialposix.TIOCSBRK
    _TIOCCBRK = serialposix.TIOCCBRK

    def __init__(
        self,
        fd: int,
        name: str | None,
        *,
        timeout: float | int = 0.0,
        exclusive: bool = False,
    ):
        self._fd = fd
        super().__init__()
        self._name = name
        self._timeout = float(timeout)
        self._exclusive = exclusive

    @classmethod
    def open(cls, settings) -> "TTYPort":
        """Opens and fully configures the device named by the settings"""

        port_cls = cls._concrete()
        path = settings.path
        flags = os.O_RDWR | os.O_NOCTTY | os.O_NONBLOCK
        try:
            fd = os.open(path, flags)
        except OSError as ex:
            if ex.errno in _NOT_A_TTY_ERRNOS:
                message = "Not a terminal device"
                raise _exceptions.SerialNoDevice(message, path) from ex
            raise _exceptions.classify_errno(ex, path) from ex

        try:
            if not os.isatty(fd):
                raise _exceptions.SerialNoDevice("Not a terminal device", path)
            _locking.set_exclusive(path, fd, True)
            fl = fcntl.fcntl(fd, fcntl.F_GETFL)
            fcntl.fcntl(fd, fcntl.F_SETFL, fl & ~os.O_NONBLOCK)
        except BaseException as ex:
            os.close(fd)
            if isinstance(ex, OSError):
                raise _exceptions.classify_errno(ex, path)
            raise

        port = port_cls(fd, path, exclusive=True)
        try:
            port._configure(settings)
        except BaseException:
            port.close()
            raise

        log.debug("Opened %r", port)
        return port

    @classmethod
    def pair(cls) -> tuple["TTYPort", "TTYPort"]:
        """
        Creates a connected pseudo-terminal pair (master, slave), both in raw
        mode with a 0.1s timeout. Bytes written to one arrive at the other.
        The master has no name; the slave is named by its device path.
        """

        port_cls = cls._concrete()
        master_fd, slave_fd = os.openpty()
        master = port_cls(master_fd, None)
        try:
            slave = port_cls(slave_fd, os.ttyname(slave_fd))
        except BaseException:
            os.close(slave_fd)
            master.close()
            raise

        try:
            for port in (master, slave):
                port._update(make_raw)
                port.set_timeout(0.1)
        except BaseException:
            master.close()
            slave.close()
            raise

        log.debug("Created pty pair (slave=%s)", slave.name())
        return master, slave

    @classmethod
    def from_raw_fd(cls, fd: int) -> "TTYPort":
        """Takes ownership of an open tty descriptor (timeout 0.1s, shared)"""

        return cls._concrete()(fd, None, timeout=0.1)

    @classmethod
    def _concrete(cls) -> type["TTYPort"]:
        return native_tty_type() if cls is TTYPort else cls

    def into_raw_fd(self) -> int:
        """Gives up ownership of the descriptor; this object is closed"""

        fd = self._fileno()
        self._fd = -1
        self.close()
        return fd

    def close(self) -> None:
        fd, self._fd = self._fd, -1
        if fd >= 0:
            if self._exclusive:
                _locking.release_quietly(self._name, fd)
            try:
                os.close(fd)
            except OSError:
                log.debug("Error closing %s", self._name, exc_info=True)
            else:
                log.debug("Closed %s", self._name or f"fd={fd}")
        super().close()

    def fileno(self) -> int:
        return self._fileno()

    def isatty(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        fd = self._fileno()
        view = memoryview(buffer).cast("B")
        if not view.nbytes:
            return 0
        self._wait(select.POLLIN)
        try:
            return os.readv(fd, [view])
        except OSError as ex:
            raise _exceptions.classify_errno(ex, self._name) from ex

    def write(self, data) -> int:
        fd = self._fileno()
        view = memoryview(data).cast("B")
        if not view.nbytes:
            return 0
        self._wait(select.POLLOUT)
        try:
            return os.write(fd, view)
        except OSError as ex:
            raise _exceptions.classify_errno(ex, self._name) from ex

    def flush(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed port")
        if self._fd >= 0:
            try:
                termios.tcdrain(self._fd)
            except termios.error as ex:
                raise self._fail(ex) from ex

    def name(self) -> str | None:
        return self._name

    def exclusive(self) -> bool:
        return self._exclusive

    def set_exclusive(self, exclusive: bool) -> None:
        _locking.set_exclusive(self._name, self._fileno(), exclusive)
        self._exclusive = exclusive

    def baud_rate(self) -> int:
        speed = self._tcgetattr()[_OSPEED]
        try:
            return _SPEED_RATES[speed]
        except KeyError:
            message = f"Unknown speed code: {speed:#o}"
            raise _exceptions.SerialUnknown(message, self._name) from None

    def data_bits(self) -> _settings.DataBits:
        return get_data_bits(self._tcgetattr())

    def flow_control(self) -> _settings.FlowControl:
        return get_flow_control(self._tcgetattr())

    def parity(self) -> _settings.Parity:
        return get_parity(self._tcgetattr())

    def stop_bits(self) -> _settings.StopBits:
        return get_stop_bits(self._tcgetattr())

    def timeout(self) -> float:
        return self._timeout

    def set_baud_rate(self, baud_rate: int) -> None:
        self._update(None, baud_rate)
        log.debug("Set %s baud rate: %d", self._name, baud_rate)

    def set_data_bits(self, data_bits: _settings.DataBits) -> None:
        self._update(lambda attrs: set_data_bits(attrs, data_bits))

    def set_flow_control(self, flow_control: _settings.FlowControl) -> None:
        self._update(lambda attrs: set_flow_control(attrs, flow_control))

    def set_parity(self, parity: _settings.Parity) -> None:
        self._update(lambda attrs: set_parity(attrs, parity))

    def set_stop_bits(self, stop_bits: _settings.StopBits) -> None:
        self._update(lambda attrs: set_stop_bits(attrs, stop_bits))

    def set_timeout(self, timeout: float | int) -> None:
        timeout = min(max(float(timeout), 0.0), self.TIMEOUT_MAX)
        self._update(lambda attrs: set_timeout_chars(attrs, timeout))
        self._timeout = timeout

    def write_request_to_send(self, level: bool) -> None:
        request = serialposix.TIOCMBIS if level else serialposix.TIOCMBIC
        self._ioctl(request, serialposix.TIOCM_RTS_str)

    def write_data_terminal_ready(self, level: bool) -> None:
        request = serialposix.TIOCMBIS if level else serialposix.TIOCMBIC
        self._ioctl(request, serialposix.TIOCM_DTR_str)

    def read_clear_to_send(self) -> bool:
        return self._read_pin(serialposix.TIOCM_CTS)

    def read_data_set_ready(self) -> bool:
        return self._read_pin(serialposix.TIOCM_DSR)

    def read_ring_indicator(self) -> bool:
        return self._read_pin(serialposix.TIOCM_RI)

    def read_carrier_detect(self) -> bool:
        return self._read_pin(serialposix.TIOCM_CD)

    def bytes_to_read(self) -> int:
        return self._ioctl_int(serialposix.TIOCINQ)

    def bytes_to_write(self) -> int:
        return self._ioctl_int(serialposix.TIOCOUTQ)

    def clear(self, buffer_to_clear: _settings.ClearBuffer) -> None:
        try:
            termios.tcflush(self._fileno(), _CLEAR_QUEUES[buffer_to_clear])
        except termios.error as ex:
            raise self._fail(ex) from ex

    def try_clone(self) -> "TTYPort":
        try:
            fd = os.dup(self._fileno())
        except OSError as ex:
            raise _exceptions.classify_errno(ex, self._name) from ex
        clone = type(self)(
            fd, self._name, timeout=self._timeout, exclusive=self._exclusive
        )
        self._copy_cache(clone)
        return clone

    def set_break(self) -> None:
        self._ioctl(self._TIOCSBRK)

    def clear_break(self) -> None:
        self._ioctl(self._TIOCCBRK)

    def send_break(self, duration: int = 0) -> None:
        """Transmits a break; duration 0 is the platform default length"""

        try:
            termios.tcsendbreak(self._fileno(), duration)
        except termios.error as ex:
            raise self._fail(ex) from ex

    def _fileno(self) -> int:
        if self.closed or self._fd < 0:
            raise ValueError("I/O operation on closed port")
        return self._fd

    def _fail(self, ex: Exception) -> _exceptions.SerialPortError:
        if isinstance(ex, termios.error):
            ex = OSError(*ex.args)
        return _exceptions.classify_errno(ex, self._name)

    def _wait(self, events: int) -> None:
        poller = select.poll()
        poller.register(self._fileno(), events)
        deadline = _timeout_math.to_deadline(self._timeout)
        while True:
            remaining = _timeout_math.from_deadline(deadline)
            if poller.poll(math.ceil(min(remaining, VTIME_MAX) * 1000)):
                return
            if _timeout_math.from_deadline(deadline) <= 0:
                raise _exceptions.SerialTimeout(port=self._name)

    def _ioctl(self, request: int, arg: bytes = b"") -> bytes:
        try:
            if arg:
                return fcntl.ioctl(self._fileno(), request, arg)
            fcntl.ioctl(self._fileno(), request)
            return b""
        except OSError as ex:
            raise _exceptions.classify_errno(ex, self._name) from ex

    def _ioctl_int(self, request: int) -> int:
        result = self._ioctl(request, serialposix.TIOCM_zero_str)
        return struct.unpack("I", result)[0]

    def _read_pin(self, bit: int) -> bool:
        return bool(self._ioctl_int(serialposix.TIOCMGET) & bit)

    def _tcgetattr(self) -> list:
        try:
            return termios.tcgetattr(self._fileno())
        except termios.error as ex:
            raise self._fail(ex) from ex

    def _tcsetattr(self, attrs: list) -> None:
        try:
            termios.tcsetattr(self._fileno(), termios.TCSANOW, attrs)
        except termios.error as ex:
            raise self._fail(ex) from ex

    def _configure(self, settings) -> None:
        def merge(attrs):
            make_raw(attrs)
            set_data_bits(attrs, settings.data_bits)
            set_parity(attrs, settings.parity)
            set_stop_bits(attrs, settings.stop_bits)
            set_flow_control(attrs, settings.flow_control)

        self._update(merge, settings.baud_rate)
        self.set_timeout(settings.timeout)

    def _update(self, mutate, baud_rate: int | None = None) -> None:
        """Reads settings, applies 'mutate' and/or a new rate, writes back"""

        if baud_rate is not None and baud_rate <= 0:
            message = f"Bad baud rate: {baud_rate}"
            raise _exceptions.SerialInvalidInput(message, self._name)
        attrs = self._tcgetattr()
        if mutate:
            mutate(attrs)
        self._apply(attrs, baud_rate)

    def _apply(self, attrs: list, baud_rate: int | None) -> None:
        if baud_rate is not None:
            attrs[_ISPEED] = attrs[_OSPEED] = self._speed_code(baud_rate)
        self._tcsetattr(attrs)

    def _speed_code(self, baud_rate: int) -> int:
        try:
            return _STANDARD_SPEEDS[baud_rate]
        except KeyError:
            message = f"Baud rate {baud_rate} not supported on {sys.platform}"
            raise _exceptions.SerialInvalidInput(message, self._name) from None

    def _copy_cache(self, clone: "TTYPort") -> None:
        pass

    def _rejected_rate(self, ex: OSError, baud_rate: int):
        out = _exceptions.classify_errno(ex, self._name)
        if out.kind is _exceptions.ErrorKind.IO:
            message = f"Baud rate {baud_rate} rejected ({out.description})"
            out = _exceptions.SerialInvalidInput(message, self._name)
        return out


class _LinuxTTYPort(TTYPort):
    """Arbitrary baud rates via the termios2 (BOTHER) ioctls"""

    _PLACEHOLDER = termios.B38400

    def baud_rate(self) -> int:
        buf = self._termios2()
        if buf[2] & termios.CBAUD == serialposix.BOTHER:
            return buf[10]
        return super().baud_rate()

    def _apply(self, attrs: list, baud_rate: int | None) -> None:
        if baud_rate is None:
            buf = self._termios2()
            is_other = buf[2] & termios.CBAUD == serialposix.BOTHER
            custom = buf[10] if is_other else None
        elif baud_rate in _STANDARD_SPEEDS:
            custom = None
        else:
            custom = baud_rate

        if custom is None:
            super()._apply(attrs, baud_rate)
            return

        # tcsetattr() can't express BOTHER, so pass a standard speed first
        attrs[_ISPEED] = attrs[_OSPEED] = self._PLACEHOLDER
        self._tcsetattr(attrs)
        buf = self._termios2()
        buf[2] &= ~termios.CBAUD
        buf[2] |= serialposix.BOTHER
        buf[9] = buf[10] = custom
        try:
            fcntl.ioctl(self._fileno(), serialposix.TCSETS2, buf)
        except OSError as ex:
            raise self._rejected_rate(ex, custom) from ex

    def _termios2(self) -> array.array:
        buf = array.array("i", [0] * 64)
        try:
            fcntl.ioctl(self._fileno(), serialposix.TCGETS2, buf)
        except OSError as ex:
            raise _exceptions.classify_errno(ex, self._name) from ex
        return buf


class _DarwinTTYPort(TTYPort):
    """
    Arbitrary baud rates via IOSSIOSPEED. The rate set that way is not
    visible through tcgetattr(), so the last rate set is cached here.
    """

    _IOSSIOSPEED = getattr(serialposix, "IOSSIOSPEED", 0x80045402)
    _TIOCSBRK = _BSD_TIOCSBRK
    _TIOCCBRK = _BSD_TIOCCBRK
    _PLACEHOLDER = termios.B9600

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._baud: int | None = None
        self._custom_baud = False

    def baud_rate(self) -> int:
        if self._baud is not None:
            return self._baud
        return super().baud_rate()

    def _apply(self, attrs: list, baud_rate: int | None) -> None:
        if baud_rate is not None:
            custom = baud_rate not in _STANDARD_SPEEDS
        else:
            custom = self._custom_baud
        if not custom:
            super()._apply(attrs, baud_rate)
        else:
            rate = baud_rate if baud_rate is not None else self._baud
            attrs[_ISPEED] = attrs[_OSPEED] = self._PLACEHOLDER
            self._tcsetattr(attrs)
            buf = array.array("i", [rate])
            try:
                fcntl.ioctl(self._fileno(), self._IOSSIOSPEED, buf, 1)
            except OSError as ex:
                raise self._rejected_rate(ex, rate) from ex
        if baud_rate is not None:
            self._baud, self._custom_baud = baud_rate, custom

    def _copy_cache(self, clone: "TTYPort") -> None:
        clone._baud, clone._custom_baud = self._baud, self._custom_baud


class _BsdTTYPort(TTYPort):
    """On the BSDs the termios speed value is the baud rate itself"""

    _TIOCSBRK = _BSD_TIOCSBRK
    _TIOCCBRK = _BSD_TIOCCBRK

    def baud_rate(self) -> int:
        return self._tcgetattr()[_OSPEED]

    def _speed_code(self, baud_rate: int) -> int:
        return baud_rate


def native_tty_type() -> type[TTYPort]:
    """Picks the TTYPort refinement for the running OS"""

    if sys.platform.startswith("linux") and hasattr(serialposix, "TCSETS2"):
        return _LinuxTTYPort
    if sys.platform == "darwin":
        return _DarwinTTYPort
    if sys.platform.startswith(("freebsd", "openbsd", "netbsd", "dragonfly")):
        return _BsdTTYPort
    return TTYPort
