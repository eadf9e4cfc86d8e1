import abc
import io

from serialport import _exceptions
from serialport import _settings


class SerialPort(io.RawIOBase):
    """
    Capability interface shared by every serial port backend.

    Reads block for up to timeout() and return whatever bytes are available,
    raising SerialTimeout if none arrive. Writes return once the driver has
    accepted the data; flush() waits for transmission.

    Settings are cached per object where the platform needs a cache (the
    timeout everywhere, the baud rate on macOS). Two objects for the same
    device (see try_clone()) do not share that cache, so changing settings
    through both can leave one of them out of sync with the device.
    """

    TIMEOUT_MAX: float

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return True

    def readall(self) -> bytes:
        """Reads until the line is quiet for timeout(), then returns it all"""

        data = bytearray()
        chunk = bytearray(io.DEFAULT_BUFFER_SIZE)
        while True:
            try:
                count = self.readinto(chunk)
            except _exceptions.SerialTimeout:
                if data:
                    break
                raise
            if not count:
                break
            data += chunk[:count]
        return bytes(data)

    def __repr__(self) -> str:
        fields = [f"name={self.name()!r}"]
        for label, getter in (
            ("baud_rate", self.baud_rate),
            ("data_bits", self.data_bits),
            ("flow_control", self.flow_control),
            ("parity", self.parity),
            ("stop_bits", self.stop_bits),
        ):
            try:
                fields.append(f"{label}={getter()!s}")
            except (OSError, ValueError):
                pass
        return f"{type(self).__name__}({', '.join(fields)})"

    @abc.abstractmethod
    def name(self) -> str | None:
        """The port name (usually the device path); None for virtual ports"""

    @abc.abstractmethod
    def baud_rate(self) -> int:
        """The current baud rate (some drivers report the achieved rate)"""

    @abc.abstractmethod
    def data_bits(self) -> _settings.DataBits:
        pass

    @abc.abstractmethod
    def flow_control(self) -> _settings.FlowControl:
        pass

    @abc.abstractmethod
    def parity(self) -> _settings.Parity:
        pass

    @abc.abstractmethod
    def stop_bits(self) -> _settings.StopBits:
        pass

    @abc.abstractmethod
    def timeout(self) -> float:
        """The I/O timeout in seconds, as clamped to TIMEOUT_MAX"""

    @abc.abstractmethod
    def set_baud_rate(self, baud_rate: int) -> None:
        """Raises SerialInvalidInput if the driver rejects the rate"""

    @abc.abstractmethod
    def set_data_bits(self, data_bits: _settings.DataBits) -> None:
        pass

    @abc.abstractmethod
    def set_flow_control(self, flow_control: _settings.FlowControl) -> None:
        pass

    @abc.abstractmethod
    def set_parity(self, parity: _settings.Parity) -> None:
        pass

    @abc.abstractmethod
    def set_stop_bits(self, stop_bits: _settings.StopBits) -> None:
        pass

    @abc.abstractmethod
    def set_timeout(self, timeout: float | int) -> None:
        pass

    @abc.abstractmethod
    def write_request_to_send(self, level: bool) -> None:
        pass

    @abc.abstractmethod
    def write_data_terminal_ready(self, level: bool) -> None:
        pass

    @abc.abstractmethod
    def read_clear_to_send(self) -> bool:
        pass

    @abc.abstractmethod
    def read_data_set_ready(self) -> bool:
        pass

    @abc.abstractmethod
    def read_ring_indicator(self) -> bool:
        pass

    @abc.abstractmethod
    def read_carrier_detect(self) -> bool:
        pass

    @abc.abstractmethod
    def bytes_to_read(self) -> int:
        pass

    @abc.abstractmethod
    def bytes_to_write(self) -> int:
        pass

    @abc.abstractmethod
    def clear(self, buffer_to_clear: _settings.ClearBuffer) -> None:
        """Discards received-but-unread and/or written-but-unsent bytes"""

    @abc.abstractmethod
    def try_clone(self) -> "SerialPort":
        """
        Returns an independent object for the same device, e.g. to read and
        write from different threads. Settings caches are NOT shared; only
        change settings through one of the objects at a time.
        """

    @abc.abstractmethod
    def set_break(self) -> None:
        """Starts transmitting a break (no-op if already breaking)"""

    @abc.abstractmethod
    def clear_break(self) -> None:
        """Stops transmitting a break (no-op if not breaking)"""


class BorrowedSerialPort(SerialPort):
    """
    Forwards every call to another SerialPort, for code that wants to take
    ownership of a port it should only borrow. Closing the wrapper leaves
    the underlying port open.
    """

    def __init__(self, port: SerialPort):
        super().__init__()
        self._port = port
        self.TIMEOUT_MAX = port.TIMEOUT_MAX

    def __repr__(self) -> str:
        return f"BorrowedSerialPort({self._port!r})"

    def _target(self) -> SerialPort:
        if self.closed:
            raise ValueError("I/O operation on closed port")
        return self._port

    def readinto(self, buffer):
        return self._target().readinto(buffer)

    def write(self, data):
        return self._target().write(data)

    def flush(self) -> None:
        if not self.closed:
            self._port.flush()

    def fileno(self) -> int:
        return self._target().fileno()

    def name(self) -> str | None:
        return self._target().name()

    def baud_rate(self) -> int:
        return self._target().baud_rate()

    def data_bits(self) -> _settings.DataBits:
        return self._target().data_bits()

    def flow_control(self) -> _settings.FlowControl:
        return self._target().flow_control()

    def parity(self) -> _settings.Parity:
        return self._target().parity()

    def stop_bits(self) -> _settings.StopBits:
        return self._target().stop_bits()

    def timeout(self) -> float:
        return self._target().timeout()

    def set_baud_rate(self, baud_rate: int) -> None:
        self._target().set_baud_rate(baud_rate)

    def set_data_bits(self, data_bits: _settings.DataBits) -> None:
        self._target().set_data_bits(data_bits)

    def set_flow_control(self, flow_control: _settings.FlowControl) -> None:
        self._target().set_flow_control(flow_control)

    def set_parity(self, parity: _settings.Parity) -> None:
        self._target().set_parity(parity)

    def set_stop_bits(self, stop_bits: _settings.StopBits) -> None:
        self._target().set_stop_bits(stop_bits)

    def set_timeout(self, timeout: float | int) -> None:
        self._target().set_timeout(timeout)

    def write_request_to_send(self, level: bool) -> None:
        self._target().write_request_to_send(level)

    def write_data_terminal_ready(self, level: bool) -> None:
        self._target().write_data_terminal_ready(level)

    def read_clear_to_send(self) -> bool:
        return self._target().read_clear_to_send()

    def read_data_set_ready(self) -> bool:
        return self._target().read_data_set_ready()

    def read_ring_indicator(self) -> bool:
        return self._target().read_ring_indicator()

    def read_carrier_detect(self) -> bool:
        return self._target().read_carrier_detect()

    def bytes_to_read(self) -> int:
        return self._target().bytes_to_read()

    def bytes_to_write(self) -> int:
        return self._target().bytes_to_write()

    def clear(self, buffer_to_clear: _settings.ClearBuffer) -> None:
        self._target().clear(buffer_to_clear)

    def try_clone(self) -> SerialPort:
        return self._target().try_clone()

    def set_break(self) -> None:
        self._target().set_break()

    def clear_break(self) -> None:
        self._target().clear_break()
