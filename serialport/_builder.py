import datetime
import logging

import pydantic

from serialport import _backend
from serialport import _exceptions
from serialport import _port
from serialport import _settings

log = logging.getLogger("serialport.builder")


class SerialPortSettings(pydantic.BaseModel):
    """
    Desired configuration of a port before opening.

    Defaults to 8 data bits, no parity, 1 stop bit, no flow control and a
    zero timeout. Parity and flow control also accept their text forms
    ("e", "hw", ...); the timeout accepts seconds or a timedelta.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    path: str
    baud_rate: int = pydantic.Field(gt=0)
    data_bits: _settings.DataBits = _settings.DataBits.EIGHT
    flow_control: _settings.FlowControl = _settings.FlowControl.NONE
    parity: _settings.Parity = _settings.Parity.NONE
    stop_bits: _settings.StopBits = _settings.StopBits.ONE
    timeout: float = pydantic.Field(default=0.0, ge=0)

    @pydantic.field_validator("flow_control", mode="before")
    @classmethod
    def _parse_flow_control(cls, value):
        if isinstance(value, str):
            return _settings.FlowControl.parse(value)
        return value

    @pydantic.field_validator("parity", mode="before")
    @classmethod
    def _parse_parity(cls, value):
        if isinstance(value, str):
            return _settings.Parity.parse(value)
        return value

    @pydantic.field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value):
        if isinstance(value, datetime.timedelta):
            return value.total_seconds()
        return value


class SerialPortBuilder:
    """
    Chainable port configuration; every setter returns a new builder.
    Settings the model rejects raise SerialInvalidInput.

        port = serialport.new("/dev/ttyUSB0", 115200).timeout(1).open()
    """

    def __init__(self, settings: SerialPortSettings):
        self.settings = settings

    def __repr__(self) -> str:
        return f"SerialPortBuilder({self.settings!r})"

    def __eq__(self, other):
        if not isinstance(other, SerialPortBuilder):
            return NotImplemented
        return self.settings == other.settings

    def path(self, path: str) -> "SerialPortBuilder":
        return self._replace(path=path)

    def baud_rate(self, baud_rate: int) -> "SerialPortBuilder":
        return self._replace(baud_rate=baud_rate)

    def data_bits(
        self, data_bits: _settings.DataBits | int
    ) -> "SerialPortBuilder":
        return self._replace(data_bits=data_bits)

    def flow_control(
        self, flow_control: _settings.FlowControl | str
    ) -> "SerialPortBuilder":
        return self._replace(flow_control=flow_control)

    def parity(self, parity: _settings.Parity | str) -> "SerialPortBuilder":
        return self._replace(parity=parity)

    def stop_bits(
        self, stop_bits: _settings.StopBits | int
    ) -> "SerialPortBuilder":
        return self._replace(stop_bits=stop_bits)

    def timeout(
        self, timeout: float | int | datetime.timedelta
    ) -> "SerialPortBuilder":
        return self._replace(timeout=timeout)

    def open(self) -> _port.SerialPort:
        """Opens the port with the platform's backend"""

        return self.open_native()

    def open_native(self) -> _port.SerialPort:
        """Like open(), typed as the backend class (TTYPort or COMPort)"""

        port_type = _backend.native_port_type()
        log.debug("Opening %s with %s", self.settings.path, port_type.__name__)
        return port_type.open(self.settings)

    def _replace(self, **changes) -> "SerialPortBuilder":
        return _validated({**self.settings.model_dump(), **changes})


def new(path: str, baud_rate: int) -> SerialPortBuilder:
    """Starts configuring the port at 'path' (8N1, no flow control)"""

    return _validated({"path": path, "baud_rate": baud_rate})


def _validated(data: dict) -> SerialPortBuilder:
    try:
        return SerialPortBuilder(SerialPortSettings.model_validate(data))
    except pydantic.ValidationError as ex:
        problems = "; ".join(
            f"{'.'.join(map(str, err['loc']))}: {err['msg']}"
            for err in ex.errors()
        )
        path = data.get("path")
        port = path if isinstance(path, str) else None
        message = f"Bad port settings ({problems})"
        raise _exceptions.SerialInvalidInput(message, port) from ex
