import enum


class DataBits(enum.IntEnum):
    """Number of bits per character"""

    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8

    def __str__(self) -> str:
        return self.name.title()


class StopBits(enum.IntEnum):
    """Number of stop bits transmitted after every character"""

    ONE = 1
    TWO = 2

    def __str__(self) -> str:
        return self.name.title()


class Parity(enum.Enum):
    """
    Parity checking modes

    With ODD or EVEN an extra bit is sent with each character so the count
    of 1 bits (including the parity bit) is odd or even. NONE sends no
    parity bit.
    """

    NONE = "none"
    ODD = "odd"
    EVEN = "even"

    def __str__(self) -> str:
        return self.name.title()

    @classmethod
    def parse(cls, text: str) -> "Parity":
        """Parses 'none'/'n', 'odd'/'o' or 'even'/'e' (any case)"""

        try:
            return _PARITY_NAMES[text.strip().lower()]
        except KeyError:
            raise ValueError(f"Bad parity: {text!r}") from None


class FlowControl(enum.Enum):
    """Flow control modes (XON/XOFF for SOFTWARE, RTS/CTS for HARDWARE)"""

    NONE = "none"
    SOFTWARE = "software"
    HARDWARE = "hardware"

    def __str__(self) -> str:
        return self.name.title()

    @classmethod
    def parse(cls, text: str) -> "FlowControl":
        """Parses 'none'/'n', 'software'/'sw'/'s' or 'hardware'/'hw'/'h'"""

        try:
            return _FLOW_CONTROL_NAMES[text.strip().lower()]
        except KeyError:
            raise ValueError(f"Bad flow control: {text!r}") from None


class ClearBuffer(enum.Enum):
    """Which buffer(s) SerialPort.clear() discards"""

    INPUT = "input"
    OUTPUT = "output"
    ALL = "all"


_PARITY_NAMES = {
    "none": Parity.NONE,
    "n": Parity.NONE,
    "odd": Parity.ODD,
    "o": Parity.ODD,
    "even": Parity.EVEN,
    "e": Parity.EVEN,
}

_FLOW_CONTROL_NAMES = {
    "none": FlowControl.NONE,
    "n": FlowControl.NONE,
    "software": FlowControl.SOFTWARE,
    "sw": FlowControl.SOFTWARE,
    "s": FlowControl.SOFTWARE,
    "hardware": FlowControl.HARDWARE,
    "hw": FlowControl.HARDWARE,
    "h": FlowControl.HARDWARE,
}
