import json
import ok_logging_setup
import os
import pytest
import sys
import typing

ok_logging_setup.install(
    {
        "OK_LOGGING_LEVEL": "serialport=DEBUG,WARNING",
        "OK_LOGGING_OUTPUT": "stdout",
    }
)


class PtyDevice(typing.NamedTuple):
    path: str
    master: typing.BinaryIO


@pytest.fixture
def pty_device():
    """A pseudo-terminal slave path to open, and its master end"""

    if sys.platform == "win32":
        pytest.skip("pseudo-terminals need POSIX")

    master_fd, slave_fd = os.openpty()
    try:
        with os.fdopen(master_fd, "r+b", buffering=0) as master:
            yield PtyDevice(path=os.ttyname(slave_fd), master=master)
    finally:
        os.close(slave_fd)


@pytest.fixture
def tty_pair():
    """Connected (master, slave) TTYPorts"""

    if sys.platform == "win32":
        pytest.skip("pseudo-terminals need POSIX")

    import serialport

    master, slave = serialport.TTYPort.pair()
    with master, slave:
        yield master, slave


@pytest.fixture
def set_scan_override(monkeypatch, tmp_path):
    path = tmp_path / "scan.json"
    path.write_text("{}")
    monkeypatch.setenv("SERIALPORT_SCAN_OVERRIDE", str(path))

    def set_ports(ports: dict[str, dict]):
        path.write_text(json.dumps(ports))

    return set_ports
