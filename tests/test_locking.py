"""Unit tests for serialport._locking (ioctls mocked)."""

import errno
import termios

import pytest

from serialport import _exceptions
from serialport import _locking


def test_set_exclusive_claims_and_releases(mocker):
    mock_ioctl = mocker.patch("fcntl.ioctl")

    _locking.set_exclusive("/dev/ttyUSB0", 999, True)
    mock_ioctl.assert_called_with(999, termios.TIOCEXCL)

    _locking.set_exclusive("/dev/ttyUSB0", 999, False)
    mock_ioctl.assert_called_with(999, termios.TIOCNXCL)


def test_set_exclusive_classifies_errors(mocker):
    mocker.patch("fcntl.ioctl", side_effect=OSError(errno.ENODEV, "gone"))
    with pytest.raises(_exceptions.SerialNoDevice) as info:
        _locking.set_exclusive("/dev/ttyUSB0", 999, True)
    assert info.value.port == "/dev/ttyUSB0"

    mocker.patch("fcntl.ioctl", side_effect=OSError(errno.EBUSY, "busy"))
    with pytest.raises(_exceptions.SerialIoException) as info:
        _locking.set_exclusive(None, 999, True)
    assert info.value.errno == errno.EBUSY


def test_release_quietly_ignores_errors(mocker):
    mock_ioctl = mocker.patch("fcntl.ioctl", side_effect=OSError(errno.EBADF))
    _locking.release_quietly("/dev/ttyUSB0", 999)
    mock_ioctl.assert_called_once_with(999, termios.TIOCNXCL)
