import fcntl
import logging
import termios
import typeguard

from serialport import _exceptions

log = logging.getLogger("serialport.locking")


@typeguard.typechecked
def set_exclusive(port: str | None, fd: int, exclusive: bool) -> None:
    """Claims (TIOCEXCL) or releases (TIOCNXCL) exclusive use of a tty"""

    request = termios.TIOCEXCL if exclusive else termios.TIOCNXCL
    try:
        fcntl.ioctl(fd, request)
    except OSError as ex:
        raise _exceptions.classify_errno(ex, port) from ex
    log.debug(
        "%s TIOC%sEXCL on %s",
        "Acquired" if exclusive else "Released",
        "" if exclusive else "N",
        port or f"fd={fd}",
    )


@typeguard.typechecked
def release_quietly(port: str | None, fd: int) -> None:
    """Drops TIOCEXCL ahead of close(); failures are only logged"""

    try:
        fcntl.ioctl(fd, termios.TIOCNXCL)
        log.debug("Released TIOCEXCL on %s", port or f"fd={fd}")
    except OSError:
        log.debug("Can't release TIOCEXCL on %s", port, exc_info=True)
