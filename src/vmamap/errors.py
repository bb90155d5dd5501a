"""Error taxonomy for vmamap requests."""

import errno


class VmaMapError(Exception):
    """Base class for every failure reported by a memory-map request."""

    errno: int = errno.EIO


class InvalidArgument(VmaMapError):
    """Caller supplied a malformed value (non-positive PID, bad capacity)."""

    errno = errno.EINVAL


class ProcessNotFound(VmaMapError):
    """No live process has the requested identifier."""

    errno = errno.ESRCH

    def __init__(self, pid: int) -> None:
        super().__init__(f"no such process: {pid}")
        self.pid = pid


class NoAddressSpace(VmaMapError):
    """The process exists but has no user address space (kernel thread, zombie)."""

    errno = errno.EFAULT

    def __init__(self, pid: int) -> None:
        super().__init__(f"process {pid} has no address space")
        self.pid = pid


class TransferFault(VmaMapError):
    """Data could not be moved across the request boundary."""

    errno = errno.EFAULT


class UnsupportedCommand(VmaMapError):
    """The dispatch entry point received a command it does not implement."""

    errno = errno.ENOTTY


class ChannelError(VmaMapError):
    """The client could not open, or already closed, its request channel."""

    errno = errno.ENODEV
