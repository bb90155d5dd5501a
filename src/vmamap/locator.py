"""Process Locator: PID to pinned address-space handle."""

import logging

from vmamap.errors import InvalidArgument, NoAddressSpace, ProcessNotFound
from vmamap.space import AddressSpace, ProcessTable

logger = logging.getLogger(__name__)


def validate_pid(pid: object) -> int:
    """Reject anything that is not a positive integer, before any lookup."""
    if isinstance(pid, bool) or not isinstance(pid, int):
        raise InvalidArgument(f"process id must be an integer, got {pid!r}")
    if pid <= 0:
        raise InvalidArgument(f"process id must be positive, got {pid}")
    return pid


class ProcessHandle:
    """
    Pinned reference to one process's address space.

    Use as a context manager; the pin is dropped exactly once however the
    block exits. Further ``release()`` calls are no-ops.
    """

    def __init__(self, pid: int, address_space: AddressSpace) -> None:
        """Wrap an address space the caller has already pinned."""
        self.pid = pid
        self._address_space = address_space
        self._released = False

    @property
    def address_space(self) -> AddressSpace:
        if self._released:
            raise RuntimeError(f"handle for pid {self.pid} already released")
        return self._address_space

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._address_space.unpin()

    def __enter__(self) -> "ProcessHandle":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


def locate_process(pid: int, table: ProcessTable) -> ProcessHandle:
    """
    Resolve ``pid`` to a pinned address-space handle.

    Raises:
        InvalidArgument: ``pid`` is not a positive integer; the table is not consulted.
        ProcessNotFound: no live process has that identifier.
        NoAddressSpace: the process has no user address space, or it was
            torn down between lookup and pinning.
    """
    pid = validate_pid(pid)
    task = table.find_task(pid)
    if task is None:
        raise ProcessNotFound(pid)
    space = task.address_space
    if space is None or not space.pin():
        raise NoAddressSpace(pid)
    logger.debug("pinned address space of pid %d (%s)", pid, task.name)
    return ProcessHandle(pid, space)
