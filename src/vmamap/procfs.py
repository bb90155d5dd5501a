"""Live Linux host: process table and address spaces read through psutil and procfs."""

import logging
import os
from collections.abc import Collection, Iterator
from contextlib import contextmanager

import psutil

from vmamap.errors import NoAddressSpace, ProcessNotFound, TransferFault
from vmamap.models import Permission
from vmamap.space import AddressSpace, BackingFile, Boundaries, RawRegion, Task

logger = logging.getLogger(__name__)

PF_KTHREAD = 0x00200000
VSYSCALL_ADDR = 0xFFFFFFFFFF600000
RESERVED_NAMES = frozenset({"[vdso]", "[vvar]", "[vsyscall]"})
DELETED_SUFFIX = " (deleted)"

# proc(5) field numbers in /proc/<pid>/stat
STAT_FLAGS = 9
STAT_FIELDS = {
    "start_code": 26,
    "end_code": 27,
    "start_stack": 28,
    "start_data": 45,
    "end_data": 46,
    "start_brk": 47,
    "arg_start": 48,
    "arg_end": 49,
    "env_start": 50,
    "env_end": 51,
}


def _stat_fields(stat_text: str) -> list[str]:
    """Split a stat line into fields 3.. (comm may contain spaces and parens)."""
    return stat_text[stat_text.rindex(")") + 2 :].split()


def _stat_field(fields: list[str], number: int) -> int:
    index = number - 3
    return int(fields[index]) if index < len(fields) else 0


def parse_stat_flags(stat_text: str) -> int:
    return _stat_field(_stat_fields(stat_text), STAT_FLAGS)


def parse_stat_boundaries(stat_text: str, brk: int | None = None) -> Boundaries:
    """
    Extract the boundary catalog from a ``/proc/<pid>/stat`` line.

    Fields the kernel hides (no ptrace access) or predates read as 0.
    The current ``brk`` is not exported by stat; callers pass the last byte of
    the ``[heap]`` mapping, otherwise ``start_brk`` is used.
    """
    fields = _stat_fields(stat_text)
    values = {name: _stat_field(fields, number) for name, number in STAT_FIELDS.items()}
    values["brk"] = values["start_brk"] if brk is None else brk
    return Boundaries(**values)


def parse_perms(perms: str) -> Permission:
    flags = Permission.NONE
    for char, bit in (("r", Permission.READ), ("w", Permission.WRITE), ("x", Permission.EXEC)):
        if char in perms:
            flags |= bit
    if perms.endswith("s"):
        flags |= Permission.SHARED
    return flags


def parse_backing(path: str) -> BackingFile | None:
    """Map a maps/smaps path column to a backing file (None for anonymous)."""
    if not path or (path.startswith("[") and path.endswith("]")):
        return None
    if path.endswith(DELETED_SUFFIX):
        return BackingFile(path=path[: -len(DELETED_SUFFIX)], deleted=True)
    return BackingFile(path=path)


def _live_backing(path: str) -> BackingFile | None:
    backing = parse_backing(path)
    # psutil strips the " (deleted)" suffix of unlinked files
    if backing is not None and path.startswith("/") and not backing.deleted and not os.path.exists(path):
        return BackingFile(path=path, deleted=True)
    return backing


class ProcfsAddressSpace(AddressSpace):
    """
    Address space of a live Linux process.

    The kernel's own mmap lock cannot be held from user space, so the region
    list and stat boundaries are captured once on entering ``read_locked()``;
    catalog and walk then see the same view.
    """

    def __init__(self, process: psutil.Process, procfs_root: str = "/proc") -> None:
        """
        Initialize the address space.

        Args:
            process: psutil handle for the target.
            procfs_root: Mount point of procfs.
        """
        super().__init__()
        self._process = process
        self._procfs_root = procfs_root
        self._regions: list[RawRegion] | None = None
        self._boundaries: Boundaries | None = None
        self._reserved: frozenset[int] = frozenset()

    @property
    def pid(self) -> int:
        return self._process.pid

    def _read_stat(self) -> str:
        with open(f"{self._procfs_root}/{self.pid}/stat", encoding="utf-8", errors="replace") as f:
            return f.read()

    def _capture(self) -> None:
        try:
            maps = self._process.memory_maps(grouped=False)
            stat_text = self._read_stat()
        except psutil.ZombieProcess as exc:
            raise NoAddressSpace(self.pid) from exc
        except psutil.NoSuchProcess as exc:
            raise ProcessNotFound(self.pid) from exc
        except FileNotFoundError as exc:
            raise ProcessNotFound(self.pid) from exc
        except (psutil.AccessDenied, OSError) as exc:
            raise TransferFault(f"cannot read memory map of process {self.pid}: {exc}") from exc

        regions = []
        reserved = {VSYSCALL_ADDR}
        heap_end = None
        for entry in maps:
            start_text, _, end_text = entry.addr.partition("-")
            start, end = int(start_text, 16), int(end_text, 16)
            if entry.path == "[heap]":
                heap_end = end
            elif entry.path in RESERVED_NAMES:
                reserved.add(start)
            regions.append(
                RawRegion(start=start, end=end, flags=parse_perms(entry.perms), backing=_live_backing(entry.path))
            )
        # walk order must be ascending by start
        regions.sort(key=lambda region: region.start)

        self._regions = regions
        # the break lies inside the heap mapping, never at its exclusive end
        brk = None if heap_end is None else heap_end - 1
        self._boundaries = parse_stat_boundaries(stat_text, brk=brk)
        self._reserved = frozenset(reserved)
        logger.debug("captured %d regions for pid %d", len(regions), self.pid)

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with super().read_locked():
            self._capture()
            try:
                yield
            finally:
                self._regions = None
                self._boundaries = None

    def boundaries(self) -> Boundaries:
        if self._boundaries is None:
            raise RuntimeError("boundaries() requires read_locked()")
        return self._boundaries

    def iter_regions(self) -> Iterator[RawRegion]:
        if self._regions is None:
            raise RuntimeError("iter_regions() requires read_locked()")
        return iter(self._regions)

    def reserved_addresses(self) -> Collection[int]:
        return self._reserved


class ProcfsProcessTable:
    """Process table for the running Linux system."""

    def __init__(self, procfs_root: str = "/proc") -> None:
        """
        Initialize the table.

        Args:
            procfs_root: Mount point of procfs.
        """
        self._procfs_root = procfs_root

    def _is_kernel_thread(self, pid: int) -> bool:
        with open(f"{self._procfs_root}/{pid}/stat", encoding="utf-8", errors="replace") as f:
            return bool(parse_stat_flags(f.read()) & PF_KTHREAD)

    def find_task(self, pid: int) -> Task | None:
        try:
            process = psutil.Process(pid)
            with process.oneshot():
                name = process.name()
                status = process.status()
            kernel_thread = self._is_kernel_thread(pid)
        except psutil.ZombieProcess:
            return Task(pid=pid, name="", address_space=None)
        except (psutil.NoSuchProcess, FileNotFoundError, ProcessLookupError):
            return None
        except (psutil.AccessDenied, OSError) as exc:
            raise TransferFault(f"cannot inspect process {pid}: {exc}") from exc

        if status == psutil.STATUS_ZOMBIE or kernel_thread:
            logger.debug("pid %d (%s) has no user address space", pid, name)
            return Task(pid=pid, name=name, address_space=None)
        return Task(pid=pid, name=name, address_space=ProcfsAddressSpace(process, self._procfs_root))
