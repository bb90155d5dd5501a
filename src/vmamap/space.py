"""Address-space model and the host process table the core borrows from."""

import errno
import threading
from abc import ABC, abstractmethod
from bisect import bisect_left
from collections.abc import Collection, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Protocol

from vmamap.locking import SharedLock
from vmamap.models import Permission


@dataclass(slots=True, frozen=True)
class Boundaries:
    """
    Named boundary addresses of an address space.

    Field order is the fixed catalog order; earlier fields win when a
    destination cannot hold all of them. Unset addresses stay 0.
    """

    start_code: int = 0
    end_code: int = 0
    start_data: int = 0
    end_data: int = 0
    start_brk: int = 0
    brk: int = 0
    start_stack: int = 0
    arg_start: int = 0
    arg_end: int = 0
    env_start: int = 0
    env_end: int = 0


@dataclass(slots=True, frozen=True)
class BackingFile:
    """Reference to the file behind a mapping."""

    path: str | None  # None when the host could not recover a name
    deleted: bool = False

    def display_path(self) -> str:
        """Return the canonical display path, raising OSError if there is none."""
        if not self.path:
            raise OSError(errno.ENOENT, "backing file has no resolvable path")
        return f"{self.path} (deleted)" if self.deleted else self.path


@dataclass(slots=True, frozen=True)
class RawRegion:
    """Region record as produced by a host, before classification."""

    start: int
    end: int
    flags: Permission
    backing: BackingFile | None = None


class AddressSpace(ABC):
    """
    A process's memory-mapping state.

    Hosts subclass this to expose an ascending region traversal and the
    boundary catalog. Both must only be consulted inside ``read_locked()``.
    Pins keep the space alive; the last ``unpin()`` tears it down.
    """

    def __init__(self) -> None:
        """Initialize lock and pin bookkeeping."""
        self._lock = SharedLock()
        self._pins = 0
        self._dead = False
        self._pin_guard = threading.Lock()

    @property
    def lock(self) -> SharedLock:
        return self._lock

    @property
    def pin_count(self) -> int:
        return self._pins

    @property
    def is_dead(self) -> bool:
        """Whether the last pin was dropped and the space torn down."""
        return self._dead

    def pin(self) -> bool:
        """Take a pin; returns False if the space was already torn down."""
        with self._pin_guard:
            if self._dead:
                return False
            self._pins += 1
            return True

    def unpin(self) -> None:
        with self._pin_guard:
            if self._pins == 0:
                raise RuntimeError("unpin() on an address space with no pins")
            self._pins -= 1
            last = self._pins == 0
            if last:
                self._dead = True
        if last:
            self._teardown()

    def _teardown(self) -> None:
        """Release host resources once nothing pins the space."""

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        """Hold the shared lock; the region structure cannot change meanwhile."""
        with self._lock.read_locked():
            yield

    @abstractmethod
    def boundaries(self) -> Boundaries:
        """Boundary catalog; call with the read lock held."""

    @abstractmethod
    def iter_regions(self) -> Iterator[RawRegion]:
        """Regions in ascending start order; call with the read lock held."""

    def reserved_addresses(self) -> Collection[int]:
        """Start addresses of platform-special mappings (vdso and friends)."""
        return ()


class InMemoryAddressSpace(AddressSpace):
    """
    Address space kept as a sorted list of non-overlapping regions.

    Mutations take the exclusive side of the lock, so they wait for every
    in-progress enumeration and block new ones until done.
    """

    def __init__(
        self,
        regions: Iterable[RawRegion] = (),
        boundaries: Boundaries | None = None,
        reserved: Collection[int] = (),
    ) -> None:
        """
        Initialize the address space.

        Args:
            regions: Initial regions, in any order.
            boundaries: Boundary catalog; all zero when omitted.
            reserved: Start addresses of platform-special mappings.
        """
        super().__init__()
        self._starts: list[int] = []
        self._regions: list[RawRegion] = []
        self._boundaries = boundaries or Boundaries()
        self._reserved = frozenset(reserved)
        for region in regions:
            self._insert(region)

    def __len__(self) -> int:
        return len(self._regions)

    def _insert(self, region: RawRegion) -> None:
        if region.start >= region.end:
            raise ValueError(f"empty or inverted region {region.start:#x}-{region.end:#x}")
        index = bisect_left(self._starts, region.start)
        if index > 0 and self._regions[index - 1].end > region.start:
            raise ValueError(f"region at {region.start:#x} overlaps its predecessor")
        if index < len(self._regions) and self._regions[index].start < region.end:
            raise ValueError(f"region at {region.start:#x} overlaps its successor")
        self._starts.insert(index, region.start)
        self._regions.insert(index, region)

    def map_region(self, region: RawRegion) -> None:
        with self.lock.write_locked():
            self._insert(region)

    def unmap_region(self, start: int) -> RawRegion:
        with self.lock.write_locked():
            index = bisect_left(self._starts, start)
            if index == len(self._starts) or self._starts[index] != start:
                raise KeyError(f"no region starts at {start:#x}")
            del self._starts[index]
            return self._regions.pop(index)

    def set_boundaries(self, **changes: int) -> None:
        with self.lock.write_locked():
            self._boundaries = replace(self._boundaries, **changes)

    def boundaries(self) -> Boundaries:
        return self._boundaries

    def iter_regions(self) -> Iterator[RawRegion]:
        return iter(self._regions)

    def reserved_addresses(self) -> Collection[int]:
        return self._reserved

    def _teardown(self) -> None:
        with self.lock.write_locked():
            self._starts.clear()
            self._regions.clear()


@dataclass(slots=True)
class Task:
    """A process as seen by the host: identifier plus optional address space."""

    pid: int
    name: str
    address_space: AddressSpace | None


class ProcessTable(Protocol):
    """Host lookup from process identifier to live task."""

    def find_task(self, pid: int) -> Task | None:
        """Return the live task for ``pid``, or None if there is none."""
        ...


class InMemoryProcessTable:
    """
    Process table backed by a dict, for embedders and tests.

    The table holds one pin on every registered address space; exiting a
    process drops it, so the space is torn down once outstanding handles
    are released.
    """

    def __init__(self) -> None:
        """Create an empty table."""
        self._tasks: dict[int, Task] = {}
        self._guard = threading.Lock()
        self.lookups = 0

    def add_task(self, task: Task) -> Task:
        with self._guard:
            if task.pid in self._tasks:
                raise ValueError(f"pid {task.pid} already registered")
            if task.address_space is not None:
                task.address_space.pin()
            self._tasks[task.pid] = task
        return task

    def spawn(
        self,
        pid: int,
        address_space: AddressSpace | None = None,
        name: str = "",
    ) -> Task:
        """Register a new task and return it."""
        return self.add_task(Task(pid=pid, name=name or f"task-{pid}", address_space=address_space))

    def exit_process(self, pid: int) -> None:
        with self._guard:
            task = self._tasks.pop(pid)
        if task.address_space is not None:
            task.address_space.unpin()

    def find_task(self, pid: int) -> Task | None:
        with self._guard:
            self.lookups += 1
            return self._tasks.get(pid)
