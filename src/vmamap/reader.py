"""Region Snapshot Reader: bounded, ascending walk under the shared lock."""

import logging
from collections.abc import Collection, Iterator
from contextlib import ExitStack

from vmamap.space import AddressSpace, Boundaries, RawRegion

logger = logging.getLogger(__name__)


class RegionSnapshotReader:
    """
    Holds an address space's shared lock for one enumeration.

    The lock is taken on ``__enter__`` and dropped exactly once on
    ``__exit__``, whether the walk finished, stopped at capacity or raised.
    Boundaries and regions may only be read while the reader is open.
    """

    def __init__(self, address_space: AddressSpace) -> None:
        """Prepare a reader; nothing is locked until the block is entered."""
        self._space = address_space
        self._stack: ExitStack | None = None
        self.emitted = 0

    @property
    def locked(self) -> bool:
        return self._stack is not None

    def __enter__(self) -> "RegionSnapshotReader":
        if self._stack is not None:
            raise RuntimeError("reader is already open")
        with ExitStack() as stack:
            stack.enter_context(self._space.read_locked())
            self._stack = stack.pop_all()
        return self

    def __exit__(self, *exc_info: object) -> None:
        stack, self._stack = self._stack, None
        if stack is not None:
            stack.close()

    def _require_lock(self) -> None:
        if self._stack is None:
            raise RuntimeError("address space must be read while the reader is open")

    def boundaries(self) -> Boundaries:
        self._require_lock()
        return self._space.boundaries()

    def reserved_addresses(self) -> Collection[int]:
        self._require_lock()
        return self._space.reserved_addresses()

    def regions(self, capacity: int) -> Iterator[RawRegion]:
        """
        Yield up to ``capacity`` regions, lowest start address first.

        Stops silently at capacity; the rest of the space is skipped.
        """
        self._require_lock()
        self.emitted = 0
        if capacity <= 0:
            return
        for region in self._space.iter_regions():
            self._require_lock()
            yield region
            self.emitted += 1
            if self.emitted >= capacity:
                logger.debug("region walk stopped at capacity %d", capacity)
                return
