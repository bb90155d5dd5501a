"""Verification Test: concurrent enumerations against a mutating address space.

Readers must never observe a half-applied mapping change: every snapshot
is strictly ascending and non-overlapping, and all locks and pins are
returned once the requests finish.
"""

import random
import threading

from vmamap.models import Permission
from vmamap.service import MemoryMapService
from vmamap.space import InMemoryAddressSpace, InMemoryProcessTable, RawRegion

RW = Permission.READ | Permission.WRITE
PAGE = 0x1000


def build_space(count=200):
    return InMemoryAddressSpace([RawRegion(i * 2 * PAGE, i * 2 * PAGE + PAGE, RW) for i in range(1, count + 1)])


def assert_well_formed(snapshot):
    previous_end = 0
    for region in snapshot.regions:
        assert region.start < region.end
        assert region.start >= previous_end
        previous_end = region.end


class TestConcurrency:
    """Concurrency verification suite tests."""

    def test_readers_and_writer(self):
        """Test readers see consistent maps while a writer maps and unmaps."""
        space = build_space()
        table = InMemoryProcessTable()
        table.spawn(100, space)
        service = MemoryMapService(table)
        stop = threading.Event()
        errors: list[Exception] = []
        snapshots = []

        def writer():
            rng = random.Random(1)
            while not stop.is_set():
                slot = rng.randrange(1, 400)
                start = slot * 2 * PAGE + PAGE  # the odd gaps between initial regions
                try:
                    space.map_region(RawRegion(start, start + PAGE, RW))
                except ValueError:
                    space.unmap_region(start)
                stop.wait(0.001)

        def reader():
            try:
                for _ in range(50):
                    snapshot = service.get_process_memory_map(100, region_capacity=300)
                    assert_well_formed(snapshot)
                    snapshots.append(snapshot.region_count)
            except Exception as exc:
                errors.append(exc)

        writer_thread = threading.Thread(target=writer, daemon=True)
        readers = [threading.Thread(target=reader) for _ in range(4)]
        writer_thread.start()
        for t in readers:
            t.start()
        for t in readers:
            t.join(timeout=30.0)
        stop.set()
        writer_thread.join(timeout=5.0)

        assert errors == []
        assert len(snapshots) == 200
        assert all(count <= 300 for count in snapshots)
        assert space.lock.reader_count == 0
        assert not space.lock.is_writing
        assert space.pin_count == 1

    def test_parallel_readers_share_the_lock(self):
        """Test two enumerations can hold the shared lock at the same time."""
        space = build_space(4)
        inside = threading.Barrier(2, timeout=5.0)
        results = []

        def reader():
            with space.read_locked():
                inside.wait()
                results.append(len(list(space.iter_regions())))

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert results == [4, 4]
