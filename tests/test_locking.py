"""Tests for the SharedLock reader-writer lock."""

import threading
import time

import pytest

from vmamap.locking import SharedLock


def test_readers_do_not_block_readers():
    """Test two readers can hold the lock at the same time."""
    lock = SharedLock()

    with lock.read_locked():
        with lock.read_locked():
            assert lock.reader_count == 2
    assert lock.reader_count == 0


def test_writer_waits_for_readers():
    """Test a writer cannot enter while a reader holds the lock."""
    lock = SharedLock()
    entered = threading.Event()

    def writer():
        with lock.write_locked():
            entered.set()

    with lock.read_locked():
        thread = threading.Thread(target=writer)
        thread.start()
        assert not entered.wait(timeout=0.2)

    thread.join(timeout=2.0)
    assert entered.is_set()
    assert not lock.is_writing


def test_reader_waits_for_writer():
    """Test a reader blocks while a writer holds the lock."""
    lock = SharedLock()
    entered = threading.Event()

    def reader():
        with lock.read_locked():
            entered.set()

    with lock.write_locked():
        assert lock.is_writing
        thread = threading.Thread(target=reader)
        thread.start()
        assert not entered.wait(timeout=0.2)

    thread.join(timeout=2.0)
    assert entered.is_set()


def test_waiting_writer_blocks_new_readers():
    """Test writer preference: new readers queue behind a waiting writer."""
    lock = SharedLock()
    order: list[str] = []

    def writer():
        with lock.write_locked():
            order.append("writer")

    def late_reader():
        with lock.read_locked():
            order.append("reader")

    lock.acquire_read()
    writer_thread = threading.Thread(target=writer)
    writer_thread.start()
    time.sleep(0.1)
    reader_thread = threading.Thread(target=late_reader)
    reader_thread.start()
    time.sleep(0.1)
    assert order == []
    lock.release_read()

    writer_thread.join(timeout=2.0)
    reader_thread.join(timeout=2.0)
    assert order == ["writer", "reader"]


class WriterGaveUp(Exception):
    pass


def test_abandoned_writer_wakes_queued_readers():
    """Test readers parked behind a writer proceed when the writer's wait is interrupted."""
    lock = SharedLock()
    give_up = threading.Event()
    reader_entered = threading.Event()
    real_wait = lock._cond.wait

    def wait(timeout=None):
        if threading.current_thread().name == "writer":
            if give_up.is_set():
                raise WriterGaveUp
            return real_wait(0.01)
        return real_wait(timeout)

    lock._cond.wait = wait

    def writer():
        with pytest.raises(WriterGaveUp):
            lock.acquire_write()

    def late_reader():
        with lock.read_locked():
            reader_entered.set()

    lock.acquire_read()
    writer_thread = threading.Thread(target=writer, name="writer")
    writer_thread.start()
    time.sleep(0.1)
    reader_thread = threading.Thread(target=late_reader)
    reader_thread.start()
    time.sleep(0.1)
    assert not reader_entered.is_set()

    give_up.set()
    writer_thread.join(timeout=2.0)

    assert reader_entered.wait(timeout=2.0)
    reader_thread.join(timeout=2.0)
    lock.release_read()
    assert lock.reader_count == 0
    assert not lock.is_writing


def test_lock_released_when_block_raises():
    """Test the read side is released even when the block raises."""
    lock = SharedLock()

    with pytest.raises(KeyError):
        with lock.read_locked():
            raise KeyError("boom")

    assert lock.reader_count == 0


def test_unbalanced_release_raises():
    """Test releasing an unheld lock is an error, not a silent no-op."""
    lock = SharedLock()

    with pytest.raises(RuntimeError):
        lock.release_read()
    with pytest.raises(RuntimeError):
        lock.release_write()
