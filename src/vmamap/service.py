"""Request dispatch: one memory-map request from validation to response."""

import logging
from enum import IntEnum

from vmamap.catalog import build_catalog
from vmamap.classifier import classify_region
from vmamap.codec import (
    FILE_NAME_MAX,
    SnapshotAssembler,
    decode_request,
    encode_snapshot,
)
from vmamap.config import MapperConfig
from vmamap.errors import InvalidArgument, UnsupportedCommand, VmaMapError
from vmamap.locator import locate_process, validate_pid
from vmamap.models import MemoryRegion, Snapshot
from vmamap.paths import resolve_backing_path
from vmamap.reader import RegionSnapshotReader
from vmamap.space import ProcessTable

logger = logging.getLogger(__name__)

COMMAND_MAGIC = ord("V")


class Command(IntEnum):
    """Control commands accepted by :meth:`MemoryMapService.dispatch`."""

    GET_INFO = (COMMAND_MAGIC << 8) | 1


class MemoryMapService:
    """
    Inspecting side of the request boundary.

    Holds no per-request state; concurrent requests only share the target
    address spaces, whose locks admit many readers at once.
    """

    def __init__(self, table: ProcessTable, config: MapperConfig | None = None) -> None:
        """
        Initialize the service.

        Args:
            table: Host process table used to resolve PIDs.
            config: Default capacities; ``MapperConfig()`` when omitted.
        """
        self._table = table
        self._config = config or MapperConfig()

    @property
    def config(self) -> MapperConfig:
        return self._config

    def get_process_memory_map(
        self,
        pid: int,
        region_capacity: int | None = None,
        special_capacity: int | None = None,
    ) -> Snapshot:
        """
        Enumerate, classify and assemble the memory map of ``pid``.

        Resources are taken in order (pin, shared lock) and released in
        reverse on every exit path.

        Raises:
            InvalidArgument: non-positive ``pid`` or capacity.
            ProcessNotFound: no live process with that identifier.
            NoAddressSpace: the process has no user address space.
            TransferFault: the host could not read the target's map.
        """
        region_capacity = self._config.region_capacity if region_capacity is None else region_capacity
        special_capacity = self._config.special_capacity if special_capacity is None else special_capacity
        pid = validate_pid(pid)
        if region_capacity <= 0 or special_capacity <= 0:
            raise InvalidArgument("capacities must be positive")
        path_max = min(self._config.path_max, FILE_NAME_MAX)

        assembler = SnapshotAssembler(pid, region_capacity, special_capacity)
        try:
            with locate_process(pid, self._table) as handle:
                with RegionSnapshotReader(handle.address_space) as reader:
                    boundaries = reader.boundaries()
                    reserved = reader.reserved_addresses()
                    assembler.set_special_addresses(build_catalog(boundaries, special_capacity))
                    for raw in reader.regions(region_capacity):
                        assembler.add_region(
                            MemoryRegion(
                                start=raw.start,
                                end=raw.end,
                                permission_flags=raw.flags,
                                semantic_label=classify_region(raw.start, raw.end, boundaries, reserved),
                                backing_path=resolve_backing_path(raw.backing, path_max),
                            )
                        )
        except VmaMapError as exc:
            logger.warning("memory map request for pid %d failed: %s", pid, exc)
            raise

        snapshot = assembler.build()
        if snapshot.regions_truncated:
            logger.info(
                "pid %d: region list truncated at capacity %d", pid, snapshot.region_capacity
            )
        logger.debug(
            "pid %d: %d regions, %d special addresses",
            pid,
            snapshot.region_count,
            snapshot.special_count,
        )
        return snapshot

    def dispatch(self, command: int, buffer) -> None:
        """
        Serve one control call over a shared request/response buffer.

        The caller fills the header (PID and capacities); on success the
        snapshot is written back over the same buffer. On failure the
        buffer is untouched and the error propagates.
        """
        if command != Command.GET_INFO:
            logger.warning("rejected unknown command %#x", command)
            raise UnsupportedCommand(f"unsupported command {command:#x}")
        request = decode_request(buffer)
        snapshot = self.get_process_memory_map(
            request.process_id, request.region_capacity, request.special_capacity
        )
        encode_snapshot(snapshot, buffer)
