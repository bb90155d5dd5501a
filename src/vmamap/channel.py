"""Client side of the request boundary."""

import logging
import os

from vmamap.codec import decode_snapshot, encode_request, response_size
from vmamap.config import MapperConfig
from vmamap.errors import ChannelError
from vmamap.locator import validate_pid
from vmamap.models import Snapshot
from vmamap.procfs import ProcfsProcessTable
from vmamap.service import Command, MemoryMapService
from vmamap.space import ProcessTable

logger = logging.getLogger(__name__)


class Channel:
    """
    An open request channel to a :class:`MemoryMapService`.

    Each :meth:`request` allocates a fresh buffer, so one channel can serve
    any number of sequential or concurrent requests.
    """

    def __init__(self, service: MemoryMapService) -> None:
        """Bind the channel to ``service``."""
        self._service = service
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def request(self, pid: int) -> Snapshot:
        """Fetch the memory map of ``pid``."""
        if self._closed:
            raise ChannelError("channel is closed")
        pid = validate_pid(pid)
        config = self._service.config
        buffer = bytearray(response_size(config.region_capacity, config.special_capacity))
        encode_request(buffer, pid, config.region_capacity, config.special_capacity)
        self._service.dispatch(Command.GET_INFO, buffer)
        return decode_snapshot(buffer)

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> "Channel":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_channel(config: MapperConfig | None = None, table: ProcessTable | None = None) -> Channel:
    """
    Open a channel to a memory-map service.

    Args:
        config: Capacities and procfs location; ``MapperConfig()`` when omitted.
        table: Host process table; the live procfs table when omitted.

    Raises:
        ChannelError: no table was given and procfs is not available.
    """
    config = config or MapperConfig()
    if table is None:
        if not os.path.isdir(config.procfs_root) or not os.access(config.procfs_root, os.R_OK):
            raise ChannelError(f"cannot open channel: {config.procfs_root} is not a readable procfs")
        table = ProcfsProcessTable(config.procfs_root)
    logger.debug("channel opened (region capacity %d)", config.region_capacity)
    return Channel(MemoryMapService(table, config))
