"""
Transfer Buffer Codec.

Wire layout (little-endian):

    header   process_id, region_count, region_capacity,
             special_count, special_capacity          <iiiii4x
    regions  region_capacity x (start, end, flags,
             region_name[16], file_name[256])          <QQQ16s256s
    specials special_capacity x (name[32], value)      <32sQ

The caller writes the header with its PID and capacities; the response is
written over the same buffer. Strings are NUL-padded UTF-8.
"""

import struct
from collections.abc import Iterable
from dataclasses import dataclass

from vmamap.errors import InvalidArgument, TransferFault
from vmamap.models import MemoryRegion, Permission, SegmentLabel, Snapshot, SpecialAddress
from vmamap.paths import fit_bounded

LABEL_MAX = 16
NAME_MAX = 32
FILE_NAME_MAX = 256

HEADER = struct.Struct("<iiiii4x")
REGION_RECORD = struct.Struct(f"<QQQ{LABEL_MAX}s{FILE_NAME_MAX}s")
SPECIAL_RECORD = struct.Struct(f"<{NAME_MAX}sQ")


def response_size(region_capacity: int, special_capacity: int) -> int:
    """Bytes needed for a buffer with the given capacities."""
    return HEADER.size + region_capacity * REGION_RECORD.size + special_capacity * SPECIAL_RECORD.size


def _cstring(text: str, width: int) -> bytes:
    return fit_bounded(text, width).encode("utf-8")


def _from_cstring(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", "replace")


def _writable(buffer) -> memoryview:
    try:
        view = memoryview(buffer).cast("B")
    except TypeError as exc:
        raise TransferFault(f"buffer does not support the buffer protocol: {exc}") from exc
    if view.readonly:
        raise TransferFault("response buffer is read-only")
    return view


@dataclass(slots=True, frozen=True)
class Request:
    """Decoded request header."""

    process_id: int
    region_capacity: int
    special_capacity: int


def encode_request(buffer, process_id: int, region_capacity: int, special_capacity: int) -> None:
    """Write a request header into ``buffer`` (counts zeroed)."""
    view = _writable(buffer)
    try:
        HEADER.pack_into(view, 0, process_id, 0, region_capacity, 0, special_capacity)
    except struct.error as exc:
        raise TransferFault(f"cannot write request: {exc}") from exc


def decode_request(buffer) -> Request:
    """
    Read and validate the request header from ``buffer``.

    Raises:
        TransferFault: the buffer is too short for the header or for the
            capacities it declares.
        InvalidArgument: a declared capacity is not positive.
    """
    try:
        process_id, _, region_capacity, _, special_capacity = HEADER.unpack_from(buffer, 0)
    except (struct.error, TypeError) as exc:
        raise TransferFault(f"cannot read request header: {exc}") from exc
    if region_capacity <= 0 or special_capacity <= 0:
        raise InvalidArgument(
            f"capacities must be positive (regions={region_capacity}, specials={special_capacity})"
        )
    needed = response_size(region_capacity, special_capacity)
    if memoryview(buffer).nbytes < needed:
        raise TransferFault(f"buffer holds {memoryview(buffer).nbytes} bytes, response needs {needed}")
    return Request(process_id, region_capacity, special_capacity)


class SnapshotAssembler:
    """
    Accumulates one response while enforcing both capacity limits.

    Entries beyond a capacity are dropped, not reported: a full count is
    the caller's truncation signal.
    """

    def __init__(self, process_id: int, region_capacity: int, special_capacity: int) -> None:
        """Start an empty response for ``process_id``."""
        self.process_id = process_id
        self.region_capacity = region_capacity
        self.special_capacity = special_capacity
        self._regions: list[MemoryRegion] = []
        self._specials: list[SpecialAddress] = []

    @property
    def regions_full(self) -> bool:
        return len(self._regions) >= self.region_capacity

    def add_region(self, region: MemoryRegion) -> bool:
        """Append a region; returns False if it was dropped for capacity."""
        if self.regions_full:
            return False
        self._regions.append(region)
        return True

    def set_special_addresses(self, catalog: Iterable[SpecialAddress]) -> None:
        self._specials = list(catalog)[: self.special_capacity]

    def build(self) -> Snapshot:
        return Snapshot(
            process_id=self.process_id,
            region_capacity=self.region_capacity,
            special_capacity=self.special_capacity,
            regions=tuple(self._regions),
            special_addresses=tuple(self._specials),
        )


def encode_snapshot(snapshot: Snapshot, buffer) -> None:
    """
    Write ``snapshot`` into ``buffer``.

    The full image is packed first and copied in one step, so a failure
    leaves the buffer exactly as it was.
    """
    view = _writable(buffer)
    rc, sc = snapshot.region_capacity, snapshot.special_capacity
    if snapshot.region_count > rc or snapshot.special_count > sc:
        raise TransferFault("snapshot holds more entries than its capacities allow")
    needed = response_size(rc, sc)
    if view.nbytes < needed:
        raise TransferFault(f"buffer holds {view.nbytes} bytes, response needs {needed}")

    image = bytearray(needed)
    try:
        HEADER.pack_into(
            image, 0, snapshot.process_id, snapshot.region_count, rc, snapshot.special_count, sc
        )
        offset = HEADER.size
        for region in snapshot.regions:
            REGION_RECORD.pack_into(
                image,
                offset,
                region.start,
                region.end,
                int(region.permission_flags),
                _cstring(region.semantic_label.value, LABEL_MAX),
                _cstring(region.backing_path, FILE_NAME_MAX),
            )
            offset += REGION_RECORD.size
        offset = HEADER.size + rc * REGION_RECORD.size
        for special in snapshot.special_addresses:
            SPECIAL_RECORD.pack_into(image, offset, _cstring(special.name, NAME_MAX), special.value)
            offset += SPECIAL_RECORD.size
    except struct.error as exc:
        raise TransferFault(f"cannot encode snapshot: {exc}") from exc
    view[:needed] = image


def decode_snapshot(buffer) -> Snapshot:
    """Read a response written by :func:`encode_snapshot`."""
    try:
        pid, region_count, rc, special_count, sc = HEADER.unpack_from(buffer, 0)
    except (struct.error, TypeError) as exc:
        raise TransferFault(f"cannot read response header: {exc}") from exc
    if not (0 <= region_count <= rc and 0 <= special_count <= sc):
        raise TransferFault(
            f"inconsistent response counts: regions {region_count}/{rc}, specials {special_count}/{sc}"
        )
    if memoryview(buffer).nbytes < response_size(rc, sc):
        raise TransferFault("response buffer is shorter than its declared capacities")

    regions = []
    offset = HEADER.size
    for _ in range(region_count):
        start, end, flags, label, path = REGION_RECORD.unpack_from(buffer, offset)
        try:
            semantic_label = SegmentLabel(_from_cstring(label))
        except ValueError as exc:
            raise TransferFault(f"unknown region label at offset {offset}") from exc
        regions.append(
            MemoryRegion(
                start=start,
                end=end,
                permission_flags=Permission(flags),
                semantic_label=semantic_label,
                backing_path=_from_cstring(path),
            )
        )
        offset += REGION_RECORD.size

    specials = []
    offset = HEADER.size + rc * REGION_RECORD.size
    for _ in range(special_count):
        name, value = SPECIAL_RECORD.unpack_from(buffer, offset)
        specials.append(SpecialAddress(name=_from_cstring(name), value=value))
        offset += SPECIAL_RECORD.size

    return Snapshot(
        process_id=pid,
        region_capacity=rc,
        special_capacity=sc,
        regions=tuple(regions),
        special_addresses=tuple(specials),
    )
