"""Data models for vmamap."""

from dataclasses import dataclass, field
from enum import Enum, IntFlag

ANONYMOUS = "anonymous"
UNKNOWN = "unknown"


class SegmentLabel(Enum):
    """Semantic label assigned to each region."""

    CODE = "code"
    DATA = "data"
    HEAP = "heap"
    STACK = "stack"
    ARGUMENTS = "arguments"
    ENVIRONMENT = "environment"
    SPECIAL = "special"
    OTHER = "other"


class Permission(IntFlag):
    """Region access bits, using the kernel's VM_* values."""

    NONE = 0
    READ = 0x1
    WRITE = 0x2
    EXEC = 0x4
    SHARED = 0x8


def format_permissions(flags: int) -> str:
    """Render permission bits as an ``RWX``-style string."""
    return "".join(
        char if flags & bit else "-"
        for char, bit in (("R", Permission.READ), ("W", Permission.WRITE), ("X", Permission.EXEC))
    )


@dataclass(slots=True, frozen=True)
class MemoryRegion:
    """Immutable description of one mapped range at snapshot time."""

    start: int
    end: int  # exclusive
    permission_flags: Permission
    semantic_label: SegmentLabel
    backing_path: str  # resolved path, ANONYMOUS or UNKNOWN

    @property
    def size(self) -> int:
        return self.end - self.start

    @property
    def permissions(self) -> str:
        return format_permissions(self.permission_flags)


@dataclass(slots=True, frozen=True)
class SpecialAddress:
    """A named boundary address read from the address-space descriptor."""

    name: str
    value: int


@dataclass(slots=True, frozen=True)
class Snapshot:
    """
    Complete memory-map response for one process.

    ``region_count == region_capacity`` (likewise for special addresses)
    means the listing may have been truncated; callers must check it.
    """

    process_id: int
    region_capacity: int
    special_capacity: int
    regions: tuple[MemoryRegion, ...] = field(default_factory=tuple)
    special_addresses: tuple[SpecialAddress, ...] = field(default_factory=tuple)

    @property
    def region_count(self) -> int:
        return len(self.regions)

    @property
    def special_count(self) -> int:
        return len(self.special_addresses)

    @property
    def regions_truncated(self) -> bool:
        return self.region_count == self.region_capacity

    @property
    def special_truncated(self) -> bool:
        return self.special_count == self.special_capacity
