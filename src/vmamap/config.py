"""Runtime configuration for vmamap."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace

from vmamap.errors import InvalidArgument

DEFAULT_REGION_CAPACITY = 4096
DEFAULT_SPECIAL_CAPACITY = 16
DEFAULT_PATH_MAX = 256


def _positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise InvalidArgument(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise InvalidArgument(f"{name} must be positive, got {value}")
    return value


@dataclass(slots=True, frozen=True)
class MapperConfig:
    """Capacities and host settings shared by the service and its clients."""

    region_capacity: int = DEFAULT_REGION_CAPACITY
    special_capacity: int = DEFAULT_SPECIAL_CAPACITY
    path_max: int = DEFAULT_PATH_MAX  # bytes, including the terminating NUL
    procfs_root: str = "/proc"

    def __post_init__(self) -> None:
        for name in ("region_capacity", "special_capacity", "path_max"):
            if getattr(self, name) <= 0:
                raise InvalidArgument(f"{name} must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MapperConfig":
        """
        Build a config from ``VMAMAP_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.
        """
        env = os.environ if environ is None else environ
        config = cls()
        if "VMAMAP_REGION_CAPACITY" in env:
            config = replace(
                config,
                region_capacity=_positive_int(
                    "VMAMAP_REGION_CAPACITY", env["VMAMAP_REGION_CAPACITY"]
                ),
            )
        if "VMAMAP_SPECIAL_CAPACITY" in env:
            config = replace(
                config,
                special_capacity=_positive_int(
                    "VMAMAP_SPECIAL_CAPACITY", env["VMAMAP_SPECIAL_CAPACITY"]
                ),
            )
        if env.get("VMAMAP_PROCFS_ROOT"):
            config = replace(config, procfs_root=env["VMAMAP_PROCFS_ROOT"])
        return config
