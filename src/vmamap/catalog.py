"""Special-Address Catalog Builder."""

from dataclasses import astuple, fields

from vmamap.models import SpecialAddress
from vmamap.space import Boundaries

SPECIAL_ADDRESS_NAMES: tuple[str, ...] = tuple(f.name for f in fields(Boundaries))
CATALOG_SIZE = len(SPECIAL_ADDRESS_NAMES)


def build_catalog(boundaries: Boundaries, capacity: int) -> tuple[SpecialAddress, ...]:
    """
    Turn a boundary record into the ordered (name, value) catalog.

    Entries past ``capacity`` are dropped silently, keeping the earlier ones.
    Zero values are recorded as-is.
    """
    if capacity <= 0:
        return ()
    pairs = zip(SPECIAL_ADDRESS_NAMES, astuple(boundaries))
    return tuple(SpecialAddress(name=name, value=value) for name, value in pairs)[:capacity]
