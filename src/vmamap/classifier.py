"""Segment Classifier: one semantic label per region."""

from collections.abc import Collection

from vmamap.models import SegmentLabel
from vmamap.space import Boundaries


def _contains(start: int, end: int, *addresses: int) -> bool:
    return any(start <= address < end for address in addresses)


def classify_region(
    start: int,
    end: int,
    boundaries: Boundaries,
    reserved: Collection[int] = (),
) -> SegmentLabel:
    """
    Label the region ``[start, end)``.

    Rules are tried in a fixed order and the first match wins, so a region
    holding both the end of code and the start of data is ``CODE``.
    Only ``start_stack`` is tested for the stack: it grows down from there.
    """
    b = boundaries
    if _contains(start, end, b.start_code, b.end_code):
        return SegmentLabel.CODE
    if _contains(start, end, b.start_data, b.end_data):
        return SegmentLabel.DATA
    if _contains(start, end, b.arg_start, b.arg_end):
        return SegmentLabel.ARGUMENTS
    if _contains(start, end, b.env_start, b.env_end):
        return SegmentLabel.ENVIRONMENT
    if _contains(start, end, b.start_brk, b.brk):
        return SegmentLabel.HEAP
    if _contains(start, end, b.start_stack):
        return SegmentLabel.STACK
    if start in reserved:
        return SegmentLabel.SPECIAL
    return SegmentLabel.OTHER
