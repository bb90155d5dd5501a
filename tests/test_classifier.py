"""Tests for the Segment Classifier."""

import pytest

from vmamap.classifier import classify_region
from vmamap.models import SegmentLabel
from vmamap.space import Boundaries

BOUNDARIES = Boundaries(
    start_code=0x400000,
    end_code=0x401800,
    start_data=0x402000,
    end_data=0x403000,
    start_brk=0x500000,
    brk=0x521000,
    start_stack=0x7FFEE000,
    arg_start=0x7FFF1000,
    arg_end=0x7FFF1100,
    env_start=0x7FFF2100,
    env_end=0x7FFF2800,
)


@pytest.mark.parametrize(
    ("start", "end", "label"),
    [
        (0x400000, 0x401000, SegmentLabel.CODE),
        (0x401000, 0x402000, SegmentLabel.CODE),  # holds end_code only
        (0x402000, 0x403000, SegmentLabel.DATA),
        (0x500000, 0x510000, SegmentLabel.HEAP),
        (0x520000, 0x530000, SegmentLabel.HEAP),  # holds brk only
        (0x7FFE0000, 0x7FFF0000, SegmentLabel.STACK),
        (0x7FFF1000, 0x7FFF2000, SegmentLabel.ARGUMENTS),
        (0x7FFF2000, 0x7FFF3000, SegmentLabel.ENVIRONMENT),
        (0x1000, 0x2000, SegmentLabel.OTHER),
    ],
)
def test_single_boundary_regions(start, end, label):
    """Test each boundary maps its containing region to the expected label."""
    assert classify_region(start, end, BOUNDARIES) is label


def test_end_is_exclusive():
    """Test a boundary equal to the region end does not match."""
    assert classify_region(0x3FF000, 0x400000, BOUNDARIES) is SegmentLabel.OTHER


def test_code_beats_data_when_both_contained():
    """Test rule order: a region holding code and data boundaries is code."""
    assert classify_region(0x400000, 0x404000, BOUNDARIES) is SegmentLabel.CODE


def test_arguments_beat_environment_and_stack():
    """Test rule order: arguments precede environment, which precedes stack."""
    assert classify_region(0x7FFE0000, 0x7FFF3000, BOUNDARIES) is SegmentLabel.ARGUMENTS
    assert classify_region(0x7FFF2000, 0x80000000, BOUNDARIES) is SegmentLabel.ENVIRONMENT


def test_environment_beats_heap():
    """Test rule order: environment precedes heap."""
    boundaries = Boundaries(start_brk=0x9000, brk=0x9000, env_start=0x9100, env_end=0x9200)

    assert classify_region(0x9000, 0xA000, boundaries) is SegmentLabel.ENVIRONMENT


def test_stack_only_tests_start_stack():
    """Test addresses above start_stack are not treated as stack."""
    assert classify_region(0x7FFEF000, 0x7FFF0000, BOUNDARIES) is SegmentLabel.OTHER


def test_reserved_start_is_special():
    """Test a region whose exact start is reserved is labelled special."""
    reserved = {0x7FFFF7FC1000}

    assert classify_region(0x7FFFF7FC1000, 0x7FFFF7FC3000, BOUNDARIES, reserved) is SegmentLabel.SPECIAL
    assert classify_region(0x7FFFF7FC0000, 0x7FFFF7FC3000, BOUNDARIES, reserved) is SegmentLabel.OTHER


def test_boundaries_win_over_reserved():
    """Test the reserved check runs after every boundary rule."""
    assert classify_region(0x400000, 0x401000, BOUNDARIES, {0x400000}) is SegmentLabel.CODE


def test_every_region_gets_a_label():
    """Test classification is total over a sweep of regions."""
    labels = {
        classify_region(start, start + 0x1000, BOUNDARIES)
        for start in range(0x3F0000, 0x530000, 0x1000)
    }

    assert labels <= set(SegmentLabel)
    assert SegmentLabel.OTHER in labels
