"""Tests for the Backing-Path Resolver."""

from vmamap.paths import fit_bounded, resolve_backing_path
from vmamap.space import BackingFile


def test_no_backing_file_is_anonymous():
    assert resolve_backing_path(None) == "anonymous"


def test_resolved_path():
    assert resolve_backing_path(BackingFile("/usr/bin/cat")) == "/usr/bin/cat"


def test_unresolvable_path_is_unknown():
    """Test a backing file without a recoverable path yields 'unknown'."""
    assert resolve_backing_path(BackingFile(None)) == "unknown"
    assert resolve_backing_path(BackingFile("")) == "unknown"


def test_resolution_error_is_unknown():
    """Test any OSError from resolution degrades to 'unknown'."""

    class Broken:
        def display_path(self):
            raise PermissionError("denied")

    assert resolve_backing_path(Broken()) == "unknown"


def test_long_path_truncated_to_fit_with_terminator():
    """Test over-long paths are cut to limit - 1 bytes, never rejected."""
    path = "/" + "a" * 400

    resolved = resolve_backing_path(BackingFile(path), limit=256)

    assert len(resolved.encode("utf-8")) == 255
    assert path.startswith(resolved)


def test_path_exactly_at_limit_is_truncated():
    """Test a path of exactly limit bytes loses one byte for the NUL."""
    assert len(fit_bounded("x" * 16, 16)) == 15
    assert fit_bounded("x" * 15, 16) == "x" * 15


def test_truncation_does_not_split_characters():
    """Test a multi-byte character cut by the limit is dropped whole."""
    text = "/" + "é" * 10  # 1 + 20 bytes

    result = fit_bounded(text, 5)  # room for 4 bytes

    assert result == "/é"
    assert len(result.encode("utf-8")) <= 4


def test_undecodable_bytes_are_replaced():
    """Test surrogate-escaped file names still encode as UTF-8."""
    result = fit_bounded("/tmp/bad\udcff", 256)

    assert result == "/tmp/bad\ufffd"
    result.encode("utf-8")
