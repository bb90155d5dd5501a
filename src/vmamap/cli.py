"""vmamap command line client."""

import argparse
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace

from vmamap.channel import open_channel
from vmamap.config import MapperConfig
from vmamap.errors import VmaMapError
from vmamap.models import Snapshot

logger = logging.getLogger(__name__)

RULE = "-" * 100


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_special_table(snapshot: Snapshot) -> list[str]:
    """Render the special-address catalog; empty when there is none."""
    if not snapshot.special_addresses:
        return []
    lines = [f"Special addresses: {snapshot.special_count}", f"{'Name':<12} Value", RULE[:31]]
    for special in snapshot.special_addresses:
        lines.append(f"{special.name:<12} 0x{special.value:016x}")
    return lines


def format_region_table(snapshot: Snapshot) -> list[str]:
    truncated = " (truncated)" if snapshot.regions_truncated else ""
    lines = [
        f"Count of regions: {snapshot.region_count}{truncated}",
        f"{'Idx':<5} {'Start':<18} {'End':<18} {'Size':>6} {'Perm':<4} {'Region':<11} FilePath",
        RULE,
    ]
    for i, region in enumerate(snapshot.regions):
        lines.append(
            f"{i:<5} 0x{region.start:016x} 0x{region.end:016x} {format_bytes(region.size):>6} "
            f"{region.permissions:<4} {region.semantic_label.value:<11} {region.backing_path}"
        )
    return lines


def render_snapshot(snapshot: Snapshot) -> str:
    lines = [f"Memory map for PID: {snapshot.process_id}"]
    special = format_special_table(snapshot)
    if special:
        lines.extend(special)
        lines.append("")
    lines.extend(format_region_table(snapshot))
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vmamap",
        description="Show the virtual-memory layout of a running process.",
    )
    # Parsed by hand so every bad PID exits 1 with our own diagnostic
    parser.add_argument("pid", nargs="?", help="target process identifier")
    parser.add_argument("--region-capacity", type=int, help="maximum regions to return")
    parser.add_argument("--special-capacity", type=int, help="maximum special addresses to return")
    parser.add_argument("--tui", action="store_true", help="browse the map interactively")
    parser.add_argument("-v", "--verbose", action="store_true", help="log request stages to stderr")
    return parser


def _error(message: str) -> int:
    print(f"vmamap: {message}", file=sys.stderr)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the vmamap client; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.pid is None:
        print(parser.format_usage().rstrip(), file=sys.stderr)
        return _error("missing PID argument")
    try:
        pid = int(args.pid)
    except ValueError:
        return _error(f"invalid PID: {args.pid}")
    if pid <= 0:
        return _error(f"invalid PID: {pid}")

    try:
        config = MapperConfig.from_env()
        if args.region_capacity is not None:
            config = replace(config, region_capacity=args.region_capacity)
        if args.special_capacity is not None:
            config = replace(config, special_capacity=args.special_capacity)
        channel = open_channel(config)
    except VmaMapError as exc:
        return _error(str(exc))

    with channel:
        try:
            snapshot = channel.request(pid)
        except VmaMapError as exc:
            return _error(f"request failed: {exc} [{type(exc).__name__}]")
        if args.tui:
            from vmamap.app import MemoryMapApp

            MemoryMapApp(pid, channel.request, snapshot).run()
            return 0

    print(render_snapshot(snapshot))
    return 0


if __name__ == "__main__":
    sys.exit(main())
