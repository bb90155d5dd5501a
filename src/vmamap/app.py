"""vmamap - interactive Textual viewer for one memory-map snapshot."""

from collections.abc import Callable
from enum import Enum

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from vmamap.cli import format_bytes
from vmamap.errors import VmaMapError
from vmamap.models import MemoryRegion, Snapshot


class SortKey(Enum):
    """Sort keys for the region table."""

    START = "start"
    SIZE = "size"
    LABEL = "label"
    PATH = "path"


class SpecialAddressPanel(Static):
    """Header widget listing the special addresses and region totals."""

    DEFAULT_CSS = """
    SpecialAddressPanel {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize SpecialAddressPanel."""
        super().__init__(*args, **kwargs)
        self._snapshot: Snapshot | None = None

    def update_snapshot(self, snapshot: Snapshot) -> None:
        """Show the catalog of a new snapshot."""
        self._snapshot = snapshot
        self.update(self._get_info())

    def _get_info(self) -> str:
        snapshot = self._snapshot
        if snapshot is None:
            return "Loading memory map..."

        total = sum(region.size for region in snapshot.regions)
        truncated = " (truncated)" if snapshot.regions_truncated else ""
        lines = [
            f"Regions: {snapshot.region_count}/{snapshot.region_capacity}{truncated}"
            f"  Mapped: {format_bytes(total).strip()}"
        ]
        # Two name/value pairs per line keeps the panel short
        pairs = [f"{sa.name:<12} 0x{sa.value:016x}" for sa in snapshot.special_addresses]
        for i in range(0, len(pairs), 2):
            lines.append("   ".join(pairs[i : i + 2]))
        return "\n".join(lines)


class RegionTable(Container):
    """Container for the region data table."""

    DEFAULT_CSS = """
    RegionTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize RegionTable."""
        super().__init__(*args, **kwargs)
        self._regions: list[MemoryRegion] = []
        self._sort_key: SortKey = SortKey.START
        self._sort_reverse: bool = False

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key, re-render and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        # Biggest regions first, everything else ascending
        self._sort_reverse = self._sort_key is SortKey.SIZE
        if self.is_mounted:
            self._render_rows()
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the region table."""
        yield DataTable(id="region-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#region-table", DataTable)
        table.cursor_type = "row"

        table.add_column("Idx", key="idx", width=5)
        table.add_column("Start", key="start", width=18)
        table.add_column("End", key="end", width=18)
        table.add_column("Size", key="size", width=8)
        table.add_column("Perm", key="perm", width=5)
        table.add_column("Region", key="label", width=12)
        table.add_column("FilePath", key="path")

    def update_regions(self, regions: list[MemoryRegion]) -> None:
        """Replace the table contents with a new region list."""
        self._regions = list(regions)
        self._render_rows()

    def sorted_regions(self) -> list[MemoryRegion]:
        """Regions in the current sort order; index column keeps address order."""
        key_func = {
            SortKey.START: lambda r: r.start,
            SortKey.SIZE: lambda r: r.size,
            SortKey.LABEL: lambda r: (r.semantic_label.value, r.start),
            SortKey.PATH: lambda r: (r.backing_path, r.start),
        }
        return sorted(self._regions, key=key_func[self._sort_key], reverse=self._sort_reverse)

    def _render_rows(self) -> None:
        table = self.query_one("#region-table", DataTable)
        table.clear()
        index_of = {region.start: i for i, region in enumerate(self._regions)}
        for region in self.sorted_regions():
            table.add_row(
                str(index_of[region.start]),
                f"0x{region.start:016x}",
                f"0x{region.end:016x}",
                format_bytes(region.size),
                region.permissions,
                region.semantic_label.value,
                region.backing_path,
                key=f"{region.start:x}",
            )


class MemoryMapApp(App):
    """Viewer for the memory map of one process."""

    TITLE = "vmamap"

    CSS = """
    Screen {
        layout: vertical;
    }

    #special-addresses {
        dock: top;
        height: auto;
        min-height: 6;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("r", "refresh", "Refresh"),
    ]

    def __init__(
        self, pid: int, fetch: Callable[[int], Snapshot], snapshot: Snapshot | None = None
    ) -> None:
        """
        Initialize the MemoryMapApp.

        Args:
            pid: Process to show.
            fetch: Called with ``pid`` to obtain each refreshed snapshot.
            snapshot: First snapshot to show; fetched on mount when omitted.
        """
        super().__init__()
        self._pid = pid
        self._fetch = fetch
        self._initial = snapshot
        self.snapshot: Snapshot | None = None
        self.sub_title = f"PID {pid}"

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield SpecialAddressPanel("Loading memory map...", id="special-addresses")
        yield RegionTable()
        yield Footer()

    def on_mount(self) -> None:
        """Show the first snapshot once the widgets exist."""
        if self._initial is not None:
            self.call_after_refresh(self.show_snapshot, self._initial)
        else:
            self.call_after_refresh(self.action_refresh)

    def show_snapshot(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot
        self.query_one("#special-addresses", SpecialAddressPanel).update_snapshot(snapshot)
        self.query_one(RegionTable).update_regions(list(snapshot.regions))

    def action_refresh(self) -> None:
        """Request a fresh snapshot; failures are shown, not raised."""
        try:
            snapshot = self._fetch(self._pid)
        except VmaMapError as exc:
            self.notify(str(exc), title="Request failed", severity="error")
            return
        self.show_snapshot(snapshot)

    def action_sort(self) -> None:
        """Cycle the region table's sort key."""
        new_sort_key = self.query_one(RegionTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")
