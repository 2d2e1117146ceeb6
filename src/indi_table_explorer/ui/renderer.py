from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.table import Table
from rich.text import Text

DEFAULT_COLUMN_WIDTHS: tuple[int, ...] = (4, 19, 39, 18, 18)
DEFAULT_HEADERS: tuple[str, ...] = ("#", "Device", "Property", "Element", "Value")
_HELP_LINE = "Keys: arrows move | PgUp/PgDn page | e edit | t toggle switch | q quit"


@dataclass(frozen=True, slots=True)
class TableLayout:
    column_widths: tuple[int, ...] = DEFAULT_COLUMN_WIDTHS
    headers: tuple[str, ...] = DEFAULT_HEADERS
    # Title, help, prompt, spacer, column header and status lines.
    chrome_lines: int = 6
    page_height: int | None = None


class TableRenderer(Protocol):
    """Screen-side capability consumed by the projector and edit controller.

    Row arguments of the cell primitives are screen rows, i.e. relative to the
    first visible table row.
    """

    @property
    def column_widths(self) -> tuple[int, ...]: ...

    @property
    def page_height(self) -> int: ...

    @property
    def cursor_visible(self) -> bool: ...

    def draw(self, rows: Sequence[Sequence[str]], *, scroll_offset: int) -> None:
        """Paint the visible window of `rows` starting at `scroll_offset`."""

    def write_cell(self, row: int, col: int, text: str) -> None:
        """Replace one visible cell. Shown on the next `flush()`."""

    def clear_cell(self, row: int, col: int) -> None:
        """Blank one visible cell. Shown on the next `flush()`."""

    def flush(self) -> None:
        """Push pending cell changes to the screen."""

    def move_selected(self, row: int, col: int) -> None:
        """Highlight the cell at a screen row/column."""

    def set_prompt(self, text: str) -> None:
        """Replace the interaction line ("" clears it)."""

    def set_status(self, text: str) -> None:
        """Replace the status line below the table."""

    def set_cursor_visible(self, visible: bool) -> None:
        """Show or hide the text cursor."""


class RichTableRenderer:
    """Full-screen table drawn with a manually refreshed `rich.live.Live`.

    Thread-safety comes from the callers: every method is invoked while the
    registry lock is held.
    """

    def __init__(self, console: Console, *, layout: TableLayout | None = None, title: str = "") -> None:
        self._console = console
        self._layout = layout or TableLayout()
        self._title = title
        self._rows: list[list[str]] = []
        self._scroll = 0
        self._selected: tuple[int, int] | None = None
        self._prompt = ""
        self._status = ""
        self._cursor_visible = False
        self._live: Live | None = None

    def __enter__(self) -> RichTableRenderer:
        self._live = Live(
            self.renderable(),
            console=self._console,
            screen=True,
            transient=True,
            auto_refresh=False,
        )
        self._live.start(refresh=True)
        self._console.show_cursor(self._cursor_visible)
        return self

    def __exit__(self, *_exc: object) -> None:
        live = self._live
        self._live = None
        if live is not None:
            live.stop()
        self._console.show_cursor(True)

    @property
    def column_widths(self) -> tuple[int, ...]:
        return self._layout.column_widths

    @property
    def page_height(self) -> int:
        if self._layout.page_height is not None:
            return max(1, self._layout.page_height)
        return max(1, self._console.size.height - self._layout.chrome_lines)

    @property
    def cursor_visible(self) -> bool:
        return self._cursor_visible

    @property
    def prompt(self) -> str:
        return self._prompt

    @property
    def status(self) -> str:
        return self._status

    def visible_rows(self) -> list[list[str]]:
        return self._rows[self._scroll : self._scroll + self.page_height]

    def draw(self, rows: Sequence[Sequence[str]], *, scroll_offset: int) -> None:
        self._rows = [list(row) for row in rows]
        self._scroll = max(0, scroll_offset)
        self._refresh()

    def _cell_index(self, row: int, col: int) -> tuple[int, int] | None:
        absolute = self._scroll + row
        if not (0 <= absolute < len(self._rows)):
            return None
        if not (0 <= col < len(self._rows[absolute])):
            return None
        return absolute, col

    def write_cell(self, row: int, col: int, text: str) -> None:
        idx = self._cell_index(row, col)
        if idx is None:
            return
        self._rows[idx[0]][idx[1]] = text

    def clear_cell(self, row: int, col: int) -> None:
        self.write_cell(row, col, "")

    def flush(self) -> None:
        self._refresh()

    def move_selected(self, row: int, col: int) -> None:
        self._selected = (row, col)
        self._refresh()

    def set_prompt(self, text: str) -> None:
        self._prompt = text
        self._refresh()

    def set_status(self, text: str) -> None:
        self._status = text
        self._refresh()

    def set_cursor_visible(self, visible: bool) -> None:
        self._cursor_visible = visible
        if self._live is not None:
            self._console.show_cursor(visible)

    def renderable(self) -> RenderableType:
        table = Table(show_header=True, header_style="bold dim", box=None, pad_edge=False)
        for header, width in zip(self._layout.headers, self._layout.column_widths, strict=False):
            table.add_column(header, width=width, no_wrap=True, overflow="ellipsis")

        for screen_row, row in enumerate(self.visible_rows()):
            cells: list[RenderableType] = []
            for col, text in enumerate(row):
                cell = Text(text, style="magenta" if col == 0 else "white")
                if self._selected == (screen_row, col):
                    cell.stylize("reverse")
                cells.append(cell)
            table.add_row(*cells)

        header = Text.assemble((self._title or "INDI properties", "bold"))
        prompt = Text(self._prompt, style="cyan")
        status = Text(self._status, style="dim")
        return Group(header, Text(_HELP_LINE, style="dim"), prompt, Text(""), table, status)

    def _refresh(self) -> None:
        live = self._live
        if live is None:
            return
        live.update(self.renderable(), refresh=True)
