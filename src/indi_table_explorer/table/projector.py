from __future__ import annotations

from dataclasses import dataclass

from ..protocol.indi import IndiProperty, display_value
from ..ui.renderer import TableRenderer
from .registry import ElementSpec, Registry

Row = list[str]

INDEX_COLUMN = 0
VALUE_COLUMN = 4
COLUMN_COUNT = 5


@dataclass(slots=True)
class CursorState:
    row: int = 0
    col: int = 0
    scroll_offset: int = 0
    page_height: int = 1

    def is_visible(self, row: int) -> bool:
        return self.scroll_offset <= row < self.scroll_offset + self.page_height

    @property
    def screen_row(self) -> int:
        return self.row - self.scroll_offset

    def clamp(self, row_count: int) -> None:
        """Re-bound the selection and scroll window after the row count changed."""

        self.page_height = max(1, self.page_height)
        self.row = max(0, min(self.row, row_count - 1))
        if self.row < self.scroll_offset:
            self.scroll_offset = self.row
        if self.row >= self.scroll_offset + self.page_height:
            self.scroll_offset = self.row - self.page_height + 1
        self.scroll_offset = max(0, min(self.scroll_offset, max(0, row_count - self.page_height)))

    def move(self, d_row: int, d_col: int, *, row_count: int, col_count: int = COLUMN_COUNT) -> bool:
        """Move by a delta, clamped to the table. Returns True if the window scrolled."""

        before = self.scroll_offset
        self.row += d_row
        self.col = max(0, min(self.col + d_col, col_count - 1))
        self.clamp(row_count)
        return self.scroll_offset != before


class TableProjector:
    """Projects the registry into table rows.

    Every method must be called with `registry.lock` held. Row assignment in
    the element index is owned here.
    """

    def __init__(self, registry: Registry, renderer: TableRenderer) -> None:
        self._registry = registry
        self._renderer = renderer
        self.rows: list[Row] = []
        self.cursor = CursorState(page_height=renderer.page_height)

    def _build_row(self, spec: ElementSpec, prop: IndiProperty | None, index: int) -> Row:
        value = display_value(prop, spec.name) if prop is not None else ""
        return [str(index + 1), spec.device, spec.property_name, spec.name, value]

    def _selected_key(self) -> str | None:
        if not self.rows:
            return None
        spec = self._registry.elements.spec_at_row(self.cursor.row)
        return spec.key if spec is not None else None

    def rebuild(self) -> None:
        """Re-derive every row from scratch, reassigning row indices in key order."""

        selected_key = self._selected_key()
        rows: list[Row] = []
        for spec in self._registry.elements.sorted_specs():
            prop = self._registry.properties.get(spec.prop_key)
            spec.table_row = len(rows)
            rows.append(self._build_row(spec, prop, len(rows)))
        self.rows = rows

        if selected_key is not None:
            spec = self._registry.elements.get(selected_key)
            if spec is not None and spec.table_row is not None:
                self.cursor.row = spec.table_row
        self._redraw()

    def clear(self) -> None:
        """Drop all rows and row assignments and paint an empty table."""

        self.rows = []
        self._registry.elements.reset_rows()
        self._redraw()

    def _redraw(self) -> None:
        self.cursor.page_height = self._renderer.page_height
        self.cursor.clamp(len(self.rows))
        self._renderer.draw(self.rows, scroll_offset=self.cursor.scroll_offset)
        self._renderer.move_selected(self.cursor.screen_row, self.cursor.col)
        self._renderer.set_status(self.status_text())

    def patch(self) -> int:
        """Update value cells in place. Returns the number of repainted cells.

        Only cells whose formatted text changed are touched, and only visible
        ones are repainted. The screen is flushed once per patch. Row indices
        never move.
        """

        repainted = 0
        cursor_was_visible = self._renderer.cursor_visible
        for spec in self._registry.elements:
            row = spec.table_row
            if row is None or row >= len(self.rows):
                continue
            prop = self._registry.properties.get(spec.prop_key)
            text = display_value(prop, spec.name) if prop is not None else ""
            if self.rows[row][VALUE_COLUMN] == text:
                continue
            self.rows[row][VALUE_COLUMN] = text
            if not self.cursor.is_visible(row):
                continue
            if repainted == 0:
                self._renderer.set_cursor_visible(False)
            screen_row = row - self.cursor.scroll_offset
            self._renderer.clear_cell(screen_row, VALUE_COLUMN)
            if text:
                self._renderer.write_cell(screen_row, VALUE_COLUMN, text)
            repainted += 1
        if repainted:
            self._renderer.flush()
            self._renderer.set_cursor_visible(cursor_was_visible)
        return repainted

    def move_cursor(self, d_row: int, d_col: int) -> None:
        self.cursor.page_height = self._renderer.page_height
        scrolled = self.cursor.move(d_row, d_col, row_count=len(self.rows))
        if scrolled:
            self._renderer.draw(self.rows, scroll_offset=self.cursor.scroll_offset)
            self._renderer.set_status(self.status_text())
        self._renderer.move_selected(self.cursor.screen_row, self.cursor.col)

    def page(self, direction: int) -> None:
        self.move_cursor(direction * max(1, self.cursor.page_height), 0)

    def visible_count(self) -> int:
        remaining = len(self.rows) - self.cursor.scroll_offset
        return max(0, min(self.cursor.page_height, remaining))

    def status_text(self) -> str:
        return f"{self.visible_count()}/{len(self._registry.elements)} elements shown"

    def selected_element(self) -> tuple[ElementSpec, IndiProperty] | None:
        if not self.rows or self.cursor.row >= len(self.rows):
            return None
        return self._registry.element_at_row(self.cursor.row)
