from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

import pytest

from indi_table_explorer.table.coordinator import SessionFlags
from indi_table_explorer.table.edit import EditController
from indi_table_explorer.table.projector import TableProjector
from indi_table_explorer.table.registry import Registry
from indi_table_explorer.transport.dummy import DummyClient
from indi_table_explorer.ui.renderer import DEFAULT_COLUMN_WIDTHS


class RecordingRenderer:
    """In-memory TableRenderer that records every screen operation."""

    def __init__(self, *, page_height: int = 20) -> None:
        self.page_height_value = page_height
        self.rows: list[list[str]] = []
        self.scroll_offset = 0
        self.draw_calls = 0
        self.cell_writes: list[tuple[int, int, str]] = []
        self.cell_clears: list[tuple[int, int]] = []
        self.flushes = 0
        self.selected: tuple[int, int] | None = None
        self.prompt = ""
        self.prompts: list[str] = []
        self.status = ""
        self._cursor_visible = False
        self.cursor_changes: list[bool] = []

    @property
    def column_widths(self) -> tuple[int, ...]:
        return DEFAULT_COLUMN_WIDTHS

    @property
    def page_height(self) -> int:
        return self.page_height_value

    @property
    def cursor_visible(self) -> bool:
        return self._cursor_visible

    def draw(self, rows: Sequence[Sequence[str]], *, scroll_offset: int) -> None:
        self.rows = [list(row) for row in rows]
        self.scroll_offset = scroll_offset
        self.draw_calls += 1

    def write_cell(self, row: int, col: int, text: str) -> None:
        self.cell_writes.append((row, col, text))
        self.rows[self.scroll_offset + row][col] = text

    def clear_cell(self, row: int, col: int) -> None:
        self.cell_clears.append((row, col))
        self.rows[self.scroll_offset + row][col] = ""

    def flush(self) -> None:
        self.flushes += 1

    def move_selected(self, row: int, col: int) -> None:
        self.selected = (row, col)

    def set_prompt(self, text: str) -> None:
        self.prompt = text
        self.prompts.append(text)

    def set_status(self, text: str) -> None:
        self.status = text

    def set_cursor_visible(self, visible: bool) -> None:
        self._cursor_visible = visible
        self.cursor_changes.append(visible)


class ScriptedKeys:
    """KeySource replaying a fixed script; `None` entries simulate read timeouts."""

    def __init__(self, keys: Iterable[str | None]) -> None:
        self._keys = list(keys)
        self.reads = 0

    def read_key(self, timeout: float | None) -> str | None:  # noqa: ARG002
        self.reads += 1
        if not self._keys:
            raise AssertionError("scripted keys exhausted")
        return self._keys.pop(0)

    @property
    def remaining(self) -> int:
        return len(self._keys)


@pytest.fixture
def client() -> DummyClient:
    return DummyClient()


@pytest.fixture
def registry(client: DummyClient) -> Registry:
    return Registry(client)


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def projector(registry: Registry, renderer: RecordingRenderer) -> TableProjector:
    return TableProjector(registry, renderer)


@pytest.fixture
def make_editor(
    registry: Registry,
    projector: TableProjector,
    renderer: RecordingRenderer,
    client: DummyClient,
) -> Callable[[Iterable[str | None]], tuple[EditController, ScriptedKeys, SessionFlags]]:
    def _make(
        keys: Iterable[str | None],
    ) -> tuple[EditController, ScriptedKeys, SessionFlags]:
        scripted = ScriptedKeys(keys)
        flags = SessionFlags()
        editor = EditController(
            registry,
            projector,
            renderer,
            client,
            scripted,
            flags=flags,
            poll_s=0.01,
        )
        return editor, scripted, flags

    return _make
