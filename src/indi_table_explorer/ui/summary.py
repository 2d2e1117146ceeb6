from __future__ import annotations

from collections import Counter

from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..protocol.indi import display_value
from ..table.registry import Registry
from .renderer import DEFAULT_HEADERS


def snapshot_rows(registry: Registry) -> list[list[str]]:
    """Rows for every known element in key order. Takes the registry lock."""

    with registry.lock:
        rows: list[list[str]] = []
        for idx, spec in enumerate(registry.elements.sorted_specs()):
            prop = registry.properties.get(spec.prop_key)
            value = display_value(prop, spec.name) if prop is not None else ""
            rows.append([str(idx + 1), spec.device, spec.property_name, spec.name, value])
        return rows


def render_snapshot(console: Console, registry: Registry, *, endpoint: str) -> None:
    rows = snapshot_rows(registry)
    with registry.lock:
        kinds = Counter(prop.kind for prop in registry.properties.values())
        device_count = len({spec.device for spec in registry.elements})

    table = Table(title=f"INDI properties @ {endpoint}", header_style="bold")
    for header in DEFAULT_HEADERS:
        table.add_column(header, no_wrap=True)
    for row in rows:
        table.add_row(*row)
    console.print(table)

    kinds_text = ", ".join(f"{kind}={count}" for kind, count in sorted(kinds.items())) or "none"
    console.print(
        Text(
            f"{len(rows)}/{len(rows)} elements shown | devices={device_count} | kinds: {kinds_text}",
            style="dim",
        )
    )
