# Copyright 2025 IBM Corp.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Live step table for workflow runs.

A rich ``Live`` table is used when the console is a terminal; otherwise each
transition is printed as one plain line so logs stay readable in CI.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from time import monotonic
from typing import Dict, List, Optional

from rich.console import Console, RenderableType
from rich.live import Live
from rich.spinner import Spinner
from rich.table import Table

from .logging_config import console as default_console


class Mark(Enum):
    """How a row is drawn; the plain-text tag is the value."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "OK"
    SKIPPED = "SKIPPED"
    WARNING = "WARNING"
    FAILED = "FAILED"


_GLYPHS: Dict[Mark, str] = {
    Mark.PENDING: "[dim]·[/dim]",
    Mark.SUCCESS: "[green]✓[/green]",
    Mark.SKIPPED: "[cyan]↷[/cyan]",
    Mark.WARNING: "[yellow]![/yellow]",
    Mark.FAILED: "[red]✗[/red]",
}


@dataclass
class Row:
    step: str
    label: str
    mark: Mark = Mark.PENDING
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    detail: str = ""

    @property
    def elapsed(self) -> str:
        if self.started_at is None:
            return ""
        return f"{(self.finished_at or monotonic()) - self.started_at:.1f}s"


class ProgressManager:
    def __init__(self, title: str = "", console: Optional[Console] = None) -> None:
        self.title = title
        self.console = console or default_console
        self.rows: List[Row] = []
        self._live: Optional[Live] = None

    def add(self, step: str, label: str) -> Row:
        row = Row(step=step, label=label)
        self.rows.append(row)
        return row

    def _glyph(self, row: Row) -> RenderableType:
        if row.mark is Mark.RUNNING:
            return Spinner("dots")
        return _GLYPHS[row.mark]

    def _render(self) -> Table:
        table = Table.grid(expand=True, padding=(0, 1))
        for row in self.rows:
            table.add_row(self._glyph(row), row.label, row.elapsed, row.detail)
        return table

    def _show(self, row: Row) -> None:
        if self._live is not None:
            self._live.update(self._render())
            return
        line = f"[{row.mark.value}] {row.label}"
        if row.detail:
            line += f" {row.detail}"
        self.console.print(line, markup=False, highlight=False)

    def start(self, row: Row) -> None:
        row.mark = Mark.RUNNING
        row.started_at = monotonic()
        self._show(row)

    def finish(self, row: Row, mark: Mark, detail: str = "") -> None:
        row.mark = mark
        row.detail = detail
        if row.started_at is not None:
            row.finished_at = monotonic()
        self._show(row)

    def __enter__(self) -> ProgressManager:
        if self.console.is_terminal:
            self._live = Live(self._render(), console=self.console, refresh_per_second=8)
            self._live.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._live is not None:
            self._live.update(self._render())
            self._live.stop()
            self._live = None
        return False
