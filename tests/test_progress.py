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
Tests for the step progress display.
"""

import io

from rich.console import Console

from acsinst.progress import Mark, ProgressManager


def plain_console():
    return Console(file=io.StringIO(), force_terminal=False, width=200)


class TestPlainOutput:
    """Without a terminal every transition is a plain line."""

    def test_transitions_printed(self):
        console = plain_console()
        with ProgressManager("central", console=console) as progress:
            row = progress.add("namespace", "create namespace")
            progress.start(row)
            progress.finish(row, Mark.SUCCESS, "created")

        lines = console.file.getvalue().splitlines()
        assert lines == ["[RUNNING] create namespace", "[OK] create namespace created"]
        assert row.finished_at is not None

    def test_skipped_row_never_started(self):
        console = plain_console()
        with ProgressManager(console=console) as progress:
            row = progress.add("csv", "wait for CSV")
            progress.finish(row, Mark.SKIPPED, "already done")

        assert console.file.getvalue() == "[SKIPPED] wait for CSV already done\n"
        assert row.finished_at is None

    def test_render_has_line_per_step(self):
        progress = ProgressManager(console=plain_console())
        progress.add("a", "first")
        progress.add("b", "second")
        assert progress._render().row_count == 2

    def test_warning_keeps_detail(self):
        console = plain_console()
        with ProgressManager(console=console) as progress:
            row = progress.add("plugin", "wait for UI plugin")
            progress.start(row)
            progress.finish(row, Mark.WARNING, "timed out after 300s")

        assert console.file.getvalue().splitlines()[-1] == "[WARNING] wait for UI plugin timed out after 300s"
        assert row.elapsed.endswith("s")
