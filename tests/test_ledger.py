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
Tests for the step ledger.
"""

import json

from acsinst.ledger import Ledger
from acsinst.models import StepStatus


class TestLedger:
    """Tests for Ledger persistence and lookups."""

    def test_missing_file_starts_empty(self, tmp_path):
        ledger = Ledger.load(tmp_path / "nope" / "state.json")
        assert ledger.records() == []

    def test_record_survives_reload(self, tmp_path):
        path = tmp_path / "state.json"
        ledger = Ledger.load(path)
        ledger.record("central/namespace/-", StepStatus.DONE, "abc", outputs={"result": "created"})

        reloaded = Ledger.load(path)
        record = reloaded.get("central/namespace/-")
        assert record.status == StepStatus.DONE
        assert record.outputs == {"result": "created"}
        assert reloaded.is_done("central/namespace/-", "abc")
        assert not reloaded.is_done("central/namespace/-", "other")

    def test_corrupt_file_starts_fresh(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        assert Ledger.load(path).records() == []

    def test_failure_keeps_previous_outputs_and_fingerprint(self):
        ledger = Ledger()
        ledger.record("k", StepStatus.DONE, "fp", outputs={"run_id": "r1"})
        ledger.record("k", StepStatus.FAILED, error="boom")

        record = ledger.get("k")
        assert record.status == StepStatus.FAILED
        assert record.fingerprint == "fp"
        assert record.outputs == {"run_id": "r1"}
        assert record.error == "boom"

    def test_forget_by_prefix(self, tmp_path):
        ledger = Ledger(tmp_path / "state.json")
        ledger.record("central/a/-", StepStatus.DONE)
        ledger.record("central/b/-", StepStatus.DONE)
        ledger.record("scan/a/-", StepStatus.DONE)

        assert ledger.forget("central/") == 2
        assert [r.key for r in ledger.records()] == ["scan/a/-"]

    def test_save_writes_valid_json_without_temp_files(self, tmp_path):
        path = tmp_path / "state.json"
        Ledger(path).record("k", StepStatus.IN_PROGRESS)

        data = json.loads(path.read_text())
        assert data["steps"]["k"]["status"] == "in_progress"
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_in_memory_ledger_never_writes(self, tmp_path):
        ledger = Ledger()
        ledger.record("k", StepStatus.DONE)
        assert list(tmp_path.iterdir()) == []
