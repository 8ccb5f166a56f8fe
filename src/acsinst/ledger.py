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
Step ledger: which workflow steps finished, for which desired state.

Stored as JSON and written atomically (temp file in the same directory, then
rename) after every step transition, so an interrupted run resumes where it
stopped.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .models import StepStatus

logger = logging.getLogger(__name__)

LEDGER_VERSION = 1


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StepRecord(BaseModel):
    key: str
    status: StepStatus = StepStatus.PENDING
    fingerprint: str = ""
    outputs: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    updated_at: str = Field(default_factory=_now)


class LedgerState(BaseModel):
    version: int = LEDGER_VERSION
    steps: Dict[str, StepRecord] = Field(default_factory=dict)
    updated_at: str = Field(default_factory=_now)


class Ledger:
    """Step records keyed by idempotency key, optionally backed by a file."""

    def __init__(self, path: Optional[Path] = None, state: Optional[LedgerState] = None):
        self.path = Path(path).expanduser() if path else None
        self.state = state or LedgerState()

    @classmethod
    def load(cls, path: Path) -> "Ledger":
        path = Path(path).expanduser()
        if not path.is_file():
            logger.debug("No ledger at %s, starting fresh", path)
            return cls(path)
        try:
            state = LedgerState.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (ValueError, ValidationError) as e:
            logger.warning("Unreadable ledger %s (%s), starting fresh", path, e)
            return cls(path)
        logger.debug("Loaded %d step records from %s", len(state.steps), path)
        return cls(path, state)

    def get(self, key: str) -> Optional[StepRecord]:
        return self.state.steps.get(key)

    def is_done(self, key: str, fingerprint: str) -> bool:
        record = self.get(key)
        return (
            record is not None
            and record.status == StepStatus.DONE
            and record.fingerprint == fingerprint
        )

    def record(
        self,
        key: str,
        status: StepStatus,
        fingerprint: str = "",
        outputs: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> StepRecord:
        previous = self.get(key)
        if outputs is None:
            outputs = dict(previous.outputs) if previous else {}
        record = StepRecord(
            key=key,
            status=status,
            fingerprint=fingerprint or (previous.fingerprint if previous else ""),
            outputs=outputs,
            error=error,
        )
        self.state.steps[key] = record
        self.save()
        return record

    def records(self, prefix: str = "") -> List[StepRecord]:
        return [r for k, r in self.state.steps.items() if k.startswith(prefix)]

    def forget(self, prefix: str) -> int:
        """Drop every record whose key starts with ``prefix``."""
        doomed = [k for k in self.state.steps if k.startswith(prefix)]
        for key in doomed:
            del self.state.steps[key]
        if doomed:
            self.save()
        return len(doomed)

    def save(self) -> None:
        if self.path is None:
            return
        self.state.updated_at = _now()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(self.state.model_dump(mode="json"), indent=2) + "\n"

        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".ledger_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(self.path)
        except OSError:
            tmp.unlink(missing_ok=True)
            logger.error("Failed to save ledger to %s", self.path)
            raise
        logger.debug("Ledger saved to %s", self.path)
