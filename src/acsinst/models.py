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
Typed values passed between the store, poller, fallback selector and
orchestrator.
"""

from __future__ import annotations

import copy
import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "acsinst"


@dataclass(frozen=True)
class ResourceRef:
    """Identifies a declarative resource by (kind, namespace, name).

    ``api_version`` is only needed when a kind is served under more than one
    API group; otherwise the store resolves it from its kind registry.
    """

    kind: str
    name: str
    namespace: str = ""
    api_version: Optional[str] = field(default=None, compare=False)

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.name} (namespace {self.namespace})"
        return f"{self.kind}/{self.name}"

    @property
    def key(self) -> str:
        return f"{self.kind}/{self.namespace}/{self.name}"


class ApplyResult(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass
class DesiredState:
    """Full declarative body of a resource plus the ownership marker."""

    body: Dict[str, Any]
    one_shot: bool = False
    # False for partial patches of resources someone else created
    owned: bool = True

    def __post_init__(self):
        body = copy.deepcopy(self.body)
        if self.owned:
            labels = body.setdefault("metadata", {}).setdefault("labels", {})
            labels.setdefault(MANAGED_BY_LABEL, MANAGED_BY_VALUE)
        self.body = body

    @classmethod
    def for_ref(
        cls,
        ref: ResourceRef,
        api_version: str,
        spec: Optional[Dict[str, Any]] = None,
        one_shot: bool = False,
        **extra: Any,
    ) -> "DesiredState":
        metadata: Dict[str, Any] = {"name": ref.name}
        if ref.namespace:
            metadata["namespace"] = ref.namespace
        body: Dict[str, Any] = {
            "apiVersion": api_version,
            "kind": ref.kind,
            "metadata": metadata,
        }
        if spec is not None:
            body["spec"] = spec
        body.update(extra)
        return cls(body=body, one_shot=one_shot)

    def fingerprint(self) -> str:
        return fingerprint(self.body)


def is_managed(resource: Optional[Dict[str, Any]]) -> bool:
    """True when the resource carries our ownership label."""
    labels = ((resource or {}).get("metadata") or {}).get("labels") or {}
    return labels.get(MANAGED_BY_LABEL) == MANAGED_BY_VALUE


def fingerprint(value: Any) -> str:
    """Stable SHA-256 of a JSON-serialisable value."""
    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Any) -> "ConditionStatus":
        if isinstance(value, bool):
            return cls.TRUE if value else cls.FALSE
        try:
            return cls(str(value))
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Condition:
    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_update: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Condition":
        return cls(
            type=raw.get("type", ""),
            status=ConditionStatus.parse(raw.get("status")),
            reason=raw.get("reason") or "",
            message=raw.get("message") or "",
            last_update=raw.get("lastTransitionTime") or raw.get("lastUpdateTime"),
        )


def conditions_of(resource: Optional[Dict[str, Any]]) -> Dict[str, Condition]:
    """Decode ``status.conditions[]`` keyed by condition type."""
    if not resource:
        return {}
    raw = (resource.get("status") or {}).get("conditions") or []
    return {c.type: c for c in (Condition.from_dict(r) for r in raw) if c.type}


class PollState(str, Enum):
    POLLING = "polling"
    READY = "ready"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class PollOutcome:
    state: PollState
    elapsed: float = 0.0
    attempts: int = 0
    reason: str = ""
    description: str = ""
    last_state: Any = None

    @property
    def ready(self) -> bool:
        return self.state == PollState.READY


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"


@dataclass
class WorkflowStep:
    name: str
    idempotency_key: str
    status: StepStatus = StepStatus.PENDING
    skipped: bool = False
    error: Optional[str] = None


def idempotency_key(workflow: str, step: str, target: Optional[ResourceRef]) -> str:
    suffix = target.key if target else "-"
    return f"{workflow}/{step}/{suffix}"


class CredentialMaterial:
    """Secret bytes that must never reach a log line."""

    __slots__ = ("_value",)

    def __init__(self, value):
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._value = bytes(value or b"")

    def reveal(self) -> str:
        return self._value.decode("utf-8")

    def reveal_bytes(self) -> bytes:
        return self._value

    def __len__(self) -> int:
        return len(self._value)

    def __bool__(self) -> bool:
        return bool(self._value)

    def __eq__(self, other) -> bool:
        if isinstance(other, CredentialMaterial):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"<CredentialMaterial {len(self._value)} bytes>"

    __str__ = __repr__


@dataclass
class FallbackCandidate:
    priority: int
    identifier: str
    availability_check: Callable[[], bool]
    value: Any = None


@dataclass
class WorkflowResult:
    workflow: str
    steps: List[WorkflowStep] = field(default_factory=list)
    error: Optional[BaseException] = None
    # failures of non-critical steps that did not stop the workflow
    warnings: List[BaseException] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(s.status == StepStatus.DONE for s in self.steps)

    @property
    def failed_steps(self) -> List[WorkflowStep]:
        return [s for s in self.steps if s.status == StepStatus.FAILED]
