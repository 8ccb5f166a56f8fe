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
Workflow orchestration.

A ``Workflow`` is an ordered list of ``StepSpec``. The ``Orchestrator`` runs
each step at most once per desired state: a step recorded DONE in the ledger
with the same fingerprint is skipped and its recorded outputs are restored,
so re-running an interrupted workflow resumes where it stopped.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from rich.console import Console

from .apply import apply, apply_once
from .config import Settings, get_settings
from .controlplane import ControlPlaneClient
from .environment import EnvKey, MemoryEnvironment, PersistentEnvironment
from .errors import AcsInstError, NotConnected, PollTimeout, StepFailed
from .ledger import Ledger
from .models import (
    ApplyResult,
    CredentialMaterial,
    DesiredState,
    ResourceRef,
    StepStatus,
    WorkflowResult,
    WorkflowStep,
    fingerprint,
    idempotency_key,
)
from .poller import DEFAULT_TIMEOUT, Poller, Predicate, raise_for_outcome
from .progress import Mark, ProgressManager
from .resources import ResourceStore

logger = logging.getLogger(__name__)

Outputs = Dict[str, Any]
Desired = Union[DesiredState, Callable[["StepContext"], Optional[DesiredState]], None]


class StepContext:
    """Everything a step may touch, shared by the steps of one run."""

    def __init__(
        self,
        store: ResourceStore,
        env: Optional[PersistentEnvironment] = None,
        settings: Optional[Settings] = None,
        control_plane: Optional[ControlPlaneClient] = None,
        control_plane_factory: Optional[Callable[["StepContext"], ControlPlaneClient]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.env = env or MemoryEnvironment()
        self.settings = settings or get_settings()
        self.values: Dict[str, Any] = {}
        self.ledger: Optional[Ledger] = None
        self._control_plane = control_plane
        self._control_plane_factory = control_plane_factory or default_control_plane
        self.clock = clock
        self.sleep = sleep

    @property
    def namespace(self) -> str:
        return self.settings.namespace

    @property
    def control_plane(self) -> ControlPlaneClient:
        if self._control_plane is None:
            self._control_plane = self._control_plane_factory(self)
        return self._control_plane

    def poller(self, timeout: float = DEFAULT_TIMEOUT, interval: Optional[float] = None) -> Poller:
        return Poller(
            interval=interval or self.settings.poll_interval,
            timeout=timeout,
            clock=self.clock,
            sleep=self.sleep,
        )

    def secret(self, key: EnvKey, fallback: Optional[str] = None) -> Optional[CredentialMaterial]:
        value = self.env.get_secret(key)
        if value is None and fallback:
            value = CredentialMaterial(fallback)
        return value


def default_control_plane(ctx: StepContext) -> ControlPlaneClient:
    """Build a client from discovered values, the saved environment, then settings."""
    endpoint = (
        ctx.values.get("endpoint")
        or ctx.env.get(EnvKey.ROX_ENDPOINT)
        or ctx.settings.rox_endpoint
    )
    if not endpoint:
        raise NotConnected(
            "no Central endpoint known; run the central workflow or set ROX_ENDPOINT"
        )
    return ControlPlaneClient(
        endpoint,
        token=ctx.secret(EnvKey.ROX_API_TOKEN, ctx.settings.rox_api_token),
        password=ctx.secret(EnvKey.ADMIN_PASSWORD, ctx.settings.admin_password),
        verify_tls=ctx.settings.verify_tls,
        timeout=ctx.settings.request_timeout,
    )


@dataclass
class PollSpec:
    """What to wait for once a step's action ran.

    Without ``fetch`` the step's target is re-read from the store on every
    tick. ``outputs`` derives step outputs from the final observed state.
    """

    predicate: Predicate
    timeout: float = DEFAULT_TIMEOUT
    interval: Optional[float] = None
    fetch: Optional[Callable[[StepContext], Any]] = None
    outputs: Optional[Callable[[Any], Outputs]] = None
    description: str = ""


@dataclass
class StepSpec:
    name: str
    action: Optional[Callable[[StepContext], Optional[Outputs]]] = None
    target: Optional[ResourceRef] = None
    desired: Desired = None
    poll: Optional[PollSpec] = None
    critical: bool = True
    one_shot: bool = False
    # checks that run on every invocation, whatever the ledger says
    repeat: bool = False
    description: str = ""

    @property
    def label(self) -> str:
        if self.description:
            return self.description
        return f"{self.name} {self.target}" if self.target else self.name

    def resolve_desired(self, ctx: StepContext) -> Optional[DesiredState]:
        if callable(self.desired):
            return self.desired(ctx)
        return self.desired


@dataclass
class Workflow:
    name: str
    steps: List[StepSpec] = field(default_factory=list)


def _ledger_safe(outputs: Outputs) -> Outputs:
    return {k: v for k, v in outputs.items() if not isinstance(v, CredentialMaterial)}


class Orchestrator:
    def __init__(
        self,
        context: StepContext,
        ledger: Optional[Ledger] = None,
        console: Optional[Console] = None,
    ):
        self.context = context
        self.ledger = ledger or Ledger()
        context.ledger = self.ledger
        self.console = console

    def run(self, workflow: Workflow) -> WorkflowResult:
        result = WorkflowResult(workflow=workflow.name)
        progress = ProgressManager(title=workflow.name, console=self.console)
        rows = [progress.add(spec.name, spec.label) for spec in workflow.steps]
        aborted = False

        with progress:
            for spec, row in zip(workflow.steps, rows):
                key = idempotency_key(workflow.name, spec.name, spec.target)
                step = WorkflowStep(name=spec.name, idempotency_key=key)
                result.steps.append(step)
                if aborted:
                    continue

                try:
                    desired = spec.resolve_desired(self.context)
                    step_fingerprint = fingerprint(
                        {"desired": desired.body if desired else None, "one_shot": spec.one_shot}
                    )
                except AcsInstError as e:
                    self._fail(workflow, spec, step, e, result, progress, row)
                    aborted = True
                    continue

                if self._already_done(spec, key, step_fingerprint):
                    record = self.ledger.get(key)
                    self.context.values.update(record.outputs)
                    step.status = StepStatus.DONE
                    step.skipped = True
                    progress.finish(row, Mark.SKIPPED, "already done")
                    logger.info("Skipping %s: already done", key)
                    continue

                step.status = StepStatus.IN_PROGRESS
                self.ledger.record(key, StepStatus.IN_PROGRESS, step_fingerprint)
                progress.start(row)
                try:
                    outputs = self._execute(spec, desired)
                except PollTimeout as e:
                    self._fail(workflow, spec, step, e, result, progress, row, warn=not spec.critical)
                    if spec.critical:
                        aborted = True
                    else:
                        logger.warning(
                            "%s timed out; continuing because the step is not critical", key
                        )
                    continue
                except AcsInstError as e:
                    self._fail(workflow, spec, step, e, result, progress, row)
                    aborted = True
                    continue
                except Exception as e:
                    self.ledger.record(key, StepStatus.FAILED, error=str(e))
                    step.status = StepStatus.FAILED
                    step.error = str(e)
                    progress.finish(row, Mark.FAILED, f"{type(e).__name__}: {e}")
                    raise

                self.context.values.update(outputs)
                self.ledger.record(
                    key, StepStatus.DONE, step_fingerprint, outputs=_ledger_safe(outputs)
                )
                step.status = StepStatus.DONE
                progress.finish(row, Mark.SUCCESS, str(outputs.get("result", "ok")))

        return result

    def _already_done(self, spec: StepSpec, key: str, step_fingerprint: str) -> bool:
        if spec.repeat:
            return False
        if spec.one_shot:
            record = self.ledger.get(key)
            return record is not None and record.status == StepStatus.DONE
        return self.ledger.is_done(key, step_fingerprint)

    def _execute(self, spec: StepSpec, desired: Optional[DesiredState]) -> Outputs:
        ctx = self.context
        outputs: Outputs = {}

        if spec.action is not None:
            outputs.update(spec.action(ctx) or {})
        elif desired is not None and spec.target is not None:
            if spec.one_shot:
                applied = apply_once(ctx.store, spec.target, desired)
            else:
                applied = apply(ctx.store, spec.target, desired)
            outputs["result"] = applied.value

        if spec.poll is None:
            return outputs

        poll = spec.poll
        if poll.fetch is not None:
            fetch = lambda: poll.fetch(ctx)  # noqa: E731
        elif spec.target is not None:
            fetch = lambda: ctx.store.get(spec.target)  # noqa: E731
        else:
            raise ValueError(f"step '{spec.name}' polls without a target or fetch")

        target = str(spec.target) if spec.target else spec.label
        outcome = ctx.poller(timeout=poll.timeout, interval=poll.interval).poll(
            fetch, poll.predicate, poll.description or target
        )
        raise_for_outcome(outcome, target)
        if poll.outputs is not None:
            outputs.update(poll.outputs(outcome.last_state) or {})
        return outputs

    def _fail(
        self,
        workflow: Workflow,
        spec: StepSpec,
        step: WorkflowStep,
        error: AcsInstError,
        result: WorkflowResult,
        progress: ProgressManager,
        row,
        warn: bool = False,
    ) -> None:
        last_state = getattr(getattr(error, "outcome", None), "last_state", None)
        target = str(spec.target) if spec.target else ""
        failure = StepFailed(workflow.name, spec.name, error, target, last_state)
        step.status = StepStatus.FAILED
        step.error = str(error)
        self.ledger.record(step.idempotency_key, StepStatus.FAILED, error=str(error))
        progress.finish(row, Mark.WARNING if warn else Mark.FAILED, str(error))
        if warn:
            logger.warning("%s", failure)
            result.warnings.append(failure)
        else:
            logger.error("%s", failure)
            result.error = failure


def applied(result: ApplyResult) -> Outputs:
    """Step outputs for an action that ended in an apply."""
    return {"result": result.value}
