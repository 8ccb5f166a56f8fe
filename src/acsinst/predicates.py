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
Readiness predicates over fetched resource (or API response) state.

Each predicate takes whatever the poller fetched, which may be ``None`` for
an absent resource, and returns a ``Verdict``.
"""

from typing import Any, Dict, Iterable, Optional

from .models import ConditionStatus, conditions_of
from .poller import Predicate, Verdict


def _status(resource: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return (resource or {}).get("status") or {}


def exists(resource: Any) -> Verdict:
    return Verdict.SATISFIED if resource is not None else Verdict.NOT_YET


def absent(resource: Any) -> Verdict:
    return Verdict.SATISFIED if resource is None else Verdict.NOT_YET


def condition_is(
    condition_type: str,
    status: str = "True",
    failure_reasons: Iterable[str] = (),
) -> Predicate:
    """Satisfied once ``condition_type`` reports ``status``.

    A condition that is False with one of ``failure_reasons`` is terminal.
    """
    wanted = ConditionStatus.parse(status)
    terminal = set(failure_reasons)

    def predicate(resource):
        cond = conditions_of(resource).get(condition_type)
        if cond is None:
            return Verdict.NOT_YET
        if cond.status == wanted:
            return Verdict.SATISFIED
        if cond.status == ConditionStatus.FALSE and cond.reason in terminal:
            return Verdict.failure(f"{condition_type}={cond.status.value} ({cond.reason}): {cond.message}")
        return Verdict.NOT_YET

    return predicate


def phase_is(ok: Iterable[str], failed: Iterable[str] = (), field: str = "phase") -> Predicate:
    """Compare ``status.<field>`` against sets of good and terminal values."""
    ok_values = {v.upper() for v in ok}
    failed_values = {v.upper() for v in failed}

    def predicate(resource):
        value = str(_status(resource).get(field) or "")
        if value.upper() in ok_values:
            return Verdict.SATISFIED
        if value.upper() in failed_values:
            message = _status(resource).get("message") or _status(resource).get("errorMessage") or ""
            return Verdict.failure(f"{field} is {value}{': ' + message if message else ''}")
        return Verdict.NOT_YET

    return predicate


def subscription_has_csv(subscription: Any) -> Verdict:
    """A Subscription is resolved once it names its current CSV."""
    if _status(subscription).get("currentCSV"):
        return Verdict.SATISFIED
    return Verdict.NOT_YET


csv_succeeded = phase_is(ok=["Succeeded"], failed=["Failed"])


def deployment_available(deployment: Any) -> Verdict:
    conds = conditions_of(deployment)
    progressing = conds.get("Progressing")
    if (
        progressing is not None
        and progressing.status == ConditionStatus.FALSE
        and progressing.reason == "ProgressDeadlineExceeded"
    ):
        return Verdict.failure(f"rollout stalled: {progressing.message}")
    available = conds.get("Available")
    if available is not None and available.status == ConditionStatus.TRUE:
        return Verdict.SATISFIED
    return Verdict.NOT_YET


def daemonset_ready(daemonset: Any) -> Verdict:
    """Every scheduled pod is ready and up to date."""
    status = _status(daemonset)
    desired = status.get("desiredNumberScheduled")
    if not desired:
        return Verdict.NOT_YET
    if status.get("numberReady", 0) >= desired and status.get("updatedNumberScheduled", 0) >= desired:
        return Verdict.SATISFIED
    return Verdict.NOT_YET


def admitted_host(route: Any) -> Optional[str]:
    """The route's host once any router admitted it, else None."""
    if not route:
        return None
    for ingress in _status(route).get("ingress") or []:
        for cond in ingress.get("conditions") or []:
            if cond.get("type") == "Admitted" and cond.get("status") == "True":
                return (route.get("spec") or {}).get("host") or ingress.get("host")
    return None


def route_admitted(route: Any) -> Verdict:
    return Verdict.SATISFIED if admitted_host(route) else Verdict.NOT_YET


certificate_ready = condition_is("Ready", "True", failure_reasons=["Failed"])

resource_ready = condition_is("Ready", "True")


def profile_bundle_ready(bundle: Any) -> Verdict:
    """ProfileBundle content parsed: ``dataStreamStatus`` (or phase) VALID."""
    status = _status(bundle)
    values = [str(status.get(f) or "").upper() for f in ("dataStreamStatus", "phase")]
    if "VALID" in values:
        return Verdict.SATISFIED
    if "INVALID" in values:
        return Verdict.failure(status.get("errorMessage") or "profile bundle content is INVALID")
    return Verdict.NOT_YET


def compliance_run_finished(run: Any) -> Verdict:
    """A compliance run reported by the control plane reached FINISHED."""
    if not run:
        return Verdict.NOT_YET
    if run.get("errorMessage"):
        return Verdict.failure(run["errorMessage"])
    if str(run.get("state") or "").upper() == "FINISHED":
        return Verdict.SATISFIED
    return Verdict.NOT_YET


def crd_is_established(crd: Any) -> bool:
    cond = conditions_of(crd).get("Established")
    return cond is not None and cond.status == ConditionStatus.TRUE


def all_of(*predicates: Predicate) -> Predicate:
    """Satisfied when every predicate is; the first failure wins."""

    def predicate(state):
        result = Verdict.SATISFIED
        for p in predicates:
            verdict = p(state)
            if verdict.failed:
                return verdict
            if not verdict.satisfied:
                result = Verdict.NOT_YET
        return result

    return predicate
