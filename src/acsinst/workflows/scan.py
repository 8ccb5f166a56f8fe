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
On-demand compliance run against one standard (HIPAA 164 by default).
"""

import logging
from typing import Any, Dict, List, Optional

from .. import config
from ..config import Settings
from ..fallback import require, value_of
from ..models import FallbackCandidate
from ..predicates import compliance_run_finished
from ..workflow import PollSpec, StepContext, StepSpec, Workflow
from .common import MissingData, require_value, resolve_cluster_step

logger = logging.getLogger(__name__)

NAME = "scan"
RUNS = "/v1/compliancemanagement/runs"


def _runs(response: Any) -> List[Dict[str, Any]]:
    response = response or {}
    return response.get("complianceRuns") or response.get("runs") or response.get("startedRuns") or []


def _matches(standard: Dict[str, Any], wanted: str) -> bool:
    wanted = wanted.lower()
    return wanted in str(standard.get("name", "")).lower() or wanted in str(standard.get("id", "")).lower()


def standard_candidates(ctx: StepContext) -> List[FallbackCandidate]:
    """Exact standard name, then a loose name/id match, then an id from past runs."""
    wanted = ctx.settings.compliance_standard
    cp = ctx.control_plane

    def standards() -> List[Dict[str, Any]]:
        return (cp.get_json("/v1/compliance/standards") or {}).get("standards") or []

    def exact() -> Optional[str]:
        return next((s.get("id") for s in standards() if s.get("id") and s.get("name") == wanted), None)

    def loose() -> Optional[str]:
        return next((s.get("id") for s in standards() if s.get("id") and _matches(s, wanted)), None)

    def from_runs() -> Optional[str]:
        runs = _runs(cp.get_json(RUNS))
        ids = [(r.get("selection") or {}).get("standardId") or r.get("standardId") for r in runs]
        return next((i for i in ids if i), None)

    return [
        FallbackCandidate(0, f"standard '{wanted}'", lambda: exact() is not None, exact),
        FallbackCandidate(1, f"standard matching '{wanted}'", lambda: loose() is not None, loose),
        FallbackCandidate(2, "standard of an earlier run", lambda: from_runs() is not None, from_runs),
    ]


def select_standard(ctx: StepContext) -> dict:
    candidate = require(standard_candidates(ctx), "compliance standard")
    standard_id = value_of(candidate)
    return {"result": standard_id, "standard_id": standard_id, "standard_source": candidate.identifier}


def trigger_run(ctx: StepContext) -> dict:
    cluster_id = require_value(ctx, "cluster_id", "the cluster lookup did not run")
    standard_id = require_value(ctx, "standard_id", "no compliance standard selected")
    response = ctx.control_plane.post_json(
        RUNS, {"selection": {"clusterId": cluster_id, "standardId": standard_id}}
    )
    runs = _runs(response)
    run_id = runs[0].get("id") if runs else (response or {}).get("id")
    if not run_id:
        raise MissingData("compliance run response carried no run id")
    logger.info("Started compliance run %s", run_id)
    return {"run_id": run_id}


def fetch_run(ctx: StepContext) -> Optional[Dict[str, Any]]:
    cluster_id = require_value(ctx, "cluster_id", "the cluster lookup did not run")
    standard_id = require_value(ctx, "standard_id", "no compliance standard selected")
    run_id = ctx.values.get("run_id")
    runs = _runs(ctx.control_plane.get_json(f"{RUNS}?clusterId={cluster_id}&standardId={standard_id}"))
    for run in runs:
        if run.get("id") == run_id:
            return run
    return None


def build(settings: Settings) -> Workflow:
    return Workflow(
        name=NAME,
        steps=[
            resolve_cluster_step(),
            StepSpec(
                name="select-standard",
                action=select_standard,
                repeat=True,
                description=f"select compliance standard ({settings.compliance_standard})",
            ),
            StepSpec(
                name="trigger-run",
                action=trigger_run,
                one_shot=True,
                description="trigger compliance run",
            ),
            StepSpec(
                name="run-finished",
                poll=PollSpec(
                    predicate=compliance_run_finished,
                    timeout=config.SCAN_RUN_TIMEOUT,
                    fetch=fetch_run,
                    description="compliance run to finish",
                ),
                critical=False,
                description="wait for compliance run",
            ),
        ],
    )
