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
Removal of everything the install workflows created.

Only resources carrying the managed-by label are deleted; anything that was
already on the cluster is left alone. cert-manager is never removed since
other workloads may depend on it. Namespaces stuck in Terminating get their
finalizers cleared. Afterwards the install workflows' ledger records and
saved environment keys are forgotten, so the next install starts from
scratch.
"""

import logging
from typing import List

from .. import config
from ..config import OperatorPackage, Settings
from ..environment import EnvKey
from ..models import PollState, ResourceRef, is_managed
from ..poller import raise_for_outcome
from ..predicates import absent
from ..workflow import StepContext, StepSpec, Workflow
from .common import delete_if_owned, delete_if_present

logger = logging.getLogger(__name__)

NAME = "cleanup"
INSTALL_WORKFLOWS = ("central", "secured-cluster", "compliance", "scan", "tls", "monitoring", "settings")

OPERATORS = [
    (OperatorPackage.RHACS, config.RHACS_OPERATOR_NAMESPACE),
    (OperatorPackage.COMPLIANCE, config.COMPLIANCE_NAMESPACE),
    (OperatorPackage.OBSERVABILITY, config.OBSERVABILITY_NAMESPACE),
]


def delete_step(name: str, ref: ResourceRef) -> StepSpec:
    return StepSpec(
        name=name,
        target=ref,
        action=lambda ctx: {"result": delete_if_owned(ctx.store, ref)},
        repeat=True,
        description=f"delete {ref}",
    )


def remove_operator(package: OperatorPackage, namespace: str):
    sub_ref = ResourceRef("Subscription", package.value, namespace)

    def action(ctx: StepContext) -> dict:
        subscription = ctx.store.get(sub_ref)
        if subscription is None:
            return {"result": "absent"}
        if not is_managed(subscription):
            logger.info("Keeping operator %s: subscription not created by acsinst", package.value)
            return {"result": "kept (not managed)"}
        status = subscription.get("status") or {}
        csv = status.get("installedCSV") or status.get("currentCSV")
        result = delete_if_present(ctx.store, sub_ref)
        # OLM creates the CSV, so it never carries our label
        if csv:
            delete_if_present(ctx.store, ResourceRef("ClusterServiceVersion", csv, namespace))
            result = f"{result} (csv {csv})"
        return {"result": result}

    return StepSpec(
        name=f"remove-{package.value}",
        target=sub_ref,
        action=action,
        repeat=True,
        description=f"remove operator {package.value}",
    )


def delete_namespace(name: str) -> StepSpec:
    ref = ResourceRef("Namespace", name)

    def action(ctx: StepContext) -> dict:
        existing = ctx.store.get(ref)
        if existing is None:
            return {"result": "absent"}
        if not is_managed(existing):
            logger.info("Keeping %s: not created by acsinst", ref)
            return {"result": "kept (not managed)"}
        if not ctx.store.delete(ref):
            return {"result": "absent"}
        fetch = lambda: ctx.store.get(ref)  # noqa: E731
        outcome = ctx.poller(timeout=config.NAMESPACE_DELETE_TIMEOUT).poll(fetch, absent, f"{ref} to go away")
        if outcome.state == PollState.TIMED_OUT:
            logger.warning("%s still terminating, clearing its finalizers", ref)
            ctx.store.finalize_namespace(name)
            outcome = ctx.poller(timeout=config.FINALIZE_TIMEOUT).poll(fetch, absent, f"{ref} to go away")
            raise_for_outcome(outcome, str(ref))
            return {"result": "deleted (finalized)"}
        raise_for_outcome(outcome, str(ref))
        return {"result": "deleted"}

    return StepSpec(
        name=f"delete-namespace-{name}",
        target=ref,
        action=action,
        repeat=True,
        critical=False,
        description=f"delete namespace {name}",
    )


def forget_install_state(ctx: StepContext) -> dict:
    forgotten = 0
    if ctx.ledger is not None:
        for workflow in INSTALL_WORKFLOWS:
            forgotten += ctx.ledger.forget(f"{workflow}/")
    for key in EnvKey:
        ctx.env.unset(key)
    return {"result": f"forgot {forgotten} steps"}


def build(settings: Settings) -> Workflow:
    namespace = settings.namespace
    steps: List[StepSpec] = [
        delete_step("delete-secured-cluster", ResourceRef("SecuredCluster", config.SECURED_CLUSTER_NAME, namespace)),
        delete_step("delete-central", ResourceRef("Central", config.CENTRAL_NAME, namespace)),
        delete_step("delete-certificate", ResourceRef("Certificate", config.CERTIFICATE_NAME, namespace)),
        delete_step("delete-ui-plugin", ResourceRef("UIPlugin", config.UI_PLUGIN_NAME)),
    ]
    steps += [remove_operator(package, ns) for package, ns in OPERATORS]

    namespaces = [namespace] + [ns for _, ns in OPERATORS]
    seen = set()
    for name in namespaces:
        if name not in seen:
            seen.add(name)
            steps.append(delete_namespace(name))

    steps.append(
        StepSpec(
            name="forget-install-state",
            action=forget_install_state,
            repeat=True,
            description="forget ledger records and saved environment",
        )
    )
    return Workflow(name=NAME, steps=steps)
