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
Trusted TLS for the Central route via cert-manager.
"""

import logging
from typing import List

from .. import config
from ..config import OperatorPackage, Settings
from ..fallback import named_or_first, require, value_of
from ..apply import apply
from ..models import ApplyResult, ConditionStatus, DesiredState, ResourceRef, conditions_of
from ..predicates import (
    admitted_host,
    certificate_ready,
    deployment_available,
    resource_ready,
    route_admitted,
)
from ..workflow import PollSpec, StepContext, StepSpec, Workflow
from .common import require_value, template_state, wait_for
from .operator import operator_steps

logger = logging.getLogger(__name__)

NAME = "tls"
# Central pods carry one of these, depending on the operator version
CENTRAL_POD_SELECTORS = ("app=central", "app.kubernetes.io/component=central")


def ready_issuers(ctx: StepContext, kind: str) -> List[str]:
    namespace = ctx.namespace if kind == "Issuer" else ""
    names = []
    for issuer in ctx.store.list(kind, namespace):
        ready = conditions_of(issuer).get("Ready")
        name = (issuer.get("metadata") or {}).get("name")
        if name and ready is not None and ready.status == ConditionStatus.TRUE:
            names.append(name)
    return names


def select_issuer(ctx: StepContext) -> dict:
    kind = ctx.settings.cert_issuer_kind
    preferred = [ctx.settings.cert_issuer_name, config.PREFERRED_CLUSTER_ISSUER]
    candidate = require(
        named_or_first(preferred, lambda: ready_issuers(ctx, kind)), f"Ready {kind}"
    )
    issuer = value_of(candidate)
    return {"result": f"{kind} {issuer}", "issuer": issuer, "issuer_kind": kind}


def certificate_state(ctx: StepContext) -> DesiredState:
    return template_state(
        "certificate",
        {
            "NAME": config.CERTIFICATE_NAME,
            "NAMESPACE": ctx.namespace,
            "SECRET_NAME": config.CERTIFICATE_SECRET,
            "HOST": require_value(ctx, "central_host", "the Central route is not admitted"),
            "ISSUER_NAME": require_value(ctx, "issuer", "no issuer selected"),
            "ISSUER_KIND": ctx.values.get("issuer_kind", "ClusterIssuer"),
        },
        one_shot=True,
    )


def central_tls_state(ctx: StepContext) -> DesiredState:
    body = {
        "apiVersion": "platform.stackrox.io/v1alpha1",
        "kind": "Central",
        "metadata": {"name": config.CENTRAL_NAME, "namespace": ctx.namespace},
        "spec": {"central": {"defaultTLSSecret": {"name": config.CERTIFICATE_SECRET}}},
    }
    return DesiredState(body=body, owned=False)


def point_central_at_certificate(ctx: StepContext) -> dict:
    desired = central_tls_state(ctx)
    result = apply(ctx.store, ResourceRef("Central", config.CENTRAL_NAME, ctx.namespace), desired)
    changed = result in (ApplyResult.CREATED, ApplyResult.UPDATED)
    return {"result": result.value, "central_tls_changed": changed}


def restart_central(ctx: StepContext) -> dict:
    """Delete the Central pods so the new certificate is loaded."""
    if not ctx.values.get("central_tls_changed"):
        return {"result": "not needed"}
    for selector in CENTRAL_POD_SELECTORS:
        pods = ctx.store.list("Pod", ctx.namespace, label_selector=selector)
        if pods:
            break
    else:
        logger.warning("No Central pods found in %s; restart Central manually", ctx.namespace)
        return {"result": "no pods found"}

    names = [p["metadata"]["name"] for p in pods if (p.get("metadata") or {}).get("name")]
    for name in names:
        ctx.store.delete(ResourceRef("Pod", name, ctx.namespace))
    logger.info("Deleted Central pods %s", ", ".join(names))
    return {"result": f"restarted {len(names)} pod(s)"}


def build(settings: Settings) -> Workflow:
    namespace = settings.namespace
    steps = operator_steps(OperatorPackage.CERT_MANAGER, config.CERT_MANAGER_OPERATOR_NAMESPACE)
    cert_manager = template_state("cert-manager", {"NAME": config.CERT_MANAGER_CR_NAME}, owned=False)
    steps += [
        StepSpec(
            name="cert-manager",
            target=ResourceRef("CertManager", config.CERT_MANAGER_CR_NAME),
            desired=cert_manager,
            poll=PollSpec(predicate=resource_ready, timeout=config.CERT_MANAGER_TIMEOUT),
        ),
        StepSpec(name="select-issuer", action=select_issuer, repeat=True, description="select certificate issuer"),
        wait_for(
            "central-route",
            ResourceRef("Route", config.CENTRAL_ROUTE, namespace),
            route_admitted,
            config.ROUTE_TIMEOUT,
            outputs=lambda route: {"central_host": admitted_host(route)},
        ),
        StepSpec(
            name="certificate",
            target=ResourceRef("Certificate", config.CERTIFICATE_NAME, namespace),
            desired=certificate_state,
            one_shot=True,
            poll=PollSpec(predicate=certificate_ready, timeout=config.CERTIFICATE_TIMEOUT),
            critical=True,
        ),
        StepSpec(
            name="central-tls-secret",
            target=ResourceRef("Central", config.CENTRAL_NAME, namespace),
            desired=central_tls_state,
            action=point_central_at_certificate,
            description="point Central at the issued certificate",
        ),
        StepSpec(
            name="restart-central",
            target=ResourceRef("Deployment", config.CENTRAL_DEPLOYMENT, namespace),
            action=restart_central,
            poll=PollSpec(predicate=deployment_available, timeout=config.DEPLOYMENT_TIMEOUT),
            description="restart Central to load the certificate",
        ),
    ]
    return Workflow(name=NAME, steps=steps)
