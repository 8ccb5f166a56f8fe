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
Secured cluster: init bundle secrets, the SecuredCluster CR, and its
sensor, admission-control and collector workloads.
"""

import base64
import binascii
import logging

import yaml

from .. import config
from ..apply import apply
from ..config import Settings
from ..environment import EnvKey
from ..errors import ApiError
from ..models import DesiredState, ResourceRef
from ..predicates import daemonset_ready, deployment_available
from ..workflow import StepContext, StepSpec, Workflow
from .common import MissingData, ref_of, template_state, wait_for

logger = logging.getLogger(__name__)

NAME = "secured-cluster"
INIT_BUNDLES = "/v1/cluster-init/init-bundles"
# secrets an init bundle provides; any of them present means a bundle was applied
BUNDLE_SECRETS = ("sensor-tls", "collector-tls", "admission-control-tls")


def check_central(ctx: StepContext) -> dict:
    ctx.control_plane.ping()
    return {"result": "reachable"}


def bundle_secrets(kubectl_bundle: str, namespace: str):
    """Decode the base64 ``kubectlBundle`` into Secret bodies for ``namespace``."""
    try:
        text = base64.b64decode(kubectl_bundle).decode("utf-8")
        docs = list(yaml.safe_load_all(text))
    except (binascii.Error, UnicodeDecodeError, yaml.YAMLError) as e:
        raise MissingData(f"init bundle is not a base64 encoded YAML stream: {e}") from e
    for doc in docs:
        if not isinstance(doc, dict) or doc.get("kind") != "Secret":
            continue
        if not (doc.get("metadata") or {}).get("name"):
            raise MissingData("init bundle carries a Secret without a name")
        doc.setdefault("metadata", {})["namespace"] = namespace
        yield doc


def revoke_init_bundle(ctx: StepContext, name: str) -> None:
    """Revoke every init bundle called ``name``."""
    listing = ctx.control_plane.get_json(INIT_BUNDLES) or {}
    ids = [b.get("id") for b in listing.get("items") or [] if b.get("name") == name and b.get("id")]
    if not ids:
        raise MissingData(f"init bundle '{name}' reported as existing but is not listed")
    ctx.control_plane.call(
        "PATCH", f"{INIT_BUNDLES}/revoke", {"ids": ids, "confirmImpactedClustersIds": []}
    )
    logger.info("Revoked init bundle %s (%s)", name, ", ".join(ids))


def generate_init_bundle(ctx: StepContext) -> dict:
    """Generate the bundle; replace it when an earlier run left one behind.

    Central returns the bundle's certificates only once, so a bundle whose
    secrets were never applied is useless and must be regenerated.
    """
    name = ctx.settings.cluster_name
    try:
        return ctx.control_plane.post_json(INIT_BUNDLES, {"name": name}) or {}
    except ApiError as e:
        if e.status != 409:
            raise
    logger.warning("Init bundle %s already exists without its secrets; regenerating it", name)
    revoke_init_bundle(ctx, name)
    return ctx.control_plane.post_json(INIT_BUNDLES, {"name": name}) or {}


def apply_init_bundle(ctx: StepContext) -> dict:
    namespace = ctx.namespace
    existing = ctx.store.get(ResourceRef("SecuredCluster", config.SECURED_CLUSTER_NAME, namespace))
    if existing is not None:
        logger.info("SecuredCluster already exists, not generating an init bundle")
        return {"result": "skipped"}
    for name in BUNDLE_SECRETS:
        if ctx.store.get(ResourceRef("Secret", name, namespace)) is not None:
            logger.info("Init bundle secret %s already present", name)
            return {"result": "skipped"}

    bundle = generate_init_bundle(ctx).get("kubectlBundle")
    if not bundle:
        raise MissingData("init bundle response carried no kubectlBundle")

    count = 0
    for body in bundle_secrets(bundle, namespace):
        apply(ctx.store, ref_of(body), DesiredState(body=body))
        count += 1
    logger.info("Applied %d init bundle secrets", count)
    return {"result": f"{count} secrets"}


def secured_cluster_state(ctx: StepContext) -> DesiredState:
    endpoint = ctx.values.get("endpoint") or ctx.env.get(EnvKey.ROX_ENDPOINT) or ctx.settings.rox_endpoint
    if not endpoint:
        raise MissingData("Central endpoint unknown; run the central workflow first")
    return template_state(
        "secured-cluster",
        {
            "NAME": config.SECURED_CLUSTER_NAME,
            "NAMESPACE": ctx.namespace,
            "CLUSTER_NAME": ctx.settings.cluster_name,
            "CENTRAL_ENDPOINT": endpoint,
        },
    )


def build(settings: Settings) -> Workflow:
    namespace = settings.namespace
    return Workflow(
        name=NAME,
        steps=[
            StepSpec(name="central-reachable", action=check_central, repeat=True, description="ping Central"),
            StepSpec(
                name="init-bundle",
                action=apply_init_bundle,
                one_shot=True,
                description="apply init bundle",
            ),
            StepSpec(
                name="secured-cluster-cr",
                target=ResourceRef("SecuredCluster", config.SECURED_CLUSTER_NAME, namespace),
                desired=secured_cluster_state,
            ),
            wait_for(
                "sensor",
                ResourceRef("Deployment", "sensor", namespace),
                deployment_available,
                config.DEPLOYMENT_TIMEOUT,
            ),
            wait_for(
                "admission-control",
                ResourceRef("Deployment", "admission-control", namespace),
                deployment_available,
                config.DEPLOYMENT_TIMEOUT,
            ),
            wait_for(
                "collector",
                ResourceRef("DaemonSet", "collector", namespace),
                daemonset_ready,
                config.DEPLOYMENT_TIMEOUT,
                critical=False,
            ),
        ],
    )
