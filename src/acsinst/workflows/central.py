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
Central installation: RHACS operator, the Central CR, its route, and the
admin credentials later workflows authenticate with.
"""

import logging

from .. import config
from ..config import OperatorPackage, Settings
from ..controlplane import normalize_endpoint
from ..environment import EnvKey
from ..models import ResourceRef
from ..predicates import admitted_host, deployment_available, exists, route_admitted
from ..workflow import StepContext, StepSpec, Workflow
from .common import MissingData, apply_template, require_value, secret_value, wait_for
from .operator import operator_steps

logger = logging.getLogger(__name__)

NAME = "central"
TOKEN_NAME = "acsinst"


def route_outputs(route) -> dict:
    host = admitted_host(route)
    return {"central_host": host, "endpoint": normalize_endpoint(host)}


def save_admin_password(ctx: StepContext) -> dict:
    ref = ResourceRef("Secret", config.CENTRAL_HTPASSWD_SECRET, ctx.namespace)
    password = secret_value(ctx.store.get(ref), "password")
    if not password:
        raise MissingData(f"{ref} has no 'password' entry")
    ctx.env.set(EnvKey.ADMIN_PASSWORD, password)
    return {"result": "saved"}


def generate_api_token(ctx: StepContext) -> dict:
    """Create an Admin API token, unless one is already saved."""
    if ctx.env.get(EnvKey.ROX_API_TOKEN):
        logger.info("Reusing the saved %s", EnvKey.ROX_API_TOKEN.value)
        return {"result": "existing"}

    response = ctx.control_plane.post_json(
        "/v1/apitokens/generate", {"name": TOKEN_NAME, "roles": [config.TOKEN_ROLE]}
    )
    token = (response or {}).get("token")
    if not token:
        raise MissingData("token generation response carried no token")
    ctx.env.set(EnvKey.ROX_API_TOKEN, token)
    ctx.control_plane.set_token(token)
    return {"result": "generated"}


def save_endpoint(ctx: StepContext) -> dict:
    endpoint = require_value(ctx, "endpoint", "the Central route is not admitted")
    ctx.env.set(EnvKey.ROX_ENDPOINT, endpoint)
    ctx.env.set(EnvKey.NAMESPACE, ctx.namespace)
    return {"result": "saved"}


def build(settings: Settings) -> Workflow:
    namespace = settings.namespace
    central = {"NAME": config.CENTRAL_NAME, "NAMESPACE": namespace}

    steps = operator_steps(
        OperatorPackage.RHACS, config.RHACS_OPERATOR_NAMESPACE, own_namespace=False
    )
    steps += [
        apply_template("namespace", "namespace", {"NAMESPACE": namespace}),
        apply_template("central-cr", "central", central),
        wait_for(
            "central-deployment",
            ResourceRef("Deployment", config.CENTRAL_DEPLOYMENT, namespace),
            deployment_available,
            config.CENTRAL_TIMEOUT,
        ),
        wait_for(
            "central-route",
            ResourceRef("Route", config.CENTRAL_ROUTE, namespace),
            route_admitted,
            config.ROUTE_TIMEOUT,
            outputs=route_outputs,
        ),
        wait_for(
            "admin-secret",
            ResourceRef("Secret", config.CENTRAL_HTPASSWD_SECRET, namespace),
            exists,
            config.DEPLOYMENT_TIMEOUT,
        ),
        StepSpec(name="admin-password", action=save_admin_password, description="save admin password"),
        StepSpec(
            name="api-token",
            action=generate_api_token,
            one_shot=True,
            description="generate API token",
        ),
        StepSpec(name="endpoint", action=save_endpoint, description="save Central endpoint"),
    ]
    return Workflow(name=NAME, steps=steps)
