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
Metrics collection for Central through the cluster observability operator,
with a Perses datasource and the console UI plugin.
"""

import logging

from .. import config
from ..apply import apply
from ..config import OperatorPackage, Settings
from ..environment import EnvKey
from ..fallback import crd_group_candidates, require, value_of
from ..models import DesiredState, ResourceRef
from ..predicates import condition_is
from ..workflow import PollSpec, StepContext, StepSpec, Workflow
from .common import MissingData, apply_template, encode_data, ref_of, template_state
from .operator import operator_steps

logger = logging.getLogger(__name__)

NAME = "monitoring"
TOKEN_SECRET = "rhacs-metrics-token"


def token_secret_state(ctx: StepContext) -> DesiredState:
    token = ctx.env.get(EnvKey.ROX_API_TOKEN) or ctx.settings.rox_api_token
    if not token:
        raise MissingData("no ROX_API_TOKEN saved; run the central workflow first")
    body = {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": TOKEN_SECRET, "namespace": ctx.namespace},
        "type": "Opaque",
        "data": encode_data({"token": token}),
    }
    return DesiredState(body=body)


def apply_datasource(ctx: StepContext) -> dict:
    """Create the Perses datasource under whichever API group serves it."""
    candidate = require(
        crd_group_candidates(ctx.store, "persesdatasources", config.PERSES_API_GROUPS),
        "PersesDatasource API group",
    )
    api_version = value_of(candidate)
    desired = template_state(
        "perses-datasource",
        {
            "API_VERSION": api_version,
            "NAME": config.PERSES_DATASOURCE_NAME,
            "NAMESPACE": ctx.namespace,
            "STACK_NAME": config.MONITORING_STACK_NAME,
        },
    )
    result = apply(ctx.store, ref_of(desired.body), desired)
    return {"result": f"{result.value} ({api_version})", "perses_api_version": api_version}


def build(settings: Settings) -> Workflow:
    namespace = settings.namespace
    steps = operator_steps(
        OperatorPackage.OBSERVABILITY, config.OBSERVABILITY_NAMESPACE, own_namespace=False
    )
    steps += [
        apply_template(
            "monitoring-stack",
            "monitoring-stack",
            {"NAME": config.MONITORING_STACK_NAME, "NAMESPACE": namespace},
        ),
        StepSpec(
            name="metrics-token",
            target=ResourceRef("Secret", TOKEN_SECRET, namespace),
            desired=token_secret_state,
        ),
        apply_template(
            "scrape-config",
            "scrape-config",
            {"NAME": config.SCRAPE_CONFIG_NAME, "NAMESPACE": namespace, "TOKEN_SECRET": TOKEN_SECRET},
        ),
        StepSpec(name="perses-datasource", action=apply_datasource, description="apply Perses datasource"),
        apply_template(
            "ui-plugin",
            "ui-plugin",
            {"NAME": config.UI_PLUGIN_NAME},
            poll=PollSpec(predicate=condition_is("Available"), timeout=config.UI_PLUGIN_TIMEOUT),
            critical=False,
        ),
    ]
    return Workflow(name=NAME, steps=steps)
