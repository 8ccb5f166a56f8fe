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
Compliance operator plus the daily ``acs-catch-all`` scan configuration.
"""

import logging

from .. import config
from ..config import OperatorPackage, Settings
from ..models import ResourceRef
from ..predicates import profile_bundle_ready
from ..templates import render
from ..workflow import StepContext, StepSpec, Workflow
from .common import MissingData, require_value, resolve_cluster_step, wait_for
from .operator import operator_steps

logger = logging.getLogger(__name__)

NAME = "compliance"
SCAN_CONFIGURATIONS = "/v2/compliance/scan/configurations"


def find_scan_configuration(ctx: StepContext, name: str):
    response = ctx.control_plane.get_json(SCAN_CONFIGURATIONS)
    for item in (response or {}).get("configurations") or []:
        if item.get("scanName") == name:
            return item
    return None


def create_scan_configuration(ctx: StepContext) -> dict:
    name = config.SCAN_CONFIG_NAME
    existing = find_scan_configuration(ctx, name)
    if existing is not None:
        logger.info("Scan configuration '%s' already exists", name)
        return {"result": "exists", "scan_config_id": existing.get("id")}

    cluster_id = require_value(ctx, "cluster_id", "the cluster lookup did not run")
    body = render(
        "scan-configuration",
        {"SCAN_NAME": name, "PROFILES": config.SCAN_PROFILES, "CLUSTER_ID": cluster_id},
    )
    created = ctx.control_plane.post_json(SCAN_CONFIGURATIONS, body)
    config_id = (created or {}).get("id")
    if not config_id:
        raise MissingData("scan configuration response carried no id")
    return {"result": "created", "scan_config_id": config_id}


def build(settings: Settings) -> Workflow:
    namespace = config.COMPLIANCE_NAMESPACE
    steps = operator_steps(OperatorPackage.COMPLIANCE, namespace)
    for bundle in config.PROFILE_BUNDLES:
        steps.append(
            wait_for(
                f"profile-bundle-{bundle}",
                ResourceRef("ProfileBundle", bundle, namespace),
                profile_bundle_ready,
                config.PROFILE_BUNDLE_TIMEOUT,
                critical=False,
            )
        )
    steps += [
        resolve_cluster_step(),
        StepSpec(
            name="scan-configuration",
            action=create_scan_configuration,
            one_shot=True,
            description=f"create scan configuration {config.SCAN_CONFIG_NAME}",
        ),
    ]
    return Workflow(name=NAME, steps=steps)
