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
Central system configuration: telemetry and Prometheus metrics.
"""

import copy
import logging
from typing import Any, Dict

from ..config import Settings
from ..templates import render
from ..workflow import StepContext, StepSpec, Workflow

logger = logging.getLogger(__name__)

NAME = "settings"
CONFIG = "/v1/config"


def merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``overlay`` into a copy of ``base``; overlay wins."""
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _current(ctx: StepContext) -> Dict[str, Any]:
    response = ctx.control_plane.get_json(CONFIG) or {}
    # some releases wrap the config, some do not
    return response.get("config", response)


def update_config(ctx: StepContext) -> dict:
    current = _current(ctx)
    merged = merge(current, render("central-config"))
    if merged == current:
        logger.info("Central configuration already up to date")
        return {"result": "unchanged"}
    ctx.control_plane.put_json(CONFIG, {"config": merged})
    return {"result": "updated"}


def verify_telemetry(ctx: StepContext) -> dict:
    enabled = bool(((_current(ctx).get("publicConfig") or {}).get("telemetry") or {}).get("enabled"))
    if not enabled:
        logger.warning("Telemetry is still reported as disabled after the update")
    return {"result": "enabled" if enabled else "not confirmed", "telemetry": enabled}


def build(settings: Settings) -> Workflow:
    return Workflow(
        name=NAME,
        steps=[
            StepSpec(
                name="central-config",
                action=update_config,
                repeat=True,
                description="merge telemetry and metrics settings",
            ),
            StepSpec(
                name="verify-telemetry",
                action=verify_telemetry,
                repeat=True,
                description="verify telemetry",
            ),
        ],
    )
