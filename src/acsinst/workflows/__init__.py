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

"""Installation workflows, by CLI name."""

from enum import Enum
from typing import Callable, Dict

from ..config import Settings
from ..workflow import Workflow
from . import central, cleanup, compliance, monitoring, scan, secured_cluster, settings, tls


class WorkflowName(str, Enum):
    CENTRAL = "central"
    SECURED_CLUSTER = "secured-cluster"
    COMPLIANCE = "compliance"
    SCAN = "scan"
    TLS = "tls"
    MONITORING = "monitoring"
    SETTINGS = "settings"
    CLEANUP = "cleanup"


BUILDERS: Dict[WorkflowName, Callable[[Settings], Workflow]] = {
    WorkflowName.CENTRAL: central.build,
    WorkflowName.SECURED_CLUSTER: secured_cluster.build,
    WorkflowName.COMPLIANCE: compliance.build,
    WorkflowName.SCAN: scan.build,
    WorkflowName.TLS: tls.build,
    WorkflowName.MONITORING: monitoring.build,
    WorkflowName.SETTINGS: settings.build,
    WorkflowName.CLEANUP: cleanup.build,
}

# order used by `acsinst all`
INSTALL_ORDER = [
    WorkflowName.CENTRAL,
    WorkflowName.SECURED_CLUSTER,
    WorkflowName.TLS,
    WorkflowName.COMPLIANCE,
    WorkflowName.SCAN,
    WorkflowName.MONITORING,
    WorkflowName.SETTINGS,
]


def build(name: WorkflowName, settings: Settings) -> Workflow:
    return BUILDERS[WorkflowName(name)](settings)
