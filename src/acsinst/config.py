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
Static names used by the installation workflows, and settings loaded from
the environment.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Core Paths ---
SCRIPT_DIR = Path(__file__).parent.resolve()
MANIFESTS_DIR = SCRIPT_DIR / "manifests"
DEFAULT_STATE_FILE = Path("~/.acsinst/state.json")
DEFAULT_PROFILE = Path("~/.bashrc")

# --- Namespaces ---
RHACS_NAMESPACE = "tssc-acs"
RHACS_OPERATOR_NAMESPACE = "rhacs-operator"
COMPLIANCE_NAMESPACE = "openshift-compliance"
CERT_MANAGER_OPERATOR_NAMESPACE = "cert-manager-operator"
OBSERVABILITY_NAMESPACE = "openshift-cluster-observability-operator"

# --- Resource names ---
CENTRAL_NAME = "stackrox-central-services"
CENTRAL_DEPLOYMENT = "central"
CENTRAL_ROUTE = "central"
CENTRAL_HTPASSWD_SECRET = "central-htpasswd"
SECURED_CLUSTER_NAME = "secured-cluster-services"
CERTIFICATE_NAME = "rhacs-central-tls"
CERTIFICATE_SECRET = "central-default-tls-cert"
CERT_MANAGER_CR_NAME = "cluster"
PREFERRED_CLUSTER_ISSUER = "zerossl-production-ec2"
SCAN_CONFIG_NAME = "acs-catch-all"
PROFILE_BUNDLES = ["ocp4", "rhcos4"]
MONITORING_STACK_NAME = "rhacs-monitoring-stack"
SCRAPE_CONFIG_NAME = "rhacs-scrape-config"
PERSES_DATASOURCE_NAME = "rhacs-datasource"
UI_PLUGIN_NAME = "monitoring"
TOKEN_ROLE = "Admin"

# API groups under which the Perses datasource kind may be served, preferred first
PERSES_API_GROUPS = ["perses.dev", "observability.openshift.io"]

# Profiles enabled in the scheduled compliance scan
SCAN_PROFILES = [
    "ocp4-cis",
    "ocp4-cis-node",
    "ocp4-e8",
    "ocp4-high",
    "ocp4-high-node",
    "ocp4-nerc-cip",
    "ocp4-nerc-cip-node",
    "ocp4-pci-dss",
    "ocp4-pci-dss-node",
    "ocp4-stig",
    "ocp4-stig-node",
]


# --- Operator subscriptions ---
class OperatorPackage(str, Enum):
    RHACS = "rhacs-operator"
    COMPLIANCE = "compliance-operator"
    CERT_MANAGER = "openshift-cert-manager-operator"
    OBSERVABILITY = "cluster-observability-operator"


OPERATOR_CHANNELS = {
    OperatorPackage.RHACS: "stable",
    OperatorPackage.COMPLIANCE: "stable",
    OperatorPackage.CERT_MANAGER: "stable-v1",
    OperatorPackage.OBSERVABILITY: "stable",
}
OPERATOR_SOURCE = "redhat-operators"
OPERATOR_SOURCE_NAMESPACE = "openshift-marketplace"

# --- Poll timeouts (seconds) ---
# Defaults for the waits in each workflow.
POLL_INTERVAL = 5
SUBSCRIPTION_TIMEOUT = 300
CSV_TIMEOUT = 300
DEPLOYMENT_TIMEOUT = 300
CENTRAL_TIMEOUT = 600
ROUTE_TIMEOUT = 180
CERT_MANAGER_TIMEOUT = 600
CERTIFICATE_TIMEOUT = 600
PROFILE_BUNDLE_TIMEOUT = 600
SCAN_RUN_TIMEOUT = 900
NAMESPACE_DELETE_TIMEOUT = 120
FINALIZE_TIMEOUT = 60
UI_PLUGIN_TIMEOUT = 300


class Settings(BaseSettings):
    """Settings loaded from environment variables (and an optional .env)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Control-plane access
    rox_endpoint: Optional[str] = None
    rox_api_token: Optional[str] = None
    admin_password: Optional[str] = None
    verify_tls: bool = False
    request_timeout: float = 45.0

    # Local persistence
    profile_path: Path = DEFAULT_PROFILE
    state_file: Path = DEFAULT_STATE_FILE

    # Cluster access
    kubeconfig_context: Optional[str] = None

    # Workflow knobs
    namespace: str = RHACS_NAMESPACE
    cluster_name: str = "production"
    compliance_standard: str = "HIPAA 164"
    cert_issuer_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("cert_issuer_name", "cert_manager_issuer_name"),
    )
    cert_issuer_kind: str = Field(
        default="ClusterIssuer",
        validation_alias=AliasChoices("cert_issuer_kind", "cert_manager_issuer_kind"),
    )
    poll_interval: float = POLL_INTERVAL

    @property
    def resolved_state_file(self) -> Path:
        return self.state_file.expanduser()

    @property
    def resolved_profile_path(self) -> Path:
        return self.profile_path.expanduser()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
