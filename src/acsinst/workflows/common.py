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
Step builders shared by the installation workflows.
"""

import base64
import binascii
import logging
from typing import Any, Dict, List, Optional

from ..errors import AcsInstError, NoCandidateAvailable
from ..models import DesiredState, ResourceRef, is_managed
from ..resources import ResourceStore
from ..templates import render
from ..workflow import PollSpec, StepContext, StepSpec

logger = logging.getLogger(__name__)


class MissingData(AcsInstError):
    """A resource or API response lacks a value the workflow depends on."""


def ref_of(body: Dict[str, Any]) -> ResourceRef:
    metadata = body.get("metadata") or {}
    return ResourceRef(
        kind=body["kind"],
        name=metadata["name"],
        namespace=metadata.get("namespace", ""),
        api_version=body.get("apiVersion"),
    )


def template_state(name: str, values: Dict[str, Any], **kwargs) -> DesiredState:
    return DesiredState(body=render(name, values), **kwargs)


def apply_template(
    step: str,
    template: str,
    values: Dict[str, Any],
    poll: Optional[PollSpec] = None,
    one_shot: bool = False,
    critical: bool = True,
) -> StepSpec:
    """A step that applies one rendered template (and optionally waits on it)."""
    desired = template_state(template, values, one_shot=one_shot)
    return StepSpec(
        name=step,
        target=ref_of(desired.body),
        desired=desired,
        poll=poll,
        one_shot=one_shot,
        critical=critical,
    )


def wait_for(
    step: str,
    target: ResourceRef,
    predicate,
    timeout: float,
    critical: bool = True,
    outputs=None,
) -> StepSpec:
    """A step that only waits for a resource to reach a state."""
    return StepSpec(
        name=step,
        target=target,
        poll=PollSpec(predicate=predicate, timeout=timeout, outputs=outputs),
        critical=critical,
        description=f"wait for {target}",
    )


def secret_value(secret: Optional[Dict[str, Any]], key: str) -> Optional[str]:
    """Decode one ``data`` entry of a Secret."""
    raw = ((secret or {}).get("data") or {}).get(key)
    if not raw:
        return None
    try:
        return base64.b64decode(raw).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise MissingData(f"secret key '{key}' is not base64 encoded text") from e


def encode_data(values: Dict[str, str]) -> Dict[str, str]:
    return {k: base64.b64encode(v.encode("utf-8")).decode("ascii") for k, v in values.items()}


def names_of(items: List[Dict[str, Any]]) -> List[str]:
    return [i["metadata"]["name"] for i in items if (i.get("metadata") or {}).get("name")]


def find_cluster(clusters: List[Dict[str, Any]], wanted: str) -> Optional[Dict[str, Any]]:
    """The named cluster, then a case-insensitive match, then the first one."""
    for cluster in clusters:
        if cluster.get("name") == wanted:
            return cluster
    for cluster in clusters:
        if str(cluster.get("name", "")).lower() == wanted.lower():
            return cluster
    return clusters[0] if clusters else None


def resolve_cluster(ctx: StepContext) -> Dict[str, Any]:
    """Look up the secured cluster's id in Central."""
    response = ctx.control_plane.get_json("/v1/clusters")
    clusters = (response or {}).get("clusters") or []
    cluster = find_cluster(clusters, ctx.settings.cluster_name)
    if cluster is None:
        raise NoCandidateAvailable("secured cluster", [ctx.settings.cluster_name])
    if cluster.get("name") != ctx.settings.cluster_name:
        logger.warning(
            "Cluster '%s' not found, using '%s'", ctx.settings.cluster_name, cluster.get("name")
        )
    if not cluster.get("id"):
        raise MissingData(f"cluster '{cluster.get('name')}' listed by Central has no id")
    return {"cluster_id": cluster["id"], "cluster_name": cluster.get("name", "")}


def resolve_cluster_step() -> StepSpec:
    return StepSpec(
        name="resolve-cluster",
        action=resolve_cluster,
        repeat=True,
        description="look up cluster id in Central",
    )


def require_value(ctx: StepContext, key: str, hint: str) -> Any:
    value = ctx.values.get(key)
    if value in (None, ""):
        raise MissingData(f"'{key}' is not known yet; {hint}")
    return value


def delete_if_present(store: ResourceStore, ref: ResourceRef) -> str:
    return "deleted" if store.delete(ref) else "absent"


def delete_if_owned(store: ResourceStore, ref: ResourceRef) -> str:
    """Delete ``ref`` only when it carries the managed-by label."""
    existing = store.get(ref)
    if existing is None:
        return "absent"
    if not is_managed(existing):
        logger.info("Keeping %s: not created by acsinst", ref)
        return "kept (not managed)"
    return delete_if_present(store, ref)
