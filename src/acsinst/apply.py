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
Idempotent create-or-patch of declarative resources.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict

from .errors import AlreadyExists
from .models import MANAGED_BY_LABEL, ApplyResult, DesiredState, ResourceRef, is_managed

if TYPE_CHECKING:
    from .resources import ResourceStore

logger = logging.getLogger(__name__)

# metadata the API server fills in; never part of a comparison or a patch
SERVER_METADATA = frozenset(
    {
        "resourceVersion",
        "uid",
        "creationTimestamp",
        "generation",
        "managedFields",
        "selfLink",
        "deletionTimestamp",
        "deletionGracePeriodSeconds",
    }
)


def tracked_fields(body: Dict[str, Any]) -> Dict[str, Any]:
    """The part of a desired body that apply compares and patches."""
    tracked = {k: v for k, v in body.items() if k != "status"}
    metadata = tracked.get("metadata")
    if isinstance(metadata, dict):
        tracked["metadata"] = {
            k: v for k, v in metadata.items() if k not in SERVER_METADATA
        }
    return tracked


def without_ownership(tracked: Dict[str, Any]) -> Dict[str, Any]:
    """Drop the managed-by label so a pre-existing resource is not adopted."""
    labels = (tracked.get("metadata") or {}).get("labels")
    if not labels or MANAGED_BY_LABEL not in labels:
        return tracked
    labels = {k: v for k, v in labels.items() if k != MANAGED_BY_LABEL}
    metadata = {k: v for k, v in tracked["metadata"].items() if k != "labels"}
    if labels:
        metadata["labels"] = labels
    return {**tracked, "metadata": metadata}


def is_subset(desired: Any, live: Any) -> bool:
    """True when every value in ``desired`` is present and equal in ``live``.

    Dicts are compared key by key, so fields defaulted by the server do not
    count as drift. Lists must have the same length and match item by item.
    """
    if isinstance(desired, dict):
        if not isinstance(live, dict):
            return False
        return all(k in live and is_subset(v, live[k]) for k, v in desired.items())
    if isinstance(desired, list):
        if not isinstance(live, list) or len(desired) != len(live):
            return False
        return all(is_subset(d, l) for d, l in zip(desired, live))
    return desired == live


def _reconcile(
    store: "ResourceStore",
    ref: ResourceRef,
    desired: DesiredState,
    existing: Dict[str, Any],
) -> ApplyResult:
    if desired.one_shot:
        logger.info("%s exists; create-only, leaving it untouched", ref)
        return ApplyResult.SKIPPED

    tracked = tracked_fields(desired.body)
    if not is_managed(existing):
        tracked = without_ownership(tracked)
    if is_subset(tracked, existing):
        logger.debug("%s already matches desired state", ref)
        return ApplyResult.UNCHANGED

    store.patch(ref, tracked)
    logger.info("Patched %s", ref)
    return ApplyResult.UPDATED


def apply(store: "ResourceStore", ref: ResourceRef, desired: DesiredState) -> ApplyResult:
    """Create the resource if absent, patch it if it drifted, else leave it.

    Never implies readiness; callers poll for that separately.
    """
    existing = store.get(ref)
    if existing is not None:
        return _reconcile(store, ref, desired, existing)

    try:
        store.create(ref, desired.body)
    except AlreadyExists:
        # lost a create race; converge on whatever the other writer made
        logger.info("%s was created concurrently, retrying as patch", ref)
        existing = store.get(ref)
        if existing is None:
            raise
        return _reconcile(store, ref, desired, existing)

    logger.info("Created %s", ref)
    return ApplyResult.CREATED


def apply_once(store: "ResourceStore", ref: ResourceRef, desired: DesiredState) -> ApplyResult:
    """Create-only apply: an existing resource is reported as SKIPPED."""
    if not desired.one_shot:
        desired = DesiredState(body=desired.body, one_shot=True, owned=desired.owned)
    return apply(store, ref, desired)
