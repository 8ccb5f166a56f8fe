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
OLM operator installation: namespace, OperatorGroup, Subscription, then wait
for the Subscription to resolve a CSV and for that CSV to succeed.
"""

from typing import List

from .. import config
from ..config import OperatorPackage
from ..models import ResourceRef
from ..predicates import csv_succeeded, subscription_has_csv
from ..workflow import PollSpec, StepContext, StepSpec
from .common import apply_template, ref_of, require_value, template_state


def csv_key(package: OperatorPackage) -> str:
    return f"{package.value}.csv"


def operator_steps(
    package: OperatorPackage,
    namespace: str,
    own_namespace: bool = True,
) -> List[StepSpec]:
    """Steps installing one operator.

    With ``own_namespace`` the OperatorGroup targets only ``namespace``;
    otherwise it watches all namespaces.
    """
    prefix = package.value
    channel = config.OPERATOR_CHANNELS[package]

    group = template_state(
        "operator-group",
        {"NAME": prefix, "NAMESPACE": namespace, "TARGET_NAMESPACES": [namespace]},
    )
    if not own_namespace:
        group.body["spec"] = {}

    subscription = template_state(
        "subscription",
        {
            "PACKAGE": package.value,
            "NAMESPACE": namespace,
            "CHANNEL": channel,
            "SOURCE": config.OPERATOR_SOURCE,
            "SOURCE_NAMESPACE": config.OPERATOR_SOURCE_NAMESPACE,
        },
    )
    sub_ref = ref_of(subscription.body)
    key = csv_key(package)

    def fetch_csv(ctx: StepContext):
        name = require_value(ctx, key, "the subscription has not resolved a CSV")
        return ctx.store.get(ResourceRef("ClusterServiceVersion", name, namespace))

    return [
        apply_template(f"{prefix}-namespace", "namespace", {"NAMESPACE": namespace}),
        StepSpec(name=f"{prefix}-operator-group", target=ref_of(group.body), desired=group),
        StepSpec(name=f"{prefix}-subscription", target=sub_ref, desired=subscription),
        StepSpec(
            name=f"{prefix}-subscription-resolved",
            target=sub_ref,
            poll=PollSpec(
                predicate=subscription_has_csv,
                timeout=config.SUBSCRIPTION_TIMEOUT,
                outputs=lambda sub: {key: sub["status"]["currentCSV"]},
                description=f"subscription {prefix} to report its CSV",
            ),
            description=f"wait for {prefix} subscription",
        ),
        StepSpec(
            name=f"{prefix}-csv-succeeded",
            poll=PollSpec(
                predicate=csv_succeeded,
                timeout=config.CSV_TIMEOUT,
                fetch=fetch_csv,
                description=f"{prefix} CSV to succeed",
            ),
            description=f"wait for {prefix} CSV",
        ),
    ]

