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
Tests for KubernetesResourceStore with the kubernetes client mocked out.
"""

from unittest.mock import MagicMock

import pytest
from kubernetes.client import ApiException
from urllib3.exceptions import MaxRetryError

from acsinst.errors import AlreadyExists, NotConnected, PermissionDenied, ResourceStoreError
from acsinst.models import ApplyResult, DesiredState, ResourceRef
from acsinst.resources import (
    KINDS,
    MERGE_PATCH,
    KindInfo,
    KubernetesResourceStore,
    kind_info,
    register_kind,
    split_api_version,
)

CENTRAL = ResourceRef("Central", "stackrox-central-services", "tssc-acs")
SECRET = ResourceRef("Secret", "central-htpasswd", "tssc-acs")


@pytest.fixture
def kube():
    store = KubernetesResourceStore(api_client=MagicMock())
    store._custom_api = MagicMock()
    store._core_api = MagicMock()
    store._apps_api = MagicMock()
    store._ext_api = MagicMock()
    return store


class TestRead:
    """Tests for get across API families."""

    def test_custom_object_get(self, kube):
        kube.custom_api.get_namespaced_custom_object.return_value = {"kind": "Central"}

        assert kube.get(CENTRAL) == {"kind": "Central"}
        kube.custom_api.get_namespaced_custom_object.assert_called_once_with(
            name="stackrox-central-services",
            group="platform.stackrox.io",
            version="v1alpha1",
            plural="centrals",
            namespace="tssc-acs",
        )

    def test_cluster_scoped_custom_object(self, kube):
        kube.custom_api.get_cluster_custom_object.return_value = {"kind": "UIPlugin"}
        assert kube.get(ResourceRef("UIPlugin", "monitoring")) == {"kind": "UIPlugin"}

    def test_typed_object_is_serialized(self, kube):
        kube.core_api.read_namespaced_secret.return_value = object()
        kube.api_client.sanitize_for_serialization.return_value = {"kind": "Secret"}

        assert kube.get(SECRET) == {"kind": "Secret"}
        kube.core_api.read_namespaced_secret.assert_called_once_with(
            name="central-htpasswd", namespace="tssc-acs"
        )

    def test_api_version_override(self, kube):
        kube.custom_api.get_namespaced_custom_object.return_value = {}
        ref = ResourceRef("PersesDatasource", "d", "ns", "observability.openshift.io/v1alpha1")
        kube.get(ref)
        kwargs = kube.custom_api.get_namespaced_custom_object.call_args.kwargs
        assert kwargs["group"] == "observability.openshift.io"

    def test_pods_listed_by_label(self, kube):
        kube.core_api.list_namespaced_pod.return_value = {"items": [{"metadata": {"name": "central-1"}}]}

        assert kube.list("Pod", "tssc-acs", label_selector="app=central") == [{"metadata": {"name": "central-1"}}]
        kube.core_api.list_namespaced_pod.assert_called_once_with(namespace="tssc-acs", label_selector="app=central")

    def test_missing_is_none(self, kube):
        kube.custom_api.get_namespaced_custom_object.side_effect = ApiException(status=404, reason="Not Found")
        assert kube.get(CENTRAL) is None


class TestErrors:
    """Tests for error classification."""

    @pytest.mark.parametrize(
        "status,error",
        [(401, NotConnected), (403, PermissionDenied), (500, ResourceStoreError)],
    )
    def test_status_mapping(self, kube, status, error):
        kube.custom_api.get_namespaced_custom_object.side_effect = ApiException(status=status, reason="x")
        with pytest.raises(error):
            kube.get(CENTRAL)

    def test_unreachable(self, kube):
        kube.core_api.read_namespaced_secret.side_effect = MaxRetryError(None, "/api/v1")
        with pytest.raises(NotConnected):
            kube.get(SECRET)

    def test_create_conflict(self, kube):
        kube.custom_api.create_namespaced_custom_object.side_effect = ApiException(status=409, reason="Conflict")
        with pytest.raises(AlreadyExists):
            kube.create(CENTRAL, {"kind": "Central"})

    def test_unknown_kind(self, kube):
        with pytest.raises(ValueError):
            kube.get(ResourceRef("Widget", "x"))


class TestWrite:
    """Tests for patch, delete and list."""

    def test_patch_uses_merge_patch(self, kube):
        kube.custom_api.patch_namespaced_custom_object.return_value = {}
        kube.patch(CENTRAL, {"spec": {}})
        kwargs = kube.custom_api.patch_namespaced_custom_object.call_args.kwargs
        assert kwargs["_content_type"] == MERGE_PATCH
        assert kwargs["body"] == {"spec": {}}

    def test_delete_absent(self, kube):
        kube.core_api.delete_namespace.side_effect = ApiException(status=404)
        assert kube.delete(ResourceRef("Namespace", "gone")) is False

    def test_delete(self, kube):
        assert kube.delete(ResourceRef("Namespace", "tssc-acs")) is True
        kube.core_api.delete_namespace.assert_called_once_with(name="tssc-acs")

    def test_list_all_namespaces(self, kube):
        kube.custom_api.list_cluster_custom_object.return_value = {"items": [{"a": 1}]}
        assert kube.list("Issuer") == [{"a": 1}]

    def test_list_missing_crd(self, kube):
        kube.custom_api.list_cluster_custom_object.side_effect = ApiException(status=404)
        assert kube.list("ClusterIssuer") == []

    def test_crd_established(self, kube):
        kube.ext_api.read_custom_resource_definition.return_value = {
            "status": {"conditions": [{"type": "Established", "status": "True"}]}
        }
        assert kube.crd_established("persesdatasources.perses.dev")

    def test_finalize_namespace_clears_finalizers(self, kube):
        kube.core_api.read_namespace.return_value = {
            "metadata": {"name": "stuck"},
            "spec": {"finalizers": ["kubernetes"]},
        }
        kube.finalize_namespace("stuck")
        body = kube.core_api.replace_namespace_finalize.call_args.kwargs["body"]
        assert body["spec"]["finalizers"] == []


class TestKinds:
    def test_split_api_version(self):
        assert split_api_version("v1") == ("", "v1")
        assert split_api_version("cert-manager.io/v1") == ("cert-manager.io", "v1")

    def test_cert_manager_is_cluster_scoped(self):
        assert not kind_info("CertManager").namespaced

    def test_register_kind(self, kube, monkeypatch):
        monkeypatch.setattr("acsinst.resources.KINDS", dict(KINDS))
        register_kind("Widget", KindInfo("example.com/v1", "widgets", True))
        kube.custom_api.get_namespaced_custom_object.return_value = {"kind": "Widget"}
        assert kube.get(ResourceRef("Widget", "w", "ns")) == {"kind": "Widget"}


class TestStoreHelpers:
    """Tests for the concrete helpers on the ResourceStore interface."""

    def test_apply(self, store):
        desired = DesiredState({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "ops-ns"}})
        ref = ResourceRef("Namespace", "ops-ns")
        assert store.apply(ref, desired) == ApplyResult.CREATED
        assert store.apply(ref, desired) == ApplyResult.UNCHANGED

    def test_wait_for_condition_already_met(self, store):
        ref = ResourceRef("Certificate", "rhacs-central-tls", "tssc-acs")
        store.put(ref, {"status": {"conditions": [{"type": "Ready", "status": "True"}]}})

        outcome = store.wait_for_condition(ref, "Ready", timeout=5)

        assert outcome.ready
        assert outcome.attempts == 1
