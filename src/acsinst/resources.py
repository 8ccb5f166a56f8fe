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
Declarative cluster API access.

``ResourceStore`` is the interface the workflows program against;
``KubernetesResourceStore`` implements it with the official kubernetes
client. Every read returns plain dicts, whichever API family served it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import kubernetes.client
import kubernetes.config
from kubernetes.client import ApiException
from kubernetes.config import ConfigException
from urllib3.exceptions import HTTPError

from .config import POLL_INTERVAL
from .errors import (
    AlreadyExists,
    NotConnected,
    PermissionDenied,
    ResourceStoreError,
)
from .models import ApplyResult, DesiredState, PollOutcome, ResourceRef

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"

CORE = "core"
APPS = "apps"
APIEXTENSIONS = "apiextensions"
CUSTOM = "custom"


@dataclass(frozen=True)
class KindInfo:
    api_version: str
    plural: str
    namespaced: bool
    family: str = CUSTOM
    # snake_case suffix of the typed client methods (core/apps/apiextensions)
    method: str = ""


KINDS: Dict[str, KindInfo] = {
    "Namespace": KindInfo("v1", "namespaces", False, CORE, "namespace"),
    "Secret": KindInfo("v1", "secrets", True, CORE, "secret"),
    "ConfigMap": KindInfo("v1", "configmaps", True, CORE, "config_map"),
    "Pod": KindInfo("v1", "pods", True, CORE, "pod"),
    "Deployment": KindInfo("apps/v1", "deployments", True, APPS, "deployment"),
    "DaemonSet": KindInfo("apps/v1", "daemonsets", True, APPS, "daemon_set"),
    "CustomResourceDefinition": KindInfo(
        "apiextensions.k8s.io/v1",
        "customresourcedefinitions",
        False,
        APIEXTENSIONS,
        "custom_resource_definition",
    ),
    "OperatorGroup": KindInfo("operators.coreos.com/v1", "operatorgroups", True),
    "Subscription": KindInfo("operators.coreos.com/v1alpha1", "subscriptions", True),
    "ClusterServiceVersion": KindInfo(
        "operators.coreos.com/v1alpha1", "clusterserviceversions", True
    ),
    "Central": KindInfo("platform.stackrox.io/v1alpha1", "centrals", True),
    "SecuredCluster": KindInfo(
        "platform.stackrox.io/v1alpha1", "securedclusters", True
    ),
    "Route": KindInfo("route.openshift.io/v1", "routes", True),
    "CertManager": KindInfo("operator.openshift.io/v1alpha1", "certmanagers", False),
    "Certificate": KindInfo("cert-manager.io/v1", "certificates", True),
    "ClusterIssuer": KindInfo("cert-manager.io/v1", "clusterissuers", False),
    "Issuer": KindInfo("cert-manager.io/v1", "issuers", True),
    "ProfileBundle": KindInfo(
        "compliance.openshift.io/v1alpha1", "profilebundles", True
    ),
    "ScanSettingBinding": KindInfo(
        "compliance.openshift.io/v1alpha1", "scansettingbindings", True
    ),
    "MonitoringStack": KindInfo(
        "monitoring.rhobs/v1alpha1", "monitoringstacks", True
    ),
    "ScrapeConfig": KindInfo("monitoring.rhobs/v1alpha1", "scrapeconfigs", True),
    "UIPlugin": KindInfo("observability.openshift.io/v1alpha1", "uiplugins", False),
    "PersesDatasource": KindInfo("perses.dev/v1alpha1", "persesdatasources", True),
}


def register_kind(kind: str, info: KindInfo) -> None:
    """Register (or override) how a kind is addressed."""
    KINDS[kind] = info


def kind_info(kind: str) -> KindInfo:
    try:
        return KINDS[kind]
    except KeyError:
        raise ValueError(f"unknown resource kind '{kind}'") from None


def api_version_of(ref: ResourceRef) -> str:
    return ref.api_version or kind_info(ref.kind).api_version


def split_api_version(api_version: str) -> Tuple[str, str]:
    """'group/version' -> (group, version); 'v1' -> ('', 'v1')."""
    if "/" in api_version:
        group, version = api_version.split("/", 1)
        return group, version
    return "", api_version


class ResourceStore(ABC):
    """Key/value view of the cluster's declarative API."""

    @abstractmethod
    def get(self, ref: ResourceRef) -> Optional[Dict[str, Any]]:
        """Return the live resource, or None when it does not exist."""

    @abstractmethod
    def create(self, ref: ResourceRef, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create the resource. Raises AlreadyExists on conflict."""

    @abstractmethod
    def patch(self, ref: ResourceRef, body: Dict[str, Any]) -> Dict[str, Any]:
        """JSON merge patch of an existing resource."""

    @abstractmethod
    def replace(self, ref: ResourceRef, body: Dict[str, Any]) -> Dict[str, Any]:
        """Full replacement of an existing resource."""

    @abstractmethod
    def delete(self, ref: ResourceRef) -> bool:
        """Delete the resource. False when it was already absent."""

    @abstractmethod
    def list(
        self, kind: str, namespace: str = "", label_selector: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List resources of a kind, optionally namespaced and label-filtered."""

    @abstractmethod
    def crd_established(self, name: str) -> bool:
        """True when the CRD is registered and reports Established=True."""

    @abstractmethod
    def finalize_namespace(self, name: str) -> None:
        """Clear the finalizers of a namespace stuck in Terminating."""

    def apply(self, ref: ResourceRef, desired: DesiredState) -> ApplyResult:
        from .apply import apply

        return apply(self, ref, desired)

    def wait_for_condition(
        self,
        ref: ResourceRef,
        condition_type: str,
        desired_status: str = "True",
        timeout: float = 300,
        interval: float = POLL_INTERVAL,
    ) -> PollOutcome:
        from .poller import Poller
        from .predicates import condition_is

        poller = Poller(interval=interval, timeout=timeout)
        return poller.poll(
            lambda: self.get(ref),
            condition_is(condition_type, desired_status),
            description=f"{ref} {condition_type}={desired_status}",
        )


class KubernetesResourceStore(ResourceStore):
    """ResourceStore backed by the kubernetes python client."""

    def __init__(
        self,
        api_client: Optional[kubernetes.client.ApiClient] = None,
        context: Optional[str] = None,
    ):
        self.api_client = api_client or self._load_config(context)
        self._custom_api: Optional[kubernetes.client.CustomObjectsApi] = None
        self._core_api: Optional[kubernetes.client.CoreV1Api] = None
        self._apps_api: Optional[kubernetes.client.AppsV1Api] = None
        self._ext_api: Optional[kubernetes.client.ApiextensionsV1Api] = None

    @staticmethod
    def _load_config(context: Optional[str] = None) -> kubernetes.client.ApiClient:
        """Load Kubernetes configuration (in-cluster or kubeconfig)."""
        try:
            kubernetes.config.load_kube_config(context=context)
            logger.debug("Loaded kubeconfig (context=%s)", context or "current")
        except ConfigException as kube_err:
            try:
                kubernetes.config.load_incluster_config()
                logger.debug("Loaded in-cluster Kubernetes config")
            except ConfigException:
                raise NotConnected(
                    f"could not load Kubernetes configuration: {kube_err}"
                ) from kube_err
        return kubernetes.client.ApiClient()

    @property
    def custom_api(self) -> kubernetes.client.CustomObjectsApi:
        if self._custom_api is None:
            self._custom_api = kubernetes.client.CustomObjectsApi(self.api_client)
        return self._custom_api

    @property
    def core_api(self) -> kubernetes.client.CoreV1Api:
        if self._core_api is None:
            self._core_api = kubernetes.client.CoreV1Api(self.api_client)
        return self._core_api

    @property
    def apps_api(self) -> kubernetes.client.AppsV1Api:
        if self._apps_api is None:
            self._apps_api = kubernetes.client.AppsV1Api(self.api_client)
        return self._apps_api

    @property
    def ext_api(self) -> kubernetes.client.ApiextensionsV1Api:
        if self._ext_api is None:
            self._ext_api = kubernetes.client.ApiextensionsV1Api(self.api_client)
        return self._ext_api

    def _typed_api(self, info: KindInfo):
        if info.family == CORE:
            return self.core_api
        if info.family == APPS:
            return self.apps_api
        return self.ext_api

    def _to_dict(self, obj: Any) -> Any:
        if obj is None or isinstance(obj, dict):
            return obj
        return self.api_client.sanitize_for_serialization(obj)

    def _typed_call(self, verb: str, ref: ResourceRef, info: KindInfo, **kwargs):
        api = self._typed_api(info)
        if info.namespaced:
            method = getattr(api, f"{verb}_namespaced_{info.method}")
            kwargs["namespace"] = ref.namespace
        else:
            method = getattr(api, f"{verb}_{info.method}")
        return method(**kwargs)

    def _custom_call(self, verb: str, ref: ResourceRef, info: KindInfo, **kwargs):
        if verb == "read":
            verb = "get"
        group, version = split_api_version(api_version_of(ref))
        kwargs.update(group=group, version=version, plural=info.plural)
        if info.namespaced:
            method = getattr(self.custom_api, f"{verb}_namespaced_custom_object")
            kwargs["namespace"] = ref.namespace
        else:
            method = getattr(self.custom_api, f"{verb}_cluster_custom_object")
        return method(**kwargs)

    def _call(self, verb: str, ref: ResourceRef, **kwargs):
        info = kind_info(ref.kind)
        try:
            if info.family == CUSTOM:
                return self._custom_call(verb, ref, info, **kwargs)
            return self._typed_call(verb, ref, info, **kwargs)
        except HTTPError as e:
            raise NotConnected(f"cluster API unreachable while accessing {ref}: {e}") from e

    @staticmethod
    def _raise_for(ref: ResourceRef, e: ApiException):
        if e.status == 401:
            raise NotConnected(f"cluster API rejected credentials while accessing {ref}") from e
        if e.status == 403:
            raise PermissionDenied(f"not permitted to access {ref}: {e.reason}") from e
        raise ResourceStoreError(ref, e.status, e.reason or "") from e

    def get(self, ref: ResourceRef) -> Optional[Dict[str, Any]]:
        try:
            return self._to_dict(self._call("read", ref, name=ref.name))
        except ApiException as e:
            if e.status == 404:
                return None
            self._raise_for(ref, e)

    def create(self, ref: ResourceRef, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            created = self._call("create", ref, body=body)
        except ApiException as e:
            if e.status == 409:
                raise AlreadyExists(ref) from e
            self._raise_for(ref, e)
        logger.debug("Created %s", ref)
        return self._to_dict(created)

    def patch(self, ref: ResourceRef, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            patched = self._call(
                "patch", ref, name=ref.name, body=body, _content_type=MERGE_PATCH
            )
        except ApiException as e:
            self._raise_for(ref, e)
        logger.debug("Patched %s", ref)
        return self._to_dict(patched)

    def replace(self, ref: ResourceRef, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            replaced = self._call("replace", ref, name=ref.name, body=body)
        except ApiException as e:
            self._raise_for(ref, e)
        logger.debug("Replaced %s", ref)
        return self._to_dict(replaced)

    def delete(self, ref: ResourceRef) -> bool:
        try:
            self._call("delete", ref, name=ref.name)
        except ApiException as e:
            if e.status == 404:
                logger.debug("%s already absent", ref)
                return False
            self._raise_for(ref, e)
        logger.debug("Deleted %s", ref)
        return True

    def list(
        self, kind: str, namespace: str = "", label_selector: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        info = kind_info(kind)
        ref = ResourceRef(kind=kind, name="*", namespace=namespace)
        kwargs: Dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        try:
            if info.family == CUSTOM:
                if info.namespaced and not namespace:
                    group, version = split_api_version(info.api_version)
                    result = self.custom_api.list_cluster_custom_object(
                        group=group, version=version, plural=info.plural, **kwargs
                    )
                else:
                    result = self._custom_call("list", ref, info, **kwargs)
            elif info.namespaced and not namespace:
                api = self._typed_api(info)
                result = getattr(api, f"list_{info.method}_for_all_namespaces")(**kwargs)
            else:
                result = self._typed_call("list", ref, info, **kwargs)
        except ApiException as e:
            if e.status == 404:
                return []
            self._raise_for(ref, e)
        except HTTPError as e:
            raise NotConnected(f"cluster API unreachable while listing {kind}: {e}") from e
        return list(self._to_dict(result).get("items") or [])

    def crd_established(self, name: str) -> bool:
        from .predicates import crd_is_established

        crd = self.get(ResourceRef(kind="CustomResourceDefinition", name=name))
        return crd_is_established(crd)

    def finalize_namespace(self, name: str) -> None:
        ref = ResourceRef(kind="Namespace", name=name)
        ns = self.get(ref)
        if ns is None:
            return
        ns.setdefault("spec", {})["finalizers"] = []
        try:
            self.core_api.replace_namespace_finalize(name=name, body=ns)
        except ApiException as e:
            if e.status == 404:
                return
            self._raise_for(ref, e)
        except HTTPError as e:
            raise NotConnected(f"cluster API unreachable while finalizing {ref}: {e}") from e
        logger.info("Cleared finalizers of namespace %s", name)
