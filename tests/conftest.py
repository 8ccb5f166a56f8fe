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
Shared fakes: an in-memory resource store, a scripted control plane and a
clock that only moves when the code under test sleeps.
"""

import copy
import json

import pytest

from acsinst.config import Settings
from acsinst.controlplane import ControlPlaneClient, Response
from acsinst.environment import MemoryEnvironment
from acsinst.errors import AlreadyExists, ApiError, ResourceStoreError
from acsinst.ledger import Ledger
from acsinst.resources import ResourceStore
from acsinst.workflow import StepContext


def merge_patch(target, patch):
    """RFC 7386 merge patch."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


class FakeResourceStore(ResourceStore):
    def __init__(self):
        self.objects = {}
        self.calls = []
        self.crds = set()
        self.finalized = []
        self.delete_keeps = set()
        self.create_race = set()
        # kind -> callable(body) returning the status a controller would set
        self.controllers = {}

    @staticmethod
    def _key(ref):
        return (ref.kind, ref.namespace, ref.name)

    def put(self, ref, body):
        """Place an object as if some controller created it."""
        body = copy.deepcopy(body)
        metadata = body.setdefault("metadata", {})
        metadata.setdefault("name", ref.name)
        if ref.namespace:
            metadata.setdefault("namespace", ref.namespace)
        body.setdefault("kind", ref.kind)
        self.objects[self._key(ref)] = body
        return body

    def set_status(self, ref, status):
        self.objects[self._key(ref)]["status"] = copy.deepcopy(status)

    def verbs(self, verb):
        return [ref for v, ref in self.calls if v == verb]

    def get(self, ref):
        self.calls.append(("get", ref))
        return copy.deepcopy(self.objects.get(self._key(ref)))

    def create(self, ref, body):
        self.calls.append(("create", ref))
        key = self._key(ref)
        if key in self.create_race:
            # another writer wins the race between our get and create
            self.create_race.discard(key)
            self.put(ref, body)
            raise AlreadyExists(ref)
        if key in self.objects:
            raise AlreadyExists(ref)
        created = self.put(ref, body)
        if ref.kind in self.controllers:
            created["status"] = self.controllers[ref.kind](created)
        return copy.deepcopy(created)

    def patch(self, ref, body):
        self.calls.append(("patch", ref))
        key = self._key(ref)
        if key not in self.objects:
            raise ResourceStoreError(ref, 404, "Not Found")
        self.objects[key] = merge_patch(self.objects[key], body)
        return copy.deepcopy(self.objects[key])

    def replace(self, ref, body):
        self.calls.append(("replace", ref))
        self.objects[self._key(ref)] = copy.deepcopy(body)
        return copy.deepcopy(body)

    def delete(self, ref):
        self.calls.append(("delete", ref))
        key = self._key(ref)
        if key not in self.objects:
            return False
        if key not in self.delete_keeps:
            del self.objects[key]
        return True

    def list(self, kind, namespace="", label_selector=None):
        return [
            copy.deepcopy(obj)
            for (k, ns, _), obj in sorted(self.objects.items())
            if k == kind and (not namespace or ns == namespace)
        ]

    def crd_established(self, name):
        return name in self.crds

    def finalize_namespace(self, name):
        self.finalized.append(name)
        self.objects.pop(("Namespace", "", name), None)


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeControlPlane(ControlPlaneClient):
    """Answers from a ``{(method, path): value}`` table.

    A value may be a callable taking the request body, or an exception to
    raise. Unscripted calls fail with HTTP 404.
    """

    def __init__(self, routes=None):
        super().__init__("central.example.com", token="t0ken")
        self.routes = dict(routes or {})
        self.requests = []

    def call(self, method, path, body=None):
        self.requests.append((method, path, copy.deepcopy(body)))
        if (method, path) not in self.routes:
            raise ApiError(404, "not found", method, path)
        value = self.routes[(method, path)]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value(body)
        return Response(status=200, body=json.dumps(value), path=path)

    def sent(self, method, path):
        return [b for m, p, b in self.requests if m == method and p == path]


@pytest.fixture
def store():
    return FakeResourceStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        state_file=tmp_path / "state.json",
        profile_path=tmp_path / "profile",
        poll_interval=5,
        namespace="tssc-acs",
        cluster_name="production",
        compliance_standard="HIPAA 164",
        rox_endpoint=None,
        rox_api_token=None,
        admin_password=None,
    )


@pytest.fixture
def env():
    return MemoryEnvironment()


@pytest.fixture
def control_plane():
    return FakeControlPlane()


@pytest.fixture
def context(store, env, settings, control_plane, clock):
    return StepContext(
        store=store,
        env=env,
        settings=settings,
        control_plane=control_plane,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def ledger(settings):
    return Ledger.load(settings.state_file)
