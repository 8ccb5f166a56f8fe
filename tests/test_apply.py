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
Tests for idempotent create-or-patch.
"""

import pytest

from acsinst.apply import apply, apply_once, is_subset, tracked_fields
from acsinst.errors import AlreadyExists
from acsinst.models import MANAGED_BY_LABEL, ApplyResult, DesiredState, ResourceRef


def namespace_state(name, **labels):
    body = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}
    if labels:
        body["metadata"]["labels"] = dict(labels)
    return DesiredState(body=body)


class TestApply:
    """Tests for apply against an in-memory store."""

    def test_create_then_unchanged(self, store):
        """Test applying the same namespace twice creates it once."""
        ref = ResourceRef("Namespace", "ops-ns")
        desired = namespace_state("ops-ns")

        assert apply(store, ref, desired) == ApplyResult.CREATED
        assert apply(store, ref, desired) == ApplyResult.UNCHANGED
        assert len(store.verbs("create")) == 1
        assert store.verbs("patch") == []

    def test_created_resource_carries_ownership_label(self, store):
        """Test created bodies are labelled as managed by us."""
        ref = ResourceRef("Namespace", "ops-ns")
        apply(store, ref, namespace_state("ops-ns"))
        labels = store.get(ref)["metadata"]["labels"]
        assert labels[MANAGED_BY_LABEL] == "acsinst"

    def test_drift_is_patched(self, store):
        """Test a changed field in the desired body is patched onto the live object."""
        ref = ResourceRef("Namespace", "ops-ns")
        apply(store, ref, namespace_state("ops-ns", team="a"))

        result = apply(store, ref, namespace_state("ops-ns", team="b"))

        assert result == ApplyResult.UPDATED
        assert store.get(ref)["metadata"]["labels"]["team"] == "b"

    def test_server_defaults_are_not_drift(self, store):
        """Test extra fields added by the server do not trigger a patch."""
        ref = ResourceRef("Namespace", "ops-ns")
        apply(store, ref, namespace_state("ops-ns"))
        live = store.get(ref)
        live["metadata"]["uid"] = "1234"
        live["spec"] = {"finalizers": ["kubernetes"]}
        live["status"] = {"phase": "Active"}
        store.put(ref, live)

        assert apply(store, ref, namespace_state("ops-ns")) == ApplyResult.UNCHANGED
        assert store.verbs("patch") == []

    def test_pre_existing_resource_is_not_adopted(self, store):
        """Test patching an unlabelled live object leaves it without the managed-by label."""
        ref = ResourceRef("Namespace", "shared-ns")
        store.put(ref, {"metadata": {"labels": {"owner": "platform"}}})

        assert apply(store, ref, namespace_state("shared-ns", team="b")) == ApplyResult.UPDATED

        labels = store.get(ref)["metadata"]["labels"]
        assert labels == {"owner": "platform", "team": "b"}
        assert apply(store, ref, namespace_state("shared-ns", team="b")) == ApplyResult.UNCHANGED

    def test_one_shot_existing_is_skipped(self, store):
        """Test a create-only body never touches an existing object."""
        ref = ResourceRef("Secret", "bundle", "tssc-acs")
        store.put(ref, {"data": {"key": "old"}})
        desired = DesiredState(
            body={"kind": "Secret", "metadata": {"name": "bundle"}, "data": {"key": "new"}},
            one_shot=True,
        )

        assert apply(store, ref, desired) == ApplyResult.SKIPPED
        assert store.get(ref)["data"]["key"] == "old"

    def test_apply_once_forces_create_only(self, store):
        """Test apply_once skips an existing resource even with a drifted body."""
        ref = ResourceRef("Namespace", "ops-ns")
        apply(store, ref, namespace_state("ops-ns", team="a"))

        assert apply_once(store, ref, namespace_state("ops-ns", team="b")) == ApplyResult.SKIPPED
        assert store.get(ref)["metadata"]["labels"]["team"] == "a"

    def test_create_race_converges_on_patch(self, store):
        """Test losing a create race reconciles against the winner's object."""
        ref = ResourceRef("Namespace", "ops-ns")
        store.create_race.add(("Namespace", "", "ops-ns"))

        result = apply(store, ref, namespace_state("ops-ns"))

        assert result == ApplyResult.UNCHANGED
        assert len(store.verbs("get")) == 2

    def test_create_race_with_vanished_object_reraises(self, store, monkeypatch):
        """Test AlreadyExists propagates when the object is gone again on re-read."""
        ref = ResourceRef("Namespace", "ops-ns")

        def create(ref, body):
            raise AlreadyExists(ref)

        monkeypatch.setattr(store, "create", create)
        with pytest.raises(AlreadyExists):
            apply(store, ref, namespace_state("ops-ns"))


class TestSubset:
    """Tests for the drift comparison."""

    def test_nested_dict_subset(self):
        assert is_subset({"a": {"b": 1}}, {"a": {"b": 1, "c": 2}, "d": 3})

    def test_missing_key(self):
        assert not is_subset({"a": 1}, {"b": 1})

    def test_lists_compare_item_by_item(self):
        assert is_subset([{"name": "x"}], [{"name": "x", "extra": True}])
        assert not is_subset([{"name": "x"}], [{"name": "x"}, {"name": "y"}])

    def test_type_mismatch(self):
        assert not is_subset({"a": 1}, "a")


class TestTrackedFields:
    """Tests for tracked_fields."""

    def test_status_and_server_metadata_dropped(self):
        body = {
            "kind": "ConfigMap",
            "metadata": {"name": "x", "resourceVersion": "7", "uid": "u"},
            "data": {"k": "v"},
            "status": {"ok": True},
        }
        tracked = tracked_fields(body)
        assert tracked == {"kind": "ConfigMap", "metadata": {"name": "x"}, "data": {"k": "v"}}
