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
Tests for resource templates.
"""

import pytest

from acsinst import config
from acsinst.errors import TemplateError
from acsinst.templates import load_yaml, render, substitute_vars


class TestSubstituteVars:
    """Tests for substitute_vars."""

    def test_whole_placeholder_keeps_type(self):
        assert substitute_vars({"profiles": "${PROFILES}"}, {"PROFILES": ["a", "b"]}) == {
            "profiles": ["a", "b"]
        }

    def test_embedded_placeholder(self):
        assert substitute_vars("https://${HOST}/main", {"HOST": "c.example.com"}) == "https://c.example.com/main"

    def test_default(self):
        assert substitute_vars(["${SOURCE:-redhat-operators}"], {}) == ["redhat-operators"]

    def test_missing_without_default(self):
        with pytest.raises(TemplateError, match="NAMESPACE"):
            substitute_vars({"metadata": {"namespace": "${NAMESPACE}"}}, {})

    def test_non_strings_untouched(self):
        assert substitute_vars({"replicas": 1, "enabled": True}, {}) == {"replicas": 1, "enabled": True}


class TestRender:
    """Tests for render against the bundled templates."""

    def test_subscription(self):
        body = render(
            "subscription",
            {"PACKAGE": "rhacs-operator", "NAMESPACE": "rhacs-operator", "CHANNEL": "stable"},
        )
        assert body["kind"] == "Subscription"
        assert body["spec"]["name"] == "rhacs-operator"
        assert body["spec"]["source"] == "redhat-operators"
        assert body["spec"]["sourceNamespace"] == "openshift-marketplace"

    def test_missing_template(self):
        with pytest.raises(TemplateError, match="not found"):
            render("no-such-template")

    def test_cluster_templates_declare_kind(self):
        api_bodies = {"central-config", "scan-configuration"}
        for path in sorted(config.MANIFESTS_DIR.glob("*.yaml")):
            raw = load_yaml(path)
            assert isinstance(raw, dict), path.name
            if path.stem not in api_bodies:
                assert raw.get("apiVersion") and raw.get("kind"), path.name

    def test_invalid_yaml(self, tmp_path, monkeypatch):
        (tmp_path / "broken.yaml").write_text("a: [unclosed\n")
        monkeypatch.setattr("acsinst.templates.MANIFESTS_DIR", tmp_path)
        with pytest.raises(TemplateError, match="invalid YAML"):
            render("broken")

    def test_top_level_list_rejected(self, tmp_path, monkeypatch):
        (tmp_path / "list.yaml").write_text("- a\n- b\n")
        monkeypatch.setattr("acsinst.templates.MANIFESTS_DIR", tmp_path)
        with pytest.raises(TemplateError, match="mapping"):
            render("list")
