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
Tests for ordered fallback selection.
"""

import pytest

from acsinst.errors import NoCandidateAvailable
from acsinst.fallback import crd_group_candidates, named_or_first, require, select, value_of
from acsinst.models import FallbackCandidate


def candidate(priority, identifier, available):
    return FallbackCandidate(priority, identifier, lambda: available)


class TestSelect:
    """Tests for select and require."""

    def test_first_available_wins(self):
        chosen = select([candidate(0, "groupA", False), candidate(1, "groupB", True)])
        assert chosen.identifier == "groupB"

    def test_priority_beats_position(self):
        chosen = select([candidate(2, "late", True), candidate(1, "early", True)])
        assert chosen.identifier == "early"

    def test_ties_keep_input_order(self):
        chosen = select([candidate(0, "first", True), candidate(0, "second", True)])
        assert chosen.identifier == "first"

    def test_none_available(self):
        assert select([candidate(0, "a", False)]) is None

    def test_require_lists_what_was_tried(self):
        with pytest.raises(NoCandidateAvailable) as exc:
            require([candidate(1, "b", False), candidate(0, "a", False)], "issuer")
        assert exc.value.tried == ["a", "b"]
        assert "issuer" in str(exc.value)

    def test_availability_is_rechecked_every_call(self):
        state = {"up": False}
        candidates = [FallbackCandidate(0, "x", lambda: state["up"])]
        assert select(candidates) is None
        state["up"] = True
        assert select(candidates).identifier == "x"


class TestValueOf:
    """Tests for value_of."""

    def test_defaults_to_identifier(self):
        assert value_of(candidate(0, "name", True)) == "name"

    def test_callable_resolved_lazily(self):
        calls = []
        chosen = FallbackCandidate(0, "x", lambda: True, value=lambda: calls.append(1) or "v")
        assert calls == []
        assert value_of(chosen) == "v"


class TestCrdGroups:
    """Tests for crd_group_candidates."""

    def test_second_group_chosen_when_first_absent(self, store):
        store.crds.add("persesdatasources.observability.openshift.io")
        candidates = crd_group_candidates(
            store, "persesdatasources", ["perses.dev", "observability.openshift.io"]
        )
        chosen = require(candidates, "Perses API group")
        assert chosen.identifier == "observability.openshift.io"
        assert value_of(chosen) == "observability.openshift.io/v1alpha1"

    def test_first_group_preferred(self, store):
        store.crds.update(
            {"persesdatasources.perses.dev", "persesdatasources.observability.openshift.io"}
        )
        candidates = crd_group_candidates(
            store, "persesdatasources", ["perses.dev", "observability.openshift.io"]
        )
        assert require(candidates).identifier == "perses.dev"


class TestNamedOrFirst:
    """Tests for named_or_first."""

    def test_preferred_name_present(self):
        chosen = require(named_or_first(["mine", "zerossl"], ["other", "zerossl", "mine"]))
        assert value_of(chosen) == "mine"

    def test_falls_back_to_first_available(self):
        chosen = require(named_or_first([None, "zerossl"], ["letsencrypt", "other"]))
        assert chosen.identifier == "first available"
        assert value_of(chosen) == "letsencrypt"

    def test_nothing_available(self):
        with pytest.raises(NoCandidateAvailable):
            require(named_or_first(["zerossl"], []))

    def test_duplicates_collapsed(self):
        candidates = named_or_first(["a", "a", None], lambda: ["a"])
        assert [c.identifier for c in candidates] == ["a", "first available"]
