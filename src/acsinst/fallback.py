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
Ordered fallback between alternative mechanisms.

Candidates are tried in ``(priority, position)`` order and the first one
whose availability check passes wins. Availability is evaluated on every
call; nothing is remembered between selections.
"""

import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

from .errors import NoCandidateAvailable
from .models import FallbackCandidate

logger = logging.getLogger(__name__)

Names = Union[Sequence[str], Callable[[], Sequence[str]]]


def _ordered(candidates: Iterable[FallbackCandidate]) -> List[FallbackCandidate]:
    indexed = list(enumerate(candidates))
    return [c for _, c in sorted(indexed, key=lambda ic: (ic[1].priority, ic[0]))]


def select(
    candidates: Iterable[FallbackCandidate], what: str = "candidate"
) -> Optional[FallbackCandidate]:
    """Return the first available candidate, or None."""
    for candidate in _ordered(candidates):
        if candidate.availability_check():
            logger.info("Using %s '%s'", what, candidate.identifier)
            return candidate
        logger.debug("%s '%s' not available", what, candidate.identifier)
    return None


def require(candidates: Iterable[FallbackCandidate], what: str = "candidate") -> FallbackCandidate:
    """Like select, but raise NoCandidateAvailable when nothing qualifies."""
    candidates = list(candidates)
    chosen = select(candidates, what)
    if chosen is None:
        raise NoCandidateAvailable(what, (c.identifier for c in _ordered(candidates)))
    return chosen


def value_of(candidate: FallbackCandidate) -> Any:
    """The candidate's payload; callables are resolved at selection time."""
    value = candidate.value
    if callable(value):
        return value()
    return candidate.identifier if value is None else value


def crd_group_candidates(
    store, plural: str, groups: Sequence[str], version: str = "v1alpha1"
) -> List[FallbackCandidate]:
    """One candidate per API group that may serve ``plural``.

    The selected candidate's value is the ``group/version`` to address the
    kind with.
    """
    candidates = []
    for priority, group in enumerate(groups):
        crd_name = f"{plural}.{group}"
        candidates.append(
            FallbackCandidate(
                priority=priority,
                identifier=group,
                availability_check=lambda name=crd_name: store.crd_established(name),
                value=f"{group}/{version}",
            )
        )
    return candidates


def named_or_first(preferred: Sequence[Optional[str]], available_names: Names) -> List[FallbackCandidate]:
    """Candidates for each preferred name in turn, then the first available one."""
    names = available_names if callable(available_names) else (lambda: available_names)

    def first_available() -> Optional[str]:
        current = list(names())
        return current[0] if current else None

    candidates = []
    seen = set()
    for name in preferred:
        if not name or name in seen:
            continue
        seen.add(name)
        candidates.append(
            FallbackCandidate(
                priority=len(candidates),
                identifier=name,
                availability_check=lambda n=name: n in names(),
                value=name,
            )
        )
    candidates.append(
        FallbackCandidate(
            priority=len(candidates),
            identifier="first available",
            availability_check=lambda: first_available() is not None,
            value=first_available,
        )
    )
    return candidates
