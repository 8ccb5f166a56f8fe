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
Bounded readiness polling.

A predicate inspects freshly fetched state and answers with a ``Verdict``:
not yet, satisfied, or a terminal failure. The poller turns the sequence of
verdicts into a ``PollOutcome`` and never waits past its timeout.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, ClassVar

from .config import POLL_INTERVAL
from .errors import PollTerminalFailure, PollTimeout
from .models import PollOutcome, PollState

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300
PROGRESS_LOG_EVERY = 30


@dataclass(frozen=True)
class Verdict:
    kind: str
    reason: str = ""

    NOT_YET: ClassVar["Verdict"]
    SATISFIED: ClassVar["Verdict"]

    @classmethod
    def failure(cls, reason: str) -> "Verdict":
        return cls("failed", reason)

    @property
    def satisfied(self) -> bool:
        return self.kind == "satisfied"

    @property
    def failed(self) -> bool:
        return self.kind == "failed"


Verdict.NOT_YET = Verdict("not_yet")
Verdict.SATISFIED = Verdict("satisfied")

Predicate = Callable[[Any], Verdict]


class Poller:
    """Re-fetch state every ``interval`` seconds until the predicate decides.

    The first evaluation happens immediately; evaluation ``n`` happens at
    ``n * interval``. The last sleep is shortened so the final evaluation
    lands exactly on ``timeout``.
    """

    def __init__(
        self,
        interval: float = POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if interval <= 0:
            raise ValueError("poll interval must be positive")
        if timeout < 0:
            raise ValueError("poll timeout must not be negative")
        self.interval = interval
        self.timeout = timeout
        self.clock = clock
        self.sleep = sleep

    def poll(
        self,
        fetch: Callable[[], Any],
        predicate: Predicate,
        description: str = "",
    ) -> PollOutcome:
        start = self.clock()
        attempts = 0
        last_report = 0.0
        state = None
        while True:
            attempts += 1
            state = fetch()
            verdict = predicate(state)
            elapsed = self.clock() - start

            if verdict.satisfied:
                logger.debug("%s ready after %.1fs (%d checks)", description, elapsed, attempts)
                return PollOutcome(PollState.READY, elapsed, attempts, "", description, state)
            if verdict.failed:
                logger.warning("%s failed: %s", description, verdict.reason)
                return PollOutcome(
                    PollState.FAILED, elapsed, attempts, verdict.reason, description, state
                )
            if elapsed >= self.timeout:
                logger.warning("Timed out after %.0fs waiting for %s", elapsed, description)
                return PollOutcome(PollState.TIMED_OUT, elapsed, attempts, "", description, state)

            if elapsed - last_report >= PROGRESS_LOG_EVERY:
                last_report = elapsed
                logger.info("Still waiting for %s (%.0fs elapsed)", description, elapsed)

            self.sleep(min(self.interval, self.timeout - elapsed))


def raise_for_outcome(outcome: PollOutcome, target: str = "") -> PollOutcome:
    """Turn a non-ready outcome into the matching exception."""
    if outcome.state == PollState.FAILED:
        raise PollTerminalFailure(outcome, target)
    if outcome.state == PollState.TIMED_OUT:
        raise PollTimeout(outcome, target)
    return outcome
