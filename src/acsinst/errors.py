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
Error taxonomy shared by the resource store, control-plane client, poller
and orchestrator.

A missing resource is not an error: ``ResourceStore.get`` returns ``None``.
"""

from typing import Any, Iterable, Optional

BODY_EXCERPT_LIMIT = 300


def excerpt(body: Any, limit: int = BODY_EXCERPT_LIMIT) -> str:
    """Return a printable, truncated excerpt of a response body."""
    if body is None:
        return ""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    text = str(body).strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text


class AcsInstError(Exception):
    """Base class for all errors raised by acsinst."""


class NotConnected(AcsInstError):
    """The cluster or control-plane API cannot be reached or rejects our credentials."""


class PermissionDenied(AcsInstError):
    """The caller lacks rights for a required operation."""


class AlreadyExists(AcsInstError):
    """A create raced with another create of the same resource."""

    def __init__(self, ref):
        super().__init__(f"{ref} already exists")
        self.ref = ref


class ResourceStoreError(AcsInstError):
    """Unexpected failure from the cluster API."""

    def __init__(self, ref, status: Optional[int], reason: str = ""):
        super().__init__(f"cluster API error on {ref}: HTTP {status} {reason}".strip())
        self.ref = ref
        self.status = status
        self.reason = reason


class ApiError(AcsInstError):
    """Non-2xx response from the control-plane API."""

    def __init__(
        self,
        status: int,
        body_excerpt: str = "",
        method: str = "",
        path: str = "",
    ):
        self.status = status
        self.body_excerpt = body_excerpt
        self.method = method
        self.path = path
        where = f"{method} {path}".strip()
        msg = f"HTTP {status}"
        if where:
            msg = f"{where} failed with {msg}"
        if body_excerpt:
            msg = f"{msg}: {body_excerpt}"
        super().__init__(msg)


class ControlPlaneNotConnected(ApiError, NotConnected):
    """401 from the control plane."""


class ControlPlaneForbidden(ApiError, PermissionDenied):
    """403 from the control plane."""


class DecodeError(AcsInstError):
    """A successful response carried a body that is not valid JSON."""

    def __init__(self, path: str, body_excerpt: str, cause: Optional[Exception] = None):
        super().__init__(f"malformed JSON from {path}: {body_excerpt!r}")
        self.path = path
        self.body_excerpt = body_excerpt
        self.cause = cause


class PollTimeout(AcsInstError):
    """A bounded wait expired before the target condition was reached."""

    def __init__(self, outcome, target: str = ""):
        super().__init__(
            f"timed out after {outcome.elapsed:.0f}s waiting for {target or outcome.description}"
        )
        self.outcome = outcome
        self.target = target


class PollTerminalFailure(AcsInstError):
    """The observed resource explicitly reported a failed state."""

    def __init__(self, outcome, target: str = ""):
        super().__init__(f"{target or outcome.description} failed: {outcome.reason}")
        self.outcome = outcome
        self.target = target


class NoCandidateAvailable(AcsInstError):
    """No fallback candidate passed its availability check."""

    def __init__(self, what: str, tried: Iterable[str]):
        self.what = what
        self.tried = list(tried)
        super().__init__(
            f"no {what} available (tried: {', '.join(self.tried) or 'none'})"
        )


class TemplateError(AcsInstError):
    """A resource template could not be rendered."""


class StepFailed(AcsInstError):
    """A workflow step failed; carries the target and last observed state."""

    def __init__(
        self,
        workflow: str,
        step: str,
        cause: BaseException,
        target: str = "",
        last_state: Any = None,
    ):
        self.workflow = workflow
        self.step = step
        self.cause = cause
        self.target = target
        self.last_state = last_state
        where = f" ({target})" if target else ""
        super().__init__(f"{workflow}/{step}{where}: {cause}")
