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
REST client for the Central control-plane API.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import requests
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from .errors import (
    ApiError,
    ControlPlaneForbidden,
    ControlPlaneNotConnected,
    DecodeError,
    NotConnected,
    excerpt,
)
from .models import CredentialMaterial

logger = logging.getLogger(__name__)

ADMIN_USER = "admin"
DEFAULT_PORT = 443


class StatusClass(str, Enum):
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    OTHER = "other"

    @classmethod
    def of(cls, status: int) -> "StatusClass":
        if 200 <= status < 300:
            return cls.SUCCESS
        if 400 <= status < 500:
            return cls.CLIENT_ERROR
        if 500 <= status < 600:
            return cls.SERVER_ERROR
        return cls.OTHER


@dataclass
class Response:
    status: int
    body: str = ""
    path: str = ""

    @property
    def status_class(self) -> StatusClass:
        return StatusClass.of(self.status)


def normalize_endpoint(value: str) -> str:
    """Reduce a URL or host to ``host:port`` (port defaults to 443)."""
    endpoint = (value or "").strip()
    for scheme in ("https://", "http://"):
        if endpoint.lower().startswith(scheme):
            endpoint = endpoint[len(scheme):]
            break
    endpoint = endpoint.split("/", 1)[0]
    if not endpoint:
        raise ValueError(f"not a usable control-plane endpoint: {value!r}")
    if ":" not in endpoint:
        endpoint = f"{endpoint}:{DEFAULT_PORT}"
    return endpoint


def decode_json(response: Response) -> Any:
    """Parse a successful response body, raising DecodeError when it is not JSON."""
    text = (response.body or "").strip()
    if not text:
        raise DecodeError(response.path, "")
    try:
        return json.loads(text)
    except ValueError as e:
        raise DecodeError(response.path, excerpt(text), e) from e


Secret = Union[str, CredentialMaterial, None]


def _credential(value: Secret) -> Optional[CredentialMaterial]:
    if value is None or isinstance(value, CredentialMaterial):
        return value or None
    return CredentialMaterial(value) or None


class ControlPlaneClient:
    """Thin requests wrapper that classifies responses into typed errors.

    Calls authenticate with the bearer token when one is held; otherwise
    they fall back to HTTP basic auth as ``admin``, which is only needed to
    generate the first token.
    """

    def __init__(
        self,
        endpoint: str,
        token: Secret = None,
        password: Secret = None,
        verify_tls: bool = False,
        timeout: float = 45.0,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = normalize_endpoint(endpoint)
        self._token = _credential(token)
        self._password = _credential(password)
        self.verify_tls = verify_tls
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = verify_tls
        if not verify_tls:
            urllib3.disable_warnings(InsecureRequestWarning)

    @property
    def base_url(self) -> str:
        return f"https://{self.endpoint}"

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def set_token(self, token: Secret) -> None:
        self._token = _credential(token)

    def _auth_kwargs(self) -> Dict[str, Any]:
        if self._token is not None:
            return {"headers": {"Authorization": f"Bearer {self._token.reveal()}"}}
        if self._password is not None:
            return {"auth": (ADMIN_USER, self._password.reveal())}
        return {}

    def _scrub(self, text: str) -> str:
        for secret in (self._token, self._password):
            if secret:
                text = text.replace(secret.reveal(), "***")
        return text

    def call(self, method: str, path: str, body: Any = None) -> Response:
        """Send one request; returns only for 2xx, raises ApiError otherwise."""
        url = f"{self.base_url}{path}"
        kwargs = self._auth_kwargs()
        if body is not None:
            kwargs["json"] = body
        logger.debug("%s %s", method, url)
        try:
            raw = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise NotConnected(
                f"control plane at {self.endpoint} unreachable: {self._scrub(str(e))}"
            ) from e

        response = Response(status=raw.status_code, body=raw.text or "", path=path)
        status_class = response.status_class
        if status_class == StatusClass.SUCCESS:
            return response

        body_excerpt = excerpt(self._scrub(response.body))
        logger.debug("%s %s -> HTTP %s (%s)", method, path, response.status, status_class.value)
        if response.status == 401:
            raise ControlPlaneNotConnected(response.status, body_excerpt, method, path)
        if response.status == 403:
            raise ControlPlaneForbidden(response.status, body_excerpt, method, path)
        raise ApiError(response.status, body_excerpt, method, path)

    def get_json(self, path: str) -> Any:
        return decode_json(self.call("GET", path))

    def post_json(self, path: str, body: Any = None) -> Any:
        return decode_json(self.call("POST", path, body if body is not None else {}))

    def put_json(self, path: str, body: Any) -> Any:
        return decode_json(self.call("PUT", path, body))

    def ping(self) -> bool:
        """True when Central answers ``/v1/ping``."""
        self.call("GET", "/v1/ping")
        return True
