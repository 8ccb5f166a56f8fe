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
Values that must outlive a single run (endpoint, admin password, API token).

``ProfileEnvironment`` keeps them as ``export KEY='value'`` lines in a shell
profile so that the user's interactive shells see them too.
"""

import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

from dotenv import dotenv_values, set_key, unset_key

from .models import CredentialMaterial

logger = logging.getLogger(__name__)


class EnvKey(str, Enum):
    ROX_ENDPOINT = "ROX_ENDPOINT"
    ROX_API_TOKEN = "ROX_API_TOKEN"
    ADMIN_PASSWORD = "ADMIN_PASSWORD"
    NAMESPACE = "NAMESPACE"

    @property
    def secret(self) -> bool:
        return self in (EnvKey.ROX_API_TOKEN, EnvKey.ADMIN_PASSWORD)


Value = Union[str, CredentialMaterial]


def _plain(value: Value) -> str:
    if isinstance(value, CredentialMaterial):
        return value.reveal()
    return str(value)


class PersistentEnvironment(ABC):
    @abstractmethod
    def get(self, key: EnvKey) -> Optional[str]:
        """Current value, or None when unset or empty."""

    @abstractmethod
    def set(self, key: EnvKey, value: Value) -> None:
        """Persist ``value``, replacing every earlier value for ``key``."""

    @abstractmethod
    def unset(self, key: EnvKey) -> None:
        """Forget ``key``. Unsetting a missing key is not an error."""

    def get_secret(self, key: EnvKey) -> Optional[CredentialMaterial]:
        value = self.get(key)
        return CredentialMaterial(value) if value else None

    def snapshot(self) -> Dict[EnvKey, bool]:
        """Which keys currently hold a value."""
        return {key: self.get(key) is not None for key in EnvKey}


class MemoryEnvironment(PersistentEnvironment):
    """In-process environment; nothing survives the process."""

    def __init__(self, initial: Optional[Dict[EnvKey, Value]] = None):
        self._values: Dict[EnvKey, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: EnvKey) -> Optional[str]:
        return self._values.get(key) or None

    def set(self, key: EnvKey, value: Value) -> None:
        self._values[key] = _plain(value)

    def unset(self, key: EnvKey) -> None:
        self._values.pop(key, None)


class ProfileEnvironment(PersistentEnvironment):
    """Shell-profile backed environment (``~/.bashrc`` by default).

    Process environment variables take precedence over the file on read.
    Writes drop every earlier line for the key before appending the new
    one; unrelated lines are left alone.
    """

    def __init__(self, path: Path, read_process_env: bool = True):
        self.path = Path(path).expanduser()
        self.read_process_env = read_process_env

    def _file_values(self) -> Dict[str, Optional[str]]:
        if not self.path.exists():
            return {}
        return dotenv_values(self.path)

    def get(self, key: EnvKey) -> Optional[str]:
        if self.read_process_env:
            from_process = os.environ.get(key.value)
            if from_process:
                return from_process
        return self._file_values().get(key.value) or None

    def set(self, key: EnvKey, value: Value) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        if key.value in self._file_values():
            unset_key(self.path, key.value)
        set_key(self.path, key.value, _plain(value), quote_mode="always", export=True)
        if key.secret:
            logger.info("Saved %s to %s (%d characters)", key.value, self.path, len(_plain(value)))
        else:
            logger.info("Saved %s to %s", key.value, self.path)

    def unset(self, key: EnvKey) -> None:
        if key.value in self._file_values():
            unset_key(self.path, key.value)
            logger.info("Removed %s from %s", key.value, self.path)
