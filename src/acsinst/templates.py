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
Resource body templates.

Bodies live as YAML under ``acsinst/manifests/`` and use ``${VAR}`` or
``${VAR:-default}`` placeholders, substituted from a values mapping.
"""

import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .config import MANIFESTS_DIR
from .errors import TemplateError

VAR_RE = re.compile(r"\$\{([A-Za-z0-9_]+)(:-([^}]*))?\}")


def substitute_vars(obj: Any, values: Mapping[str, Any]) -> Any:
    """Recursively substitute ${VAR} occurrences in strings within obj.

    A string that is exactly one placeholder takes the value as-is, so
    booleans, numbers and lists survive substitution. A referenced variable
    with no value and no default raises TemplateError.
    """
    if isinstance(obj, dict):
        return {k: substitute_vars(v, values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [substitute_vars(v, values) for v in obj]
    if not isinstance(obj, str):
        return obj

    whole = VAR_RE.fullmatch(obj)
    if whole:
        return _lookup(whole, values)

    def _repl(m: re.Match) -> str:
        return str(_lookup(m, values))

    return VAR_RE.sub(_repl, obj)


def _lookup(m: re.Match, values: Mapping[str, Any]) -> Any:
    name = m.group(1)
    default = m.group(3)  # may be None
    value = values.get(name)
    if value is not None:
        return value
    if default is not None:
        return default
    raise TemplateError(f"template variable '{name}' has no value")


def load_yaml(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def render(name: str, values: Optional[Mapping[str, Any]] = None) -> dict:
    """Load ``manifests/<name>.yaml`` and substitute ``values`` into it."""
    path = MANIFESTS_DIR / f"{name}.yaml"
    if not path.exists():
        raise TemplateError(f"template not found: {path}")
    try:
        raw = load_yaml(path)
    except yaml.YAMLError as e:
        raise TemplateError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise TemplateError(f"template {path} must contain a mapping")
    return substitute_vars(raw, values or {})
