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

"""Centralized logging configuration for acsinst.

`setup_logging` is idempotent: it configures the root logger with a single
StreamHandler and reads `ACSINST_DEBUG` when no explicit level is provided.
User-facing progress is printed through the shared rich `console`; library
modules log through the standard `logging` module.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from rich.console import Console

ACSINST_DEBUG_ENV = "ACSINST_DEBUG"
_SETUP_DONE_FLAG = "_acsinst_logging_setup_done"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

console = Console()

# Third-party loggers and the most verbose level they may run at
_NOISY_LOGGERS = {
    "urllib3": logging.WARNING,
    "kubernetes": logging.WARNING,
    # python-dotenv warns on every shell line of a profile it cannot parse
    "dotenv.main": logging.ERROR,
}


def debug_enabled() -> bool:
    """True when ACSINST_DEBUG is set to 1, true or yes."""
    return os.getenv(ACSINST_DEBUG_ENV, "").lower() in ("1", "true", "yes")


def setup_logging(level: Optional[int] = None) -> None:
    """Configure the root logger once; later calls only adjust levels.

    Without an explicit ``level`` the ``ACSINST_DEBUG`` variable decides
    between DEBUG and INFO.
    """
    if level is None:
        level = logging.DEBUG if debug_enabled() else logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    handler = next((h for h in root.handlers if isinstance(h, logging.StreamHandler)), None)
    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    handler.setLevel(level)

    for name, floor in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, floor))
    logging.getLogger("acsinst").setLevel(level)
    setattr(root, _SETUP_DONE_FLAG, True)
