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
Tests for the logging setup used by the CLI.
"""

import logging

import pytest

from acsinst.fallback import select
from acsinst.logging_config import ACSINST_DEBUG_ENV, setup_logging
from acsinst.models import FallbackCandidate

LOGGERS = ("", "acsinst", "urllib3", "kubernetes", "dotenv.main")


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    levels = {name: logging.getLogger(name).level for name in LOGGERS}
    handler_levels = {h: h.level for h in handlers}
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler, level in handler_levels.items():
        handler.setLevel(level)
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


class TestSetupLogging:
    def test_defaults_to_info(self, monkeypatch):
        monkeypatch.delenv(ACSINST_DEBUG_ENV, raising=False)
        setup_logging()

        assert logging.getLogger("acsinst.fallback").isEnabledFor(logging.INFO)
        assert not logging.getLogger("acsinst.fallback").isEnabledFor(logging.DEBUG)
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_debug_switch(self, monkeypatch):
        monkeypatch.setenv(ACSINST_DEBUG_ENV, "true")
        setup_logging()

        assert logging.getLogger("acsinst").level == logging.DEBUG
        assert logging.getLogger("kubernetes").level == logging.WARNING

    def test_idempotent(self):
        setup_logging()
        count = len(logging.getLogger().handlers)
        setup_logging(logging.WARNING)

        assert len(logging.getLogger().handlers) == count
        assert logging.getLogger("acsinst").level == logging.WARNING

    def test_fallback_choice_is_visible(self, monkeypatch, caplog):
        monkeypatch.delenv(ACSINST_DEBUG_ENV, raising=False)
        setup_logging()

        select(
            [
                FallbackCandidate(0, "perses.dev", lambda: False),
                FallbackCandidate(1, "observability.openshift.io", lambda: True),
            ],
            "PersesDatasource API group",
        )

        assert "Using PersesDatasource API group 'observability.openshift.io'" in caplog.text
