# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Trevor Baker, all rights reserved.
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#   http://www.apache.org/licenses/LICENSE-2.0
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Shared pytest fixtures for the Sleep Number custom component tests.

Provides an in-memory bed client and a synchronizer factory that shuts every
instance down after the test, so no timers or tasks outlive it.
"""

from __future__ import annotations

import asyncio
import pathlib
import sys
from typing import Any

import pytest

# Ensure project root is on sys.path for direct module imports in tests
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from custom_components.sleepnumber.metrics import RequestMetrics  # noqa: E402
from custom_components.sleepnumber.models import FoundationStatus  # noqa: E402
from custom_components.sleepnumber.synchronizer import FoundationSynchronizer  # noqa: E402

FLAT = FoundationStatus(head_position=0, foot_position=0, is_moving=False)
RAISED = FoundationStatus(head_position=10, foot_position=0, is_moving=False)
MOVING = FoundationStatus(head_position=5, foot_position=0, is_moving=True)


class FakeBedClient:
    """Scripted stand-in for SleepNumberClient.

    ``statuses`` is consumed one item per fetch; the last item repeats. Items
    that are exceptions are raised instead of returned.
    """

    def __init__(self, statuses: list[Any] | None = None, bed_id: str = "42"):
        self.bed_id = bed_id
        self.user_id = "user-1"
        self.statuses: list[Any] = list(statuses) if statuses else [FLAT]
        self.fetch_calls = 0
        self.presets: list[tuple[str, int]] = []
        self.preset_error: Exception | None = None
        self.preset_gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0
        self.logged_in = False
        self.closed = False
        self.metrics = RequestMetrics()

    async def async_login(self):
        self.logged_in = True

    async def async_get_foundation_status(self) -> FoundationStatus:
        self.fetch_calls += 1
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def async_set_preset(self, side: str, preset: int) -> dict[str, Any]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.preset_gate is not None:
                await self.preset_gate.wait()
            self.presets.append((side, preset))
            if self.preset_error is not None:
                raise self.preset_error
            return {}
        finally:
            self.in_flight -= 1

    async def async_close(self):
        self.closed = True

    def get_diagnostics_data(self) -> dict[str, Any]:
        return {
            "session": {"authenticated": True, "user_id": self.user_id, "bed_id": self.bed_id},
            "metrics": self.metrics.to_dict(),
        }


async def settle(rounds: int = 5) -> None:
    """Let freshly created tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def auto_enable_custom_integrations(enable_custom_integrations):
    yield


@pytest.fixture
def bed_client():
    return FakeBedClient()


@pytest.fixture
async def make_synchronizer():
    created: list[FoundationSynchronizer] = []

    def _make(client, **kwargs) -> FoundationSynchronizer:
        kwargs.setdefault("debounce_seconds", 0.05)
        kwargs.setdefault("poll_interval", 60)
        kwargs.setdefault("move_poll_interval", 0.001)
        sync = FoundationSynchronizer(client, **kwargs)
        created.append(sync)
        return sync

    yield _make
    for sync in created:
        await sync.async_shutdown()
