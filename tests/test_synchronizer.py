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

"""Debounce, polling and movement-wait behavior of the foundation synchronizer."""

from __future__ import annotations

import asyncio
import logging

from conftest import FLAT, MOVING, RAISED, FakeBedClient, settle

from custom_components.sleepnumber.const import DEFAULT_LEADING_EDGE, PRESET_FLAT, PRESET_RAISED
from custom_components.sleepnumber.exceptions import AuthError, NoFoundationError, RequestError
from custom_components.sleepnumber.models import FoundationStatus
from custom_components.sleepnumber.synchronizer import SyncPhase

WINDOW = 0.05


async def _after_window() -> None:
    await asyncio.sleep(WINDOW * 3)
    await settle()


async def test_leading_edge_sends_immediately(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    sync.request_state(True)
    assert sync.current_state() is True
    assert sync.phase in (SyncPhase.DEBOUNCING, SyncPhase.COMMANDING)
    await settle()

    assert bed_client.presets == [("L", PRESET_RAISED)]


async def test_leading_edge_is_on_by_default(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client)

    assert DEFAULT_LEADING_EDGE is True
    assert sync.get_diagnostics_data()["settings"]["leading_edge"] is DEFAULT_LEADING_EDGE


async def test_same_value_twice_sends_one_preset(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    sync.request_state(True)
    sync.request_state(True)
    await _after_window()

    assert bed_client.presets == [("L", PRESET_RAISED)]
    assert sync.phase is SyncPhase.IDLE
    assert sync.pending is None


async def test_trailing_send_carries_last_value(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    sync.request_state(True)
    sync.request_state(False)
    sync.request_state(True)
    sync.request_state(False)
    await _after_window()

    assert bed_client.presets == [("L", PRESET_RAISED), ("L", PRESET_FLAT)]
    assert sync.current_state() is False


async def test_trailing_skipped_when_window_ends_on_leading_value(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    sync.request_state(True)
    sync.request_state(False)
    sync.request_state(True)
    await _after_window()

    assert bed_client.presets == [("L", PRESET_RAISED)]


async def test_trailing_only_sends_flat_for_true_then_false(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW, leading_edge=False)

    sync.request_state(True)
    sync.request_state(False)
    await settle()
    assert bed_client.presets == []

    await _after_window()
    assert bed_client.presets == [("L", PRESET_FLAT)]


async def test_trailing_only_same_value_twice_sends_once(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW, leading_edge=False)

    sync.request_state(True)
    sync.request_state(True)
    await _after_window()

    assert bed_client.presets == [("L", PRESET_RAISED)]


async def test_window_is_not_extended_by_later_requests(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=0.3)

    sync.request_state(True)
    await asyncio.sleep(0.2)
    sync.request_state(False)
    # 0.4s after the first request: a fixed window has closed, an extended one
    # would stay open until 0.5s.
    await asyncio.sleep(0.2)
    await settle()

    assert bed_client.presets == [("L", PRESET_RAISED), ("L", PRESET_FLAT)]


async def test_new_window_sends_leading_again(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    sync.request_state(True)
    await _after_window()
    sync.request_state(True)
    await _after_window()

    assert bed_client.presets == [("L", PRESET_RAISED), ("L", PRESET_RAISED)]


async def test_only_one_preset_in_flight(make_synchronizer, bed_client):
    bed_client.preset_gate = asyncio.Event()
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    sync.request_state(True)
    sync.request_state(False)
    await _after_window()
    # Leading send is blocked; trailing send waits behind it
    assert bed_client.in_flight == 1
    assert sync.phase is SyncPhase.COMMANDING

    bed_client.preset_gate.set()
    await settle(10)

    assert bed_client.max_in_flight == 1
    assert bed_client.presets == [("L", PRESET_RAISED), ("L", PRESET_FLAT)]


async def test_queued_preset_replaced_by_newer_window_is_not_sent(
    make_synchronizer, bed_client
):
    bed_client.preset_gate = asyncio.Event()
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    sync.request_state(True)
    await _after_window()
    # Second window: flat goes out on the leading edge, raised on the trailing
    # edge, both queued behind the blocked first command
    sync.request_state(False)
    sync.request_state(True)
    await _after_window()
    assert bed_client.in_flight == 1

    bed_client.preset_gate.set()
    await settle(10)

    assert ("L", PRESET_FLAT) not in bed_client.presets
    assert bed_client.presets == [("L", PRESET_RAISED), ("L", PRESET_RAISED)]
    assert bed_client.max_in_flight == 1


async def test_failed_preset_is_logged_and_not_retried(make_synchronizer, bed_client, caplog):
    bed_client.preset_error = RequestError("boom", status=500)
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    with caplog.at_level(logging.WARNING):
        sync.request_state(True)
        await _after_window()

    assert bed_client.presets == [("L", PRESET_RAISED)]
    assert "Failed to set foundation preset" in caplog.text
    assert sync.available is True


async def test_current_state_does_no_io(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client)

    for _ in range(3):
        assert sync.current_state() is False
    assert bed_client.fetch_calls == 0


async def test_poll_overwrites_optimistic_value(make_synchronizer):
    client = FakeBedClient([FLAT])
    sync = make_synchronizer(client, debounce_seconds=WINDOW, leading_edge=False)

    sync.request_state(True)
    assert sync.current_state() is True

    await sync.async_poll_once()
    assert sync.current_state() is False


async def test_poll_derives_raised_from_positions(make_synchronizer):
    client = FakeBedClient([FoundationStatus(head_position=0, foot_position=3, is_moving=False)])
    sync = make_synchronizer(client)
    seen: list[bool] = []
    sync.add_listener(seen.append)

    await sync.async_poll_once()

    assert sync.current_state() is True
    assert seen == [True]
    state = sync.state
    assert (state.head_position, state.foot_position) == (0, 3)
    assert state.last_fetch is not None


async def test_failed_poll_leaves_state_unchanged(make_synchronizer, caplog):
    client = FakeBedClient([RAISED, RequestError("timeout")])
    sync = make_synchronizer(client)

    await sync.async_poll_once()
    assert sync.current_state() is True

    with caplog.at_level(logging.WARNING):
        await sync.async_poll_once()

    assert sync.current_state() is True
    assert sync.available is True
    assert "Failed to fetch foundation status" in caplog.text


async def test_no_foundation_disables_accessory(make_synchronizer, caplog):
    client = FakeBedClient([NoFoundationError("No foundation detected", status=404)])
    sync = make_synchronizer(client, debounce_seconds=WINDOW)
    seen: list[bool] = []
    sync.add_listener(seen.append)

    with caplog.at_level(logging.WARNING):
        await sync.async_poll_once()

    assert "No foundation detected" in caplog.text
    assert sync.available is False
    assert seen == [False]

    await sync.async_poll_once()
    sync.request_state(True)
    await _after_window()

    assert client.fetch_calls == 1
    assert client.presets == []


async def test_no_foundation_on_preset_disables_accessory(make_synchronizer, bed_client):
    bed_client.preset_error = NoFoundationError("No foundation detected", status=404)
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    sync.request_state(True)
    sync.request_state(False)
    await _after_window()

    assert sync.available is False
    assert bed_client.presets == [("L", PRESET_RAISED)]


async def test_rejected_credentials_halt_and_notify(make_synchronizer):
    failures: list[AuthError] = []
    client = FakeBedClient([AuthError("rejected", status=401)])
    sync = make_synchronizer(client, on_auth_failed=failures.append)

    await sync.async_poll_once()

    assert sync.available is False
    assert len(failures) == 1
    await sync.async_poll_once()
    assert client.fetch_calls == 1


async def test_login_transport_failure_is_transient(make_synchronizer):
    failures: list[AuthError] = []
    client = FakeBedClient([AuthError("Login failed: ConnectError"), RAISED])
    sync = make_synchronizer(client, on_auth_failed=failures.append)

    await sync.async_poll_once()
    assert sync.available is True
    assert failures == []

    await sync.async_poll_once()
    assert sync.current_state() is True


async def test_listener_errors_do_not_escape(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    def _bad(_value: bool) -> None:
        raise RuntimeError("listener")

    seen: list[bool] = []
    sync.add_listener(_bad)
    remove = sync.add_listener(seen.append)

    sync.request_state(True)
    remove()
    sync.request_state(False)

    assert seen == [True]


async def test_wait_for_stop_fetches_until_stationary(make_synchronizer):
    client = FakeBedClient([MOVING, MOVING, MOVING, RAISED])
    sync = make_synchronizer(client)

    assert await sync.async_wait_for_stop() is True
    assert client.fetch_calls == 4
    assert sync.state.is_moving is False
    assert sync.phase is SyncPhase.IDLE


async def test_wait_for_stop_returns_after_single_stationary_fetch(make_synchronizer):
    client = FakeBedClient([FLAT])
    sync = make_synchronizer(client)

    assert await sync.async_wait_for_stop() is True
    assert client.fetch_calls == 1


async def test_wait_for_stop_retries_transient_errors(make_synchronizer):
    client = FakeBedClient([MOVING, RequestError("boom"), MOVING, FLAT])
    sync = make_synchronizer(client)

    assert await sync.async_wait_for_stop() is True
    assert client.fetch_calls == 4


async def test_wait_for_stop_gives_up_on_no_foundation(make_synchronizer):
    client = FakeBedClient([MOVING, NoFoundationError("No foundation detected", status=404)])
    sync = make_synchronizer(client)

    assert await sync.async_wait_for_stop() is False
    assert client.fetch_calls == 2
    assert sync.available is False


async def test_wait_for_stop_is_bounded(make_synchronizer, caplog):
    client = FakeBedClient([MOVING])
    sync = make_synchronizer(client, move_poll_interval=0.01, move_wait_timeout=0.05)

    with caplog.at_level(logging.WARNING):
        assert await sync.async_wait_for_stop() is False

    assert "still moving" in caplog.text
    assert client.fetch_calls >= 2


async def test_command_path_waits_for_stop_when_enabled(make_synchronizer):
    client = FakeBedClient([MOVING, MOVING, RAISED])
    sync = make_synchronizer(client, debounce_seconds=WINDOW, wait_for_stop=True)

    sync.request_state(True)
    await _after_window()

    assert client.presets == [("L", PRESET_RAISED)]
    assert client.fetch_calls == 3
    assert sync.current_state() is True


async def test_poll_loop_runs_on_interval(make_synchronizer):
    client = FakeBedClient([FLAT, RAISED])
    sync = make_synchronizer(client, poll_interval=0.01)

    sync.start()
    await asyncio.sleep(0.1)

    assert client.fetch_calls >= 2
    assert sync.current_state() is True

    await sync.async_shutdown()
    calls = client.fetch_calls
    await asyncio.sleep(0.05)
    assert client.fetch_calls == calls


async def test_poll_loop_stops_when_unsupported(make_synchronizer):
    client = FakeBedClient([NoFoundationError("No foundation detected", status=404)])
    sync = make_synchronizer(client, poll_interval=0.01)

    sync.start()
    await asyncio.sleep(0.1)

    assert client.fetch_calls == 1


async def test_shutdown_drops_pending_trailing_send(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW)

    sync.request_state(True)
    sync.request_state(False)
    await settle()
    await sync.async_shutdown()
    await _after_window()

    assert bed_client.presets == [("L", PRESET_RAISED)]
    assert sync.phase is SyncPhase.IDLE


async def test_diagnostics_snapshot(make_synchronizer, bed_client):
    sync = make_synchronizer(bed_client, debounce_seconds=WINDOW, leading_edge=False)

    sync.request_state(True)
    data = sync.get_diagnostics_data()

    assert data["phase"] == "debouncing"
    assert data["pending"]["value"] is True
    assert data["state"]["raised"] is True
    assert data["settings"]["leading_edge"] is False
