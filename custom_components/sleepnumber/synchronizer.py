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

"""Keep the local belief about the foundation in step with the bed.

The synchronizer owns three independent streams of work:

* a debounce window that coalesces user requests into at most a leading and a
  trailing preset command,
* a recurring poll that overwrites the local belief with the device's state,
* an optional wait that keeps fetching while the foundation is still moving.

All state lives on the event loop; mutations happen between awaits, so no
lock guards the state itself. A lock does serialize preset commands.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Protocol

from .const import (
    DEFAULT_LEADING_EDGE,
    DEFAULT_POLL_SECS,
    DEFAULT_SEND_DELAY_SECS,
    MOVE_POLL_INTERVAL_SEC,
    MOVE_WAIT_TIMEOUT_SEC,
    PRESET_FLAT,
    PRESET_RAISED,
    SIDE_LEFT,
)
from .exceptions import AuthError, NoFoundationError, RequestError
from .models import FoundationStatus

_LOGGER = logging.getLogger(__name__)


class FoundationClient(Protocol):
    async def async_get_foundation_status(self) -> FoundationStatus: ...

    async def async_set_preset(self, side: str, preset: int) -> Any: ...


class SyncPhase(Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    COMMANDING = "commanding"
    AWAITING_STOP = "awaiting_stop"


@dataclass(slots=True)
class FoundationState:
    raised: bool = False
    head_position: int = 0
    foot_position: int = 0
    is_moving: bool = False
    supported: bool = True
    last_fetch: float | None = None


@dataclass(frozen=True, slots=True)
class PendingCommand:
    value: bool
    requested_at: float


class FoundationSynchronizer:
    """Drive one foundation from user intents and recurring status polls."""

    def __init__(
        self,
        client: FoundationClient,
        *,
        side: str = SIDE_LEFT,
        debounce_seconds: float = DEFAULT_SEND_DELAY_SECS,
        poll_interval: float = DEFAULT_POLL_SECS,
        move_poll_interval: float = MOVE_POLL_INTERVAL_SEC,
        move_wait_timeout: float = MOVE_WAIT_TIMEOUT_SEC,
        leading_edge: bool = DEFAULT_LEADING_EDGE,
        wait_for_stop: bool = False,
        on_auth_failed: Callable[[AuthError], None] | None = None,
    ):
        self._client = client
        self._side = side
        self._debounce_seconds = float(debounce_seconds)
        self._poll_interval = float(poll_interval)
        self._move_poll_interval = float(move_poll_interval)
        self._move_wait_timeout = float(move_wait_timeout)
        self._leading_edge = leading_edge
        self._wait_for_stop = wait_for_stop
        self._on_auth_failed = on_auth_failed

        self._state = FoundationState()
        self._listeners: list[Callable[[bool], None]] = []
        self._halted = False

        # Debounce window
        self._pending: PendingCommand | None = None
        self._window_handle: asyncio.TimerHandle | None = None
        self._window_sent: bool | None = None

        # Commands
        self._command_lock = asyncio.Lock()
        self._command_tasks: set[asyncio.Task] = set()
        self._dispatch_gen = 0
        self._awaiting_stop = False

        # Polling
        self._poll_lock = asyncio.Lock()
        self._poll_task: asyncio.Task | None = None

    # Read accessors

    def current_state(self) -> bool:
        """Return the latest belief without touching the network."""
        return self._state.raised

    @property
    def state(self) -> FoundationState:
        return FoundationState(**asdict(self._state))

    @property
    def pending(self) -> PendingCommand | None:
        return self._pending

    @property
    def available(self) -> bool:
        return self._state.supported and not self._halted

    @property
    def phase(self) -> SyncPhase:
        if self._awaiting_stop:
            return SyncPhase.AWAITING_STOP
        if self._command_lock.locked():
            return SyncPhase.COMMANDING
        if self._window_handle is not None:
            return SyncPhase.DEBOUNCING
        return SyncPhase.IDLE

    def add_listener(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Register an observer; returns a function that removes it."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def _notify(self) -> None:
        value = self._state.raised
        for callback in list(self._listeners):
            try:
                callback(value)
            except Exception as exc:
                _LOGGER.warning("Foundation listener failed: %s: %s", type(exc).__name__, exc)

    # User intents

    def request_state(self, value: bool) -> None:
        """Queue a desired raised/flat value; returns immediately."""
        if not self.available:
            if _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug(
                    "request ignored value=%s supported=%s halted=%s",
                    value,
                    self._state.supported,
                    self._halted,
                )
            return

        value = bool(value)
        loop = asyncio.get_running_loop()
        self._pending = PendingCommand(value=value, requested_at=time.monotonic())

        # Optimistic echo
        changed = self._state.raised != value
        self._state.raised = value

        if self._window_handle is None:
            self._window_sent = None
            self._window_handle = loop.call_later(self._debounce_seconds, self._close_window)
            if _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug(
                    "debounce open value=%s window=%.2fs leading=%s",
                    value,
                    self._debounce_seconds,
                    self._leading_edge,
                )
            if self._leading_edge:
                self._dispatch(value, "leading")
        elif _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("debounce coalesce value=%s", value)

        if changed:
            self._notify()

    def _close_window(self) -> None:
        self._window_handle = None
        pending = self._pending
        self._pending = None
        if pending is None or not self.available:
            return
        if pending.value != self._window_sent:
            self._dispatch(pending.value, "trailing")
        elif _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("debounce close value=%s already sent", pending.value)

    def _dispatch(self, value: bool, edge: str) -> None:
        self._window_sent = value
        self._dispatch_gen += 1
        task = asyncio.get_running_loop().create_task(
            self._async_send(value, edge, self._dispatch_gen)
        )
        self._command_tasks.add(task)
        task.add_done_callback(self._command_tasks.discard)

    async def _async_send(self, value: bool, edge: str, gen: int) -> None:
        preset = PRESET_RAISED if value else PRESET_FLAT
        async with self._command_lock:
            if not self.available:
                return
            # Queued behind a slow command and replaced by a newer dispatch
            if gen != self._dispatch_gen:
                if _LOGGER.isEnabledFor(logging.DEBUG):
                    _LOGGER.debug("preset superseded edge=%s preset=%s", edge, preset)
                return
            if _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug(
                    "preset send edge=%s side=%s preset=%s", edge, self._side, preset
                )
            try:
                await self._client.async_set_preset(self._side, preset)
            except NoFoundationError:
                self._mark_unsupported()
                return
            except AuthError as exc:
                self._handle_auth_error(exc, "preset")
                return
            except RequestError as exc:
                _LOGGER.warning(
                    "Failed to set foundation preset %s: %s", preset, exc
                )
                return
            if self._wait_for_stop:
                await self.async_wait_for_stop()

    # Polling

    async def async_poll_once(self) -> None:
        """Fetch the foundation status and overwrite the local belief."""
        if not self.available:
            return
        async with self._poll_lock:
            try:
                status = await self._client.async_get_foundation_status()
            except NoFoundationError:
                self._mark_unsupported()
                return
            except AuthError as exc:
                self._handle_auth_error(exc, "status")
                return
            except RequestError as exc:
                _LOGGER.warning("Failed to fetch foundation status: %s", exc)
                return
            self._apply_status(status)

    def _apply_status(self, status: FoundationStatus) -> None:
        previous = self._state.raised
        self._state.head_position = status.head_position
        self._state.foot_position = status.foot_position
        self._state.is_moving = status.is_moving
        self._state.raised = status.raised
        self._state.last_fetch = time.monotonic()
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "status head=%d foot=%d moving=%s raised=%s",
                status.head_position,
                status.foot_position,
                status.is_moving,
                status.raised,
            )
        if previous != status.raised:
            self._notify()

    async def _poll_loop(self) -> None:
        while self.available:
            await asyncio.sleep(self._poll_interval)
            await self.async_poll_once()
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("poll loop exited")

    def start(self) -> None:
        """Start the recurring poll."""
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def async_shutdown(self) -> None:
        """Stop polling and cancel every timer and in-flight command."""
        if self._window_handle is not None:
            self._window_handle.cancel()
            self._window_handle = None
        self._pending = None
        tasks = [t for t in (self._poll_task, *self._command_tasks) if t is not None]
        self._poll_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._command_tasks.clear()

    # Movement wait

    async def async_wait_for_stop(self) -> bool:
        """Fetch status until the foundation stops moving.

        Returns True once a fetch reports the foundation stationary, False on
        no foundation, rejected credentials, or when the wait times out.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._move_wait_timeout
        self._awaiting_stop = True
        try:
            while True:
                try:
                    status = await self._client.async_get_foundation_status()
                except NoFoundationError:
                    self._mark_unsupported()
                    return False
                except AuthError as exc:
                    self._handle_auth_error(exc, "status")
                    if self._halted:
                        return False
                except RequestError as exc:
                    _LOGGER.warning("Failed to retrieve foundation status: %s", exc)
                else:
                    self._apply_status(status)
                    if not status.is_moving:
                        return True
                if loop.time() >= deadline:
                    _LOGGER.warning(
                        "Foundation still moving after %.0f seconds; giving up",
                        self._move_wait_timeout,
                    )
                    return False
                await asyncio.sleep(self._move_poll_interval)
        finally:
            self._awaiting_stop = False

    # Failure handling

    def _mark_unsupported(self) -> None:
        if not self._state.supported:
            return
        _LOGGER.warning("No foundation detected; foundation control disabled for this bed")
        self._state.supported = False
        if self._window_handle is not None:
            self._window_handle.cancel()
            self._window_handle = None
        self._pending = None
        self._notify()

    def _handle_auth_error(self, exc: AuthError, what: str) -> None:
        if not exc.credentials_rejected:
            _LOGGER.warning("SleepIQ login failed during %s request: %s", what, exc)
            return
        if self._halted:
            return
        _LOGGER.warning("SleepIQ rejected the credentials; foundation sync paused: %s", exc)
        self._halted = True
        if self._window_handle is not None:
            self._window_handle.cancel()
            self._window_handle = None
        self._pending = None
        self._notify()
        if self._on_auth_failed is not None:
            try:
                self._on_auth_failed(exc)
            except Exception as cb_exc:
                _LOGGER.warning(
                    "Auth failure callback failed: %s: %s", type(cb_exc).__name__, cb_exc
                )

    def get_diagnostics_data(self) -> dict[str, Any]:
        pending = self._pending
        return {
            "phase": self.phase.value,
            "available": self.available,
            "halted": self._halted,
            "state": asdict(self._state),
            "pending": asdict(pending) if pending is not None else None,
            "settings": {
                "side": self._side,
                "debounce_seconds": self._debounce_seconds,
                "poll_interval": self._poll_interval,
                "leading_edge": self._leading_edge,
                "wait_for_stop": self._wait_for_stop,
            },
        }
