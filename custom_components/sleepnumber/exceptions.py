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

"""Errors raised by the SleepIQ client."""

from __future__ import annotations

from typing import Any

from .const import AUTH_REJECTED_STATUSES


class SleepNumberError(Exception):
    """Base class for SleepIQ client errors."""

    def __init__(self, message: str, *, status: int | None = None, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.payload = payload


class AuthError(SleepNumberError):
    """Login failed or the session was rejected twice in a row."""

    @property
    def credentials_rejected(self) -> bool:
        """True when the cloud refused the credentials (not a transport failure)."""
        return self.status in AUTH_REJECTED_STATUSES


class RequestError(SleepNumberError):
    """Transient network or remote failure."""


class NoFoundationError(RequestError):
    """The bed has no adjustable foundation attached."""


class NoBedError(AuthError):
    """Login succeeded but the account has no bed."""
