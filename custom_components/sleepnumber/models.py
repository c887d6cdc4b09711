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

"""Data shapes shared by the client and the synchronizer."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .const import KEY_FOOT_POSITION, KEY_HEAD_POSITION, KEY_IS_MOVING


@dataclass(slots=True)
class Session:
    """One authenticated connection to the SleepIQ cloud."""

    email: str
    password: str = field(repr=False)
    key: str | None = field(default=None, repr=False)
    user_id: str | None = None
    bed_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.key is not None

    def invalidate(self) -> None:
        self.key = None


@dataclass(frozen=True, slots=True)
class FoundationStatus:
    """Foundation positions as reported by the cloud."""

    head_position: int
    foot_position: int
    is_moving: bool

    @property
    def raised(self) -> bool:
        return self.head_position > 0 or self.foot_position > 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> FoundationStatus:
        """Parse a foundation status body.

        Positions arrive as decimal strings ("10"), the moving flag as a bool
        or as "true"/"false" depending on firmware.
        """
        return cls(
            head_position=_to_int(payload.get(KEY_HEAD_POSITION)),
            foot_position=_to_int(payload.get(KEY_FOOT_POSITION)),
            is_moving=_to_bool(payload.get(KEY_IS_MOVING)),
        )


def _to_int(raw: object) -> int:
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, int | str):
        try:
            return int(raw, 10) if isinstance(raw, str) else int(raw)
        except ValueError:
            pass
    if isinstance(raw, float):
        return int(raw)
    return 0


def _to_bool(raw: object) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in ("true", "1")
    return bool(raw)
