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

from __future__ import annotations

from typing import Any

from homeassistant.helpers.entity import DeviceInfo

from .const import DOMAIN

MANUFACTURER = "Sleep Number"
MODEL = "SleepIQ"


def create_device_info(client: Any) -> DeviceInfo:
    """Build DeviceInfo for the bed behind the client's session."""
    bed_id = getattr(client, "bed_id", None) or "unknown"
    return DeviceInfo(
        identifiers={(DOMAIN, bed_id)},
        manufacturer=MANUFACTURER,
        model=MODEL,
        name="Sleep Number",
        serial_number=bed_id,
    )


def foundation_attrs(synchronizer: Any) -> dict[str, object] | None:
    """Return the last fetched head/foot positions for state attributes."""
    try:
        state = synchronizer.state
    except AttributeError:
        return None
    if state.last_fetch is None:
        return None
    return {
        "head_position": state.head_position,
        "foot_position": state.foot_position,
        "is_moving": state.is_moving,
    }
