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

import logging

from homeassistant.components.light import ColorMode, LightEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .client import SleepNumberClient
from .const import DOMAIN
from .device_utils import create_device_info, foundation_attrs
from .synchronizer import FoundationSynchronizer

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
):
    shared = hass.data[DOMAIN][entry.entry_id]
    client: SleepNumberClient = shared["client"]
    synchronizer: FoundationSynchronizer = shared["synchronizer"]
    async_add_entities([SleepNumberFoundationLight(client, synchronizer)])


class SleepNumberFoundationLight(LightEntity):
    """FlexFrame foundation exposed as an on/off light: on is raised, off is flat."""

    _attr_has_entity_name = False
    _attr_name = "FlexFrame"
    _attr_should_poll = False
    _attr_supported_color_modes = {ColorMode.ONOFF}
    _attr_color_mode = ColorMode.ONOFF

    def __init__(self, client: SleepNumberClient, synchronizer: FoundationSynchronizer):
        self.client = client
        self.synchronizer = synchronizer
        self._bed_id = client.bed_id or "unknown"
        self._attr_unique_id = f"{DOMAIN}_{self._bed_id}_foundation"

    async def async_added_to_hass(self) -> None:
        await super().async_added_to_hass()
        self.async_on_remove(self.synchronizer.add_listener(self._handle_foundation_update))

    def _handle_foundation_update(self, raised: bool) -> None:
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "state update bed=%s raised=%s available=%s",
                self._bed_id,
                raised,
                self.synchronizer.available,
            )
        self.async_write_ha_state()

    @property
    def available(self) -> bool:
        return self.synchronizer.available

    @property
    def is_on(self) -> bool:
        return self.synchronizer.current_state()

    async def async_turn_on(self, **kwargs):
        self.synchronizer.request_state(True)

    async def async_turn_off(self, **kwargs):
        self.synchronizer.request_state(False)

    async def async_update(self) -> None:
        await self.synchronizer.async_poll_once()

    @property
    def device_info(self) -> DeviceInfo:
        return create_device_info(self.client)

    @property
    def extra_state_attributes(self) -> dict[str, object] | None:
        return foundation_attrs(self.synchronizer)

    @property
    def icon(self) -> str | None:
        return "mdi:bed"
