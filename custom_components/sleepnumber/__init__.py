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

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EVENT_HOMEASSISTANT_STOP
from homeassistant.core import Event, HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed, ConfigEntryNotReady
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.httpx_client import create_async_httpx_client
from homeassistant.helpers.typing import ConfigType

from .client import SleepNumberClient
from .const import (
    CONF_EMAIL,
    CONF_HTTP_TIMEOUT,
    CONF_PASSWORD,
    CONF_SEND_DELAY,
    DEFAULT_HTTP_TIMEOUT_SECS,
    DEFAULT_LEADING_EDGE,
    DEFAULT_POLL_SECS,
    DEFAULT_SEND_DELAY_SECS,
    DOMAIN,
    OPTION_LEADING_EDGE,
    OPTION_POLL_SECS,
    OPTION_WAIT_FOR_STOP,
    PLATFORMS,
)
from .exceptions import AuthError, NoBedError
from .synchronizer import FoundationSynchronizer

_LOGGER = logging.getLogger(__name__)

# Integration is config-entry only (no YAML config)
CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    http_timeout = entry.options.get(
        CONF_HTTP_TIMEOUT, entry.data.get(CONF_HTTP_TIMEOUT, DEFAULT_HTTP_TIMEOUT_SECS)
    )
    client = SleepNumberClient(
        entry.data[CONF_EMAIL],
        entry.data[CONF_PASSWORD],
        http_client=create_async_httpx_client(hass),
        timeout_s=http_timeout,
    )
    try:
        await client.async_login()
    except NoBedError as exc:
        await client.async_close()
        raise ConfigEntryNotReady(f"No bed found on the SleepIQ account: {exc}") from exc
    except AuthError as exc:
        await client.async_close()
        if exc.credentials_rejected:
            raise ConfigEntryAuthFailed(f"SleepIQ rejected the credentials: {exc}") from exc
        raise ConfigEntryNotReady(f"SleepIQ login failed: {exc}") from exc

    def _on_auth_failed(exc: AuthError) -> None:
        _LOGGER.warning("SleepIQ credentials rejected at runtime; starting reauth")
        entry.async_start_reauth(hass)

    send_delay = entry.options.get(
        CONF_SEND_DELAY, entry.data.get(CONF_SEND_DELAY, DEFAULT_SEND_DELAY_SECS)
    )
    poll_secs = entry.options.get(OPTION_POLL_SECS, DEFAULT_POLL_SECS)
    synchronizer = FoundationSynchronizer(
        client,
        debounce_seconds=float(send_delay),
        poll_interval=float(poll_secs),
        leading_edge=entry.options.get(OPTION_LEADING_EDGE, DEFAULT_LEADING_EDGE),
        wait_for_stop=entry.options.get(OPTION_WAIT_FOR_STOP, False),
        on_auth_failed=_on_auth_failed,
    )
    if _LOGGER.isEnabledFor(logging.DEBUG):
        _LOGGER.debug(
            "setup bed_id=%s poll=%ss send_delay=%ss http_timeout=%ss",
            client.bed_id,
            poll_secs,
            send_delay,
            http_timeout,
        )

    await synchronizer.async_poll_once()
    synchronizer.start()

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "client": client,
        "synchronizer": synchronizer,
    }

    async def _async_on_stop(event: Event) -> None:
        await synchronizer.async_shutdown()

    entry.async_on_unload(hass.bus.async_listen_once(EVENT_HOMEASSISTANT_STOP, _async_on_stop))
    entry.async_on_unload(entry.add_update_listener(_async_options_updated))

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    _LOGGER.info("Sleep Number connected: bed %s", client.bed_id)
    return True


async def _async_options_updated(hass: HomeAssistant, entry: ConfigEntry) -> None:
    if _LOGGER.isEnabledFor(logging.DEBUG):
        _LOGGER.debug("options changed, reloading entry %s", entry.entry_id)
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    unloaded = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unloaded:
        data = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
        if data:
            await data["synchronizer"].async_shutdown()
            await data["client"].async_close()
    return unloaded
