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
from typing import Any

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.helpers.httpx_client import get_async_client

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
    MAX_HTTP_TIMEOUT_SECS,
    MAX_POLL_SECS,
    MAX_SEND_DELAY_SECS,
    MIN_HTTP_TIMEOUT_SECS,
    MIN_POLL_SECS,
    MIN_SEND_DELAY_SECS,
    OPTION_LEADING_EDGE,
    OPTION_POLL_SECS,
    OPTION_WAIT_FOR_STOP,
)
from .exceptions import AuthError, NoBedError

DATA_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_EMAIL): str,
        vol.Required(CONF_PASSWORD): str,
        vol.Optional(CONF_SEND_DELAY, default=DEFAULT_SEND_DELAY_SECS): vol.All(
            vol.Coerce(int), vol.Range(min=MIN_SEND_DELAY_SECS, max=MAX_SEND_DELAY_SECS)
        ),
    }
)

_LOGGER = logging.getLogger(__name__)


async def _async_validate_login(hass, email: str, password: str, timeout_s: int) -> str:
    """Log in once and return the discovered bed id.

    Raises AuthError (or NoBedError) when the login does not succeed.
    """
    client = SleepNumberClient(
        email,
        password,
        http_client=get_async_client(hass),
        timeout_s=timeout_s,
    )
    try:
        await client.async_login()
        return client.bed_id or ""
    finally:
        await client.async_close()


def _error_key(exc: Exception) -> str:
    if isinstance(exc, NoBedError):
        return "no_devices"
    if isinstance(exc, AuthError):
        return "invalid_auth" if exc.credentials_rejected else "cannot_connect"
    return "unknown"


class SleepNumberConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    VERSION = 1

    async def async_step_user(self, user_input: dict[str, Any] | None = None):
        if user_input is None:
            return self.async_show_form(step_id="user", data_schema=DATA_SCHEMA)

        # Set unique ID early to avoid unnecessary network calls on duplicates
        await self.async_set_unique_id(user_input[CONF_EMAIL].lower())
        self._abort_if_unique_id_configured()

        errors = {}
        try:
            await _async_validate_login(
                self.hass,
                user_input[CONF_EMAIL],
                user_input[CONF_PASSWORD],
                DEFAULT_HTTP_TIMEOUT_SECS,
            )
        except AuthError as exc:
            errors["base"] = _error_key(exc)
            _LOGGER.error("SleepIQ login failed during setup: %s", exc)
        except Exception as exc:
            _LOGGER.error(
                "Unexpected error during setup: %s: %s",
                type(exc).__name__,
                str(exc),
            )
            if _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug("Full exception:", exc_info=True)
            errors["base"] = "unknown"

        if errors:
            return self.async_show_form(step_id="user", data_schema=DATA_SCHEMA, errors=errors)

        return self.async_create_entry(title="Sleep Number", data=user_input)

    async def async_step_reauth(
        self, entry_data: dict[str, Any]
    ) -> config_entries.ConfigFlowResult:
        """Handle reauth flow when credentials expire or become invalid."""
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Prompt for a new password and verify it before reloading."""
        reauth_entry = self._get_reauth_entry()
        errors = {}

        if user_input is not None:
            email = reauth_entry.data[CONF_EMAIL]
            password = user_input[CONF_PASSWORD]
            http_timeout = reauth_entry.options.get(
                CONF_HTTP_TIMEOUT,
                reauth_entry.data.get(CONF_HTTP_TIMEOUT, DEFAULT_HTTP_TIMEOUT_SECS),
            )
            try:
                await _async_validate_login(self.hass, email, password, http_timeout)
            except AuthError as exc:
                _LOGGER.error("Reauth failed: %s", exc)
                errors["base"] = _error_key(exc)
            except Exception as exc:
                _LOGGER.error("Reauth failed: %s: %s", type(exc).__name__, str(exc))
                errors["base"] = "unknown"
            else:
                return self.async_update_reload_and_abort(
                    reauth_entry,
                    data={**reauth_entry.data, CONF_PASSWORD: password},
                )

        reauth_schema = vol.Schema({vol.Required(CONF_PASSWORD): str})

        return self.async_show_form(
            step_id="reauth_confirm",
            data_schema=reauth_schema,
            errors=errors,
            description_placeholders={"email": reauth_entry.data[CONF_EMAIL]},
        )

    @staticmethod
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> config_entries.OptionsFlow:
        return SleepNumberOptionsFlowHandler(config_entry)


def _clamp(raw: object, default: int, low: int, high: int) -> int:
    if isinstance(raw, int | float | str):
        try:
            value = int(raw)
        except ValueError:
            value = default
    else:
        value = default
    return max(low, min(high, value))


class SleepNumberOptionsFlowHandler(config_entries.OptionsFlow):
    def __init__(self, config_entry: config_entries.ConfigEntry) -> None:
        # Keep our own reference; newer HA provides self.config_entry itself
        # and rejects assignment to it.
        super().__init__()
        self._entry = config_entry

    def _current(self, key: str, default: Any) -> Any:
        return self._entry.options.get(key, self._entry.data.get(key, default))

    async def async_step_init(self, user_input: dict[str, Any] | None = None):
        if user_input is not None:
            poll = _clamp(
                user_input.get(OPTION_POLL_SECS, DEFAULT_POLL_SECS),
                DEFAULT_POLL_SECS,
                MIN_POLL_SECS,
                MAX_POLL_SECS,
            )
            delay = _clamp(
                user_input.get(
                    CONF_SEND_DELAY, self._current(CONF_SEND_DELAY, DEFAULT_SEND_DELAY_SECS)
                ),
                DEFAULT_SEND_DELAY_SECS,
                MIN_SEND_DELAY_SECS,
                MAX_SEND_DELAY_SECS,
            )
            http_t = _clamp(
                user_input.get(
                    CONF_HTTP_TIMEOUT, self._current(CONF_HTTP_TIMEOUT, DEFAULT_HTTP_TIMEOUT_SECS)
                ),
                DEFAULT_HTTP_TIMEOUT_SECS,
                MIN_HTTP_TIMEOUT_SECS,
                MAX_HTTP_TIMEOUT_SECS,
            )
            if _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug("options set: poll=%s delay=%s http=%s", poll, delay, http_t)
            return self.async_create_entry(
                title="Sleep Number Options",
                data={
                    OPTION_POLL_SECS: poll,
                    CONF_SEND_DELAY: delay,
                    OPTION_LEADING_EDGE: bool(
                        user_input.get(OPTION_LEADING_EDGE, DEFAULT_LEADING_EDGE)
                    ),
                    OPTION_WAIT_FOR_STOP: bool(user_input.get(OPTION_WAIT_FOR_STOP, False)),
                    CONF_HTTP_TIMEOUT: http_t,
                },
            )

        schema = vol.Schema(
            {
                vol.Optional(
                    OPTION_POLL_SECS,
                    default=self._current(OPTION_POLL_SECS, DEFAULT_POLL_SECS),
                ): vol.All(vol.Coerce(int), vol.Range(min=MIN_POLL_SECS, max=MAX_POLL_SECS)),
                vol.Optional(
                    CONF_SEND_DELAY,
                    default=self._current(CONF_SEND_DELAY, DEFAULT_SEND_DELAY_SECS),
                ): vol.All(
                    vol.Coerce(int),
                    vol.Range(min=MIN_SEND_DELAY_SECS, max=MAX_SEND_DELAY_SECS),
                ),
                vol.Optional(
                    OPTION_LEADING_EDGE,
                    default=self._current(OPTION_LEADING_EDGE, DEFAULT_LEADING_EDGE),
                ): bool,
                vol.Optional(
                    OPTION_WAIT_FOR_STOP,
                    default=self._current(OPTION_WAIT_FOR_STOP, False),
                ): bool,
                vol.Optional(
                    CONF_HTTP_TIMEOUT,
                    default=self._current(CONF_HTTP_TIMEOUT, DEFAULT_HTTP_TIMEOUT_SECS),
                ): vol.All(
                    vol.Coerce(int),
                    vol.Range(min=MIN_HTTP_TIMEOUT_SECS, max=MAX_HTTP_TIMEOUT_SECS),
                ),
            }
        )
        return self.async_show_form(step_id="init", data_schema=schema)
