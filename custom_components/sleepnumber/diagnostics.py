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

"""Diagnostics support for Sleep Number."""

from __future__ import annotations

from typing import Any

from homeassistant.components.diagnostics import async_redact_data
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .const import CONF_EMAIL, CONF_PASSWORD, DOMAIN

TO_REDACT = {CONF_EMAIL, CONF_PASSWORD, "user_id"}


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: ConfigEntry
) -> dict[str, Any]:
    """Return diagnostics for a config entry."""
    shared = hass.data.get(DOMAIN, {}).get(entry.entry_id, {})
    client = shared.get("client")
    synchronizer = shared.get("synchronizer")

    diagnostics: dict[str, Any] = {
        "config_entry": {
            "entry_id": entry.entry_id,
            "title": entry.title,
            "version": entry.version,
            "data": async_redact_data(dict(entry.data), TO_REDACT),
            "options": dict(entry.options),
        },
        "home_assistant_version": getattr(hass.config, "version", "unknown"),
        "client": {},
        "synchronizer": {},
        "connection_analysis": {},
    }

    if client:
        try:
            diagnostics["client"] = async_redact_data(client.get_diagnostics_data(), TO_REDACT)
            diagnostics["connection_analysis"] = _analyze_connection_quality(client.metrics)
        except Exception as err:
            diagnostics["client_error"] = str(err)

    if synchronizer:
        diagnostics["synchronizer"] = synchronizer.get_diagnostics_data()

    return diagnostics


def _analyze_connection_quality(metrics: Any) -> dict[str, Any]:
    """Grade request health and list the problems seen."""
    analysis: dict[str, Any] = {"quality": "unknown", "issues": []}

    if metrics.total_requests == 0:
        analysis["quality"] = "no_data"
        return analysis

    success_rate = 1.0 - metrics.failure_rate
    avg_latency = metrics.avg_latency_ms

    if success_rate >= 0.95 and avg_latency < 1000:
        analysis["quality"] = "excellent"
    elif success_rate >= 0.90 and avg_latency < 2000:
        analysis["quality"] = "good"
    elif success_rate >= 0.75 and avg_latency < 5000:
        analysis["quality"] = "fair"
    else:
        analysis["quality"] = "poor"

    if metrics.session_unstable and analysis["quality"] in ("excellent", "good"):
        analysis["quality"] = "fair"

    if success_rate < 0.90:
        analysis["issues"].append(
            f"Low success rate: {success_rate:.1%} "
            f"({metrics.failed_requests}/{metrics.total_requests} failures)"
        )
    if metrics.timed_out_requests:
        analysis["issues"].append(f"{metrics.timed_out_requests} request(s) timed out")
    if metrics.session_unstable:
        analysis["issues"].append(
            f"Frequent session expiry: {metrics.relogins} re-logins "
            f"out of {metrics.logins} logins"
        )

    return analysis
