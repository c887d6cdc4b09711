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

import asyncio
import logging
import time
from typing import Any

import httpx

from .const import (
    API_BASE_URL,
    AUTH_REJECTED_STATUSES,
    BED_LIST_PATH,
    DEFAULT_HTTP_TIMEOUT_SECS,
    FOUNDATION_PRESET_PATH,
    FOUNDATION_STATUS_PATH,
    LOGIN_PATH,
    SLOW_RESPONSE_WARNING_MS,
)
from .exceptions import AuthError, NoBedError, NoFoundationError, RequestError
from .metrics import RequestMetrics
from .models import FoundationStatus, Session

_LOGGER = logging.getLogger(__name__)


class SleepNumberClient:
    """Async HTTP client for the SleepIQ cloud API.

    Owns the session for one account. Every request other than login logs in
    first when no session key is held. A request rejected for authentication
    gets exactly one silent re-login and retry before AuthError is raised.
    """

    def __init__(
        self,
        email: str,
        password: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: int | float | None = None,
        base_url: str = API_BASE_URL,
    ):
        self.session = Session(email=email, password=password)
        self._http = http_client
        # Only close the HTTP client on shutdown when we created it
        self._owns_http = http_client is None
        self._timeout_s = (
            float(timeout_s) if timeout_s is not None else float(DEFAULT_HTTP_TIMEOUT_SECS)
        )
        self._timeout = httpx.Timeout(self._timeout_s)
        self._base_url = base_url.rstrip("/")
        self._login_lock = asyncio.Lock()
        self.metrics = RequestMetrics()

    @property
    def bed_id(self) -> str | None:
        return self.session.bed_id

    @property
    def user_id(self) -> str | None:
        return self.session.user_id

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
            self._owns_http = True
        return self._http

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def async_login(self) -> Session:
        """Log in with the stored credentials and discover the bed id."""
        async with self._login_lock:
            await self._async_login_locked()
        return self.session

    async def _async_login_locked(self, *, relogin: bool = False) -> None:
        t0 = time.monotonic()
        self.session.invalidate()
        try:
            resp = await asyncio.wait_for(
                self._client().put(
                    self._url(LOGIN_PATH),
                    json={"login": self.session.email, "password": self.session.password},
                    timeout=self._timeout,
                ),
                timeout=self._timeout_s,
            )
        except (httpx.TimeoutException, TimeoutError) as exc:
            self.metrics.record_timeout()
            raise AuthError(f"Login timed out: {type(exc).__name__}") from exc
        except httpx.HTTPError as exc:
            self.metrics.record_request(success=False)
            raise AuthError(f"Login failed: {type(exc).__name__}") from exc

        payload = _decode_body(resp)
        key = payload.get("key") if isinstance(payload, dict) else None
        if resp.status_code >= 400 or not key:
            self.metrics.record_request(success=False)
            raise AuthError(
                f"Login rejected: HTTP {resp.status_code}",
                status=resp.status_code,
                payload=payload,
            )
        latency_ms = (time.monotonic() - t0) * 1000
        self.metrics.record_request(success=True, latency_ms=latency_ms)

        bed_id = _first_bed_id(payload)
        if bed_id is None:
            bed_id = _first_bed_id(await self._async_fetch_beds(str(key)))
        if bed_id is None:
            raise NoBedError("No bed found on this account", status=resp.status_code)

        user_id = payload.get("userId", payload.get("userID"))
        self.session.key = str(key)
        self.session.user_id = str(user_id) if user_id is not None else None
        self.session.bed_id = bed_id
        self.metrics.record_login(relogin=relogin)
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "login ok ms=%.0f bed_id=%s relogin=%s",
                (time.monotonic() - t0) * 1000,
                bed_id,
                relogin,
            )

    async def _async_fetch_beds(self, key: str) -> Any:
        try:
            resp = await asyncio.wait_for(
                self._client().get(
                    self._url(BED_LIST_PATH), params={"_k": key}, timeout=self._timeout
                ),
                timeout=self._timeout_s,
            )
        except (httpx.TimeoutException, TimeoutError) as exc:
            self.metrics.record_timeout()
            raise AuthError(f"Bed list timed out: {type(exc).__name__}") from exc
        except httpx.HTTPError as exc:
            self.metrics.record_request(success=False)
            raise AuthError(f"Bed list failed: {type(exc).__name__}") from exc
        payload = _decode_body(resp)
        if resp.status_code >= 400:
            self.metrics.record_request(success=False)
            raise AuthError(
                f"Bed list rejected: HTTP {resp.status_code}",
                status=resp.status_code,
                payload=payload,
            )
        self.metrics.record_request(success=True)
        return payload

    async def _async_ensure_session(self, stale_key: str | None) -> None:
        """Log in unless another caller already replaced ``stale_key``."""
        async with self._login_lock:
            if self.session.key is not None and self.session.key != stale_key:
                return
            await self._async_login_locked(relogin=stale_key is not None)

    async def _async_request(
        self,
        method: str,
        path_template: str,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> tuple[httpx.Response, Any]:
        if not self.session.is_authenticated:
            await self._async_ensure_session(None)

        key = self.session.key
        path = path_template.format(bed_id=self.session.bed_id)
        resp, payload = await self._async_send(method, path, key, json_body)
        if not _is_auth_rejection(resp.status_code, payload):
            return resp, payload

        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "session rejected method=%s path=%s status=%s, logging in again",
                method,
                path,
                resp.status_code,
            )
        await self._async_ensure_session(key)

        path = path_template.format(bed_id=self.session.bed_id)
        resp, payload = await self._async_send(method, path, self.session.key, json_body)
        if not _is_auth_rejection(resp.status_code, payload):
            return resp, payload

        self.session.invalidate()
        raise AuthError(
            f"Session rejected after re-login: HTTP {resp.status_code}",
            status=resp.status_code,
            payload=payload,
        )

    async def _async_send(
        self,
        method: str,
        path: str,
        key: str | None,
        json_body: dict[str, Any] | None,
    ) -> tuple[httpx.Response, Any]:
        t0 = time.monotonic()
        try:
            # httpx bounds each phase; wait_for bounds the whole call
            resp = await asyncio.wait_for(
                self._client().request(
                    method,
                    self._url(path),
                    params={"_k": key or ""},
                    json=json_body,
                    timeout=self._timeout,
                ),
                timeout=self._timeout_s,
            )
        except (httpx.TimeoutException, TimeoutError) as exc:
            self.metrics.record_timeout()
            raise RequestError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            self.metrics.record_request(success=False)
            raise RequestError(f"{method} {path} failed: {type(exc).__name__}") from exc

        payload = _decode_body(resp)
        latency_ms = (time.monotonic() - t0) * 1000
        ok = resp.status_code < 400 and _error_code(payload) is None
        self.metrics.record_request(success=ok, latency_ms=latency_ms)
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "%s %s status=%s ms=%.0f", method, path, resp.status_code, latency_ms
            )
        if latency_ms > SLOW_RESPONSE_WARNING_MS:
            _LOGGER.warning(
                "Slow response from SleepIQ cloud: %.1f seconds for %s %s",
                latency_ms / 1000,
                method,
                path,
            )
        return resp, payload

    async def async_get_foundation_status(self) -> FoundationStatus:
        """Fetch head/foot positions and the moving flag."""
        resp, payload = await self._async_request("GET", FOUNDATION_STATUS_PATH)
        _raise_for_foundation_error(resp, payload, "foundation status")
        return FoundationStatus.from_payload(payload)

    async def async_set_preset(self, side: str, preset: int) -> dict[str, Any]:
        """Move the foundation to a numbered preset for ``side``."""
        resp, payload = await self._async_request(
            "PUT",
            FOUNDATION_PRESET_PATH,
            json_body={"speed": 0, "preset": int(preset), "side": side},
        )
        _raise_for_foundation_error(resp, payload, "preset")
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("preset ack side=%s preset=%s", side, preset)
        return payload

    async def async_close(self) -> None:
        self.session.invalidate()
        if self._http is not None and self._owns_http:
            try:
                await self._http.aclose()
            except Exception as exc:
                # Ignore errors closing HTTP client; log for diagnostics
                if _LOGGER.isEnabledFor(logging.DEBUG):
                    _LOGGER.debug("HTTP client close failed: %s: %s", type(exc).__name__, exc)
            self._http = None

    def get_diagnostics_data(self) -> dict[str, Any]:
        return {
            "session": {
                "authenticated": self.session.is_authenticated,
                "user_id": self.session.user_id,
                "bed_id": self.session.bed_id,
            },
            "http_timeout_s": self._timeout_s,
            "metrics": self.metrics.to_dict(),
        }


def _decode_body(resp: httpx.Response) -> Any:
    """Return the JSON body, {} for an empty body, or None when undecodable."""
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError:
        return None


def _error_code(payload: Any) -> int | None:
    if not isinstance(payload, dict):
        return None
    err = payload.get("Error")
    if not isinstance(err, dict):
        return None
    try:
        return int(err.get("Code"))
    except (TypeError, ValueError):
        return -1


def _is_auth_rejection(status: int, payload: Any) -> bool:
    return status in AUTH_REJECTED_STATUSES or _error_code(payload) in AUTH_REJECTED_STATUSES


def _raise_for_foundation_error(resp: httpx.Response, payload: Any, what: str) -> None:
    if resp.status_code == 404 or _error_code(payload) == 404:
        raise NoFoundationError("No foundation detected", status=404, payload=payload)
    if resp.status_code >= 400 or _error_code(payload) is not None:
        raise RequestError(
            f"{what} failed: HTTP {resp.status_code}",
            status=resp.status_code,
            payload=payload,
        )
    if not isinstance(payload, dict):
        raise RequestError(f"{what} returned an invalid body", status=resp.status_code)


def _first_bed_id(payload: Any) -> str | None:
    """Return the first bed id from a payload carrying a ``beds`` list."""
    if not isinstance(payload, dict):
        return None
    beds = payload.get("beds")
    if not isinstance(beds, list):
        return None
    for bed in beds:
        if isinstance(bed, dict):
            bed_id = bed.get("bedId", bed.get("bedID"))
            if bed_id is not None and str(bed_id):
                return str(bed_id)
    return None
