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

"""Request metrics for the SleepIQ client."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(slots=True)
class RequestMetrics:
    """Track request health and latency."""

    total_requests: int = 0
    failed_requests: int = 0
    timed_out_requests: int = 0

    # Latency tracking (milliseconds)
    recent_latencies: list[float] = field(default_factory=list)
    max_latency_samples: int = 20

    logins: int = 0
    relogins: int = 0
    consecutive_failures: int = 0

    def record_request(self, success: bool, latency_ms: float | None = None) -> None:
        self.total_requests += 1
        if not success:
            self.failed_requests += 1
            self.consecutive_failures += 1
        else:
            self.consecutive_failures = 0

        if latency_ms is not None:
            self.recent_latencies.append(latency_ms)
            if len(self.recent_latencies) > self.max_latency_samples:
                self.recent_latencies.pop(0)

    def record_timeout(self) -> None:
        self.total_requests += 1
        self.failed_requests += 1
        self.timed_out_requests += 1
        self.consecutive_failures += 1

    def record_login(self, *, relogin: bool = False) -> None:
        self.logins += 1
        if relogin:
            self.relogins += 1

    @property
    def avg_latency_ms(self) -> float:
        if not self.recent_latencies:
            return 0.0
        return sum(self.recent_latencies) / len(self.recent_latencies)

    @property
    def failure_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.failed_requests / self.total_requests

    @property
    def relogin_rate(self) -> float:
        """Share of logins that replaced an expired or rejected session."""
        if self.logins == 0:
            return 0.0
        return self.relogins / self.logins

    @property
    def session_unstable(self) -> bool:
        # A key that keeps expiring usually means another client is logging
        # in with the same account.
        return self.relogins >= 3 and self.relogin_rate > 0.5

    def to_dict(self) -> dict[str, Any]:
        """Export metrics as dictionary for diagnostics."""
        data = asdict(self)
        data["avg_latency_ms"] = round(self.avg_latency_ms, 2)
        data["failure_rate"] = round(self.failure_rate, 3)
        data["relogin_rate"] = round(self.relogin_rate, 3)
        data["session_unstable"] = self.session_unstable
        return data
