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

DOMAIN = "sleepnumber"
PLATFORMS = ["light"]
CONF_EMAIL = "email"
CONF_PASSWORD = "password"
CONF_SEND_DELAY = "send_delay_seconds"
CONF_HTTP_TIMEOUT = "http_timeout_seconds"
OPTION_POLL_SECS = "poll_interval_seconds"
OPTION_LEADING_EDGE = "send_immediately"
OPTION_WAIT_FOR_STOP = "wait_for_stop"

# SleepIQ cloud endpoints
API_BASE_URL = "https://prod-api.sleepiq.sleepnumber.com/rest"
LOGIN_PATH = "/login"
BED_LIST_PATH = "/bed"
FOUNDATION_STATUS_PATH = "/bed/{bed_id}/foundation/status"
FOUNDATION_PRESET_PATH = "/bed/{bed_id}/foundation/preset"

# Foundation presets used by this integration
PRESET_RAISED = 1  # "flex"
PRESET_FLAT = 4
SIDE_LEFT = "L"

# Status payload keys
KEY_HEAD_POSITION = "fsLeftHeadPosition"
KEY_FOOT_POSITION = "fsLeftFootPosition"
KEY_IS_MOVING = "fsIsMoving"

# Debounce window for user commands
DEFAULT_SEND_DELAY_SECS = 5
MIN_SEND_DELAY_SECS = 1
MAX_SEND_DELAY_SECS = 60

# The first request of a burst is sent at once and the last differing value
# when the window closes. With this off only the trailing value is sent, so
# raise then flatten inside one window sends a single flat preset.
DEFAULT_LEADING_EDGE = True

# Recurring status poll
DEFAULT_POLL_SECS = 10
MIN_POLL_SECS = 5
MAX_POLL_SECS = 300

# HTTP request timeout
DEFAULT_HTTP_TIMEOUT_SECS = 10
MIN_HTTP_TIMEOUT_SECS = 5
MAX_HTTP_TIMEOUT_SECS = 60

# Movement wait loop: fetch cadence while the foundation reports moving,
# and the total time after which the wait gives up.
MOVE_POLL_INTERVAL_SEC = 0.5
MOVE_WAIT_TIMEOUT_SEC = 60.0

# Log a warning when a single request takes longer than this
SLOW_RESPONSE_WARNING_MS = 5000

# Status codes the cloud uses to reject a session or credentials
AUTH_REJECTED_STATUSES = (401, 403)
