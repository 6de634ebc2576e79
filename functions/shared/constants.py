# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Realtime Database top-level collections.
GENERATORS_COLLECTION = "generators"
BATTERIES_COLLECTION = "batteries"
SERVICE_LOGS_COLLECTION = "serviceLogs"
ISSUES_COLLECTION = "issues"
TASKS_COLLECTION = "tasks"
INVOICES_COLLECTION = "invoices"
SHOPS_COLLECTION = "shops"
USERS_COLLECTION = "users"
NOTIFICATIONS_COLLECTION = "notifications"
REPORTS_COLLECTION = "reports"
COUNTERS_COLLECTION = "counters"

# Fields owned by the change triggers.
CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"
METADATA_FIELDS = frozenset({CREATED_AT, UPDATED_AT})

# Prefixes for server-allocated sequential ids, e.g. GN0001.
GENERATOR_ID_PREFIX = "GN"
BATTERY_ID_PREFIX = "BT"
SERVICE_LOG_ID_PREFIX = "SL"
ISSUE_ID_PREFIX = "IS"
TASK_ID_PREFIX = "TK"
SHOP_ID_PREFIX = "SH"

MAX_ID_LENGTH = 128
MAX_TEXT_LENGTH = 2000
DEFAULT_LIST_LIMIT = 100
