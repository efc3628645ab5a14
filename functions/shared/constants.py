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

DELETE_CONFIRMATION_TEXT = "DELETE"

MIN_RATING = 1
MAX_RATING = 5

MAX_USERNAME_LENGTH = 64
MAX_NAME_LENGTH = 128
MAX_DESCRIPTION_LENGTH = 4000
MAX_REQUEST_TEXT_LENGTH = 2000
MAX_DENIAL_REASON_LENGTH = 1000

UNKNOWN_WORKER_NAME = "Unknown"

DATE_FORMAT = "%Y-%m-%d"
