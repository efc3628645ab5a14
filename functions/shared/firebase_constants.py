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

USERS_COLLECTION = "users"
WORKERS_COLLECTION = "workers"
TICKETS_COLLECTION = "tickets"
SERVICES_COLLECTION = "services"
TICKET_APPLICATIONS_COLLECTION = "ticketApplications"
SERVICE_APPLICATIONS_COLLECTION = "serviceApplications"
REQUESTS_COLLECTION = "requests"
CONFIRMED_REQUESTS_COLLECTION = "confirmedRequests"
DENIED_REQUESTS_COLLECTION = "deniedRequests"
WORKERS_RATED_REQUESTS_COLLECTION = "workersRatedRequests"

PROFILE_PICTURES_PATH = "profile_pictures"
