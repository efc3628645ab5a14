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

from dataclasses import dataclass, field
from enum import StrEnum
from typing import List, Optional


class UserType(StrEnum):
    USER = "user"
    WORKER = "worker"


class TicketStatus(StrEnum):
    OPEN = "open"


class ApplicationStatus(StrEnum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    DENIED = "denied"


class RequestStatus(StrEnum):
    """
    Lifecycle of an accepted application.

    ACCEPTED -> CONFIRMED -> RATED, or ACCEPTED -> DENIED.
    """

    ACCEPTED = "Accepted"
    CONFIRMED = "confirmed"
    DENIED = "denied"
    RATED = "rated"


class ConfirmationStatus(StrEnum):
    PENDING_CONFIRMATION = "pendingConfirmation"


class RatingStatus(StrEnum):
    DONE = "done"


@dataclass
class UserProfile:
    """A service requester. The document id is the auth uid."""

    username: str
    email: str
    name: str = ""
    surname: str = ""
    bio: str = ""
    profile_picture: Optional[str] = None
    id: Optional[str] = None


@dataclass
class WorkerProfile:
    """A service provider. The document id is the auth uid."""

    username: str
    email: str
    name: str = ""
    surname: str = ""
    bio: str = ""
    score: Optional[float] = None
    requests: int = 0
    rating: Optional[float] = None
    profile_picture: Optional[str] = None
    uid: Optional[str] = None
    id: Optional[str] = None


@dataclass
class Ticket:
    """A user-posted request for work, open to worker applications."""

    name: str
    category: str
    description: str
    start_date: str
    end_date: str
    user_id: str
    user_name: str = ""
    status: TicketStatus = TicketStatus.OPEN
    applications: List[str] = field(default_factory=list)
    id: Optional[str] = None


@dataclass
class Service:
    """A worker-posted offering, open to user applications."""

    name: str
    description: str
    category: str
    start_time: str
    end_time: str
    cost: float
    user_id: str
    id: Optional[str] = None


@dataclass
class TicketApplication:
    ticket_id: str
    ticket_name: str
    user_id: str
    worker_id: str
    request_text: str
    start_date: str
    end_date: str
    user_name: str = ""
    ticket_desc: str = ""
    cost: Optional[float] = None
    category: str = ""
    start_time: str = ""
    end_time: str = ""
    status: ApplicationStatus = ApplicationStatus.PENDING
    id: Optional[str] = None


@dataclass
class ServiceApplication:
    service_id: str
    service_name: str
    user_id: str
    worker_id: str
    request_text: str
    start_date: str
    end_date: str
    user_name: str = ""
    category: str = ""
    start_time: str = ""
    end_time: str = ""
    status: ApplicationStatus = ApplicationStatus.PENDING
    id: Optional[str] = None


@dataclass
class Request:
    """An accepted application: an engagement between one user and one worker."""

    service_name: str
    service_id: str
    user_id: str
    worker_id: str
    request_text: str
    start_date: str
    end_date: str
    user_name: str = ""
    worker_name: str = ""
    category: str = ""
    start_time: str = ""
    end_time: str = ""
    status: RequestStatus = RequestStatus.ACCEPTED
    id: Optional[str] = None


@dataclass
class ConfirmedRequest:
    """Marker awaiting the user's post-completion rating."""

    request_id: str
    user_id: str
    worker_id: str
    created_at: str
    request_name: str = ""
    request_worker: str = ""
    user_name: str = ""
    status: ConfirmationStatus = ConfirmationStatus.PENDING_CONFIRMATION
    id: Optional[str] = None


@dataclass
class DeniedRequest:
    """Archival record of a worker's rejection, with the reason given."""

    request_id: str
    user_id: str
    denial_reason: str
    denied_at: str
    service_name: str = ""
    user_name: str = ""
    worker_name: str = ""
    request_text: str = ""
    start_date: str = ""
    end_date: str = ""
    id: Optional[str] = None


@dataclass
class WorkersRatedRequest:
    request_id: str
    user_id: str
    worker_id: str
    timestamp: str
    rating: Optional[int] = None
    user_name: str = ""
    description: str = ""
    request_status: RatingStatus = RatingStatus.DONE
    id: Optional[str] = None
