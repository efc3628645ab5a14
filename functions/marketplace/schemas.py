"""
Pydantic schemas for the marketplace HTTP API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.constants import (
    MAX_DENIAL_REASON_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    MAX_REQUEST_TEXT_LENGTH,
    MAX_USERNAME_LENGTH,
)
from shared.types import (
    ApplicationStatus,
    ConfirmationStatus,
    RatingStatus,
    RequestStatus,
    TicketStatus,
    UserType,
)


class Record(BaseModel):
    """Base for responses built straight from shared.types records."""

    model_config = ConfigDict(from_attributes=True)


# Accounts


class RegisterPayload(BaseModel):
    user_type: UserType
    username: str = Field(..., max_length=MAX_USERNAME_LENGTH)
    name: str = Field(..., max_length=MAX_NAME_LENGTH)
    surname: str = Field(..., max_length=MAX_NAME_LENGTH)
    email: str
    password: str
    confirm_password: str


class RegisterResponse(BaseModel):
    uid: str
    user_type: UserType


class LoginPayload(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    uid: str
    id_token: str
    refresh_token: str
    expires_in: int
    user_type: Optional[UserType] = None


class PasswordResetPayload(BaseModel):
    email: str


class DeleteAccountPayload(BaseModel):
    confirmation_text: str


class StatusResponse(BaseModel):
    status: Literal["ok"] = "ok"


class MessageResponse(BaseModel):
    message: str


# Profiles


class UserProfileOut(Record):
    id: str
    username: str
    email: str
    name: str
    surname: str
    bio: str
    profile_picture: Optional[str] = None


class WorkerProfileOut(Record):
    id: str
    username: str
    email: str
    name: str
    surname: str
    bio: str
    score: Optional[float] = None
    requests: int
    rating: Optional[float] = None
    profile_picture: Optional[str] = None


class MeResponse(BaseModel):
    user_type: UserType
    # Worker first: a user document lacks the worker-only required fields.
    profile: WorkerProfileOut | UserProfileOut


class ProfileUpdatePayload(BaseModel):
    bio: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    name: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    surname: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)


class AdminProfileUpdatePayload(ProfileUpdatePayload):
    username: Optional[str] = Field(None, max_length=MAX_USERNAME_LENGTH)
    email: Optional[str] = None
    score: Optional[float] = None


class ProfilePictureResponse(BaseModel):
    url: str


# Tickets and services


class TicketPayload(BaseModel):
    name: str = Field(..., max_length=MAX_NAME_LENGTH)
    category: str
    description: str = Field(..., max_length=MAX_DESCRIPTION_LENGTH)
    start_date: str
    end_date: str


class TicketUpdatePayload(BaseModel):
    name: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    category: Optional[str] = None
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class TicketOut(Record):
    id: str
    name: str
    category: str
    description: str
    start_date: str
    end_date: str
    user_id: str
    user_name: str
    status: TicketStatus
    applications: list[str]


class ServicePayload(BaseModel):
    name: str = Field(..., max_length=MAX_NAME_LENGTH)
    description: str = Field(..., max_length=MAX_DESCRIPTION_LENGTH)
    category: str
    start_time: str
    end_time: str
    cost: float


class ServiceUpdatePayload(BaseModel):
    name: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    category: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    cost: Optional[float] = None


class ServiceOut(Record):
    id: str
    name: str
    description: str
    category: str
    start_time: str
    end_time: str
    cost: float
    user_id: str


# Applications


class TicketApplicationPayload(BaseModel):
    request_text: str = Field(..., max_length=MAX_REQUEST_TEXT_LENGTH)
    cost: Optional[float] = None
    start_time: str = ""
    end_time: str = ""


class ServiceApplicationPayload(BaseModel):
    request_text: str = Field(..., max_length=MAX_REQUEST_TEXT_LENGTH)
    start_date: str
    end_date: str


class TicketApplicationOut(Record):
    id: str
    ticket_id: str
    ticket_name: str
    ticket_desc: str
    user_id: str
    user_name: str
    worker_id: str
    request_text: str
    cost: Optional[float] = None
    category: str
    start_date: str
    end_date: str
    start_time: str
    end_time: str
    status: ApplicationStatus


class ServiceApplicationOut(Record):
    id: str
    service_id: str
    service_name: str
    user_id: str
    user_name: str
    worker_id: str
    request_text: str
    category: str
    start_date: str
    end_date: str
    start_time: str
    end_time: str
    status: ApplicationStatus


class TicketWithApplicationsOut(Record):
    ticket: TicketOut
    applications: list[TicketApplicationOut]
    worker_names: dict[str, str]


# Requests


class RequestOut(Record):
    id: str
    service_name: str
    service_id: str
    category: str
    user_id: str
    user_name: str
    worker_id: str
    worker_name: str
    request_text: str
    start_date: str
    end_date: str
    start_time: str
    end_time: str
    status: RequestStatus


class RequestsOverviewOut(Record):
    accepted: list[RequestOut]
    confirmed: list[RequestOut]
    history: list[RequestOut]


class RequestTextPayload(BaseModel):
    request_text: str = Field(..., max_length=MAX_REQUEST_TEXT_LENGTH)


class DenyRequestPayload(BaseModel):
    denial_reason: str = Field(..., max_length=MAX_DENIAL_REASON_LENGTH)


class RatingPayload(BaseModel):
    rating: int
    description: str = Field("", max_length=MAX_DESCRIPTION_LENGTH)


class ConfirmedRequestOut(Record):
    id: str
    request_id: str
    request_name: str
    request_worker: str
    user_id: str
    user_name: str
    worker_id: str
    status: ConfirmationStatus
    created_at: str


class DeniedRequestOut(Record):
    id: str
    request_id: str
    service_name: str
    user_name: str
    request_text: str
    start_date: str
    end_date: str
    user_id: str
    worker_name: str
    denial_reason: str
    denied_at: str


class RatedRequestOut(Record):
    id: str
    request_id: str
    user_id: str
    user_name: str
    worker_id: str
    description: str
    request_status: RatingStatus
    timestamp: str
    rating: Optional[int] = None


class CalendarOut(BaseModel):
    year: int
    month: int
    days: dict[str, list[RequestOut]]
