"""
Entity services: thin CRUD wrappers over the tickets, services, users and
workers collections.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from marketplace.db import DocumentStore
from marketplace.errors import NotFoundError, PermissionDeniedError, ValidationError
from marketplace.events import (
    PROFILES_CHANGED,
    SERVICES_CHANGED,
    TICKETS_CHANGED,
    EventBus,
)
from marketplace.records import TypedCollection
from marketplace.storage import StorageClient
from shared.constants import DATE_FORMAT
from shared.firebase_constants import (
    PROFILE_PICTURES_PATH,
    SERVICES_COLLECTION,
    TICKETS_COLLECTION,
    USERS_COLLECTION,
    WORKERS_COLLECTION,
)
from shared.types import Service, Ticket, UserProfile, UserType, WorkerProfile

logger = logging.getLogger(__name__)

TICKET_UPDATE_FIELDS = {"name", "category", "description", "start_date", "end_date"}
SERVICE_UPDATE_FIELDS = {
    "name",
    "description",
    "category",
    "start_time",
    "end_time",
    "cost",
}
PROFILE_UPDATE_FIELDS = {"bio", "name", "surname"}
ADMIN_PROFILE_UPDATE_FIELDS = PROFILE_UPDATE_FIELDS | {"username", "email"}
ADMIN_WORKER_UPDATE_FIELDS = ADMIN_PROFILE_UPDATE_FIELDS | {"score"}


def parse_date(value: str, field: str) -> date:
    try:
        return datetime.strptime(value[:10], DATE_FORMAT).date()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date: {value!r}", field=field)


def validate_date_range(
    start_date: str, end_date: str, today: Optional[date] = None
) -> None:
    """
    Start may not be in the past; end must be at least one day after start.
    """
    today = today or date.today()
    start = parse_date(start_date, "startDate")
    end = parse_date(end_date, "endDate")
    if start < today:
        raise ValidationError(
            "Start date cannot be older than today.", field="startDate"
        )
    if end < start + timedelta(days=1):
        raise ValidationError(
            "End date must be at least one day after the start date.",
            field="endDate",
        )


def validate_cost(cost: Optional[float]) -> None:
    if cost is not None and cost < 0:
        raise ValidationError("Cost cannot be negative.", field="cost")


def _pick(fields: dict, allowed: set[str]) -> dict:
    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
    return {k: v for k, v in fields.items() if v is not None}


def _check_owner(owner_id: str, actor_id: Optional[str], what: str) -> None:
    """actor_id None means an admin acting on someone else's document."""
    if actor_id is not None and owner_id != actor_id:
        raise PermissionDeniedError(f"Only the owner can modify this {what}.")


class TicketService:
    def __init__(self, store: DocumentStore, events: EventBus):
        self.tickets = TypedCollection(store, TICKETS_COLLECTION, Ticket)
        self.events = events

    def create(
        self,
        user_id: str,
        user_name: str,
        *,
        name: str,
        category: str,
        description: str,
        start_date: str,
        end_date: str,
    ) -> Ticket:
        validate_date_range(start_date, end_date)
        ticket = self.tickets.add(
            Ticket(
                name=name,
                category=category,
                description=description,
                start_date=start_date,
                end_date=end_date,
                user_id=user_id,
                user_name=user_name or "",
            )
        )
        logger.info(f"Created ticket {ticket.id} for user {user_id}")
        self.events.publish(TICKETS_CHANGED, {"ticketId": ticket.id, "userId": user_id})
        return ticket

    def get(self, ticket_id: str) -> Ticket:
        return self.tickets.get(ticket_id)

    def update(self, ticket_id: str, actor_id: Optional[str], **fields) -> Ticket:
        ticket = self.tickets.get(ticket_id)
        _check_owner(ticket.user_id, actor_id, "ticket")
        changes = _pick(fields, TICKET_UPDATE_FIELDS)
        if "start_date" in changes or "end_date" in changes:
            validate_date_range(
                changes.get("start_date", ticket.start_date),
                changes.get("end_date", ticket.end_date),
            )
        if changes:
            self.tickets.update(ticket_id, **changes)
            self.events.publish(
                TICKETS_CHANGED, {"ticketId": ticket_id, "userId": ticket.user_id}
            )
        return self.tickets.get(ticket_id)

    def delete(self, ticket_id: str, actor_id: Optional[str]) -> None:
        ticket = self.tickets.get(ticket_id)
        _check_owner(ticket.user_id, actor_id, "ticket")
        self.tickets.delete(ticket_id)
        logger.info(f"Deleted ticket {ticket_id}")
        self.events.publish(
            TICKETS_CHANGED, {"ticketId": ticket_id, "userId": ticket.user_id}
        )

    def list_by_owner(self, user_id: str) -> list[Ticket]:
        return self.tickets.where(user_id=user_id)

    def list_all(
        self,
        category: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[Ticket]:
        tickets = (
            self.tickets.where(category=category) if category else self.tickets.query([])
        )
        lower = parse_date(date_from, "dateFrom") if date_from else None
        upper = parse_date(date_to, "dateTo") if date_to else None
        if lower is None and upper is None:
            return tickets

        def in_range(ticket: Ticket) -> bool:
            try:
                start = parse_date(ticket.start_date, "startDate")
            except ValidationError:
                return False
            return (lower is None or start >= lower) and (
                upper is None or start <= upper
            )

        return [t for t in tickets if in_range(t)]


class ServiceService:
    def __init__(self, store: DocumentStore, events: EventBus):
        self.services = TypedCollection(store, SERVICES_COLLECTION, Service)
        self.events = events

    def create(
        self,
        worker_id: str,
        *,
        name: str,
        description: str,
        category: str,
        start_time: str,
        end_time: str,
        cost: float,
    ) -> Service:
        validate_cost(cost)
        service = self.services.add(
            Service(
                name=name,
                description=description,
                category=category,
                start_time=start_time,
                end_time=end_time,
                cost=float(cost),
                user_id=worker_id,
            )
        )
        logger.info(f"Created service {service.id} for worker {worker_id}")
        self.events.publish(
            SERVICES_CHANGED, {"serviceId": service.id, "workerId": worker_id}
        )
        return service

    def get(self, service_id: str) -> Service:
        return self.services.get(service_id)

    def update(self, service_id: str, actor_id: Optional[str], **fields) -> Service:
        service = self.services.get(service_id)
        _check_owner(service.user_id, actor_id, "service")
        changes = _pick(fields, SERVICE_UPDATE_FIELDS)
        validate_cost(changes.get("cost"))
        if changes:
            self.services.update(service_id, **changes)
            self.events.publish(
                SERVICES_CHANGED,
                {"serviceId": service_id, "workerId": service.user_id},
            )
        return self.services.get(service_id)

    def delete(self, service_id: str, actor_id: Optional[str]) -> None:
        service = self.services.get(service_id)
        _check_owner(service.user_id, actor_id, "service")
        self.services.delete(service_id)
        logger.info(f"Deleted service {service_id}")
        self.events.publish(
            SERVICES_CHANGED, {"serviceId": service_id, "workerId": service.user_id}
        )

    def list_by_worker(self, worker_id: str) -> list[Service]:
        return self.services.where(user_id=worker_id)

    def list_all(self, category: Optional[str] = None) -> list[Service]:
        if category:
            return self.services.where(category=category)
        return self.services.query([])


class UserService:
    """Profiles of both roles. Document ids are auth uids."""

    def __init__(self, store: DocumentStore, storage: StorageClient, events: EventBus):
        self.users = TypedCollection(store, USERS_COLLECTION, UserProfile)
        self.workers = TypedCollection(store, WORKERS_COLLECTION, WorkerProfile)
        self.storage = storage
        self.events = events

    def _collection(self, user_type: UserType) -> TypedCollection:
        return self.workers if user_type == UserType.WORKER else self.users

    def user_type(self, uid: str) -> Optional[UserType]:
        if self.users.exists(uid):
            return UserType.USER
        if self.workers.exists(uid):
            return UserType.WORKER
        return None

    def get_user(self, uid: str) -> UserProfile:
        return self.users.get(uid)

    def get_worker(self, uid: str) -> WorkerProfile:
        return self.workers.get(uid)

    def get_profile(self, uid: str) -> UserProfile | WorkerProfile:
        user_type = self.user_type(uid)
        if user_type is None:
            raise NotFoundError(USERS_COLLECTION, uid)
        return self._collection(user_type).get(uid)

    def username_taken(self, username: str) -> bool:
        # Unindexed pre-check; a concurrent registration can still slip through.
        return bool(
            self.users.where(username=username) or self.workers.where(username=username)
        )

    def create_profile(
        self, user_type: UserType, profile: UserProfile | WorkerProfile
    ) -> None:
        self._collection(user_type).put(profile)

    def update_profile(
        self, uid: str, *, admin: bool = False, **fields
    ) -> UserProfile | WorkerProfile:
        user_type = self.user_type(uid)
        if user_type is None:
            raise NotFoundError(USERS_COLLECTION, uid)
        if not admin:
            allowed = PROFILE_UPDATE_FIELDS
        elif user_type == UserType.WORKER:
            allowed = ADMIN_WORKER_UPDATE_FIELDS
        else:
            allowed = ADMIN_PROFILE_UPDATE_FIELDS
        changes = _pick(fields, allowed)
        collection = self._collection(user_type)
        if changes:
            collection.update(uid, **changes)
            self.events.publish(PROFILES_CHANGED, {"uid": uid})
        return collection.get(uid)

    def upload_profile_picture(
        self, uid: str, filename: str, data: bytes, content_type: str
    ) -> str:
        user_type = self.user_type(uid)
        if user_type is None:
            raise NotFoundError(USERS_COLLECTION, uid)
        if not filename:
            raise ValidationError("A file name is required.", field="profilePicture")
        path = f"{PROFILE_PICTURES_PATH}/{uid}/{filename}"
        url = self.storage.upload_bytes(path, data, content_type)
        self._collection(user_type).update(uid, profile_picture=url)
        logger.info(f"Updated profile picture for {uid}")
        self.events.publish(PROFILES_CHANGED, {"uid": uid})
        return url

    def list_users(self) -> list[UserProfile]:
        return self.users.query([])

    def list_workers(self) -> list[WorkerProfile]:
        return self.workers.query([])
