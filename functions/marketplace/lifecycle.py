"""
Request lifecycle: from an application to a rated (or denied) request.

    application  Pending ──accept──> Request Accepted ──worker accepts──> confirmed ──user rates──> rated
                         └─deny──> (deleted)            └─worker denies──> denied

Each transition is a short sequence of independent document writes. The store
offers no cross-collection transaction, so a failure part way through leaves
the earlier writes in place; failures are logged and re-raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from marketplace.db import DocumentStore
from marketplace.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from marketplace.events import (
    APPLICATIONS_CHANGED,
    REQUESTS_CHANGED,
    TICKETS_CHANGED,
    EventBus,
)
from marketplace.records import TypedCollection
from marketplace.services import parse_date, validate_cost, validate_date_range
from shared.constants import MAX_RATING, MIN_RATING, UNKNOWN_WORKER_NAME
from shared.firebase_constants import (
    CONFIRMED_REQUESTS_COLLECTION,
    DENIED_REQUESTS_COLLECTION,
    REQUESTS_COLLECTION,
    SERVICE_APPLICATIONS_COLLECTION,
    SERVICES_COLLECTION,
    TICKET_APPLICATIONS_COLLECTION,
    TICKETS_COLLECTION,
    WORKERS_COLLECTION,
    WORKERS_RATED_REQUESTS_COLLECTION,
)
from shared.types import (
    ApplicationStatus,
    ConfirmedRequest,
    DeniedRequest,
    RatingStatus,
    Request,
    RequestStatus,
    Service,
    ServiceApplication,
    Ticket,
    TicketApplication,
    UserType,
    WorkerProfile,
    WorkersRatedRequest,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.ACCEPTED: {RequestStatus.CONFIRMED, RequestStatus.DENIED},
    RequestStatus.CONFIRMED: {RequestStatus.RATED},
    RequestStatus.DENIED: set(),
    RequestStatus.RATED: set(),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TicketWithApplications:
    ticket: Ticket
    applications: list[TicketApplication]
    # worker id -> username, "Unknown" when the worker profile is gone
    worker_names: dict[str, str] = field(default_factory=dict)


@dataclass
class RequestsOverview:
    accepted: list[Request] = field(default_factory=list)
    confirmed: list[Request] = field(default_factory=list)
    history: list[Request] = field(default_factory=list)


@dataclass
class RatingSummary:
    worker_id: str
    rating: Optional[float]
    requests: int


class RequestLifecycle:
    def __init__(
        self,
        store: DocumentStore,
        events: EventBus,
        now: Callable[[], datetime] = _utc_now,
    ):
        self.tickets = TypedCollection(store, TICKETS_COLLECTION, Ticket)
        self.services = TypedCollection(store, SERVICES_COLLECTION, Service)
        self.workers = TypedCollection(store, WORKERS_COLLECTION, WorkerProfile)
        self.ticket_applications = TypedCollection(
            store, TICKET_APPLICATIONS_COLLECTION, TicketApplication
        )
        self.service_applications = TypedCollection(
            store, SERVICE_APPLICATIONS_COLLECTION, ServiceApplication
        )
        self.requests = TypedCollection(store, REQUESTS_COLLECTION, Request)
        self.confirmed_requests = TypedCollection(
            store, CONFIRMED_REQUESTS_COLLECTION, ConfirmedRequest
        )
        self.denied_requests = TypedCollection(
            store, DENIED_REQUESTS_COLLECTION, DeniedRequest
        )
        self.rated_requests = TypedCollection(
            store, WORKERS_RATED_REQUESTS_COLLECTION, WorkersRatedRequest
        )
        self.events = events
        self.now = now

    # Applications -----------------------------------------------------------

    def submit_ticket_application(
        self,
        ticket_id: str,
        worker_id: str,
        *,
        request_text: str,
        cost: Optional[float] = None,
        start_time: str = "",
        end_time: str = "",
    ) -> TicketApplication:
        """A worker proposes to take on a user's ticket."""
        ticket = self.tickets.get(ticket_id)
        if ticket.user_id == worker_id:
            raise PermissionDeniedError("You cannot apply to your own ticket.")
        validate_cost(cost)
        application = self.ticket_applications.add(
            TicketApplication(
                ticket_id=ticket.id,
                ticket_name=ticket.name,
                ticket_desc=ticket.description,
                user_id=ticket.user_id,
                user_name=ticket.user_name,
                worker_id=worker_id,
                request_text=request_text,
                cost=cost,
                category=ticket.category,
                start_date=ticket.start_date,
                end_date=ticket.end_date,
                start_time=start_time,
                end_time=end_time,
            )
        )
        self.tickets.update(
            ticket.id, applications=[*ticket.applications, application.id]
        )
        logger.info(f"Worker {worker_id} applied to ticket {ticket_id}")
        self._publish_application(application.id, ticket.user_id, worker_id)
        return application

    def submit_service_application(
        self,
        service_id: str,
        user_id: str,
        user_name: str,
        *,
        request_text: str,
        start_date: str,
        end_date: str,
    ) -> ServiceApplication:
        """A user asks a worker for one of the worker's services."""
        service = self.services.get(service_id)
        if service.user_id == user_id:
            raise PermissionDeniedError("You cannot apply to your own service.")
        validate_date_range(start_date, end_date)
        application = self.service_applications.add(
            ServiceApplication(
                service_id=service.id,
                service_name=service.name,
                user_id=user_id,
                user_name=user_name or "",
                worker_id=service.user_id,
                request_text=request_text,
                category=service.category,
                start_date=start_date,
                end_date=end_date,
                start_time=service.start_time,
                end_time=service.end_time,
            )
        )
        logger.info(f"User {user_id} applied to service {service_id}")
        self._publish_application(application.id, user_id, service.user_id)
        return application

    def tickets_with_applications(self, user_id: str) -> list[TicketWithApplications]:
        result = []
        for ticket in self.tickets.where(user_id=user_id):
            applications = self.ticket_applications.where(ticket_id=ticket.id)
            names = {
                a.worker_id: self._worker_name(a.worker_id) for a in applications
            }
            result.append(TicketWithApplications(ticket, applications, names))
        return result

    def pending_service_applications(self, worker_id: str) -> list[ServiceApplication]:
        return self.service_applications.where(
            worker_id=worker_id, status=ApplicationStatus.PENDING
        )

    def accept_ticket_application(self, application_id: str, user_id: str) -> Request:
        """
        The ticket owner picks a worker. The ticket is consumed: the request is
        created, then every application for the ticket and the ticket itself
        are deleted.
        """
        application = self._pending(self.ticket_applications, application_id)
        ticket = self.tickets.get(application.ticket_id)
        if ticket.user_id != user_id:
            raise PermissionDeniedError("Only the ticket owner can accept applications.")

        try:
            request = self.requests.add(
                Request(
                    service_name=application.ticket_name,
                    service_id=ticket.id,
                    category=application.category or ticket.category,
                    user_id=user_id,
                    user_name=application.user_name,
                    worker_id=application.worker_id,
                    worker_name=self._worker_name(application.worker_id),
                    request_text=application.request_text,
                    start_date=application.start_date,
                    end_date=application.end_date,
                    start_time=application.start_time,
                    end_time=application.end_time,
                )
            )
            for sibling in self.ticket_applications.where(ticket_id=ticket.id):
                self.ticket_applications.delete(sibling.id)
            self.tickets.delete(ticket.id)
        except Exception:
            logger.exception(f"Error accepting ticket application {application_id}")
            raise

        logger.info(f"Ticket {ticket.id} accepted as request {request.id}")
        self._publish_request(request)
        self._publish_application(application_id, user_id, application.worker_id)
        self.events.publish(TICKETS_CHANGED, {"ticketId": ticket.id, "userId": user_id})
        return request

    def deny_ticket_application(self, application_id: str, user_id: str) -> None:
        application = self._pending(self.ticket_applications, application_id)
        if application.user_id != user_id:
            raise PermissionDeniedError("Only the ticket owner can deny applications.")
        self.ticket_applications.delete(application_id)
        ticket = self.tickets.find(application.ticket_id)
        if ticket and application_id in ticket.applications:
            self.tickets.update(
                ticket.id,
                applications=[a for a in ticket.applications if a != application_id],
            )
        logger.info(f"Ticket application {application_id} denied")
        self._publish_application(application_id, user_id, application.worker_id)

    def accept_service_application(
        self, application_id: str, worker_id: str, worker_name: str
    ) -> Request:
        """The worker takes the job. The service stays listed."""
        application = self._pending(self.service_applications, application_id)
        if application.worker_id != worker_id:
            raise PermissionDeniedError(
                "Only the service owner can accept applications."
            )
        try:
            request = self.requests.add(
                Request(
                    service_name=application.service_name,
                    service_id=application.service_id,
                    category=application.category,
                    user_id=application.user_id,
                    user_name=application.user_name,
                    worker_id=worker_id,
                    worker_name=worker_name or self._worker_name(worker_id),
                    request_text=application.request_text,
                    start_date=application.start_date,
                    end_date=application.end_date,
                    start_time=application.start_time,
                    end_time=application.end_time,
                )
            )
            self.service_applications.delete(application_id)
        except Exception:
            logger.exception(f"Error accepting service application {application_id}")
            raise

        logger.info(f"Service application {application_id} became request {request.id}")
        self._publish_request(request)
        self._publish_application(application_id, application.user_id, worker_id)
        return request

    def deny_service_application(self, application_id: str, worker_id: str) -> None:
        application = self._pending(self.service_applications, application_id)
        if application.worker_id != worker_id:
            raise PermissionDeniedError("Only the service owner can deny applications.")
        self.service_applications.delete(application_id)
        logger.info(f"Service application {application_id} denied")
        self._publish_application(application_id, application.user_id, worker_id)

    # Requests ---------------------------------------------------------------

    def requests_overview(self, uid: str, user_type: UserType) -> RequestsOverview:
        if user_type == UserType.WORKER:
            requests = self.requests.where(worker_id=uid)
        else:
            requests = self.requests.where(user_id=uid)
        overview = RequestsOverview()
        for request in requests:
            if request.status == RequestStatus.ACCEPTED:
                overview.accepted.append(request)
            elif request.status == RequestStatus.CONFIRMED:
                overview.confirmed.append(request)
            else:
                overview.history.append(request)
        return overview

    def confirm_request(self, request_id: str, worker_id: str) -> ConfirmedRequest:
        """
        The worker accepts the engagement. The request moves to `confirmed` and
        a pending-confirmation marker is created for the user to rate.
        """
        request = self._owned_by_worker(request_id, worker_id)
        self._check_transition(request, RequestStatus.CONFIRMED)
        try:
            self.requests.update(request_id, status=RequestStatus.CONFIRMED)
            marker = self.confirmed_requests.add(
                ConfirmedRequest(
                    request_id=request_id,
                    request_name=request.service_name,
                    request_worker=request.worker_name,
                    user_id=request.user_id,
                    user_name=request.user_name,
                    worker_id=worker_id,
                    created_at=self.now().isoformat(),
                )
            )
        except Exception:
            logger.exception(f"Error accepting request {request_id}")
            raise

        logger.info(f"Request {request_id} confirmed by worker {worker_id}")
        request.status = RequestStatus.CONFIRMED
        self._publish_request(request)
        return marker

    def deny_request(self, request_id: str, worker_id: str, reason: str) -> DeniedRequest:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Denial reason is required.", field="denialReason")
        request = self._owned_by_worker(request_id, worker_id)
        self._check_transition(request, RequestStatus.DENIED)
        try:
            denied = self.denied_requests.add(
                DeniedRequest(
                    request_id=request_id,
                    service_name=request.service_name,
                    user_name=request.user_name,
                    request_text=request.request_text,
                    start_date=request.start_date,
                    end_date=request.end_date,
                    user_id=request.user_id,
                    worker_name=request.worker_name,
                    denial_reason=reason,
                    denied_at=self.now().isoformat(),
                )
            )
            self.requests.update(request_id, status=RequestStatus.DENIED)
        except Exception:
            logger.exception(f"Error denying request {request_id}")
            raise

        logger.info(f"Request {request_id} denied by worker {worker_id}")
        request.status = RequestStatus.DENIED
        self._publish_request(request)
        return denied

    def rate_request(
        self,
        confirmed_request_id: str,
        user_id: str,
        rating: int,
        description: str = "",
    ) -> WorkersRatedRequest:
        """
        The user rates a confirmed request. The rating is recorded, the request
        becomes `rated` and the pending-confirmation marker is removed.
        """
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise ValidationError("Rating must be a whole number.", field="rating")
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(
                f"Rating must be between {MIN_RATING} and {MAX_RATING}.",
                field="rating",
            )
        marker = self.confirmed_requests.get(confirmed_request_id)
        if marker.user_id != user_id:
            raise PermissionDeniedError("Only the requester can rate this request.")
        request = self.requests.get(marker.request_id)
        self._check_transition(request, RequestStatus.RATED)
        try:
            rated = self.rated_requests.add(
                WorkersRatedRequest(
                    request_id=request.id,
                    user_id=user_id,
                    user_name=marker.user_name,
                    worker_id=marker.worker_id,
                    description=description or "",
                    rating=rating,
                    request_status=RatingStatus.DONE,
                    timestamp=self.now().isoformat(),
                )
            )
            self.requests.update(request.id, status=RequestStatus.RATED)
            self.confirmed_requests.delete(confirmed_request_id)
        except Exception:
            logger.exception(f"Error submitting rating for {confirmed_request_id}")
            raise

        logger.info(f"Request {request.id} rated {rating} by user {user_id}")
        request.status = RequestStatus.RATED
        self._publish_request(request)
        return rated

    def recompute_worker_rating(self, worker_id: str) -> RatingSummary:
        """Average of all `done` ratings for the worker, written back to the profile."""
        rated = self.rated_requests.where(
            worker_id=worker_id, request_status=RatingStatus.DONE
        )
        # Older rating documents may carry no rating.
        ratings = [r.rating for r in rated if r.rating]
        average = sum(ratings) / len(ratings) if ratings else None
        try:
            self.workers.update(worker_id, rating=average, requests=len(ratings))
        except NotFoundError:
            logger.error(f"Error updating worker profile {worker_id}: not found")
            raise
        return RatingSummary(worker_id=worker_id, rating=average, requests=len(ratings))

    def confirmed_requests_for_user(self, user_id: str) -> list[ConfirmedRequest]:
        return self.confirmed_requests.where(user_id=user_id)

    def denied_requests_for_user(self, user_id: str) -> list[DeniedRequest]:
        return self.denied_requests.where(user_id=user_id)

    def delete_denied_request(self, denied_request_id: str, user_id: str) -> None:
        denied = self.denied_requests.get(denied_request_id)
        if denied.user_id != user_id:
            raise PermissionDeniedError("You can only delete your own denied requests.")
        self.denied_requests.delete(denied_request_id)
        logger.info(f"Deleted denied request {denied_request_id}")

    def update_request_text(
        self, request_id: str, worker_id: str, request_text: str
    ) -> Request:
        self._owned_by_worker(request_id, worker_id)
        self.requests.update(request_id, request_text=request_text)
        request = self.requests.get(request_id)
        self._publish_request(request)
        return request

    def delete_request(self, request_id: str, worker_id: str) -> None:
        """Deletes the request along with any marker still waiting for a rating."""
        request = self._owned_by_worker(request_id, worker_id)
        for marker in self.confirmed_requests.where(request_id=request_id):
            self.confirmed_requests.delete(marker.id)
        self.requests.delete(request_id)
        logger.info(f"Deleted request {request_id}")
        self._publish_request(request)

    def calendar(
        self, uid: str, user_type: UserType, year: int, month: int
    ) -> dict[str, list[Request]]:
        """Accepted requests in the given month, keyed by start date."""
        if user_type == UserType.WORKER:
            requests = self.requests.where(worker_id=uid, status=RequestStatus.ACCEPTED)
        else:
            requests = self.requests.where(user_id=uid, status=RequestStatus.ACCEPTED)
        by_date: dict[str, list[Request]] = {}
        for request in requests:
            try:
                start = parse_date(request.start_date, "startDate")
            except ValidationError:
                continue
            if start.year == year and start.month == month:
                by_date.setdefault(start.isoformat(), []).append(request)
        return dict(sorted(by_date.items()))

    # Helpers ----------------------------------------------------------------

    def _pending(self, collection: TypedCollection, application_id: str):
        application = collection.get(application_id)
        if application.status != ApplicationStatus.PENDING:
            raise ValidationError(
                f"Application {application_id} is no longer pending."
            )
        return application

    def _owned_by_worker(self, request_id: str, worker_id: str) -> Request:
        request = self.requests.get(request_id)
        if request.worker_id != worker_id:
            raise PermissionDeniedError("This request belongs to another worker.")
        return request

    @staticmethod
    def _check_transition(request: Request, target: RequestStatus) -> None:
        if target not in ALLOWED_TRANSITIONS.get(request.status, set()):
            raise InvalidTransitionError(request.id, request.status, target)

    def _worker_name(self, worker_id: str) -> str:
        worker = self.workers.find(worker_id)
        return (worker.username if worker else None) or UNKNOWN_WORKER_NAME

    def _publish_request(self, request: Request) -> None:
        self.events.publish(
            REQUESTS_CHANGED,
            {
                "requestId": request.id,
                "userId": request.user_id,
                "workerId": request.worker_id,
                "status": request.status.value,
            },
        )

    def _publish_application(
        self, application_id: str, user_id: str, worker_id: str
    ) -> None:
        self.events.publish(
            APPLICATIONS_CHANGED,
            {"applicationId": application_id, "userId": user_id, "workerId": worker_id},
        )
