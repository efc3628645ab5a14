"""
HTTP routes for tickets, services, applications and requests.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from marketplace.auth import Identity
from marketplace.context import MarketplaceContext
from marketplace.dependencies import get_context, get_identity
from marketplace.errors import NotFoundError, PermissionDeniedError
from marketplace.schemas import (
    CalendarOut,
    ConfirmedRequestOut,
    DeniedRequestOut,
    DenyRequestPayload,
    RatedRequestOut,
    RatingPayload,
    RequestOut,
    RequestsOverviewOut,
    RequestTextPayload,
    ServiceApplicationOut,
    ServiceApplicationPayload,
    ServiceOut,
    ServicePayload,
    ServiceUpdatePayload,
    StatusResponse,
    TicketApplicationOut,
    TicketApplicationPayload,
    TicketOut,
    TicketPayload,
    TicketUpdatePayload,
    TicketWithApplicationsOut,
)
from shared.firebase_constants import USERS_COLLECTION
from shared.types import UserType

router = APIRouter()


def _role(context: MarketplaceContext, identity: Identity) -> UserType:
    user_type = context.users.user_type(identity.uid)
    if user_type is None:
        raise NotFoundError(USERS_COLLECTION, identity.uid)
    return user_type


def _require_role(
    context: MarketplaceContext, identity: Identity, user_type: UserType
) -> None:
    if _role(context, identity) != user_type:
        raise PermissionDeniedError(f"Only a {user_type.value} can do this.")


def _display_name(context: MarketplaceContext, identity: Identity) -> str:
    if identity.display_name:
        return identity.display_name
    return context.users.get_profile(identity.uid).username


def _actor(identity: Identity) -> Optional[str]:
    # Admins may edit any ticket or service.
    return None if identity.admin else identity.uid


# Tickets


@router.post("/tickets", response_model=TicketOut, status_code=201)
def create_ticket(
    payload: TicketPayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    _require_role(context, identity, UserType.USER)
    ticket = context.tickets.create(
        identity.uid, _display_name(context, identity), **payload.model_dump()
    )
    return TicketOut.model_validate(ticket)


@router.get("/tickets", response_model=list[TicketOut])
def list_tickets(
    category: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    tickets = context.tickets.list_all(category, date_from, date_to)
    return [TicketOut.model_validate(t) for t in tickets]


@router.get("/tickets/mine", response_model=list[TicketOut])
def list_my_tickets(
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    return [
        TicketOut.model_validate(t) for t in context.tickets.list_by_owner(identity.uid)
    ]


@router.get(
    "/tickets/mine/applications", response_model=list[TicketWithApplicationsOut]
)
def list_my_ticket_applications(
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    entries = context.lifecycle.tickets_with_applications(identity.uid)
    return [TicketWithApplicationsOut.model_validate(e) for e in entries]


@router.get("/tickets/{ticket_id}", response_model=TicketOut)
def get_ticket(
    ticket_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    return TicketOut.model_validate(context.tickets.get(ticket_id))


@router.patch("/tickets/{ticket_id}", response_model=TicketOut)
def update_ticket(
    ticket_id: str,
    payload: TicketUpdatePayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    ticket = context.tickets.update(
        ticket_id, _actor(identity), **payload.model_dump(exclude_unset=True)
    )
    return TicketOut.model_validate(ticket)


@router.delete("/tickets/{ticket_id}", response_model=StatusResponse)
def delete_ticket(
    ticket_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    context.tickets.delete(ticket_id, _actor(identity))
    return StatusResponse()


@router.post(
    "/tickets/{ticket_id}/applications",
    response_model=TicketApplicationOut,
    status_code=201,
)
def apply_to_ticket(
    ticket_id: str,
    payload: TicketApplicationPayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    _require_role(context, identity, UserType.WORKER)
    application = context.lifecycle.submit_ticket_application(
        ticket_id, identity.uid, **payload.model_dump()
    )
    return TicketApplicationOut.model_validate(application)


# Services


@router.post("/services", response_model=ServiceOut, status_code=201)
def create_service(
    payload: ServicePayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    _require_role(context, identity, UserType.WORKER)
    service = context.services.create(identity.uid, **payload.model_dump())
    return ServiceOut.model_validate(service)


@router.get("/services", response_model=list[ServiceOut])
def list_services(
    category: Optional[str] = Query(None),
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    return [ServiceOut.model_validate(s) for s in context.services.list_all(category)]


@router.get("/services/mine", response_model=list[ServiceOut])
def list_my_services(
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    services = context.services.list_by_worker(identity.uid)
    return [ServiceOut.model_validate(s) for s in services]


@router.get("/services/{service_id}", response_model=ServiceOut)
def get_service(
    service_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    return ServiceOut.model_validate(context.services.get(service_id))


@router.patch("/services/{service_id}", response_model=ServiceOut)
def update_service(
    service_id: str,
    payload: ServiceUpdatePayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    service = context.services.update(
        service_id, _actor(identity), **payload.model_dump(exclude_unset=True)
    )
    return ServiceOut.model_validate(service)


@router.delete("/services/{service_id}", response_model=StatusResponse)
def delete_service(
    service_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    context.services.delete(service_id, _actor(identity))
    return StatusResponse()


@router.post(
    "/services/{service_id}/applications",
    response_model=ServiceApplicationOut,
    status_code=201,
)
def apply_to_service(
    service_id: str,
    payload: ServiceApplicationPayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    _require_role(context, identity, UserType.USER)
    application = context.lifecycle.submit_service_application(
        service_id,
        identity.uid,
        _display_name(context, identity),
        **payload.model_dump(),
    )
    return ServiceApplicationOut.model_validate(application)


# Application decisions


@router.get(
    "/service-applications/pending", response_model=list[ServiceApplicationOut]
)
def list_pending_service_applications(
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    applications = context.lifecycle.pending_service_applications(identity.uid)
    return [ServiceApplicationOut.model_validate(a) for a in applications]


@router.post("/ticket-applications/{application_id}/accept", response_model=RequestOut)
def accept_ticket_application(
    application_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    request = context.lifecycle.accept_ticket_application(application_id, identity.uid)
    return RequestOut.model_validate(request)


@router.post(
    "/ticket-applications/{application_id}/deny", response_model=StatusResponse
)
def deny_ticket_application(
    application_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    context.lifecycle.deny_ticket_application(application_id, identity.uid)
    return StatusResponse()


@router.post(
    "/service-applications/{application_id}/accept", response_model=RequestOut
)
def accept_service_application(
    application_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    request = context.lifecycle.accept_service_application(
        application_id, identity.uid, _display_name(context, identity)
    )
    return RequestOut.model_validate(request)


@router.post(
    "/service-applications/{application_id}/deny", response_model=StatusResponse
)
def deny_service_application(
    application_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    context.lifecycle.deny_service_application(application_id, identity.uid)
    return StatusResponse()


# Requests


@router.get("/requests", response_model=RequestsOverviewOut)
def list_requests(
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    overview = context.lifecycle.requests_overview(
        identity.uid, _role(context, identity)
    )
    return RequestsOverviewOut.model_validate(overview)


@router.patch("/requests/{request_id}", response_model=RequestOut)
def update_request_text(
    request_id: str,
    payload: RequestTextPayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    request = context.lifecycle.update_request_text(
        request_id, identity.uid, payload.request_text
    )
    return RequestOut.model_validate(request)


@router.delete("/requests/{request_id}", response_model=StatusResponse)
def delete_request(
    request_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    context.lifecycle.delete_request(request_id, identity.uid)
    return StatusResponse()


@router.post("/requests/{request_id}/confirm", response_model=ConfirmedRequestOut)
def confirm_request(
    request_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    marker = context.lifecycle.confirm_request(request_id, identity.uid)
    return ConfirmedRequestOut.model_validate(marker)


@router.post("/requests/{request_id}/deny", response_model=DeniedRequestOut)
def deny_request(
    request_id: str,
    payload: DenyRequestPayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    denied = context.lifecycle.deny_request(
        request_id, identity.uid, payload.denial_reason
    )
    return DeniedRequestOut.model_validate(denied)


@router.get("/confirmed-requests", response_model=list[ConfirmedRequestOut])
def list_confirmed_requests(
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    markers = context.lifecycle.confirmed_requests_for_user(identity.uid)
    return [ConfirmedRequestOut.model_validate(m) for m in markers]


@router.post(
    "/confirmed-requests/{confirmed_request_id}/rating",
    response_model=RatedRequestOut,
    status_code=201,
)
def rate_request(
    confirmed_request_id: str,
    payload: RatingPayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    rated = context.lifecycle.rate_request(
        confirmed_request_id, identity.uid, payload.rating, payload.description
    )
    return RatedRequestOut.model_validate(rated)


@router.get("/denied-requests", response_model=list[DeniedRequestOut])
def list_denied_requests(
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    denied = context.lifecycle.denied_requests_for_user(identity.uid)
    return [DeniedRequestOut.model_validate(d) for d in denied]


@router.delete("/denied-requests/{denied_request_id}", response_model=StatusResponse)
def delete_denied_request(
    denied_request_id: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    context.lifecycle.delete_denied_request(denied_request_id, identity.uid)
    return StatusResponse()


@router.get("/calendar", response_model=CalendarOut)
def calendar(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    today = date.today()
    year = year or today.year
    month = month or today.month
    days = context.lifecycle.calendar(
        identity.uid, _role(context, identity), year, month
    )
    return CalendarOut(
        year=year,
        month=month,
        days={
            day: [RequestOut.model_validate(r) for r in requests]
            for day, requests in days.items()
        },
    )
