import unittest
from datetime import date, datetime, timedelta, timezone

from marketplace.db import InMemoryDocumentStore
from marketplace.errors import (
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationError,
)
from marketplace.events import APPLICATIONS_CHANGED, REQUESTS_CHANGED, InMemoryEventBus
from marketplace.lifecycle import RequestLifecycle
from marketplace.services import ServiceService, TicketService
from shared.firebase_constants import (
    CONFIRMED_REQUESTS_COLLECTION,
    DENIED_REQUESTS_COLLECTION,
    REQUESTS_COLLECTION,
    TICKET_APPLICATIONS_COLLECTION,
    TICKETS_COLLECTION,
    WORKERS_COLLECTION,
    WORKERS_RATED_REQUESTS_COLLECTION,
)
from shared.types import RequestStatus, UserType

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _day(offset: int) -> str:
    return (date.today() + timedelta(days=offset)).isoformat()


class RequestLifecycleTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.events = InMemoryEventBus()
        self.lifecycle = RequestLifecycle(self.store, self.events, now=lambda: FIXED_NOW)
        self.tickets = TicketService(self.store, self.events)
        self.services = ServiceService(self.store, self.events)
        for worker_id, username in (("w1", "fixit"), ("w2", "handy")):
            self.store.set(
                WORKERS_COLLECTION,
                worker_id,
                {"username": username, "email": f"{worker_id}@example.com"},
            )

    def _ticket(self):
        return self.tickets.create(
            "u1",
            "alice",
            name="Leaky tap",
            category="Kitchen",
            description="Drips all night",
            start_date=_day(1),
            end_date=_day(3),
        )

    def _accepted_request(self):
        service = self.services.create(
            "w1",
            name="Plumbing",
            description="Pipes",
            category="Kitchen",
            start_time="09:00",
            end_time="17:00",
            cost=40,
        )
        application = self.lifecycle.submit_service_application(
            service.id,
            "u1",
            "alice",
            request_text="Kitchen sink",
            start_date=_day(2),
            end_date=_day(4),
        )
        return self.lifecycle.accept_service_application(application.id, "w1", "fixit")

    def test_accept_ticket_application_consumes_ticket(self):
        ticket = self._ticket()
        chosen = self.lifecycle.submit_ticket_application(
            ticket.id, "w1", request_text="I can come Monday", cost=30
        )
        self.lifecycle.submit_ticket_application(
            ticket.id, "w2", request_text="Tuesday works", cost=25
        )
        self.assertEqual(len(self.tickets.get(ticket.id).applications), 2)

        request = self.lifecycle.accept_ticket_application(chosen.id, "u1")

        requests = self.store.query(REQUESTS_COLLECTION)
        self.assertEqual(len(requests), 1)
        self.assertEqual(request.status, RequestStatus.ACCEPTED)
        self.assertEqual(request.worker_id, "w1")
        self.assertEqual(request.worker_name, "fixit")
        self.assertEqual(request.service_name, "Leaky tap")
        self.assertEqual(self.store.query(TICKET_APPLICATIONS_COLLECTION), [])
        self.assertIsNone(self.store.get(TICKETS_COLLECTION, ticket.id))
        self.assertIn(REQUESTS_CHANGED, [topic for topic, _ in self.events.published])

    def test_only_ticket_owner_can_accept(self):
        ticket = self._ticket()
        application = self.lifecycle.submit_ticket_application(
            ticket.id, "w1", request_text="Hi"
        )
        with self.assertRaises(PermissionDeniedError):
            self.lifecycle.accept_ticket_application(application.id, "someone-else")
        self.assertEqual(self.store.query(REQUESTS_COLLECTION), [])

    def test_deny_ticket_application_keeps_ticket(self):
        ticket = self._ticket()
        application = self.lifecycle.submit_ticket_application(
            ticket.id, "w1", request_text="Hi"
        )

        self.lifecycle.deny_ticket_application(application.id, "u1")

        self.assertIsNone(self.store.get(TICKET_APPLICATIONS_COLLECTION, application.id))
        self.assertEqual(self.tickets.get(ticket.id).applications, [])

    def test_tickets_with_applications_uses_unknown_for_missing_worker(self):
        ticket = self._ticket()
        self.lifecycle.submit_ticket_application(ticket.id, "w1", request_text="a")
        self.lifecycle.submit_ticket_application(ticket.id, "ghost", request_text="b")

        [entry] = self.lifecycle.tickets_with_applications("u1")

        self.assertEqual(entry.ticket.id, ticket.id)
        self.assertEqual(len(entry.applications), 2)
        self.assertEqual(entry.worker_names, {"w1": "fixit", "ghost": "Unknown"})

    def test_service_application_rejects_past_start(self):
        service = self.services.create(
            "w1",
            name="Gardening",
            description="Lawns",
            category="Garden",
            start_time="08:00",
            end_time="12:00",
            cost=20,
        )
        with self.assertRaises(ValidationError) as ctx:
            self.lifecycle.submit_service_application(
                service.id,
                "u1",
                "alice",
                request_text="Mow",
                start_date=_day(-1),
                end_date=_day(2),
            )
        self.assertEqual(ctx.exception.field, "startDate")

    def test_accept_service_application_keeps_service(self):
        request = self._accepted_request()

        self.assertEqual(request.status, RequestStatus.ACCEPTED)
        self.assertEqual(len(self.services.list_by_worker("w1")), 1)
        self.assertEqual(self.lifecycle.pending_service_applications("w1"), [])

    def test_deny_request_scenario(self):
        # W denies R123 with "Schedule conflict".
        self.store.set(
            REQUESTS_COLLECTION,
            "R123",
            {
                "serviceName": "Plumbing",
                "serviceId": "s1",
                "userId": "u1",
                "userName": "alice",
                "workerId": "w1",
                "workerName": "fixit",
                "requestText": "Sink",
                "startDate": _day(1),
                "endDate": _day(2),
                "status": "Accepted",
            },
        )

        denied = self.lifecycle.deny_request("R123", "w1", "Schedule conflict")

        self.assertEqual(denied.request_id, "R123")
        self.assertEqual(denied.denial_reason, "Schedule conflict")
        self.assertEqual(denied.denied_at, FIXED_NOW.isoformat())
        self.assertEqual(self.store.get(REQUESTS_COLLECTION, "R123")["status"], "denied")
        [(_, stored)] = self.store.query(DENIED_REQUESTS_COLLECTION)
        self.assertEqual(stored["requestId"], "R123")
        self.assertEqual(stored["denialReason"], "Schedule conflict")

    def test_deny_request_requires_reason(self):
        request = self._accepted_request()
        with self.assertRaises(ValidationError) as ctx:
            self.lifecycle.deny_request(request.id, "w1", "   ")
        self.assertEqual(ctx.exception.field, "denialReason")
        self.assertEqual(self.store.query(DENIED_REQUESTS_COLLECTION), [])

    def test_confirm_then_rate(self):
        request = self._accepted_request()

        marker = self.lifecycle.confirm_request(request.id, "w1")
        self.assertEqual(
            self.store.get(REQUESTS_COLLECTION, request.id)["status"], "confirmed"
        )
        self.assertEqual(len(self.lifecycle.confirmed_requests_for_user("u1")), 1)

        rated = self.lifecycle.rate_request(marker.id, "u1", 4, "Great job")

        self.assertEqual(rated.request_id, request.id)
        self.assertEqual(rated.request_status, "done")
        self.assertEqual(self.store.get(REQUESTS_COLLECTION, request.id)["status"], "rated")
        self.assertIsNone(self.store.get(CONFIRMED_REQUESTS_COLLECTION, marker.id))
        self.assertEqual(len(self.store.query(WORKERS_RATED_REQUESTS_COLLECTION)), 1)

    def test_rating_out_of_range(self):
        request = self._accepted_request()
        marker = self.lifecycle.confirm_request(request.id, "w1")
        for rating in (0, 6):
            with self.assertRaises(ValidationError):
                self.lifecycle.rate_request(marker.id, "u1", rating)
        self.assertEqual(self.store.query(WORKERS_RATED_REQUESTS_COLLECTION), [])

    def test_cannot_confirm_denied_request(self):
        request = self._accepted_request()
        self.lifecycle.deny_request(request.id, "w1", "Busy")
        published = len(self.events.published)

        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.confirm_request(request.id, "w1")

        self.assertEqual(self.store.query(CONFIRMED_REQUESTS_COLLECTION), [])
        self.assertEqual(len(self.events.published), published)

    def test_cannot_confirm_twice(self):
        request = self._accepted_request()
        self.lifecycle.confirm_request(request.id, "w1")
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.confirm_request(request.id, "w1")
        self.assertEqual(len(self.store.query(CONFIRMED_REQUESTS_COLLECTION)), 1)

    def test_other_worker_cannot_deny(self):
        request = self._accepted_request()
        with self.assertRaises(PermissionDeniedError):
            self.lifecycle.deny_request(request.id, "w2", "Not mine")

    def test_recompute_worker_rating(self):
        for rating in (3, 4, 5):
            request = self._accepted_request()
            marker = self.lifecycle.confirm_request(request.id, "w1")
            self.lifecycle.rate_request(marker.id, "u1", rating)

        summary = self.lifecycle.recompute_worker_rating("w1")

        self.assertEqual(summary.rating, 4.0)
        self.assertEqual(summary.requests, 3)
        worker = self.store.get(WORKERS_COLLECTION, "w1")
        self.assertEqual(worker["rating"], 4.0)
        self.assertEqual(worker["requests"], 3)

    def test_recompute_without_ratings(self):
        summary = self.lifecycle.recompute_worker_rating("w2")
        self.assertIsNone(summary.rating)
        self.assertEqual(summary.requests, 0)
        self.assertIsNone(self.store.get(WORKERS_COLLECTION, "w2")["rating"])

    def test_requests_overview_groups_by_status(self):
        accepted = self._accepted_request()
        confirmed = self._accepted_request()
        denied = self._accepted_request()
        self.lifecycle.confirm_request(confirmed.id, "w1")
        self.lifecycle.deny_request(denied.id, "w1", "Busy")

        overview = self.lifecycle.requests_overview("w1", UserType.WORKER)

        self.assertEqual([r.id for r in overview.accepted], [accepted.id])
        self.assertEqual([r.id for r in overview.confirmed], [confirmed.id])
        self.assertEqual([r.id for r in overview.history], [denied.id])
        self.assertEqual(
            len(self.lifecycle.requests_overview("u1", UserType.USER).accepted), 1
        )

    def test_delete_denied_request_only_by_owner(self):
        request = self._accepted_request()
        denied = self.lifecycle.deny_request(request.id, "w1", "Busy")
        with self.assertRaises(PermissionDeniedError):
            self.lifecycle.delete_denied_request(denied.id, "u2")
        self.lifecycle.delete_denied_request(denied.id, "u1")
        self.assertEqual(self.lifecycle.denied_requests_for_user("u1"), [])

    def test_update_and_delete_request(self):
        request = self._accepted_request()
        updated = self.lifecycle.update_request_text(request.id, "w1", "Bring tools")
        self.assertEqual(updated.request_text, "Bring tools")

        self.lifecycle.delete_request(request.id, "w1")
        self.assertIsNone(self.store.get(REQUESTS_COLLECTION, request.id))

    def test_calendar_groups_accepted_by_start_date(self):
        request = self._accepted_request()
        confirmed = self._accepted_request()
        self.lifecycle.confirm_request(confirmed.id, "w1")
        start = date.fromisoformat(request.start_date)

        days = self.lifecycle.calendar("u1", UserType.USER, start.year, start.month)

        self.assertEqual(list(days), [request.start_date])
        self.assertEqual([r.id for r in days[request.start_date]], [request.id])

    def test_delete_confirmed_request_removes_marker(self):
        request = self._accepted_request()
        self.lifecycle.confirm_request(request.id, "w1")

        self.lifecycle.delete_request(request.id, "w1")

        self.assertEqual(self.store.query(CONFIRMED_REQUESTS_COLLECTION), [])
        self.assertEqual(self.lifecycle.confirmed_requests_for_user("u1"), [])

    def test_calendar_skips_unparseable_start_date(self):
        request = self._accepted_request()
        self.store.set(
            REQUESTS_COLLECTION,
            "R-soon",
            {
                "serviceName": "Plumbing",
                "serviceId": "s1",
                "userId": "u1",
                "workerId": "w1",
                "requestText": "Whenever",
                "startDate": "soon",
                "endDate": "later",
                "status": "Accepted",
            },
        )
        start = date.fromisoformat(request.start_date)

        days = self.lifecycle.calendar("u1", UserType.USER, start.year, start.month)

        ids = [r.id for day in days.values() for r in day]
        self.assertEqual(ids, [request.id])

    def test_recompute_ignores_ratings_without_value(self):
        self.store.add(
            WORKERS_RATED_REQUESTS_COLLECTION,
            {
                "requestId": "old",
                "userId": "u1",
                "workerId": "w1",
                "timestamp": "2024-01-01T00:00:00+00:00",
                "requestStatus": "done",
            },
        )
        request = self._accepted_request()
        marker = self.lifecycle.confirm_request(request.id, "w1")
        self.lifecycle.rate_request(marker.id, "u1", 5)

        summary = self.lifecycle.recompute_worker_rating("w1")

        self.assertEqual(summary.rating, 5.0)
        self.assertEqual(summary.requests, 1)

    def test_application_events(self):
        self._accepted_request()
        topics = [topic for topic, _ in self.events.published]
        self.assertEqual(topics.count(APPLICATIONS_CHANGED), 2)


if __name__ == "__main__":
    unittest.main()
