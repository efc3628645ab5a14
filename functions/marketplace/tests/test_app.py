import unittest
from datetime import date, timedelta

from fastapi.testclient import TestClient

from marketplace.app import create_app
from marketplace.context import MarketplaceContext
from shared.firebase_constants import WORKERS_COLLECTION


def _day(offset: int) -> str:
    return (date.today() + timedelta(days=offset)).isoformat()


class MarketplaceApiTests(unittest.TestCase):
    def setUp(self):
        self.context = MarketplaceContext.in_memory()
        self.client = TestClient(create_app(self.context))

    def _register_and_login(self, user_type, username):
        email = f"{username}@example.com"
        response = self.client.post(
            "/api/auth/register",
            json={
                "user_type": user_type,
                "username": username,
                "name": username.title(),
                "surname": "Tester",
                "email": email,
                "password": "secret1",
                "confirm_password": "secret1",
            },
        )
        self.assertEqual(response.status_code, 201, response.text)
        login = self.client.post(
            "/api/auth/login", json={"email": email, "password": "secret1"}
        )
        self.assertEqual(login.status_code, 200, login.text)
        payload = login.json()
        return payload["uid"], {"Authorization": f"Bearer {payload['id_token']}"}

    def test_requires_bearer_token(self):
        response = self.client.get("/api/tickets")
        self.assertEqual(response.status_code, 401)

        response = self.client.get(
            "/api/tickets", headers={"Authorization": "Bearer nope"}
        )
        self.assertEqual(response.status_code, 401)

    def test_register_duplicate_username(self):
        self._register_and_login("worker", "fixit")
        response = self.client.post(
            "/api/auth/register",
            json={
                "user_type": "user",
                "username": "fixit",
                "name": "Other",
                "surname": "Person",
                "email": "other@example.com",
                "password": "secret1",
                "confirm_password": "secret1",
            },
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["field"], "username")

    def test_login_wrong_password(self):
        self._register_and_login("user", "alice")
        response = self.client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "wrong"},
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(
            response.json()["detail"], "Incorrect password. Please try again."
        )

    def test_ticket_to_rating_flow(self):
        user_id, user = self._register_and_login("user", "alice")
        worker_id, worker = self._register_and_login("worker", "fixit")

        ticket = self.client.post(
            "/api/tickets",
            headers=user,
            json={
                "name": "Leaky tap",
                "category": "Kitchen",
                "description": "Drips",
                "start_date": _day(1),
                "end_date": _day(3),
            },
        )
        self.assertEqual(ticket.status_code, 201, ticket.text)
        ticket_id = ticket.json()["id"]
        self.assertEqual(ticket.json()["user_name"], "alice")

        application = self.client.post(
            f"/api/tickets/{ticket_id}/applications",
            headers=worker,
            json={"request_text": "Monday morning", "cost": 30},
        )
        self.assertEqual(application.status_code, 201, application.text)

        mine = self.client.get("/api/tickets/mine/applications", headers=user).json()
        self.assertEqual(mine[0]["worker_names"], {worker_id: "fixit"})

        accepted = self.client.post(
            f"/api/ticket-applications/{application.json()['id']}/accept",
            headers=user,
        )
        self.assertEqual(accepted.status_code, 200, accepted.text)
        request_id = accepted.json()["id"]
        self.assertEqual(accepted.json()["status"], "Accepted")
        self.assertEqual(
            self.client.get(f"/api/tickets/{ticket_id}", headers=user).status_code,
            404,
        )

        overview = self.client.get("/api/requests", headers=worker).json()
        self.assertEqual([r["id"] for r in overview["accepted"]], [request_id])

        confirmed = self.client.post(
            f"/api/requests/{request_id}/confirm", headers=worker
        )
        self.assertEqual(confirmed.status_code, 200, confirmed.text)

        again = self.client.post(f"/api/requests/{request_id}/confirm", headers=worker)
        self.assertEqual(again.status_code, 409)

        markers = self.client.get("/api/confirmed-requests", headers=user).json()
        self.assertEqual(len(markers), 1)

        rated = self.client.post(
            f"/api/confirmed-requests/{markers[0]['id']}/rating",
            headers=user,
            json={"rating": 5, "description": "Great"},
        )
        self.assertEqual(rated.status_code, 201, rated.text)
        self.assertEqual(rated.json()["request_status"], "done")

        profile = self.client.get(f"/api/workers/{worker_id}", headers=user).json()
        self.assertEqual(profile["rating"], 5.0)
        self.assertEqual(profile["requests"], 1)

    def test_deny_request_requires_reason(self):
        user_id, user = self._register_and_login("user", "alice")
        worker_id, worker = self._register_and_login("worker", "fixit")
        service = self.client.post(
            "/api/services",
            headers=worker,
            json={
                "name": "Plumbing",
                "description": "Pipes",
                "category": "Kitchen",
                "start_time": "09:00",
                "end_time": "17:00",
                "cost": 40,
            },
        ).json()
        application = self.client.post(
            f"/api/services/{service['id']}/applications",
            headers=user,
            json={"request_text": "Sink", "start_date": _day(1), "end_date": _day(2)},
        ).json()
        request = self.client.post(
            f"/api/service-applications/{application['id']}/accept", headers=worker
        ).json()

        blank = self.client.post(
            f"/api/requests/{request['id']}/deny",
            headers=worker,
            json={"denial_reason": " "},
        )
        self.assertEqual(blank.status_code, 400)
        self.assertEqual(blank.json()["field"], "denialReason")

        denied = self.client.post(
            f"/api/requests/{request['id']}/deny",
            headers=worker,
            json={"denial_reason": "Schedule conflict"},
        )
        self.assertEqual(denied.status_code, 200, denied.text)
        records = self.client.get("/api/denied-requests", headers=user).json()
        self.assertEqual(records[0]["denial_reason"], "Schedule conflict")

    def test_user_cannot_create_service(self):
        _, user = self._register_and_login("user", "alice")
        response = self.client.post(
            "/api/services",
            headers=user,
            json={
                "name": "Plumbing",
                "description": "Pipes",
                "category": "Kitchen",
                "start_time": "09:00",
                "end_time": "17:00",
                "cost": 40,
            },
        )
        self.assertEqual(response.status_code, 403)

    def test_profile_update_and_picture(self):
        uid, user = self._register_and_login("user", "alice")

        updated = self.client.patch("/api/me", headers=user, json={"bio": "Hello"})
        self.assertEqual(updated.status_code, 200, updated.text)
        self.assertEqual(updated.json()["profile"]["bio"], "Hello")

        upload = self.client.post(
            "/api/me/profile-picture",
            headers=user,
            files={"file": ("me.png", b"\x89PNG", "image/png")},
        )
        self.assertEqual(upload.status_code, 200, upload.text)
        self.assertIn(f"profile_pictures/{uid}/me.png", upload.json()["url"])

    def test_delete_account(self):
        uid, user = self._register_and_login("user", "alice")

        wrong = self.client.post(
            "/api/me/delete", headers=user, json={"confirmation_text": "nope"}
        )
        self.assertEqual(wrong.status_code, 400)

        deleted = self.client.post(
            "/api/me/delete", headers=user, json={"confirmation_text": "DELETE"}
        )
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.client.get("/api/me", headers=user).status_code, 401)

    def test_admin_routes(self):
        admin_id, admin = self._register_and_login("user", "root")
        worker_id, worker = self._register_and_login("worker", "fixit")

        self.assertEqual(
            self.client.get("/api/admin/workers", headers=admin).status_code, 403
        )

        self.context.auth.set_admin(admin_id)
        workers = self.client.get("/api/admin/workers", headers=admin).json()
        self.assertEqual([w["username"] for w in workers], ["fixit"])

        deleted = self.client.delete(f"/api/admin/workers/{worker_id}", headers=admin)
        self.assertEqual(deleted.status_code, 200, deleted.text)
        self.assertEqual(
            deleted.json()["message"], "Worker and user deleted successfully!"
        )
        self.assertIsNone(self.context.store.get(WORKERS_COLLECTION, worker_id))


if __name__ == "__main__":
    unittest.main()
