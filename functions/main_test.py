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
# Standard library imports
import os
import unittest
from unittest.mock import patch, MagicMock

# Third-party library imports
from functions_framework import create_app
from firebase_functions import https_fn

# Local application imports
# This patch must be applied before importing 'main'
with patch("firebase_admin.initialize_app"):
    from main import (
        DELETE_WORKER_SUCCESS_MESSAGE,
        _delete_worker,
        _rated_worker_id,
        _refresh_worker_rating,
    )
from marketplace.auth import InMemoryAuthProvider
from marketplace.db import InMemoryDocumentStore
from shared.firebase_constants import (
    WORKERS_COLLECTION,
    WORKERS_RATED_REQUESTS_COLLECTION,
)

MAIN_SOURCE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "main.py")


class TestMainDeleteWorkerEndpoint(unittest.TestCase):

    @patch("firebase_admin.initialize_app")
    def setUp(self, initialize_app_mock):
        self.client = create_app("delete_worker", MAIN_SOURCE).test_client()

    def test_delete_worker_unauthenticated(self):
        # Act: No Authorization header.
        response = self.client.post("/", json={"data": {"workerId": "w1"}})

        # Assert
        self.assertEqual(response.status_code, 401)
        response_data = response.get_json()
        self.assertIn("error", response_data)
        self.assertEqual(response_data["error"]["status"], "UNAUTHENTICATED")


class TestMainDeleteWorker(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.auth = InMemoryAuthProvider()
        self.uid = self.auth.create_user("w@example.com", "secret1", "worker1")

    def test_delete_worker_success(self):
        # Arrange: The worker doc id differs from the auth uid stored on it.
        self.store.set(
            WORKERS_COLLECTION, "worker-doc", {"username": "worker1", "uid": self.uid}
        )

        # Act
        result = _delete_worker(self.store, self.auth, "worker-doc")

        # Assert
        self.assertEqual(result, {"message": DELETE_WORKER_SUCCESS_MESSAGE})
        self.assertIsNone(self.store.get(WORKERS_COLLECTION, "worker-doc"))
        self.assertNotIn(self.uid, self.auth.accounts)

    def test_delete_worker_falls_back_to_document_id(self):
        self.store.set(WORKERS_COLLECTION, self.uid, {"username": "worker1"})

        _delete_worker(self.store, self.auth, self.uid)

        self.assertIsNone(self.store.get(WORKERS_COLLECTION, self.uid))
        self.assertNotIn(self.uid, self.auth.accounts)

    def test_delete_worker_not_found(self):
        with self.assertRaises(https_fn.HttpsError) as ctx:
            _delete_worker(self.store, self.auth, "missing")
        self.assertEqual(ctx.exception.code, https_fn.FunctionsErrorCode.NOT_FOUND)
        self.assertIn(self.uid, self.auth.accounts)

    def test_delete_worker_invalid_argument(self):
        with self.assertRaises(https_fn.HttpsError) as ctx:
            _delete_worker(self.store, self.auth, None)
        self.assertEqual(
            ctx.exception.code, https_fn.FunctionsErrorCode.INVALID_ARGUMENT
        )

    def test_delete_worker_auth_failure_is_internal(self):
        # Arrange: The auth account is already gone.
        self.store.set(
            WORKERS_COLLECTION, "worker-doc", {"username": "worker1", "uid": "ghost"}
        )

        # Act
        with self.assertRaises(https_fn.HttpsError) as ctx:
            _delete_worker(self.store, self.auth, "worker-doc")

        # Assert: The worker document is kept when the auth deletion fails.
        self.assertEqual(ctx.exception.code, https_fn.FunctionsErrorCode.INTERNAL)
        self.assertIsNotNone(self.store.get(WORKERS_COLLECTION, "worker-doc"))

    def test_delete_worker_unexpected_error_is_internal(self):
        self.store.set(WORKERS_COLLECTION, "worker-doc", {"uid": self.uid})
        auth = MagicMock()
        auth.delete_user.side_effect = RuntimeError("backend unavailable")

        with self.assertRaises(https_fn.HttpsError) as ctx:
            _delete_worker(self.store, auth, "worker-doc")
        self.assertEqual(ctx.exception.code, https_fn.FunctionsErrorCode.INTERNAL)


class TestMainRatingTrigger(unittest.TestCase):

    def _snapshot(self, data):
        snapshot = MagicMock()
        snapshot.to_dict.return_value = data
        return snapshot

    def test_rated_worker_id_prefers_after(self):
        change = MagicMock()
        change.after = self._snapshot({"workerId": "w-after"})
        change.before = self._snapshot({"workerId": "w-before"})
        self.assertEqual(_rated_worker_id(change), "w-after")

    def test_rated_worker_id_on_delete(self):
        change = MagicMock()
        change.after = self._snapshot(None)
        change.before = self._snapshot({"workerId": "w-before"})
        self.assertEqual(_rated_worker_id(change), "w-before")

    def test_refresh_recomputes_rating(self):
        # Arrange
        store = InMemoryDocumentStore()
        store.set(WORKERS_COLLECTION, "w1", {"username": "worker1", "email": "w@x"})
        for rating in (4, 5):
            store.add(
                WORKERS_RATED_REQUESTS_COLLECTION,
                {
                    "requestId": "r",
                    "userId": "u1",
                    "workerId": "w1",
                    "rating": rating,
                    "timestamp": "2025-01-01T00:00:00+00:00",
                    "requestStatus": "done",
                },
            )
        change = MagicMock()
        change.after = self._snapshot({"workerId": "w1"})

        # Act
        _refresh_worker_rating(store, change, "rating1")

        # Assert
        worker = store.get(WORKERS_COLLECTION, "w1")
        self.assertEqual(worker["rating"], 4.5)
        self.assertEqual(worker["requests"], 2)

    def test_refresh_ignores_missing_worker(self):
        store = InMemoryDocumentStore()
        change = MagicMock()
        change.after = self._snapshot({"workerId": "gone"})

        _refresh_worker_rating(store, change, "rating1")

        self.assertIsNone(store.get(WORKERS_COLLECTION, "gone"))


if __name__ == "__main__":
    unittest.main()
