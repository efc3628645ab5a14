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

# Cloud functions for the marketplace backend - worker deletion + rating upkeep.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Third-party library imports
from firebase_admin import initialize_app, firestore
from firebase_functions import https_fn, logger, options
from firebase_functions.firestore_fn import (
    on_document_written,
    Event,
    Change,
    DocumentSnapshot,
)

# Local application imports
from marketplace.accounts import delete_worker_account
from marketplace.auth import AuthProvider, FirebaseAuthProvider
from marketplace.db import DocumentStore, FirestoreDocumentStore
from marketplace.errors import NotFoundError
from marketplace.events import InMemoryEventBus
from marketplace.lifecycle import RequestLifecycle
from shared.firebase_constants import (
    WORKERS_COLLECTION,
    WORKERS_RATED_REQUESTS_COLLECTION,
)

DELETE_WORKER_SUCCESS_MESSAGE = "Worker and user deleted successfully!"

initialize_app()


def _store() -> DocumentStore:
    return FirestoreDocumentStore(firestore.client())


def _auth_provider() -> AuthProvider:
    return FirebaseAuthProvider()


def _delete_worker(store: DocumentStore, auth: AuthProvider, worker_id) -> dict:
    if not worker_id or not isinstance(worker_id, str):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify workerId parameter.",
        )

    try:
        delete_worker_account(store, auth, worker_id)
    except https_fn.HttpsError:
        raise
    except NotFoundError as e:
        if e.collection != WORKERS_COLLECTION:
            logger.error(f"Error deleting worker {worker_id}: {e}")
            raise https_fn.HttpsError(
                https_fn.FunctionsErrorCode.INTERNAL, "Error deleting worker."
            )
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.NOT_FOUND, "Worker not found."
        )
    except Exception as e:
        logger.error(f"Error deleting worker {worker_id}: {e}")
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INTERNAL, "Error deleting worker."
        )

    return {"message": DELETE_WORKER_SUCCESS_MESSAGE}


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def delete_worker(req: https_fn.CallableRequest) -> dict:
    """
    Deletes a worker's auth account and then the worker document.
    Deployed as the callable `delete_worker` with `{workerId}`.
    """
    if req.auth is None:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.UNAUTHENTICATED,
            "User must be authenticated.",
        )
    return _delete_worker(_store(), _auth_provider(), req.data.get("workerId"))


def _rated_worker_id(change: Change[DocumentSnapshot]):
    for snapshot in (change.after, change.before):
        data = snapshot.to_dict() if snapshot is not None else None
        if data:
            return data.get("workerId")
    return None


def _refresh_worker_rating(
    store: DocumentStore, change: Change[DocumentSnapshot], rating_id: str
) -> None:
    worker_id = _rated_worker_id(change)
    if not worker_id:
        logger.warn(f"Rating {rating_id} has no workerId")
        return

    lifecycle = RequestLifecycle(store, InMemoryEventBus())
    try:
        summary = lifecycle.recompute_worker_rating(worker_id)
    except NotFoundError:
        logger.warn(f"Rated worker {worker_id} no longer exists")
        return
    logger.info(
        f"Worker {worker_id} rating is now {summary.rating} over {summary.requests}"
    )


@on_document_written(document=WORKERS_RATED_REQUESTS_COLLECTION + "/{ratingId}")
def on_workers_rated_request_written(event: Event[Change[DocumentSnapshot]]) -> None:
    """
    Recomputes the rated worker's average whenever a rating is written.
    """
    _refresh_worker_rating(_store(), event.data, event.params["ratingId"])
