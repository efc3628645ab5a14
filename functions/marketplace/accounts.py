"""
Account lifecycle: registration, sign-in, and deletion of a user or worker
together with everything they own.

Deletion spans several collections and the auth provider, none of which share
a transaction. `CascadeDelete` records a snapshot of every document before it
removes it; if a later step fails the snapshots are written back in reverse
order and the original error propagates. Deleting the auth account is always
the last step.
"""

from __future__ import annotations

import logging
from typing import Optional

from marketplace.auth import AuthProvider, SignInResult
from marketplace.db import DocumentStore
from marketplace.errors import NotFoundError, UsernameTakenError, ValidationError
from marketplace.events import PROFILES_CHANGED, EventBus
from marketplace.services import UserService
from shared.constants import DELETE_CONFIRMATION_TEXT, MAX_USERNAME_LENGTH
from shared.firebase_constants import (
    CONFIRMED_REQUESTS_COLLECTION,
    DENIED_REQUESTS_COLLECTION,
    REQUESTS_COLLECTION,
    SERVICE_APPLICATIONS_COLLECTION,
    SERVICES_COLLECTION,
    TICKET_APPLICATIONS_COLLECTION,
    TICKETS_COLLECTION,
    USERS_COLLECTION,
    WORKERS_COLLECTION,
)
from shared.types import UserProfile, UserType, WorkerProfile

logger = logging.getLogger(__name__)

# (collection, owner field) pairs removed after the profile document.
USER_CASCADE = [
    (TICKETS_COLLECTION, "userId"),
    (TICKET_APPLICATIONS_COLLECTION, "userId"),
    (SERVICE_APPLICATIONS_COLLECTION, "userId"),
    (REQUESTS_COLLECTION, "userId"),
    (CONFIRMED_REQUESTS_COLLECTION, "userId"),
    (DENIED_REQUESTS_COLLECTION, "userId"),
]
WORKER_CASCADE = [
    (SERVICES_COLLECTION, "userId"),
    (SERVICE_APPLICATIONS_COLLECTION, "workerId"),
    (TICKET_APPLICATIONS_COLLECTION, "workerId"),
    (REQUESTS_COLLECTION, "workerId"),
    (CONFIRMED_REQUESTS_COLLECTION, "workerId"),
]


class CascadeDelete:
    """Deletes documents one by one, remembering enough to put them back."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.deleted: list[tuple[str, str, dict]] = []

    def delete_document(self, collection: str, doc_id: str) -> bool:
        data = self.store.get(collection, doc_id)
        if data is None:
            return False
        self.deleted.append((collection, doc_id, data))
        self.store.delete(collection, doc_id)
        return True

    def delete_where(self, collection: str, field: str, value: str) -> int:
        docs = self.store.query(collection, [(field, "==", value)])
        for doc_id, data in docs:
            self.deleted.append((collection, doc_id, data))
            self.store.delete(collection, doc_id)
        return len(docs)

    def compensate(self) -> None:
        """Restores every deleted document, newest first."""
        while self.deleted:
            collection, doc_id, data = self.deleted.pop()
            try:
                self.store.set(collection, doc_id, data)
            except Exception:
                logger.exception(f"Failed to restore {collection}/{doc_id}")


def delete_worker_account(
    store: DocumentStore, auth: AuthProvider, worker_id: str
) -> None:
    """
    Removes a worker's auth account and then the worker document.

    The auth uid is the document's `uid` field when present, else the document
    id. Raises NotFoundError when there is no worker document.
    """
    data = store.get(WORKERS_COLLECTION, worker_id)
    if data is None:
        raise NotFoundError(WORKERS_COLLECTION, worker_id)
    uid = data.get("uid") or worker_id
    auth.delete_user(uid)
    store.delete(WORKERS_COLLECTION, worker_id)
    logger.info(f"Deleted worker {worker_id} and auth account {uid}")


class AccountService:
    def __init__(
        self,
        store: DocumentStore,
        auth: AuthProvider,
        users: UserService,
        events: EventBus,
    ):
        self.store = store
        self.auth = auth
        self.users = users
        self.events = events

    def register(
        self,
        *,
        user_type: UserType,
        username: str,
        name: str,
        surname: str,
        email: str,
        password: str,
        confirm_password: str,
    ) -> str:
        """Creates the auth account and the profile document. Returns the uid."""
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username is required.", field="username")
        if len(username) > MAX_USERNAME_LENGTH:
            raise ValidationError("Username is too long.", field="username")
        if password != confirm_password:
            raise ValidationError("Passwords do not match.", field="confirmPassword")
        if self.users.username_taken(username):
            raise UsernameTakenError(username)

        uid = self.auth.create_user(email, password, display_name=username)
        if user_type == UserType.WORKER:
            profile = WorkerProfile(
                username=username,
                email=email,
                name=name,
                surname=surname,
                uid=uid,
                id=uid,
            )
        else:
            profile = UserProfile(
                username=username, email=email, name=name, surname=surname, id=uid
            )
        try:
            self.users.create_profile(user_type, profile)
        except Exception:
            logger.exception(f"Error writing profile for {uid}, removing auth account")
            self.auth.delete_user(uid)
            raise

        logger.info(f"Registered {user_type.value} {uid}")
        self.events.publish(PROFILES_CHANGED, {"uid": uid})
        return uid

    def sign_in(self, email: str, password: str) -> SignInResult:
        return self.auth.sign_in(email, password)

    def sign_out(self, uid: str) -> None:
        self.auth.sign_out(uid)

    def request_password_reset(self, email: str) -> None:
        if not email:
            raise ValidationError("Email is required.", field="email")
        self.auth.send_password_reset_email(email)

    def change_username(self, uid: str, username: str) -> None:
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username is required.", field="username")
        profile = self.users.get_profile(uid)
        if profile.username == username:
            return
        if self.users.username_taken(username):
            raise UsernameTakenError(username)
        self.users.update_profile(uid, admin=True, username=username)
        self.auth.update_display_name(uid, username)

    def delete_account(self, uid: str, confirmation_text: str) -> None:
        """Self-service deletion. The caller must type the confirmation word."""
        if confirmation_text != DELETE_CONFIRMATION_TEXT:
            raise ValidationError(
                f'Please type "{DELETE_CONFIRMATION_TEXT}" to confirm.',
                field="confirmation",
            )
        self._delete_with_cascade(uid)

    def admin_delete_user(self, uid: str) -> None:
        if self.users.user_type(uid) != UserType.USER:
            raise NotFoundError(USERS_COLLECTION, uid)
        self._delete_with_cascade(uid)

    def admin_delete_worker(self, worker_id: str) -> None:
        delete_worker_account(self.store, self.auth, worker_id)
        self.events.publish(PROFILES_CHANGED, {"uid": worker_id})

    def _delete_with_cascade(self, uid: str, user_type: Optional[UserType] = None):
        user_type = user_type or self.users.user_type(uid)
        if user_type is None:
            raise NotFoundError(USERS_COLLECTION, uid)
        if user_type == UserType.WORKER:
            profile_collection, cascade = WORKERS_COLLECTION, WORKER_CASCADE
        else:
            profile_collection, cascade = USERS_COLLECTION, USER_CASCADE

        saga = CascadeDelete(self.store)
        try:
            saga.delete_document(profile_collection, uid)
            for collection, owner_field in cascade:
                count = saga.delete_where(collection, owner_field, uid)
                logger.info(f"Deleted {count} {collection} documents for {uid}")
            self.auth.delete_user(uid)
        except Exception:
            logger.exception(f"Error deleting account {uid}, restoring documents")
            saga.compensate()
            raise

        logger.info(f"Deleted {user_type.value} account {uid}")
        self.events.publish(PROFILES_CHANGED, {"uid": uid})
