"""
Explicitly constructed application context.

Everything a request handler needs hangs off one `MarketplaceContext`, built
once at startup from settings and closed at shutdown. Tests build their own
context from in-memory backends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import firebase_admin
from firebase_admin import credentials, firestore

from marketplace.accounts import AccountService
from marketplace.auth import AuthProvider, FirebaseAuthProvider, InMemoryAuthProvider
from marketplace.config import Settings
from marketplace.db import (
    DocumentStore,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    SqlDocumentStore,
)
from marketplace.events import EventBus, InMemoryEventBus, RedisEventBus
from marketplace.lifecycle import RequestLifecycle
from marketplace.services import ServiceService, TicketService, UserService
from marketplace.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "marketplace"


@dataclass
class MarketplaceContext:
    store: DocumentStore
    auth: AuthProvider
    storage: StorageClient
    events: EventBus
    firebase_app: Optional[Any] = None
    tickets: TicketService = field(init=False)
    services: ServiceService = field(init=False)
    users: UserService = field(init=False)
    lifecycle: RequestLifecycle = field(init=False)
    accounts: AccountService = field(init=False)

    def __post_init__(self):
        self.tickets = TicketService(self.store, self.events)
        self.services = ServiceService(self.store, self.events)
        self.users = UserService(self.store, self.storage, self.events)
        self.lifecycle = RequestLifecycle(self.store, self.events)
        self.accounts = AccountService(self.store, self.auth, self.users, self.events)

    @classmethod
    def in_memory(cls) -> "MarketplaceContext":
        return cls(
            store=InMemoryDocumentStore(),
            auth=InMemoryAuthProvider(),
            storage=InMemoryStorageClient(),
            events=InMemoryEventBus(),
        )

    def close(self) -> None:
        self.events.close()
        self.store.close()
        if self.firebase_app is not None:
            firebase_admin.delete_app(self.firebase_app)
            self.firebase_app = None


def _firebase_app(settings: Settings):
    if settings.google_application_credentials:
        credential = credentials.Certificate(settings.google_application_credentials)
    else:
        credential = credentials.ApplicationDefault()
    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    return firebase_admin.initialize_app(
        credential, options=options, name=FIREBASE_APP_NAME
    )


def _storage_client(settings: Settings) -> StorageClient:
    if settings.use_in_memory_backends or not settings.storage_bucket:
        return InMemoryStorageClient()
    return S3StorageClient(
        bucket=settings.storage_bucket,
        region=settings.storage_region or "",
        endpoint=settings.storage_endpoint or "",
        access_key_id=settings.aws_access_key_id or "",
        secret_access_key=settings.aws_secret_access_key or "",
        public_base_url=settings.storage_public_base_url,
    )


def _event_bus(settings: Settings) -> EventBus:
    if settings.use_in_memory_backends or not settings.redis_url:
        return InMemoryEventBus()
    return RedisEventBus(
        url=settings.redis_url, channel_prefix=settings.redis_channel_prefix
    )


def build_context(settings: Settings) -> MarketplaceContext:
    """
    Wires backends from settings:

    * in-memory everything when MARKETPLACE_USE_IN_MEMORY_BACKENDS is set;
    * otherwise Firebase Authentication, with documents in SQL when
      DATABASE_URL is set and in Firestore when it is not.
    """
    if settings.use_in_memory_backends:
        logger.info("Using in-memory backends")
        return MarketplaceContext(
            store=InMemoryDocumentStore(),
            auth=InMemoryAuthProvider(),
            storage=_storage_client(settings),
            events=_event_bus(settings),
        )

    app = _firebase_app(settings)
    if settings.database_url:
        store: DocumentStore = SqlDocumentStore(settings.database_url)
    else:
        store = FirestoreDocumentStore(firestore.client(app=app))
    return MarketplaceContext(
        store=store,
        auth=FirebaseAuthProvider(app=app, web_api_key=settings.firebase_web_api_key),
        storage=_storage_client(settings),
        events=_event_bus(settings),
        firebase_app=app,
    )
