"""
Document store abstraction for Firestore, SQL (via SQLAlchemy) and an
in-memory test implementation.

All three speak the same schema-less model: named collections of dict
documents keyed by string ids, with equality-filtered queries. Nothing here
spans collections atomically.
"""

from __future__ import annotations

import copy
import time
import uuid
from typing import Any, Dict, Optional, Protocol, Sequence

from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter
from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from marketplace.errors import NotFoundError

# (field, op, value); op is "==" or "!=".
Filter = tuple[str, str, Any]

SUPPORTED_OPS = ("==", "!=")


class DocumentStore(Protocol):
    """Interface for document access."""

    def add(self, collection: str, data: dict) -> str:
        """Inserts a document under a generated id and returns the id."""
        ...

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        """Creates or replaces the document at `doc_id`."""
        ...

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        """Merges `data` into an existing document; raises NotFoundError."""
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...

    def query(
        self, collection: str, filters: Sequence[Filter] = ()
    ) -> list[tuple[str, dict]]:
        ...

    def close(self) -> None:
        ...


def _check_filters(filters: Sequence[Filter]) -> None:
    for _, op, _ in filters:
        if op not in SUPPORTED_OPS:
            raise ValueError(f"Unsupported filter operator: {op}")


def _matches(data: dict, filters: Sequence[Filter]) -> bool:
    for field_name, op, value in filters:
        # Firestore never matches a missing field, for either operator.
        if field_name not in data:
            return False
        if op == "==" and data[field_name] != value:
            return False
        if op == "!=" and data[field_name] == value:
            return False
    return True


class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}

    def _collection(self, collection: str) -> Dict[str, dict]:
        return self.collections.setdefault(collection, {})

    def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        self._collection(collection)[doc_id] = copy.deepcopy(data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        self._collection(collection)[doc_id] = copy.deepcopy(data)

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        data = self._collection(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        docs = self._collection(collection)
        if doc_id not in docs:
            raise NotFoundError(collection, doc_id)
        docs[doc_id].update(copy.deepcopy(data))

    def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)

    def query(
        self, collection: str, filters: Sequence[Filter] = ()
    ) -> list[tuple[str, dict]]:
        _check_filters(filters)
        return [
            (doc_id, copy.deepcopy(data))
            for doc_id, data in self._collection(collection).items()
            if _matches(data, filters)
        ]

    def close(self) -> None:
        pass


class FirestoreDocumentStore:
    """Firestore-backed implementation using a firebase_admin client."""

    def __init__(self, client):
        self.client = client

    def add(self, collection: str, data: dict) -> str:
        _, doc_ref = self.client.collection(collection).add(data)
        return doc_ref.id

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        self.client.collection(collection).document(doc_id).set(data)

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        snapshot = self.client.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        try:
            self.client.collection(collection).document(doc_id).update(data)
        except google_exceptions.NotFound as e:
            raise NotFoundError(collection, doc_id) from e

    def delete(self, collection: str, doc_id: str) -> None:
        self.client.collection(collection).document(doc_id).delete()

    def query(
        self, collection: str, filters: Sequence[Filter] = ()
    ) -> list[tuple[str, dict]]:
        _check_filters(filters)
        query = self.client.collection(collection)
        for field_name, op, value in filters:
            query = query.where(filter=FieldFilter(field_name, op, value))
        return [(snapshot.id, snapshot.to_dict()) for snapshot in query.stream()]

    def close(self) -> None:
        self.client.close()


class SqlDocumentStore:
    """
    SQLAlchemy-backed implementation storing one JSON row per document.
    Accepts any SQLAlchemy URL (e.g., Postgres, or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDocumentStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if row:
                row.data = copy.deepcopy(data)
                row.updated_at = time.time()
            else:
                session.add(
                    DocumentRow(
                        collection=collection,
                        doc_id=doc_id,
                        data=copy.deepcopy(data),
                        updated_at=time.time(),
                    )
                )
            session.commit()

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            return copy.deepcopy(row.data) if row else None

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if not row:
                raise NotFoundError(collection, doc_id)
            # Reassign so the JSON column is flagged dirty.
            row.data = {**row.data, **copy.deepcopy(data)}
            row.updated_at = time.time()
            session.commit()

    def delete(self, collection: str, doc_id: str) -> None:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if row:
                session.delete(row)
                session.commit()

    def query(
        self, collection: str, filters: Sequence[Filter] = ()
    ) -> list[tuple[str, dict]]:
        _check_filters(filters)
        with self.Session() as session:
            stmt = (
                select(DocumentRow)
                .where(DocumentRow.collection == collection)
                .order_by(DocumentRow.updated_at.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [
                (row.doc_id, copy.deepcopy(row.data))
                for row in rows
                if _matches(row.data, filters)
            ]

    def close(self) -> None:
        self.engine.dispose()


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(Float, nullable=False)
