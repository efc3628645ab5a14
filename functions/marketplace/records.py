"""
Conversion between stored documents and typed records.

Documents are camelCase dicts; records are the dataclasses in shared.types.
Every read from the store goes through `load_record`, so a malformed document
surfaces as a DocumentSchemaError instead of a KeyError deep in a handler.
"""

from __future__ import annotations

from dataclasses import asdict
from enum import Enum
from typing import TYPE_CHECKING, Generic, Optional, Sequence, Type, TypeVar

from dacite import Config, DaciteError, from_dict

from marketplace.errors import DocumentSchemaError, NotFoundError
from shared.json_utils import convert_keys, snake_to_camel

if TYPE_CHECKING:
    from marketplace.db import DocumentStore, Filter

T = TypeVar("T")

_DACITE_CONFIG = Config(cast=[Enum, float])


def load_record(data_class: Type[T], doc_id: str, data: dict) -> T:
    payload = convert_keys(data, "camel_to_snake")
    payload["id"] = doc_id
    try:
        return from_dict(data_class=data_class, data=payload, config=_DACITE_CONFIG)
    except (DaciteError, ValueError, TypeError) as e:
        raise DocumentSchemaError(
            f"Document {doc_id} is not a valid {data_class.__name__}: {e}"
        ) from e


def dump_record(record) -> dict:
    """Returns the camelCase document for a record, without its id."""
    data = asdict(record)
    data.pop("id", None)
    return convert_keys(_plain(data), "snake_to_camel")


def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


class TypedCollection(Generic[T]):
    """A collection of the document store viewed through one record type."""

    def __init__(self, store: "DocumentStore", name: str, data_class: Type[T]):
        self.store = store
        self.name = name
        self.data_class = data_class

    def find(self, doc_id: str) -> Optional[T]:
        data = self.store.get(self.name, doc_id)
        if data is None:
            return None
        return load_record(self.data_class, doc_id, data)

    def exists(self, doc_id: str) -> bool:
        return self.store.get(self.name, doc_id) is not None

    def get(self, doc_id: str) -> T:
        record = self.find(doc_id)
        if record is None:
            raise NotFoundError(self.name, doc_id)
        return record

    def add(self, record: T) -> T:
        record.id = self.store.add(self.name, dump_record(record))
        return record

    def put(self, record: T) -> T:
        """Writes the record at its own id, replacing any existing document."""
        self.store.set(self.name, record.id, dump_record(record))
        return record

    def update(self, doc_id: str, **fields) -> None:
        self.store.update(
            self.name, doc_id, convert_keys(_plain(fields), "snake_to_camel")
        )

    def delete(self, doc_id: str) -> None:
        self.store.delete(self.name, doc_id)

    def where(self, **equals) -> list[T]:
        filters = [(snake_to_camel(k), "==", _plain(v)) for k, v in equals.items()]
        return self.query(filters)

    def query(self, filters: Sequence["Filter"]) -> list[T]:
        return [
            load_record(self.data_class, doc_id, data)
            for doc_id, data in self.store.query(self.name, filters)
        ]
