"""Document store abstraction and the bundled in-memory / JSON-file backends.

Records are plain dictionaries.  Values are kept in a JSON compatible form
(datetimes as ISO strings, enums as their values) so both backends behave the
same and filters compare like with like.

Filters map a field name to a value (equality) or use a suffixed operator:
``field__gte``, ``field__lte``, ``field__in``, ``field__contains``
(case-insensitive substring) and ``field__ne``.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from .utils import dump_json, load_json, new_id


LOGGER = logging.getLogger(__name__)

Record = Dict[str, Any]
SortSpec = Union[str, Sequence[str], None]

DEFAULT_UNIQUE_CONSTRAINTS: Dict[str, List[Tuple[str, ...]]] = {
    "invoices": [("user_id", "invoice_key")],
    "products": [("user_id", "product_code")],
}


class StoreError(Exception):
    """Base error raised by document stores."""


class RecordNotFoundError(StoreError):
    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"Record {record_id} not found in {collection}")
        self.collection = collection
        self.record_id = record_id


class UniqueConstraintError(StoreError):
    def __init__(self, collection: str, fields: Tuple[str, ...], existing_id: str) -> None:
        super().__init__(f"Unique constraint {fields} violated in {collection} (existing record {existing_id})")
        self.collection = collection
        self.fields = fields
        self.existing_id = existing_id


class DocumentStore(Protocol):
    def create(self, collection: str, record_id: Optional[str], fields: Mapping[str, Any]) -> Record:
        ...

    def get(self, collection: str, record_id: str) -> Record:
        ...

    def list(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        sort: SortSpec = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Record]:
        ...

    def update(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        ...

    def delete(self, collection: str, record_id: str) -> None:
        ...


def to_storable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_storable(item) for item in value]
    return value


def _matches(record: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    for key, expected in filters.items():
        field, _, operator = key.partition("__")
        actual = record.get(field)
        expected = to_storable(expected)
        if operator == "":
            if actual != expected:
                return False
        elif operator == "ne":
            if actual == expected:
                return False
        elif operator == "in":
            if actual not in expected:
                return False
        elif operator == "contains":
            if actual is None or str(expected).lower() not in str(actual).lower():
                return False
        elif operator in ("gte", "lte"):
            if actual is None:
                return False
            if operator == "gte" and actual < expected:
                return False
            if operator == "lte" and actual > expected:
                return False
        else:
            raise ValueError(f"Unsupported filter operator: {operator}")
    return True


def _sort_records(records: List[Record], sort: SortSpec) -> List[Record]:
    if not sort:
        return records
    specs = [sort] if isinstance(sort, str) else list(sort)
    # Stable sorts applied from the least to the most significant key.
    for spec in reversed(specs):
        descending = spec.startswith("-")
        field = spec.lstrip("-")
        present = [record for record in records if record.get(field) is not None]
        missing = [record for record in records if record.get(field) is None]
        present.sort(key=lambda record: record[field], reverse=descending)
        records = present + missing
    return records


class InMemoryDocumentStore:
    """Thread-safe dictionary backed store with unique constraint enforcement."""

    def __init__(self, unique_constraints: Optional[Mapping[str, Iterable[Tuple[str, ...]]]] = None) -> None:
        constraints = DEFAULT_UNIQUE_CONSTRAINTS if unique_constraints is None else unique_constraints
        self.unique_constraints = {name: [tuple(fields) for fields in value] for name, value in constraints.items()}
        self._collections: Dict[str, Dict[str, Record]] = {}
        self._lock = threading.RLock()

    def create(self, collection: str, record_id: Optional[str], fields: Mapping[str, Any]) -> Record:
        record_id = record_id or new_id()
        record = {key: to_storable(value) for key, value in fields.items()}
        record["id"] = record_id
        with self._lock:
            records = self._collections.setdefault(collection, {})
            if record_id in records:
                raise UniqueConstraintError(collection, ("id",), record_id)
            self._check_unique(collection, record)
            records[record_id] = record
            self._persist()
        return dict(record)

    def get(self, collection: str, record_id: str) -> Record:
        with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            if record is None:
                raise RecordNotFoundError(collection, record_id)
            return dict(record)

    def list(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        sort: SortSpec = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Record]:
        with self._lock:
            records = [
                dict(record)
                for record in self._collections.get(collection, {}).values()
                if _matches(record, filters or {})
            ]
        records = _sort_records(records, sort)
        end = None if limit is None else offset + limit
        return records[offset:end]

    def count(self, collection: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        return len(self.list(collection, filters))

    def update(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        with self._lock:
            records = self._collections.get(collection, {})
            if record_id not in records:
                raise RecordNotFoundError(collection, record_id)
            updated = dict(records[record_id])
            updated.update({key: to_storable(value) for key, value in fields.items() if key != "id"})
            self._check_unique(collection, updated)
            records[record_id] = updated
            self._persist()
            return dict(updated)

    def delete(self, collection: str, record_id: str) -> None:
        with self._lock:
            records = self._collections.get(collection, {})
            if record_id not in records:
                raise RecordNotFoundError(collection, record_id)
            del records[record_id]
            self._persist()

    def _check_unique(self, collection: str, record: Record) -> None:
        for fields in self.unique_constraints.get(collection, []):
            values = tuple(record.get(field) for field in fields)
            if any(value in (None, "") for value in values):
                continue
            for other_id, other in self._collections.get(collection, {}).items():
                if other_id == record["id"]:
                    continue
                if tuple(other.get(field) for field in fields) == values:
                    raise UniqueConstraintError(collection, fields, other_id)

    def _persist(self) -> None:
        """Hook for persistent subclasses; called with the lock held after each write."""


class JsonFileDocumentStore(InMemoryDocumentStore):
    """In-memory store mirrored to a JSON file after every write."""

    def __init__(
        self,
        path: Path,
        unique_constraints: Optional[Mapping[str, Iterable[Tuple[str, ...]]]] = None,
    ) -> None:
        super().__init__(unique_constraints)
        self.path = Path(path)
        data = load_json(self.path) or {}
        self._collections = {name: dict(records) for name, records in data.get("collections", {}).items()}
        LOGGER.info(
            "Loaded document store %s (%s records)",
            self.path,
            sum(len(records) for records in self._collections.values()),
        )

    def _persist(self) -> None:
        dump_json(self.path, {"collections": self._collections})


__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "StoreError",
    "RecordNotFoundError",
    "UniqueConstraintError",
    "to_storable",
]
