"""
Entity repositories for Folio.

Repositories are the only callers of :class:`folio.backend.Backend`. They scope
every read and write to the owning identity, convert ``datetime.date`` values
to and from the ``"YYYY-MM-DD"`` strings the backend contract uses, and
invalidate the query cache after each successful mutation.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from .backend import Backend
from .cache import QueryCache
from .errors import NotFoundError, ValidationError
from .schemas import ENTITY_SCHEMAS, EntitySchema

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def parse_date(value: Any) -> Optional[date]:
    """Parse a ``"YYYY-MM-DD"`` string (or pass a date through)."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.debug(f"Ignoring unparseable date {value!r}")
        return None


def to_wire(values: Dict[str, Any]) -> Dict[str, Any]:
    """Convert form values into backend values (dates become ISO strings)."""
    out = {}
    for key, value in values.items():
        if isinstance(value, date):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out


def from_wire(schema: EntitySchema, record: Row) -> Row:
    """Convert a backend row into form values (date strings become dates)."""
    out = dict(record)
    for key in schema.date_keys():
        if key in out:
            out[key] = parse_date(out[key])
    return out


class EntityRepository:
    """CRUD for one owned entity table."""

    def __init__(self, backend: Backend, schema: EntitySchema, cache: QueryCache):
        self.backend = backend
        self.schema = schema
        self.cache = cache

    @property
    def table(self) -> str:
        return self.schema.table

    def cache_key(self, owner: str):
        return (self.table, owner)

    def fetch(self, owner: str) -> List[Row]:
        """Read the owner's records, newest first, bypassing the cache."""
        return self.backend.select(
            self.table,
            identity=owner,
            filters={"user_id": owner},
            order_by="created_at",
            descending=True,
        )

    def list(self, owner: str) -> List[Row]:
        """The owner's records, newest first, served from the cache when fresh."""
        return self.cache.fetch(self.cache_key(owner), lambda: self.fetch(owner))

    def get(self, owner: str, record_id: str) -> Row:
        row = self.backend.select_one(
            self.table,
            identity=owner,
            filters={"id": record_id, "user_id": owner},
        )
        if row is None:
            raise NotFoundError(f"{self.schema.title} not found", table=self.table)
        return row

    def count(self, owner: str) -> int:
        return self.backend.count(self.table, identity=owner, filters={"user_id": owner})

    def save(self, owner: str, values: Dict[str, Any], record_id: Optional[str] = None) -> Row:
        """
        Insert (no ``record_id``) or update (with ``record_id``) one record.

        Args:
            owner: Acting identity; merged into the row as ``user_id``.
            values: Cleaned form values, dates as ``datetime.date``.
            record_id: Id of the record to update.

        Returns:
            The stored row.

        Raises:
            ValidationError: An enumerated field holds a value outside its set.
            BackendError: The backend rejected the call.
        """
        field_errors = self.schema.check_values(values)
        if field_errors:
            raise ValidationError(f"Invalid {self.schema.title.lower()}", field_errors)

        payload = to_wire(values)
        payload["user_id"] = owner
        if record_id:
            row = self.backend.update(self.table, record_id, payload, identity=owner)
            logger.info(f"Updated {self.table} record {record_id}")
        else:
            row = self.backend.insert(self.table, payload, identity=owner)
            logger.info(f"Created {self.table} record {row['id']}")
        self.cache.invalidate(self.table, owner)
        return row

    def delete(self, owner: str, record_id: str) -> None:
        self.backend.delete(self.table, record_id, identity=owner)
        logger.info(f"Deleted {self.table} record {record_id}")
        self.cache.invalidate(self.table, owner)


class ProfileRepository:
    """The per-user profile singleton."""

    table = "profiles"

    def __init__(self, backend: Backend, cache: QueryCache):
        self.backend = backend
        self.cache = cache

    def get(self, owner: str) -> Optional[Row]:
        return self.backend.select_one(self.table, identity=owner, filters={"user_id": owner})

    def upsert(self, owner: str, values: Dict[str, Any]) -> Row:
        """
        Create the owner's profile or update it in place.

        ``None`` values are dropped so absent fields never overwrite stored ones.
        """
        payload = {k: v for k, v in to_wire(values).items() if v is not None}
        existing = self.get(owner)
        if existing is None:
            payload["user_id"] = owner
            row = self.backend.insert(self.table, payload, identity=owner)
        else:
            row = self.backend.update(self.table, existing["id"], payload, identity=owner)
        self.cache.invalidate(self.table, owner)
        return row

    def set_photo(self, owner: str, path: str) -> Row:
        return self.upsert(owner, {"photo_url": path})


class MessageRepository:
    """Contact messages: anonymous submit, authenticated everything else."""

    table = "messages"

    def __init__(self, backend: Backend):
        self.backend = backend

    def submit(self, values: Dict[str, Any]) -> Row:
        payload = {key: values.get(key) for key in ("name", "email", "message")}
        return self.backend.insert(self.table, payload, identity=None)

    def list(self, identity: str) -> List[Row]:
        return self.backend.select(self.table, identity=identity, order_by="created_at", descending=True)

    def get(self, identity: str, record_id: str) -> Row:
        row = self.backend.select_one(self.table, identity=identity, filters={"id": record_id})
        if row is None:
            raise NotFoundError("Message not found", table=self.table)
        return row

    def set_read(self, identity: str, record_id: str, is_read: bool = True) -> Row:
        return self.backend.update(self.table, record_id, {"is_read": is_read}, identity=identity)

    def delete(self, identity: str, record_id: str) -> None:
        self.backend.delete(self.table, record_id, identity=identity)

    def unread_count(self, identity: str) -> int:
        return self.backend.count(self.table, identity=identity, filters={"is_read": False})


class Repositories:
    """All repositories of one app, sharing a backend and a cache."""

    def __init__(self, backend: Backend, cache: Optional[QueryCache] = None):
        self.backend = backend
        self.cache = cache or QueryCache()
        self.entities = {
            table: EntityRepository(backend, schema, self.cache)
            for table, schema in ENTITY_SCHEMAS.items()
        }
        self.profiles = ProfileRepository(backend, self.cache)
        self.messages = MessageRepository(backend)

    def entity(self, table: str) -> EntityRepository:
        try:
            return self.entities[table]
        except KeyError:
            raise NotFoundError(f"Unknown section: {table}", table=table)
