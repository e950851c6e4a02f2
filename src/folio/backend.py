"""
Table-oriented data backend for Folio.

The rest of the application talks to storage only through this contract:
rows go in and come out as plain dicts, dates travel as "YYYY-MM-DD" strings
and timestamps as ISO-8601 strings, and every call states the acting identity.

Row-level authorization lives here rather than in the views:
- Owned tables: writes require ``user_id`` to equal the acting identity
- Entity tables are publicly readable (the public portfolio reads them)
- ``messages`` accepts anonymous inserts; everything else on it needs a login
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import Boolean, Date, DateTime
from sqlalchemy.exc import SQLAlchemyError

from .errors import AuthorizationError, BackendError, NotFoundError
from .models import (
    Achievement,
    Education,
    Experience,
    Hobby,
    Message,
    OrganizationalExperience,
    Profile,
    Project,
    Skill,
    SocialMediaLink,
    db,
)

logger = logging.getLogger(__name__)

# Columns the backend assigns itself; clients cannot write them
SERVER_COLUMNS = ("id", "created_at", "updated_at")


@dataclass(frozen=True)
class TablePolicy:
    """Access rules for one table."""

    model: Type[Any]
    owner_column: Optional[str] = "user_id"
    public_read: bool = True
    anonymous_insert: bool = False


TABLES: Dict[str, TablePolicy] = {
    "profiles": TablePolicy(Profile),
    "skills": TablePolicy(Skill),
    "projects": TablePolicy(Project),
    "experience": TablePolicy(Experience),
    "organizational_experience": TablePolicy(OrganizationalExperience),
    "education": TablePolicy(Education),
    "achievements": TablePolicy(Achievement),
    "hobbies": TablePolicy(Hobby),
    "social_media_links": TablePolicy(SocialMediaLink),
    "messages": TablePolicy(Message, owner_column=None, public_read=False, anonymous_insert=True),
}


def _coerce(table: str, column: Any, value: Any) -> Any:
    """Convert a wire value into the column's Python type."""
    if value is None:
        return None
    column_type = column.type
    try:
        if isinstance(column_type, DateTime) and isinstance(value, str):
            return datetime.fromisoformat(value)
        if isinstance(column_type, Date) and isinstance(value, str):
            return date.fromisoformat(value)
        if isinstance(column_type, Boolean):
            return bool(value)
    except ValueError:
        raise BackendError(
            f'invalid input syntax for type {column_type.__class__.__name__.lower()}: "{value}"',
            table=table,
        )
    return value


class Backend:
    """
    SQL implementation of the backend contract on Flask-SQLAlchemy.

    Every method must be called inside a Flask application context.
    """

    def __init__(self, tables: Optional[Dict[str, TablePolicy]] = None):
        self.tables = tables if tables is not None else TABLES

    # -------------------------
    # Helpers
    # -------------------------
    def _policy(self, table: str) -> TablePolicy:
        policy = self.tables.get(table)
        if policy is None:
            raise BackendError(f'relation "{table}" does not exist', table=table)
        return policy

    def _columns(self, policy: TablePolicy) -> Dict[str, Any]:
        return {c.name: c for c in policy.model.__table__.columns}

    def _prepare(self, table: str, policy: TablePolicy, values: Dict[str, Any]) -> Dict[str, Any]:
        columns = self._columns(policy)
        prepared = {}
        for key, value in values.items():
            if key not in columns:
                raise BackendError(f"Could not find the '{key}' column of '{table}'", table=table)
            if key in SERVER_COLUMNS:
                continue
            prepared[key] = _coerce(table, columns[key], value)
        return prepared

    def _query(self, table: str, policy: TablePolicy, filters: Optional[Dict[str, Any]]):
        query = policy.model.query
        if filters:
            query = query.filter_by(**self._prepare_filters(table, policy, filters))
        return query

    def _prepare_filters(self, table: str, policy: TablePolicy, filters: Dict[str, Any]) -> Dict[str, Any]:
        columns = self._columns(policy)
        out = {}
        for key, value in filters.items():
            if key not in columns:
                raise BackendError(f"column {table}.{key} does not exist", table=table)
            out[key] = _coerce(table, columns[key], value)
        return out

    def _check_read(self, table: str, policy: TablePolicy, identity: Optional[str]) -> None:
        if not policy.public_read and identity is None:
            raise AuthorizationError(f"permission denied for table {table}", table=table)

    def _load_for_write(self, table: str, policy: TablePolicy, record_id: str, identity: Optional[str]):
        if identity is None:
            raise AuthorizationError(f"permission denied for table {table}", table=table)
        row = db.session.get(policy.model, record_id)
        if row is None:
            raise NotFoundError(f"No row with id {record_id} in {table}", table=table)
        if policy.owner_column and getattr(row, policy.owner_column) != identity:
            raise AuthorizationError(
                f'row-level security policy for table "{table}" denies access to row {record_id}',
                table=table,
            )
        return row

    def _commit(self, table: str, operation: str) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            message = str(getattr(e, "orig", None) or e)
            logger.warning(f"{operation} on {table} failed: {message}")
            raise BackendError(message, table=table) from e

    # -------------------------
    # Reads
    # -------------------------
    def select(
        self,
        table: str,
        *,
        identity: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Read rows matching equality filters.

        Args:
            table: Table name.
            identity: Acting user id, or None for anonymous reads.
            filters: Column -> value equality filters.
            order_by: Column to sort by. Ties are broken by created_at.
            descending: Sort direction for both keys.
            limit: Maximum number of rows.

        Returns:
            List of row dicts.
        """
        policy = self._policy(table)
        self._check_read(table, policy, identity)
        query = self._query(table, policy, filters)

        model = policy.model
        if order_by is not None:
            if order_by not in self._columns(policy):
                raise BackendError(f"column {table}.{order_by} does not exist", table=table)
            ordering = [getattr(model, order_by)]
            if order_by != "created_at":
                ordering.append(model.created_at)
            query = query.order_by(*[o.desc() if descending else o.asc() for o in ordering])
        if limit is not None:
            query = query.limit(limit)

        try:
            rows = query.all()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning(f"select on {table} failed: {e}")
            raise BackendError(str(getattr(e, "orig", None) or e), table=table) from e
        return [row.to_dict() for row in rows]

    def select_one(
        self,
        table: str,
        *,
        identity: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Return the first matching row, or None when nothing matches."""
        rows = self.select(
            table,
            identity=identity,
            filters=filters,
            order_by=order_by,
            descending=descending,
            limit=1,
        )
        return rows[0] if rows else None

    def count(
        self,
        table: str,
        *,
        identity: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> int:
        policy = self._policy(table)
        self._check_read(table, policy, identity)
        try:
            return self._query(table, policy, filters).count()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise BackendError(str(getattr(e, "orig", None) or e), table=table) from e

    # -------------------------
    # Writes
    # -------------------------
    def insert(self, table: str, values: Dict[str, Any], *, identity: Optional[str] = None) -> Dict[str, Any]:
        """
        Insert one row.

        Owned tables require ``values[user_id] == identity``.

        Returns:
            The stored row as a dict (with server-assigned id and timestamps).
        """
        policy = self._policy(table)
        if policy.owner_column:
            if identity is None or values.get(policy.owner_column) != identity:
                raise AuthorizationError(
                    f'new row violates row-level security policy for table "{table}"',
                    table=table,
                )
        elif identity is None and not policy.anonymous_insert:
            raise AuthorizationError(f"permission denied for table {table}", table=table)

        row = policy.model(**self._prepare(table, policy, values))
        db.session.add(row)
        self._commit(table, "insert")
        logger.debug(f"Inserted {table} row {row.id}")
        return row.to_dict()

    def update(
        self,
        table: str,
        record_id: str,
        values: Dict[str, Any],
        *,
        identity: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Update the row with ``id == record_id``.

        Raises:
            NotFoundError: No such row.
            AuthorizationError: The row belongs to someone else, or the
                update tries to hand it to someone else.
        """
        policy = self._policy(table)
        row = self._load_for_write(table, policy, record_id, identity)
        prepared = self._prepare(table, policy, values)
        if policy.owner_column and prepared.get(policy.owner_column, identity) != identity:
            raise AuthorizationError(
                f'new row violates row-level security policy for table "{table}"',
                table=table,
            )
        for key, value in prepared.items():
            setattr(row, key, value)
        self._commit(table, "update")
        logger.debug(f"Updated {table} row {record_id}")
        return row.to_dict()

    def delete(self, table: str, record_id: str, *, identity: Optional[str] = None) -> None:
        """Delete the row with ``id == record_id``."""
        policy = self._policy(table)
        row = self._load_for_write(table, policy, record_id, identity)
        db.session.delete(row)
        self._commit(table, "delete")
        logger.debug(f"Deleted {table} row {record_id}")
