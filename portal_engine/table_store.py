"""
Table Store: generic list/create/update/delete/export driven by a Schema.

All SQL uses parameterized queries.  The table name comes from the schema
registry and column names are validated against the schema whitelist
before inclusion in SQL statements.  Each operation holds one pooled
connection for its duration.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

from .ddl import quote_identifier as q
from .errors import NotFoundError, StoreError, ValidationError
from .schema import Schema, validate_record

logger = logging.getLogger(__name__)

SORT_DIRECTIONS = ('asc', 'desc')


def utc_now() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    now = datetime.now(timezone.utc)
    return now.strftime('%Y-%m-%dT%H:%M:%S.') + f'{now.microsecond // 1000:03d}Z'


def parse_sort(sort: str | None, columns) -> tuple[str, str] | None:
    """Parse ``field:direction``; returns None for anything malformed."""
    if not sort:
        return None
    parts = sort.split(':')
    if len(parts) != 2:
        return None
    field, direction = parts
    if field not in columns or direction not in SORT_DIRECTIONS:
        return None
    return field, direction


def _escape_like(term: str) -> str:
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


class TableStore:
    def __init__(self, pool, schema: Schema):
        self.pool = pool
        self.schema = schema
        self.table = schema.id
        self.pk = schema.pk

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    def _order_by(self, sort: str | None) -> str:
        parsed = parse_sort(sort, self.schema.properties)
        if parsed is None:
            if sort:
                logger.debug("Ignoring malformed sort '%s' on %s", sort, self.table)
            return f" ORDER BY {q(self.pk)} DESC"
        field, direction = parsed
        return f" ORDER BY {q(field)} {direction.upper()}"

    def _where(self, filters: dict | None) -> tuple[str, list]:
        """OR-combine per-field substring filters."""
        if not filters:
            return '', []
        or_parts = []
        params = []
        for field, term in filters.items():
            if field not in self.schema.properties or term in (None, ''):
                continue
            or_parts.append(f"CAST({q(field)} AS TEXT) LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(str(term))}%")
        if not or_parts:
            return '', []
        return f" WHERE ({' OR '.join(or_parts)})", params

    def _writable(self, data: dict, partial: bool) -> dict:
        """Drop identity/computed keys and validate the rest against the schema."""
        clean = {k: v for k, v in data.items()
                 if k not in self.schema.properties or self.schema.properties[k].editable}
        errors = validate_record(self.schema, clean, partial=partial)
        if errors:
            raise ValidationError(f"Invalid {self.schema.title} record", details=errors)
        return clean

    def _fail(self, operation: str, error: Exception):
        logger.error("Table %s %s failed: %s", self.table, operation, error)
        raise StoreError(self.table, str(error)) from error

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def list(self, page=1, limit=50, sort=None, filters=None) -> dict:
        """One page of rows plus the total row count."""
        where, params = self._where(filters)
        offset = (page - 1) * limit
        try:
            with self.pool.connection() as conn:
                total = conn.execute(
                    f"SELECT COUNT(*) FROM {q(self.table)}{where}", params).fetchone()[0]
                cursor = conn.execute(
                    f"SELECT * FROM {q(self.table)}{where}{self._order_by(sort)} "
                    f"LIMIT ? OFFSET ?", params + [limit, offset])
                rows = [dict(r) for r in cursor.fetchall()]
        except (sqlite3.Error, OverflowError) as e:
            self._fail('list', e)

        return {
            'data': rows,
            'total': total,
            'page': page,
            'limit': limit,
        }

    def read(self, pk_value) -> dict | None:
        """SELECT a single row by PK."""
        try:
            with self.pool.connection() as conn:
                row = conn.execute(
                    f"SELECT * FROM {q(self.table)} WHERE {q(self.pk)} = ?",
                    (pk_value,)).fetchone()
        except (sqlite3.Error, OverflowError) as e:
            self._fail('read', e)
        return dict(row) if row else None

    def create(self, data: dict) -> int:
        """INSERT a new row and return the generated identifier."""
        clean = self._writable(data, partial=False)
        now = utc_now()
        clean['created_at'] = now
        clean['updated_at'] = now

        cols = ', '.join(q(c) for c in clean)
        placeholders = ', '.join('?' for _ in clean)
        sql = f"INSERT INTO {q(self.table)} ({cols}) VALUES ({placeholders})"
        try:
            with self.pool.connection() as conn:
                cursor = conn.execute(sql, list(clean.values()))
                new_id = cursor.lastrowid
        except (sqlite3.Error, OverflowError) as e:
            self._fail('insert', e)

        logger.info("Created %s row %s", self.table, new_id)
        return new_id

    def update(self, pk_value, data: dict) -> int:
        """Partial UPDATE by identifier; returns the affected row count."""
        clean = self._writable(data, partial=True)
        clean['updated_at'] = utc_now()

        set_clause = ', '.join(f"{q(k)} = ?" for k in clean)
        sql = f"UPDATE {q(self.table)} SET {set_clause} WHERE {q(self.pk)} = ?"
        try:
            with self.pool.connection() as conn:
                affected = conn.execute(sql, list(clean.values()) + [pk_value]).rowcount
        except (sqlite3.Error, OverflowError) as e:
            self._fail('update', e)

        if not affected:
            raise NotFoundError(f"Row not found: {self.table}/{pk_value}")
        return affected

    def delete(self, pk_value) -> int:
        """DELETE a row by identifier; returns the affected row count."""
        sql = f"DELETE FROM {q(self.table)} WHERE {q(self.pk)} = ?"
        try:
            with self.pool.connection() as conn:
                affected = conn.execute(sql, (pk_value,)).rowcount
        except (sqlite3.Error, OverflowError) as e:
            self._fail('delete', e)

        logger.info("Deleted %d %s row(s) with %s=%s", affected, self.table, self.pk, pk_value)
        return affected

    def select(self, equals: dict | None = None, order: tuple[str, str] | None = None) -> list[dict]:
        """All rows whose columns equal ``equals``, optionally ordered by (field, direction)."""
        clauses, params = [], []
        for field, value in (equals or {}).items():
            self.schema.field(field)
            clauses.append(f"{q(field)} = ?")
            params.append(value)
        sql = f"SELECT * FROM {q(self.table)}"
        if clauses:
            sql += f" WHERE {' AND '.join(clauses)}"
        if order:
            sql += self._order_by(f"{order[0]}:{order[1]}")
        try:
            with self.pool.connection() as conn:
                return [dict(r) for r in conn.execute(sql, params).fetchall()]
        except (sqlite3.Error, OverflowError) as e:
            self._fail('select', e)

    def find_by(self, field: str, value) -> dict | None:
        """First row whose ``field`` equals ``value``."""
        self.schema.field(field)
        try:
            with self.pool.connection() as conn:
                row = conn.execute(
                    f"SELECT * FROM {q(self.table)} WHERE {q(field)} = ? LIMIT 1",
                    (value,)).fetchone()
        except (sqlite3.Error, OverflowError) as e:
            self._fail('read', e)
        return dict(row) if row else None

    def export(self, sort=None, filters=None) -> list[dict]:
        """All matching rows, no pagination."""
        where, params = self._where(filters)
        try:
            with self.pool.connection() as conn:
                cursor = conn.execute(
                    f"SELECT * FROM {q(self.table)}{where}{self._order_by(sort)}", params)
                return [dict(r) for r in cursor.fetchall()]
        except (sqlite3.Error, OverflowError) as e:
            self._fail('export', e)
