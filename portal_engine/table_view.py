"""
Admin Table View: client-side orchestration of one admin table.

State per selected table: Idle -> Loading -> Loaded | Errored.  Page,
sort and search changes and every successful create/update/delete
trigger a reload of the current page; nothing is updated optimistically.
A failed reload keeps the previously loaded rows and reports the message
in ``error``.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import replace

from .client import AdminApi, ApiError
from .field_renderer import display_value
from .forms import (FormState, apply_result, build_form, form_controls,
                    on_field_change, submit_form)
from .schema import Schema, parse_schema

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ('created_at', 'updated_at')


class ViewState(enum.Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    LOADED = 'loaded'
    ERRORED = 'errored'


class TableView:
    def __init__(self, api: AdminApi, limit: int = 50):
        self.api = api
        self.limit = limit
        self.table: str | None = None
        self.schema: Schema | None = None
        self.state = ViewState.IDLE
        self.error = ''
        self.rows: list[dict] = []
        self.total = 0
        self.page = 1
        self.sort_field = ''
        self.sort_direction = 'asc'
        self.search = ''
        self.form: FormState | None = None
        self.editing = None          # id of the row open in the edit modal
        self.pending_delete = None   # row awaiting confirmation
        self._request_key = None

    # ------------------------------------------------------------------
    # Derived field lists
    # ------------------------------------------------------------------

    @property
    def visible_fields(self) -> list[str]:
        return [name for name, f in self.schema.properties.items() if not f.primary_key]

    @property
    def sortable_fields(self) -> list[str]:
        return [name for name, f in self.schema.properties.items()
                if f.type in ('string', 'integer', 'number') or f.format == 'date-time']

    @property
    def filterable_fields(self) -> list[str]:
        return [name for name, f in self.schema.properties.items()
                if f.editable and name not in TIMESTAMP_FIELDS
                and f.type in ('string', 'integer')]

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.limit))

    @property
    def showing(self) -> tuple[int, int]:
        """1-based (first, last) row numbers of the current page."""
        if not self.total:
            return 0, 0
        first = (self.page - 1) * self.limit + 1
        return first, min(self.page * self.limit, self.total)

    @property
    def sort(self) -> str | None:
        return f"{self.sort_field}:{self.sort_direction}" if self.sort_field else None

    @property
    def filters(self) -> dict:
        if not self.search:
            return {}
        return {name: self.search for name in self.filterable_fields}

    def display_rows(self) -> list[dict]:
        """Rows rendered in read mode for the visible fields."""
        props = self.schema.properties
        return [{name: display_value(props.get(name), row.get(name)) for name in self.visible_fields}
                for row in self.rows]

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def select_table(self, table: str):
        """Switch to ``table``: load its schema and the first page."""
        self.table = table
        self.schema = None
        self.rows = []
        self.total = 0
        self.page = 1
        self.sort_field = ''
        self.sort_direction = 'asc'
        self.search = ''
        self.close_modal()
        try:
            self.schema = parse_schema(table, self.api.get_schema(table))
        except ApiError as e:
            self.state = ViewState.ERRORED
            self.error = e.message
            return
        self.reload()

    def begin_fetch(self) -> tuple:
        """Mark a fetch as in flight; returns the key of its parameters."""
        key = (self.table, self.page, self.limit, self.sort, self.search)
        self._request_key = key
        self.state = ViewState.LOADING
        return key

    def finish_fetch(self, key: tuple, result: dict | None = None, error: str = '') -> bool:
        """Apply a fetch outcome unless a newer fetch has been started since.

        Returns False when the outcome was discarded as stale.
        """
        if key != self._request_key:
            logger.debug("Discarding stale response for %s", key)
            return False
        if result is None:
            self.state = ViewState.ERRORED
            self.error = error or 'Failed to fetch data'
            return True
        self.rows = result.get('data', [])
        self.total = result.get('total', 0)
        self.state = ViewState.LOADED
        self.error = ''
        return True

    def reload(self):
        key = self.begin_fetch()
        try:
            result = self.api.get_table_rows(self.table, self.page, self.limit,
                                             self.sort, self.filters)
        except ApiError as e:
            logger.warning("Loading %s failed: %s", self.table, e.message)
            self.finish_fetch(key, error=e.message)
            return
        self.finish_fetch(key, result)

    def set_page(self, page: int):
        self.page = min(max(1, page), self.total_pages)
        self.reload()

    def toggle_sort(self, field: str):
        """Same field flips direction; a new field starts ascending."""
        if field not in self.sortable_fields:
            return
        if field == self.sort_field:
            self.sort_direction = 'desc' if self.sort_direction == 'asc' else 'asc'
        else:
            self.sort_field = field
            self.sort_direction = 'asc'
        self.reload()

    def set_search(self, term: str):
        self.search = (term or '').strip()
        self.page = 1
        self.reload()

    # ------------------------------------------------------------------
    # Create / edit modal
    # ------------------------------------------------------------------

    def open_create(self):
        self.form = build_form(self.schema)
        self.editing = None

    def open_edit(self, row: dict):
        self.form = build_form(self.schema, row)
        self.editing = row.get(self.schema.pk)

    def close_modal(self):
        self.form = None
        self.editing = None

    def change_field(self, name: str, value):
        self.form = on_field_change(self.form, self.schema, name, value)

    def controls(self) -> list:
        return form_controls(self.schema, self.form, uploader=self.api)

    def submit(self) -> bool:
        """Submit the open form; on success close it and reload the page."""
        if self.form is None or not self.form.can_submit:
            return False
        if self.editing is None:
            send = lambda payload: self.api.create_row(self.table, payload)
        else:
            send = lambda payload: self.api.update_row(self.table, self.editing, payload)

        self.form = replace(self.form, submitting=True)
        result = submit_form(self.form, self.schema, send)
        self.form = apply_result(self.form, result)
        if not result.ok:
            return False
        self.close_modal()
        self.reload()
        return True

    # ------------------------------------------------------------------
    # Delete (two-phase)
    # ------------------------------------------------------------------

    def request_delete(self, row: dict):
        self.pending_delete = row

    def cancel_delete(self):
        self.pending_delete = None

    def confirm_delete(self) -> bool:
        if self.pending_delete is None:
            return False
        row_id = self.pending_delete.get(self.schema.pk)
        try:
            self.api.delete_row(self.table, row_id)
        except ApiError as e:
            logger.warning("Deleting %s/%s failed: %s", self.table, row_id, e.message)
            self.error = e.message
            return False
        finally:
            self.pending_delete = None
        self.reload()
        return True

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_csv(self) -> tuple[str, bytes] | None:
        """CSV of every row matching the current sort and search.

        Returns None and sets ``error`` when the export fails; the loaded
        rows stay as they are.
        """
        try:
            content = self.api.export_csv(self.table, sort=self.sort, filters=self.filters)
        except ApiError as e:
            logger.warning("Exporting %s failed: %s", self.table, e.message)
            self.error = e.message
            return None
        return f"{self.schema.title}.csv", content
