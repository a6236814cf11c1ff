"""
Form Engine: assemble per-field controls into a create/edit form.

FormState is treated as an immutable value: every change returns a new
state.  Validation runs per field on change and over the whole form on
submit; a form with errors never reaches the network.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, NamedTuple

from .errors import PortalError
from .field_renderer import render_field
from .schema import Schema, validate_field, validate_record

logger = logging.getLogger(__name__)

INVALID_FORM_MESSAGE = 'Please correct the highlighted fields'


@dataclass(frozen=True)
class FormState:
    values: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    initial: dict[str, Any] = field(default_factory=dict)
    mode: str = 'create'  # 'create' | 'edit'
    submitting: bool = False
    submit_error: str = ''

    @property
    def is_dirty(self) -> bool:
        return self.values != self.initial

    @property
    def can_submit(self) -> bool:
        return not self.submitting


class SubmitResult(NamedTuple):
    ok: bool
    payload: dict
    response: Any = None
    errors: dict | None = None
    error: str = ''


def build_form(schema: Schema, initial_values: dict | None = None) -> FormState:
    """Open a form for ``schema``.

    With ``initial_values`` (a persisted row) the form is in edit mode and
    shows every column.  Otherwise it is in create mode and holds the
    declared defaults of the editable fields.
    """
    if initial_values is not None:
        values = dict(initial_values)
        return FormState(values=values, initial=dict(values), mode='edit')

    values = {f.name: f.default for f in schema.editable_fields() if f.default is not None}
    return FormState(values=values, initial=dict(values), mode='create')


def on_field_change(state: FormState, schema: Schema, name: str, value) -> FormState:
    """Return a new state with ``name`` set to ``value`` and revalidated."""
    fdef = schema.field(name)
    if not fdef.editable:
        return state

    values = {**state.values, name: value}
    errors = dict(state.errors)
    message = validate_field(fdef, value)
    if message:
        errors[name] = message
    else:
        errors.pop(name, None)
    return replace(state, values=values, errors=errors)


def form_payload(schema: Schema, values: dict) -> dict:
    """Outgoing payload: editable schema fields only."""
    return {k: v for k, v in values.items()
            if k in schema.properties and schema.properties[k].editable}


def validate_form(schema: Schema, state: FormState) -> dict[str, str]:
    return validate_record(schema, form_payload(schema, state.values))


def form_controls(schema: Schema, state: FormState, uploader=None) -> list:
    """Controls for every field shown in the form, in schema order."""
    controls = []
    for fdef in schema.properties.values():
        if state.mode == 'create' and not fdef.editable:
            continue
        control = render_field(fdef, state.values.get(fdef.name), uploader=uploader).control
        control.error = state.errors.get(fdef.name)
        controls.append(control)
    return controls


def submit_form(state: FormState, schema: Schema,
                submit: Callable[[dict], Any]) -> SubmitResult:
    """Validate and hand the payload to ``submit``.

    Args:
        state: Current form state
        schema: Table schema
        submit: Called with the payload; raises PortalError on failure

    Returns:
        SubmitResult(ok, payload, response, errors, error)
    """
    payload = form_payload(schema, state.values)
    errors = validate_record(schema, payload)
    if errors:
        return SubmitResult(False, payload, errors=errors, error=INVALID_FORM_MESSAGE)

    try:
        response = submit(payload)
    except PortalError as e:
        logger.warning("Submitting %s form failed: %s", schema.id, e.message)
        details = e.details if isinstance(e.details, dict) else {}
        return SubmitResult(False, payload, errors=details, error=e.message)

    return SubmitResult(True, payload, response=response)


def apply_result(state: FormState, result: SubmitResult) -> FormState:
    """Fold a failed submission back into the form."""
    if result.ok:
        return replace(state, submitting=False, submit_error='', errors={})
    return replace(state, submitting=False, submit_error=result.error,
                   errors={**state.errors, **(result.errors or {})})
