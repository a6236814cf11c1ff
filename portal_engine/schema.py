"""
Schema Model: parse JSON Schema table documents into validated schemas.

Provides FieldSpec/Schema dataclasses, the SchemaRegistry that resolves
table identifiers, and the record validation shared by the form engine
and the write endpoints.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

from .errors import NotFoundError

logger = logging.getLogger(__name__)

FIELD_TYPES = {'string', 'integer', 'number', 'boolean'}

# Range of a SQLite INTEGER column
INTEGER_MIN = -2 ** 63
INTEGER_MAX = 2 ** 63 - 1

# Title keywords that mark an integer column as a 0/1 flag
BOOLEAN_FLAG_KEYWORDS = ('active', 'enabled', 'sent')


@dataclass
class FieldSpec:
    name: str
    type: str = 'string'       # 'string', 'integer', 'number', 'boolean'
    title: str | None = None
    description: str | None = None
    format: str | None = None  # 'date-time', 'date', 'email', 'uri'
    widget: str | None = None  # 'rich_text', 'textarea', 'file_url', 'media_url', 'web_url', 'checkbox'
    read_only: bool = False
    primary_key: bool = False
    required: bool = False
    enum: list | None = None
    enum_names: list | None = None
    min_length: int | None = None
    max_length: int | None = None
    minimum: float | None = None
    maximum: float | None = None
    default: Any = None
    unique: bool = False
    index: bool = False

    @property
    def label(self) -> str:
        return self.title or self.name

    @property
    def editable(self) -> bool:
        return not (self.read_only or self.primary_key)

    @property
    def is_boolean_flag(self) -> bool:
        """Integer column rendered as a 0/1 toggle."""
        if self.type != 'integer':
            return False
        title = self.label.lower()
        if any(kw in title for kw in BOOLEAN_FLAG_KEYWORDS):
            return True
        return bool(self.enum) and len(self.enum) == 2


@dataclass
class Schema:
    id: str
    title: str
    description: str = ''
    properties: dict[str, FieldSpec] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)
    raw: dict = field(default_factory=dict)

    def field(self, name: str) -> FieldSpec:
        try:
            return self.properties[name]
        except KeyError:
            raise NotFoundError(f"Unknown field '{name}' in table '{self.id}'") from None

    @property
    def pk(self) -> str:
        return next((f.name for f in self.properties.values() if f.primary_key), 'id')

    @property
    def columns(self) -> list[str]:
        return list(self.properties)

    def editable_fields(self) -> list[FieldSpec]:
        return [f for f in self.properties.values() if f.editable]

    def to_document(self) -> dict:
        """The schema document as served to clients."""
        if self.raw:
            return self.raw
        return {
            '$id': f'urn:table:{self.id}',
            'title': self.title,
            'description': self.description,
            'type': 'object',
            'required': list(self.required),
            'properties': {name: _field_document(f) for name, f in self.properties.items()},
        }


def _field_document(f: FieldSpec) -> dict:
    doc = {'type': f.type, 'title': f.label}
    optional = {
        'description': f.description, 'format': f.format, 'widget': f.widget,
        'enum': f.enum, 'enumNames': f.enum_names, 'minLength': f.min_length,
        'maxLength': f.max_length, 'minimum': f.minimum, 'maximum': f.maximum,
        'default': f.default,
    }
    doc.update({k: v for k, v in optional.items() if v is not None})
    if f.read_only:
        doc['readOnly'] = True
    if f.primary_key:
        doc['primaryKey'] = True
    return doc


def parse_schema(table: str, doc: dict) -> Schema:
    """Parse one JSON Schema table document.

    Args:
        table: Table identifier (also the resource name)
        doc: Parsed JSON document with 'properties' and optional 'required'

    Returns:
        Schema with properties in document order
    """
    required = list(doc.get('required', []))
    properties = {}

    for fname, fdef in doc.get('properties', {}).items():
        ftype = fdef.get('type', 'string')
        if ftype not in FIELD_TYPES:
            logger.warning("Field %s.%s has unknown type '%s'; rendering as text",
                           table, fname, ftype)
        properties[fname] = FieldSpec(
            name=fname,
            type=ftype,
            title=fdef.get('title'),
            description=fdef.get('description'),
            format=fdef.get('format'),
            widget=fdef.get('widget'),
            read_only=bool(fdef.get('readOnly', False)),
            primary_key=bool(fdef.get('primaryKey', False)),
            required=fname in required,
            enum=fdef.get('enum'),
            enum_names=fdef.get('enumNames'),
            min_length=fdef.get('minLength'),
            max_length=fdef.get('maxLength'),
            minimum=fdef.get('minimum'),
            maximum=fdef.get('maximum'),
            default=fdef.get('default'),
            unique=bool(fdef.get('unique', False)),
            index=bool(fdef.get('index', False)),
        )

    return Schema(
        id=table,
        title=doc.get('title') or table,
        description=doc.get('description', ''),
        properties=properties,
        required=required,
        raw=doc,
    )


class SchemaRegistry:
    """The static, enumerable set of table schemas of one deployment."""

    def __init__(self, schemas: dict[str, Schema]):
        self._schemas = dict(schemas)

    @classmethod
    def from_directory(cls, path: str) -> 'SchemaRegistry':
        schemas = {}
        for filename in sorted(os.listdir(path)):
            if not filename.endswith('.json'):
                continue
            table = filename[:-len('.json')]
            with open(os.path.join(path, filename), encoding='utf-8') as f:
                schemas[table] = parse_schema(table, json.load(f))
        logger.info("Loaded %d table schemas from %s", len(schemas), path)
        return cls(schemas)

    def names(self) -> list[str]:
        return sorted(self._schemas)

    def get(self, table: str) -> Schema:
        try:
            return self._schemas[table]
        except KeyError:
            raise NotFoundError(f"Schema not found: {table}") from None

    def __contains__(self, table) -> bool:
        return table in self._schemas

    def __iter__(self):
        return iter(self._schemas.values())


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def is_empty(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')


def _as_number(fdef: FieldSpec, value):
    """Return the numeric value, or None when the value has the wrong type."""
    if isinstance(value, bool):
        return None
    if fdef.type == 'integer':
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().lstrip('-').isdigit():
            return int(value)
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def validate_field(fdef: FieldSpec, value) -> str | None:
    """Validate a single value; returns an error message or None."""
    if is_empty(value):
        if fdef.required:
            return f"{fdef.label} is required"
        return None

    if fdef.type in ('integer', 'number'):
        number = _as_number(fdef, value)
        if number is None:
            kind = 'an integer' if fdef.type == 'integer' else 'a number'
            return f"{fdef.label} must be {kind}"
        if fdef.type == 'integer' and not INTEGER_MIN <= number <= INTEGER_MAX:
            return f"{fdef.label} is out of range"
        if fdef.minimum is not None and number < fdef.minimum:
            return f"{fdef.label} must be at least {fdef.minimum}"
        if fdef.maximum is not None and number > fdef.maximum:
            return f"{fdef.label} must be at most {fdef.maximum}"
    elif fdef.type == 'boolean':
        if value not in (True, False, 0, 1):
            return f"{fdef.label} must be true or false"
    elif fdef.type == 'string':
        if not isinstance(value, str):
            return f"{fdef.label} must be text"
        if fdef.min_length is not None and len(value) < fdef.min_length:
            return f"{fdef.label} must be at least {fdef.min_length} characters"
        if fdef.max_length is not None and len(value) > fdef.max_length:
            return f"{fdef.label} must be at most {fdef.max_length} characters"

    if fdef.enum and str(value) not in [str(v) for v in fdef.enum]:
        # 0/1 flags may declare their states as enum members
        if not (fdef.is_boolean_flag and value in (0, 1)):
            return f"{fdef.label} must be one of: {', '.join(map(str, fdef.enum))}"

    return None


def validate_record(schema: Schema, data: dict, partial: bool = False) -> dict[str, str]:
    """Validate a row payload against a schema.

    Args:
        schema: The table schema
        data: Field name -> value
        partial: True for updates; fields absent from ``data`` are not checked

    Returns:
        Dict mapping field name to error message (empty = valid)
    """
    errors = {}

    for key in data:
        if key not in schema.properties:
            errors[key] = f"Unknown field: {key}"

    for fname, fdef in schema.properties.items():
        if not fdef.editable:
            continue
        if partial and fname not in data:
            continue
        message = validate_field(fdef, data.get(fname))
        if message:
            errors[fname] = message

    return errors
