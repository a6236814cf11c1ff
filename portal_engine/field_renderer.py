"""
Field Renderer: resolve a FieldSpec + value into an input control.

Resolution walks FIELD_RULES in order and the first matching predicate
wins.  Several predicates overlap (an integer flag with a two-member enum
is also an enum field), so the order of the table is significant.

Each control carries its value codec: ``encode`` turns raw widget input
into the stored value, ``decode`` turns a stored value into widget input.
Only upload controls have a side effect (an asynchronous upload through
the admin API).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, NamedTuple

import anyio
from jinja2 import Environment, PackageLoader, select_autoescape

from .errors import PortalError
from .export import strip_tags
from .sanitize import sanitize_html
from .schema import FieldSpec

logger = logging.getLogger(__name__)

TRUTHY = (True, 1, '1', 'true', 'on')

RICH_TEXT_TOOLBAR = [
    [{'header': [1, 2, 3, False]}],
    ['bold', 'italic', 'underline', 'strike'],
    [{'list': 'ordered'}, {'list': 'bullet'}],
    ['link', 'blockquote'],
    ['clean'],
]


def _identity(value):
    return value


@dataclass
class Control:
    kind: str
    field: FieldSpec
    input_type: str | None = None
    attrs: dict = field(default_factory=dict)
    options: list[tuple[str, str]] = field(default_factory=list)
    encode: Callable[[Any], Any] = _identity
    decode: Callable[[Any], Any] = _identity
    value: Any = None
    on_change: Callable[[Any], None] | None = None
    error: str | None = None

    @property
    def read_only(self) -> bool:
        return self.kind == 'readonly'

    @property
    def display(self):
        """The stored value as the widget shows it."""
        return self.decode(self.value)

    def change(self, raw):
        """Encode widget input, store it and notify the owner."""
        if self.read_only:
            return self.value
        self.value = self.encode(raw)
        if self.on_change is not None:
            self.on_change(self.value)
        return self.value

    def render_html(self):
        return _field_macros().render_control(self)


@dataclass
class UploadControl(Control):
    is_media: bool = False
    uploader: Any = None
    uploading: bool = False
    upload_error: str = ''

    async def upload(self, filename: str, data: bytes,
                     content_type: str = 'application/octet-stream') -> str | None:
        """Upload a local file and make the returned URL the field value.

        A second call while an upload is in flight is ignored.  Failures
        are kept in ``upload_error`` and leave the value untouched.
        """
        if self.uploading:
            logger.debug("Upload already in progress for %s", self.field.name)
            return None
        if self.uploader is None:
            self.upload_error = 'Uploads are not available'
            return None

        send = self.uploader.upload_media if self.is_media else self.uploader.upload_file
        self.uploading = True
        self.upload_error = ''
        try:
            url = await anyio.to_thread.run_sync(send, filename, data, content_type)
        except PortalError as e:
            logger.warning("Upload for %s failed: %s", self.field.name, e.message)
            self.upload_error = e.message or 'Upload failed'
            return None
        finally:
            self.uploading = False

        self.change(url)
        return url

    def clear(self):
        return self.change('')


class RenderedField(NamedTuple):
    control: Control
    encode: Callable[[Any], Any]
    decode: Callable[[Any], Any]


# ---------------------------------------------------------------------------
# Codecs
# ---------------------------------------------------------------------------

def encode_text(raw):
    return '' if raw is None else str(raw)


def decode_text(value):
    return '' if value is None else str(value)


def encode_date(raw):
    if raw in (None, ''):
        return ''
    day = datetime.strptime(str(raw)[:10], '%Y-%m-%d')
    return day.strftime('%Y-%m-%d') + 'T00:00:00.000Z'


def decode_date(value):
    return value.split('T')[0] if value else ''


def encode_datetime(raw):
    if raw in (None, ''):
        return ''
    minute = datetime.strptime(str(raw).replace(' ', 'T')[:16], '%Y-%m-%dT%H:%M')
    return minute.strftime('%Y-%m-%dT%H:%M') + ':00.000Z'


def decode_datetime(value):
    return value.replace('Z', '')[:16] if value else ''


def encode_bool(raw):
    return raw in TRUTHY


def encode_flag(raw):
    return 1 if raw in TRUTHY else 0


def decode_flag(value):
    return value in TRUTHY


def encode_int(raw):
    if raw is None or raw == '':
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    return int(str(raw).strip(), 10)


def encode_float(raw):
    if raw is None or raw == '':
        return None
    return float(raw)


def decode_number(value):
    return '' if value is None else value


def encode_choice(raw):
    return None if raw in (None, '') else raw


# ---------------------------------------------------------------------------
# Rules, in precedence order
# ---------------------------------------------------------------------------

def _title(f: FieldSpec) -> str:
    return f.label.lower()


def _is_string(f: FieldSpec) -> bool:
    return f.type == 'string'


def _text_attrs(f: FieldSpec) -> dict:
    attrs = {}
    if f.min_length is not None:
        attrs['minlength'] = f.min_length
    if f.max_length is not None:
        attrs['maxlength'] = f.max_length
    return attrs


def _number_attrs(f: FieldSpec, step) -> dict:
    attrs = {'step': step}
    if f.minimum is not None:
        attrs['min'] = f.minimum
    if f.maximum is not None:
        attrs['max'] = f.maximum
    return attrs


def _readonly(f):
    return Control('readonly', f, 'text', {'readonly': True}, decode=decode_text)


def _rich_text(f):
    return Control('rich_text', f, None, {'data-toolbar': RICH_TEXT_TOOLBAR},
                   encode=sanitize_html, decode=decode_text)


def _upload(f):
    is_media = f.widget == 'media_url' or 'image' in _title(f)
    accept = 'image/*,video/*' if is_media else '*/*'
    return UploadControl('upload', f, 'file', {'accept': accept},
                         encode=encode_text, decode=decode_text, is_media=is_media)


def _date(f):
    if f.format == 'date':
        return Control('date', f, 'date', encode=encode_date, decode=decode_date)
    return Control('datetime', f, 'datetime-local',
                   encode=encode_datetime, decode=decode_datetime)


def _checkbox(f):
    return Control('checkbox', f, 'checkbox', encode=encode_bool, decode=encode_bool)


def _flag(f):
    return Control('flag', f, 'checkbox', encode=encode_flag, decode=decode_flag)


def _integer(f):
    return Control('integer', f, 'number', _number_attrs(f, 1),
                   encode=encode_int, decode=decode_number)


def _number(f):
    return Control('number', f, 'number', _number_attrs(f, 'any'),
                   encode=encode_float, decode=decode_number)


def _email(f):
    return Control('email', f, 'email', _text_attrs(f), encode=encode_text, decode=decode_text)


def _url(f):
    attrs = {'placeholder': 'https://...', **_text_attrs(f)}
    return Control('url', f, 'url', attrs, encode=encode_text, decode=decode_text)


def _textarea(f):
    attrs = {'rows': 4, **_text_attrs(f)}
    return Control('textarea', f, None, attrs, encode=encode_text, decode=decode_text)


def _select(f):
    values = [str(v) for v in f.enum]
    labels = f.enum_names if f.enum_names and len(f.enum_names) == len(values) else values
    options = [(v, str(label)) for v, label in zip(values, labels)]
    return Control('select', f, 'select', options=options,
                   encode=encode_choice, decode=decode_text)


def _text(f):
    return Control('text', f, 'text', _text_attrs(f), encode=encode_text, decode=decode_text)


FIELD_RULES: list[tuple[str, Callable[[FieldSpec], bool], Callable[[FieldSpec], Control]]] = [
    ('readonly', lambda f: f.read_only or f.primary_key, _readonly),
    ('rich_text', lambda f: _is_string(f) and 'rich_text' in (f.widget, f.format), _rich_text),
    ('upload', lambda f: _is_string(f) and (
        f.widget in ('file_url', 'media_url')
        or (f.format == 'uri' and ('image' in _title(f) or 'file' in _title(f)))), _upload),
    ('date', lambda f: _is_string(f) and f.format in ('date-time', 'date'), _date),
    ('checkbox', lambda f: f.type == 'boolean' or f.widget == 'checkbox', _checkbox),
    ('flag', lambda f: f.type == 'integer' and f.is_boolean_flag, _flag),
    ('integer', lambda f: f.type == 'integer', _integer),
    ('number', lambda f: f.type == 'number', _number),
    ('email', lambda f: _is_string(f) and f.format == 'email', _email),
    ('url', lambda f: _is_string(f) and (f.format == 'uri' or f.widget == 'web_url'), _url),
    ('textarea', lambda f: _is_string(f) and (
        f.widget == 'textarea' or (f.max_length or 0) > 255), _textarea),
    ('select', lambda f: bool(f.enum), _select),
]


def resolve_rule(fdef: FieldSpec) -> str:
    """Name of the first rule matching ``fdef`` ('text' when none does)."""
    for name, predicate, _ in FIELD_RULES:
        if predicate(fdef):
            return name
    return 'text'


def render_field(fdef: FieldSpec, value=None, on_change=None, uploader=None) -> RenderedField:
    """Build the control for one field.

    Args:
        fdef: Field specification
        value: Current stored value
        on_change: Called with the encoded value after every edit
        uploader: Object with ``upload_media``/``upload_file`` (e.g. AdminApi)

    Returns:
        RenderedField(control, encode, decode)
    """
    builder = _text
    for _, predicate, candidate in FIELD_RULES:
        if predicate(fdef):
            builder = candidate
            break

    control = builder(fdef)
    control.value = value
    if not control.read_only:
        control.on_change = on_change
    if isinstance(control, UploadControl):
        control.uploader = uploader
    control.attrs = dict(control.attrs)
    if fdef.required and not control.read_only and control.kind not in ('checkbox', 'flag'):
        control.attrs['required'] = True
    return RenderedField(control, control.encode, control.decode)


# ---------------------------------------------------------------------------
# Read mode
# ---------------------------------------------------------------------------

def _truncate(text: str, length: int) -> str:
    return f"{text[:length]}..." if len(text) > length else text


def display_value(fdef: FieldSpec | None, value) -> str:
    """Short text rendering of a stored value for table cells."""
    if value is None:
        return '-'
    if fdef is None:
        return _truncate(str(value), 50) if isinstance(value, str) else str(value)

    if fdef.is_boolean_flag and value in (0, 1):
        return 'Yes' if value == 1 else 'No'
    if 'rich_text' in (fdef.widget, fdef.format) and isinstance(value, str):
        return _truncate(strip_tags(value), 100)
    if fdef.widget in ('file_url', 'media_url'):
        return 'View File' if value else '-'
    if fdef.format == 'uri' or fdef.widget == 'web_url':
        return _truncate(str(value), 30)
    if fdef.format == 'date-time' and isinstance(value, str):
        return value.split('T')[0]
    if isinstance(value, str):
        return _truncate(value, 50)
    return str(value)


@lru_cache(maxsize=1)
def _template_env() -> Environment:
    return Environment(
        loader=PackageLoader('portal_engine', 'templates'),
        autoescape=select_autoescape(['html']),
    )


def _field_macros():
    return _template_env().get_template('fields.html').module
