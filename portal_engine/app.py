"""
Portal Web Interface
FastAPI application serving the admin CRUD API and public content reads
"""

from contextlib import asynccontextmanager
from typing import Any, Optional
import json
import logging
import math
import os

import anyio
from fastapi import BackgroundTasks, Body, Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, StreamingResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from portal_engine_core import ConnectionPool, LocalFileStorage, StorageError
from portal_engine_core import get_pool, set_pool
from portal_engine_core.storage import KINDS, safe_filename
from portal_engine import __version__ as ENGINE_VERSION
from portal_engine.auth import (Identity, TokenAuthBackend, _set_admin_email, _set_auth_backend,
                                is_admin, require_admin, require_user)
from portal_engine.config import Settings
from portal_engine.ddl import create_tables
from portal_engine.errors import NotFoundError, PortalError, StoreError, UploadError, ValidationError
from portal_engine.export import iter_csv
from portal_engine.field_renderer import display_value
from portal_engine.forms import build_form, form_controls
from portal_engine.notify import run_notification
from portal_engine.schema import INTEGER_MAX, INTEGER_MIN, SchemaRegistry
from portal_engine.table_store import TableStore, utc_now

logger = logging.getLogger(__name__)

# Process-wide collaborators, installed by configure() at startup
_settings: Optional[Settings] = None
_registry: Optional[SchemaRegistry] = None
_storage: Optional[LocalFileStorage] = None

# Highest page number accepted by paginated endpoints
MAX_PAGE = 1_000_000

# Public forms whose submissions are persisted, keyed by formId
FORM_TABLES = {
    'contact_form': 'contact_submissions',
    'event_booking': 'eventbookings',
}


def configure(settings: Settings, pool: Optional[ConnectionPool] = None,
              registry: Optional[SchemaRegistry] = None):
    """Install settings, schemas, pool, storage and auth (startup and testing)."""
    global _settings, _registry, _storage
    _settings = settings
    _registry = registry or SchemaRegistry.from_directory(settings.schema_dir)
    if pool is None:
        pool = ConnectionPool(settings.db_path, size=settings.pool_size,
                              timeout=settings.pool_timeout)
        with pool.connection() as conn:
            create_tables(conn, _registry)
    set_pool(pool)
    _storage = LocalFileStorage(settings.upload_dir, settings.upload_base_url)
    _set_auth_backend(TokenAuthBackend(settings.admin_tokens))
    _set_admin_email(settings.admin_email)
    logger.info("Portal configured: db=%s, %d tables", settings.db_path, len(_registry.names()))


def _reset_configuration():
    """Forget installed collaborators (for testing)."""
    global _settings, _registry, _storage
    _settings = None
    _registry = None
    _storage = None


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if _registry is None:
        configure(Settings.from_env())
    yield


app = FastAPI(title="Portal Engine", version=ENGINE_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Settings.from_env().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

templates = Jinja2Templates(directory=os.path.join(os.path.dirname(__file__), "templates"))


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


# ---------------------------------------------------------------------------
# Pydantic response models
# ---------------------------------------------------------------------------

class TablePage(BaseModel):
    data: list[dict[str, Any]]
    total: int
    page: int
    limit: int

class CreateResponse(BaseModel):
    id: int

class SuccessResponse(BaseModel):
    success: bool

class DeleteResponse(BaseModel):
    success: bool
    affected: int

class UploadResponse(BaseModel):
    url: str

class AdminStatus(BaseModel):
    isAdmin: bool

class ServerInfo(BaseModel):
    engine_version: str
    database_path: str
    pool_size: int
    database_connection_status: str
    tables: list[str]

class FormSubmitResponse(BaseModel):
    success: bool
    message: str

class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _store(table: str) -> TableStore:
    """Resolve a table name through the schema registry (the table allow-list)."""
    return TableStore(get_pool(), _registry.get(table))


def _coerce_pk(value: str):
    """Integer ids within the INTEGER range; anything else stays text and matches no row."""
    try:
        number = int(value)
    except ValueError:
        return value
    return number if INTEGER_MIN <= number <= INTEGER_MAX else value


def _like_filters(request: Request) -> dict:
    """Collect ``<field>_like`` query parameters into a field -> term map."""
    return {key[:-len('_like')]: term
            for key, term in request.query_params.items()
            if key.endswith('_like') and term}


def _public_list(table: str, equals=None, order=None) -> list:
    """Public list reads degrade to an empty list on data-access failure."""
    try:
        return _store(table).select(equals=equals, order=order)
    except StoreError as e:
        logger.error("Serving empty %s list: %s", table, e.underlying)
        return []


def _public_detail(table: str, slug: str, label: str) -> dict:
    row = _store(table).find_by('slug', slug)
    if row is None:
        raise NotFoundError(f"{label} not found")
    return row


# ---------------------------------------------------------------------------
# Admin: identity and diagnostics
# ---------------------------------------------------------------------------

@app.get('/health')
def health():
    return {'status': 'ok'}


@app.get('/api/admin/status', response_model=AdminStatus)
def api_admin_status(user: Identity = Depends(require_user)):
    """Whether the authenticated caller is the admin identity."""
    return {'isAdmin': is_admin(user)}


@app.get('/api/admin/server-info', response_model=ServerInfo,
         responses={403: {"model": ErrorResponse}})
def api_server_info(user: Identity = Depends(require_admin)):
    pool = get_pool()
    return {
        'engine_version': ENGINE_VERSION,
        'database_path': pool.db_path,
        'pool_size': pool.size,
        'database_connection_status': 'Connected' if pool.ping() else 'Disconnected',
        'tables': _registry.names(),
    }


# ---------------------------------------------------------------------------
# Admin: schemas and generic tables
# ---------------------------------------------------------------------------

@app.get('/api/schemas', response_model=list[str])
def api_schemas(user: Identity = Depends(require_admin)):
    """Known table identifiers, for admin navigation."""
    return _registry.names()


@app.get('/api/schemas/{table}', responses={404: {"model": ErrorResponse}})
def api_schema(table: str, user: Identity = Depends(require_admin)):
    return _registry.get(table).to_document()


@app.get('/api/tables/{table}', response_model=TablePage,
         responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
def api_table_list(table: str, request: Request,
                   page: int = Query(1, ge=1, le=MAX_PAGE),
                   limit: int = Query(50, ge=1, le=1000),
                   sort: Optional[str] = None,
                   user: Identity = Depends(require_admin)):
    """One page of rows; ``<field>_like`` parameters are OR-combined."""
    return _store(table).list(page=page, limit=limit, sort=sort,
                              filters=_like_filters(request))


@app.post('/api/tables/{table}', status_code=201, response_model=CreateResponse,
          responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}})
def api_table_create(table: str, data: dict[str, Any] = Body(...),
                     user: Identity = Depends(require_admin)):
    """Insert a row; returns the generated id."""
    return {'id': _store(table).create(data)}


@app.put('/api/tables/{table}/{row_id}', response_model=SuccessResponse,
         responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}})
def api_table_update(table: str, row_id: str, data: dict[str, Any] = Body(...),
                     user: Identity = Depends(require_admin)):
    """Partially update a row by id."""
    _store(table).update(_coerce_pk(row_id), data)
    return {'success': True}


@app.delete('/api/tables/{table}/{row_id}', response_model=DeleteResponse,
            responses={404: {"model": ErrorResponse}})
def api_table_delete(table: str, row_id: str, user: Identity = Depends(require_admin)):
    affected = _store(table).delete(_coerce_pk(row_id))
    return {'success': True, 'affected': affected}


@app.get('/api/tables/{table}/export', response_class=StreamingResponse,
         responses={404: {"model": ErrorResponse}})
def api_table_export(table: str, request: Request, sort: Optional[str] = None,
                     user: Identity = Depends(require_admin)):
    """Every matching row as CSV."""
    rows = _store(table).export(sort=sort, filters=_like_filters(request))
    if not rows:
        raise NotFoundError("No data to export")
    return StreamingResponse(
        iter_csv(rows),
        media_type='text/csv; charset=utf-8',
        headers={'Content-Disposition': f'attachment; filename="{table}.csv"'},
    )


# ---------------------------------------------------------------------------
# Admin: uploads
# ---------------------------------------------------------------------------

async def _store_upload(kind: str, file: UploadFile) -> dict:
    data = await file.read()
    if not data:
        raise UploadError("No file provided")
    try:
        url = await anyio.to_thread.run_sync(_storage.save, kind, file.filename, data)
    except StorageError as e:
        raise PortalError("Upload failed", details=str(e)) from e
    return {'url': url}


@app.post('/api/upload/media', response_model=UploadResponse,
          responses={400: {"model": ErrorResponse}})
async def api_upload_media(file: UploadFile = File(...),
                           user: Identity = Depends(require_admin)):
    """Store an image or video and return its public URL."""
    content_type = file.content_type or ''
    if not content_type.startswith(('image/', 'video/')):
        raise UploadError("Only image and video files are allowed",
                          details=f"Unsupported content type: {content_type or 'unknown'}")
    return await _store_upload('media', file)


@app.post('/api/upload/file', response_model=UploadResponse,
          responses={400: {"model": ErrorResponse}})
async def api_upload_file(file: UploadFile = File(...),
                          user: Identity = Depends(require_admin)):
    return await _store_upload('files', file)


@app.get('/uploads/{kind}/{name}')
def uploaded_file(kind: str, name: str):
    """Serve a stored upload read-only."""
    if kind not in KINDS or safe_filename(name) != name:
        raise NotFoundError("File not found")
    path = os.path.join(_storage.path_for(kind), name)
    if not os.path.isfile(path):
        raise NotFoundError("File not found")
    return FileResponse(path)


# ---------------------------------------------------------------------------
# Admin HTML page
# ---------------------------------------------------------------------------

@app.get('/admin/tables/{table}', response_class=HTMLResponse)
def admin_table_page(request: Request, table: str, page: int = Query(1, ge=1, le=MAX_PAGE),
                     sort: Optional[str] = None,
                     user: Identity = Depends(require_admin)):
    """Server-rendered table page with an empty create form."""
    schema = _registry.get(table)
    limit = 50
    result = _store(table).list(page=page, limit=limit, sort=sort)
    columns = [name for name, f in schema.properties.items() if not f.primary_key]
    rows = [{name: display_value(schema.properties[name], row.get(name)) for name in columns}
            for row in result['data']]
    total = result['total']
    first = (page - 1) * limit + 1 if total else 0

    return templates.TemplateResponse(request, "admin/table.html", {
        "schema": schema,
        "tables": _registry.names(),
        "columns": columns,
        "rows": rows,
        "total": total,
        "page": page,
        "total_pages": max(1, math.ceil(total / limit)),
        "first": first,
        "last": min(page * limit, total),
        "controls": form_controls(schema, build_form(schema)),
    })


# ---------------------------------------------------------------------------
# Public content (degrades to [] on database errors)
# ---------------------------------------------------------------------------

@app.get('/api/news')
def api_news():
    return _public_list('news', order=('publication_date', 'desc'))


@app.get('/api/news/{slug}', responses={404: {"model": ErrorResponse}})
def api_news_detail(slug: str):
    return _public_detail('news', slug, 'News article')


@app.get('/api/blog')
def api_blog():
    return _public_list('blogposts', order=('publication_date', 'desc'))


@app.get('/api/blog/{slug}', responses={404: {"model": ErrorResponse}})
def api_blog_detail(slug: str):
    return _public_detail('blogposts', slug, 'Blog post')


@app.get('/api/events')
def api_events():
    return _public_list('events', order=('event_date', 'asc'))


@app.get('/api/events/{slug}', responses={404: {"model": ErrorResponse}})
def api_event_detail(slug: str):
    return _public_detail('events', slug, 'Event')


@app.get('/api/sponsors')
def api_sponsors():
    return _public_list('sponsors', equals={'is_active': 1}, order=('display_order', 'asc'))


@app.get('/api/banners')
def api_banners():
    return _public_list('banners', equals={'is_active': 1}, order=('display_order', 'asc'))


# ---------------------------------------------------------------------------
# Public form submission
# ---------------------------------------------------------------------------

@app.post('/api/forms/submit', response_model=FormSubmitResponse,
          responses={400: {"model": ErrorResponse}})
def api_form_submit(background_tasks: BackgroundTasks, body: dict[str, Any] = Body(...)):
    """Persist a contact/booking submission, then notify in the background."""
    form_data = dict(body)
    form_id = form_data.pop('formId', None)
    if not form_id:
        raise ValidationError("Form ID is required")

    table = FORM_TABLES.get(form_id)
    if table is not None:
        record = {
            'uniqueness_check': form_data.get('email') or form_data.get('telefone') or '',
            'form_data': json.dumps(form_data),
            'notification_email_sent': 0,
            'reply_email_sent': 0,
            'email_sent_at': utc_now(),
        }
        if form_id == 'event_booking':
            record['event_id'] = form_data.get('event_id')
        _store(table).create(record)
    else:
        logger.info("Form %s has no storage table; notifying only", form_id)

    background_tasks.add_task(run_notification, form_id, form_data)
    return {'success': True, 'message': 'Form submitted successfully'}
