"""
Shared test fixtures for the Portal Engine test suite.

  - registry: the bundled table schemas
  - portal_db: temporary SQLite DB built from the schemas, with seed rows
  - pool: ConnectionPool over portal_db, installed process-wide
  - client / user_client / admin_client: TestClients that are
    unauthenticated, authenticated as a non-admin, and authenticated as
    the admin identity
  - api: AdminApi wrapping admin_client
"""

import sqlite3

import pytest
from starlette.testclient import TestClient

from portal_engine_core import ConnectionPool, _set_pool_for_testing, _reset_pool
from portal_engine.app import app, configure, _reset_configuration
from portal_engine.client import AdminApi
from portal_engine.config import DEFAULT_SCHEMA_DIR, Settings
from portal_engine.ddl import create_tables
from portal_engine.schema import SchemaRegistry

ADMIN_EMAIL = 'admin@portal.example'
ADMIN_TOKEN = 'admin-session-token'
USER_TOKEN = 'visitor-session-token'


@pytest.fixture
def anyio_backend():
    return 'asyncio'


@pytest.fixture
def registry():
    return SchemaRegistry.from_directory(DEFAULT_SCHEMA_DIR)


@pytest.fixture
def portal_db(tmp_path, registry):
    """Create a temporary database from the bundled schemas with sample content.

    sponsors: 3 rows (ids 1-3, id 3 inactive)
    news: 2 rows, blogposts: 1 row, events: 2 rows, banners: 2 rows (1 active)
    """
    db_path = str(tmp_path / "portal.db")
    conn = sqlite3.connect(db_path)
    create_tables(conn, registry)

    conn.executescript("""
        INSERT INTO sponsors (id, name, logo_url, website_url, description,
                              display_order, is_active, created_at, updated_at)
        VALUES (1, 'Banco Alpha', '/uploads/media/alpha.png', 'https://alpha.example',
                'Retail bank', 2, 1, '2025-01-01T10:00:00.000Z', '2025-01-01T10:00:00.000Z');
        INSERT INTO sponsors (id, name, logo_url, website_url, description,
                              display_order, is_active, created_at, updated_at)
        VALUES (2, 'Beta Seguros', '/uploads/media/beta.png', 'https://beta.example',
                'Insurance, pensions', 1, 1, '2025-01-02T10:00:00.000Z', '2025-01-02T10:00:00.000Z');
        INSERT INTO sponsors (id, name, logo_url, website_url, description,
                              display_order, is_active, created_at, updated_at)
        VALUES (3, 'Gamma Capital', '/uploads/media/gamma.png', 'https://gamma.example',
                NULL, 3, 0, '2025-01-03T10:00:00.000Z', '2025-01-03T10:00:00.000Z');

        INSERT INTO news (id, title, slug, body_html, publication_date, is_featured)
        VALUES (1, 'Annual meeting announced', 'annual-meeting',
                '<p>The <strong>annual</strong> meeting</p>', '2025-01-10T09:00:00.000Z', 0);
        INSERT INTO news (id, title, slug, body_html, publication_date, is_featured)
        VALUES (2, 'New board elected', 'new-board',
                '<p>Board news</p>', '2025-02-01T09:00:00.000Z', 1);

        INSERT INTO blogposts (id, title, slug, body_html, publication_date)
        VALUES (1, 'Why we sponsor', 'why-we-sponsor', '<p>Because</p>',
                '2025-01-15T09:00:00.000Z');

        INSERT INTO events (id, title, slug, event_date, location, capacity)
        VALUES (1, 'Summer forum', 'summer-forum', '2025-06-01T00:00:00.000Z', 'Lisbon', 200);
        INSERT INTO events (id, title, slug, event_date, location, capacity)
        VALUES (2, 'Spring workshop', 'spring-workshop', '2025-03-01T00:00:00.000Z', 'Porto', 40);

        INSERT INTO banners (id, title, banner_image_url, display_order, is_active)
        VALUES (1, 'Welcome', '/uploads/media/welcome.jpg', 1, 1);
        INSERT INTO banners (id, title, banner_image_url, display_order, is_active)
        VALUES (2, 'Old campaign', '/uploads/media/old.jpg', 2, 0);
    """)
    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def settings(portal_db, tmp_path):
    return Settings(
        db_path=portal_db,
        pool_size=2,
        pool_timeout=5.0,
        admin_email=ADMIN_EMAIL,
        admin_tokens={ADMIN_TOKEN: ADMIN_EMAIL, USER_TOKEN: 'visitor@portal.example'},
        upload_dir=str(tmp_path / "uploads"),
    )


@pytest.fixture
def pool(portal_db):
    pool = ConnectionPool(portal_db, size=2, timeout=5.0)
    _set_pool_for_testing(pool)
    yield pool
    _reset_pool()


@pytest.fixture
def configured_app(settings, pool, registry):
    configure(settings, pool=pool, registry=registry)
    yield app
    _reset_configuration()


def _client(token=None):
    client = TestClient(app)
    if token:
        client.headers['Authorization'] = f'Bearer {token}'
    return client


@pytest.fixture
def client(configured_app):
    """Unauthenticated client."""
    with _client() as c:
        yield c


@pytest.fixture
def user_client(configured_app):
    """Authenticated, but not the admin identity."""
    with _client(USER_TOKEN) as c:
        yield c


@pytest.fixture
def admin_client(configured_app):
    with _client(ADMIN_TOKEN) as c:
        yield c


@pytest.fixture
def api(admin_client):
    return AdminApi(admin_client)
