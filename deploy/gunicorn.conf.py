"""Gunicorn configuration for the Portal Web Server.

    gunicorn 'portal_engine.serve_web:create_app()' -c deploy/gunicorn.conf.py

Process settings come from the same PORTAL_* variables the app reads.
The master prepares the database and the upload directories once before
forking, so workers never race on CREATE TABLE.
"""

import os

from portal_engine.config import Settings
from portal_engine.ddl import create_tables
from portal_engine.schema import SchemaRegistry
from portal_engine_core import ConnectionPool
from portal_engine_core.storage import KINDS

settings = Settings.from_env()

worker_class = "uvicorn.workers.UvicornWorker"

# Each worker opens its own pool of PORTAL_POOL_SIZE connections after fork
workers = settings.workers
preload_app = False

# Localhost only; nginx proxies from port 80 and serves TLS
bind = f"127.0.0.1:{settings.port}"
forwarded_allow_ips = "127.0.0.1"

user = "portal"
group = "portal"

# Long enough for a full-table CSV export
timeout = 120
graceful_timeout = 30

accesslog = "-"
loglevel = settings.log_level


def on_starting(server):
    """Create missing tables and upload directories, owned by the worker user."""
    registry = SchemaRegistry.from_directory(settings.schema_dir)
    pool = ConnectionPool(settings.db_path, size=1, timeout=settings.pool_timeout)
    try:
        with pool.connection() as conn:
            create_tables(conn, registry)
    finally:
        pool.close()

    paths = [settings.db_path]
    for kind in KINDS:
        directory = os.path.join(settings.upload_dir, kind)
        os.makedirs(directory, exist_ok=True)
        paths.append(directory)

    # The master still runs as root here; hand the files to the worker user
    if os.geteuid() == 0:
        for path in paths:
            os.chown(path, server.cfg.uid, server.cfg.gid)

    server.log.info("Prepared %d tables in %s, uploads in %s",
                    len(registry.names()), settings.db_path, settings.upload_dir)
