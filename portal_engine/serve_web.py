#!/usr/bin/env python3
"""
Portal Production Web Server

Production entry point for serving the portal via gunicorn/uvicorn.

Usage:
    # Direct run
    python -m portal_engine.serve_web

    # With gunicorn
    gunicorn 'portal_engine.serve_web:create_app()' -c deploy/gunicorn.conf.py

Environment variables: see portal_engine.config (PORTAL_*).
"""

import logging
import os
import sys


def create_app():
    """Application factory for gunicorn.

    Reads PORTAL_* settings, opens the connection pool, creates missing
    tables and returns the FastAPI app.
    """
    from portal_engine.config import Settings
    from portal_engine.app import app, configure

    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    configure(settings)
    return app


def main():
    """CLI entry point: run directly with uvicorn (no gunicorn needed)."""
    import argparse

    parser = argparse.ArgumentParser(description='Portal Production Web Server')
    parser.add_argument('--db-path', type=str, default=None,
                        help='SQLite database file (overrides PORTAL_DB_PATH env)')
    parser.add_argument('--port', type=int, default=None,
                        help='Server port (overrides PORTAL_PORT env, default: 8000)')
    parser.add_argument('--workers', type=int, default=None,
                        help='Number of workers (overrides PORTAL_WORKERS env, default: 2)')
    parser.add_argument('--log-level', type=str, default=None,
                        help='Log level (overrides PORTAL_LOG_LEVEL env, default: info)')
    args = parser.parse_args()

    # CLI args override env vars
    if args.db_path:
        os.environ['PORTAL_DB_PATH'] = os.path.abspath(args.db_path)
    if args.port:
        os.environ['PORTAL_PORT'] = str(args.port)
    if args.workers:
        os.environ['PORTAL_WORKERS'] = str(args.workers)
    if args.log_level:
        os.environ['PORTAL_LOG_LEVEL'] = args.log_level

    from portal_engine.config import Settings
    settings = Settings.from_env()

    if not settings.admin_email:
        print("Warning: PORTAL_ADMIN_EMAIL is not set; admin endpoints will refuse every caller",
              file=sys.stderr)

    print("=" * 60)
    print("Portal Web Server (Production)")
    print("=" * 60)
    print(f"Database: {settings.db_path}")
    print(f"Bind:     0.0.0.0:{settings.port}")
    print(f"Workers:  {settings.workers}")
    print("=" * 60)
    print()

    import uvicorn
    uvicorn.run(
        'portal_engine.serve_web:create_app',
        host='0.0.0.0',
        port=settings.port,
        workers=settings.workers,
        log_level=settings.log_level,
        factory=True,
    )


if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        print("\nShutting down Portal Web Server...")
        sys.exit(0)
