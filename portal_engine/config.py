"""
Runtime configuration, read from ``PORTAL_*`` environment variables.

    PORTAL_DB_PATH           SQLite database file (default: portal.db)
    PORTAL_POOL_SIZE         Pooled connections (default: 10)
    PORTAL_POOL_TIMEOUT      Seconds to wait for a free connection (default: 60)
    PORTAL_ADMIN_EMAIL       The single admin identity
    PORTAL_ADMIN_TOKENS      Session map for the bundled auth backend: token=email,...
    PORTAL_UPLOAD_DIR        Upload storage root (default: uploads)
    PORTAL_UPLOAD_BASE_URL   URL prefix of stored uploads (default: /uploads)
    PORTAL_SCHEMA_DIR        Directory of table schemas (default: bundled schemas)
    PORTAL_CORS_ORIGINS      Comma-separated allowed origins
    PORTAL_PORT / PORTAL_WORKERS / PORTAL_LOG_LEVEL   server process
"""

import os
from dataclasses import dataclass, field

DEFAULT_SCHEMA_DIR = os.path.join(os.path.dirname(__file__), 'schemas')


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(',') if v.strip()]


def parse_token_map(value: str) -> dict[str, str]:
    """Parse ``token=email,token=email`` into a dict."""
    tokens = {}
    for pair in _split(value):
        token, sep, email = pair.partition('=')
        if sep and token.strip() and email.strip():
            tokens[token.strip()] = email.strip()
    return tokens


@dataclass
class Settings:
    db_path: str = 'portal.db'
    pool_size: int = 10
    pool_timeout: float = 60.0
    admin_email: str = ''
    admin_tokens: dict[str, str] = field(default_factory=dict)
    upload_dir: str = 'uploads'
    upload_base_url: str = '/uploads'
    schema_dir: str = DEFAULT_SCHEMA_DIR
    cors_origins: list[str] = field(default_factory=lambda: ['http://localhost:5173'])
    port: int = 8000
    workers: int = 2
    log_level: str = 'info'

    @classmethod
    def from_env(cls, environ=None) -> 'Settings':
        env = os.environ if environ is None else environ
        return cls(
            db_path=env.get('PORTAL_DB_PATH', 'portal.db'),
            pool_size=int(env.get('PORTAL_POOL_SIZE', '10')),
            pool_timeout=float(env.get('PORTAL_POOL_TIMEOUT', '60')),
            admin_email=env.get('PORTAL_ADMIN_EMAIL', ''),
            admin_tokens=parse_token_map(env.get('PORTAL_ADMIN_TOKENS', '')),
            upload_dir=env.get('PORTAL_UPLOAD_DIR', 'uploads'),
            upload_base_url=env.get('PORTAL_UPLOAD_BASE_URL', '/uploads'),
            schema_dir=env.get('PORTAL_SCHEMA_DIR') or DEFAULT_SCHEMA_DIR,
            cors_origins=_split(env.get('PORTAL_CORS_ORIGINS', 'http://localhost:5173')),
            port=int(env.get('PORTAL_PORT', '8000')),
            workers=int(env.get('PORTAL_WORKERS', '2')),
            log_level=env.get('PORTAL_LOG_LEVEL', 'info'),
        )
