"""
Authentication collaborator.

Session issuance (OAuth/OTP login) happens elsewhere; this module only
answers "who is calling" for a request and whether that caller is the
single admin identity.  The bundled TokenAuthBackend resolves opaque
session tokens through a static token -> email map.
"""

import logging
from dataclasses import dataclass

from fastapi import Request

from .errors import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

SESSION_COOKIE = 'portal_session'


@dataclass(frozen=True)
class Identity:
    email: str
    name: str = ''


class AuthBackend:
    """Resolve the caller of a request; None means unauthenticated."""

    def get_current_user(self, request: Request) -> Identity | None:
        raise NotImplementedError


class TokenAuthBackend(AuthBackend):
    def __init__(self, tokens: dict[str, str]):
        self.tokens = dict(tokens)

    @staticmethod
    def _token(request: Request) -> str | None:
        header = request.headers.get('authorization', '')
        scheme, _, credentials = header.partition(' ')
        if scheme.lower() == 'bearer' and credentials.strip():
            return credentials.strip()
        return request.cookies.get(SESSION_COOKIE)

    def get_current_user(self, request: Request) -> Identity | None:
        token = self._token(request)
        if not token:
            return None
        email = self.tokens.get(token)
        if email is None:
            logger.debug("Unknown session token")
            return None
        return Identity(email=email)


# Active backend and admin identity, installed at startup or via the
# _set_* helpers below.
_backend: AuthBackend = TokenAuthBackend({})
_admin_email = ''


def _set_auth_backend(backend: AuthBackend):
    """Install the auth backend (startup and testing)."""
    global _backend
    _backend = backend


def _set_admin_email(email: str):
    """Set the single admin identity (startup and testing)."""
    global _admin_email
    _admin_email = email


def is_admin(user: Identity | None) -> bool:
    return bool(user and _admin_email and user.email.lower() == _admin_email.lower())


def get_current_user(request: Request) -> Identity | None:
    return _backend.get_current_user(request)


def require_user(request: Request) -> Identity:
    """FastAPI dependency: any authenticated caller, else 401."""
    user = get_current_user(request)
    if user is None:
        raise UnauthorizedError("Authentication required")
    return user


def require_admin(request: Request) -> Identity:
    """FastAPI dependency: the admin identity, else 401/403."""
    user = require_user(request)
    if not is_admin(user):
        logger.info("Admin access denied for %s", user.email)
        raise ForbiddenError("Admin access required")
    return user
