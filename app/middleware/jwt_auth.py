"""
JWT Auth Middleware: parses the Bearer token, sets g.user_id / g.user_role.

The identity provider issues the token; this layer only verifies it.
Invalid or expired tokens leave the identity empty, and ``require_identity``
turns an empty identity into a 401 on protected routes.
"""

import logging
from functools import wraps

import jwt as pyjwt
from flask import g, request

from app.models.user import UserRole
from app.services.jwt_service import decode_access_token
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.user_id = None
        g.user_role = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        if path.startswith(JWT_SKIP_PREFIXES):
            return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Invalid access token on %s: %s", path, exc)
            return

        role = UserRole.parse(payload.get("role"))
        if not payload.get("sub") or role is None:
            logger.warning("Access token without subject or known role on %s", path)
            return
        g.user_id = payload["sub"]
        g.user_role = role


def require_identity(fn):
    """Reject the request with 401 unless a verified identity is present."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not getattr(g, "user_id", None) or getattr(g, "user_role", None) is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        return fn(*args, **kwargs)

    return wrapper
