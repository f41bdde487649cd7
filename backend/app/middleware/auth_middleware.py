"""
middleware/auth_middleware.py — Bearer-token authentication for /api/v1.

Tokens are issued by the platform's auth service; this app only verifies
them. The one claim it relies on is "sub", the numeric user id, which
@require_auth puts on flask.g.user_id. Other claims are ignored: group roles
live in study_group_members and are checked by the services (403), never here
(401).

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — not "Bearer <token>", bad signature, or bad "sub"
  TOKEN_EXPIRED  (401) — exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode


def _unauthorized(code: str, message: str) -> AppError:
    return AppError(code, message, 401)


def require_auth(f: Callable) -> Callable:
    """
    Route decorator: rejects the request with 401 unless it carries a valid
    access token, then runs the view with flask.g.user_id set.

    Usage:
        @memberships_bp.route("/<int:group_id>/leave", methods=["POST"])
        @require_auth
        def leave_group(group_id: int):
            member_service.leave_group(group_id=group_id, user_id=g.user_id, ...)
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """Sets flask.g.user_id from the request's token, or raises a 401 AppError."""
    token = bearer_token(request.headers.get("Authorization", ""))
    g.user_id = user_id_from_claims(_decode(token))


def bearer_token(header: str) -> str:
    """The token part of an "Authorization: Bearer <token>" header."""
    if not header:
        raise _unauthorized(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
        )

    scheme, _, token = header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise _unauthorized(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
        )
    return token


def _decode(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Sign in again to obtain a new one.",
        )
    except jwt.InvalidTokenError:
        raise _unauthorized(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
        )


def user_id_from_claims(claims: dict) -> int:
    """The "sub" claim ("42") as a positive int."""
    sub = claims.get("sub")
    if sub is None:
        raise _unauthorized(
            ErrorCode.TOKEN_INVALID,
            "The access token is missing the required 'sub' claim.",
        )

    if isinstance(sub, bool) or not str(sub).isdigit() or int(sub) < 1:
        raise _unauthorized(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
        )
    return int(sub)
