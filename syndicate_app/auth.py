"""
JWT verification helpers for the Syndicate Manager API.

Provides token verification and a decorator for protecting Flask
endpoints. Tokens are issued by the login front end and signed with the
shared ``JWT_SECRET_KEY``; this service only validates them.

Token claims:
    player_id: Player making the request.
    syndicate_id: Syndicate the player acts for.
    iat / exp: Issued-at and expiry timestamps.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

import jwt
from flask import Response, current_app, g, jsonify, request

DEFAULT_ALLOWED_ALGORITHMS = ["HS256"]
REQUIRED_TOKEN_CLAIMS = ["player_id", "syndicate_id", "iat", "exp"]


def verify_token(
    token: str,
    secret: str,
    algorithms: list[str] | None = None,
) -> dict[str, Any] | None:
    """
    Decode and validate a JWT, returning the payload on success.

    Performs signature, expiry and issued-at checks, requires every claim in
    ``REQUIRED_TOKEN_CLAIMS`` and checks that ``player_id`` and
    ``syndicate_id`` are positive integers.

    Args:
        token: The encoded JWT string to verify.
        secret: Shared HMAC secret.
        algorithms: Acceptable signing algorithms (default ``["HS256"]``).

    Returns:
        The decoded payload dictionary if the token is valid, or ``None``
        if verification fails for any reason.
    """
    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=algorithms or DEFAULT_ALLOWED_ALGORITHMS,
            options={"require": REQUIRED_TOKEN_CLAIMS},
            leeway=int(current_app.config.get("JWT_CLOCK_SKEW_SECONDS", 30)),
        )
    except jwt.InvalidTokenError:
        return None

    for claim in ("player_id", "syndicate_id"):
        value = decoded.get(claim)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            return None
    return decoded


def require_auth(view_func: Callable[..., tuple[Response, int] | Response]):
    """
    Decorator that enforces Bearer-token authentication on API endpoints.

    On success the player and syndicate ids are stored on ``flask.g`` as
    ``g.player_id`` and ``g.syndicate_id``; otherwise the request is
    answered with a ``401`` JSON error.
    """

    @wraps(view_func)
    def wrapper(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return jsonify({"error": "Missing or invalid Authorization header"}), 401

        token = auth_header[7:].strip()
        if not token:
            return jsonify({"error": "Missing or invalid Authorization header"}), 401

        payload = verify_token(token, current_app.config["JWT_SECRET_KEY"])
        if payload is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.player_id = payload["player_id"]
        g.syndicate_id = payload["syndicate_id"]
        return view_func(*args, **kwargs)

    return wrapper
