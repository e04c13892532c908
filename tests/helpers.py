"""Test helper functions shared by the unit and integration suites."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

DEFAULT_TEST_PLAYER_ID = 1
DEFAULT_TEST_SYNDICATE_ID = 1


def create_test_token(
    secret: str,
    player_id: int = DEFAULT_TEST_PLAYER_ID,
    syndicate_id: int = DEFAULT_TEST_SYNDICATE_ID,
    expired: bool = False,
    algorithm: str = "HS256",
) -> str:
    """Create a signed test token carrying the player and syndicate claims."""
    now = datetime.now(timezone.utc)
    expiry_time = now - timedelta(hours=1) if expired else now + timedelta(hours=1)

    payload: dict[str, Any] = {
        "player_id": player_id,
        "syndicate_id": syndicate_id,
        "iat": int(now.timestamp()),
        "exp": int(expiry_time.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def auth_headers(token: str) -> dict[str, str]:
    """Build common JSON API headers with bearer token auth."""
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
