"""Account endpoints: login, registration and the current-user lookup."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .api_client import IntelliRackClientError, _ApiClient

logger = logging.getLogger(__name__)


def normalize_user(user: dict[str, Any], email: Optional[str] = None) -> dict[str, Any]:
    """Return a copy of *user* carrying both ``id`` and ``_id``.

    The backend is inconsistent about which key it sends.
    """
    uid = user.get("id") or user.get("_id")
    return {
        **user,
        "email": user.get("email") or email,
        "id": uid,
        "_id": uid,
    }


def user_id(user: Optional[dict[str, Any]]) -> Optional[str]:
    if not user:
        return None
    return user.get("id") or user.get("_id")


class AuthAPI:
    """``/auth`` endpoints."""

    def __init__(self, api: _ApiClient):
        self.api = api

    def login(self, email: str, password: str) -> tuple[str, dict[str, Any]]:
        """Exchange credentials for a bearer token.

        Returns ``(token, user)``.
        """
        try:
            data = self.api.post(
                "/auth/login",
                {"email": email, "password": password},
                require_auth=False,
            )
        except IntelliRackClientError as exc:
            raise IntelliRackClientError(
                _server_error(exc, "Login failed"), status_code=exc.status_code
            ) from exc
        token = data.get("token")
        if not token:
            raise IntelliRackClientError("Login failed: no token in response")
        return token, normalize_user(data.get("user") or {}, email=email)

    def register(
        self, first_name: str, last_name: str, email: str, password: str
    ) -> dict[str, Any]:
        name = f"{first_name} {last_name}".strip()
        try:
            return self.api.post(
                "/auth/register",
                {"name": name, "email": email, "password": password},
                require_auth=False,
            )
        except IntelliRackClientError as exc:
            raise IntelliRackClientError(
                _server_error(exc, "Register failed"), status_code=exc.status_code
            ) from exc

    def me(self) -> dict[str, Any]:
        return normalize_user(self.api.get("/auth/me"))

    def refresh_user(self) -> Optional[dict[str, Any]]:
        """Like :meth:`me` but returns ``None`` when the token is not accepted."""
        try:
            return self.me()
        except IntelliRackClientError as exc:
            logger.info("Could not refresh user: %s", exc)
            return None


def _server_error(exc: IntelliRackClientError, fallback: str) -> str:
    # Connection failures carry no status code and keep their own message.
    if exc.status_code is None:
        return str(exc)
    if isinstance(exc.payload, dict) and exc.payload.get("error"):
        return str(exc.payload["error"])
    return fallback
