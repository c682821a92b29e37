"""
Convenience client for the IntelliRack backend.

Wraps the REST resource APIs, the discovery scanner and the realtime socket
behind one object designed for CLI and script usage::

    import intellirack

    client = intellirack.IntelliRackClient()  # reads INTELLIRACK_API_URL / INTELLIRACK_TOKEN
    client.login("me@example.com", "secret")
    for device in client.devices.my():
        print(device["rackId"])
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .api_client import IntelliRackClientError, _ApiClient
from .auth import AuthAPI, user_id
from .config import get_api_base, get_token, server_url
from .discovery import DeviceDiscovery
from .realtime import RealtimeClient
from .resources import AlertsAPI, DevicesAPI, IngredientsAPI, LogsAPI, NetworkAPI, device_identifier

logger = logging.getLogger(__name__)


class IntelliRackClient:
    """High-level client for one IntelliRack account.

    Args:
        api_base: REST base URL. Falls back to ``INTELLIRACK_API_URL``,
            ``EXPO_PUBLIC_API_URL`` and ``~/.intellirack/config.json``.
        token: Bearer token. Falls back to ``INTELLIRACK_TOKEN``.
    """

    def __init__(
        self,
        api_base: Optional[str] = None,
        token: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_base = get_api_base(api_base)
        self.server_url = server_url(self.api_base)
        self.token = get_token(token)
        self.user: Optional[dict[str, Any]] = None

        self._api = _ApiClient(
            auth_token_provider=lambda: self.token,
            api_base=self.api_base,
            transport=transport,
        )
        self.auth = AuthAPI(self._api)
        self.devices = DevicesAPI(self._api)
        self.alerts = AlertsAPI(self._api)
        self.logs = LogsAPI(self._api)
        self.ingredients = IngredientsAPI(self._api)
        self.network = NetworkAPI(self._api)

    def close(self) -> None:
        self._api.close()

    def __enter__(self) -> "IntelliRackClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> dict[str, Any]:
        """Sign in and keep the token for later calls on this client."""
        self.token, self.user = self.auth.login(email, password)
        logger.info("Signed in as %s", self.user.get("email"))
        return self.user

    def current_user(self) -> Optional[dict[str, Any]]:
        """Validate the token; ``None`` when it is missing or rejected."""
        if not self.token:
            return None
        self.user = self.auth.refresh_user()
        return self.user

    # ------------------------------------------------------------------
    # Discovery / realtime
    # ------------------------------------------------------------------

    def registered_rack_ids(self) -> set[str]:
        return {rid for rid in (device_identifier(d) for d in self.devices.my()) if rid}

    def discovery(self, **kwargs: Any) -> DeviceDiscovery:
        """A scanner wired to this client's backend.

        Racks already registered to the signed-in user are flagged when a
        token is available.  Without a token the backend-assisted scan,
        which needs one, is left out.
        """
        kwargs.setdefault("server_assisted", bool(self.token))
        if self.token and "known_rack_ids" not in kwargs:
            try:
                kwargs["known_rack_ids"] = self.registered_rack_ids()
            except IntelliRackClientError as exc:
                logger.warning("Could not load registered devices: %s", exc)
        return DeviceDiscovery(self.network, **kwargs)

    def realtime(self, **kwargs: Any) -> RealtimeClient:
        if self.user is None and self.token:
            self.current_user()
        return RealtimeClient(
            self.server_url,
            token=self.token,
            user_id=user_id(self.user),
            **kwargs,
        )
