from __future__ import annotations

import logging
from typing import Any, List, Optional
from urllib.parse import quote

from .api_client import IntelliRackClientError, _ApiClient
from .config import server_url

logger = logging.getLogger(__name__)

# Order in which identifiers are tried when deleting a device.
DEVICE_ID_FIELDS = ("rackId", "_id", "deviceId", "id")


def _unwrap(data: Any, key: str) -> Any:
    if isinstance(data, dict) and key in data:
        return data[key]
    return data


def device_identifier(device: dict[str, Any]) -> Optional[str]:
    """Identifier used for commands and event matching."""
    return device.get("rackId") or device.get("_id")


class DevicesAPI:
    """Devices owned by the signed-in user."""

    def __init__(self, api: _ApiClient):
        self.api = api

    def my(self) -> List[dict[str, Any]]:
        return _unwrap(self.api.get("/devices/my"), "devices")

    def delete(self, device: dict[str, Any]) -> str:
        """Delete *device*, trying each known identifier until one is accepted.

        Returns the identifier the backend accepted.
        """
        candidates = [device[f] for f in DEVICE_ID_FIELDS if device.get(f)]
        if not candidates:
            raise IntelliRackClientError("No device identifier found")

        last_error: Optional[str] = None
        for candidate in candidates:
            try:
                self.api.delete(f"/devices/{quote(str(candidate), safe='')}")
            except IntelliRackClientError as exc:
                logger.info("Delete with id %s failed: %s", candidate, exc)
                last_error = str(exc)
                continue
            logger.info("Deleted device %s", candidate)
            return candidate
        raise IntelliRackClientError(
            f"All deletion attempts failed. Last error: {last_error}"
        )


class AlertsAPI:
    def __init__(self, api: _ApiClient):
        self.api = api

    def active(self, limit: int = 5) -> List[dict[str, Any]]:
        data = self.api.get("/alerts/", params={"status": "active", "limit": limit})
        return _unwrap(data, "alerts")

    def all(self, limit: int = 50) -> List[dict[str, Any]]:
        return _unwrap(self.api.get("/alerts/", params={"limit": limit}), "alerts")

    def acknowledge(self, alert_id: str) -> dict[str, Any]:
        return self.api.patch(f"/alerts/{quote(alert_id, safe='')}/acknowledge")

    def acknowledge_all(self) -> dict[str, Any]:
        return self.api.patch("/alerts/acknowledge-all")

    def delete(self, alert_id: str) -> dict[str, Any]:
        return self.api.delete(f"/alerts/{quote(alert_id, safe='')}")

    def clear_acknowledged(self) -> dict[str, Any]:
        return self.api.delete("/alerts/clearacknowledged")


class LogsAPI:
    def __init__(self, api: _ApiClient):
        self.api = api

    def recent(self, limit: int = 3) -> List[dict[str, Any]]:
        data = self.api.get("/logs/", params={"limit": limit, "sort": "newest"})
        return _unwrap(data, "logs")


class IngredientsAPI:
    """Server-side ingredient analytics, keyed by ingredient name."""

    KINDS = (
        "logs",
        "usage",
        "prediction",
        "anomalies",
        "substitutions",
        "recommendations",
        "usage-patterns",
    )

    def __init__(self, api: _ApiClient):
        self.api = api

    def summary(self) -> Any:
        return self.api.get("/ingredients/summary")

    def detail(self, kind: str, name: str) -> Any:
        if kind not in self.KINDS:
            raise ValueError(f"Unknown ingredient view {kind!r}")
        return self.api.get(f"/ingredients/{kind}/{quote(name, safe='')}")

    def logs(self, name: str) -> Any:
        return self.detail("logs", name)

    def usage(self, name: str) -> Any:
        return self.detail("usage", name)

    def prediction(self, name: str) -> Any:
        return self.detail("prediction", name)

    def anomalies(self, name: str) -> Any:
        return self.detail("anomalies", name)

    def substitutions(self, name: str) -> Any:
        return self.detail("substitutions", name)

    def recommendations(self, name: str) -> Any:
        return self.detail("recommendations", name)

    def usage_patterns(self, name: str) -> Any:
        return self.detail("usage-patterns", name)


class NetworkAPI:
    """Health, network and server-assisted discovery endpoints."""

    def __init__(self, api: _ApiClient):
        self.api = api

    def health(self) -> dict[str, Any]:
        # /health lives on the server root, outside /api.
        return self.api.get(f"{server_url(self.api.api_base)}/health", require_auth=False)

    def network_info(self) -> dict[str, Any]:
        return self.api.get("/network-info", require_auth=False)

    def base_ip(self) -> Optional[str]:
        """The backend's view of the LAN as a ``a.b.c`` prefix, if it has one."""
        try:
            data = self.network_info()
        except IntelliRackClientError as exc:
            logger.info("Could not get current network info: %s", exc)
            return None
        base = data.get("baseIP") if isinstance(data, dict) else None
        return base or None

    def discovery_scan(self) -> List[dict[str, Any]]:
        return _unwrap(self.api.get("/discovery/scan"), "devices") or []

    def broadcast_discovery(self, timeout_ms: int = 5000) -> List[dict[str, Any]]:
        data = self.api.post(
            "/broadcast-discovery",
            {"action": "discover", "timeout": timeout_ms},
            require_auth=False,
        )
        return _unwrap(data, "devices") or []
