"""Socket.IO connection to the IntelliRack backend.

The backend pushes device telemetry, alerts and command acknowledgements
over Socket.IO, and accepts commands, discovery requests and device
registrations the same way.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

import socketio

logger = logging.getLogger(__name__)

# Events the backend pushes to clients.
CONSUMED_EVENTS = (
    "deviceStatus",
    "update",
    "alert",
    "nfcEvent",
    "commandResponse",
    "commandSent",
    "deviceAdded",
    "deviceDeleted",
    "deviceRegistered",
)

# Commands a rack understands, mapped to the extra fields each one needs.
DEVICE_COMMANDS: Dict[str, tuple] = {
    "tare": (),
    "calibrate": (),
    "restart": (),
    "resetwifi": (),
    "nfc_read": (),
    "nfc_write": ("ingredient",),
    "nfc_clear": (),
    "nfc_format": (),
    "set_config": (),
    "set_thresholds": (),
    "acknowledge_alert": ("alertId",),
    "delete_device": (),
}

EventHandler = Callable[[Any], None]


def build_command(device_id: str, command: str, **extra: Any) -> dict[str, Any]:
    """Build a ``sendCommand`` payload, validating the command name and fields."""
    if not device_id:
        raise ValueError("device_id is required")
    if command not in DEVICE_COMMANDS:
        raise ValueError(
            f"Unknown command {command!r}; expected one of {', '.join(sorted(DEVICE_COMMANDS))}"
        )
    for required in DEVICE_COMMANDS[command]:
        value = extra.get(required)
        if isinstance(value, str):
            value = value.strip()
            extra[required] = value
        if not value:
            raise ValueError(f"{command} requires {required!r}")
    if command in ("set_config", "set_thresholds") and not extra:
        raise ValueError(f"{command} requires at least one setting")
    return {"deviceId": device_id, "command": command, **extra}


class RealtimeClient:
    """Thin wrapper over :class:`socketio.Client`.

    Handlers registered with :meth:`on` survive reconnects, and several
    handlers can listen to the same event.  Emitting while disconnected
    is a logged no-op.
    """

    def __init__(
        self,
        server_url: str,
        token: str = "",
        user_id: Optional[str] = None,
        sio: Optional[socketio.Client] = None,
    ) -> None:
        self.server_url = server_url
        self.token = token
        self.user_id = user_id
        self._sio = sio if sio is not None else socketio.Client(reconnection=True)
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()

        self._sio.on("connect", self._on_connect)
        self._sio.on("disconnect", self._on_disconnect)
        for event in CONSUMED_EVENTS:
            self._sio.on(event, self._dispatcher(event))

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    def connect(self, wait_timeout: float = 10.0) -> None:
        logger.info("Connecting to %s", self.server_url)
        self._sio.connect(
            self.server_url,
            transports=["websocket"],
            auth={"token": self.token},
            wait_timeout=wait_timeout,
        )

    def disconnect(self) -> None:
        if self.connected:
            self._sio.disconnect()

    def wait(self) -> None:
        """Block until the connection ends."""
        self._sio.wait()

    def __enter__(self) -> "RealtimeClient":
        self.connect()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.disconnect()

    def _on_connect(self) -> None:
        logger.info("Socket connected")
        if self.user_id:
            self._sio.emit("authenticate", {"userId": self.user_id})

    def _on_disconnect(self, *args: Any) -> None:
        logger.info("Socket disconnected")

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> None:
        if event not in CONSUMED_EVENTS:
            raise ValueError(f"Unknown event {event!r}")
        with self._lock:
            self._handlers[event].append(handler)

    def off(self, event: str, handler: Optional[EventHandler] = None) -> None:
        """Remove *handler*, or every handler for *event* when omitted."""
        with self._lock:
            if handler is None:
                self._handlers.pop(event, None)
            elif handler in self._handlers.get(event, []):
                self._handlers[event].remove(handler)

    def _dispatcher(self, event: str) -> EventHandler:
        def dispatch(data: Any = None) -> None:
            with self._lock:
                handlers = list(self._handlers.get(event, []))
            logger.debug("%s -> %d handler(s): %s", event, len(handlers), data)
            for handler in handlers:
                handler(data)

        return dispatch

    # ------------------------------------------------------------------
    # Emits
    # ------------------------------------------------------------------

    def _emit(self, event: str, payload: dict[str, Any]) -> bool:
        if not self.connected:
            logger.warning("Not connected; dropping %s", event)
            return False
        self._sio.emit(event, payload)
        return True

    def send_command(self, device_id: str, command: str, **extra: Any) -> bool:
        return self._emit("sendCommand", build_command(device_id, command, **extra))

    def discover_devices(self, payload: Optional[dict[str, Any]] = None) -> bool:
        return self._emit("discoverDevices", payload or {})

    def register_device(self, payload: dict[str, Any]) -> bool:
        if not payload.get("rackId"):
            raise ValueError("registration payload needs a rackId")
        return self._emit("registerDevice", payload)


_STATE_FIELDS = ("weight", "status", "ingredient", "lastSeen", "isOnline")


class DeviceStateTracker:
    """Live view of one rack assembled from socket events.

    Events addressed to other racks are ignored.  Fields missing from an
    event keep their previous value.
    """

    def __init__(self, device_id: str, initial: Optional[dict[str, Any]] = None):
        self.device_id = device_id
        initial = initial or {}
        self.state: dict[str, Any] = {
            "weight": initial.get("lastWeight", initial.get("weight")),
            "status": initial.get("lastStatus", initial.get("status")),
            "ingredient": initial.get("ingredient"),
            "lastSeen": initial.get("lastSeen"),
            "isOnline": initial.get("isOnline", True),
        }
        self.command_responses: dict[str, dict[str, Any]] = {}

    def _matches(self, data: Any) -> bool:
        return isinstance(data, dict) and data.get("deviceId") == self.device_id

    def apply(self, data: Any) -> bool:
        """Merge a ``deviceStatus`` or ``update`` event; return whether it applied."""
        if not self._matches(data):
            return False
        for key in _STATE_FIELDS:
            if key in data:
                self.state[key] = data[key]
        return True

    def record_response(self, data: Any) -> Optional[str]:
        """Store a ``commandResponse``; return the command it answered."""
        if not self._matches(data):
            return None
        command = data.get("command") or data.get("response") or data.get("type") or "unknown"
        self.command_responses[command] = {
            "success": data.get("success", True),
            "message": data.get("message") or data.get("response") or "Command completed",
        }
        return command

    def attach(self, client: RealtimeClient) -> None:
        client.on("deviceStatus", self.apply)
        client.on("update", self.apply)
        client.on("commandResponse", self.record_response)

    def detach(self, client: RealtimeClient) -> None:
        client.off("deviceStatus", self.apply)
        client.off("update", self.apply)
        client.off("commandResponse", self.record_response)
