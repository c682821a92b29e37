"""
IntelliRack Python SDK.

Talk to an IntelliRack backend, find racks on the local network and follow
their live telemetry.
"""

from __future__ import annotations

__version__ = "1.0.0"

import logging as _logging

from .api_client import IntelliRackClientError
from .client import IntelliRackClient
from .discovery import (
    DeviceDiscovery,
    DiscoveredDevice,
    DiscoveryError,
    discover_devices,
    is_intellirack_device,
)
from .inventory import (
    count_online,
    health_label,
    sanitize_item_name,
    weight_status,
)
from .realtime import DeviceStateTracker, RealtimeClient, build_command
from .shopping import format_shopping_list, parse_shopping_list

# Library code logs; applications decide where it goes.
_logging.getLogger(__name__).addHandler(_logging.NullHandler())

__all__ = [
    "__version__",
    "IntelliRackClient",
    "IntelliRackClientError",
    "DeviceDiscovery",
    "DiscoveredDevice",
    "DiscoveryError",
    "discover_devices",
    "is_intellirack_device",
    "RealtimeClient",
    "DeviceStateTracker",
    "build_command",
    "count_online",
    "health_label",
    "sanitize_item_name",
    "weight_status",
    "format_shopping_list",
    "parse_shopping_list",
]
