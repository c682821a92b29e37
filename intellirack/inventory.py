"""Small pure helpers for presenting rack and inventory data."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Union

DEFAULT_THRESHOLDS = {"low": 200, "critical": 50, "max": 5000}

# A rack that has not reported for this long is offline.
ONLINE_WINDOW = timedelta(minutes=5)

SOON_EMPTY_GRAMS = 100

_NON_PRINTABLE = re.compile(r"[^\x20-\x7E]")
_DISALLOWED = re.compile(r"[^\w\s\-.]")
_READABLE_RUNS = re.compile(r"[a-zA-Z0-9\s]+")

Timestamp = Union[str, datetime, None]


def weight_status(weight: Optional[float], thresholds: Optional[dict[str, Any]] = None) -> str:
    """Map a shelf weight in grams to ``EMPTY``, ``LOW`` or ``GOOD``."""
    limits = {**DEFAULT_THRESHOLDS, **(thresholds or {})}
    if not weight or weight < limits["critical"]:
        return "EMPTY"
    if weight < limits["low"]:
        return "LOW"
    return "GOOD"


def sanitize_item_name(name: Any) -> Optional[str]:
    """Strip corrupted characters from an item name.

    Returns ``None`` when nothing readable is left.
    """
    if not name or not isinstance(name, str):
        return None
    sanitized = _DISALLOWED.sub("", _NON_PRINTABLE.sub("", name)).strip()
    if len(sanitized) < 2:
        readable = _READABLE_RUNS.findall(name)
        if readable:
            sanitized = " ".join(readable).strip()
    return sanitized or None


def parse_timestamp(value: Timestamp) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _aware(value)
    try:
        # fromisoformat() only accepts a trailing "Z" from 3.11 on.
        return _aware(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _now(now: Optional[datetime]) -> datetime:
    return _aware(now) if now is not None else datetime.now(timezone.utc)


def is_online(device: dict[str, Any], now: Optional[datetime] = None) -> bool:
    if "isOnline" in device:
        return bool(device["isOnline"])
    last_seen = parse_timestamp(device.get("lastSeen"))
    if last_seen is None:
        return False
    return _now(now) - last_seen < ONLINE_WINDOW


def count_online(devices: Iterable[dict[str, Any]], now: Optional[datetime] = None) -> dict[str, int]:
    online = offline = 0
    for device in devices or ():
        if is_online(device, now):
            online += 1
        else:
            offline += 1
    return {"online": online, "offline": offline}


def health_label(score: float) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Moderate"
    if score >= 20:
        return "Low"
    return "Critical"


def _weight(item: dict[str, Any]) -> float:
    return item.get("weight") or 0


def top_stocked(ingredients: Iterable[dict[str, Any]], n: int = 3) -> List[dict[str, Any]]:
    stocked = [i for i in ingredients if _weight(i) > 0]
    return sorted(stocked, key=_weight, reverse=True)[:n]


def least_stocked(ingredients: Iterable[dict[str, Any]], n: int = 3) -> List[dict[str, Any]]:
    stocked = [i for i in ingredients if _weight(i) > 0]
    return sorted(stocked, key=_weight)[:n]


def soon_empty(ingredients: Iterable[dict[str, Any]]) -> List[dict[str, Any]]:
    return [i for i in ingredients if _weight(i) < SOON_EMPTY_GRAMS]


def relative_time(value: Timestamp, now: Optional[datetime] = None) -> str:
    ts = parse_timestamp(value)
    if ts is None:
        return "Unknown time"
    minutes = int((_now(now) - ts).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return ts.date().isoformat()
