"""Shopping-list export and import formats.

Items are plain dicts::

    {"id", "name", "quantity", "notes", "priority", "completed", "addedAt"}

Nothing is stored here; lists are written to and read from whatever file
the caller picks.  Every name goes through :func:`sanitize_item_name` on the
way in, so corrupted NFC or OCR text never reaches an export.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
import uuid
from datetime import date, datetime, timezone
from pathlib import PurePath
from typing import Any, Iterable, List, Optional

from .inventory import sanitize_item_name

logger = logging.getLogger(__name__)

FORMATS = ("text", "markdown", "csv", "json")
PRIORITIES = ("low", "medium", "high")

# File extension written for each export format.
EXTENSIONS = {"text": "txt", "markdown": "md", "csv": "csv", "json": "json"}

CSV_HEADER = ["Name", "Quantity", "Priority", "Notes", "Added"]

_NAME_KEYS = ("name", "item", "title")
_QUANTITY_KEYS = ("quantity", "qty", "amount")
_NOTES_KEYS = ("notes", "note", "description")

# "3. Flour - Qty: 2 (organic) [HIGH]", as written by the text export.
_EXPORTED_LINE = re.compile(
    r"^(?:\d+\.\s+)?(?P<name>.+?)\s+-\s+Qty:\s*(?P<quantity>\S+)"
    r"(?:\s+\((?P<notes>.*)\))?(?:\s+\[(?P<priority>[A-Za-z]+)\])?\s*$"
)
# Free-form lists: "Milk", "Milk - 2", "Eggs (12)".
_FREE_LINE = re.compile(
    r"^(?:[-*]\s+|\d+\.\s+)?(?P<name>.+?)"
    r"(?:\s*[-–]\s*(?P<quantity>\d+)|\s*\((?P<paren_quantity>\d+)\))?\s*$"
)
_MD_HEADING = re.compile(r"^##\s+(?:\d+\.\s+)?(?P<name>.+?)\s*$")
_MD_FIELD = re.compile(r"^-\s+\*\*(?P<key>[A-Za-z]+):\*\*\s*(?P<value>.*?)\s*$")


def _first(data: dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if data.get(key):
            return data[key]
    return None


def _priority(value: Any) -> str:
    value = str(value or "").strip().lower()
    return value if value in PRIORITIES else "medium"


def make_item(
    name: Any,
    quantity: Any = "1",
    notes: Any = "",
    priority: Any = "medium",
    added_at: Optional[str] = None,
    item_id: Optional[str] = None,
    completed: bool = False,
) -> Optional[dict[str, Any]]:
    """Build a list item; ``None`` when the name has nothing readable left."""
    clean = sanitize_item_name(name)
    if clean is None:
        return None
    return {
        "id": item_id or uuid.uuid4().hex,
        "name": clean,
        "quantity": str(quantity or "1").strip() or "1",
        "notes": str(notes or "").strip(),
        "priority": _priority(priority),
        "completed": bool(completed),
        "addedAt": added_at or datetime.now(timezone.utc).isoformat(),
    }


def items_from_ingredients(ingredients: Iterable[dict[str, Any]]) -> List[dict[str, Any]]:
    """Seed a list from ingredient records, empty ones first and marked high priority."""
    out = []
    for ingredient in ingredients:
        weight = ingredient.get("weight") or 0
        item = make_item(
            ingredient.get("name"),
            notes=f"{weight} g left",
            priority="high" if weight <= 0 else "medium",
        )
        if item is not None:
            out.append(item)
    return sorted(out, key=lambda i: PRIORITIES.index(i["priority"]), reverse=True)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def format_shopping_list(
    items: List[dict[str, Any]], fmt: str = "text", today: Optional[date] = None
) -> str:
    """Render *items* as ``text``, ``markdown``, ``csv`` or ``json``."""
    if fmt not in FORMATS:
        raise ValueError(f"Unknown format {fmt!r}; expected one of {', '.join(FORMATS)}")
    stamp = (today or date.today()).isoformat()

    if fmt == "json":
        return json.dumps(items, indent=2)

    if fmt == "csv":
        buf = io.StringIO()
        writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for item in items:
            writer.writerow(
                [
                    item.get("name", ""),
                    item.get("quantity", ""),
                    item.get("priority", ""),
                    item.get("notes") or "",
                    item.get("addedAt") or "",
                ]
            )
        return buf.getvalue()

    lines: List[str] = []
    if fmt == "markdown":
        lines += [f"# Shopping List - {stamp}", ""]
        for index, item in enumerate(items, 1):
            lines.append(f"## {index}. {item['name']}")
            lines.append(f"- **Quantity:** {item.get('quantity', '1')}")
            lines.append(f"- **Priority:** {_priority(item.get('priority')).upper()}")
            if item.get("notes"):
                lines.append(f"- **Notes:** {item['notes']}")
            lines.append("")
        return "\n".join(lines) + "\n"

    lines += [f"Shopping List - {stamp}", "=" * 50, ""]
    for index, item in enumerate(items, 1):
        line = f"{index}. {item['name']} - Qty: {item.get('quantity', '1')}"
        if item.get("notes"):
            line += f" ({item['notes']})"
        line += f" [{_priority(item.get('priority')).upper()}]"
        lines.append(line)
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def parse_shopping_list(content: str, filename: str = "list.txt") -> List[dict[str, Any]]:
    """Parse an exported (or hand-written) list, picking the format by extension.

    ``.json`` and ``.csv`` are parsed structurally; ``.md`` understands the
    markdown export and otherwise falls back to line parsing like ``.txt``.
    Raises ``ValueError`` when a JSON or CSV document cannot be read.
    """
    extension = PurePath(filename).suffix.lower().lstrip(".")
    if extension == "json":
        return _parse_json(content)
    if extension == "csv":
        return _parse_csv(content)
    if extension == "md":
        items = _parse_markdown(content)
        if items:
            return items
    return _parse_text(content)


def _from_record(record: dict[str, Any]) -> Optional[dict[str, Any]]:
    return make_item(
        _first(record, _NAME_KEYS) or "Unknown Item",
        quantity=_first(record, _QUANTITY_KEYS) or "1",
        notes=_first(record, _NOTES_KEYS) or "",
        priority=record.get("priority"),
        added_at=record.get("addedAt") or record.get("added"),
        item_id=record.get("id"),
        completed=record.get("completed") is True,
    )


def _parse_json(content: str) -> List[dict[str, Any]]:
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise ValueError(f"Invalid JSON shopping list: {exc}") from exc
    if not isinstance(data, list):
        raise ValueError("JSON shopping list must be an array of items")
    items = (_from_record(r) for r in data if isinstance(r, dict))
    return [i for i in items if i is not None]


def _parse_csv(content: str) -> List[dict[str, Any]]:
    rows = [line for line in content.splitlines() if line.strip()]
    if not rows:
        return []
    try:
        reader = csv.DictReader(rows)
        records = [
            {(k or "").strip().lower(): v.strip() for k, v in row.items() if isinstance(v, str)}
            for row in reader
        ]
    except csv.Error as exc:
        raise ValueError(f"Invalid CSV shopping list: {exc}") from exc
    items = (_from_record(r) for r in records if _first(r, _NAME_KEYS))
    return [i for i in items if i is not None]


def _parse_markdown(content: str) -> List[dict[str, Any]]:
    records: List[dict[str, Any]] = []
    for line in content.splitlines():
        heading = _MD_HEADING.match(line.strip())
        if heading:
            records.append({"name": heading.group("name")})
            continue
        field = _MD_FIELD.match(line.strip())
        if field and records:
            records[-1][field.group("key").lower()] = field.group("value")
    items = (_from_record(r) for r in records)
    return [i for i in items if i is not None]


def _parse_text(content: str) -> List[dict[str, Any]]:
    items = []
    for raw in content.splitlines():
        line = raw.strip()
        if not line or set(line) == {"="} or line.startswith(("Shopping List", "# ")):
            continue
        match = _EXPORTED_LINE.match(line)
        if match:
            item = make_item(
                match.group("name"),
                quantity=match.group("quantity"),
                notes=match.group("notes") or "",
                priority=match.group("priority"),
            )
        else:
            match = _FREE_LINE.match(line)
            if match is None:
                continue
            item = make_item(
                match.group("name"),
                quantity=match.group("quantity") or match.group("paren_quantity") or "1",
            )
        if item is None:
            logger.debug("Skipping unreadable line %r", raw)
            continue
        items.append(item)
    return items
