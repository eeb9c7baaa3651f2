"""
Schema migrations for persisted records.

Every function here is pure: it takes the decoded JSON of a stored blob
and returns the record in its current shape, without touching storage.
Running a migration on its own output returns an equal record.

Historical shapes:
    cart v1     bare list of {id, name, price (float), image, author, quantity}
    cart v2     {"schema_version": 2, "items": [{..., "unit_price": "29.99", "category": {...}}]}
    chat v1     bare list of {id, content, timestamp, user: {name, avatar, id}, type}
    chat v2     {"schema_version": 2, "messages": [{..., "author": {...}, "direction": ...}]}
    session v1  {email, username, fullName, loginDate}
    session v2  {"schema_version": 2, email, username, display_name, login_instant}
"""
import copy
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from course_shop.catalog import CATALOG
from course_shop.exceptions import MigrationError
from course_shop.models import (
    CART_SCHEMA_VERSION,
    CHAT_SCHEMA_VERSION,
    SESSION_SCHEMA_VERSION,
    CategoryMetadata,
)

logger = logging.getLogger(__name__)

_DIRECTIONS = {"sent": "outbound", "received": "inbound"}


def _envelope(record: Any, key: str, collection: str, current: int) -> List[Dict[str, Any]]:
    """Return the list of entries of a v1 (bare list) or v2 (envelope) record"""
    if isinstance(record, list):
        return record
    if isinstance(record, dict) and isinstance(record.get(collection), list):
        version = record.get("schema_version")
        if not isinstance(version, int) or version > current:
            raise MigrationError(key, f"unsupported schema_version {version!r}")
        return record[collection]
    raise MigrationError(key, f"unexpected record type {type(record).__name__}")


def _normalize_price(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not price.is_finite() or price <= 0:
        return None
    return str(price)


def migrate_cart_item(item: Dict[str, Any], catalog: Optional[Dict[str, CategoryMetadata]] = None) -> Optional[Dict[str, Any]]:
    """Upgrade one cart entry; None means the entry cannot be kept"""
    source = CATALOG if catalog is None else catalog
    if not isinstance(item, dict) or not item.get("id"):
        return None

    upgraded = dict(item)
    if "unit_price" not in upgraded:
        upgraded["unit_price"] = upgraded.pop("price", None)
    else:
        upgraded.pop("price", None)
    upgraded["unit_price"] = _normalize_price(upgraded["unit_price"])
    if upgraded["unit_price"] is None:
        return None

    try:
        quantity = int(upgraded.get("quantity", 0))
    except (TypeError, ValueError):
        return None
    if quantity < 1:
        return None
    upgraded["quantity"] = quantity

    upgraded["id"] = str(upgraded["id"])
    upgraded["name"] = str(upgraded.get("name") or "")
    upgraded["image"] = upgraded.get("image") or ""
    upgraded["author"] = upgraded.get("author") or ""

    if not upgraded.get("category"):
        known = source.get(upgraded["id"])
        upgraded["category"] = known.model_dump() if known else None
    return upgraded


def migrate_cart(record: Any, catalog: Optional[Dict[str, CategoryMetadata]] = None) -> Dict[str, Any]:
    """Upgrade a stored cart to the current schema and back-fill metadata"""
    entries = _envelope(copy.deepcopy(record), "cart", "items", CART_SCHEMA_VERSION)

    items: List[Dict[str, Any]] = []
    seen: Dict[str, Dict[str, Any]] = {}
    for entry in entries:
        upgraded = migrate_cart_item(entry, catalog)
        if upgraded is None:
            logger.warning("Dropping invalid cart entry", extra={"entry": repr(entry)[:200]})
            continue
        # Legacy writers could duplicate an id; fold into the first entry
        if upgraded["id"] in seen:
            seen[upgraded["id"]]["quantity"] += upgraded["quantity"]
            continue
        seen[upgraded["id"]] = upgraded
        items.append(upgraded)

    return {"schema_version": CART_SCHEMA_VERSION, "items": items}


def migrate_chat_message(message: Dict[str, Any]) -> Dict[str, Any]:
    if "author" in message and "direction" in message:
        return message

    user = message.get("user") or {}
    upgraded = {k: v for k, v in message.items() if k not in ("user", "type")}
    upgraded["author"] = {
        "display_name": user.get("name", ""),
        "avatar_token": user.get("avatar", ""),
        "author_id": str(user.get("id", "")),
    }
    upgraded["direction"] = _DIRECTIONS.get(message.get("type"), "inbound")
    return upgraded


def migrate_chat(record: Any) -> Dict[str, Any]:
    """Upgrade a stored chat history to the current schema"""
    entries = _envelope(copy.deepcopy(record), "chat", "messages", CHAT_SCHEMA_VERSION)
    messages = []
    for entry in entries:
        if not isinstance(entry, dict) or not str(entry.get("content") or "").strip():
            logger.warning("Dropping invalid chat entry", extra={"entry": repr(entry)[:200]})
            continue
        messages.append(migrate_chat_message(entry))
    return {"schema_version": CHAT_SCHEMA_VERSION, "messages": messages}


def migrate_session(record: Any) -> Dict[str, Any]:
    """Upgrade a stored session to the current schema"""
    if not isinstance(record, dict) or not record.get("email"):
        raise MigrationError("session", "record has no email")

    upgraded = dict(record)
    if "display_name" not in upgraded:
        upgraded["display_name"] = upgraded.pop("fullName", None) or upgraded.get("username") or upgraded["email"]
    else:
        upgraded.pop("fullName", None)
    if "login_instant" not in upgraded:
        upgraded["login_instant"] = upgraded.pop("loginDate", None)
    else:
        upgraded.pop("loginDate", None)
    if not upgraded.get("username"):
        upgraded["username"] = upgraded["email"].split("@")[0]
    if not upgraded.get("login_instant"):
        raise MigrationError("session", "record has no login instant")
    upgraded["schema_version"] = SESSION_SCHEMA_VERSION
    return upgraded
