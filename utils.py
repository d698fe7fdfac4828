from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId, errors as bson_errors
from fastapi import HTTPException


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mongo may hand back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_object_id(value: str, name: str = "resource") -> ObjectId:
    try:
        return ObjectId(value)
    except (bson_errors.InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {name} id")


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Converts a Mongo document into something FastAPI can return:
    _id becomes a string 'id' and every nested ObjectId becomes a string.
    """
    if doc is None:
        return None
    out = _to_json_safe(doc)
    if "_id" in out:
        out["id"] = out.pop("_id")
    return out


def _to_json_safe(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _to_json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_json_safe(v) for v in value]
    return value


def paginate(cursor_total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = (cursor_total + limit - 1) // limit if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total": cursor_total,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def round_money(amount: float) -> float:
    return round(float(amount), 2)
