"""
Per-user address book.

A user with at least one active address has exactly one default. The flip
happens in two writes (unset the siblings, then mark the target), run through
run_in_transaction so they commit together on a replica set. Without
transactions an interrupted flip leaves no default, and get_default() then
falls back to the newest active address.
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument

from config.settings import settings
from database import address_collection, run_in_transaction
from schemas import Address
from services.errors import NotFoundError, StoreError
from utils import parse_object_id, utcnow

logger = logging.getLogger(__name__)


def format_address(address: Dict[str, Any]) -> str:
    parts = [address.get("address_line1")]
    if address.get("address_line2"):
        parts.append(address["address_line2"])
    if address.get("landmark"):
        parts.append(f"Near {address['landmark']}")
    parts.append(f"{address.get('city')}, {address.get('state')} {address.get('postal_code')}")
    parts.append(address.get("country"))
    return ", ".join(p for p in parts if p)


def _active_query(user_id: str) -> Dict[str, Any]:
    return {"user_id": user_id, "is_active": True}


def list_addresses(user_id: str) -> List[Dict[str, Any]]:
    return list(
        address_collection.find(_active_query(user_id)).sort([("is_default", DESCENDING), ("created_at", DESCENDING)])
    )


def get_address(user_id: str, address_id: str) -> Dict[str, Any]:
    address = address_collection.find_one({
        "_id": parse_object_id(address_id, "address"),
        "user_id": user_id,
        "is_active": True,
    })
    if not address:
        raise NotFoundError("Address not found")
    return address


def get_default(user_id: str) -> Optional[Dict[str, Any]]:
    address = address_collection.find_one({**_active_query(user_id), "is_default": True})
    if address:
        return address
    return next(iter(address_collection.find(_active_query(user_id)).sort("created_at", DESCENDING).limit(1)), None)


def _unset_siblings(user_id: str, keep_id, session):
    query = {"user_id": user_id, "is_default": True}
    if keep_id is not None:
        query["_id"] = {"$ne": keep_id}
    address_collection.update_many(query, {"$set": {"is_default": False, "updated_at": utcnow()}}, session=session)


def create_address(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    active = address_collection.count_documents(_active_query(user_id))
    if active >= settings.MAX_ADDRESSES_PER_USER:
        raise StoreError(
            f"Maximum {settings.MAX_ADDRESSES_PER_USER} addresses allowed. Please delete an existing address first."
        )

    doc = Address(user_id=user_id, **data).model_dump()
    doc["is_active"] = True
    if active == 0:
        doc["is_default"] = True

    def _create(session):
        if doc["is_default"]:
            _unset_siblings(user_id, None, session)
        result = address_collection.insert_one(doc, session=session)
        doc["_id"] = result.inserted_id
        return doc

    created = run_in_transaction(_create)
    logger.info(f"Address {created['_id']} created for user {user_id} (default={created['is_default']})")
    return created


def update_address(user_id: str, address_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    address = get_address(user_id, address_id)
    changes = {k: v for k, v in data.items() if k not in ("user_id", "is_active", "created_at")}
    # The default moves only by marking another address
    if changes.get("is_default") is False and address.get("is_default"):
        changes.pop("is_default")
    if changes.get("type") and not changes.get("label") and not address.get("label"):
        changes["label"] = changes["type"].capitalize()
    changes["updated_at"] = utcnow()

    def _update(session):
        if changes.get("is_default"):
            _unset_siblings(user_id, address["_id"], session)
        return address_collection.find_one_and_update(
            {"_id": address["_id"]},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
            session=session,
        )

    updated = run_in_transaction(_update)
    logger.info(f"Address {address_id} updated for user {user_id}")
    return updated


def set_default(user_id: str, address_id: str) -> Dict[str, Any]:
    address = get_address(user_id, address_id)

    def _flip(session):
        _unset_siblings(user_id, address["_id"], session)
        return address_collection.find_one_and_update(
            {"_id": address["_id"]},
            {"$set": {"is_default": True, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )

    updated = run_in_transaction(_flip)
    logger.info(f"Default address for user {user_id} changed to {address_id}")
    return updated


def delete_address(user_id: str, address_id: str) -> Optional[Dict[str, Any]]:
    """Soft delete. Returns the address promoted to default, if any."""
    address = get_address(user_id, address_id)
    if address_collection.count_documents(_active_query(user_id)) <= 1:
        raise StoreError("Cannot delete the only address. Please add another address first.")

    def _delete(session):
        address_collection.update_one(
            {"_id": address["_id"]},
            {"$set": {"is_active": False, "is_default": False, "updated_at": utcnow()}},
            session=session,
        )
        if not address.get("is_default"):
            return None
        replacement = next(iter(
            address_collection.find(_active_query(user_id), session=session).sort("created_at", DESCENDING).limit(1)
        ), None)
        if replacement:
            address_collection.update_one(
                {"_id": replacement["_id"]},
                {"$set": {"is_default": True, "updated_at": utcnow()}},
                session=session,
            )
            replacement["is_default"] = True
        return replacement

    promoted = run_in_transaction(_delete)
    logger.info(f"Address {address_id} deleted for user {user_id}")
    return promoted
