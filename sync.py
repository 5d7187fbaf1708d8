"""
Denormalized copies of child documents inside their owners.

A child (menu, shipping, order) lives in its own collection and as a snapshot
inside an array of its owner (``menuclass.menus``, ``user.shippings``,
``user.orders``). Writes go primary first, embedded copy second. There is no
rollback: when the embedded write fails the gap is logged and the primary
result still stands. ``rebuild_embedded`` repairs such gaps on demand.
"""
from typing import Any, Dict, Optional

import structlog
from bson import ObjectId
from pymongo.errors import PyMongoError

import database

logger = structlog.get_logger(__name__)


class Embedding:
    """Where a child kind is embedded: ``owner[field]`` holds copies of ``child`` documents."""

    def __init__(self, child: str, owner: str, field: str, owner_key: str):
        self.child = child
        self.owner = owner
        self.field = field
        # Path on the child document that names its owner's _id
        self.owner_key = owner_key

    def owner_id_of(self, doc: dict) -> Optional[ObjectId]:
        value: Any = doc
        for part in self.owner_key.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part)
        return value


MENU_IN_CLASS = Embedding("menu", "menuclass", "menus", "menuClass._id")
SHIPPING_IN_USER = Embedding("shipping", "user", "shippings", "user")
ORDER_IN_USER = Embedding("order", "user", "orders", "orderer._id")

EMBEDDINGS = (MENU_IN_CLASS, SHIPPING_IN_USER, ORDER_IN_USER)


def _gap(embedding: Embedding, action: str, child_id, exc: Exception):
    logger.warning(
        "embedded write failed",
        action=action,
        owner=embedding.owner,
        field=embedding.field,
        child=embedding.child,
        child_id=str(child_id),
        error=str(exc),
    )


def create_child(embedding: Embedding, data, owner_id: ObjectId) -> dict:
    """Insert the child, then push a snapshot of it into its owner's array."""
    doc = database.create_document(embedding.child, data)
    try:
        database.update_documents(
            embedding.owner, {"_id": owner_id}, {"$push": {embedding.field: doc}}
        )
    except PyMongoError as exc:
        _gap(embedding, "push", doc["_id"], exc)
    return doc


def update_child(embedding: Embedding, child_id: ObjectId, changes: Dict[str, Any]) -> Optional[dict]:
    """Patch the child, then patch the matching array element in every owner.

    Only the element whose ``_id`` matches is touched. Owners that do not embed
    the child are left alone. Returns the updated child, or None when it does
    not exist (in which case no owner is touched either).
    """
    doc = database.update_document(embedding.child, child_id, changes)
    if doc is None:
        return None
    positional = {f"{embedding.field}.$.{k}": v for k, v in changes.items()}
    positional[f"{embedding.field}.$.updated_at"] = doc["updated_at"]
    try:
        database.update_documents(
            embedding.owner, {f"{embedding.field}._id": child_id}, {"$set": positional}
        )
    except PyMongoError as exc:
        _gap(embedding, "set", child_id, exc)
    return doc


def delete_child(embedding: Embedding, child_id: ObjectId) -> Optional[dict]:
    """Delete the child, then pull its snapshot out of every owner."""
    doc = database.delete_document(embedding.child, child_id)
    if doc is None:
        return None
    try:
        database.update_documents(
            embedding.owner,
            {f"{embedding.field}._id": child_id},
            {"$pull": {embedding.field: {"_id": child_id}}},
        )
    except PyMongoError as exc:
        _gap(embedding, "pull", child_id, exc)
    return doc


def rebuild_embedded(embedding: Embedding) -> int:
    """Rewrite every owner's array from the canonical child collection.

    Returns how many owner documents changed.
    """
    grouped: Dict[ObjectId, list] = {}
    for child in database.get_documents(embedding.child, sort=[("created_at", 1), ("_id", 1)]):
        owner_id = embedding.owner_id_of(child)
        if owner_id is not None:
            grouped.setdefault(owner_id, []).append(child)

    changed = 0
    for owner in database.get_documents(embedding.owner):
        expected = grouped.get(owner["_id"], [])
        if owner.get(embedding.field, []) != expected:
            changed += database.update_documents(
                embedding.owner, {"_id": owner["_id"]}, {"$set": {embedding.field: expected}}
            )
    if changed:
        logger.info("embedded arrays rebuilt", owner=embedding.owner, field=embedding.field, changed=changed)
    return changed


def rebuild_all() -> Dict[str, int]:
    return {f"{e.owner}.{e.field}": rebuild_embedded(e) for e in EMBEDDINGS}
