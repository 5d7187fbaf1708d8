"""
Cart kept inside the user document.

``user.cart`` is a list of menu snapshots, at most one per menu ``_id``, each
with a ``quantity`` and an ``isChecked`` flag. Every mutation rewrites the
whole user document and returns it with the auth fields blanked.
"""
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException

import database
from auth import public_user


def _find(cart: list, menu_id: ObjectId) -> Optional[int]:
    for index, item in enumerate(cart):
        if item.get("_id") == menu_id:
            return index
    return None


def _save(user: dict) -> dict:
    database.replace_document("user", user)
    return public_user(user)


def apply_cart_delta(user: dict, menu_id: ObjectId, quantity: int) -> dict:
    """Add ``quantity`` (may be negative) of a menu to the cart.

    A new entry is only created for a positive delta. A negative delta is only
    applied to an entry whose quantity is still positive, and an entry that
    drops to zero or below is removed.
    """
    menu = database.get_document_by_id("menu", menu_id)
    if not menu:
        raise HTTPException(status_code=400, detail="no matched menu")

    cart = user.setdefault("cart", [])
    index = _find(cart, menu_id)
    if index is None:
        if quantity <= 0:
            return public_user(user)
        cart.append({**menu, "quantity": quantity, "isChecked": True})
        return _save(user)

    item = cart[index]
    current = item.get("quantity") or 0
    if quantity > 0 or current > 0:
        item["quantity"] = current + quantity
    if item["quantity"] <= 0:
        cart.pop(index)
    return _save(user)


def set_checked(user: dict, menu_id: Optional[ObjectId], checked: bool, all_menus: bool = False) -> dict:
    """Set ``isChecked`` on one cart entry, or on every entry with ``all_menus``."""
    cart = user.get("cart", [])
    if all_menus:
        for item in cart:
            item["isChecked"] = checked
        return _save(user)

    index = _find(cart, menu_id)
    if index is None:
        raise HTTPException(status_code=400, detail="no matched menu in cart")
    cart[index]["isChecked"] = checked
    return _save(user)


def remove_from_cart(user: dict, menu_id: ObjectId) -> dict:
    cart = user.get("cart", [])
    index = _find(cart, menu_id)
    if index is None:
        raise HTTPException(status_code=400, detail="no matched menu in cart")
    cart.pop(index)
    return _save(user)
