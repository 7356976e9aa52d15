"""
Product catalog lookups and stock mutations.

Product stock and variant stock are separate counters: a change addressed
to a variant never touches its parent product's ``stock`` and vice versa.
Every mutation is a single conditional update on one document and is
recorded in ``stock_history``.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from bson.objectid import ObjectId
from pymongo import ReturnDocument

from database import Database, parse_object_id, to_dict
from errors import InsufficientStockError, NotFoundError
from schemas import StockHistory

log = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5
MAX_CAS_ATTEMPTS = 10


def stock_status(stock: int) -> str:
    if stock <= 0:
        return "out_of_stock"
    if stock <= LOW_STOCK_THRESHOLD:
        return "low_stock"
    return "in_stock"


def _with_variants(db: Database, products: List[dict]) -> List[dict]:
    ids = [str(p["_id"]) for p in products]
    by_product = {}
    for v in db["variant"].find({"product_id": {"$in": ids}}):
        by_product.setdefault(v["product_id"], []).append(to_dict(v))
    result = []
    for p in products:
        d = to_dict(p)
        d["variants"] = by_product.get(d["id"], [])
        result.append(d)
    return result


def get_products(db: Database, category: Optional[str] = None) -> List[dict]:
    query = {"category": category} if category else {}
    products = db.get_documents("product", query, sort=[("created_at", -1)])
    return _with_variants(db, products)


def get_product(db: Database, product_id: str) -> Optional[dict]:
    doc = db.find_by_id("product", product_id)
    if not doc:
        return None
    return _with_variants(db, [doc])[0]


def get_product_stock(db: Database, product_id: str, variant_id: Optional[str] = None) -> int:
    product = db.find_by_id("product", product_id)
    if not product:
        return 0
    if variant_id:
        variant = db.find_by_id("variant", variant_id)
        if not variant or variant.get("product_id") != product_id:
            return 0
        return variant.get("stock", 0)
    return product.get("stock", 0)


def _resolve(db: Database, product_id: str, variant_id: Optional[str]) -> Tuple[str, ObjectId, dict]:
    """Return (collection, _id, document) holding the stock counter for a line."""
    product = db.find_by_id("product", product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    if variant_id:
        variant = db.find_by_id("variant", variant_id)
        if not variant or variant.get("product_id") != product_id:
            raise NotFoundError(f"Variant {variant_id} not found")
        return "variant", variant["_id"], variant
    return "product", product["_id"], product


def _record(db: Database, product_id, variant_id, change_type, delta, new_stock, reason, order_id=None):
    entry = StockHistory(
        product_id=product_id,
        variant_id=variant_id,
        type=change_type,
        quantity=delta,
        previous_stock=new_stock - delta,
        new_stock=new_stock,
        reason=reason,
        order_id=order_id,
    )
    db.create_document("stock_history", entry)


def reduce_stock(
    db: Database,
    product_id: str,
    quantity: int,
    variant_id: Optional[str] = None,
    reason: str = "Stock reduction",
    order_id: Optional[str] = None,
) -> dict:
    """Decrement a stock counter by ``quantity``, clamped at zero.

    Raises NotFoundError when the product (or variant) does not exist.
    Returns the updated product or variant document.
    """
    if quantity <= 0:
        raise ValueError("Quantity must be a positive number")

    collection, _id, doc = _resolve(db, product_id, variant_id)
    for _ in range(MAX_CAS_ATTEMPTS):
        current = doc.get("stock", 0)
        new_stock = max(current - quantity, 0)
        updated = db[collection].find_one_and_update(
            {"_id": _id, "stock": current},
            {"$set": {"stock": new_stock, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            log.info(
                "Reduced %s %s stock from %s to %s", collection, str(_id), current, new_stock
            )
            _record(db, product_id, variant_id, "ADJUSTMENT", new_stock - current, new_stock, reason, order_id)
            return to_dict(updated)
        doc = db[collection].find_one({"_id": _id})
        if doc is None:
            raise NotFoundError(f"{collection.capitalize()} {str(_id)} not found")
    raise RuntimeError(f"Stock for {collection} {str(_id)} changed too often, giving up")


def reserve_stock(
    db: Database,
    product_id: str,
    quantity: int,
    variant_id: Optional[str] = None,
    order_id: Optional[str] = None,
) -> dict:
    """Atomically take ``quantity`` units if at least that many are left."""
    collection, _id, _ = _resolve(db, product_id, variant_id)
    updated = db[collection].find_one_and_update(
        {"_id": _id, "stock": {"$gte": quantity}},
        {"$inc": {"stock": -quantity}, "$set": {"updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise InsufficientStockError(product_id, quantity, variant_id)
    _record(db, product_id, variant_id, "PURCHASE", -quantity, updated["stock"], "Order placed", order_id)
    return to_dict(updated)


def increase_stock(
    db: Database,
    product_id: str,
    quantity: int,
    variant_id: Optional[str] = None,
    change_type: str = "RESTOCK",
    reason: str = "Restock",
    order_id: Optional[str] = None,
) -> dict:
    if quantity <= 0:
        raise ValueError("Quantity must be a positive number")
    collection, _id, _ = _resolve(db, product_id, variant_id)
    updated = db[collection].find_one_and_update(
        {"_id": _id},
        {"$inc": {"stock": quantity}, "$set": {"updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise NotFoundError(f"{collection.capitalize()} {str(_id)} not found")
    _record(db, product_id, variant_id, change_type, quantity, updated["stock"], reason, order_id)
    return to_dict(updated)


def release_order_stock(db: Database, order: dict, change_type: str = "RELEASE", reason: str = "Order cancelled"):
    """Give back every line of an order. Lines whose product vanished are skipped."""
    order_id = str(order.get("_id") or order.get("id"))
    for item in order.get("items", []):
        try:
            increase_stock(
                db,
                item["product_id"],
                item["quantity"],
                item.get("variant_id"),
                change_type=change_type,
                reason=reason,
                order_id=order_id,
            )
        except NotFoundError:
            log.warning("Cannot restock %s for order %s, product removed", item["product_id"], order_id)


def stock_history(db: Database, product_id: Optional[str] = None, limit: int = 50) -> List[dict]:
    query = {"product_id": product_id} if product_id else {}
    docs = db.get_documents("stock_history", query, limit=limit, sort=[("created_at", -1)])
    return [to_dict(d) for d in docs]


def low_stock_products(db: Database) -> List[dict]:
    docs = db.get_documents("product", {"stock": {"$lte": LOW_STOCK_THRESHOLD}}, sort=[("stock", 1)])
    return [to_dict(d) for d in docs]


def get_variant(db: Database, variant_id: str) -> Optional[dict]:
    _id = parse_object_id(variant_id)
    if _id is None:
        return None
    return to_dict(db["variant"].find_one({"_id": _id}))
