"""
Order lifecycle: placement with stock reservation, payment reconciliation,
refunds and status changes.

Stock is taken when the order is placed (one conditional decrement per line)
and handed back when the order ends up cancelled, whatever the cause.
A cancellation is claimed with a conditional update on ``status`` so the
stock for an order is released at most once.
"""

import logging
import math
from datetime import datetime
from typing import List, Optional

from bson.objectid import ObjectId

import inventory
from database import Database, parse_object_id, to_dict
from errors import InsufficientStockError, NotFoundError, OrderStateError, PaymentError
from payment import resolve_outcome
from schemas import Order, OrderItem, ShippingDetails

log = logging.getLogger(__name__)


def _price_lines(db: Database, items: List[dict]) -> List[OrderItem]:
    lines = []
    for item in items:
        product = db.find_by_id("product", item["product_id"])
        if not product:
            raise InsufficientStockError(item["product_id"], item["quantity"])
        name, price = product["name"], product["price"]
        variant_id = item.get("variant_id")
        if variant_id:
            variant = inventory.get_variant(db, variant_id)
            if not variant or variant["product_id"] != item["product_id"]:
                raise InsufficientStockError(item["product_id"], item["quantity"], variant_id)
            name, price = f"{name} - {variant['name']}", variant["price"]
        lines.append(
            OrderItem(
                product_id=item["product_id"],
                variant_id=variant_id,
                name=name,
                price=price,
                quantity=item["quantity"],
            )
        )
    return lines


def _reserve_all(db: Database, lines: List[OrderItem], order_id: str) -> None:
    taken = []
    try:
        for line in lines:
            inventory.reserve_stock(db, line.product_id, line.quantity, line.variant_id, order_id=order_id)
            taken.append(line)
    except InsufficientStockError:
        for line in taken:
            inventory.increase_stock(
                db, line.product_id, line.quantity, line.variant_id,
                change_type="RELEASE", reason="Order rejected", order_id=order_id,
            )
        raise


def create_order(
    db: Database,
    gateway,
    items: List[dict],
    shipping_details: dict,
    payment_method: str = "bank_transfer",
    user_id: Optional[str] = None,
) -> dict:
    lines = _price_lines(db, items)
    oid = ObjectId()
    order_id = str(oid)
    _reserve_all(db, lines, order_id)

    order = Order(
        user_id=user_id,
        items=lines,
        total=round(sum(line.price * line.quantity for line in lines), 2),
        shipping_details=ShippingDetails(**shipping_details),
        payment_method=payment_method,
    )
    doc = order.model_dump()
    doc["_id"] = oid
    try:
        db.create_document("order", doc)
    except Exception:
        inventory.release_order_stock(db, doc, reason="Order could not be saved")
        raise
    log.info("Created order %s for %s (total %s)", order_id, user_id or "guest", order.total)

    # Past this point the order holds stock; any failure must hand it back.
    try:
        transaction = gateway.create_transaction(to_dict(doc))
        db.update_by_id(
            "order",
            order_id,
            {"payment_token": transaction.token, "payment_redirect_url": transaction.redirect_url},
        )
    except Exception as e:
        if not isinstance(e, PaymentError):
            log.exception("Payment setup for order %s failed", order_id)
        cancel_order(db, order_id, payment_status="failed", reason="Payment creation failed")
        raise
    return {
        "order_id": order_id,
        "payment_token": transaction.token,
        "redirect_url": transaction.redirect_url,
    }


def get_order(db: Database, order_id: str) -> dict:
    doc = db.find_by_id("order", order_id)
    if not doc:
        raise NotFoundError(f"No order found with ID: {order_id}")
    return to_dict(doc)


def get_user_order(db: Database, order_id: str, user_id: str) -> dict:
    _id = parse_object_id(order_id)
    doc = db["order"].find_one({"_id": _id, "user_id": user_id}) if _id else None
    if not doc:
        raise NotFoundError("Order not found")
    return to_dict(doc)


def search_guest_orders(db: Database, order_id: Optional[str] = None, email: Optional[str] = None) -> List[dict]:
    """Find orders by id or, failing that, by the email on the shipping details.

    An id that matches nothing raises NotFoundError; an email that matches
    nothing gives an empty list.
    """
    if order_id:
        return [get_order(db, order_id)]
    docs = db.get_documents("order", {"shipping_details.email": email}, sort=[("created_at", -1)])
    log.info("Guest order search for %s found %d orders", email, len(docs))
    return [to_dict(d) for d in docs]


def list_orders(db: Database, user_id: Optional[str] = None, status: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
    query = {}
    if user_id is not None:
        query["user_id"] = user_id
    if status:
        query["status"] = status
    page = max(page, 1)
    limit = max(min(limit, 100), 1)
    docs = db.get_documents("order", query, limit=limit, sort=[("created_at", -1)], skip=(page - 1) * limit)
    total = db["order"].count_documents(query)
    return {
        "orders": [to_dict(d) for d in docs],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


def cancel_order(db: Database, order_id: str, payment_status: Optional[str] = None, reason: str = "Order cancelled") -> bool:
    """Move an order to ``cancelled`` and give its stock back.

    Returns False when the order was already cancelled.
    """
    _id = parse_object_id(order_id)
    updates = {"status": "cancelled", "updated_at": datetime.utcnow()}
    if payment_status:
        updates["payment_status"] = payment_status
    doc = db["order"].find_one_and_update({"_id": _id, "status": {"$ne": "cancelled"}}, {"$set": updates})
    if doc is None:
        return False
    change_type = "REFUND" if payment_status == "refunded" else "RELEASE"
    inventory.release_order_stock(db, doc, change_type=change_type, reason=reason)
    log.info("Cancelled order %s (%s)", order_id, reason)
    return True


def mark_paid(db: Database, order_id: str, transaction_id: Optional[str] = None) -> bool:
    _id = parse_object_id(order_id)
    now = datetime.utcnow()
    updates = {"status": "paid", "payment_status": "paid", "paid_at": now, "updated_at": now}
    if transaction_id:
        updates["transaction_id"] = transaction_id
    res = db["order"].update_one(
        {"_id": _id, "status": {"$ne": "cancelled"}, "payment_status": {"$ne": "paid"}},
        {"$set": updates},
    )
    return res.modified_count > 0


def apply_payment_notification(db: Database, notification: dict) -> dict:
    order_id = str(notification.get("order_id", ""))
    order = get_order(db, order_id)
    outcome = resolve_outcome(notification.get("transaction_status", ""), notification.get("fraud_status"))
    transaction_id = notification.get("transaction_id")

    if outcome.status == "paid":
        if not mark_paid(db, order_id, transaction_id) and order["status"] == "cancelled":
            log.warning("Payment settled for cancelled order %s, needs manual refund", order_id)
    elif outcome.status == "cancelled":
        cancel_order(db, order_id, payment_status=outcome.payment_status,
                     reason=f"Payment {notification.get('transaction_status')}")
    else:
        log.info("Order %s stays %s after %s", order_id, order["status"], notification.get("transaction_status"))
    return get_order(db, order_id)


def refund_order(db: Database, order_id: str, user_id: str) -> dict:
    order = get_user_order(db, order_id, user_id)
    if order["payment_status"] != "paid":
        raise OrderStateError("Only paid orders can be refunded")
    cancel_order(db, order_id, payment_status="refunded", reason="Refund requested by customer")
    return get_order(db, order_id)


def change_status(db: Database, order_id: str, status: str) -> dict:
    order = get_order(db, order_id)
    if order["status"] == "cancelled":
        raise OrderStateError("Cancelled orders cannot change status")
    if status == "cancelled":
        payment_status = "refunded" if order["payment_status"] == "paid" else "failed"
        cancel_order(db, order_id, payment_status=payment_status, reason="Cancelled by admin")
    elif status == "paid":
        if order["payment_status"] == "paid":
            raise OrderStateError("Order is already paid")
        mark_paid(db, order_id)
    else:
        db.update_by_id("order", order_id, {"status": status})
    return get_order(db, order_id)
