import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query

import orders
from database import Database
from deps import get_db, get_gateway
from errors import AuthError

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["payment"])


@router.post("/notification")
def payment_notification(
    notification: Dict[str, Any] = Body(...),
    db: Database = Depends(get_db),
    gateway=Depends(get_gateway),
):
    if not gateway.verify_signature(notification):
        log.warning("Rejected payment notification for %s: bad signature", notification.get("order_id"))
        raise AuthError("Invalid signature")

    order = orders.apply_payment_notification(db, notification)
    log.info(
        "Payment notification %s for order %s -> %s/%s",
        notification.get("transaction_status"), order["id"], order["status"], order["payment_status"],
    )
    return {"success": True, "status": order["status"], "paymentStatus": order["payment_status"]}


@router.get("/status")
def payment_status(order_id: str = Query(..., alias="orderId"), db: Database = Depends(get_db)):
    order = orders.get_order(db, order_id)
    return {
        "orderId": order["id"],
        "status": order["status"],
        "paymentStatus": order["payment_status"],
        "total": order["total"],
    }
