import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import EmailStr, Field

import orders
from database import Database
from deps import get_db, get_gateway, optional_claims, rate_limit, require_claims
from errors import StorefrontError
from schemas import ApiModel, OrderStatus, PaymentMethod

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

INDONESIAN_PHONE = r"^(\+62|62|0)8[1-9][0-9]{6,9}$"


class OrderItemIn(ApiModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(..., ge=1)


class ShippingDetailsIn(ApiModel):
    name: str = Field(..., min_length=3)
    email: EmailStr
    phone: str = Field(..., pattern=INDONESIAN_PHONE)
    address: str = Field(..., min_length=10)
    city: str
    postal_code: str = Field(..., pattern=r"^\d{5}$")


class CreateOrderRequest(ApiModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    shipping_details: ShippingDetailsIn
    payment_method: PaymentMethod = "bank_transfer"


@router.post("", dependencies=[Depends(rate_limit("api"))])
def create_order(
    req: CreateOrderRequest,
    db: Database = Depends(get_db),
    gateway=Depends(get_gateway),
    claims: Optional[dict] = Depends(optional_claims),
):
    try:
        result = orders.create_order(
            db,
            gateway,
            [item.model_dump() for item in req.items],
            req.shipping_details.model_dump(),
            req.payment_method,
            user_id=claims["userId"] if claims else None,
        )
    except StorefrontError:
        raise
    except Exception:
        log.exception("Order creation failed")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "orderId": result["order_id"],
        "paymentToken": result["payment_token"],
        "redirectUrl": result["redirect_url"],
    }


@router.get("")
def list_my_orders(
    page: int = 1,
    limit: int = 10,
    status: Optional[OrderStatus] = None,
    claims: dict = Depends(require_claims),
    db: Database = Depends(get_db),
):
    result = orders.list_orders(db, user_id=claims["userId"], status=status, page=page, limit=limit)
    return {"success": True, **result}


@router.get("/guest")
def search_guest_orders(
    order_id: Optional[str] = Query(None, alias="orderId"),
    email: Optional[str] = None,
    db: Database = Depends(get_db),
):
    if not order_id and not email:
        raise HTTPException(status_code=400, detail="Order ID or email is required")
    return {"orders": orders.search_guest_orders(db, order_id=order_id, email=email)}


@router.get("/guest/{order_id}")
def get_guest_order(order_id: str, db: Database = Depends(get_db)):
    return orders.get_order(db, order_id)


@router.get("/{order_id}")
def get_my_order(order_id: str, claims: dict = Depends(require_claims), db: Database = Depends(get_db)):
    return {"order": orders.get_user_order(db, order_id, claims["userId"])}


@router.post("/{order_id}/refund")
def refund(order_id: str, claims: dict = Depends(require_claims), db: Database = Depends(get_db)):
    order = orders.refund_order(db, order_id, claims["userId"])
    return {"success": True, "order": order}
