"""
Developer diagnostics. Every route here answers 403 in production and,
unlike the public API, echoes internal error messages back to the caller.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

import inventory
import orders
from database import Database
from deps import development_only, get_db
from errors import NotFoundError, StorefrontError
from schemas import ApiModel

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["debug"], dependencies=[Depends(development_only)])


class ReduceStockRequest(ApiModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int


class FulfillRequest(ApiModel):
    order_id: str


@router.post("/testing/reduce-stock")
def reduce_stock(req: ReduceStockRequest, db: Database = Depends(get_db)):
    if req.quantity <= 0:
        raise HTTPException(status_code=400, detail="Quantity must be a positive number")
    before = inventory.get_product_stock(db, req.product_id, req.variant_id)
    try:
        record = inventory.reduce_stock(db, req.product_id, req.quantity, req.variant_id, reason="Test reduction")
    except StorefrontError:
        raise
    except Exception as e:
        log.exception("Error reducing stock")
        raise HTTPException(status_code=500, detail=str(e))
    return {
        "success": True,
        "message": "Stock reduced successfully",
        "before": before,
        "after": record["stock"],
        "reduction": before - record["stock"],
    }


@router.post("/testing/fulfill-order")
def fulfill_order(req: FulfillRequest, db: Database = Depends(get_db)):
    order = orders.get_order(db, req.order_id)
    if order["status"] == "cancelled":
        raise HTTPException(status_code=400, detail="Order is cancelled")
    fulfilled = orders.mark_paid(db, req.order_id)
    message = "Order fulfilled successfully" if fulfilled else "Order already fulfilled"
    return {"success": True, "message": message, "order": orders.get_order(db, req.order_id)}


@router.get("/test/stock-status")
def stock_status(product_id: str = Query(..., alias="productId"), db: Database = Depends(get_db)):
    product = inventory.get_product(db, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return {
        "productId": product["id"],
        "name": product["name"],
        "stock": product["stock"],
        "status": inventory.stock_status(product["stock"]),
        "variants": [
            {"id": v["id"], "name": v["name"], "stock": v["stock"], "status": inventory.stock_status(v["stock"])}
            for v in product["variants"]
        ],
    }


@router.get("/debug/products")
def debug_products(db: Database = Depends(get_db)):
    products = inventory.get_products(db)
    return {
        "count": len(products),
        "variantCount": sum(len(p["variants"]) for p in products),
        "products": products,
    }
