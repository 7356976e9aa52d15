from typing import Optional

from fastapi import APIRouter, Depends, Query

import inventory
from database import Database
from deps import get_db

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("")
def list_products(category: Optional[str] = None, db: Database = Depends(get_db)):
    return inventory.get_products(db, category)


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    # Unknown ids answer 200 with null, the storefront renders its own "not found".
    return inventory.get_product(db, product_id)


@router.get("/{product_id}/stock")
def get_stock(
    product_id: str,
    variant_id: Optional[str] = Query(None, alias="variantId"),
    db: Database = Depends(get_db),
):
    stock = inventory.get_product_stock(db, product_id, variant_id)
    return {
        "stock": stock,
        "productId": product_id,
        "variantId": variant_id,
        "status": inventory.stock_status(stock),
    }
