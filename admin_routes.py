import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import EmailStr, Field

import inventory
import orders
from auth_routes import public_user
from config import Settings
from database import Database, parse_object_id, to_dict
from deps import development_only, get_db, get_settings, require_admin
from errors import AuthError, NotFoundError
from schemas import ApiModel, OrderStatus, Product, Role, User, Variant
from security import hash_password

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

# Bootstrap endpoints: no token yet, guarded by the shared secret instead.
bootstrap_router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(development_only)])


class AdminCreateRequest(ApiModel):
    email: EmailStr
    name: str = Field(..., min_length=2)
    password: str = Field(..., min_length=6)
    secret_key: str


class RoleUpdate(ApiModel):
    role: Role


class VariantIn(ApiModel):
    name: str
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)


class ProductIn(ApiModel):
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    category: Optional[str] = None
    images: List[str] = []
    variants: List[VariantIn] = []


class ProductUpdate(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    images: Optional[List[str]] = None


class StatusUpdate(ApiModel):
    status: OrderStatus


class StockAdjustment(ApiModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(..., description="Positive restocks, negative removes (floored at zero)")
    reason: str = "Manual adjustment"


@bootstrap_router.post("/create", status_code=201)
@bootstrap_router.post("/create-simple", status_code=201)
def create_admin(
    req: AdminCreateRequest,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if req.secret_key != settings.admin_secret_key:
        raise AuthError("Invalid secret key")
    email = req.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already in use")
    user = User(name=req.name, email=email, password_hash=hash_password(req.password), role="ADMIN")
    user_id = db.create_document("user", user)
    log.info("Admin user created: %s", email)
    return {"message": "Admin user created successfully", "user": public_user(db.find_by_id("user", user_id))}


# Users

@router.get("/users")
def list_users(db: Database = Depends(get_db)):
    users = [public_user(u) for u in db.get_documents("user", sort=[("created_at", -1)])]
    return {"success": True, "users": users, "count": len(users)}


@router.patch("/users/{user_id}")
def change_role(user_id: str, req: RoleUpdate, db: Database = Depends(get_db)):
    if not db.update_by_id("user", user_id, {"role": req.role}):
        raise NotFoundError("User not found")
    return {"user": public_user(db.find_by_id("user", user_id))}


# Dashboard

@router.get("/dashboard")
def dashboard(db: Database = Depends(get_db)):
    revenue = list(
        db["order"].aggregate([
            {"$match": {"payment_status": "paid"}},
            {"$group": {"_id": None, "revenue": {"$sum": "$total"}, "count": {"$sum": 1}}},
        ])
    )
    by_status = {
        row["_id"]: row["count"]
        for row in db["order"].aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}])
    }
    recent = db.get_documents("order", limit=5, sort=[("created_at", -1)])
    return {
        "users": db["user"].count_documents({}),
        "products": db["product"].count_documents({}),
        "orders": db["order"].count_documents({}),
        "ordersByStatus": by_status,
        "paidOrders": revenue[0]["count"] if revenue else 0,
        "revenue": round(revenue[0]["revenue"], 2) if revenue else 0.0,
        "lowStock": inventory.low_stock_products(db),
        "recentOrders": [to_dict(o) for o in recent],
    }


# Products

@router.get("/products")
def list_products(category: Optional[str] = None, db: Database = Depends(get_db)):
    products = inventory.get_products(db, category)
    return {"success": True, "products": products, "count": len(products)}


@router.get("/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    product = inventory.get_product(db, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


@router.post("/products", status_code=201)
def create_product(req: ProductIn, db: Database = Depends(get_db)):
    product = Product(**req.model_dump(exclude={"variants"}))
    product_id = db.create_document("product", product)
    for v in req.variants:
        db.create_document("variant", Variant(product_id=product_id, **v.model_dump()))
    return inventory.get_product(db, product_id)


@router.put("/products/{product_id}")
def update_product(product_id: str, req: ProductUpdate, db: Database = Depends(get_db)):
    updates = {k: v for k, v in req.model_dump().items() if v is not None}
    if not updates:
        raise HTTPException(status_code=400, detail="No changes")
    if not db.update_by_id("product", product_id, updates):
        raise NotFoundError("Product not found")
    return inventory.get_product(db, product_id)


@router.post("/products/{product_id}/variants", status_code=201)
def add_variant(product_id: str, req: VariantIn, db: Database = Depends(get_db)):
    if not db.find_by_id("product", product_id):
        raise NotFoundError("Product not found")
    db.create_document("variant", Variant(product_id=product_id, **req.model_dump()))
    return inventory.get_product(db, product_id)


@router.delete("/products/{product_id}")
def delete_product(product_id: str, db: Database = Depends(get_db)):
    _id = parse_object_id(product_id)
    res = db["product"].delete_one({"_id": _id}) if _id else None
    if res is None or res.deleted_count == 0:
        raise NotFoundError("Product not found")
    db["variant"].delete_many({"product_id": product_id})
    return {"deleted": True}


# Orders

@router.get("/orders")
def list_all_orders(
    page: int = 1,
    limit: int = 20,
    status: Optional[OrderStatus] = None,
    db: Database = Depends(get_db),
):
    return orders.list_orders(db, status=status, page=page, limit=limit)


@router.get("/orders/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db)):
    return {"order": orders.get_order(db, order_id)}


@router.patch("/orders/{order_id}")
def update_order_status(order_id: str, req: StatusUpdate, db: Database = Depends(get_db)):
    return {"order": orders.change_status(db, order_id, req.status)}


# Inventory

@router.post("/inventory")
def adjust_inventory(req: StockAdjustment, db: Database = Depends(get_db)):
    if req.quantity == 0:
        raise HTTPException(status_code=400, detail="Quantity must not be zero")
    if req.quantity > 0:
        record = inventory.increase_stock(db, req.product_id, req.quantity, req.variant_id, reason=req.reason)
    else:
        record = inventory.reduce_stock(db, req.product_id, -req.quantity, req.variant_id, reason=req.reason)
    return {"success": True, "stock": record["stock"], "record": record}


@router.get("/inventory")
def inventory_levels(product_id: Optional[str] = Query(None, alias="productId"), db: Database = Depends(get_db)):
    if product_id:
        product = inventory.get_product(db, product_id)
        if not product:
            raise NotFoundError("Product not found")
        return {"product": product, "history": inventory.stock_history(db, product_id, 20)}

    levels = []
    for product in inventory.get_products(db):
        levels.append({
            "id": product["id"],
            "name": product["name"],
            "stock": product["stock"],
            "status": inventory.stock_status(product["stock"]),
            "variants": [
                {"id": v["id"], "name": v["name"], "stock": v["stock"], "status": inventory.stock_status(v["stock"])}
                for v in product["variants"]
            ],
        })
    return {"products": levels}


@router.get("/inventory/history")
def inventory_history(
    product_id: Optional[str] = Query(None, alias="productId"),
    limit: int = 50,
    db: Database = Depends(get_db),
):
    return {"history": inventory.stock_history(db, product_id, limit)}
