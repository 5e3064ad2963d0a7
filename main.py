import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

import catalog
import checkout
import database
import orders
import payments
import promotions
from cart import Cart, CartError
from config import settings
from schemas import Category, CustomerInfo, OrderStatus, PaymentStatus, Product, Promotion, ShippingAddress

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_indexes():
    if database.db is None:
        logger.warning("DATABASE_URL not set, running without a database")
        return
    try:
        database.ensure_indexes()
    except PyMongoError as e:
        logger.error("Could not create indexes: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_indexes()
    yield


app = FastAPI(title="Hijabi Inoor API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {"name": "Hijabi Inoor", "status": "ok"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = database.db.name
            response["connection_status"] = "Connected"
            try:
                collections = database.db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except PyMongoError as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    response["payments"] = "✅ Set" if settings.SUMUP_API_KEY else "❌ Not Set"
    return response


# Public catalog

@app.get("/api/categories")
def list_categories():
    return catalog.list_categories()


@app.get("/api/categories/{slug}/subcategories")
def list_subcategories(slug: str):
    return catalog.list_subcategories(slug)


@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    q: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    colors: Optional[List[str]] = Query(None),
    sizes: Optional[List[str]] = Query(None),
    in_stock: Optional[bool] = None,
    sort_by: Optional[str] = Query(None, pattern="^(price-low|price-high|newest|rating|popular)$"),
):
    return catalog.list_products(category, subcategory, q, min_price, max_price, colors, sizes, in_stock, sort_by)


@app.get("/api/products/featured")
def list_featured(limit: int = Query(8, ge=1, le=50)):
    return catalog.featured_products(limit)


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    product = catalog.get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


# Cart (one persisted cart per browser session id)

def _load_cart(session_id: str) -> Cart:
    try:
        return Cart.load(session_id)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Could not load cart %s: %s", session_id, e)
        raise HTTPException(status_code=503, detail="Cart unavailable, please retry")


def _save_cart(cart: Cart):
    try:
        cart.save()
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Could not save cart %s: %s", cart.session_id, e)
        raise HTTPException(status_code=503, detail="Cart unavailable, please retry")


@app.get("/api/cart/{session_id}")
def get_cart(session_id: str):
    return checkout.quote_cart(_load_cart(session_id))


class CartAdd(BaseModel):
    product_id: str
    color: str = ""
    size: str = ""
    quantity: int = Field(1, ge=1)


class CartQuantity(BaseModel):
    quantity: int


@app.post("/api/cart/{session_id}/items")
def add_to_cart(session_id: str, payload: CartAdd):
    product = catalog.get_product(payload.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    cart = _load_cart(session_id)
    try:
        cart.add_item(product, payload.color, payload.size, payload.quantity)
    except CartError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _save_cart(cart)
    return checkout.quote_cart(cart)


@app.patch("/api/cart/{session_id}/items/{item_id}")
def update_cart_item(session_id: str, item_id: str, payload: CartQuantity):
    cart = _load_cart(session_id)
    try:
        cart.update_quantity(item_id, payload.quantity)
    except CartError as e:
        raise HTTPException(status_code=404, detail=str(e))
    _save_cart(cart)
    return checkout.quote_cart(cart)


@app.delete("/api/cart/{session_id}/items/{item_id}")
def remove_cart_item(session_id: str, item_id: str):
    cart = _load_cart(session_id)
    cart.remove_item(item_id)
    _save_cart(cart)
    return checkout.quote_cart(cart)


@app.delete("/api/cart/{session_id}")
def clear_cart(session_id: str):
    cart = _load_cart(session_id)
    cart.clear()
    _save_cart(cart)
    return {"ok": True}


class ApplyPromotion(BaseModel):
    code: str


@app.post("/api/cart/{session_id}/promotion")
def apply_promotion(session_id: str, payload: ApplyPromotion):
    cart = _load_cart(session_id)
    try:
        applied = checkout.apply_promotion_code(cart, payload.code)
    except promotions.PromotionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _save_cart(cart)
    return applied


@app.delete("/api/cart/{session_id}/promotion")
def remove_promotion(session_id: str):
    cart = _load_cart(session_id)
    cart.promotion_code = None
    _save_cart(cart)
    return checkout.quote_cart(cart)


# Checkout

class CheckoutPayload(BaseModel):
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    shipping_address: Optional[ShippingAddress] = None
    notes: Optional[str] = None


class ConfirmPayload(BaseModel):
    checkout_id: Optional[str] = None
    reference: Optional[str] = None


def _confirm(gateway, checkout_id: Optional[str], reference: Optional[str]):
    if not checkout_id and not reference:
        raise HTTPException(status_code=400, detail="checkout_id or reference is required")
    try:
        session = checkout.complete_card_checkout(gateway, checkout_id=checkout_id, reference=reference)
    except checkout.CheckoutNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except checkout.CheckoutError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except payments.PaymentError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except orders.OrderError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {
        "reference": session.reference,
        "state": session.state,
        "processor_status": session.processor_status,
        "order_id": session.order_id,
    }


@app.post("/api/checkout/{session_id}/card")
def card_checkout(session_id: str, payload: CheckoutPayload, gateway=Depends(payments.get_payment_gateway)):
    cart = _load_cart(session_id)
    try:
        session = checkout.start_card_checkout(cart, payload.customer, gateway, payload.shipping_address, payload.notes)
    except checkout.CheckoutUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except checkout.CheckoutError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except payments.PaymentError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {
        "reference": session.reference,
        "checkout_id": session.checkout_id,
        "redirect_url": session.redirect_url,
        "total": session.order.total,
        "state": session.state,
    }


@app.post("/api/checkout/confirm")
def confirm_checkout(payload: ConfirmPayload, gateway=Depends(payments.get_payment_gateway)):
    return _confirm(gateway, payload.checkout_id, payload.reference)


@app.get("/api/payments/return")
def payment_return(
    checkout_id: Optional[str] = None,
    reference: Optional[str] = None,
    status: Optional[str] = None,
    gateway=Depends(payments.get_payment_gateway),
):
    # The status in the redirect URL is informational; the processor is asked directly
    logger.info("Payment return for %s (reported status %s)", reference or checkout_id, status)
    return _confirm(gateway, checkout_id, reference)


@app.post("/api/checkout/{session_id}/whatsapp")
def whatsapp_order(session_id: str, payload: CheckoutPayload):
    cart = _load_cart(session_id)
    try:
        result = checkout.whatsapp_checkout(cart, payload.customer, payload.shipping_address, payload.notes)
    except checkout.CheckoutError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except orders.OrderError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"reference": result.order.reference, "total": result.order.total, "whatsapp_url": result.link, "state": "success"}


@app.get("/api/payments/link")
def payment_link(reference: str):
    order = orders.get_order_by_reference(reference)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.payment_status == "paid":
        raise HTTPException(status_code=400, detail="Order already paid")
    return {"url": payments.create_payment_link(order.total, order.currency, f"Commande {order.reference}")}


@app.get("/api/orders/{reference}")
def get_order(reference: str):
    order = orders.get_order_by_reference(reference)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


# Admin endpoints

@app.get("/api/admin/orders")
def admin_list_orders(status: Optional[OrderStatus] = None):
    return orders.get_all_orders(status)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    payment_status: Optional[PaymentStatus] = None
    tracking_number: Optional[str] = None


@app.patch("/api/admin/orders/{reference}/status")
def admin_update_order_status(reference: str, payload: OrderStatusUpdate):
    try:
        return orders.update_order_status(reference, payload.status, payload.payment_status, payload.tracking_number)
    except orders.InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except orders.OrderError as e:
        code = 404 if str(e) == "Order not found" else 503
        raise HTTPException(status_code=code, detail=str(e))


@app.get("/api/admin/promotions")
def admin_list_promotions():
    return promotions.fetch_promotions()


@app.post("/api/admin/promotions")
def admin_create_promotion(promotion: Promotion):
    try:
        return promotions.save_promotion(promotion.model_copy(update={"id": None}))
    except promotions.PromotionStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except promotions.PromotionError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/api/admin/promotions/{promotion_id}")
def admin_update_promotion(promotion_id: str, promotion: Promotion):
    try:
        return promotions.save_promotion(promotion.model_copy(update={"id": promotion_id}))
    except promotions.PromotionStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except promotions.PromotionError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/admin/promotions/{promotion_id}")
def admin_delete_promotion(promotion_id: str):
    try:
        deleted = promotions.delete_promotion(promotion_id)
    except promotions.PromotionError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Promotion not found")
    return {"deleted": True}


@app.post("/api/admin/category")
def admin_create_category(cat: Category):
    try:
        cid = database.create_document("category", cat)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Could not create category: %s", e)
        raise HTTPException(status_code=503, detail="Could not save category, please retry")
    return {"id": cid}


@app.post("/api/admin/product")
def admin_create_product(p: Product):
    try:
        pid = database.create_document("product", p)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Could not create product: %s", e)
        raise HTTPException(status_code=503, detail="Could not save product, please retry")
    return {"id": pid}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
