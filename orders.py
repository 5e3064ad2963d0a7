"""
Order records: reference generation, line snapshots, persistence and the
admin-driven status lifecycle.
"""
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

import database
import pricing
from config import settings
from schemas import CartItem, Order, OrderItem, OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)

COLLECTION = "order"

_ALPHABET = string.ascii_uppercase + string.digits

# Allowed order status moves; cancelled and refunded are terminal
TRANSITIONS = {
    "pending": {"confirmed", "paid", "processing", "cancelled"},
    "paid": {"confirmed", "processing", "cancelled", "refunded"},
    "confirmed": {"processing", "shipped", "cancelled", "refunded"},
    "processing": {"shipped", "cancelled", "refunded"},
    "shipped": {"delivered", "refunded"},
    "delivered": {"refunded"},
    "cancelled": set(),
    "refunded": set(),
}

PAYMENT_TRANSITIONS = {
    "pending": {"paid", "failed", "cancelled"},
    "failed": {"pending", "paid", "cancelled"},
    "paid": {"refunded"},
    "refunded": set(),
    "cancelled": set(),
}


class OrderError(Exception):
    pass


class InvalidTransition(OrderError):
    pass


def generate_order_reference() -> str:
    """HN-<epoch millis>-<6 random chars>"""
    timestamp = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{settings.ORDER_REFERENCE_PREFIX}-{timestamp}-{suffix}"


def cart_items_to_order_items(items: Iterable[CartItem]) -> List[OrderItem]:
    return [
        OrderItem(
            product_id=item.product.id or "",
            product_name=item.product.name,
            product_image=item.product.image,
            quantity=item.quantity,
            unit_price=item.product.price,
            total_price=pricing.item_total(item),
            selected_color=item.selected_color or None,
            selected_size=item.selected_size or None,
        )
        for item in items
    ]


def format_order_lines(items: Iterable[OrderItem]) -> str:
    return "\n".join(
        f"- {it.product_name} ({it.selected_color or '-'} / {it.selected_size or '-'}) x{it.quantity}: {it.total_price:.2f} €"
        for it in items
    )


def create_order(order: Order) -> Order:
    try:
        order_id = database.create_document(COLLECTION, order)
        doc = database.get_document_by_id(COLLECTION, order_id)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error creating order %s: %s", order.reference, e)
        raise OrderError("Could not save the order, please retry") from e
    logger.info("Order %s created (%s, %.2f %s)", order.reference, order.payment_method, order.total, order.currency)
    return Order.model_validate(doc)


def get_order_by_reference(reference: str) -> Optional[Order]:
    try:
        doc = database.get_document(COLLECTION, {"reference": reference})
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error fetching order %s: %s", reference, e)
        return None
    return Order.model_validate(doc) if doc else None


def get_all_orders(status: Optional[str] = None) -> List[Order]:
    filt = {"status": status} if status else {}
    try:
        docs = database.get_documents(COLLECTION, filt, sort=[("created_at", DESCENDING)])
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error fetching orders: %s", e)
        return []
    return [Order.model_validate(d) for d in docs]


def update_order_status(
    reference: str,
    status: OrderStatus,
    payment_status: Optional[PaymentStatus] = None,
    tracking_number: Optional[str] = None,
) -> Order:
    order = get_order_by_reference(reference)
    if order is None:
        raise OrderError("Order not found")

    if status != order.status and status not in TRANSITIONS[order.status]:
        raise InvalidTransition(f"Cannot move order from {order.status} to {status}")
    if payment_status and payment_status != order.payment_status:
        if payment_status not in PAYMENT_TRANSITIONS[order.payment_status]:
            raise InvalidTransition(f"Cannot move payment from {order.payment_status} to {payment_status}")

    now = datetime.now(timezone.utc)
    values = {"status": status}
    if payment_status:
        values["payment_status"] = payment_status
    if status == "refunded" and not payment_status and order.payment_status == "paid":
        values["payment_status"] = "refunded"
    if tracking_number:
        values["tracking_number"] = tracking_number
    if status == "shipped" and order.status != "shipped":
        values["shipped_at"] = now
    if status == "delivered" and order.status != "delivered":
        values["delivered_at"] = now

    try:
        doc = database.update_document(COLLECTION, {"reference": reference}, values)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error updating order %s: %s", reference, e)
        raise OrderError("Could not update the order, please retry") from e
    logger.info("Order %s: %s -> %s", reference, order.status, status)
    return Order.model_validate(doc)
