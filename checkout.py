"""
Checkout orchestration.

Card payments go through a CheckoutSession:

    pending --(processor PAID)--------------> success  (one order, status paid)
    pending --(processor FAILED / EXPIRED)--> failed   (no order, cart kept)

The WhatsApp rail persists a pending order straight away and counts as a
success once the deep link is handed out, payment being collected on delivery.
Promotion usage is recorded only when an order is actually persisted.
"""
import logging
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel
from pymongo.errors import PyMongoError

import database
import orders
import payments
import pricing
import promotions
from cart import Cart, item_key
from config import settings
from schemas import AppliedPromotion, CartItem, CheckoutSession, CustomerInfo, Order, ShippingAddress

logger = logging.getLogger(__name__)

COLLECTION = "checkout"


class CheckoutError(Exception):
    pass


class CheckoutNotFound(CheckoutError):
    pass


class CheckoutUnavailable(CheckoutError):
    """The store failed; the checkout can be retried."""


class QuoteLine(BaseModel):
    item: CartItem
    line_total: float


class CartQuote(BaseModel):
    lines: List[QuoteLine]
    item_count: int
    subtotal: float
    promotion: Optional[AppliedPromotion] = None
    discount_amount: float = 0
    shipping_cost: float = 0
    total: float


class WhatsAppOrder(BaseModel):
    order: Order
    message: str
    link: str


def quote_cart(cart: Cart, now: Optional[datetime] = None) -> CartQuote:
    subtotal = cart.subtotal
    lines = pricing.priced_lines(cart.items)
    applied = None
    if cart.items:
        manual = promotions.find_promotion_by_code(cart.promotion_code, now) if cart.promotion_code else None
        automatic = promotions.fetch_active_promotions(now)
        applied = pricing.resolve_promotion(manual, automatic, subtotal, lines, now)
    discount = applied.discount_amount if applied else 0.0
    shipping = settings.SHIPPING_COST if cart.items else 0.0
    return CartQuote(
        lines=[QuoteLine(item=i, line_total=pricing.item_total(i)) for i in cart.items],
        item_count=cart.item_count,
        subtotal=subtotal,
        promotion=applied,
        discount_amount=discount,
        shipping_cost=shipping,
        total=round(max(0.0, subtotal - discount) + shipping, 2),
    )


def apply_promotion_code(cart: Cart, code: str, now: Optional[datetime] = None) -> AppliedPromotion:
    """Validate a customer-entered code against the cart and remember it."""
    if not code or not code.strip():
        raise promotions.PromotionError("Please enter a promotion code")
    promotion = promotions.find_promotion_by_code(code, now)
    if promotion is None:
        raise promotions.PromotionError("Invalid or expired promotion code")
    discount = pricing.calculate_promotion_discount(promotion, cart.subtotal, pricing.priced_lines(cart.items))
    if discount <= 0:
        raise promotions.PromotionError("This promotion code does not apply to your cart")
    cart.promotion_code = promotion.code
    return AppliedPromotion(promotion=promotion, discount_amount=discount)


def _build_order(
    cart: Cart,
    quote: CartQuote,
    reference: str,
    customer: CustomerInfo,
    address: Optional[ShippingAddress],
    payment_method: str,
    notes: Optional[str],
) -> Order:
    promotion = quote.promotion.promotion if quote.promotion else None
    return Order(
        reference=reference,
        customer_email=customer.email,
        customer_name=customer.name,
        customer_phone=customer.phone,
        shipping_address=address,
        items=orders.cart_items_to_order_items(cart.items),
        subtotal=quote.subtotal,
        discount_amount=quote.discount_amount,
        promotion_id=promotion.id if promotion else None,
        promotion_code=promotion.code if promotion else None,
        shipping_cost=quote.shipping_cost,
        total=quote.total,
        currency=settings.CURRENCY,
        status="pending",
        payment_method=payment_method,
        payment_status="pending",
        notes=notes,
    )


def _record_promotion_usage(order: Order):
    if not order.promotion_id:
        return
    try:
        promotions.increment_promotion_usage(order.promotion_id)
    except promotions.PromotionError:
        # The order stands; the counter is fixed up by hand from the order list
        logger.error("Order %s used promotion %s but its usage was not recorded", order.reference, order.promotion_id)


def _save_session(session: CheckoutSession) -> CheckoutSession:
    values = session.model_dump(exclude={"id"})
    try:
        doc = database.update_document(COLLECTION, {"reference": session.reference}, values, upsert=True)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error saving checkout %s: %s", session.reference, e)
        raise CheckoutUnavailable("Could not save the checkout, please retry") from e
    return CheckoutSession.model_validate(doc)


def get_checkout_session(checkout_id: Optional[str] = None, reference: Optional[str] = None) -> Optional[CheckoutSession]:
    if checkout_id:
        filt = {"checkout_id": checkout_id}
    elif reference:
        filt = {"reference": reference}
    else:
        return None
    try:
        doc = database.get_document(COLLECTION, filt)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error fetching checkout %s: %s", checkout_id or reference, e)
        raise CheckoutUnavailable("Could not load the checkout, please retry") from e
    return CheckoutSession.model_validate(doc) if doc else None


def _settle_cart(session: CheckoutSession):
    # Only the paid lines leave the cart; anything added since the checkout started stays
    try:
        cart = Cart.load(session.session_id)
        for line in session.order.items:
            cart.deduct(item_key(line.product_id, line.selected_color or "", line.selected_size or ""), line.quantity)
        cart.promotion_code = None
        cart.save()
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Checkout %s paid but cart %s was not updated: %s", session.reference, session.session_id, e)


def start_card_checkout(
    cart: Cart,
    customer: CustomerInfo,
    gateway,
    address: Optional[ShippingAddress] = None,
    notes: Optional[str] = None,
) -> CheckoutSession:
    if cart.is_empty:
        raise CheckoutError("Your cart is empty")
    if not customer.email:
        raise CheckoutError("Email is required for card payment")

    quote = quote_cart(cart)
    reference = orders.generate_order_reference()
    draft = _build_order(cart, quote, reference, customer, address, "sumup", notes)

    processor = gateway.create_checkout(
        amount=draft.total,
        currency=settings.CURRENCY,
        reference=reference,
        description=f"Commande {reference} - {len(cart.items)} article(s)",
        return_url=f"{settings.PUBLIC_URL}/checkout/return?reference={reference}",
    )
    session = CheckoutSession(
        reference=reference,
        session_id=cart.session_id,
        checkout_id=processor.id,
        redirect_url=processor.redirect_url,
        order=draft,
        state="pending",
        processor_status=processor.status,
    )
    logger.info("Card checkout %s started for %.2f %s", reference, draft.total, settings.CURRENCY)
    return _save_session(session)


def complete_card_checkout(
    gateway,
    checkout_id: Optional[str] = None,
    reference: Optional[str] = None,
) -> CheckoutSession:
    """
    Settle a card checkout from the processor's own status.

    Safe to call repeatedly: a session already marked success keeps its single
    order, a pending one is polled again.
    """
    session = get_checkout_session(checkout_id, reference)
    if session is None:
        raise CheckoutNotFound("Checkout not found")
    if session.state != "pending":
        return session

    processor = gateway.get_checkout(session.checkout_id)
    session.processor_status = processor.status
    outcome = processor.outcome

    if outcome == "paid":
        order = orders.get_order_by_reference(session.reference)
        if order is None:
            paid = session.order.model_copy(update={"status": "paid", "payment_status": "paid"})
            order = orders.create_order(paid)
            _record_promotion_usage(order)
        _settle_cart(session)
        session.state = "success"
        session.order_id = order.id
        logger.info("Card checkout %s paid", session.reference)
    elif outcome in ("failed", "expired"):
        session.state = "failed"
        logger.info("Card checkout %s %s", session.reference, outcome)
    else:
        logger.info("Card checkout %s still %s", session.reference, processor.status)

    return _save_session(session)


def whatsapp_checkout(
    cart: Cart,
    customer: CustomerInfo,
    address: Optional[ShippingAddress] = None,
    notes: Optional[str] = None,
) -> WhatsAppOrder:
    if cart.is_empty:
        raise CheckoutError("Your cart is empty")

    quote = quote_cart(cart)
    reference = orders.generate_order_reference()
    order = orders.create_order(_build_order(cart, quote, reference, customer, address, "whatsapp", notes))
    _record_promotion_usage(order)

    message = payments.whatsapp_message(reference, order.total, orders.format_order_lines(order.items))
    link = payments.whatsapp_link(message)

    cart.clear()
    try:
        cart.save()
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Order %s saved but cart %s was not cleared: %s", reference, cart.session_id, e)
    return WhatsAppOrder(order=order, message=message, link=link)
