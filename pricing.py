"""
Pricing and promotion engine.

Everything here is pure: callers load promotions and cart lines from the store
and pass plain models in. The same `line_total` is used for the cart display,
the checkout subtotal and the order line snapshots.
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel

from schemas import AppliedPromotion, CartItem, Promotion

# Hijabs are sold in pairs: 2 for 25 EUR, a leftover single at 13 EUR
TIERED_CATEGORY = "hijabs"
PAIR_PRICE = 25.0
SINGLE_PRICE = 13.0


class PricedLine(BaseModel):
    product_id: str
    category: str
    price: float
    quantity: int


def line_total(category: str, unit_price: float, quantity: int) -> float:
    """Price of `quantity` units of one cart line."""
    if quantity < 0:
        raise ValueError("quantity must be >= 0")
    if category == TIERED_CATEGORY:
        pairs, remainder = divmod(quantity, 2)
        return pairs * PAIR_PRICE + remainder * SINGLE_PRICE
    return unit_price * quantity


def item_total(item: CartItem) -> float:
    return round(line_total(item.product.category, item.product.price, item.quantity), 2)


def cart_subtotal(items: Iterable[CartItem]) -> float:
    return round(sum(item_total(i) for i in items), 2)


def priced_lines(items: Iterable[CartItem]) -> List[PricedLine]:
    return [
        PricedLine(
            product_id=i.product.id or "",
            category=i.product.category,
            price=i.product.price,
            quantity=i.quantity,
        )
        for i in items
    ]


def is_currently_valid(promotion: Promotion, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return promotion.is_active and promotion.start_date <= now <= promotion.end_date


def calculate_promotion_discount(
    promotion: Promotion,
    cart_total: float,
    lines: Optional[List[PricedLine]] = None,
) -> float:
    """
    Discount `promotion` grants on a cart whose subtotal is `cart_total`.

    Validity (active flag and date window) is the caller's business. The result
    is always within [0, cart_total], rounded to cents. Optional thresholds set
    to 0 count as unset.
    """
    if promotion.min_purchase_amount and cart_total < promotion.min_purchase_amount:
        return 0.0

    if promotion.usage_limit and promotion.usage_count >= promotion.usage_limit:
        return 0.0

    eligible_amount = cart_total
    if promotion.applicable_categories and lines is not None:
        eligible_amount = sum(
            l.price * l.quantity for l in lines if l.category in promotion.applicable_categories
        )
    elif promotion.applicable_products and lines is not None:
        eligible_amount = sum(
            l.price * l.quantity for l in lines if l.product_id in promotion.applicable_products
        )

    if eligible_amount <= 0:
        return 0.0

    if promotion.discount_type == "percentage":
        discount = eligible_amount * promotion.discount_value / 100
    else:
        discount = promotion.discount_value

    if promotion.max_discount_amount and discount > promotion.max_discount_amount:
        discount = promotion.max_discount_amount

    if discount > cart_total:
        discount = cart_total

    return round(max(discount, 0.0), 2)


def best_automatic_promotion(
    promotions: Iterable[Promotion],
    cart_total: float,
    lines: Optional[List[PricedLine]] = None,
    now: Optional[datetime] = None,
) -> Optional[AppliedPromotion]:
    """Largest-discount code-less promotion; ties keep the first one seen."""
    best = None
    for promotion in promotions:
        if not promotion.is_automatic or not is_currently_valid(promotion, now):
            continue
        discount = calculate_promotion_discount(promotion, cart_total, lines)
        if discount > 0 and (best is None or discount > best.discount_amount):
            best = AppliedPromotion(promotion=promotion, discount_amount=discount)
    return best


def resolve_promotion(
    manual: Optional[Promotion],
    automatic: Iterable[Promotion],
    cart_total: float,
    lines: Optional[List[PricedLine]] = None,
    now: Optional[datetime] = None,
) -> Optional[AppliedPromotion]:
    """
    Pick the single promotion applied to the cart.

    A manually entered code wins over any automatic promotion as long as it is
    still valid and grants something; promotions never stack.
    """
    if manual is not None and is_currently_valid(manual, now):
        discount = calculate_promotion_discount(manual, cart_total, lines)
        if discount > 0:
            return AppliedPromotion(promotion=manual, discount_amount=discount)
    return best_automatic_promotion(automatic, cart_total, lines, now)
