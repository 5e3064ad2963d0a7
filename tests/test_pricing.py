import random
from datetime import datetime, timedelta, timezone

import pytest

import pricing
from cart import Cart
from tests.conftest import make_hijab, make_product, make_promotion


@pytest.mark.parametrize("quantity,expected", [(0, 0), (1, 13), (2, 25), (3, 38), (4, 50), (7, 88)])
def test_hijabs_are_priced_in_pairs(quantity, expected):
    assert pricing.line_total("hijabs", 13.0, quantity) == expected


def test_tiered_price_ignores_listed_price():
    assert pricing.line_total("hijabs", 99.0, 3) == 38
    assert pricing.line_total("hijabs", 0.0, 1) == 13


def test_tiered_formula_holds_for_many_quantities():
    for q in range(0, 200):
        assert pricing.line_total("hijabs", 13.0, q) == 25 * (q // 2) + 13 * (q % 2)


@pytest.mark.parametrize("category", ["abayas", "ensemble", "boxes-cadeau"])
def test_other_categories_are_linear(category):
    rng = random.Random(7)
    for _ in range(50):
        price = round(rng.uniform(0, 300), 2)
        q = rng.randint(0, 20)
        assert pricing.line_total(category, price, q) == price * q


def test_negative_quantity_is_rejected():
    with pytest.raises(ValueError):
        pricing.line_total("abayas", 10.0, -1)


def test_cart_subtotal_uses_tiered_lines():
    cart = Cart("s1")
    cart.add_item(make_hijab(), "rose", "Unique", 3)
    cart.add_item(make_product(price=50.0), "noir", "M", 2)
    assert cart.subtotal == 138.0


def test_percentage_capped_by_max_discount():
    promo = make_promotion(discount_value=20, max_discount_amount=15)
    assert pricing.calculate_promotion_discount(promo, 100.0) == 15


def test_below_minimum_purchase_gives_nothing():
    promo = make_promotion(min_purchase_amount=50)
    assert pricing.calculate_promotion_discount(promo, 40.0) == 0


def test_usage_limit_reached_gives_nothing():
    promo = make_promotion(usage_limit=5, usage_count=5)
    assert pricing.calculate_promotion_discount(promo, 100.0) == 0
    promo = make_promotion(usage_limit=5, usage_count=9)
    assert pricing.calculate_promotion_discount(promo, 100.0) == 0


def test_zero_thresholds_mean_unset():
    promo = make_promotion(min_purchase_amount=0, usage_limit=0, max_discount_amount=0, usage_count=3)
    assert pricing.calculate_promotion_discount(promo, 80.0) == 8


def test_fixed_discount_never_exceeds_subtotal():
    promo = make_promotion(discount_type="fixed", discount_value=30)
    assert pricing.calculate_promotion_discount(promo, 12.5) == 12.5


def test_category_allow_list_limits_eligible_amount():
    lines = [
        pricing.PricedLine(product_id="a", category="abayas", price=60.0, quantity=1),
        pricing.PricedLine(product_id="b", category="ensemble", price=40.0, quantity=2),
    ]
    promo = make_promotion(discount_value=50, applicable_categories=["ensemble"])
    assert pricing.calculate_promotion_discount(promo, 140.0, lines) == 40

    promo = make_promotion(discount_value=50, applicable_categories=["boxes-cadeau"])
    assert pricing.calculate_promotion_discount(promo, 140.0, lines) == 0


def test_product_allow_list_limits_eligible_amount():
    lines = [
        pricing.PricedLine(product_id="a", category="abayas", price=60.0, quantity=1),
        pricing.PricedLine(product_id="b", category="ensemble", price=40.0, quantity=2),
    ]
    promo = make_promotion(discount_value=10, applicable_products=["a"])
    assert pricing.calculate_promotion_discount(promo, 140.0, lines) == 6


def test_discount_stays_within_subtotal():
    rng = random.Random(42)
    for _ in range(500):
        subtotal = round(rng.uniform(0, 500), 2)
        kind = rng.choice(["percentage", "fixed"])
        value = rng.uniform(0, 100) if kind == "percentage" else rng.uniform(0, 600)
        promo = make_promotion(
            discount_type=kind,
            discount_value=value,
            min_purchase_amount=rng.choice([None, 0, rng.uniform(0, 300)]),
            max_discount_amount=rng.choice([None, 0, rng.uniform(0, 200)]),
        )
        discount = pricing.calculate_promotion_discount(promo, subtotal)
        assert 0 <= discount <= subtotal


def test_percentage_matches_rounded_formula():
    rng = random.Random(3)
    for _ in range(200):
        eligible = round(rng.uniform(1, 400), 2)
        value = rng.randint(1, 100)
        promo = make_promotion(discount_value=value)
        assert pricing.calculate_promotion_discount(promo, eligible) == round(eligible * value / 100, 2)
        cap = round(rng.uniform(1, 50), 2)
        capped = make_promotion(discount_value=value, max_discount_amount=cap)
        assert pricing.calculate_promotion_discount(capped, eligible) == min(round(eligible * value / 100, 2), cap)


def test_is_currently_valid():
    now = datetime.now(timezone.utc)
    assert pricing.is_currently_valid(make_promotion(), now)
    assert not pricing.is_currently_valid(make_promotion(is_active=False), now)
    assert not pricing.is_currently_valid(make_promotion(start_date=now + timedelta(hours=1)), now)
    assert not pricing.is_currently_valid(make_promotion(end_date=now - timedelta(seconds=1)), now)


def test_best_automatic_promotion_picks_largest_discount():
    promos = [
        make_promotion(name="ten", discount_value=10),
        make_promotion(name="flat", discount_type="fixed", discount_value=25),
        make_promotion(name="coded", code="BIG50", discount_value=50),
        make_promotion(name="inactive", discount_value=40, is_active=False),
    ]
    best = pricing.best_automatic_promotion(promos, 200.0)
    assert best.promotion.name == "flat"
    assert best.discount_amount == 25


def test_best_automatic_promotion_ties_keep_first():
    promos = [
        make_promotion(name="first", discount_type="fixed", discount_value=5),
        make_promotion(name="second", discount_type="fixed", discount_value=5),
    ]
    assert pricing.best_automatic_promotion(promos, 50.0).promotion.name == "first"


def test_best_automatic_promotion_none_when_nothing_applies():
    promos = [make_promotion(min_purchase_amount=100)]
    assert pricing.best_automatic_promotion(promos, 20.0) is None


def test_manual_code_replaces_automatic_promotion():
    automatic = [make_promotion(name="auto", discount_value=30)]
    manual = make_promotion(name="manual", code="hello5", discount_type="fixed", discount_value=5)
    applied = pricing.resolve_promotion(manual, automatic, 100.0)
    assert applied.promotion.name == "manual"
    assert applied.promotion.code == "HELLO5"
    assert applied.discount_amount == 5


def test_manual_code_that_no_longer_applies_falls_back():
    automatic = [make_promotion(name="auto", discount_value=10)]
    manual = make_promotion(code="MIN500", min_purchase_amount=500)
    applied = pricing.resolve_promotion(manual, automatic, 100.0)
    assert applied.promotion.name == "auto"


def test_linear_line_totals_are_rounded_to_cents():
    cart = Cart("s1")
    item = cart.add_item(make_product(price=49.9), "noir", "M", 3)
    assert pricing.item_total(item) == 149.7
    assert str(pricing.item_total(item)) == "149.7"
