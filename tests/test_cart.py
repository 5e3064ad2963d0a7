import pytest

from cart import Cart, CartError, item_key
from tests.conftest import make_hijab, make_product


def test_same_combination_increments_quantity():
    cart = Cart("s1")
    product = make_product()
    cart.add_item(product, "noir", "M")
    cart.add_item(product, "noir", "M", 2)
    assert len(cart.items) == 1
    assert cart.items[0].id == item_key("p-abaya", "noir", "M")
    assert cart.items[0].quantity == 3


def test_different_color_or_size_is_a_new_line():
    cart = Cart("s1")
    product = make_product()
    cart.add_item(product, "noir", "M")
    cart.add_item(product, "beige", "M")
    cart.add_item(product, "noir", "L")
    assert len(cart.items) == 3
    assert cart.item_count == 3


def test_unknown_color_or_size_is_rejected():
    cart = Cart("s1")
    with pytest.raises(CartError):
        cart.add_item(make_product(), "vert", "M")
    with pytest.raises(CartError):
        cart.add_item(make_product(), "noir", "XXL")
    assert cart.is_empty


def test_out_of_stock_and_bad_quantity_are_rejected():
    cart = Cart("s1")
    with pytest.raises(CartError):
        cart.add_item(make_product(in_stock=False), "noir", "M")
    with pytest.raises(CartError):
        cart.add_item(make_product(), "noir", "M", 0)


def test_update_quantity_to_zero_removes_line():
    cart = Cart("s1")
    item = cart.add_item(make_hijab(), "rose", "Unique", 2)
    cart.update_quantity(item.id, 5)
    assert cart.items[0].quantity == 5
    cart.update_quantity(item.id, 0)
    assert cart.is_empty


def test_update_unknown_item():
    with pytest.raises(CartError):
        Cart("s1").update_quantity("nope", 2)


def test_clear_drops_promotion_code():
    cart = Cart("s1", promotion_code="WELCOME")
    cart.add_item(make_hijab(), "rose", "Unique")
    cart.clear()
    assert cart.is_empty
    assert cart.promotion_code is None


def test_cart_persists_between_loads(mongo):
    cart = Cart.load("session-42")
    assert cart.is_empty
    cart.add_item(make_hijab(), "taupe", "Unique", 3)
    cart.promotion_code = "WELCOME"
    cart.save()

    again = Cart.load("session-42")
    assert again.item_count == 3
    assert again.subtotal == 38
    assert again.promotion_code == "WELCOME"
    assert again.is_in_cart("p-hijab")
    assert Cart.load("other-session").is_empty


def test_deduct_takes_units_off_a_line():
    cart = Cart("s1")
    item = cart.add_item(make_hijab(), "rose", "Unique", 3)
    cart.deduct(item.id, 2)
    assert cart.items[0].quantity == 1
    cart.deduct(item.id, 1)
    assert cart.is_empty
    cart.deduct("unknown", 1)
    assert cart.is_empty
