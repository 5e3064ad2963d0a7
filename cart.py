"""
Cart state container.

A `Cart` wraps the persisted cart document for one session. Handlers load it,
mutate it and save it back; nothing is kept in module state.
"""
import logging
from typing import List, Optional

import database
import pricing
from schemas import Cart as CartDocument
from schemas import CartItem, Product

logger = logging.getLogger(__name__)

COLLECTION = "cart"


class CartError(Exception):
    pass


def item_key(product_id: str, color: str, size: str) -> str:
    return f"{product_id}-{color}-{size}"


class Cart:
    def __init__(self, session_id: str, items: Optional[List[CartItem]] = None, promotion_code: Optional[str] = None):
        self.session_id = session_id
        self.items: List[CartItem] = list(items or [])
        self.promotion_code = promotion_code

    @classmethod
    def load(cls, session_id: str) -> "Cart":
        doc = database.get_document(COLLECTION, {"session_id": session_id})
        if not doc:
            return cls(session_id)
        stored = CartDocument.model_validate(doc)
        return cls(session_id, stored.items, stored.promotion_code)

    def save(self):
        doc = CartDocument(session_id=self.session_id, items=self.items, promotion_code=self.promotion_code)
        database.update_document(
            COLLECTION,
            {"session_id": self.session_id},
            doc.model_dump(exclude={"session_id"}),
            upsert=True,
        )

    def add_item(self, product: Product, color: str, size: str, quantity: int = 1) -> CartItem:
        if quantity <= 0:
            raise CartError("Quantity must be at least 1")
        if not product.id:
            raise CartError("Product has no id")
        if not product.in_stock:
            raise CartError("Product is out of stock")
        if product.colors and color not in product.colors:
            raise CartError(f"Color '{color}' is not available for this product")
        if product.sizes and size not in product.sizes:
            raise CartError(f"Size '{size}' is not available for this product")

        key = item_key(product.id, color, size)
        existing = self.get_item(key)
        if existing:
            existing.quantity += quantity
            return existing
        item = CartItem(id=key, product=product, quantity=quantity, selected_color=color, selected_size=size)
        self.items.append(item)
        return item

    def get_item(self, item_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def remove_item(self, item_id: str):
        self.items = [it for it in self.items if it.id != item_id]

    def update_quantity(self, item_id: str, quantity: int):
        # Setting a quantity of zero or less drops the line
        if quantity <= 0:
            self.remove_item(item_id)
            return
        item = self.get_item(item_id)
        if item is None:
            raise CartError("Item not in cart")
        item.quantity = quantity

    def deduct(self, item_id: str, quantity: int):
        """Take `quantity` units off a line, dropping it when nothing is left."""
        item = self.get_item(item_id)
        if item is not None:
            self.update_quantity(item_id, item.quantity - quantity)

    def clear(self):
        self.items = []
        self.promotion_code = None

    def is_in_cart(self, product_id: str) -> bool:
        return any(it.product.id == product_id for it in self.items)

    @property
    def item_count(self) -> int:
        return sum(it.quantity for it in self.items)

    @property
    def subtotal(self) -> float:
        return pricing.cart_subtotal(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items
