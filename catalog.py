"""
Catalog reads.

Raw store records go through `map_product` (and friends) exactly once; the rest
of the app only sees validated models. Read failures are logged and degrade to
empty results so a broken store never takes the storefront down.
"""
import logging
import re
from typing import List, Optional

from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

import database
from schemas import Category, Product, Subcategory

logger = logging.getLogger(__name__)

MAX_IMAGES = 3
DEFAULT_CATEGORY = "hijabs"

SORTS = {
    "price-low": [("price", ASCENDING)],
    "price-high": [("price", DESCENDING)],
    "newest": [("created_at", DESCENDING)],
    "rating": [("rating", DESCENDING)],
    "popular": [("review_count", DESCENDING)],
}


def _images(raw: dict) -> List[str]:
    images = [img for img in (raw.get("images") or [])[:MAX_IMAGES] if img]
    main = raw.get("image")
    if main and main not in images:
        images.insert(0, main)
        images = images[:MAX_IMAGES]
    return images


def _category_slug(raw: dict) -> str:
    category = raw.get("category")
    if isinstance(category, dict):
        return category.get("slug") or DEFAULT_CATEGORY
    return category or raw.get("category_slug") or DEFAULT_CATEGORY


def map_product(raw: dict) -> Product:
    """Normalize a raw product record. Localized fields fall back to the base text."""
    name = raw.get("name") or ""
    description = raw.get("description") or ""
    stock_quantity = raw.get("stock_quantity")
    in_stock = stock_quantity > 0 if stock_quantity is not None else bool(raw.get("in_stock", True))
    subcategory = raw.get("subcategory_info")
    original_price = raw.get("original_price")
    return Product(
        id=str(raw.get("id") or raw.get("_id") or "") or None,
        sku=raw.get("sku"),
        slug=raw.get("slug"),
        name=name,
        name_ar=raw.get("name_ar") or name,
        name_fr=raw.get("name_fr") or name,
        name_it=raw.get("name_it") or name,
        name_es=raw.get("name_es") or name,
        description=description,
        description_ar=raw.get("description_ar") or description,
        description_fr=raw.get("description_fr") or description,
        description_it=raw.get("description_it") or description,
        description_es=raw.get("description_es") or description,
        price=float(raw.get("price") or 0),
        original_price=float(original_price) if original_price else None,
        image=raw.get("image"),
        images=_images(raw),
        category=_category_slug(raw),
        subcategory=(subcategory or {}).get("slug") if isinstance(subcategory, dict) else raw.get("subcategory"),
        colors=raw.get("colors") or [],
        sizes=raw.get("sizes") or [],
        stock_quantity=stock_quantity,
        in_stock=in_stock,
        is_new=bool(raw.get("is_new")),
        new_arrival=bool(raw.get("new_arrival")),
        is_best_seller=bool(raw.get("is_best_seller")),
        is_on_sale=bool(raw.get("is_on_sale")),
        is_featured=bool(raw.get("is_featured")),
        rating=raw.get("rating") or 0,
        review_count=raw.get("review_count") or 0,
        tags=raw.get("tags") or [],
        created_at=raw.get("created_at"),
    )


def _map_all(docs: List[dict]) -> List[Product]:
    products = []
    for doc in docs:
        try:
            products.append(map_product(doc))
        except ValidationError as e:
            logger.warning("Skipping malformed product %s: %s", doc.get("id"), e)
    return products


def list_products(
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    q: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    colors: Optional[List[str]] = None,
    sizes: Optional[List[str]] = None,
    in_stock: Optional[bool] = None,
    sort_by: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Product]:
    filt = {}
    if category:
        filt["category"] = category
    if subcategory:
        filt["subcategory"] = subcategory
    if q:
        pattern = re.escape(q)
        filt["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"name_fr": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if min_price is not None or max_price is not None:
        filt["price"] = {}
        if min_price is not None:
            filt["price"]["$gte"] = min_price
        if max_price is not None:
            filt["price"]["$lte"] = max_price
    if colors:
        filt["colors"] = {"$in": colors}
    if sizes:
        filt["sizes"] = {"$in": sizes}

    sort = SORTS.get(sort_by or "newest", SORTS["newest"])
    try:
        docs = database.get_documents("product", filt, sort=sort, limit=limit)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error fetching products: %s", e)
        return []

    products = _map_all(docs)
    if in_stock is not None:
        products = [p for p in products if p.in_stock == in_stock]
    return products


def featured_products(limit: int = 8) -> List[Product]:
    filt = {"$or": [{"is_new": True}, {"is_best_seller": True}, {"is_featured": True}]}
    try:
        docs = database.get_documents("product", filt, sort=SORTS["newest"], limit=limit)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error fetching featured products: %s", e)
        return []
    return _map_all(docs)


def get_product(product_id: str) -> Optional[Product]:
    """Look a product up by id, then SKU, then legacy numeric id, then slug."""
    lookups = [("sku", product_id)]
    if product_id.isdigit():
        lookups.append(("sku", f"PROD-{product_id}"))
    lookups.append(("slug", product_id))

    try:
        doc = database.get_document_by_id("product", product_id)
        for field, value in lookups:
            if doc:
                break
            doc = database.get_document("product", {field: value})
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error fetching product %s: %s", product_id, e)
        return None

    if not doc:
        return None
    try:
        return map_product(doc)
    except ValidationError as e:
        logger.warning("Product %s is malformed: %s", product_id, e)
        return None


def list_categories() -> List[Category]:
    try:
        docs = database.get_documents("category", {"is_active": True}, sort=[("display_order", ASCENDING)])
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error fetching categories: %s", e)
        return []
    categories = []
    for d in docs:
        try:
            categories.append(Category.model_validate(d))
        except ValidationError as e:
            logger.warning("Skipping malformed category %s: %s", d.get("id"), e)
    return categories


def list_subcategories(category_slug: str) -> List[Subcategory]:
    try:
        category = database.get_document("category", {"slug": category_slug})
        if not category:
            return []
        docs = database.get_documents(
            "subcategory",
            {"category_id": category["id"], "is_active": True},
            sort=[("display_order", ASCENDING)],
        )
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error fetching subcategories: %s", e)
        return []
    subcategories = []
    for d in docs:
        d["name_fr"] = d.get("name_fr") or d.get("name")
        try:
            subcategories.append(Subcategory.model_validate(d))
        except ValidationError as e:
            logger.warning("Skipping malformed subcategory %s: %s", d.get("id"), e)
    return subcategories
