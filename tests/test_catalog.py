import catalog
import database
from tests.conftest import make_hijab, make_product


def test_map_product_fills_localized_fallbacks():
    product = catalog.map_product({
        "id": "42",
        "name": "Hijab Soie",
        "name_fr": "Hijab en soie",
        "description": "Doux",
        "price": "13",
        "category": {"slug": "hijabs", "name": "Hijabs"},
        "colors": ["noir"],
        "sizes": ["Unique"],
    })
    assert product.id == "42"
    assert product.name_fr == "Hijab en soie"
    assert product.name_ar == "Hijab Soie"
    assert product.description_es == "Doux"
    assert product.price == 13.0
    assert product.category == "hijabs"
    assert product.in_stock is True


def test_map_product_images_and_stock():
    product = catalog.map_product({
        "name": "Abaya",
        "price": 60,
        "category_slug": "abayas",
        "image": "main.jpg",
        "images": ["a.jpg", "", "b.jpg", "c.jpg", "d.jpg"],
        "stock_quantity": 0,
    })
    assert product.images == ["main.jpg", "a.jpg", "b.jpg"]
    assert product.category == "abayas"
    assert product.in_stock is False


def test_reads_degrade_to_empty_without_database(monkeypatch):
    monkeypatch.setattr(database, "db", None)
    assert catalog.list_products() == []
    assert catalog.featured_products() == []
    assert catalog.list_categories() == []
    assert catalog.get_product("anything") is None


def test_list_products_filters_and_sorts(store_product):
    store_product(make_product(name="Abaya Nour", price=70.0))
    store_product(make_product(name="Abaya Lina", price=45.0))
    store_product(make_hijab(name="Hijab Jersey"))

    abayas = catalog.list_products(category="abayas", sort_by="price-low")
    assert [p.name for p in abayas] == ["Abaya Lina", "Abaya Nour"]

    assert [p.name for p in catalog.list_products(q="jersey")] == ["Hijab Jersey"]
    assert {p.name for p in catalog.list_products(max_price=50)} == {"Hijab Jersey", "Abaya Lina"}


def test_get_product_by_id_sku_and_slug(store_product):
    stored = store_product(make_product(sku="PROD-19", slug="abaya-nour"))
    assert catalog.get_product(stored.id).name == "Abaya Nour"
    assert catalog.get_product("PROD-19").id == stored.id
    assert catalog.get_product("19").id == stored.id
    assert catalog.get_product("abaya-nour").id == stored.id
    assert catalog.get_product("missing") is None


def test_subcategories_follow_their_category(mongo):
    cat_id = database.create_document("category", {"slug": "hijabs", "name": "Hijabs", "is_active": True})
    database.create_document("subcategory", {"slug": "soie", "name": "Silk", "category_id": cat_id, "is_active": True, "display_order": 2})
    database.create_document("subcategory", {"slug": "jersey", "name": "Jersey", "category_id": cat_id, "is_active": True, "display_order": 1})
    database.create_document("subcategory", {"slug": "old", "name": "Old", "category_id": cat_id, "is_active": False})

    subs = catalog.list_subcategories("hijabs")
    assert [s.slug for s in subs] == ["jersey", "soie"]
    assert subs[0].name_fr == "Jersey"
    assert catalog.list_subcategories("abayas") == []


def test_malformed_categories_are_skipped(mongo):
    database.create_document("category", {"slug": "abayas", "name": "Abayas", "is_active": True})
    database.create_document("category", {"slug": "accessoires", "name": "Accessoires", "is_active": True})
    assert [c.slug for c in catalog.list_categories()] == ["abayas"]


def test_malformed_subcategories_are_skipped(mongo):
    cat_id = database.create_document("category", {"slug": "hijabs", "name": "Hijabs", "is_active": True})
    database.create_document("subcategory", {"slug": "jersey", "name": "Jersey", "category_id": cat_id, "is_active": True})
    database.create_document("subcategory", {"name": "No slug", "category_id": cat_id, "is_active": True})
    assert [s.slug for s in catalog.list_subcategories("hijabs")] == ["jersey"]
