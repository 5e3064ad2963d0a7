import os
from datetime import datetime, timedelta, timezone

import mongomock
import pytest

# Settings are read at import time; keep the real MongoDB and SumUp out of tests
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("SUMUP_MERCHANT_CODE", "MTEST01")
os.environ.setdefault("WHATSAPP_PHONE", "33611111111")

import database  # noqa: E402
from payments import ProcessorCheckout  # noqa: E402
from schemas import Product, Promotion  # noqa: E402


@pytest.fixture
def mongo(monkeypatch):
    db = mongomock.MongoClient()["hijabi_inoor_test"]
    monkeypatch.setattr(database, "db", db)
    database.ensure_indexes()
    return db


class FakeGateway:
    """Stands in for SumUpClient; `status` is what the next poll reports."""

    def __init__(self, status="PENDING"):
        self.status = status
        self.created = []
        self.polled = []

    def create_checkout(self, amount, currency, reference, description, return_url):
        checkout_id = f"chk_{len(self.created) + 1}"
        self.created.append({
            "id": checkout_id,
            "amount": amount,
            "currency": currency,
            "reference": reference,
            "description": description,
            "return_url": return_url,
        })
        return ProcessorCheckout(
            id=checkout_id,
            status="PENDING",
            reference=reference,
            amount=amount,
            currency=currency,
            redirect_url=f"https://checkout.sumup.test/{checkout_id}",
        )

    def get_checkout(self, checkout_id):
        self.polled.append(checkout_id)
        return ProcessorCheckout(id=checkout_id, status=self.status)


@pytest.fixture
def gateway():
    return FakeGateway()


def make_product(**overrides):
    data = {
        "id": "p-abaya",
        "name": "Abaya Nour",
        "price": 49.9,
        "category": "abayas",
        "colors": ["noir", "beige"],
        "sizes": ["S", "M", "L"],
        "image": "https://cdn.test/abaya.jpg",
    }
    data.update(overrides)
    return Product(**data)


def make_hijab(**overrides):
    data = {
        "id": "p-hijab",
        "name": "Hijab Jersey",
        "price": 13.0,
        "category": "hijabs",
        "colors": ["rose", "taupe"],
        "sizes": ["Unique"],
    }
    data.update(overrides)
    return make_product(**data)


def make_promotion(**overrides):
    now = datetime.now(timezone.utc)
    data = {
        "name": "Promo",
        "discount_type": "percentage",
        "discount_value": 10,
        "start_date": now - timedelta(days=1),
        "end_date": now + timedelta(days=1),
    }
    data.update(overrides)
    return Promotion(**data)


@pytest.fixture
def store_product(mongo):
    def _store(product: Product) -> Product:
        pid = database.create_document("product", product)
        return product.model_copy(update={"id": pid})
    return _store


@pytest.fixture
def store_promotion(mongo):
    def _store(promotion: Promotion) -> Promotion:
        pid = database.create_document("promotion", promotion)
        return promotion.model_copy(update={"id": pid})
    return _store
