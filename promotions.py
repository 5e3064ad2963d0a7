"""
Promotion storage.

Reads degrade to empty results; writes raise PromotionError so the caller can
ask the user to retry.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

import database
import pricing
from schemas import Promotion

logger = logging.getLogger(__name__)

COLLECTION = "promotion"


class PromotionError(Exception):
    pass


class PromotionStoreError(PromotionError):
    """The store failed; the same request may succeed on retry."""


def _validate_all(docs: List[dict]) -> List[Promotion]:
    promos = []
    for doc in docs:
        try:
            promos.append(Promotion.model_validate(doc))
        except ValidationError as e:
            logger.warning("Skipping malformed promotion %s: %s", doc.get("id"), e)
    return promos


def fetch_promotions() -> List[Promotion]:
    try:
        docs = database.get_documents(COLLECTION, sort=[("created_at", DESCENDING)])
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error fetching promotions: %s", e)
        return []
    return _validate_all(docs)


def fetch_active_promotions(now: Optional[datetime] = None) -> List[Promotion]:
    """Currently valid promotions, biggest discount value first."""
    now = now or datetime.now(timezone.utc)
    try:
        docs = database.get_documents(COLLECTION, {"is_active": True}, sort=[("discount_value", DESCENDING)])
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error fetching active promotions: %s", e)
        return []
    promos = _validate_all(docs)
    return [p for p in promos if pricing.is_currently_valid(p, now)]


def find_promotion_by_code(code: str, now: Optional[datetime] = None) -> Optional[Promotion]:
    code = (code or "").strip().upper()
    if not code:
        return None
    try:
        doc = database.get_document(COLLECTION, {"code": code, "is_active": True})
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error finding promotion %s: %s", code, e)
        return None
    valid = _validate_all([doc]) if doc else []
    if not valid or not pricing.is_currently_valid(valid[0], now):
        return None
    return valid[0]


def get_promotion(promotion_id: str) -> Optional[Promotion]:
    doc = database.get_document_by_id(COLLECTION, promotion_id)
    return Promotion.model_validate(doc) if doc else None


def save_promotion(promotion: Promotion) -> Promotion:
    """Create (usage_count reset to 0) or update a promotion."""
    if promotion.end_date < promotion.start_date:
        raise PromotionError("end_date must not be before start_date")
    data = promotion.model_dump(exclude={"id", "usage_count"})
    try:
        if promotion.code:
            clash = database.get_document(COLLECTION, {"code": promotion.code})
            if clash and clash["id"] != promotion.id:
                raise PromotionError(f"Code {promotion.code} is already used")
        if promotion.id:
            doc = database.update_document_by_id(COLLECTION, promotion.id, data)
            if not doc:
                raise PromotionError("Promotion not found")
        else:
            new_id = database.create_document(COLLECTION, {**data, "usage_count": 0})
            doc = database.get_document_by_id(COLLECTION, new_id)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error saving promotion: %s", e)
        raise PromotionStoreError("Could not save promotion, please retry") from e
    return Promotion.model_validate(doc)


def delete_promotion(promotion_id: str) -> bool:
    try:
        return database.delete_document(COLLECTION, promotion_id)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error deleting promotion %s: %s", promotion_id, e)
        raise PromotionStoreError("Could not delete promotion, please retry") from e


def increment_promotion_usage(promotion_id: str):
    # Single $inc; the usage limit is not re-checked atomically here
    try:
        doc = database.increment_field(COLLECTION, promotion_id, "usage_count")
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error incrementing usage for promotion %s: %s", promotion_id, e)
        raise PromotionStoreError("Could not record promotion usage") from e
    if doc is None:
        logger.warning("Promotion %s vanished before its usage was recorded", promotion_id)
