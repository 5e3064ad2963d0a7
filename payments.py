"""
SumUp payment collaborator and the WhatsApp deep link.

SumUpClient talks to the SumUp REST API (v0.1). Checkout orchestration only
depends on `create_checkout` and `get_checkout`, so tests can hand in any
object with those two methods.
"""
import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import quote, urlencode

import httpx
from pydantic import BaseModel

from config import settings

logger = logging.getLogger(__name__)

# Processor status -> our payment outcome
STATUS_MAP = {
    "PAID": "paid",
    "PENDING": "pending",
    "FAILED": "failed",
    "EXPIRED": "expired",
}


class PaymentError(Exception):
    pass


class ProcessorCheckout(BaseModel):
    id: str
    status: str
    reference: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    redirect_url: Optional[str] = None
    transaction_code: Optional[str] = None
    transaction_id: Optional[str] = None

    @property
    def outcome(self) -> str:
        """paid | pending | failed | expired | unknown"""
        return STATUS_MAP.get((self.status or "").upper(), "unknown")


class SumUpClient:
    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        merchant_code: str,
        timeout: float = 15.0,
        http: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.merchant_code = merchant_code
        self.http = http or httpx.Client(base_url=api_url.rstrip("/"), timeout=timeout)

    def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.api_key:
            raise PaymentError("Payment service not configured")
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            response = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error("SumUp %s %s failed: %s", method, path, e)
            raise PaymentError("Payment provider unreachable") from e
        if response.is_error:
            try:
                message = response.json().get("message")
            except ValueError:
                message = None
            logger.error("SumUp API error %s: %s", response.status_code, response.text[:200])
            raise PaymentError(message or f"SumUp API error: {response.status_code}")
        return response.json()

    def create_checkout(
        self,
        amount: float,
        currency: str,
        reference: str,
        description: str,
        return_url: str,
    ) -> ProcessorCheckout:
        payload = {
            "checkout_reference": reference,
            "amount": round(amount, 2),
            "currency": currency,
            "merchant_code": self.merchant_code,
            "description": description,
            "return_url": return_url,
            "hosted_checkout": {"enabled": True},
        }
        data = self._request("POST", "/checkouts", json=payload)
        return self._to_checkout(data)

    def get_checkout(self, checkout_id: str) -> ProcessorCheckout:
        data = self._request("GET", f"/checkouts/{checkout_id}")
        return self._to_checkout(data)

    @staticmethod
    def _to_checkout(data: dict) -> ProcessorCheckout:
        return ProcessorCheckout(
            id=data["id"],
            status=data.get("status") or "PENDING",
            reference=data.get("checkout_reference"),
            amount=data.get("amount"),
            currency=data.get("currency"),
            redirect_url=data.get("hosted_checkout_url"),
            transaction_code=data.get("transaction_code"),
            transaction_id=data.get("transaction_id"),
        )


@lru_cache
def get_payment_gateway() -> SumUpClient:
    return SumUpClient(
        settings.SUMUP_API_URL,
        settings.SUMUP_API_KEY,
        settings.SUMUP_MERCHANT_CODE,
        timeout=settings.SUMUP_TIMEOUT,
    )


def create_payment_link(amount: float, currency: str = "EUR", description: Optional[str] = None) -> str:
    """Merchant pay-link with a pre-filled amount."""
    params = {"amount": f"{amount:.2f}", "currency": currency}
    if description:
        params["description"] = description
    return f"https://sumup.me/{settings.SUMUP_MERCHANT_CODE}?{urlencode(params)}"


def whatsapp_message(reference: str, total: float, lines: str = "") -> str:
    message = (
        "🛒 Nouvelle commande Hijabi Inoor\n\n"
        f"📦 Référence: {reference}\n"
        f"💰 Total: {total:.2f} €\n"
    )
    if lines:
        message += f"\n📋 Articles:\n{lines}\n"
    message += "\nJe souhaite passer commande."
    return message


def whatsapp_link(message: str, phone: Optional[str] = None) -> str:
    return f"https://wa.me/{phone or settings.WHATSAPP_PHONE}?text={quote(message, safe='')}"
