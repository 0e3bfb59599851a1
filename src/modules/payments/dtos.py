"""Payment DTOs (Pydantic v2, immutable)."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class PaymentIntention(BaseModel):
    """Gateway-issued payment session for one order."""

    model_config = ConfigDict(frozen=True)

    intention_id: str
    qr: str = ""
    deep_link: str = ""
    checkout_url: Optional[str] = None


class WebhookResult(BaseModel):
    """Outcome of one webhook delivery."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    status: str
    payment_status: str
    duplicate: bool = False
    stock_committed: bool = False

    def to_response(self) -> dict:
        return {"received": True, "status": self.status}
