"""Narrow contract between the payment processor and a hosted checkout."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class SettlementState(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


@dataclass
class CheckoutRequest:
    order_code: int
    amount: int
    description: str
    return_url: str
    cancel_url: str
    item_name: str = "Nap credit"


@dataclass
class CheckoutResult:
    checkout_url: str
    qr_code: str
    payment_link_id: str | None = None


@dataclass
class SettlementStatus:
    state: SettlementState
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def transaction_reference(self) -> str | None:
        transactions = self.raw.get("transactions") or []
        if transactions and transactions[0].get("reference"):
            return str(transactions[0]["reference"])
        return None


class SettlementBackend(Protocol):
    """Every method raises ``SettlementError`` on transport or payload failure."""

    async def create_checkout(self, request: CheckoutRequest) -> CheckoutResult: ...

    async def query_status(self, order_code: int) -> SettlementStatus: ...

    def verify_webhook(self, payload: dict[str, Any]) -> bool: ...
