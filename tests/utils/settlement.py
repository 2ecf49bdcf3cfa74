"""In-memory settlement backend for payment tests."""

from typing import Any

from src.core.errors import SettlementError
from src.modules.billing.settlement import (
    CheckoutRequest,
    CheckoutResult,
    SettlementState,
    SettlementStatus,
)


class FakeSettlementBackend:
    def __init__(self):
        self.checkouts: list[CheckoutRequest] = []
        self.queries: list[int] = []
        self.statuses: dict[int, SettlementStatus] = {}
        self.fail_checkout = False
        self.fail_query = False
        self.webhook_valid = True

    async def create_checkout(self, request: CheckoutRequest) -> CheckoutResult:
        if self.fail_checkout:
            raise SettlementError("checkout unavailable")
        self.checkouts.append(request)
        return CheckoutResult(
            checkout_url=f"https://pay.example.test/web/{request.order_code}",
            qr_code=f"QR-{request.order_code}",
            payment_link_id=f"link-{request.order_code}",
        )

    async def query_status(self, order_code: int) -> SettlementStatus:
        self.queries.append(order_code)
        if self.fail_query:
            raise SettlementError("status unavailable")
        return self.statuses.get(order_code, SettlementStatus(SettlementState.PENDING))

    def verify_webhook(self, payload: dict[str, Any]) -> bool:
        return self.webhook_valid

    def mark_paid(self, order_code: int, reference: str = "FT-REF-1") -> None:
        self.statuses[order_code] = SettlementStatus(
            SettlementState.PAID,
            {"status": "PAID", "transactions": [{"reference": reference}]},
        )

    def mark_cancelled(self, order_code: int) -> None:
        self.statuses[order_code] = SettlementStatus(
            SettlementState.CANCELLED, {"status": "CANCELLED"}
        )
