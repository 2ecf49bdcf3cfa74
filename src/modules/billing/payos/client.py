"""PayOS settlement backend on the official ``payos`` SDK."""

import asyncio
from functools import partial
from typing import Any, Callable

from payos import ItemData, PaymentData, PayOS

from src.core.errors import SettlementError
from src.modules.billing.settlement import (
    CheckoutRequest,
    CheckoutResult,
    SettlementState,
    SettlementStatus,
)
from src.utils.logger import get_logger
from src.utils.settings.payos import PayOSSettings

logger = get_logger(__name__)

# PayOS rejects descriptions longer than this
MAX_DESCRIPTION_LENGTH = 25


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class PayOSClient:
    """Settlement backend backed by PayOS hosted checkout.

    The SDK is synchronous, so calls run in the default executor with the
    configured timeout.
    """

    def __init__(self, settings: PayOSSettings | None = None):
        self.settings = settings or PayOSSettings()
        self.sdk = PayOS(
            client_id=self.settings.PAYOS_CLIENT_ID,
            api_key=self.settings.PAYOS_API_KEY.get_secret_value(),
            checksum_key=self.settings.PAYOS_CHECKSUM_KEY.get_secret_value(),
        )

    async def _call(self, action: str, func: Callable[..., Any], **kwargs) -> Any:
        if not self.settings.is_configured:
            raise SettlementError("PayOS is not configured")

        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, partial(func, **kwargs)),
                timeout=self.settings.PAYOS_TIMEOUT,
            )
        except asyncio.TimeoutError as e:
            logger.error("PayOS request timed out", action=action)
            raise SettlementError("PayOS unavailable: timed out") from e
        except Exception as e:
            logger.error(f"PayOS {action} failed: {e}", action=action)
            raise SettlementError(f"PayOS error: {e}") from e

    async def create_checkout(self, request: CheckoutRequest) -> CheckoutResult:
        payment_data = PaymentData(
            orderCode=request.order_code,
            amount=request.amount,
            description=request.description[:MAX_DESCRIPTION_LENGTH],
            items=[ItemData(name=request.item_name, quantity=1, price=request.amount)],
            cancelUrl=request.cancel_url,
            returnUrl=request.return_url,
        )
        link = await self._call(
            "create_checkout", self.sdk.createPaymentLink, paymentData=payment_data
        )

        checkout_url = _field(link, "checkoutUrl")
        if not checkout_url:
            raise SettlementError("PayOS response has no checkout URL")

        logger.info(
            "PayOS checkout created",
            order_code=request.order_code,
            payment_link_id=_field(link, "paymentLinkId"),
        )
        return CheckoutResult(
            checkout_url=checkout_url,
            qr_code=_field(link, "qrCode") or "",
            payment_link_id=_field(link, "paymentLinkId"),
        )

    async def query_status(self, order_code: int) -> SettlementStatus:
        info = await self._call(
            "query_status", self.sdk.getPaymentLinkInformation, orderId=order_code
        )
        status = str(_field(info, "status") or "").upper()
        try:
            state = SettlementState(status)
        except ValueError:
            # EXPIRED, PROCESSING and friends have no credit effect yet
            state = SettlementState.PENDING

        raw = {
            "status": status,
            "amount": _field(info, "amount"),
            "amountPaid": _field(info, "amountPaid"),
            "transactions": [
                {"reference": _field(t, "reference"), "amount": _field(t, "amount")}
                for t in _field(info, "transactions") or []
            ],
        }
        return SettlementStatus(state=state, raw=raw)

    def verify_webhook(self, payload: dict[str, Any]) -> bool:
        """Checksum verification of a webhook body; never raises."""
        if not self.settings.is_configured or not isinstance(payload.get("data"), dict):
            return False
        try:
            self.sdk.verifyPaymentWebhookData(payload)
        except Exception as e:
            logger.warning("PayOS webhook verification failed", error=str(e))
            return False
        return True
