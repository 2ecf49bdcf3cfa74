"""PayOS webhook endpoint."""

import json

from fastapi import APIRouter, Request, status

from src.api.core.constants import MAX_WEBHOOK_PAYLOAD_BYTES
from src.api.core.dependencies import PaymentServiceDep
from src.api.core.exceptions.base import CreditGateException
from src.api.core.messages import MessageCode
from src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payos", tags=["payos"])


@router.post("/webhook")
async def payos_webhook(request: Request, payments: PaymentServiceDep):
    """Apply a PayOS payment notification.

    Always answers 200 for a well-formed body so PayOS does not retry
    notifications that were deliberately ignored.
    """
    payload = await request.body()

    if not payload:
        raise CreditGateException(
            MessageCode.BAD_REQUEST,
            status.HTTP_400_BAD_REQUEST,
            details={"description": "Empty webhook payload"},
        )

    if len(payload) > MAX_WEBHOOK_PAYLOAD_BYTES:
        raise CreditGateException(
            MessageCode.BAD_REQUEST,
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            details={"description": "Webhook payload too large"},
        )

    try:
        body = json.loads(payload)
    except ValueError:
        body = None
    if not isinstance(body, dict):
        raise CreditGateException(
            MessageCode.BAD_REQUEST,
            status.HTTP_400_BAD_REQUEST,
            details={"description": "Webhook payload must be a JSON object"},
        )

    outcome = await payments.handle_webhook(body)
    logger.info(
        "PayOS webhook processed",
        order_code=outcome.order_code,
        outcome=outcome.status,
    )
    return {
        "success": True,
        "status": outcome.status,
        "order_code": outcome.order_code,
    }
