from uuid import UUID

from fastapi import APIRouter

from src.api.core.dependencies import PaymentServiceDep
from src.api.core.messages import APIResponse, MessageCode
from src.api.payments.schemas import (
    CleanupModel,
    CleanupResponse,
    PaymentCompleteRequest,
    PaymentCompletionModel,
    PaymentCompletionResponse,
    PaymentModel,
)

router = APIRouter(prefix="/payments", tags=["admin-payments"])


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_expired(payments: PaymentServiceDep) -> CleanupResponse:
    expired = await payments.cleanup_expired_payments()
    return APIResponse.success(data=CleanupModel(expired=expired))


@router.post("/{payment_id}/complete", response_model=PaymentCompletionResponse)
async def complete_payment(
    payment_id: UUID,
    payments: PaymentServiceDep,
    body: PaymentCompleteRequest | None = None,
) -> PaymentCompletionResponse:
    """Manual confirmation of a bank transfer."""
    completion = await payments.complete_payment(
        payment_id, body.transaction_id if body else None
    )
    return APIResponse.success(
        message_code=MessageCode.PAYMENT_COMPLETED,
        data=PaymentCompletionModel(
            payment=PaymentModel.model_validate(completion.payment),
            credit_balance=completion.credit_balance,
        ),
    )
