from uuid import UUID

from fastapi import APIRouter, Query, Request

from src.api.core.constants import (
    DEFAULT_PAYMENT_HISTORY_LIMIT,
    MAX_PAYMENT_HISTORY_LIMIT,
)
from src.api.core.dependencies import PaymentServiceDep, PricingServiceDep
from src.api.core.messages import APIResponse, MessageCode
from src.api.payments.schemas import (
    PackageListModel,
    PackageListResponse,
    PackageModel,
    PaymentCreateRequest,
    PaymentCreateResponse,
    PaymentCreatedModel,
    PaymentListModel,
    PaymentListResponse,
    PaymentModel,
    PaymentStatusModel,
    PaymentStatusResponse,
    ReconcileModel,
    ReconcileResponse,
    TransferInfoModel,
)
from src.utils.dates import ensure_utc, utcnow
from src.utils.logger import get_client_ip

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=PaymentCreateResponse)
async def create_payment(
    body: PaymentCreateRequest,
    request: Request,
    payments: PaymentServiceDep,
) -> PaymentCreateResponse:
    """Start a credit top-up. Returns checkout and bank transfer details."""
    created = await payments.create_payment(
        body.user_key,
        body.credit_amount,
        metadata={
            "ip": get_client_ip(request),
            "user_agent": request.headers.get("User-Agent"),
            "referer": request.headers.get("Referer"),
        },
    )
    return APIResponse.success(
        message_code=MessageCode.PAYMENT_CREATED,
        data=PaymentCreatedModel(
            payment=PaymentModel.model_validate(created.payment),
            pay_url=created.pay_url,
            qr_data=created.qr_data,
            transfer_info=TransferInfoModel.model_validate(created.transfer_info),
            gateway=created.gateway,
            reused=created.reused,
        ),
    )


@router.get("/packages", response_model=PackageListResponse)
async def list_packages(pricing: PricingServiceDep) -> PackageListResponse:
    packages = [
        PackageModel.model_validate(p) for p in await pricing.list_active_packages()
    ]
    return APIResponse.success(
        data=PackageListModel(packages=packages, total=len(packages))
    )


@router.get("/user/{user_key}", response_model=PaymentListResponse)
async def list_user_payments(
    user_key: str,
    payments: PaymentServiceDep,
    limit: int = Query(
        DEFAULT_PAYMENT_HISTORY_LIMIT, ge=1, le=MAX_PAYMENT_HISTORY_LIMIT
    ),
) -> PaymentListResponse:
    items = [
        PaymentModel.model_validate(p)
        for p in await payments.list_user_payments(user_key, limit)
    ]
    return APIResponse.success(data=PaymentListModel(payments=items, total=len(items)))


@router.post("/check/{order_code}", response_model=ReconcileResponse)
async def check_order(order_code: int, payments: PaymentServiceDep) -> ReconcileResponse:
    """Poll the settlement backend for an order and apply the result."""
    outcome = await payments.reconcile_order(order_code)
    return APIResponse.success(
        message_code=(
            MessageCode.PAYMENT_COMPLETED if outcome.completed else MessageCode.SUCCESS
        ),
        data=ReconcileModel(
            payment=PaymentModel.model_validate(outcome.payment),
            state=outcome.state.value,
            completed=outcome.completed,
        ),
    )


@router.get("/{payment_id}", response_model=PaymentStatusResponse)
async def get_payment(
    payment_id: UUID, payments: PaymentServiceDep
) -> PaymentStatusResponse:
    payment = await payments.get_payment(payment_id)
    return APIResponse.success(
        data=PaymentStatusModel(
            payment=PaymentModel.model_validate(payment),
            is_expired=ensure_utc(payment.expired_at) < utcnow(),
        )
    )
