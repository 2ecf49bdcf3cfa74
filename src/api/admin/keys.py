from dataclasses import asdict

from fastapi import APIRouter, status

from src.api.core.dependencies import LedgerServiceDep
from src.api.core.exceptions.base import CreditGateException
from src.api.core.messages import APIResponse, MessageCode
from src.api.keys.schemas import (
    CreditAdjustRequest,
    KeyActiveRequest,
    KeyCreateRequest,
    KeyCreateResponse,
    KeyModel,
    LedgerEntryModel,
    LedgerEntryResponse,
)

router = APIRouter(prefix="/keys", tags=["admin-keys"])


def _key_not_found() -> CreditGateException:
    return CreditGateException(MessageCode.KEY_NOT_FOUND, status.HTTP_404_NOT_FOUND)


@router.post("", response_model=KeyCreateResponse)
async def create_key(body: KeyCreateRequest, ledger: LedgerServiceDep) -> KeyCreateResponse:
    """Issue a new caller key."""
    key = await ledger.create_key(
        credit=body.credit,
        note=body.note,
        expired_at=body.expired_at,
        max_activations=body.max_activations,
    )
    return APIResponse.success(
        message_code=MessageCode.KEY_CREATED, data=KeyModel.model_validate(key)
    )


@router.patch("/{key}/credit", response_model=LedgerEntryResponse)
async def adjust_credit(
    key: str, body: CreditAdjustRequest, ledger: LedgerServiceDep
) -> LedgerEntryResponse:
    entry = await ledger.adjust_credit(key, body.delta, body.floor_at_zero)
    if entry is None:
        if await ledger.get_balance(key) is None:
            raise _key_not_found()
        raise CreditGateException(
            MessageCode.INSUFFICIENT_CREDITS,
            status.HTTP_409_CONFLICT,
            {"description": "Adjustment would overdraw the key"},
        )
    return APIResponse.success(
        message_code=MessageCode.CREDIT_ADJUSTED,
        data=LedgerEntryModel(**asdict(entry)),
    )


@router.patch("/{key}/active", response_model=LedgerEntryResponse)
async def set_active(
    key: str, body: KeyActiveRequest, ledger: LedgerServiceDep
) -> LedgerEntryResponse:
    entry = await ledger.set_active(key, body.is_active)
    if entry is None:
        raise _key_not_found()
    return APIResponse.success(
        message_code=MessageCode.UPDATED, data=LedgerEntryModel(**asdict(entry))
    )
