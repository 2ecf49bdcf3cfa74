from dataclasses import asdict

from fastapi import APIRouter, status

from src.api.core.dependencies import CallerDep, LedgerServiceDep
from src.api.core.exceptions.base import CreditGateException
from src.api.core.messages import APIResponse, MessageCode
from src.api.keys.schemas import (
    BalanceModel,
    BalanceResponse,
    KeyValidationModel,
    KeyValidationResponse,
    LedgerEntryModel,
    LedgerEntryResponse,
    UseCreditRequest,
    ValidateKeyRequest,
)
from src.core.errors import InsufficientCreditError, KeyUnusableError, NotFoundError
from src.modules.ledger.service import KeyState

router = APIRouter(prefix="/keys", tags=["keys"])


@router.get("/me", response_model=BalanceResponse)
async def get_my_balance(
    caller: CallerDep, ledger: LedgerServiceDep
) -> BalanceResponse:
    """Balance of the calling key."""
    key = await ledger.find_active_key(caller.key)
    if key is None:
        raise CreditGateException(
            MessageCode.INVALID_API_KEY, status.HTTP_401_UNAUTHORIZED
        )
    return APIResponse.success(
        data=BalanceModel(
            credit=key.credit, is_active=key.is_active, expired_at=key.expired_at
        )
    )


@router.post("/validate", response_model=KeyValidationResponse)
async def validate_key(
    body: ValidateKeyRequest, ledger: LedgerServiceDep
) -> KeyValidationResponse:
    """Whether a key could spend credit right now.

    Always answers 200; an unusable key is reported through ``reason``.
    """
    check = await ledger.check_key(body.key.strip())
    if not check.valid:
        return APIResponse.success(
            data=KeyValidationModel(valid=False, reason=check.state.value)
        )
    return APIResponse.success(
        message_code=MessageCode.KEY_VALID,
        data=KeyValidationModel(
            valid=True,
            credit=check.entry.credit,
            expired_at=check.entry.expired_at,
        ),
    )


@router.post("/use-credit", response_model=LedgerEntryResponse)
async def use_credit(
    caller: CallerDep, ledger: LedgerServiceDep, body: UseCreditRequest | None = None
) -> LedgerEntryResponse:
    """Deduct credit from the calling key without an upstream call."""
    amount = body.amount if body else 1
    entry = await ledger.reserve_credit(caller.key, amount)
    if entry is not None:
        return APIResponse.success(
            message_code=MessageCode.CREDIT_USED,
            data=LedgerEntryModel(**asdict(entry)),
        )

    # Rejected: report why, from a fresh read
    check = await ledger.check_key(caller.key)
    if check.state is KeyState.NOT_FOUND:
        raise NotFoundError(message_code=MessageCode.KEY_NOT_FOUND)
    if check.state is KeyState.LOCKED:
        raise KeyUnusableError()
    if check.state is KeyState.EXPIRED:
        raise KeyUnusableError(message_code=MessageCode.KEY_EXPIRED)
    raise InsufficientCreditError(
        details={"credit": check.entry.credit if check.entry else 0, "required": amount}
    )
