"""Caller key API schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from src.api.core.messages import APIResponse


class KeyModel(BaseModel):
    key: str
    credit: int
    is_active: bool
    max_activations: int
    note: str | None = None
    expired_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceModel(BaseModel):
    credit: int
    is_active: bool
    expired_at: datetime | None = None


class KeyCreateRequest(BaseModel):
    credit: int = Field(0, ge=0)
    note: str | None = Field(None, max_length=255)
    expired_at: datetime | None = None
    max_activations: int = Field(1, ge=1)


class CreditAdjustRequest(BaseModel):
    delta: int = Field(..., description="Positive adds credit, negative removes it")
    floor_at_zero: bool = True


class KeyActiveRequest(BaseModel):
    is_active: bool


class ValidateKeyRequest(BaseModel):
    key: str = Field("", max_length=512)


class KeyValidationModel(BaseModel):
    valid: bool
    reason: str | None = None
    credit: int | None = None
    expired_at: datetime | None = None


class UseCreditRequest(BaseModel):
    amount: int = Field(1, ge=1)


class LedgerEntryModel(BaseModel):
    key: str
    credit: int
    is_active: bool
    expired_at: datetime | None = None


KeyCreateResponse = APIResponse[KeyModel]
BalanceResponse = APIResponse[BalanceModel]
LedgerEntryResponse = APIResponse[LedgerEntryModel]
KeyValidationResponse = APIResponse[KeyValidationModel]
