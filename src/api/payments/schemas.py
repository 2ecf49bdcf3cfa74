"""Payment API schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from src.api.core.messages import APIResponse
from src.database.models import PaymentMethod, PaymentStatus


class PaymentCreateRequest(BaseModel):
    user_key: str = Field(..., min_length=1, max_length=128)
    credit_amount: int = Field(..., ge=1)


class PaymentModel(BaseModel):
    id: UUID
    user_key: str
    credit_amount: int
    price: int
    status: PaymentStatus
    payment_method: PaymentMethod
    transaction_id: str | None = None
    order_code: int | None = None
    payment_data: dict[str, Any] = Field(default_factory=dict)
    completed_at: datetime | None = None
    expired_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class TransferInfoModel(BaseModel):
    account_number: str
    account_name: str
    bank_name: str
    amount: int
    content: str

    model_config = {"from_attributes": True}


class PaymentCreatedModel(BaseModel):
    payment: PaymentModel
    pay_url: str
    qr_data: str
    transfer_info: TransferInfoModel
    gateway: str
    reused: bool = False


class PaymentStatusModel(BaseModel):
    payment: PaymentModel
    is_expired: bool


class PaymentListModel(BaseModel):
    payments: list[PaymentModel]
    total: int


class PackageModel(BaseModel):
    id: UUID
    name: str
    price: int
    credits: int
    bonus: str
    description: str | None = None
    is_popular: bool

    model_config = {"from_attributes": True}


class PackageListModel(BaseModel):
    packages: list[PackageModel]
    total: int


class ReconcileModel(BaseModel):
    payment: PaymentModel
    state: str
    completed: bool


class PaymentCompleteRequest(BaseModel):
    transaction_id: str | None = Field(None, max_length=255)


class PaymentCompletionModel(BaseModel):
    payment: PaymentModel
    credit_balance: int


class CleanupModel(BaseModel):
    expired: int


PaymentCreateResponse = APIResponse[PaymentCreatedModel]
PaymentStatusResponse = APIResponse[PaymentStatusModel]
PaymentListResponse = APIResponse[PaymentListModel]
PackageListResponse = APIResponse[PackageListModel]
ReconcileResponse = APIResponse[ReconcileModel]
PaymentCompletionResponse = APIResponse[PaymentCompletionModel]
CleanupResponse = APIResponse[CleanupModel]
