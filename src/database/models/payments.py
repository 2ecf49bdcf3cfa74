"""Credit top-up payment model."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType, TimestampMixin


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    QR_CODE = "qr_code"
    MOMO = "momo"
    ZALOPAY = "zalopay"


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("credit_amount >= 1", name="ck_payments_credit_amount"),
        Index("ix_payments_status_expired_at", "status", "expired_at"),
        Index("ix_payments_user_key_created_at", "user_key", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_key: Mapped[str] = mapped_column(String(128))
    credit_amount: Mapped[int] = mapped_column(Integer)
    price: Mapped[int] = mapped_column(Integer)
    status: Mapped[PaymentStatus] = mapped_column(
        String(16), default=PaymentStatus.PENDING
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        String(32), default=PaymentMethod.QR_CODE
    )
    transaction_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True
    )
    order_code: Mapped[int | None] = mapped_column(
        BigInteger, unique=True, nullable=True
    )
    # checkout_url, qr_code, bank_account, amount, transfer_content,
    # order_code, payment_link_id
    payment_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    request_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, default=dict
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
