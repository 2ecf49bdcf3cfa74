"""Caller key model (credit ledger entry)."""

import uuid
from datetime import datetime
from secrets import token_urlsafe

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.api.core.constants import CALLER_KEY_PREFIX
from .base import Base, TimestampMixin


class Key(TimestampMixin, Base):
    __tablename__ = "keys"
    __table_args__ = (CheckConstraint("credit >= 0", name="ck_keys_credit_non_negative"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    key: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(default=True)
    credit: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_activations: Mapped[int] = mapped_column(Integer, default=1)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @staticmethod
    def generate_token() -> str:
        return f"{CALLER_KEY_PREFIX}{token_urlsafe(24)}"
