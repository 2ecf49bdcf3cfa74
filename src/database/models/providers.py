"""Upstream AI provider and per-key health models."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, TimestampMixin


class ProviderStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Provider(TimestampMixin, Base):
    __tablename__ = "providers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(64), unique=True)
    api_keys: Mapped[list[str]] = mapped_column(JSONType, default=list)
    status: Mapped[ProviderStatus] = mapped_column(
        String(16), default=ProviderStatus.ACTIVE
    )

    key_statuses: Mapped[list["ProviderKeyStatus"]] = relationship(
        back_populates="provider",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


Index("uq_providers_name_lower", func.lower(Provider.name), unique=True)


class ProviderKeyStatus(Base):
    __tablename__ = "provider_key_statuses"
    __table_args__ = (
        UniqueConstraint("provider_id", "key", name="uq_provider_key_statuses_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("providers.id", ondelete="CASCADE"), index=True
    )
    key: Mapped[str] = mapped_column(String(512))
    is_active: Mapped[bool] = mapped_column(default=True)
    quota_exceeded: Mapped[bool] = mapped_column(default=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    request_count: Mapped[int] = mapped_column(Integer, default=0)
    last_used: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    provider: Mapped[Provider] = relationship(back_populates="key_statuses")
