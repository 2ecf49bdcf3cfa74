"""Outbound proxy model."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class ProxyProtocol(str, Enum):
    HTTP = "http"
    HTTPS = "https"
    SOCKS4 = "socks4"
    SOCKS5 = "socks5"


class Proxy(TimestampMixin, Base):
    __tablename__ = "proxies"
    __table_args__ = (
        UniqueConstraint("host", "port", name="uq_proxies_host_port"),
        CheckConstraint("port >= 1 AND port <= 65535", name="ck_proxies_port_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(128))
    host: Mapped[str] = mapped_column(String(255))
    port: Mapped[int] = mapped_column(Integer)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    protocol: Mapped[ProxyProtocol] = mapped_column(
        String(16), default=ProxyProtocol.HTTP
    )
    is_active: Mapped[bool] = mapped_column(default=True)
    location: Mapped[str] = mapped_column(String(128), default="Unknown")
    provider: Mapped[str] = mapped_column(String(128), default="Manual")
    last_used: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    failure_count: Mapped[int] = mapped_column(Integer, default=0)
    avg_response_time: Mapped[float] = mapped_column(Float, default=0.0)
    # One upstream key binds to at most one proxy
    assigned_api_key: Mapped[str | None] = mapped_column(
        String(512), nullable=True, unique=True, index=True
    )
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    @property
    def total_requests(self) -> int:
        return (self.success_count or 0) + (self.failure_count or 0)

    @property
    def success_rate(self) -> float:
        total = self.total_requests
        if not total:
            return 0.0
        return round(self.success_count / total * 100, 2)
