"""Admin API schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from src.api.core.messages import APIResponse
from src.database.models import Proxy, ProxyProtocol
from src.utils.masking import mask_secret


class ProxyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    host: str = Field(..., min_length=1, max_length=255)
    port: int = Field(..., ge=1, le=65535)
    username: str | None = Field(None, max_length=255)
    password: str | None = Field(None, max_length=255)
    protocol: ProxyProtocol = ProxyProtocol.HTTP
    location: str = Field("Unknown", max_length=128)
    provider: str = Field("Manual", max_length=128)
    notes: str | None = Field(None, max_length=500)
    is_active: bool = True


class ProxyUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=128)
    host: str | None = Field(None, min_length=1, max_length=255)
    port: int | None = Field(None, ge=1, le=65535)
    username: str | None = Field(None, max_length=255)
    password: str | None = Field(None, max_length=255)
    protocol: ProxyProtocol | None = None
    location: str | None = Field(None, max_length=128)
    provider: str | None = Field(None, max_length=128)
    notes: str | None = Field(None, max_length=500)
    is_active: bool | None = None


class ProxyModel(BaseModel):
    id: UUID
    name: str
    host: str
    port: int
    protocol: ProxyProtocol
    username: str | None = None
    has_password: bool
    is_active: bool
    location: str
    provider: str
    assigned_api_key: str | None = None
    last_used: datetime | None = None
    success_count: int
    failure_count: int
    success_rate: float
    avg_response_time: float
    notes: str | None = None
    created_at: datetime

    @classmethod
    def from_proxy(cls, proxy: Proxy) -> "ProxyModel":
        return cls(
            id=proxy.id,
            name=proxy.name,
            host=proxy.host,
            port=proxy.port,
            protocol=proxy.protocol,
            username=proxy.username,
            has_password=bool(proxy.password),
            is_active=proxy.is_active,
            location=proxy.location,
            provider=proxy.provider,
            assigned_api_key=mask_secret(proxy.assigned_api_key) or None,
            last_used=proxy.last_used,
            success_count=proxy.success_count or 0,
            failure_count=proxy.failure_count or 0,
            success_rate=proxy.success_rate,
            avg_response_time=proxy.avg_response_time or 0.0,
            notes=proxy.notes,
            created_at=proxy.created_at,
        )


class ProxyListModel(BaseModel):
    proxies: list[ProxyModel]
    total: int


class AssignRequest(BaseModel):
    api_key: str = Field(..., min_length=1, max_length=512)


class AutoAssignRequest(BaseModel):
    provider: str = "all"
    force_reassign: bool = False


class KeyAssignmentModel(BaseModel):
    provider: str
    api_key: str
    status: str
    proxy_id: UUID | None = None
    proxy_name: str | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class AutoAssignModel(BaseModel):
    results: list[KeyAssignmentModel]
    total_keys: int
    total_assigned: int


class ProxyCheckModel(BaseModel):
    proxy_id: UUID
    success: bool
    response_time_ms: float | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class BatchTestRequest(BaseModel):
    proxy_ids: list[UUID] | None = Field(
        None, description="Defaults to every active proxy"
    )


class BatchTestItemModel(BaseModel):
    proxy_id: UUID
    name: str
    host: str
    port: int
    success: bool
    response_time_ms: float | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class BatchTestSummaryModel(BaseModel):
    total: int
    success: int
    failed: int
    success_rate: float


class BatchTestModel(BaseModel):
    results: list[BatchTestItemModel]
    summary: BatchTestSummaryModel


class HealthCheckModel(BaseModel):
    checked: int
    healthy: int
    failed: int
    deactivated: list[UUID]

    model_config = {"from_attributes": True}


class UpstreamKeyRequest(BaseModel):
    api_key: str = Field(..., min_length=1, max_length=512)


class ProviderModel(BaseModel):
    name: str
    status: str
    key_count: int


class ProviderKeyTestModel(BaseModel):
    provider: str
    valid: bool
    message: str
    error_kind: str | None = None

    model_config = {"from_attributes": True}


class QuotaResetModel(BaseModel):
    reset: int


class DeletedModel(BaseModel):
    deleted: bool


ProxyResponse = APIResponse[ProxyModel]
ProxyListResponse = APIResponse[ProxyListModel]
AutoAssignResponse = APIResponse[AutoAssignModel]
ProxyCheckResponse = APIResponse[ProxyCheckModel]
HealthCheckResponse = APIResponse[HealthCheckModel]
BatchTestResponse = APIResponse[BatchTestModel]
StatsResponse = APIResponse[dict[str, Any]]
ProviderResponse = APIResponse[ProviderModel]
ProviderKeyTestResponse = APIResponse[ProviderKeyTestModel]
QuotaResetResponse = APIResponse[QuotaResetModel]
DeletedResponse = APIResponse[DeletedModel]
