from typing import Any

from fastapi import APIRouter

from src.api.admin.schemas import (
    ProviderKeyTestModel,
    ProviderKeyTestResponse,
    ProviderModel,
    ProviderResponse,
    QuotaResetModel,
    QuotaResetResponse,
    StatsResponse,
    UpstreamKeyRequest,
)
from src.api.core.dependencies import GatewayServiceDep, ProviderRegistryDep
from src.api.core.messages import APIResponse, MessageCode
from src.database.models import Provider

router = APIRouter(prefix="/providers", tags=["admin-providers"])


def _provider_model(provider: Provider) -> ProviderModel:
    return ProviderModel(
        name=provider.name,
        status=provider.status,
        key_count=len(provider.api_keys or []),
    )


@router.post("/reset-quotas", response_model=QuotaResetResponse)
async def reset_all_quotas(registry: ProviderRegistryDep) -> QuotaResetResponse:
    reset = await registry.reset_all_daily_quotas()
    return APIResponse.success(data=QuotaResetModel(reset=reset))


@router.get("/{name}/keys", response_model=StatsResponse)
async def get_key_statistics(name: str, registry: ProviderRegistryDep) -> StatsResponse:
    """Key pool totals with masked per-key health."""
    stats: dict[str, Any] = await registry.get_key_statistics(name)
    return APIResponse.success(data=stats)


@router.post("/{name}/keys", response_model=ProviderResponse)
async def add_key(
    name: str, body: UpstreamKeyRequest, registry: ProviderRegistryDep
) -> ProviderResponse:
    provider = await registry.add_api_key(name, body.api_key)
    return APIResponse.success(
        message_code=MessageCode.CREATED, data=_provider_model(provider)
    )


@router.delete("/{name}/keys", response_model=ProviderResponse)
async def remove_key(
    name: str, body: UpstreamKeyRequest, registry: ProviderRegistryDep
) -> ProviderResponse:
    provider = await registry.remove_api_key(name, body.api_key)
    return APIResponse.success(
        message_code=MessageCode.DELETED, data=_provider_model(provider)
    )


@router.post("/{name}/reset-quotas", response_model=QuotaResetResponse)
async def reset_quotas(name: str, registry: ProviderRegistryDep) -> QuotaResetResponse:
    reset = await registry.reset_daily_quotas(name)
    return APIResponse.success(data=QuotaResetModel(reset=reset))


@router.post("/{name}/test", response_model=ProviderKeyTestResponse)
async def test_provider_key(
    name: str, gateway: GatewayServiceDep
) -> ProviderKeyTestResponse:
    """Live upstream check of the next key in rotation; spends no caller credit."""
    outcome = await gateway.test_provider_key(name)
    return APIResponse.success(
        message_code=MessageCode.PROVIDER_KEY_TESTED,
        data=ProviderKeyTestModel.model_validate(outcome),
    )
