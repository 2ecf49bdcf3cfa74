from uuid import UUID

from fastapi import APIRouter, Query

from src.api.admin.schemas import (
    AssignRequest,
    AutoAssignModel,
    AutoAssignRequest,
    AutoAssignResponse,
    BatchTestItemModel,
    BatchTestModel,
    BatchTestRequest,
    BatchTestResponse,
    BatchTestSummaryModel,
    DeletedModel,
    DeletedResponse,
    HealthCheckModel,
    HealthCheckResponse,
    KeyAssignmentModel,
    ProxyCheckModel,
    ProxyCheckResponse,
    ProxyCreateRequest,
    ProxyListModel,
    ProxyListResponse,
    ProxyModel,
    ProxyResponse,
    ProxyUpdateRequest,
    StatsResponse,
)
from src.api.core.dependencies import ProxyHealthCheckerDep, ProxyPoolDep
from src.api.core.messages import APIResponse, MessageCode

router = APIRouter(prefix="/proxies", tags=["admin-proxies"])


@router.get("", response_model=ProxyListResponse)
async def list_proxies(
    pool: ProxyPoolDep,
    is_active: bool | None = Query(None),
    assigned: bool | None = Query(None),
) -> ProxyListResponse:
    proxies = [
        ProxyModel.from_proxy(p)
        for p in await pool.list_proxies(is_active=is_active, assigned=assigned)
    ]
    return APIResponse.success(data=ProxyListModel(proxies=proxies, total=len(proxies)))


@router.post("", response_model=ProxyResponse)
async def create_proxy(body: ProxyCreateRequest, pool: ProxyPoolDep) -> ProxyResponse:
    proxy = await pool.create_proxy(**body.model_dump())
    return APIResponse.success(
        message_code=MessageCode.PROXY_CREATED, data=ProxyModel.from_proxy(proxy)
    )


@router.get("/stats", response_model=StatsResponse)
async def proxy_stats(pool: ProxyPoolDep) -> StatsResponse:
    return APIResponse.success(data=await pool.get_statistics())


@router.get("/suggestions", response_model=ProxyListResponse)
async def suggest_proxies(
    pool: ProxyPoolDep, limit: int = Query(10, ge=1, le=100)
) -> ProxyListResponse:
    """Best performing unassigned proxies."""
    proxies = [
        ProxyModel.from_proxy(p) for p in await pool.suggest_unassigned_proxies(limit)
    ]
    return APIResponse.success(data=ProxyListModel(proxies=proxies, total=len(proxies)))


@router.post("/auto-assign", response_model=AutoAssignResponse)
async def auto_assign(body: AutoAssignRequest, pool: ProxyPoolDep) -> AutoAssignResponse:
    report = await pool.auto_assign(body.provider, body.force_reassign)
    return APIResponse.success(
        data=AutoAssignModel(
            results=[KeyAssignmentModel.model_validate(r) for r in report.results],
            total_keys=report.total_keys,
            total_assigned=report.total_assigned,
        )
    )


@router.post("/health-check", response_model=HealthCheckResponse)
async def run_health_check(checker: ProxyHealthCheckerDep) -> HealthCheckResponse:
    summary = await checker.perform_health_check()
    return APIResponse.success(data=HealthCheckModel.model_validate(summary))


@router.post("/batch-test", response_model=BatchTestResponse)
async def batch_test_proxies(
    checker: ProxyHealthCheckerDep, body: BatchTestRequest | None = None
) -> BatchTestResponse:
    report = await checker.batch_test(body.proxy_ids if body else None)
    return APIResponse.success(
        message_code=MessageCode.PROXY_BATCH_TESTED,
        data=BatchTestModel(
            results=[BatchTestItemModel.model_validate(r) for r in report.results],
            summary=BatchTestSummaryModel(
                total=report.total,
                success=report.success,
                failed=report.failed,
                success_rate=report.success_rate,
            ),
        ),
    )


@router.get("/{proxy_id}", response_model=ProxyResponse)
async def get_proxy(proxy_id: UUID, pool: ProxyPoolDep) -> ProxyResponse:
    return APIResponse.success(data=ProxyModel.from_proxy(await pool.get_proxy(proxy_id)))


@router.patch("/{proxy_id}", response_model=ProxyResponse)
async def update_proxy(
    proxy_id: UUID, body: ProxyUpdateRequest, pool: ProxyPoolDep
) -> ProxyResponse:
    proxy = await pool.update_proxy(proxy_id, **body.model_dump(exclude_unset=True))
    return APIResponse.success(
        message_code=MessageCode.UPDATED, data=ProxyModel.from_proxy(proxy)
    )


@router.delete("/{proxy_id}", response_model=DeletedResponse)
async def delete_proxy(proxy_id: UUID, pool: ProxyPoolDep) -> DeletedResponse:
    await pool.delete_proxy(proxy_id)
    return APIResponse.success(
        message_code=MessageCode.DELETED, data=DeletedModel(deleted=True)
    )


@router.post("/{proxy_id}/test", response_model=ProxyCheckResponse)
async def test_proxy(proxy_id: UUID, checker: ProxyHealthCheckerDep) -> ProxyCheckResponse:
    outcome = await checker.test_proxy(proxy_id)
    return APIResponse.success(data=ProxyCheckModel.model_validate(outcome))


@router.post("/{proxy_id}/assign", response_model=ProxyResponse)
async def assign_proxy(
    proxy_id: UUID, body: AssignRequest, pool: ProxyPoolDep
) -> ProxyResponse:
    proxy = await pool.assign_proxy(proxy_id, body.api_key)
    return APIResponse.success(data=ProxyModel.from_proxy(proxy))


@router.post("/{proxy_id}/unassign", response_model=ProxyResponse)
async def unassign_proxy(proxy_id: UUID, pool: ProxyPoolDep) -> ProxyResponse:
    proxy = await pool.unassign_proxy(proxy_id)
    return APIResponse.success(data=ProxyModel.from_proxy(proxy))
