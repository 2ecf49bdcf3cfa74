import hmac
from typing import Annotated, AsyncGenerator

from fastapi import Depends, Header, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.constants import ADMIN_TOKEN_HEADER, CALLER_KEY_HEADER
from src.api.core.exceptions.base import CreditGateException
from src.api.core.messages import MessageCode
from src.core.context import CallerContext
from src.modules.billing.payments import PaymentService
from src.modules.billing.payos.client import PayOSClient
from src.modules.billing.pricing import PricingService
from src.modules.billing.settlement import SettlementBackend
from src.modules.gateway.service import AIGatewayService
from src.modules.ledger.service import CreditLedgerService
from src.modules.providers.registry import ProviderRegistryService
from src.modules.proxies.health import ProxyHealthChecker
from src.modules.proxies.pool import ProxyPoolService
from src.utils.logger import get_client_ip
from src.utils.settings.admin import AdminSettings


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session from app state."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


AsyncSessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_settlement_backend() -> SettlementBackend:
    return PayOSClient()


async def get_ledger_service(db: AsyncSessionDep) -> CreditLedgerService:
    return CreditLedgerService(db)


async def get_provider_registry(db: AsyncSessionDep) -> ProviderRegistryService:
    return ProviderRegistryService(db)


async def get_proxy_pool(db: AsyncSessionDep) -> ProxyPoolService:
    return ProxyPoolService(db)


async def get_proxy_health_checker(
    db: AsyncSessionDep,
    pool: Annotated[ProxyPoolService, Depends(get_proxy_pool)],
) -> ProxyHealthChecker:
    return ProxyHealthChecker(db, pool)


async def get_gateway_service(
    db: AsyncSessionDep,
    ledger: Annotated[CreditLedgerService, Depends(get_ledger_service)],
    providers: Annotated[ProviderRegistryService, Depends(get_provider_registry)],
    pool: Annotated[ProxyPoolService, Depends(get_proxy_pool)],
) -> AIGatewayService:
    return AIGatewayService(db, ledger, providers, pool)


async def get_pricing_service(db: AsyncSessionDep) -> PricingService:
    return PricingService(db)


async def get_payment_service(
    db: AsyncSessionDep,
    settlement: Annotated[SettlementBackend, Depends(get_settlement_backend)],
    pricing: Annotated[PricingService, Depends(get_pricing_service)],
    ledger: Annotated[CreditLedgerService, Depends(get_ledger_service)],
) -> PaymentService:
    return PaymentService(db, settlement, pricing, ledger)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_caller_context(request: Request) -> CallerContext:
    """Caller key from ``Authorization: Bearer`` or the ``X-API-Key`` header.

    Only presence is checked here; the ledger decides whether the key is
    usable when credit is reserved.
    """
    key = _bearer_token(request.headers.get("Authorization")) or request.headers.get(
        CALLER_KEY_HEADER
    )
    if not key:
        raise CreditGateException(
            MessageCode.AUTH_REQUIRED,
            status.HTTP_401_UNAUTHORIZED,
            {"description": f"Provide a Bearer token or {CALLER_KEY_HEADER} header"},
        )
    return CallerContext(
        key=key.strip(),
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        referer=request.headers.get("Referer"),
    )


async def require_admin(
    token: Annotated[str | None, Header(alias=ADMIN_TOKEN_HEADER)] = None,
) -> None:
    expected = AdminSettings().ADMIN_API_TOKEN.get_secret_value()
    if not expected or not token or not hmac.compare_digest(token, expected):
        raise CreditGateException(
            MessageCode.ADMIN_TOKEN_INVALID, status.HTTP_403_FORBIDDEN
        )


LedgerServiceDep = Annotated[CreditLedgerService, Depends(get_ledger_service)]
ProviderRegistryDep = Annotated[
    ProviderRegistryService, Depends(get_provider_registry)
]
ProxyPoolDep = Annotated[ProxyPoolService, Depends(get_proxy_pool)]
ProxyHealthCheckerDep = Annotated[
    ProxyHealthChecker, Depends(get_proxy_health_checker)
]
GatewayServiceDep = Annotated[AIGatewayService, Depends(get_gateway_service)]
PricingServiceDep = Annotated[PricingService, Depends(get_pricing_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
CallerDep = Annotated[CallerContext, Depends(get_caller_context)]
AdminDep = Depends(require_admin)
