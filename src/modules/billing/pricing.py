"""Credit package catalogue and price quotes."""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from src.cache import PACKAGES_TAG, cached, invalidate_packages_cache
from src.core.base import BaseService
from src.database.models import CreditPackage
from src.utils.settings.billing import BillingSettings

_settings = BillingSettings()


@dataclass(frozen=True)
class PackageView:
    id: UUID
    name: str
    price: int
    credits: int
    bonus: str
    description: str | None
    is_popular: bool

    @classmethod
    def from_model(cls, package: CreditPackage) -> "PackageView":
        return cls(
            id=package.id,
            name=package.name,
            price=package.price,
            credits=package.credits,
            bonus=package.bonus or "",
            description=package.description,
            is_popular=package.is_popular,
        )


class PricingService(BaseService):
    """Exact package prices, otherwise a linear fallback rate."""

    def __init__(self, db, settings: BillingSettings | None = None):
        super().__init__(db)
        self.settings = settings or _settings

    async def _find_package(self, credits: int) -> CreditPackage | None:
        result = await self.db.execute(
            select(CreditPackage)
            .where(CreditPackage.credits == credits, CreditPackage.is_active.is_(True))
            .order_by(CreditPackage.price)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_price_for_credit(self, credits: int) -> int:
        package = await self._find_package(credits)
        if package is not None:
            return package.price
        return credits * self.settings.BILLING_FALLBACK_RATE

    async def is_valid_credit_amount(self, credits: int) -> bool:
        if not isinstance(credits, int) or credits <= 0:
            return False
        if await self._find_package(credits) is not None:
            return True
        return credits <= self.settings.BILLING_MAX_FLEXIBLE_CREDITS

    @cached(ttl=_settings.BILLING_PACKAGES_CACHE_TTL, tags=[PACKAGES_TAG])
    async def list_active_packages(self) -> list[PackageView]:
        result = await self.db.execute(
            select(CreditPackage)
            .where(CreditPackage.is_active.is_(True))
            .order_by(CreditPackage.credits)
        )
        return [PackageView.from_model(p) for p in result.scalars().all()]

    async def upsert_package(
        self,
        name: str,
        credits: int,
        price: int,
        bonus: str = "",
        description: str | None = None,
        is_popular: bool = False,
        is_active: bool = True,
    ) -> CreditPackage:
        """Create or replace the package for ``credits``."""
        if credits <= 0 or price <= 0:
            raise ValueError("Package credits and price must be positive")

        result = await self.db.execute(
            select(CreditPackage).where(CreditPackage.credits == credits)
        )
        package = result.scalars().first()
        if package is None:
            package = CreditPackage(credits=credits)
            self.db.add(package)

        package.name = name
        package.price = price
        package.bonus = bonus
        package.description = description
        package.is_popular = is_popular
        package.is_active = is_active
        await self._commit()
        await invalidate_packages_cache()

        self.logger.info("Credit package saved", credits=credits, price=price)
        return package
