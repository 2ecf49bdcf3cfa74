"""Credit ledger: per-key balances mutated only through conditional updates."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import case, or_, select, update

from src.core.base import BaseService
from src.database.models import Key
from src.utils.dates import ensure_utc, utcnow
from src.utils.masking import mask_secret


@dataclass(frozen=True)
class LedgerEntry:
    """Snapshot of a key row as returned by an atomic statement."""

    key: str
    credit: int
    is_active: bool
    expired_at: datetime | None = None


class KeyState(str, Enum):
    VALID = "valid"
    MISSING = "missing"
    NOT_FOUND = "not_found"
    LOCKED = "locked"
    EXPIRED = "expired"
    NO_CREDIT = "no_credit"


@dataclass(frozen=True)
class KeyCheck:
    state: KeyState
    entry: LedgerEntry | None = None

    @property
    def valid(self) -> bool:
        return self.state is KeyState.VALID


_RETURNING = (Key.key, Key.credit, Key.is_active, Key.expired_at)


def _not_expired(now: datetime):
    return or_(Key.expired_at.is_(None), Key.expired_at > now)


class CreditLedgerService(BaseService):
    """Atomic credit operations on caller keys.

    Every balance change is a single ``UPDATE ... WHERE ... RETURNING`` so
    concurrent requests, possibly from several processes, can never read a
    balance and write it back.
    """

    async def find_active_key(self, key: str) -> Key | None:
        if not key:
            return None
        result = await self.db.execute(
            select(Key).where(
                Key.key == key,
                Key.is_active.is_(True),
                _not_expired(utcnow()),
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_balance(self, key: str) -> int | None:
        result = await self.db.execute(select(Key.credit).where(Key.key == key))
        return result.scalar_one_or_none()

    async def check_key(self, key: str | None) -> KeyCheck:
        """Read-only usability check; the first failing condition wins."""
        if not key:
            return KeyCheck(KeyState.MISSING)

        result = await self.db.execute(select(*_RETURNING).where(Key.key == key))
        row = result.one_or_none()
        if row is None:
            return KeyCheck(KeyState.NOT_FOUND)

        entry = LedgerEntry(*row)
        if not entry.is_active:
            state = KeyState.LOCKED
        elif entry.expired_at is not None and ensure_utc(entry.expired_at) <= utcnow():
            state = KeyState.EXPIRED
        elif entry.credit <= 0:
            state = KeyState.NO_CREDIT
        else:
            state = KeyState.VALID
        return KeyCheck(state, entry)

    async def create_key(
        self,
        credit: int = 0,
        note: str | None = None,
        expired_at: datetime | None = None,
        max_activations: int = 1,
        key: str | None = None,
    ) -> Key:
        if credit < 0:
            raise ValueError("Initial credit cannot be negative")
        record = Key(
            key=key or Key.generate_token(),
            credit=credit,
            note=note,
            expired_at=expired_at,
            max_activations=max_activations,
            is_active=True,
        )
        self.db.add(record)
        await self._commit()
        self.logger.info(
            "Key created", key=mask_secret(record.key), credit=credit
        )
        return record

    async def reserve_credit(
        self, key: str, amount: int = 1, commit: bool = True
    ) -> LedgerEntry | None:
        """Decrement ``amount`` if the key is active, unexpired and can afford it.

        ``None`` means the reservation was rejected (unknown key, inactive,
        expired or insufficient balance). Callers treat it as a refusal and
        do not retry.
        """
        if not key or amount <= 0:
            return None

        now = utcnow()
        result = await self.db.execute(
            update(Key)
            .where(
                Key.key == key,
                Key.is_active.is_(True),
                Key.credit >= amount,
                _not_expired(now),
            )
            .values(credit=Key.credit - amount, updated_at=now)
            .returning(*_RETURNING)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        if commit:
            await self._commit()

        if row is None:
            self.logger.info(
                "Credit reservation rejected", key=mask_secret(key), amount=amount
            )
            return None
        return LedgerEntry(*row)

    async def grant_credit(
        self, key: str, amount: int, commit: bool = True
    ) -> LedgerEntry | None:
        """Atomically add credit. Used by payments and by refunds."""
        if amount <= 0:
            raise ValueError("Grant amount must be positive")

        result = await self.db.execute(
            update(Key)
            .where(Key.key == key)
            .values(credit=Key.credit + amount, updated_at=utcnow())
            .returning(*_RETURNING)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        if commit:
            await self._commit()

        if row is None:
            self.logger.warning(
                "Credit grant target missing", key=mask_secret(key), amount=amount
            )
            return None
        self.logger.info(
            "Credit granted", key=mask_secret(key), amount=amount, balance=row.credit
        )
        return LedgerEntry(*row)

    async def set_active(self, key: str, active: bool) -> LedgerEntry | None:
        result = await self.db.execute(
            update(Key)
            .where(Key.key == key)
            .values(is_active=active, updated_at=utcnow())
            .returning(*_RETURNING)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        await self._commit()
        if row is not None:
            self.logger.info(
                "Key activation changed", key=mask_secret(key), is_active=active
            )
        return LedgerEntry(*row) if row else None

    async def adjust_credit(
        self, key: str, delta: int, floor_at_zero: bool = True
    ) -> LedgerEntry | None:
        """Admin adjustment. The balance never drops below zero.

        With ``floor_at_zero`` a large negative delta clamps to zero,
        otherwise the adjustment is refused when it would overdraw.
        """
        new_credit = Key.credit + delta
        stmt = update(Key).where(Key.key == key)
        if delta < 0 and not floor_at_zero:
            stmt = stmt.where(Key.credit >= -delta)
        elif delta < 0:
            new_credit = case((Key.credit + delta < 0, 0), else_=Key.credit + delta)

        result = await self.db.execute(
            stmt.values(credit=new_credit, updated_at=utcnow())
            .returning(*_RETURNING)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        await self._commit()
        if row is not None:
            self.logger.info(
                "Credit adjusted",
                key=mask_secret(key),
                delta=delta,
                balance=row.credit,
            )
        return LedgerEntry(*row) if row else None
