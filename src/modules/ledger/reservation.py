from src.core.errors import RefundFailedError
from src.modules.ledger.service import CreditLedgerService
from src.utils.logger import get_logger
from src.utils.masking import mask_secret

logger = get_logger(__name__)


class CreditReservation:
    """Credit held for one request; released at most once.

    The refund flag is set before the grant is attempted. A refund that
    fails to persist is reported and never retried here, so a caller can
    not end up credited twice.
    """

    def __init__(
        self, ledger: CreditLedgerService, key: str, amount: int, balance: int
    ):
        self.ledger = ledger
        self.key = key
        self.amount = amount
        self.balance = balance
        self._settled = False
        self.refunded = False

    @property
    def settled(self) -> bool:
        return self._settled

    def commit(self) -> int:
        """Keep the reserved credit. Returns the balance after the charge."""
        self._settled = True
        return self.balance

    async def refund(self, reason: str) -> int | None:
        """Return the reserved credit. Repeated calls are no-ops."""
        if self._settled:
            return None
        self._settled = True

        try:
            entry = await self.ledger.grant_credit(self.key, self.amount)
        except Exception as e:
            logger.critical(
                "Credit refund failed",
                key=mask_secret(self.key),
                amount=self.amount,
                reason=reason,
                error=str(e),
            )
            raise RefundFailedError(
                details={"amount": self.amount, "reason": reason}
            ) from e

        if entry is None:
            logger.critical(
                "Credit refund target missing",
                key=mask_secret(self.key),
                amount=self.amount,
                reason=reason,
            )
            raise RefundFailedError(details={"amount": self.amount, "reason": reason})

        self.refunded = True
        self.balance = entry.credit
        logger.info(
            "Credit refunded",
            key=mask_secret(self.key),
            amount=self.amount,
            reason=reason,
            balance=entry.credit,
        )
        return entry.credit
