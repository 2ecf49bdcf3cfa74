"""Payment lifecycle: pending -> completed | failed | expired.

All completion paths (webhook, polling, admin) converge on
``complete_payment``. The ``pending -> completed`` claim is a conditional
update in the same transaction as the credit grant, so redundant triggers
grant at most once.
"""

import random
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.constants import (
    DEFAULT_PAYMENT_HISTORY_LIMIT,
    MAX_PAYMENT_HISTORY_LIMIT,
    PAYOS_SUCCESS_CODE,
)
from src.api.core.messages import MessageCode
from src.core.base import BaseService
from src.core.errors import (
    ConflictError,
    DomainError,
    InvalidCreditAmountError,
    InvalidRequestError,
    NotFoundError,
    PaymentExpiredError,
    PaymentNotPendingError,
    SettlementError,
)
from src.database.models import Payment, PaymentMethod, PaymentStatus
from src.modules.billing.payos.client import PayOSClient
from src.modules.billing.pricing import PricingService
from src.modules.billing.settlement import (
    CheckoutRequest,
    SettlementBackend,
    SettlementState,
)
from src.modules.billing.transfer import (
    TransferInstructions,
    build_instructions,
    manual_payment_url,
    qr_payload,
    transfer_reference,
)
from src.modules.ledger.service import CreditLedgerService
from src.utils.dates import ensure_utc, utcnow
from src.utils.masking import mask_secret
from src.utils.settings.app import AppSettings
from src.utils.settings.billing import BillingSettings
from src.utils.settings.payos import PayOSSettings


def generate_order_code() -> int:
    """Millisecond timestamp with two random digits appended."""
    return int(time.time() * 1000) * 100 + random.randint(0, 99)


@dataclass
class PaymentCreated:
    payment: Payment
    pay_url: str
    qr_data: str
    transfer_info: TransferInstructions
    reused: bool = False

    @property
    def gateway(self) -> str:
        return (self.payment.payment_data or {}).get("gateway", "manual")


@dataclass
class PaymentCompletion:
    payment: Payment
    credit_balance: int


@dataclass
class ReconcileOutcome:
    payment: Payment
    state: SettlementState
    completed: bool = False


@dataclass
class WebhookOutcome:
    status: str
    order_code: int | None = None
    payment_id: UUID | None = None
    details: dict[str, Any] = field(default_factory=dict)


class PaymentService(BaseService):
    def __init__(
        self,
        db: AsyncSession,
        settlement: SettlementBackend | None = None,
        pricing: PricingService | None = None,
        ledger: CreditLedgerService | None = None,
        settings: BillingSettings | None = None,
    ):
        super().__init__(db)
        self.settlement = settlement or PayOSClient()
        self.pricing = pricing or PricingService(db)
        self.ledger = ledger or CreditLedgerService(db)
        self.settings = settings or BillingSettings()

    def _callback_urls(self) -> tuple[str, str]:
        base = AppSettings().PUBLIC_BASE_URL.rstrip("/")
        payos = PayOSSettings()
        return f"{base}{payos.PAYOS_RETURN_PATH}", f"{base}{payos.PAYOS_CANCEL_PATH}"

    async def _find_active_payment(
        self, user_key: str, credit_amount: int
    ) -> Payment | None:
        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.user_key == user_key,
                Payment.credit_amount == credit_amount,
                Payment.status == PaymentStatus.PENDING,
                Payment.expired_at > utcnow(),
            )
            .order_by(Payment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_payment(
        self,
        user_key: str,
        credit_amount: int,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentCreated:
        if not user_key or not credit_amount:
            raise InvalidRequestError("User key and credit amount are required")
        if not await self.pricing.is_valid_credit_amount(credit_amount):
            raise InvalidCreditAmountError(
                details={
                    "credit_amount": credit_amount,
                    "max_flexible": self.settings.BILLING_MAX_FLEXIBLE_CREDITS,
                }
            )
        if await self.ledger.find_active_key(user_key) is None:
            raise InvalidRequestError(
                "Invalid or inactive user key", message_code=MessageCode.KEY_NOT_FOUND
            )

        price = await self.pricing.get_price_for_credit(credit_amount)

        existing = await self._find_active_payment(user_key, credit_amount)
        if existing is not None:
            data = existing.payment_data or {}
            return PaymentCreated(
                payment=existing,
                pay_url=data.get("pay_url", ""),
                qr_data=data.get("qr_code", ""),
                transfer_info=build_instructions(
                    data.get("amount", existing.price),
                    data.get("transfer_content", ""),
                    self.settings,
                ),
                reused=True,
            )

        payment_id = uuid4()
        order_code = generate_order_code()
        instructions = build_instructions(
            price, transfer_reference(user_key, str(payment_id)), self.settings
        )
        payment_data: dict[str, Any] = {
            "amount": price,
            "transfer_content": instructions.content,
            "bank_account": instructions.account_number,
            "order_code": order_code,
            "payment_link_id": None,
        }

        return_url, cancel_url = self._callback_urls()
        try:
            checkout = await self.settlement.create_checkout(
                CheckoutRequest(
                    order_code=order_code,
                    amount=price,
                    description=f"Nap {credit_amount} credit",
                    return_url=return_url,
                    cancel_url=cancel_url,
                )
            )
            payment_data.update(
                pay_url=checkout.checkout_url,
                qr_code=checkout.qr_code,
                payment_link_id=checkout.payment_link_id,
                gateway="payos",
            )
            method = PaymentMethod.QR_CODE
        except SettlementError as e:
            self.logger.warning(
                "Hosted checkout failed, falling back to manual transfer",
                order_code=order_code,
                error=str(e),
            )
            payment_data.update(
                pay_url=manual_payment_url(instructions, self.settings),
                qr_code=qr_payload(instructions),
                gateway="manual",
            )
            method = PaymentMethod.BANK_TRANSFER

        payment = Payment(
            id=payment_id,
            user_key=user_key,
            credit_amount=credit_amount,
            price=price,
            status=PaymentStatus.PENDING,
            payment_method=method,
            order_code=order_code,
            payment_data=payment_data,
            request_metadata=metadata or {},
            expired_at=utcnow()
            + timedelta(minutes=self.settings.BILLING_PAYMENT_TTL_MINUTES),
        )
        self.db.add(payment)
        await self._commit()

        self.logger.info(
            "Payment created",
            payment_id=str(payment.id),
            key=mask_secret(user_key),
            credits=credit_amount,
            price=price,
            gateway=payment_data["gateway"],
        )
        return PaymentCreated(
            payment=payment,
            pay_url=payment_data["pay_url"],
            qr_data=payment_data["qr_code"],
            transfer_info=instructions,
        )

    async def get_payment(self, payment_id: UUID) -> Payment:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundError(
                "Payment not found", message_code=MessageCode.PAYMENT_NOT_FOUND
            )
        return payment

    async def get_payment_by_order_code(self, order_code: int) -> Payment | None:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.order_code == order_code)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_user_payments(
        self, user_key: str, limit: int = DEFAULT_PAYMENT_HISTORY_LIMIT
    ) -> list[Payment]:
        limit = max(1, min(limit, MAX_PAYMENT_HISTORY_LIMIT))
        result = await self.db.execute(
            select(Payment)
            .where(Payment.user_key == user_key)
            .order_by(Payment.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def _fail_if_pending(self, payment_id: UUID) -> bool:
        result = await self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
            .values(status=PaymentStatus.FAILED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        return bool(result.rowcount)

    async def complete_payment(
        self, payment_id: UUID, transaction_id: str | None = None
    ) -> PaymentCompletion:
        """Grant the payment's credit exactly once."""
        payment = await self.get_payment(payment_id)
        now = utcnow()
        transaction_id = transaction_id or f"MANUAL_{int(now.timestamp() * 1000)}"

        try:
            claim = await self.db.execute(
                update(Payment)
                .where(
                    Payment.id == payment_id,
                    Payment.status == PaymentStatus.PENDING,
                    Payment.expired_at >= now,
                )
                .values(
                    status=PaymentStatus.COMPLETED,
                    transaction_id=transaction_id,
                    completed_at=now,
                    updated_at=now,
                )
                .returning(Payment.id)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(
                "Transaction id already recorded",
                details={"transaction_id": transaction_id},
            ) from e

        if claim.one_or_none() is None:
            await self.db.rollback()
            current = await self.get_payment(payment_id)
            if current.status != PaymentStatus.PENDING:
                raise PaymentNotPendingError(
                    "Payment is not in pending status",
                    details={"status": current.status},
                )
            await self._fail_if_pending(payment_id)
            self.logger.warning(
                "Expired payment completion rejected",
                payment_id=str(payment_id),
                expired_at=ensure_utc(current.expired_at).isoformat(),
            )
            raise PaymentExpiredError(details={"payment_id": str(payment_id)})

        entry = await self.ledger.grant_credit(
            payment.user_key, payment.credit_amount, commit=False
        )
        if entry is None:
            await self.db.rollback()
            raise NotFoundError(
                "User key not found", message_code=MessageCode.KEY_NOT_FOUND
            )
        await self._commit()

        payment = await self.get_payment(payment_id)
        self.logger.info(
            "Payment completed",
            payment_id=str(payment_id),
            key=mask_secret(payment.user_key),
            credits=payment.credit_amount,
            balance=entry.credit,
        )
        return PaymentCompletion(payment=payment, credit_balance=entry.credit)

    async def reconcile_order(self, order_code: int) -> ReconcileOutcome:
        """Poll the settlement backend and apply a PAID or CANCELLED result."""
        payment = await self.get_payment_by_order_code(order_code)
        if payment is None:
            raise NotFoundError(
                "Payment not found", message_code=MessageCode.PAYMENT_NOT_FOUND
            )

        status = await self.settlement.query_status(order_code)
        outcome = ReconcileOutcome(payment=payment, state=status.state)

        if status.state == SettlementState.PAID:
            reference = status.transaction_reference or f"PAYOS_{order_code}"
            try:
                completion = await self.complete_payment(payment.id, reference)
                outcome.payment = completion.payment
                outcome.completed = True
            except (PaymentNotPendingError, PaymentExpiredError) as e:
                self.logger.info(
                    "Paid order not completed",
                    order_code=order_code,
                    reason=e.message_code.value,
                )
                outcome.payment = await self.get_payment(payment.id)
        elif status.state == SettlementState.CANCELLED:
            if await self._fail_if_pending(payment.id):
                self.logger.info("Cancelled order marked failed", order_code=order_code)
            outcome.payment = await self.get_payment(payment.id)

        return outcome

    async def handle_webhook(self, payload: dict[str, Any]) -> WebhookOutcome:
        """Apply a settlement webhook.

        An unverified payload is treated as a hint: the order is polled and
        only a confirmed PAID status grants credit.
        """
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        order_code = data.get("orderCode")
        try:
            order_code = int(order_code) if order_code is not None else None
        except (TypeError, ValueError):
            order_code = None

        if order_code is None:
            return WebhookOutcome(status="ignored", details={"reason": "no_order_code"})

        if not self.settlement.verify_webhook(payload):
            self.logger.warning("Unverified payment webhook", order_code=order_code)
            try:
                outcome = await self.reconcile_order(order_code)
            except DomainError as e:
                return WebhookOutcome(
                    status="unverified",
                    order_code=order_code,
                    details={"reason": e.message_code.value},
                )
            return WebhookOutcome(
                status="completed" if outcome.completed else "polled",
                order_code=order_code,
                payment_id=outcome.payment.id,
                details={"state": outcome.state.value},
            )

        paid = payload.get("code") == PAYOS_SUCCESS_CODE and (
            str(data.get("status", SettlementState.PAID.value)).upper()
            == SettlementState.PAID.value
        )
        if not paid:
            return WebhookOutcome(status="ignored", order_code=order_code)

        payment = await self.get_payment_by_order_code(order_code)
        if payment is None:
            self.logger.warning("Webhook for unknown order", order_code=order_code)
            return WebhookOutcome(status="not_found", order_code=order_code)

        transactions = data.get("transactions") or []
        reference = (
            (transactions[0] or {}).get("reference") if transactions else None
        ) or data.get("reference") or f"PAYOS_WEBHOOK_{order_code}"

        try:
            await self.complete_payment(payment.id, str(reference))
        except PaymentNotPendingError:
            return WebhookOutcome("already_settled", order_code, payment.id)
        except PaymentExpiredError:
            return WebhookOutcome("expired", order_code, payment.id)
        return WebhookOutcome("completed", order_code, payment.id)

    async def reconcile_pending_payments(self) -> int:
        """Poll every live hosted-checkout payment. Returns completions."""
        result = await self.db.execute(
            select(Payment.order_code, Payment.payment_data).where(
                Payment.status == PaymentStatus.PENDING,
                Payment.expired_at > utcnow(),
                Payment.order_code.is_not(None),
            )
        )
        order_codes = [
            code
            for code, data in result.all()
            if (data or {}).get("gateway") == "payos"
        ]

        completed = 0
        for order_code in order_codes:
            try:
                outcome = await self.reconcile_order(order_code)
            except DomainError as e:
                self.logger.warning(
                    "Payment poll failed", order_code=order_code, error=str(e)
                )
                continue
            completed += int(outcome.completed)
        return completed

    async def cleanup_expired_payments(self) -> int:
        result = await self.db.execute(
            update(Payment)
            .where(
                Payment.status == PaymentStatus.PENDING,
                Payment.expired_at < utcnow(),
            )
            .values(status=PaymentStatus.EXPIRED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        if result.rowcount:
            self.logger.info("Expired payments swept", count=result.rowcount)
        return result.rowcount
