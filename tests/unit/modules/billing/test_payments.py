"""Payment lifecycle tests."""

import asyncio
from datetime import timedelta

import pytest

from src.core.errors import (
    ConflictError,
    InvalidCreditAmountError,
    InvalidRequestError,
    NotFoundError,
    PaymentExpiredError,
    PaymentNotPendingError,
)
from src.database.models import PaymentMethod, PaymentStatus
from src.modules.billing.payments import PaymentService, generate_order_code
from src.modules.billing.settlement import SettlementState
from src.modules.ledger.service import CreditLedgerService
from src.utils.dates import ensure_utc, utcnow
from tests.factories import CreditPackageFactory, KeyFactory, PaymentFactory


@pytest.fixture
def service(db_session, settlement):
    return PaymentService(db_session, settlement=settlement)


async def _balance(session, key: str) -> int:
    return await CreditLedgerService(session).get_balance(key)


class TestCreatePayment:
    @pytest.mark.asyncio
    async def test_package_price(self, db_session, service, settlement):
        key = await KeyFactory.create_async(db_session)
        await CreditPackageFactory.create_async(db_session, credits=100, price=500_000)

        created = await service.create_payment(key.key, 100)

        payment = created.payment
        assert payment.price == 500_000
        assert payment.status == PaymentStatus.PENDING
        assert payment.payment_method == PaymentMethod.QR_CODE
        assert created.gateway == "payos"
        assert created.pay_url.endswith(str(payment.order_code))
        assert settlement.checkouts[0].amount == 500_000
        assert ensure_utc(payment.expired_at) > utcnow() + timedelta(minutes=29)

    @pytest.mark.asyncio
    async def test_fallback_price(self, db_session, service):
        key = await KeyFactory.create_async(db_session)
        created = await service.create_payment(key.key, 137)
        assert created.payment.price == 137 * 4545 == 622_665

    @pytest.mark.asyncio
    async def test_checkout_failure_falls_back_to_manual_transfer(
        self, db_session, service, settlement
    ):
        key = await KeyFactory.create_async(db_session, key="ck_manual_abcdefgh")
        settlement.fail_checkout = True

        created = await service.create_payment(key.key, 10)

        assert created.gateway == "manual"
        assert created.payment.payment_method == PaymentMethod.BANK_TRANSFER
        content = created.transfer_info.content
        assert content.startswith("NAPCREDIT abcdefgh ")
        assert "amount=45450" in created.pay_url
        assert created.qr_data.startswith("2|010|")
        assert created.qr_data.endswith(f"|45450|{content}|VN")

    @pytest.mark.asyncio
    async def test_pending_payment_is_reused(self, db_session, service, settlement):
        key = await KeyFactory.create_async(db_session)

        first = await service.create_payment(key.key, 10)
        second = await service.create_payment(key.key, 10)

        assert second.reused is True
        assert second.payment.id == first.payment.id
        assert len(settlement.checkouts) == 1

    @pytest.mark.asyncio
    async def test_invalid_amount(self, db_session, service):
        key = await KeyFactory.create_async(db_session)
        with pytest.raises(InvalidCreditAmountError):
            await service.create_payment(key.key, 10_001)

    @pytest.mark.asyncio
    async def test_inactive_key(self, db_session, service):
        key = await KeyFactory.create_async(db_session, is_active=False)
        with pytest.raises(InvalidRequestError):
            await service.create_payment(key.key, 10)

    def test_order_codes_are_positive_and_distinctive(self):
        codes = {generate_order_code() for _ in range(50)}
        assert all(code > 0 for code in codes)
        assert len(codes) > 1


class TestCompletePayment:
    @pytest.mark.asyncio
    async def test_completion_grants_exactly_once(self, db_session, service):
        caller = (await KeyFactory.create_async(db_session, credit=0)).key
        payment_id = (
            await PaymentFactory.create_async(
                db_session, user_key=caller, credit_amount=100
            )
        ).id

        completion = await service.complete_payment(payment_id, "FT-1")
        assert completion.payment.status == PaymentStatus.COMPLETED
        assert completion.payment.transaction_id == "FT-1"
        assert completion.credit_balance == 100

        with pytest.raises(PaymentNotPendingError):
            await service.complete_payment(payment_id, "FT-2")

        assert await _balance(db_session, caller) == 100
        assert (await service.get_payment(payment_id)).transaction_id == "FT-1"

    @pytest.mark.asyncio
    async def test_racing_completions_grant_once(
        self, db_session, session_factory, settlement
    ):
        key = await KeyFactory.create_async(db_session, credit=0)
        payment = await PaymentFactory.create_async(
            db_session, user_key=key.key, credit_amount=50
        )

        async def complete(reference):
            async with session_factory() as session:
                service = PaymentService(session, settlement=settlement)
                return await service.complete_payment(payment.id, reference)

        results = await asyncio.gather(
            complete("FT-A"), complete("FT-B"), return_exceptions=True
        )

        assert sum(1 for r in results if isinstance(r, PaymentNotPendingError)) == 1
        assert await _balance(db_session, key.key) == 50

    @pytest.mark.asyncio
    async def test_expired_payment_is_failed_without_grant(self, db_session, service):
        caller = (await KeyFactory.create_async(db_session, credit=0)).key
        payment_id = (
            await PaymentFactory.create_async(
                db_session, user_key=caller, expired_at=utcnow() - timedelta(minutes=1)
            )
        ).id

        with pytest.raises(PaymentExpiredError):
            await service.complete_payment(payment_id, "FT-LATE")

        assert (await service.get_payment(payment_id)).status == PaymentStatus.FAILED
        assert await _balance(db_session, caller) == 0

    @pytest.mark.asyncio
    async def test_duplicate_transaction_id_conflicts(self, db_session, service):
        caller = (await KeyFactory.create_async(db_session, credit=0)).key
        first = await PaymentFactory.create_async(db_session, user_key=caller)
        first_id, first_credit = first.id, first.credit_amount
        second_id = (await PaymentFactory.create_async(db_session, user_key=caller)).id

        await service.complete_payment(first_id, "FT-SAME")
        with pytest.raises(ConflictError):
            await service.complete_payment(second_id, "FT-SAME")

        assert (await service.get_payment(second_id)).status == PaymentStatus.PENDING
        assert await _balance(db_session, caller) == first_credit

    @pytest.mark.asyncio
    async def test_missing_key_rolls_back_claim(self, db_session, service):
        payment_id = (
            await PaymentFactory.create_async(db_session, user_key="ck_deleted")
        ).id

        with pytest.raises(NotFoundError):
            await service.complete_payment(payment_id)

        assert (await service.get_payment(payment_id)).status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_manual_transaction_id(self, db_session, service):
        key = await KeyFactory.create_async(db_session)
        payment = await PaymentFactory.create_async(db_session, user_key=key.key)

        completion = await service.complete_payment(payment.id)

        assert completion.payment.transaction_id.startswith("MANUAL_")


class TestReconcile:
    @pytest.mark.asyncio
    async def test_paid_order_completes(self, db_session, service, settlement):
        key = await KeyFactory.create_async(db_session, credit=0)
        payment = await PaymentFactory.create_async(
            db_session, user_key=key.key, credit_amount=20
        )
        settlement.mark_paid(payment.order_code, "FT-POLL")

        outcome = await service.reconcile_order(payment.order_code)

        assert outcome.completed is True
        assert outcome.state == SettlementState.PAID
        assert outcome.payment.transaction_id == "FT-POLL"
        assert await _balance(db_session, key.key) == 20

    @pytest.mark.asyncio
    async def test_cancelled_order_fails(self, db_session, service, settlement):
        payment = await PaymentFactory.create_async(db_session)
        settlement.mark_cancelled(payment.order_code)

        outcome = await service.reconcile_order(payment.order_code)

        assert outcome.completed is False
        assert outcome.payment.status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_paid_twice_is_idempotent(self, db_session, service, settlement):
        caller = (await KeyFactory.create_async(db_session, credit=0)).key
        order_code = (
            await PaymentFactory.create_async(
                db_session, user_key=caller, credit_amount=20
            )
        ).order_code
        settlement.mark_paid(order_code)

        await service.reconcile_order(order_code)
        again = await service.reconcile_order(order_code)

        assert again.completed is False
        assert await _balance(db_session, caller) == 20

    @pytest.mark.asyncio
    async def test_unknown_order(self, service):
        with pytest.raises(NotFoundError):
            await service.reconcile_order(123)

    @pytest.mark.asyncio
    async def test_poll_only_touches_hosted_checkouts(
        self, db_session, service, settlement
    ):
        key = await KeyFactory.create_async(db_session, credit=0)
        hosted = await PaymentFactory.create_async(db_session, user_key=key.key)
        manual = await PaymentFactory.create_async(
            db_session, user_key=key.key, payment_data={"gateway": "manual"}
        )
        settlement.mark_paid(hosted.order_code)
        settlement.mark_paid(manual.order_code)

        assert await service.reconcile_pending_payments() == 1
        assert settlement.queries == [hosted.order_code]

    @pytest.mark.asyncio
    async def test_poll_survives_backend_errors(self, db_session, service, settlement):
        await PaymentFactory.create_async(db_session)
        settlement.fail_query = True

        assert await service.reconcile_pending_payments() == 0


class TestWebhook:
    def _payload(self, order_code, code="00", status="PAID", reference="FT-HOOK"):
        return {
            "code": code,
            "desc": "success",
            "data": {
                "orderCode": order_code,
                "amount": 454500,
                "status": status,
                "reference": reference,
            },
            "signature": "checked-by-backend",
        }

    @pytest.mark.asyncio
    async def test_verified_webhook_completes(self, db_session, service):
        caller = (await KeyFactory.create_async(db_session, credit=0)).key
        payment = await PaymentFactory.create_async(
            db_session, user_key=caller, credit_amount=100
        )
        payment_id, order_code = payment.id, payment.order_code

        outcome = await service.handle_webhook(self._payload(order_code))

        assert outcome.status == "completed"
        assert (await service.get_payment(payment_id)).transaction_id == "FT-HOOK"
        assert await _balance(db_session, caller) == 100

        replay = await service.handle_webhook(self._payload(order_code))
        assert replay.status == "already_settled"
        assert await _balance(db_session, caller) == 100

    @pytest.mark.asyncio
    async def test_unverified_webhook_does_not_grant_without_poll(
        self, db_session, service, settlement
    ):
        key = await KeyFactory.create_async(db_session, credit=0)
        payment = await PaymentFactory.create_async(db_session, user_key=key.key)
        settlement.webhook_valid = False

        outcome = await service.handle_webhook(self._payload(payment.order_code))

        assert outcome.status == "polled"
        assert settlement.queries == [payment.order_code]
        assert await _balance(db_session, key.key) == 0

    @pytest.mark.asyncio
    async def test_unverified_webhook_confirmed_by_poll(
        self, db_session, service, settlement
    ):
        key = await KeyFactory.create_async(db_session, credit=0)
        payment = await PaymentFactory.create_async(
            db_session, user_key=key.key, credit_amount=5
        )
        settlement.webhook_valid = False
        settlement.mark_paid(payment.order_code)

        outcome = await service.handle_webhook(self._payload(payment.order_code))

        assert outcome.status == "completed"
        assert await _balance(db_session, key.key) == 5

    @pytest.mark.asyncio
    async def test_unpaid_or_unknown_orders(self, db_session, service):
        payment = await PaymentFactory.create_async(db_session)

        cancelled = self._payload(payment.order_code, status="CANCELLED")
        assert (await service.handle_webhook(cancelled)).status == "ignored"
        assert (await service.handle_webhook(self._payload(999))).status == "not_found"
        assert (await service.handle_webhook({"data": {}})).status == "ignored"

    @pytest.mark.asyncio
    async def test_webhook_after_expiry(self, db_session, service):
        payment = await PaymentFactory.create_async(
            db_session, expired_at=utcnow() - timedelta(seconds=1)
        )
        outcome = await service.handle_webhook(self._payload(payment.order_code))
        assert outcome.status == "expired"


class TestCleanup:
    @pytest.mark.asyncio
    async def test_sweeps_only_expired_pending(self, db_session, service):
        stale = await PaymentFactory.create_async(
            db_session, expired_at=utcnow() - timedelta(hours=1)
        )
        live = await PaymentFactory.create_async(db_session)
        done = await PaymentFactory.create_async(
            db_session,
            status=PaymentStatus.COMPLETED,
            expired_at=utcnow() - timedelta(hours=1),
        )

        assert await service.cleanup_expired_payments() == 1

        assert (await service.get_payment(stale.id)).status == PaymentStatus.EXPIRED
        assert (await service.get_payment(live.id)).status == PaymentStatus.PENDING
        assert (await service.get_payment(done.id)).status == PaymentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_history_is_newest_first_and_clamped(self, db_session, service):
        for _ in range(3):
            await PaymentFactory.create_async(db_session, user_key="ck_history")

        assert len(await service.list_user_payments("ck_history", limit=2)) == 2
        assert len(await service.list_user_payments("ck_history", limit=0)) == 1
