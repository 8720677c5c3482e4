"""
기관 지급

처리된(PROCESSED) 수업료 크레딧을 묶어 교육 기관 지급을 생성하고 완료.

2단계 지급:
1. generate_payment: PENDING 지급 생성, 크레딧 점유 (상태는 PROCESSED 유지)
2. complete_payment: 지급 분개 전기 후에야 크레딧 PAID

지급 분개: 기관 미지급금 (Debit) / 현금 (Credit)
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from core.domain.errors import (
    CreditNotEligibleError,
    EntityNotFoundError,
    InvalidAmountError,
    InvalidStateTransitionError,
    LedgerValidationError,
    ProviderMismatchError,
)
from core.domain.events import EventTypes
from core.domain.state_machines import (
    CreditStateMachine,
    CreditStatus,
    PaymentBatchStateMachine,
    PaymentBatchStatus,
    PaymentStateMachine,
    PaymentStatus,
)
from core.ledger.entry_builder import LedgerEntry
from core.ledger.types import TransactionKind
from core.types import EntityKind, Principal
from core.utils.money import ZERO
from finance.tuition.repository import PaymentBatch, ProviderPayment, TuitionRepository

if TYPE_CHECKING:
    from adapters.interfaces import IPaymentRail
    from core.ledger.store import LedgerStore
    from finance.funds.accounting import FundAccountingService

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProviderPaymentService:
    """기관 지급 서비스

    Args:
        ledger: 원장 저장소
        funds: 펀드 회계 서비스 (지급 전 잔액 확인)
    """

    def __init__(self, ledger: LedgerStore, funds: FundAccountingService):
        self.ledger = ledger
        self.db = ledger.db
        self.funds = funds
        self.repository = TuitionRepository(ledger.db)

    async def get_payment(self, payment_id: str) -> ProviderPayment | None:
        return await self.repository.get_payment(payment_id)

    async def list_payments(
        self,
        provider_id: str | None = None,
        status: str | None = None,
    ) -> list[ProviderPayment]:
        return await self.repository.list_payments(provider_id, status)

    async def require_payment(self, payment_id: str) -> ProviderPayment:
        payment = await self.repository.get_payment(payment_id)
        if payment is None:
            raise EntityNotFoundError(f"Payment not found: {payment_id}", payment_id=payment_id)
        return payment

    async def _change_payment(
        self,
        payment: ProviderPayment,
        target: PaymentStatus,
        principal: Principal,
        **fields: Any,
    ) -> ProviderPayment:
        machine = PaymentStateMachine(payment.status, payment.payment_id)
        machine.transition(target)
        await self.repository.update_payment(payment.payment_id, machine.state, **fields)
        await self.ledger.record_event(
            EventTypes.PROVIDER_PAYMENT_STATUS_CHANGED,
            EntityKind.PROVIDER_PAYMENT,
            payment.payment_id,
            principal,
            {"from": payment.status, "to": machine.state, **fields},
        )
        payment.status = machine.state
        for name, value in fields.items():
            if hasattr(payment, name):
                setattr(payment, name, value)
        return payment

    # =========================================================================
    # 지급 생성
    # =========================================================================

    async def generate_payment(
        self,
        provider_id: str,
        credit_ids: list[str],
        principal: Principal,
        payment_date: date | None = None,
        method: str | None = None,
        description: str | None = None,
    ) -> ProviderPayment:
        """지급 생성 (PENDING)

        금액 = 크레딧 dpp_portion 합계. 크레딧은 PROCESSED 상태로 남고
        지급이 COMPLETED 될 때 PAID로 전환.

        Raises:
            CreditNotEligibleError: PROCESSED가 아니거나 이미 다른 지급에 포함된 크레딧
            ProviderMismatchError: 다른 기관의 크레딧
            LedgerValidationError: 빈 목록, 중복 ID, 여러 펀드 혼합
        """
        if not credit_ids:
            raise LedgerValidationError("At least one credit is required", provider_id=provider_id)
        if len(set(credit_ids)) != len(credit_ids):
            raise LedgerValidationError("Duplicate credit ids", credit_ids=credit_ids)

        async with self.db.transaction():
            credits = []
            for credit_id in credit_ids:
                credit = await self.repository.get_credit(credit_id)
                if credit is None:
                    raise EntityNotFoundError(f"Credit not found: {credit_id}", credit_id=credit_id)
                if credit.provider_id != provider_id:
                    raise ProviderMismatchError(
                        f"Credit {credit_id} belongs to provider {credit.provider_id}",
                        credit_id=credit_id,
                        provider_id=provider_id,
                        credit_provider_id=credit.provider_id,
                    )
                if credit.status != CreditStatus.PROCESSED.value or credit.is_adjustment:
                    raise CreditNotEligibleError(
                        f"Credit {credit_id} is {credit.status}, expected PROCESSED",
                        credit_id=credit_id,
                        status=credit.status,
                    )
                held_by = await self.repository.active_payment_for_credit(credit_id)
                if held_by:
                    raise CreditNotEligibleError(
                        f"Credit {credit_id} is already consumed by payment {held_by}",
                        credit_id=credit_id,
                        payment_id=held_by,
                    )
                credits.append(credit)

            fund_ids = {c.fund_id for c in credits}
            if len(fund_ids) != 1:
                raise LedgerValidationError(
                    "Credits in one payment must share a fund",
                    credit_ids=credit_ids,
                    fund_ids=sorted(fund_ids),
                )
            amount = sum((c.dpp_portion for c in credits), ZERO)
            if amount <= 0:
                raise InvalidAmountError(
                    "Payment amount must be positive",
                    credit_ids=credit_ids,
                    amount=amount,
                )

            payment = ProviderPayment(
                payment_id=f"pp-{uuid4().hex[:12]}",
                provider_id=provider_id,
                fund_id=fund_ids.pop(),
                amount=amount,
                payment_date=payment_date or date.today(),
                status=PaymentStatus.PENDING.value,
                method=method,
                description=description,
                created_by=principal.user_id,
                credit_ids=list(credit_ids),
            )
            await self.repository.insert_payment(payment)
            await self.ledger.record_event(
                EventTypes.PROVIDER_PAYMENT_CREATED,
                EntityKind.PROVIDER_PAYMENT,
                payment.payment_id,
                principal,
                {"provider_id": provider_id, "amount": amount, "credit_ids": credit_ids},
            )

        logger.info(
            "기관 지급 생성",
            extra={
                "payment_id": payment.payment_id,
                "provider_id": provider_id,
                "amount": str(amount),
            },
        )
        return payment

    # =========================================================================
    # 상태 전이
    # =========================================================================

    async def start_processing(self, payment_id: str, principal: Principal) -> ProviderPayment:
        """지급 레일 전송 시작 (PENDING → PROCESSING)"""
        async with self.db.transaction():
            payment = await self.require_payment(payment_id)
            return await self._change_payment(payment, PaymentStatus.PROCESSING, principal)

    async def complete_payment(
        self,
        payment_id: str,
        principal: Principal,
        reference_id: str | None = None,
        completion_date: date | None = None,
    ) -> ProviderPayment:
        """지급 완료 (→ COMPLETED)

        지급 분개를 전기하고 포함된 크레딧을 PAID로 전환.
        이미 완료된 지급은 그대로 반환.

        Raises:
            RestrictedFundError / InsufficientFundBalanceError: 펀드 현금 부족
        """
        async with self.db.transaction():
            payment = await self.require_payment(payment_id)
            if payment.status == PaymentStatus.COMPLETED.value:
                return payment
            if not PaymentStateMachine(payment.status).can_transition(PaymentStatus.COMPLETED):
                raise InvalidStateTransitionError(
                    f"Payment {payment_id} cannot complete from {payment.status}",
                    payment_id=payment_id,
                    from_state=payment.status,
                    to_state=PaymentStatus.COMPLETED.value,
                )

            txn_date = completion_date or payment.payment_date
            cash = self.ledger.config.cash_account
            await self.funds.ensure_available(
                payment.fund_id, payment.amount, txn_date, account_id=cash
            )

            txn = self.ledger.builder.journal(
                txn_date,
                [
                    LedgerEntry.debit(
                        self.ledger.config.provider_payable_account,
                        payment.fund_id,
                        payment.amount,
                        memo=payment.provider_id,
                    ),
                    LedgerEntry.credit(cash, payment.fund_id, payment.amount, memo=payment.provider_id),
                ],
                description=payment.description or f"Provider payment {payment_id}",
                reference=payment_id,
                kind=TransactionKind.PROVIDER_PAYMENT.value,
            )
            txn.counterparty_id = payment.provider_id
            await self.ledger.post(txn, principal)

            paid_at = _now()
            for credit_id in payment.credit_ids:
                credit = await self.repository.get_credit(credit_id)
                machine = CreditStateMachine(credit.status, credit_id)
                machine.transition(CreditStatus.PAID)
                await self.repository.update_credit_status(credit_id, machine.state, paid_at=paid_at)

            payment = await self._change_payment(
                payment,
                PaymentStatus.COMPLETED,
                principal,
                ledger_transaction_id=txn.transaction_id,
                reference_id=reference_id or payment.reference_id,
                processed_at=paid_at,
            )

        logger.info(
            "기관 지급 완료",
            extra={"payment_id": payment_id, "transaction_id": txn.transaction_id},
        )
        return payment

    async def fail_payment(
        self,
        payment_id: str,
        reason: str,
        principal: Principal,
    ) -> ProviderPayment:
        """지급 실패 (→ FAILED), 크레딧 점유 해제"""
        async with self.db.transaction():
            payment = await self.require_payment(payment_id)
            payment = await self._change_payment(
                payment, PaymentStatus.FAILED, principal, failure_reason=reason
            )
            await self.repository.release_credits(payment_id)

        logger.warning(
            "기관 지급 실패",
            extra={"payment_id": payment_id, "reason": reason},
        )
        return payment

    async def void_payment(
        self,
        payment_id: str,
        reason: str,
        principal: Principal,
    ) -> ProviderPayment:
        """지급 취소 (PENDING/COMPLETED → VOIDED)

        COMPLETED 지급은 지급 분개를 역분개하고 크레딧을 PROCESSED로 되돌림.
        """
        async with self.db.transaction():
            payment = await self.require_payment(payment_id)
            was_completed = payment.status == PaymentStatus.COMPLETED.value
            payment = await self._change_payment(
                payment,
                PaymentStatus.VOIDED,
                principal,
                void_reason=reason,
                voided_at=_now(),
            )

            if was_completed:
                if payment.ledger_transaction_id:
                    await self.ledger.void(
                        payment.ledger_transaction_id,
                        principal,
                        reason,
                        owner=EntityKind.PROVIDER_PAYMENT,
                    )
                for credit_id in payment.credit_ids:
                    credit = await self.repository.get_credit(credit_id)
                    machine = CreditStateMachine(credit.status, credit_id)
                    machine.transition(CreditStatus.PROCESSED)
                    await self.repository.update_credit_status(credit_id, machine.state, paid_at=None)

            await self.repository.release_credits(payment_id)

        logger.info(
            "기관 지급 취소",
            extra={"payment_id": payment_id, "was_completed": was_completed},
        )
        return payment

    async def settle_payment(
        self,
        payment_id: str,
        rail: IPaymentRail,
        principal: Principal,
    ) -> ProviderPayment:
        """지급 레일로 정산

        PROCESSING 전환 후 레일 호출 결과에 따라 완료 또는 실패 처리.
        레일 호출은 DB 트랜잭션 밖에서 수행.
        """
        payment = await self.require_payment(payment_id)
        if payment.status == PaymentStatus.PENDING.value:
            payment = await self.start_processing(payment_id, principal)
        elif payment.status != PaymentStatus.PROCESSING.value:
            raise InvalidStateTransitionError(
                f"Payment {payment_id} cannot be settled from {payment.status}",
                payment_id=payment_id,
                from_state=payment.status,
            )

        result = await rail.submit(payment)
        if result.success:
            return await self.complete_payment(payment_id, principal, result.reference_id)
        return await self.fail_payment(payment_id, result.message or "rail failure", principal)

    # =========================================================================
    # 지급 배치
    # =========================================================================

    async def create_payment_batch(
        self,
        name: str,
        principal: Principal,
        batch_date: date | None = None,
    ) -> PaymentBatch:
        batch = PaymentBatch(
            batch_id=f"pb-{uuid4().hex[:12]}",
            name=name,
            batch_date=batch_date or date.today(),
            status=PaymentBatchStatus.OPEN.value,
            created_by=principal.user_id,
        )
        async with self.db.transaction():
            await self.repository.insert_payment_batch(batch)
        return batch

    async def require_payment_batch(self, batch_id: str) -> PaymentBatch:
        batch = await self.repository.get_payment_batch(batch_id)
        if batch is None:
            raise EntityNotFoundError(f"Payment batch not found: {batch_id}", batch_id=batch_id)
        return batch

    async def add_payment(self, batch_id: str, payment_id: str, principal: Principal) -> PaymentBatch:
        """배치에 지급 추가 (OPEN 배치, PENDING/PROCESSING 지급)"""
        async with self.db.transaction():
            batch = await self.require_payment_batch(batch_id)
            if batch.status != PaymentBatchStatus.OPEN.value:
                raise InvalidStateTransitionError(
                    f"Payment batch {batch_id} is {batch.status}",
                    batch_id=batch_id,
                    status=batch.status,
                )
            payment = await self.require_payment(payment_id)
            if payment.status not in (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value):
                raise InvalidStateTransitionError(
                    f"Payment {payment_id} is {payment.status}",
                    payment_id=payment_id,
                    status=payment.status,
                )
            if payment.batch_id and payment.batch_id != batch_id:
                raise LedgerValidationError(
                    f"Payment {payment_id} already belongs to batch {payment.batch_id}",
                    payment_id=payment_id,
                    batch_id=payment.batch_id,
                )
            await self.repository.update_payment(payment_id, payment.status, batch_id=batch_id)
            return await self.require_payment_batch(batch_id)

    async def complete_payment_batch(
        self,
        batch_id: str,
        principal: Principal,
        reference_id: str | None = None,
    ) -> PaymentBatch:
        """배치 내 지급 일괄 완료 (전부 성공 또는 전부 실패)"""
        async with self.db.transaction():
            batch = await self.require_payment_batch(batch_id)
            machine = PaymentBatchStateMachine(batch.status, batch_id)
            machine.transition(PaymentBatchStatus.COMPLETED)
            if not batch.payment_ids:
                raise LedgerValidationError(f"Payment batch {batch_id} is empty", batch_id=batch_id)

            for payment_id in batch.payment_ids:
                await self.complete_payment(payment_id, principal, reference_id)

            await self.repository.update_payment_batch(batch_id, machine.state, principal.user_id)
            await self.ledger.record_event(
                EventTypes.PAYMENT_BATCH_COMPLETED,
                EntityKind.PAYMENT_BATCH,
                batch_id,
                principal,
                {"payment_ids": batch.payment_ids},
            )
            batch = await self.require_payment_batch(batch_id)

        logger.info(
            "지급 배치 완료",
            extra={"batch_id": batch_id, "payments": len(batch.payment_ids)},
        )
        return batch
