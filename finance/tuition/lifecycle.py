"""
수업료 크레딧 생명주기

크레딧 상태 전이(작성 → 승인 → 처리 → 지급)와 배치 처리.

- 처리(PROCESSED) 시 발생주의 분개: 수업료 크레딧 비용 (Debit) / 기관 미지급금 (Credit)
- 배치 처리는 전부 성공 또는 전부 실패 (단일 트랜잭션)
- 취소는 원 크레딧을 지우지 않고 반대 금액의 조정 크레딧 발행
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from core.config.loader import TuitionConfig
from core.constants import Defaults
from core.domain.errors import (
    ApprovalGuardError,
    CreditNotEligibleError,
    CreditSplitError,
    EntityNotFoundError,
    InvalidAmountError,
    InvalidStateTransitionError,
    LedgerValidationError,
)
from core.domain.events import EventTypes
from core.domain.state_machines import (
    CreditBatchStateMachine,
    CreditBatchStatus,
    CreditStateMachine,
    CreditStatus,
)
from core.ledger.entry_builder import LedgerEntry, LedgerTransaction
from core.ledger.types import TransactionKind
from core.types import EntityKind, Principal
from core.utils.dedup import make_status_dedup_key
from core.utils.money import ZERO, to_money
from finance.tuition.repository import CreditBatch, TuitionCredit, TuitionRepository

if TYPE_CHECKING:
    from core.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_split(
    credit_amount: Decimal,
    dpp_portion: Decimal,
    family_portion: Decimal,
) -> tuple[Decimal, Decimal, Decimal]:
    """크레딧 금액 분할 검증

    Returns:
        센트 단위로 정규화된 (credit_amount, dpp_portion, family_portion)

    Raises:
        InvalidAmountError: 0 이하 총액, 음수 분할액
        CreditSplitError: dpp_portion + family_portion != credit_amount
    """
    credit_amount = to_money(credit_amount)
    dpp_portion = to_money(dpp_portion)
    family_portion = to_money(family_portion)

    if credit_amount <= 0:
        raise InvalidAmountError("Credit amount must be positive", credit_amount=credit_amount)
    if dpp_portion < 0 or family_portion < 0:
        raise InvalidAmountError(
            "Credit portions must be non-negative",
            dpp_portion=dpp_portion,
            family_portion=family_portion,
        )
    if dpp_portion + family_portion != credit_amount:
        raise CreditSplitError(
            f"dpp_portion {dpp_portion} + family_portion {family_portion} != {credit_amount}",
            credit_amount=credit_amount,
            dpp_portion=dpp_portion,
            family_portion=family_portion,
            difference=credit_amount - dpp_portion - family_portion,
        )
    return credit_amount, dpp_portion, family_portion


class TuitionCreditService:
    """수업료 크레딧 서비스

    Args:
        ledger: 원장 저장소 (발생주의 분개 전기)
        config: 수업료 설정 (승인 역할)
    """

    def __init__(self, ledger: LedgerStore, config: TuitionConfig | None = None):
        self.ledger = ledger
        self.db = ledger.db
        self.config = config or TuitionConfig()
        self.repository = TuitionRepository(ledger.db)

    # =========================================================================
    # 공통
    # =========================================================================

    async def get_credit(self, credit_id: str) -> TuitionCredit | None:
        return await self.repository.get_credit(credit_id)

    async def list_credits(
        self,
        provider_id: str | None = None,
        status: str | None = None,
        batch_id: str | None = None,
    ) -> list[TuitionCredit]:
        return await self.repository.list_credits(provider_id, status, batch_id)

    async def require_credit(self, credit_id: str) -> TuitionCredit:
        credit = await self.repository.get_credit(credit_id)
        if credit is None:
            raise EntityNotFoundError(f"Credit not found: {credit_id}", credit_id=credit_id)
        return credit

    async def get_batch(self, batch_id: str) -> CreditBatch | None:
        return await self.repository.get_batch(batch_id)

    async def require_batch(self, batch_id: str) -> CreditBatch:
        batch = await self.repository.get_batch(batch_id)
        if batch is None:
            raise EntityNotFoundError(f"Credit batch not found: {batch_id}", batch_id=batch_id)
        return batch

    def _ensure_approver(
        self,
        principal: Principal,
        created_by: str | None,
        entity_id: str,
    ) -> None:
        """승인자 검증 (작성자 외, 승인 역할 보유)"""
        if created_by and principal.user_id == created_by:
            raise ApprovalGuardError(
                "Creator cannot approve own submission",
                entity_id=entity_id,
                user_id=principal.user_id,
            )
        if self.config.approver_roles and principal.role not in self.config.approver_roles:
            raise ApprovalGuardError(
                f"Role {principal.role} cannot approve",
                entity_id=entity_id,
                user_id=principal.user_id,
                role=principal.role,
                approver_roles=list(self.config.approver_roles),
            )

    async def _change_credit(
        self,
        credit: TuitionCredit,
        target: CreditStatus,
        principal: Principal,
        **fields: Any,
    ) -> TuitionCredit:
        machine = CreditStateMachine(credit.status, credit.credit_id)
        machine.transition(target)
        await self.repository.update_credit_status(credit.credit_id, machine.state, **fields)
        await self.ledger.record_event(
            EventTypes.CREDIT_STATUS_CHANGED,
            EntityKind.CREDIT,
            credit.credit_id,
            principal,
            {"from": credit.status, "to": machine.state},
        )
        credit.status = machine.state
        for name, value in fields.items():
            setattr(credit, name, value)
        return credit

    # =========================================================================
    # 크레딧
    # =========================================================================

    async def create_credit(
        self,
        student_id: str,
        provider_id: str,
        period_start: date,
        period_end: date,
        credit_amount: Decimal,
        dpp_portion: Decimal,
        family_portion: Decimal,
        principal: Principal,
        fund_id: str | None = None,
        student_name: str | None = None,
    ) -> TuitionCredit:
        """크레딧 작성 (DRAFT)

        Raises:
            CreditSplitError: 분할 합계 불일치
            InvalidAmountError: 금액 오류
            LedgerValidationError: 기간 오류
        """
        credit_amount, dpp_portion, family_portion = validate_split(
            credit_amount, dpp_portion, family_portion
        )
        if period_end < period_start:
            raise LedgerValidationError(
                "Credit period_end precedes period_start",
                period_start=period_start,
                period_end=period_end,
            )
        fund = await self.ledger.require_fund(fund_id or Defaults.GENERAL_FUND_ID)

        credit = TuitionCredit(
            credit_id=f"tc-{uuid4().hex[:12]}",
            student_id=student_id,
            student_name=student_name,
            provider_id=provider_id,
            fund_id=fund.fund_id,
            period_start=period_start,
            period_end=period_end,
            credit_amount=credit_amount,
            dpp_portion=dpp_portion,
            family_portion=family_portion,
            status=CreditStatus.DRAFT.value,
            created_by=principal.user_id,
        )

        async with self.db.transaction():
            await self.repository.insert_credit(credit)
            await self.ledger.record_event(
                EventTypes.CREDIT_CREATED,
                EntityKind.CREDIT,
                credit.credit_id,
                principal,
                {
                    "provider_id": provider_id,
                    "credit_amount": credit_amount,
                    "dpp_portion": dpp_portion,
                    "family_portion": family_portion,
                },
            )

        logger.info(
            "크레딧 작성",
            extra={"credit_id": credit.credit_id, "provider_id": provider_id},
        )
        return credit

    async def submit(self, credit_id: str, principal: Principal) -> TuitionCredit:
        """승인 요청 (DRAFT → PENDING_APPROVAL), 작성자만 가능"""
        async with self.db.transaction():
            credit = await self.require_credit(credit_id)
            if credit.created_by and credit.created_by != principal.user_id:
                raise ApprovalGuardError(
                    "Only the creator can submit a credit",
                    credit_id=credit_id,
                    user_id=principal.user_id,
                    created_by=credit.created_by,
                )
            return await self._change_credit(credit, CreditStatus.PENDING_APPROVAL, principal)

    async def approve(
        self,
        credit_id: str,
        principal: Principal,
        approval_date: date | None = None,
    ) -> TuitionCredit:
        """승인 (PENDING_APPROVAL → APPROVED)

        Raises:
            ApprovalGuardError: 작성자 본인 승인, 승인 역할 없음
        """
        async with self.db.transaction():
            credit = await self.require_credit(credit_id)
            self._ensure_approver(principal, credit.created_by, credit_id)
            return await self._change_credit(
                credit,
                CreditStatus.APPROVED,
                principal,
                approved_by=principal.user_id,
                approval_date=approval_date or date.today(),
            )

    async def reject(self, credit_id: str, reason: str, principal: Principal) -> TuitionCredit:
        """반려 (PENDING_APPROVAL → REJECTED), 사유 필수"""
        if not reason or not reason.strip():
            raise ApprovalGuardError("Rejection reason is required", credit_id=credit_id)
        async with self.db.transaction():
            credit = await self.require_credit(credit_id)
            return await self._change_credit(
                credit,
                CreditStatus.REJECTED,
                principal,
                rejection_reason=reason.strip(),
            )

    async def process_credit(
        self,
        credit_id: str,
        principal: Principal,
        processing_date: date | None = None,
    ) -> TuitionCredit:
        """배치 없이 단건 처리 (APPROVED → PROCESSED)

        Raises:
            CreditNotEligibleError: 배치에 속한 크레딧
        """
        processing_date = processing_date or date.today()
        async with self.db.transaction():
            credit = await self.require_credit(credit_id)
            if credit.batch_id:
                raise CreditNotEligibleError(
                    f"Credit {credit_id} belongs to batch {credit.batch_id}",
                    credit_id=credit_id,
                    batch_id=credit.batch_id,
                )
            if not CreditStateMachine(credit.status).can_transition(CreditStatus.PROCESSED):
                raise InvalidStateTransitionError(
                    f"Credit {credit_id} cannot be processed from {credit.status}",
                    credit_id=credit_id,
                    from_state=credit.status,
                    to_state=CreditStatus.PROCESSED.value,
                )
            accrual = self._accrual([credit], processing_date, f"Tuition credit {credit_id}")
            if accrual is not None:
                await self.ledger.post(accrual, principal)
            await self._change_credit(
                credit,
                CreditStatus.PROCESSED,
                principal,
                accrual_transaction_id=accrual.transaction_id if accrual else None,
                processed_at=_now(),
            )
        return credit

    async def void(self, credit_id: str, reason: str, principal: Principal) -> TuitionCredit:
        """크레딧 취소 (APPROVED/PROCESSED → VOIDED)

        원 크레딧을 VOIDED로 두고 반대 금액의 조정 크레딧을 발행.
        PROCESSED 크레딧은 발생주의 분개를 반대로 전기.

        Returns:
            조정 크레딧

        Raises:
            CreditNotEligibleError: 진행 중인 지급/처리 대기 배치에 묶인 크레딧
        """
        if not reason or not reason.strip():
            raise LedgerValidationError("Void reason is required", credit_id=credit_id)

        async with self.db.transaction():
            credit = await self.require_credit(credit_id)
            if credit.is_adjustment:
                raise CreditNotEligibleError(
                    f"Adjustment credits cannot be voided: {credit_id}",
                    credit_id=credit_id,
                )
            payment_id = await self.repository.active_payment_for_credit(credit_id)
            if payment_id:
                raise CreditNotEligibleError(
                    f"Credit {credit_id} is held by payment {payment_id}",
                    credit_id=credit_id,
                    payment_id=payment_id,
                )
            if credit.batch_id and credit.status == CreditStatus.APPROVED.value:
                batch = await self.require_batch(credit.batch_id)
                if not CreditBatchStateMachine(batch.status).is_editable:
                    raise CreditNotEligibleError(
                        f"Credit {credit_id} is locked in batch {batch.batch_id}",
                        credit_id=credit_id,
                        batch_id=batch.batch_id,
                        batch_status=batch.status,
                    )
                await self.repository.set_credit_batch(credit_id, None)

            was_processed = credit.status == CreditStatus.PROCESSED.value
            await self._change_credit(
                credit, CreditStatus.VOIDED, principal, void_reason=reason.strip()
            )

            if was_processed and credit.dpp_portion > 0:
                reversal = self.ledger.builder.journal(
                    date.today(),
                    [
                        LedgerEntry.debit(
                            self.ledger.config.provider_payable_account,
                            credit.fund_id,
                            credit.dpp_portion,
                            memo=credit.provider_id,
                        ),
                        LedgerEntry.credit(
                            self.ledger.config.tuition_expense_account,
                            credit.fund_id,
                            credit.dpp_portion,
                            memo=credit.provider_id,
                        ),
                    ],
                    description=f"Void tuition credit {credit_id}",
                    reference=credit_id,
                    kind=TransactionKind.TUITION_ACCRUAL.value,
                )
                await self.ledger.post(reversal, principal)

            adjustment = TuitionCredit(
                credit_id=f"tc-{uuid4().hex[:12]}",
                student_id=credit.student_id,
                student_name=credit.student_name,
                provider_id=credit.provider_id,
                fund_id=credit.fund_id,
                period_start=credit.period_start,
                period_end=credit.period_end,
                credit_amount=-credit.credit_amount,
                dpp_portion=-credit.dpp_portion,
                family_portion=-credit.family_portion,
                status=CreditStatus.VOIDED.value,
                is_adjustment=True,
                original_credit_id=credit_id,
                created_by=principal.user_id,
                void_reason=reason.strip(),
            )
            await self.repository.insert_credit(adjustment)
            await self.ledger.record_event(
                EventTypes.CREDIT_VOIDED,
                EntityKind.CREDIT,
                credit_id,
                principal,
                {"adjustment_credit_id": adjustment.credit_id, "reason": reason},
            )

        logger.info(
            "크레딧 취소",
            extra={"credit_id": credit_id, "adjustment_credit_id": adjustment.credit_id},
        )
        return adjustment

    # =========================================================================
    # 배치
    # =========================================================================

    async def create_batch(
        self,
        name: str,
        period_start: date,
        period_end: date,
        principal: Principal,
        description: str | None = None,
    ) -> CreditBatch:
        if period_end < period_start:
            raise LedgerValidationError(
                "Batch period_end precedes period_start",
                period_start=period_start,
                period_end=period_end,
            )
        batch = CreditBatch(
            batch_id=f"cb-{uuid4().hex[:12]}",
            name=name,
            period_start=period_start,
            period_end=period_end,
            status=CreditBatchStatus.DRAFT.value,
            description=description,
            created_by=principal.user_id,
        )
        async with self.db.transaction():
            await self.repository.insert_batch(batch)
            await self.ledger.record_event(
                EventTypes.CREDIT_BATCH_CHANGED,
                EntityKind.CREDIT_BATCH,
                batch.batch_id,
                principal,
                {"action": "created", "name": name},
            )
        return batch

    async def add_credit(self, batch_id: str, credit_id: str, principal: Principal) -> CreditBatch:
        """배치에 크레딧 추가 (DRAFT 배치, APPROVED 크레딧만)"""
        async with self.db.transaction():
            batch = await self._editable_batch(batch_id)
            credit = await self.require_credit(credit_id)
            if credit.status != CreditStatus.APPROVED.value or credit.is_adjustment:
                raise CreditNotEligibleError(
                    f"Only approved credits can be batched: {credit_id} is {credit.status}",
                    credit_id=credit_id,
                    status=credit.status,
                )
            if credit.batch_id and credit.batch_id != batch_id:
                raise CreditNotEligibleError(
                    f"Credit {credit_id} already belongs to batch {credit.batch_id}",
                    credit_id=credit_id,
                    batch_id=credit.batch_id,
                )
            await self.repository.set_credit_batch(credit_id, batch_id)
            await self.ledger.record_event(
                EventTypes.CREDIT_BATCH_CHANGED,
                EntityKind.CREDIT_BATCH,
                batch_id,
                principal,
                {"action": "credit_added", "credit_id": credit_id},
            )
            return await self.require_batch(batch.batch_id)

    async def remove_credit(self, batch_id: str, credit_id: str, principal: Principal) -> CreditBatch:
        async with self.db.transaction():
            await self._editable_batch(batch_id)
            credit = await self.require_credit(credit_id)
            if credit.batch_id != batch_id:
                raise CreditNotEligibleError(
                    f"Credit {credit_id} is not in batch {batch_id}",
                    credit_id=credit_id,
                    batch_id=batch_id,
                )
            await self.repository.set_credit_batch(credit_id, None)
            await self.ledger.record_event(
                EventTypes.CREDIT_BATCH_CHANGED,
                EntityKind.CREDIT_BATCH,
                batch_id,
                principal,
                {"action": "credit_removed", "credit_id": credit_id},
            )
            return await self.require_batch(batch_id)

    async def _editable_batch(self, batch_id: str) -> CreditBatch:
        batch = await self.require_batch(batch_id)
        if not CreditBatchStateMachine(batch.status, batch_id).is_editable:
            raise InvalidStateTransitionError(
                f"Batch {batch_id} is not editable in status {batch.status}",
                batch_id=batch_id,
                status=batch.status,
            )
        return batch

    async def submit_batch(self, batch_id: str, principal: Principal) -> CreditBatch:
        """배치 승인 요청 (DRAFT → PENDING_APPROVAL), 빈 배치 불가"""
        async with self.db.transaction():
            batch = await self.require_batch(batch_id)
            if not batch.credit_ids:
                raise LedgerValidationError(f"Batch {batch_id} has no credits", batch_id=batch_id)
            return await self._change_batch(batch, CreditBatchStatus.PENDING_APPROVAL, principal)

    async def approve_batch(self, batch_id: str, principal: Principal) -> CreditBatch:
        """배치 승인 (PENDING_APPROVAL → APPROVED)"""
        async with self.db.transaction():
            batch = await self.require_batch(batch_id)
            self._ensure_approver(principal, batch.created_by, batch_id)
            return await self._change_batch(
                batch, CreditBatchStatus.APPROVED, principal, approved_by=principal.user_id
            )

    async def _change_batch(
        self,
        batch: CreditBatch,
        target: CreditBatchStatus,
        principal: Principal,
        **fields: Any,
    ) -> CreditBatch:
        machine = CreditBatchStateMachine(batch.status, batch.batch_id)
        machine.transition(target)
        await self.repository.update_batch(batch.batch_id, machine.state, **fields)
        await self.ledger.record_event(
            EventTypes.CREDIT_BATCH_CHANGED,
            EntityKind.CREDIT_BATCH,
            batch.batch_id,
            principal,
            {"from": batch.status, "to": machine.state},
        )
        batch.status = machine.state
        for name, value in fields.items():
            setattr(batch, name, value)
        return batch

    async def process_batch(
        self,
        batch_id: str,
        principal: Principal,
        processing_date: date | None = None,
    ) -> CreditBatch:
        """배치 처리 (APPROVED → PROCESSED)

        소속 크레딧 전체 APPROVED → PROCESSED와 발생주의 분개 전기를
        하나의 트랜잭션으로 수행. 도중 실패 시 어떤 크레딧도 변경되지 않음.
        이미 처리된 배치는 그대로 반환 (재시도 안전).

        Raises:
            InvalidStateTransitionError: APPROVED가 아닌 배치
            CreditNotEligibleError: APPROVED가 아닌 소속 크레딧
        """
        processing_date = processing_date or date.today()

        async with self.db.transaction():
            batch = await self.require_batch(batch_id)
            if batch.status == CreditBatchStatus.PROCESSED.value:
                logger.info("이미 처리된 배치", extra={"batch_id": batch_id})
                return batch

            machine = CreditBatchStateMachine(batch.status, batch_id)
            machine.transition(CreditBatchStatus.PROCESSED)

            credits = await self.repository.list_credits(batch_id=batch_id)
            if not credits:
                raise LedgerValidationError(f"Batch {batch_id} has no credits", batch_id=batch_id)
            for credit in credits:
                if credit.status != CreditStatus.APPROVED.value:
                    raise CreditNotEligibleError(
                        f"Credit {credit.credit_id} is {credit.status}, expected APPROVED",
                        credit_id=credit.credit_id,
                        batch_id=batch_id,
                        status=credit.status,
                    )

            accrual = self._accrual(credits, processing_date, f"Tuition credit batch {batch.name}")
            accrual_id = None
            if accrual is not None:
                accrual.reference = batch_id
                await self.ledger.post(accrual, principal)
                accrual_id = accrual.transaction_id

            processed_at = _now()
            for credit in credits:
                CreditStateMachine(credit.status, credit.credit_id).transition(CreditStatus.PROCESSED)
                await self.repository.update_credit_status(
                    credit.credit_id,
                    CreditStatus.PROCESSED.value,
                    accrual_transaction_id=accrual_id,
                    processed_at=processed_at,
                )

            await self.repository.update_batch(
                batch_id,
                machine.state,
                processed_by=principal.user_id,
                processed_at=processed_at,
                accrual_transaction_id=accrual_id,
            )
            await self.ledger.record_event(
                EventTypes.CREDIT_BATCH_PROCESSED,
                EntityKind.CREDIT_BATCH,
                batch_id,
                principal,
                {
                    "credit_ids": [c.credit_id for c in credits],
                    "total_amount": batch.total_amount,
                    "accrual_transaction_id": accrual_id,
                },
                dedup_key=make_status_dedup_key(
                    EntityKind.CREDIT_BATCH.value, batch_id, machine.state
                ),
            )
            batch = await self.require_batch(batch_id)

        logger.info(
            "크레딧 배치 처리",
            extra={
                "batch_id": batch_id,
                "credits": len(credits),
                "total_amount": str(batch.total_amount),
            },
        )
        return batch

    def _accrual(
        self,
        credits: list[TuitionCredit],
        txn_date: date,
        description: str,
    ) -> LedgerTransaction | None:
        """발생주의 분개 (펀드/기관별 dpp_portion 합계)

        수업료 크레딧 비용 (Debit) / 기관 미지급금 (Credit).
        dpp_portion 합계가 0이면 None.
        """
        totals: dict[tuple[str, str], Decimal] = {}
        for credit in credits:
            key = (credit.fund_id, credit.provider_id)
            totals[key] = totals.get(key, ZERO) + credit.dpp_portion

        entries = []
        for (fund_id, provider_id), amount in sorted(totals.items()):
            if amount <= 0:
                continue
            entries.append(
                LedgerEntry.debit(
                    self.ledger.config.tuition_expense_account, fund_id, amount, memo=provider_id
                )
            )
            entries.append(
                LedgerEntry.credit(
                    self.ledger.config.provider_payable_account, fund_id, amount, memo=provider_id
                )
            )
        if not entries:
            return None
        return self.ledger.builder.journal(
            txn_date,
            entries,
            description=description,
            kind=TransactionKind.TUITION_ACCRUAL.value,
        )

    # =========================================================================
    # 보고서
    # =========================================================================

    async def provider_credit_summary(
        self,
        provider_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """기관별 크레딧 요약 (상태별 건수, 금액, 미지급 dpp 합계)"""
        rows = await self.repository.credit_totals_by_provider(provider_id)

        summary: dict[str, dict[str, Any]] = {}
        for row in rows:
            item = summary.setdefault(row["provider_id"], {
                "provider_id": row["provider_id"],
                "credit_count": 0,
                "by_status": {},
                "total_credit_amount": ZERO,
                "total_dpp_portion": ZERO,
                "total_family_portion": ZERO,
                "outstanding_dpp": ZERO,
                "paid_dpp": ZERO,
            })
            status = row["status"]
            amount = to_money(row["credit_amount"])
            dpp = to_money(row["dpp_portion"])
            item["credit_count"] += 1
            item["by_status"][status] = item["by_status"].get(status, 0) + 1
            if status in (CreditStatus.REJECTED.value, CreditStatus.VOIDED.value):
                continue
            item["total_credit_amount"] += amount
            item["total_dpp_portion"] += dpp
            item["total_family_portion"] += to_money(row["family_portion"])
            if status == CreditStatus.PROCESSED.value:
                item["outstanding_dpp"] += dpp
            elif status == CreditStatus.PAID.value:
                item["paid_dpp"] += dpp

        return [summary[k] for k in sorted(summary)]
