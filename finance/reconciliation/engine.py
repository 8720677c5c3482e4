"""
은행 대사 엔진

은행 명세서 라인을 원장 거래와 매칭하고, 대응 거래가 없는 라인은 조정 분개로
처리하며, 대사 세션을 완료까지 추적.

세션 상태:
    DRAFT (명세서 로드) → IN_PROGRESS (첫 매칭/조정) → COMPLETED

부호 규칙:
    은행 라인 금액과 원장 거래의 은행 GL 계정 순변동 Σ(debit - credit)을 비교.
    입금(+)은 GL 차변, 출금(-)은 GL 대변.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable
from uuid import uuid4

from core.config.loader import ReconciliationConfig
from core.domain.errors import (
    AlreadyMatchedError,
    AmountMismatchError,
    EntityNotFoundError,
    InvalidAmountError,
    InvalidStateTransitionError,
    LedgerValidationError,
    ReconciliationInProgressError,
    UnbalancedReconciliationError,
)
from core.domain.events import EventTypes
from core.domain.state_machines import (
    MatchStateMachine,
    MatchStatus,
    ReconciliationStateMachine,
    ReconciliationStatus,
    TransactionStatus,
)
from core.ledger.entry_builder import LedgerEntry, LedgerTransaction
from core.ledger.types import AccountType, TransactionKind
from core.types import AdjustmentType, EntityKind, Principal
from core.utils.dates import add_days, parse_date
from core.utils.dedup import make_statement_line_dedup_key
from core.utils.money import ZERO, parse_money, to_money
from finance.reconciliation.repository import (
    BankAccount,
    BankTransaction,
    ReconciliationRepository,
    ReconciliationSession,
)

if TYPE_CHECKING:
    from adapters.models import StatementLine
    from core.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


def signed_amount_on(txn: LedgerTransaction, account_id: str) -> Decimal:
    """거래의 특정 계정 순변동 Σ(debit - credit)"""
    return sum(
        (e.signed_amount for e in txn.entries if e.account_id == account_id),
        ZERO,
    )


class ReconciliationEngine:
    """은행 대사 엔진

    Args:
        ledger: 원장 저장소
        config: 대사 설정 (매칭 기간, 금액 허용 오차, 후보 허용 비율)
    """

    def __init__(self, ledger: LedgerStore, config: ReconciliationConfig | None = None):
        self.ledger = ledger
        self.db = ledger.db
        self.config = config or ReconciliationConfig()
        self.repository = ReconciliationRepository(ledger.db)

    # =========================================================================
    # 은행 계좌
    # =========================================================================

    async def register_bank_account(
        self,
        name: str,
        account_id: str,
        fund_id: str,
        principal: Principal,
        bank_account_id: str | None = None,
    ) -> BankAccount:
        """은행 계좌 등록

        Raises:
            LedgerValidationError: GL 계정이 ASSET이 아님
            EntityNotFoundError: 계정/펀드 없음
        """
        async with self.db.transaction():
            account = await self.ledger.get_account(account_id)
            if account is None:
                raise EntityNotFoundError(f"Account not found: {account_id}", account_id=account_id)
            if account.account_type != AccountType.ASSET.value:
                raise LedgerValidationError(
                    f"Bank account must map to an ASSET account, got {account.account_type}",
                    account_id=account_id,
                    account_type=account.account_type,
                )
            await self.ledger.require_fund(fund_id)

            bank_account = BankAccount(
                bank_account_id=bank_account_id or f"ba-{uuid4().hex[:12]}",
                name=name,
                account_id=account_id,
                fund_id=fund_id,
            )
            await self.repository.insert_bank_account(bank_account)
            await self.ledger.record_event(
                EventTypes.BANK_ACCOUNT_REGISTERED,
                EntityKind.BANK_ACCOUNT,
                bank_account.bank_account_id,
                principal,
                {"name": name, "account_id": account_id, "fund_id": fund_id},
            )
        return bank_account

    async def get_bank_account(self, bank_account_id: str) -> BankAccount | None:
        return await self.repository.get_bank_account(bank_account_id)

    async def require_bank_account(self, bank_account_id: str) -> BankAccount:
        bank_account = await self.repository.get_bank_account(bank_account_id)
        if bank_account is None:
            raise EntityNotFoundError(
                f"Bank account not found: {bank_account_id}",
                bank_account_id=bank_account_id,
            )
        return bank_account

    # =========================================================================
    # 세션
    # =========================================================================

    async def start_session(
        self,
        bank_account_id: str,
        statement_balance: Decimal,
        start_date: date,
        end_date: date,
        principal: Principal,
    ) -> ReconciliationSession:
        """대사 세션 시작 (DRAFT)

        Raises:
            ReconciliationInProgressError: 해당 계좌에 열린 세션 존재
        """
        if end_date < start_date:
            raise LedgerValidationError(
                "Statement end date precedes start date",
                start_date=start_date,
                end_date=end_date,
            )

        async with self.db.transaction():
            bank_account = await self.require_bank_account(bank_account_id)
            if not bank_account.is_active:
                raise LedgerValidationError(
                    f"Bank account is inactive: {bank_account_id}",
                    bank_account_id=bank_account_id,
                )
            existing = await self.repository.get_open_session(bank_account_id)
            if existing is not None:
                raise ReconciliationInProgressError(
                    f"Reconciliation {existing.session_id} is already open for {bank_account_id}",
                    bank_account_id=bank_account_id,
                    session_id=existing.session_id,
                )

            session = ReconciliationSession(
                session_id=f"rec-{uuid4().hex[:12]}",
                bank_account_id=bank_account_id,
                statement_balance=to_money(statement_balance),
                start_date=start_date,
                end_date=end_date,
                status=ReconciliationStatus.DRAFT.value,
                created_by=principal.user_id,
            )
            try:
                await self.repository.insert_session(session)
            except sqlite3.IntegrityError as e:
                raise ReconciliationInProgressError(
                    f"Reconciliation is already open for {bank_account_id}",
                    bank_account_id=bank_account_id,
                ) from e

            await self.ledger.record_event(
                EventTypes.RECONCILIATION_STARTED,
                EntityKind.RECONCILIATION,
                session.session_id,
                principal,
                {
                    "bank_account_id": bank_account_id,
                    "statement_balance": session.statement_balance,
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                },
            )

        logger.info(
            "대사 세션 시작",
            extra={"session_id": session.session_id, "bank_account_id": bank_account_id},
        )
        return session

    async def get_session(self, session_id: str) -> ReconciliationSession | None:
        return await self.repository.get_session(session_id)

    async def require_session(self, session_id: str) -> ReconciliationSession:
        session = await self.repository.get_session(session_id)
        if session is None:
            raise EntityNotFoundError(f"Reconciliation not found: {session_id}", session_id=session_id)
        return session

    async def _require_open(self, session_id: str | None, bank_transaction_id: str) -> ReconciliationSession:
        if session_id is None:
            raise InvalidStateTransitionError(
                f"Bank transaction {bank_transaction_id} is not part of a reconciliation",
                bank_transaction_id=bank_transaction_id,
            )
        session = await self.require_session(session_id)
        if not ReconciliationStateMachine(session.status).is_open:
            raise InvalidStateTransitionError(
                f"Reconciliation {session_id} is {session.status}",
                session_id=session_id,
                status=session.status,
            )
        return session

    async def _activate(self, session: ReconciliationSession) -> None:
        """첫 매칭/조정 시 DRAFT → IN_PROGRESS"""
        if session.status == ReconciliationStatus.DRAFT.value:
            machine = ReconciliationStateMachine(session.status, session.session_id)
            machine.transition(ReconciliationStatus.IN_PROGRESS)
            await self.repository.update_session(session.session_id, machine.state)
            session.status = machine.state

    async def import_statement(
        self,
        session_id: str,
        lines: Iterable[StatementLine],
        principal: Principal,
    ) -> dict[str, int]:
        """명세서 라인 가져오기

        같은 라인을 다시 가져오면 건너뜀. 같은 날 동일 금액·적요 라인은
        등장 순서로 구분하여 각각 생성.

        Returns:
            {"created": 생성 건수, "skipped": 중복 건수}
        """
        async with self.db.transaction():
            session = await self.require_session(session_id)
            if not ReconciliationStateMachine(session.status).is_open:
                raise InvalidStateTransitionError(
                    f"Reconciliation {session_id} is {session.status}",
                    session_id=session_id,
                    status=session.status,
                )

            occurrences: dict[tuple[Any, ...], int] = defaultdict(int)
            created = 0
            skipped = 0
            for line in lines:
                if not session.start_date <= line.txn_date <= session.end_date:
                    raise LedgerValidationError(
                        f"Statement line dated {line.txn_date} is outside the statement period",
                        session_id=session_id,
                        txn_date=line.txn_date,
                        start_date=session.start_date,
                        end_date=session.end_date,
                    )
                identity = (line.txn_date, line.amount, line.description, line.reference)
                occurrence = occurrences[identity]
                occurrences[identity] += 1

                dedup_key = make_statement_line_dedup_key(
                    session.bank_account_id,
                    line.txn_date,
                    line.amount,
                    line.description,
                    line.reference,
                    occurrence,
                )
                txn = BankTransaction(
                    bank_transaction_id=f"bt-{uuid4().hex[:12]}",
                    bank_account_id=session.bank_account_id,
                    session_id=session_id,
                    txn_date=line.txn_date,
                    description=line.description,
                    reference=line.reference,
                    amount=line.amount,
                    dedup_key=dedup_key,
                )
                if await self.repository.insert_bank_transaction(txn):
                    created += 1
                elif await self.repository.attach_to_session(dedup_key, session_id):
                    created += 1
                else:
                    skipped += 1

            await self.ledger.record_event(
                EventTypes.STATEMENT_IMPORTED,
                EntityKind.RECONCILIATION,
                session_id,
                principal,
                {"created": created, "skipped": skipped},
            )

        logger.info(
            "명세서 가져오기 완료",
            extra={"session_id": session_id, "created": created, "skipped": skipped},
        )
        return {"created": created, "skipped": skipped}

    async def list_bank_transactions(
        self,
        session_id: str,
        match_status: str | None = None,
    ) -> list[BankTransaction]:
        return await self.repository.list_bank_transactions(session_id, match_status)

    async def require_bank_transaction(self, bank_transaction_id: str) -> BankTransaction:
        txn = await self.repository.get_bank_transaction(bank_transaction_id)
        if txn is None:
            raise EntityNotFoundError(
                f"Bank transaction not found: {bank_transaction_id}",
                bank_transaction_id=bank_transaction_id,
            )
        return txn

    # =========================================================================
    # 매칭
    # =========================================================================

    async def find_match_candidates(self, bank_transaction_id: str) -> list[dict[str, Any]]:
        """매칭 후보 원장 거래 (조회 전용)

        은행 GL 계정에 닿는 전기 거래 중
        - 순변동 부호가 은행 금액과 같고
        - 거래일이 ±match_window_days 이내이며
        - 금액 차이가 candidate_tolerance_ratio 이내이고
        - 아직 매칭되지 않은 것.
        금액 차이, 날짜 차이 순으로 정렬.
        """
        bank_txn = await self.require_bank_transaction(bank_transaction_id)
        bank_account = await self.require_bank_account(bank_txn.bank_account_id)
        window = self.config.match_window_days
        rows = await self.repository.ledger_lines_for_account(
            bank_account.account_id,
            add_days(bank_txn.txn_date, -window),
            add_days(bank_txn.txn_date, window),
        )

        grouped: dict[str, dict[str, Any]] = {}
        for row in rows:
            entry = grouped.setdefault(
                row["transaction_id"],
                {
                    "transaction_id": row["transaction_id"],
                    "txn_date": parse_date(row["txn_date"]),
                    "kind": row["kind"],
                    "description": row["description"],
                    "amount": ZERO,
                },
            )
            entry["amount"] += parse_money(row["debit_amount"]) - parse_money(row["credit_amount"])

        tolerance = abs(bank_txn.amount) * self.config.candidate_tolerance_ratio
        candidates = []
        for entry in grouped.values():
            amount = entry["amount"]
            if amount == 0 or (amount > 0) != (bank_txn.amount > 0):
                continue
            difference = abs(amount - bank_txn.amount)
            if difference > tolerance:
                continue
            entry["difference"] = difference
            entry["days_apart"] = abs((entry["txn_date"] - bank_txn.txn_date).days)
            candidates.append(entry)

        candidates.sort(key=lambda c: (c["difference"], c["days_apart"], c["transaction_id"]))
        return candidates

    async def match(
        self,
        bank_transaction_id: str,
        transaction_id: str,
        principal: Principal,
    ) -> BankTransaction:
        """은행 거래와 원장 거래 매칭

        Raises:
            AmountMismatchError: 금액 차이가 허용 오차 초과
            AlreadyMatchedError: 은행 거래 또는 원장 거래가 이미 매칭됨
        """
        async with self.db.transaction():
            bank_txn = await self.require_bank_transaction(bank_transaction_id)
            session = await self._require_open(bank_txn.session_id, bank_transaction_id)
            if bank_txn.match_status != MatchStatus.UNMATCHED.value:
                raise AlreadyMatchedError(
                    f"Bank transaction {bank_transaction_id} is already {bank_txn.match_status}",
                    bank_transaction_id=bank_transaction_id,
                    matched_transaction_id=bank_txn.matched_transaction_id,
                )

            txn = await self.ledger.get_transaction(transaction_id)
            if txn is None:
                raise EntityNotFoundError(
                    f"Transaction not found: {transaction_id}",
                    transaction_id=transaction_id,
                )
            if (
                not self.ledger.is_posted(txn.status)
                or txn.status == TransactionStatus.VOIDED.value
                or txn.kind == TransactionKind.REVERSAL.value
            ):
                raise LedgerValidationError(
                    f"Transaction {transaction_id} cannot be matched in status {txn.status}",
                    transaction_id=transaction_id,
                    status=txn.status,
                    kind=txn.kind,
                )

            holder = await self.repository.find_by_matched_transaction(transaction_id)
            if holder is not None:
                raise AlreadyMatchedError(
                    f"Transaction {transaction_id} is matched to {holder.bank_transaction_id}",
                    transaction_id=transaction_id,
                    bank_transaction_id=holder.bank_transaction_id,
                )

            bank_account = await self.require_bank_account(bank_txn.bank_account_id)
            ledger_amount = signed_amount_on(txn, bank_account.account_id)
            difference = bank_txn.amount - ledger_amount
            if abs(difference) > self.config.amount_epsilon:
                raise AmountMismatchError(
                    f"Bank amount {bank_txn.amount} does not match ledger amount {ledger_amount}",
                    bank_transaction_id=bank_transaction_id,
                    transaction_id=transaction_id,
                    bank_amount=bank_txn.amount,
                    ledger_amount=ledger_amount,
                    difference=difference,
                )

            machine = MatchStateMachine(bank_txn.match_status, bank_transaction_id)
            machine.transition(MatchStatus.MATCHED)
            try:
                await self.repository.set_match(bank_transaction_id, machine.state, transaction_id)
            except sqlite3.IntegrityError as e:
                raise AlreadyMatchedError(
                    f"Transaction {transaction_id} is already matched",
                    transaction_id=transaction_id,
                ) from e
            await self._activate(session)
            await self.ledger.record_event(
                EventTypes.BANK_TRANSACTION_MATCHED,
                EntityKind.BANK_TRANSACTION,
                bank_transaction_id,
                principal,
                {"transaction_id": transaction_id, "amount": bank_txn.amount},
            )
            bank_txn.match_status = machine.state
            bank_txn.matched_transaction_id = transaction_id

        logger.info(
            "은행 거래 매칭",
            extra={"bank_transaction_id": bank_transaction_id, "transaction_id": transaction_id},
        )
        return bank_txn

    async def create_adjustment(
        self,
        bank_transaction_id: str,
        account_id: str,
        adjustment_type: AdjustmentType | str,
        amount: Decimal,
        principal: Principal,
        description: str | None = None,
    ) -> LedgerTransaction:
        """조정 분개 생성 후 매칭

        EXPENSE: 비용 계정 (Debit) / 은행 GL (Credit)
        REVENUE: 은행 GL (Debit) / 수익 계정 (Credit)

        Raises:
            AmountMismatchError: 조정 분개의 은행 GL 영향이 은행 금액과 다름
        """
        adjustment_type = AdjustmentType(adjustment_type)
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(
                "Adjustment amount must be positive",
                bank_transaction_id=bank_transaction_id,
                amount=amount,
            )

        async with self.db.transaction():
            bank_txn = await self.require_bank_transaction(bank_transaction_id)
            await self._require_open(bank_txn.session_id, bank_transaction_id)
            if bank_txn.match_status != MatchStatus.UNMATCHED.value:
                raise AlreadyMatchedError(
                    f"Bank transaction {bank_transaction_id} is already {bank_txn.match_status}",
                    bank_transaction_id=bank_transaction_id,
                )
            bank_account = await self.require_bank_account(bank_txn.bank_account_id)

            account = await self.ledger.get_account(account_id)
            if account is None:
                raise EntityNotFoundError(f"Account not found: {account_id}", account_id=account_id)
            if account.account_type != adjustment_type.value:
                raise LedgerValidationError(
                    f"{adjustment_type.value} adjustment requires an {adjustment_type.value} account",
                    account_id=account_id,
                    account_type=account.account_type,
                )

            effect = -amount if adjustment_type == AdjustmentType.EXPENSE else amount
            if abs(effect - bank_txn.amount) > self.config.amount_epsilon:
                raise AmountMismatchError(
                    f"Adjustment effect {effect} does not match bank amount {bank_txn.amount}",
                    bank_transaction_id=bank_transaction_id,
                    bank_amount=bank_txn.amount,
                    ledger_amount=effect,
                    difference=bank_txn.amount - effect,
                )

            fund_id = bank_account.fund_id
            memo = bank_txn.reference
            if adjustment_type == AdjustmentType.EXPENSE:
                entries = [
                    LedgerEntry.debit(account_id, fund_id, amount, memo=memo),
                    LedgerEntry.credit(bank_account.account_id, fund_id, amount, memo=memo),
                ]
            else:
                entries = [
                    LedgerEntry.debit(bank_account.account_id, fund_id, amount, memo=memo),
                    LedgerEntry.credit(account_id, fund_id, amount, memo=memo),
                ]
            txn = self.ledger.builder.journal(
                bank_txn.txn_date,
                entries,
                description=description or bank_txn.description,
                reference=bank_transaction_id,
                kind=TransactionKind.BANK_ADJUSTMENT.value,
            )
            await self.ledger.post(txn, principal)
            await self.match(bank_transaction_id, txn.transaction_id, principal)

        logger.info(
            "대사 조정 분개 생성",
            extra={
                "bank_transaction_id": bank_transaction_id,
                "transaction_id": txn.transaction_id,
                "type": adjustment_type.value,
                "amount": str(amount),
            },
        )
        return txn

    async def mark_reconciled(
        self,
        bank_transaction_id: str,
        principal: Principal,
        notes: str | None = None,
    ) -> BankTransaction:
        """원장 대응 없이 확인 완료 처리 (UNMATCHED → RECONCILED)"""
        async with self.db.transaction():
            bank_txn = await self.require_bank_transaction(bank_transaction_id)
            session = await self._require_open(bank_txn.session_id, bank_transaction_id)
            machine = MatchStateMachine(bank_txn.match_status, bank_transaction_id)
            machine.transition(MatchStatus.RECONCILED)
            await self.repository.set_match(bank_transaction_id, machine.state, None, notes)
            await self._activate(session)
            await self.ledger.record_event(
                EventTypes.BANK_TRANSACTION_RECONCILED,
                EntityKind.BANK_TRANSACTION,
                bank_transaction_id,
                principal,
                {"notes": notes},
            )
            bank_txn.match_status = machine.state
            if notes:
                bank_txn.notes = notes
        return bank_txn

    async def unmatch(self, bank_transaction_id: str, principal: Principal) -> BankTransaction:
        """매칭/확인 해제 (→ UNMATCHED)

        조정 분개는 원장에 남음. 필요하면 별도로 취소.
        """
        async with self.db.transaction():
            bank_txn = await self.require_bank_transaction(bank_transaction_id)
            await self._require_open(bank_txn.session_id, bank_transaction_id)
            machine = MatchStateMachine(bank_txn.match_status, bank_transaction_id)
            machine.transition(MatchStatus.UNMATCHED)
            previous = bank_txn.matched_transaction_id
            await self.repository.set_match(bank_transaction_id, machine.state, None)
            await self.ledger.record_event(
                EventTypes.BANK_TRANSACTION_UNMATCHED,
                EntityKind.BANK_TRANSACTION,
                bank_transaction_id,
                principal,
                {"transaction_id": previous},
            )
            bank_txn.match_status = machine.state
            bank_txn.matched_transaction_id = None
        return bank_txn

    # =========================================================================
    # 완료
    # =========================================================================

    async def book_balance(self, session: ReconciliationSession) -> Decimal:
        """명세서 종료일 기준 은행 GL 계정 장부 잔액"""
        bank_account = await self.require_bank_account(session.bank_account_id)
        return await self.ledger.account_net_amount(bank_account.account_id, session.end_date)

    async def complete(self, session_id: str, principal: Principal) -> ReconciliationSession:
        """대사 완료

        모든 라인이 MATCHED/RECONCILED이고 장부 잔액이 명세서 잔액과
        허용 오차 이내로 일치해야 함. 이미 완료된 세션은 그대로 반환.

        Raises:
            UnbalancedReconciliationError: 미매칭 라인 존재 또는 잔액 불일치
        """
        async with self.db.transaction():
            session = await self.require_session(session_id)
            if session.status == ReconciliationStatus.COMPLETED.value:
                return session

            machine = ReconciliationStateMachine(session.status, session_id)
            if machine.state == ReconciliationStatus.DRAFT.value:
                machine.transition(ReconciliationStatus.IN_PROGRESS)
            machine.transition(ReconciliationStatus.COMPLETED)

            lines = await self.repository.list_bank_transactions(session_id)
            unmatched_ids = [
                line.bank_transaction_id
                for line in lines
                if line.match_status == MatchStatus.UNMATCHED.value
            ]
            book_balance = await self.book_balance(session)
            difference = session.statement_balance - book_balance
            if unmatched_ids or abs(difference) > self.config.amount_epsilon:
                raise UnbalancedReconciliationError(
                    f"Reconciliation {session_id} does not balance",
                    session_id=session_id,
                    book_balance=book_balance,
                    statement_balance=session.statement_balance,
                    difference=difference,
                    unmatched_ids=unmatched_ids,
                )

            await self.repository.update_session(
                session_id,
                machine.state,
                book_balance=book_balance,
                completed_by=principal.user_id,
            )
            await self.ledger.record_event(
                EventTypes.RECONCILIATION_COMPLETED,
                EntityKind.RECONCILIATION,
                session_id,
                principal,
                {"book_balance": book_balance, "statement_balance": session.statement_balance},
            )
            session = await self.require_session(session_id)

        logger.info(
            "대사 완료",
            extra={"session_id": session_id, "book_balance": str(book_balance)},
        )
        return session

    async def abandon_session(self, session_id: str, principal: Principal) -> ReconciliationSession:
        """대사 세션 포기

        미매칭 라인은 세션에서 분리되어 다음 세션에서 다시 가져올 수 있음.
        """
        async with self.db.transaction():
            session = await self.require_session(session_id)
            machine = ReconciliationStateMachine(session.status, session_id)
            machine.transition(ReconciliationStatus.ABANDONED)
            await self.repository.update_session(session_id, machine.state)
            detached = await self.repository.detach_session(session_id)
            await self.ledger.record_event(
                EventTypes.RECONCILIATION_ABANDONED,
                EntityKind.RECONCILIATION,
                session_id,
                principal,
                {"detached": detached},
            )
            session.status = machine.state

        logger.info(
            "대사 세션 포기",
            extra={"session_id": session_id, "detached": detached},
        )
        return session

    async def session_summary(self, session_id: str) -> dict[str, Any]:
        """세션 현황 (라인 수, 금액 합계, 장부/명세서 잔액 차이)"""
        session = await self.require_session(session_id)
        lines = await self.repository.list_bank_transactions(session_id)
        counts = {status.value: 0 for status in MatchStatus}
        totals = {status.value: ZERO for status in MatchStatus}
        for line in lines:
            counts[line.match_status] += 1
            totals[line.match_status] += line.amount

        book_balance = session.book_balance
        if book_balance is None:
            book_balance = await self.book_balance(session)
        return {
            "session_id": session_id,
            "bank_account_id": session.bank_account_id,
            "status": session.status,
            "start_date": session.start_date,
            "end_date": session.end_date,
            "statement_balance": session.statement_balance,
            "book_balance": book_balance,
            "difference": session.statement_balance - book_balance,
            "counts": counts,
            "totals": totals,
            "unmatched_ids": [
                line.bank_transaction_id
                for line in lines
                if line.match_status == MatchStatus.UNMATCHED.value
            ],
        }
