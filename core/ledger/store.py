"""
Ledger 저장소

계정과목, 펀드, 원장 거래의 저장 및 조회.
전기된 거래는 append-only: 취소는 역분개로만 표현.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable
from uuid import uuid4

from core.config.loader import LedgerConfig
from core.domain.errors import (
    ApprovalGuardError,
    EntityNotFoundError,
    InactiveAccountError,
    InactiveFundError,
    InvalidAmountError,
    InvalidEntryError,
    InvalidStateTransitionError,
    LedgerValidationError,
    OutstandingPaymentsError,
    OverpaymentError,
    UnbalancedEntriesError,
)
from core.domain.events import Event, EventTypes
from core.domain.state_machines import (
    POSTED_STATUSES,
    TransactionStateMachine,
    TransactionStatus,
)
from core.ledger.accounts import Account, DocumentPayment, Fund
from core.ledger.entry_builder import JournalEntryBuilder, LedgerEntry, LedgerTransaction
from core.ledger.types import (
    DEBIT_NORMAL_TYPES,
    DOCUMENT_KINDS,
    OWNED_KINDS,
    AccountType,
    FundType,
    TransactionKind,
)
from core.storage.event_store import EventStore
from core.types import EntityKind, Principal
from core.utils.dates import parse_date
from core.utils.money import ZERO, format_money, parse_money, to_money

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def net_assets(rows: Iterable[tuple[str, str, str]]) -> tuple[Decimal, Decimal]:
    """(account_type, debit, credit) 행에서 (자산, 부채) 합계 계산

    자산 = Σ(debit - credit), 부채 = Σ(credit - debit).
    펀드 잔액(순자산) = 자산 - 부채.
    """
    assets = ZERO
    liabilities = ZERO
    for account_type, debit, credit in rows:
        if account_type == AccountType.ASSET.value:
            assets += parse_money(debit) - parse_money(credit)
        elif account_type == AccountType.LIABILITY.value:
            liabilities += parse_money(credit) - parse_money(debit)
    return assets, liabilities


class LedgerStore:
    """Ledger 저장소

    계정/펀드/원장 거래를 저장하고 조회하는 클래스.
    모든 변경은 db.transaction() 안에서 수행되며 감사 이벤트를 함께 기록.
    다른 모듈이 이미 연 트랜잭션 안에서 호출되면 그 트랜잭션에 합류.

    Args:
        db: SQLite 어댑터 (쓰기)
        config: 원장 설정 (통제 계정, 균형 허용 오차)
        reader: 읽기 전용 어댑터 (None이면 db 사용)
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        config: LedgerConfig | None = None,
        reader: SQLiteAdapter | None = None,
    ):
        self.db = db
        self.config = config or LedgerConfig()
        self.reader = reader
        self.events = EventStore(db)
        self.builder = JournalEntryBuilder(self.config)

    def _read_db(self) -> SQLiteAdapter:
        """조회용 연결 (쓰기 트랜잭션 안에서는 쓰기 연결)"""
        if self.reader is None or self.db.in_transaction:
            return self.db
        return self.reader

    async def record_event(
        self,
        event_type: str,
        entity_kind: EntityKind,
        entity_id: str,
        principal: Principal,
        payload: dict[str, Any],
        dedup_key: str | None = None,
    ) -> bool:
        event = Event.create(
            event_type=event_type,
            entity_kind=entity_kind.value,
            entity_id=entity_id,
            actor_id=principal.user_id,
            payload=payload,
            dedup_key=dedup_key,
        )
        return await self.events.append(event)

    async def get_version(self) -> int:
        """원장 버전 (마지막 이벤트 seq). 보고서 캐시 키로 사용"""
        return await self.events.get_last_seq()

    # =========================================================================
    # 계정과목
    # =========================================================================

    async def create_account(
        self,
        account_number: str,
        name: str,
        account_type: AccountType | str,
        principal: Principal,
        account_id: str | None = None,
        description: str | None = None,
    ) -> Account:
        """계정 생성

        Raises:
            LedgerValidationError: 유효하지 않은 유형, 중복 번호/ID
        """
        try:
            account_type = AccountType(account_type).value
        except ValueError as e:
            raise LedgerValidationError(
                f"Invalid account type: {account_type}",
                account_type=account_type,
            ) from e

        account = Account(
            account_id=account_id or f"{account_type}:{account_number}",
            account_number=account_number,
            account_type=account_type,
            name=name,
            description=description,
        )

        async with self.db.transaction():
            try:
                await self.db.execute(
                    """
                    INSERT INTO account (account_id, account_number, account_type, name, description)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        account.account_id,
                        account.account_number,
                        account.account_type,
                        account.name,
                        account.description,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise LedgerValidationError(
                    f"Account already exists: {account.account_id} / {account_number}",
                    account_id=account.account_id,
                    account_number=account_number,
                ) from e
            await self.record_event(
                EventTypes.ACCOUNT_CREATED,
                EntityKind.ACCOUNT,
                account.account_id,
                principal,
                {"account_number": account_number, "account_type": account_type, "name": name},
            )

        logger.info(
            "계정 생성",
            extra={"account_id": account.account_id, "account_type": account_type},
        )
        return account

    async def get_account(self, account_id: str) -> Account | None:
        row = await self._read_db().fetch_dict(
            "SELECT * FROM account WHERE account_id = ?", (account_id,)
        )
        return Account.from_row(row) if row else None

    async def list_accounts(
        self,
        account_type: str | None = None,
        active_only: bool = False,
    ) -> list[Account]:
        """계정 목록 (계정 번호 순)"""
        sql = "SELECT * FROM account WHERE 1=1"
        params: list[Any] = []
        if account_type:
            sql += " AND account_type = ?"
            params.append(account_type)
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY account_number"
        rows = await self._read_db().fetch_dicts(sql, tuple(params))
        return [Account.from_row(r) for r in rows]

    async def rename_account(self, account_id: str, name: str, principal: Principal) -> Account:
        """계정명 변경 (번호/유형은 불변)"""
        return await self._update_account(account_id, principal, name=name)

    async def set_account_active(
        self, account_id: str, is_active: bool, principal: Principal
    ) -> Account:
        """계정 활성/비활성 (비활성 계정에는 신규 전기 불가)"""
        return await self._update_account(account_id, principal, is_active=is_active)

    async def _update_account(
        self,
        account_id: str,
        principal: Principal,
        name: str | None = None,
        is_active: bool | None = None,
    ) -> Account:
        async with self.db.transaction():
            account = await self.get_account(account_id)
            if account is None:
                raise EntityNotFoundError(f"Account not found: {account_id}", account_id=account_id)
            if name is not None:
                account.name = name
            if is_active is not None:
                account.is_active = is_active
            await self.db.execute(
                "UPDATE account SET name = ?, is_active = ? WHERE account_id = ?",
                (account.name, int(account.is_active), account_id),
            )
            await self.record_event(
                EventTypes.ACCOUNT_UPDATED,
                EntityKind.ACCOUNT,
                account_id,
                principal,
                {"name": account.name, "is_active": account.is_active},
            )
        return account

    # =========================================================================
    # 펀드
    # =========================================================================

    async def create_fund(
        self,
        name: str,
        fund_type: FundType | str,
        principal: Principal,
        fund_id: str | None = None,
        restriction_details: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Fund:
        """펀드 생성

        Raises:
            LedgerValidationError: 유효하지 않은 유형/기간, 중복 이름
        """
        try:
            fund_type = FundType(fund_type).value
        except ValueError as e:
            raise LedgerValidationError(f"Invalid fund type: {fund_type}", fund_type=fund_type) from e
        if start_date and end_date and end_date < start_date:
            raise LedgerValidationError(
                "Fund end_date precedes start_date",
                start_date=start_date,
                end_date=end_date,
            )

        fund = Fund(
            fund_id=fund_id or f"fund-{uuid4().hex[:12]}",
            name=name,
            fund_type=fund_type,
            restriction_details=restriction_details,
            start_date=start_date,
            end_date=end_date,
        )

        async with self.db.transaction():
            try:
                await self.db.execute(
                    """
                    INSERT INTO fund (
                        fund_id, name, fund_type, restriction_details, start_date, end_date
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        fund.fund_id,
                        fund.name,
                        fund.fund_type,
                        fund.restriction_details,
                        start_date.isoformat() if start_date else None,
                        end_date.isoformat() if end_date else None,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise LedgerValidationError(
                    f"Fund already exists: {name}", fund_id=fund.fund_id, name=name
                ) from e
            await self.record_event(
                EventTypes.FUND_CREATED,
                EntityKind.FUND,
                fund.fund_id,
                principal,
                {"name": name, "fund_type": fund_type},
            )

        logger.info("펀드 생성", extra={"fund_id": fund.fund_id, "fund_type": fund_type})
        return fund

    async def get_fund(self, fund_id: str) -> Fund | None:
        row = await self._read_db().fetch_dict("SELECT * FROM fund WHERE fund_id = ?", (fund_id,))
        return Fund.from_row(row) if row else None

    async def require_fund(self, fund_id: str) -> Fund:
        fund = await self.get_fund(fund_id)
        if fund is None:
            raise EntityNotFoundError(f"Fund not found: {fund_id}", fund_id=fund_id)
        return fund

    async def list_funds(self, active_only: bool = False) -> list[Fund]:
        sql = "SELECT * FROM fund"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY name"
        rows = await self._read_db().fetch_dicts(sql)
        return [Fund.from_row(r) for r in rows]

    async def set_fund_active(self, fund_id: str, is_active: bool, principal: Principal) -> Fund:
        async with self.db.transaction():
            fund = await self.require_fund(fund_id)
            fund.is_active = is_active
            await self.db.execute(
                "UPDATE fund SET is_active = ? WHERE fund_id = ?",
                (int(is_active), fund_id),
            )
            await self.record_event(
                EventTypes.FUND_UPDATED,
                EntityKind.FUND,
                fund_id,
                principal,
                {"is_active": is_active},
            )
        return fund

    # =========================================================================
    # 원장 거래: 초안/승인
    # =========================================================================

    async def save_draft(self, txn: LedgerTransaction, principal: Principal) -> LedgerTransaction:
        """초안 저장 (DRAFT 상태에서만 덮어쓰기 가능, 균형 검증 안 함)"""
        async with self.db.transaction():
            existing = await self._load(txn.transaction_id)
            if existing is not None:
                if not TransactionStateMachine(existing.status).is_editable:
                    raise InvalidStateTransitionError(
                        f"Only DRAFT transactions can be edited: {txn.transaction_id}",
                        transaction_id=txn.transaction_id,
                        status=existing.status,
                    )
                await self.db.execute(
                    "DELETE FROM ledger_entry WHERE transaction_id = ?",
                    (txn.transaction_id,),
                )
                await self.db.execute(
                    "DELETE FROM ledger_transaction WHERE transaction_id = ?",
                    (txn.transaction_id,),
                )
            txn.status = TransactionStatus.DRAFT.value
            txn.created_by = txn.created_by or principal.user_id
            await self._insert(txn)
            await self.record_event(
                EventTypes.TRANSACTION_DRAFTED,
                EntityKind.TRANSACTION,
                txn.transaction_id,
                principal,
                {"kind": txn.kind, "total_debit": txn.total_debit},
            )
        return txn

    async def submit(self, transaction_id: str, principal: Principal) -> LedgerTransaction:
        """승인 요청 (DRAFT → PENDING_APPROVAL)"""
        return await self._change_status(
            transaction_id,
            TransactionStatus.PENDING_APPROVAL,
            principal,
            EventTypes.TRANSACTION_SUBMITTED,
        )

    async def approve(self, transaction_id: str, principal: Principal) -> LedgerTransaction:
        """승인 (PENDING_APPROVAL → APPROVED), 작성자 본인 승인 불가"""
        async with self.db.transaction():
            txn = await self._require(transaction_id)
            if txn.created_by and txn.created_by == principal.user_id:
                raise ApprovalGuardError(
                    "Creator cannot approve own transaction",
                    transaction_id=transaction_id,
                    user_id=principal.user_id,
                )
            txn = await self._change_status(
                transaction_id,
                TransactionStatus.APPROVED,
                principal,
                EventTypes.TRANSACTION_APPROVED,
            )
            await self.db.execute(
                "UPDATE ledger_transaction SET approved_by = ? WHERE transaction_id = ?",
                (principal.user_id, transaction_id),
            )
            txn.approved_by = principal.user_id
        return txn

    async def _change_status(
        self,
        transaction_id: str,
        target: TransactionStatus,
        principal: Principal,
        event_type: str,
    ) -> LedgerTransaction:
        async with self.db.transaction():
            txn = await self._require(transaction_id)
            machine = TransactionStateMachine(txn.status, transaction_id)
            machine.transition(target)
            await self.db.execute(
                "UPDATE ledger_transaction SET status = ?, updated_at = ? WHERE transaction_id = ?",
                (machine.state, _now(), transaction_id),
            )
            await self.record_event(
                event_type,
                EntityKind.TRANSACTION,
                transaction_id,
                principal,
                {"from": txn.status, "to": machine.state},
            )
            txn.status = machine.state
        return txn

    # =========================================================================
    # 원장 거래: 전기/지급/취소
    # =========================================================================

    async def post(
        self,
        txn: LedgerTransaction | str,
        principal: Principal,
    ) -> LedgerTransaction:
        """거래 전기 (→ POSTED)

        신규 거래 객체 또는 저장된 DRAFT/APPROVED 거래 ID를 받음.
        저장된 거래는 저장 내용 그대로 전기 (승인 후 변경 방지).

        Raises:
            InvalidEntryError: 라인 오류
            UnbalancedEntriesError: 차변 ≠ 대변
            InactiveAccountError / InactiveFundError: 비활성 계정/펀드
            InvalidStateTransitionError: 전기할 수 없는 상태
        """
        transaction_id = txn if isinstance(txn, str) else txn.transaction_id

        async with self.db.transaction():
            existing = await self._load(transaction_id)
            if existing is not None:
                txn = existing
            elif isinstance(txn, str):
                raise EntityNotFoundError(
                    f"Transaction not found: {transaction_id}",
                    transaction_id=transaction_id,
                )

            machine = TransactionStateMachine(txn.status, transaction_id)
            machine.transition(TransactionStatus.POSTED)

            await self._validate_for_posting(txn)

            txn.created_by = txn.created_by or principal.user_id
            txn.status = machine.state
            if existing is not None:
                await self.db.execute(
                    """
                    UPDATE ledger_transaction
                    SET status = ?, posted_at = ?, updated_at = ?
                    WHERE transaction_id = ?
                    """,
                    (txn.status, _now(), _now(), transaction_id),
                )
            else:
                await self._insert(txn, posted=True)

            await self.record_event(
                EventTypes.TRANSACTION_POSTED,
                EntityKind.TRANSACTION,
                transaction_id,
                principal,
                {
                    "kind": txn.kind,
                    "txn_date": txn.txn_date,
                    "amount": txn.total_debit,
                    "fund_ids": txn.fund_ids,
                },
            )

        logger.info(
            "거래 전기",
            extra={
                "transaction_id": transaction_id,
                "kind": txn.kind,
                "amount": str(txn.total_debit),
            },
        )
        return txn

    async def _validate_for_posting(self, txn: LedgerTransaction) -> None:
        """전기 전 검증 (검증 오류 → 상태 가드 순)"""
        if not txn.entries:
            raise InvalidEntryError(
                "Transaction has no entries",
                transaction_id=txn.transaction_id,
            )
        for entry in txn.entries:
            entry.validate()

        if not txn.is_balanced(self.config.balance_epsilon):
            raise UnbalancedEntriesError(
                f"Unbalanced transaction {txn.transaction_id}: "
                f"debit {txn.total_debit} != credit {txn.total_credit}",
                transaction_id=txn.transaction_id,
                total_debit=txn.total_debit,
                total_credit=txn.total_credit,
                difference=txn.total_debit - txn.total_credit,
            )

        for account_id in txn.account_ids:
            account = await self.get_account(account_id)
            if account is None:
                raise EntityNotFoundError(
                    f"Account not found: {account_id}",
                    transaction_id=txn.transaction_id,
                    account_id=account_id,
                )
            if not account.is_active:
                raise InactiveAccountError(
                    f"Account is inactive: {account_id}",
                    transaction_id=txn.transaction_id,
                    account_id=account_id,
                )

        for fund_id in txn.fund_ids:
            fund = await self.get_fund(fund_id)
            if fund is None:
                raise EntityNotFoundError(
                    f"Fund not found: {fund_id}",
                    transaction_id=txn.transaction_id,
                    fund_id=fund_id,
                )
            if not fund.accepts(txn.txn_date):
                raise InactiveFundError(
                    f"Fund {fund_id} does not accept postings on {txn.txn_date}",
                    transaction_id=txn.transaction_id,
                    fund_id=fund_id,
                    txn_date=txn.txn_date,
                    is_active=fund.is_active,
                )

    async def apply_payment(
        self,
        transaction_id: str,
        amount: Decimal,
        payment_date: date,
        principal: Principal,
        cash_account_id: str | None = None,
    ) -> DocumentPayment:
        """청구서/송장 지급 반영

        지급 거래(PAYMENT)를 전기하고 문서 상태를 PARTIALLY_PAID/PAID로 갱신.

        Raises:
            InvalidAmountError: 0 이하 금액
            OverpaymentError: 미지급 잔액 초과
            InvalidStateTransitionError: 지급 불가 문서/상태
        """
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(
                "Payment amount must be positive",
                transaction_id=transaction_id,
                amount=amount,
            )

        async with self.db.transaction():
            document = await self._require(transaction_id)
            if document.kind not in DOCUMENT_KINDS:
                raise InvalidStateTransitionError(
                    f"Only bills and invoices accept payments: {transaction_id}",
                    transaction_id=transaction_id,
                    kind=document.kind,
                )
            if document.status not in (
                TransactionStatus.POSTED.value,
                TransactionStatus.PARTIALLY_PAID.value,
            ):
                raise InvalidStateTransitionError(
                    f"Document {transaction_id} in status {document.status} cannot accept payments",
                    transaction_id=transaction_id,
                    status=document.status,
                )
            if amount > document.outstanding:
                raise OverpaymentError(
                    f"Payment {amount} exceeds outstanding {document.outstanding}",
                    transaction_id=transaction_id,
                    amount=amount,
                    outstanding=document.outstanding,
                    amount_due=document.amount_due,
                    amount_paid=document.amount_paid,
                )

            payment_txn = self.builder.payment_for(document, amount, payment_date, cash_account_id)
            await self.post(payment_txn, principal)

            payment = DocumentPayment(
                payment_id=f"pay-{uuid4().hex[:16]}",
                document_id=transaction_id,
                payment_transaction_id=payment_txn.transaction_id,
                amount=amount,
                payment_date=payment_date,
                created_by=principal.user_id,
            )
            await self.db.execute(
                """
                INSERT INTO document_payment (
                    payment_id, document_id, payment_transaction_id,
                    amount, payment_date, created_by
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    payment.payment_id,
                    payment.document_id,
                    payment.payment_transaction_id,
                    format_money(amount),
                    payment_date.isoformat(),
                    principal.user_id,
                ),
            )
            await self._refresh_document_status(transaction_id)
            await self.record_event(
                EventTypes.PAYMENT_APPLIED,
                EntityKind.TRANSACTION,
                transaction_id,
                principal,
                {
                    "payment_id": payment.payment_id,
                    "payment_transaction_id": payment_txn.transaction_id,
                    "amount": amount,
                },
            )

        logger.info(
            "지급 반영",
            extra={"transaction_id": transaction_id, "amount": str(amount)},
        )
        return payment

    async def void(
        self,
        transaction_id: str,
        principal: Principal,
        reason: str | None = None,
        void_date: date | None = None,
        owner: EntityKind | None = None,
    ) -> LedgerTransaction:
        """거래 취소 (역분개 전기 + 원거래 VOIDED)

        원거래의 분개는 그대로 두고 모든 라인을 반전한 역분개를 추가.
        지급 거래(PAYMENT)를 취소하면 원 문서의 지급액과 상태를 재계산.
        수업료 비용 인식/기관 지급 거래는 소유 서비스만 취소 가능하고,
        은행 라인에 매칭된 거래는 매칭 해제 후에만 취소 가능.

        Args:
            void_date: 역분개 일자 (기본: 오늘과 원거래 일자 중 늦은 날)
            owner: 호출한 소유 서비스의 EntityKind

        Returns:
            역분개 거래

        Raises:
            InvalidStateTransitionError: POSTED/PARTIALLY_PAID가 아닌 거래, 역분개 거래
            InvalidStateTransitionError: 소유 서비스 밖에서의 취소, 은행 라인에 매칭된 거래
            OutstandingPaymentsError: 유효한 지급이 남아있는 문서
        """
        async with self.db.transaction():
            original = await self._require(transaction_id)
            if original.kind == TransactionKind.REVERSAL.value:
                raise InvalidStateTransitionError(
                    f"Reversal transactions cannot be voided: {transaction_id}",
                    transaction_id=transaction_id,
                    kind=original.kind,
                )
            await self._check_voidable(original, owner)
            machine = TransactionStateMachine(original.status, transaction_id)
            machine.transition(TransactionStatus.VOIDED)

            if original.kind in DOCUMENT_KINDS and original.amount_paid > 0:
                raise OutstandingPaymentsError(
                    f"Document {transaction_id} has payments of {original.amount_paid}",
                    transaction_id=transaction_id,
                    amount_paid=original.amount_paid,
                )

            effective_date = void_date or max(date.today(), original.txn_date)
            reversal = self.builder.reversal_of(original, effective_date, reason)
            if not reversal.is_balanced(self.config.balance_epsilon):
                raise UnbalancedEntriesError(
                    f"Reversal of {transaction_id} is unbalanced",
                    transaction_id=transaction_id,
                )
            reversal.status = TransactionStatus.POSTED.value
            reversal.created_by = principal.user_id
            await self._insert(reversal, posted=True)

            await self.db.execute(
                """
                UPDATE ledger_transaction
                SET status = ?, voided_at = ?, voided_by = ?, void_reason = ?, updated_at = ?
                WHERE transaction_id = ?
                """,
                (machine.state, _now(), principal.user_id, reason, _now(), transaction_id),
            )

            if original.kind == TransactionKind.PAYMENT.value:
                row = await self.db.fetchone(
                    "SELECT document_id FROM document_payment WHERE payment_transaction_id = ?",
                    (transaction_id,),
                )
                if row:
                    await self.db.execute(
                        "UPDATE document_payment SET is_voided = 1 WHERE payment_transaction_id = ?",
                        (transaction_id,),
                    )
                    await self._refresh_document_status(row[0])

            await self.record_event(
                EventTypes.TRANSACTION_VOIDED,
                EntityKind.TRANSACTION,
                transaction_id,
                principal,
                {"reversal_id": reversal.transaction_id, "reason": reason},
            )

        logger.info(
            "거래 취소",
            extra={"transaction_id": transaction_id, "reversal_id": reversal.transaction_id},
        )
        return reversal

    async def _check_voidable(
        self, original: LedgerTransaction, owner: EntityKind | None
    ) -> None:
        required = OWNED_KINDS.get(original.kind)
        given = EntityKind(owner).value if owner is not None else None
        if required is not None and given != required:
            raise InvalidStateTransitionError(
                f"{original.kind} transactions are voided through their {required} owner: "
                f"{original.transaction_id}",
                transaction_id=original.transaction_id,
                kind=original.kind,
                owner=required,
            )

        row = await self.db.fetchone(
            "SELECT bank_transaction_id FROM bank_transaction WHERE matched_transaction_id = ?",
            (original.transaction_id,),
        )
        if row:
            raise InvalidStateTransitionError(
                f"Transaction {original.transaction_id} is matched to bank line {row[0]}",
                transaction_id=original.transaction_id,
                kind=original.kind,
                bank_transaction_id=row[0],
            )

    async def _refresh_document_status(self, document_id: str) -> None:
        """지급 합계로 문서 상태 재계산"""
        document = await self._require(document_id)
        if document.status == TransactionStatus.VOIDED.value:
            return
        if document.amount_paid <= 0:
            target = TransactionStatus.POSTED.value
        elif document.amount_paid >= (document.amount_due or ZERO):
            target = TransactionStatus.PAID.value
        else:
            target = TransactionStatus.PARTIALLY_PAID.value
        if target == document.status:
            return
        machine = TransactionStateMachine(document.status, document_id)
        machine.transition(target)
        await self.db.execute(
            "UPDATE ledger_transaction SET status = ?, updated_at = ? WHERE transaction_id = ?",
            (machine.state, _now(), document_id),
        )

    # =========================================================================
    # 저장 헬퍼
    # =========================================================================

    async def _insert(self, txn: LedgerTransaction, posted: bool = False) -> None:
        cursor = await self.db.execute(
            """
            INSERT INTO ledger_transaction (
                transaction_id, kind, txn_date, description, reference, status,
                counterparty_id, invoice_number, due_date, amount_due,
                reversal_of, source_key, created_by, approved_by, posted_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                txn.transaction_id,
                txn.kind,
                txn.txn_date.isoformat(),
                txn.description,
                txn.reference,
                txn.status,
                txn.counterparty_id,
                txn.invoice_number,
                txn.due_date.isoformat() if txn.due_date else None,
                format_money(txn.amount_due) if txn.amount_due is not None else None,
                txn.reversal_of,
                txn.source_key,
                txn.created_by,
                txn.approved_by,
                _now() if posted else None,
            ),
        )
        txn.seq = cursor.lastrowid
        await self.db.executemany(
            """
            INSERT INTO ledger_entry (
                transaction_id, line_order, account_id, fund_id,
                debit_amount, credit_amount, memo
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    txn.transaction_id,
                    i,
                    e.account_id,
                    e.fund_id,
                    format_money(e.debit_amount),
                    format_money(e.credit_amount),
                    e.memo,
                )
                for i, e in enumerate(txn.entries)
            ],
        )
        await self.db.commit()

    async def _require(self, transaction_id: str) -> LedgerTransaction:
        txn = await self._load(transaction_id)
        if txn is None:
            raise EntityNotFoundError(
                f"Transaction not found: {transaction_id}",
                transaction_id=transaction_id,
            )
        return txn

    async def _load(
        self,
        transaction_id: str,
        db: SQLiteAdapter | None = None,
    ) -> LedgerTransaction | None:
        db = db or self.db
        row = await db.fetch_dict(
            "SELECT * FROM ledger_transaction WHERE transaction_id = ?",
            (transaction_id,),
        )
        if row is None:
            return None
        entries = await db.fetch_dicts(
            """
            SELECT account_id, fund_id, debit_amount, credit_amount, memo
            FROM ledger_entry
            WHERE transaction_id = ?
            ORDER BY line_order
            """,
            (transaction_id,),
        )
        paid_rows = await db.fetchall(
            "SELECT amount FROM document_payment WHERE document_id = ? AND is_voided = 0",
            (transaction_id,),
        )
        return LedgerTransaction(
            transaction_id=row["transaction_id"],
            txn_date=parse_date(row["txn_date"]),
            kind=row["kind"],
            entries=[
                LedgerEntry(
                    account_id=e["account_id"],
                    fund_id=e["fund_id"],
                    debit_amount=parse_money(e["debit_amount"]),
                    credit_amount=parse_money(e["credit_amount"]),
                    memo=e["memo"],
                )
                for e in entries
            ],
            description=row["description"],
            reference=row["reference"],
            status=row["status"],
            counterparty_id=row["counterparty_id"],
            invoice_number=row["invoice_number"],
            due_date=parse_date(row["due_date"]),
            amount_due=parse_money(row["amount_due"]) if row["amount_due"] is not None else None,
            amount_paid=sum((parse_money(r[0]) for r in paid_rows), ZERO),
            reversal_of=row["reversal_of"],
            source_key=row["source_key"],
            created_by=row["created_by"],
            approved_by=row["approved_by"],
            seq=row["seq"],
        )

    # =========================================================================
    # 조회
    # =========================================================================

    async def get_transaction(self, transaction_id: str) -> LedgerTransaction | None:
        """거래 조회 (라인 포함)"""
        return await self._load(transaction_id, self._read_db())

    async def find_by_source_key(self, source_key: str) -> LedgerTransaction | None:
        row = await self._read_db().fetchone(
            "SELECT transaction_id FROM ledger_transaction WHERE source_key = ?",
            (source_key,),
        )
        return await self.get_transaction(row[0]) if row else None

    async def list_transactions(
        self,
        kind: str | None = None,
        status: str | None = None,
        fund_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int = 500,
    ) -> list[LedgerTransaction]:
        """거래 목록 (일자, 전기 순)"""
        sql = "SELECT t.transaction_id FROM ledger_transaction t WHERE 1=1"
        params: list[Any] = []
        if kind:
            sql += " AND t.kind = ?"
            params.append(kind)
        if status:
            sql += " AND t.status = ?"
            params.append(status)
        if fund_id:
            sql += " AND EXISTS (SELECT 1 FROM ledger_entry e WHERE e.transaction_id = t.transaction_id AND e.fund_id = ?)"
            params.append(fund_id)
        if start_date:
            sql += " AND t.txn_date >= ?"
            params.append(start_date.isoformat())
        if end_date:
            sql += " AND t.txn_date <= ?"
            params.append(end_date.isoformat())
        sql += " ORDER BY t.txn_date, t.seq LIMIT ?"
        params.append(limit)

        db = self._read_db()
        rows = await db.fetchall(sql, tuple(params))
        result = []
        for (txn_id,) in rows:
            txn = await self._load(txn_id, db)
            if txn is not None:
                result.append(txn)
        return result

    async def list_payments(self, document_id: str, include_voided: bool = False) -> list[DocumentPayment]:
        sql = "SELECT * FROM document_payment WHERE document_id = ?"
        if not include_voided:
            sql += " AND is_voided = 0"
        sql += " ORDER BY payment_date, created_at"
        rows = await self._read_db().fetch_dicts(sql, (document_id,))
        return [DocumentPayment.from_row(r) for r in rows]

    async def fund_entry_rows(
        self,
        fund_id: str | None = None,
        as_of: date | None = None,
        after: date | None = None,
    ) -> list[dict[str, Any]]:
        """전기된 분개 라인 조회 (펀드/기간 필터)

        Args:
            fund_id: 펀드 (None이면 전체)
            as_of: 이 날짜 이하 (포함)
            after: 이 날짜 초과 (미포함)
        """
        sql = """
            SELECT transaction_id, kind, txn_date, account_id, account_type,
                   fund_id, debit_amount, credit_amount
            FROM v_posted_entry WHERE 1=1
        """
        params: list[Any] = []
        if fund_id:
            sql += " AND fund_id = ?"
            params.append(fund_id)
        if as_of:
            sql += " AND txn_date <= ?"
            params.append(as_of.isoformat())
        if after:
            sql += " AND txn_date > ?"
            params.append(after.isoformat())
        sql += " ORDER BY txn_date, seq, line_order"
        return await self._read_db().fetch_dicts(sql, tuple(params))

    async def fund_balance(self, fund_id: str, as_of: date | None = None) -> Decimal:
        """펀드 잔액 (순자산 = 자산 - 부채)

        as_of 이하 일자의 전기된 분개만 합산. 취소된 거래는 역분개와 상쇄됨.
        """
        rows = await self.fund_entry_rows(fund_id, as_of)
        assets, liabilities = net_assets(
            (r["account_type"], r["debit_amount"], r["credit_amount"]) for r in rows
        )
        return assets - liabilities

    async def account_net_amount(
        self,
        account_id: str,
        as_of: date | None = None,
        fund_id: str | None = None,
    ) -> Decimal:
        """계정 순변동 Σ(debit - credit)"""
        sql = "SELECT debit_amount, credit_amount FROM v_posted_entry WHERE account_id = ?"
        params: list[Any] = [account_id]
        if as_of:
            sql += " AND txn_date <= ?"
            params.append(as_of.isoformat())
        if fund_id:
            sql += " AND fund_id = ?"
            params.append(fund_id)
        rows = await self._read_db().fetchall(sql, tuple(params))
        return sum((parse_money(d) - parse_money(c) for d, c in rows), ZERO)

    async def account_balance(
        self,
        account_id: str,
        as_of: date | None = None,
        fund_id: str | None = None,
    ) -> Decimal:
        """계정 잔액 (정상 잔액 방향 기준)

        ASSET/EXPENSE: debit - credit, 그 외: credit - debit
        """
        account = await self.get_account(account_id)
        if account is None:
            raise EntityNotFoundError(f"Account not found: {account_id}", account_id=account_id)
        net = await self.account_net_amount(account_id, as_of, fund_id)
        return net if account.account_type in DEBIT_NORMAL_TYPES else -net

    async def trial_balance(self, as_of: date | None = None) -> list[dict[str, Any]]:
        """시산표 (계정별 차변/대변 합계, 정상 방향 잔액)"""
        sql = """
            SELECT a.account_id, a.account_number, a.name, a.account_type,
                   pe.debit_amount, pe.credit_amount
            FROM account a
            JOIN v_posted_entry pe ON pe.account_id = a.account_id
        """
        params: tuple[Any, ...] = ()
        if as_of:
            sql += " WHERE pe.txn_date <= ?"
            params = (as_of.isoformat(),)
        rows = await self._read_db().fetchall(sql, params)

        totals: dict[str, dict[str, Any]] = {}
        for account_id, number, name, account_type, debit, credit in rows:
            item = totals.setdefault(account_id, {
                "account_id": account_id,
                "account_number": number,
                "name": name,
                "account_type": account_type,
                "total_debit": ZERO,
                "total_credit": ZERO,
            })
            item["total_debit"] += parse_money(debit)
            item["total_credit"] += parse_money(credit)

        result = []
        for item in sorted(totals.values(), key=lambda x: x["account_number"]):
            net = item["total_debit"] - item["total_credit"]
            item["balance"] = net if item["account_type"] in DEBIT_NORMAL_TYPES else -net
            result.append(item)
        return result

    async def account_ledger(
        self,
        account_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[dict[str, Any]]:
        """계정별 거래 내역 (누적 잔액 포함, debit - credit 기준)"""
        sql = "SELECT * FROM v_account_ledger WHERE account_id = ?"
        params: list[Any] = [account_id]
        if end_date:
            sql += " AND txn_date <= ?"
            params.append(end_date.isoformat())
        rows = await self._read_db().fetch_dicts(sql, tuple(params))

        running = ZERO
        result = []
        for row in rows:
            running += parse_money(row["debit_amount"]) - parse_money(row["credit_amount"])
            if start_date and parse_date(row["txn_date"]) < start_date:
                continue
            row["running_balance"] = running
            result.append(row)
        return result

    @staticmethod
    def is_posted(status: str) -> bool:
        return status in POSTED_STATUSES
