"""
Reconciliation Repository

bank_account, bank_reconciliation, bank_transaction 테이블 CRUD 처리.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.state_machines import MatchStatus
from core.utils.dates import parse_date
from core.utils.money import format_money, parse_money

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class BankAccount:
    """은행 계좌 (GL 자산 계정 + 기본 펀드에 연결)"""

    bank_account_id: str
    name: str
    account_id: str
    fund_id: str
    is_active: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "BankAccount":
        return cls(
            bank_account_id=row["bank_account_id"],
            name=row["name"],
            account_id=row["account_id"],
            fund_id=row["fund_id"],
            is_active=bool(row["is_active"]),
        )


@dataclass
class ReconciliationSession:
    """은행 대사 세션

    Attributes:
        session_id: 세션 ID
        bank_account_id: 은행 계좌 ID
        statement_balance: 명세서 기말 잔액
        start_date: 명세서 시작일
        end_date: 명세서 종료일 (장부 잔액 기준일)
        status: DRAFT / IN_PROGRESS / COMPLETED / ABANDONED
        book_balance: 완료 시점 장부 잔액
    """

    session_id: str
    bank_account_id: str
    statement_balance: Decimal
    start_date: date
    end_date: date
    status: str
    book_balance: Decimal | None = None
    created_by: str | None = None
    completed_by: str | None = None
    completed_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ReconciliationSession":
        return cls(
            session_id=row["session_id"],
            bank_account_id=row["bank_account_id"],
            statement_balance=parse_money(row["statement_balance"]),
            start_date=parse_date(row["start_date"]),
            end_date=parse_date(row["end_date"]),
            status=row["status"],
            book_balance=parse_money(row["book_balance"]) if row.get("book_balance") else None,
            created_by=row.get("created_by"),
            completed_by=row.get("completed_by"),
            completed_at=row.get("completed_at"),
        )


@dataclass
class BankTransaction:
    """은행 명세서 라인

    amount 부호: 입금 양수, 출금 음수.
    """

    bank_transaction_id: str
    bank_account_id: str
    txn_date: date
    description: str
    amount: Decimal
    dedup_key: str
    session_id: str | None = None
    reference: str | None = None
    match_status: str = MatchStatus.UNMATCHED.value
    matched_transaction_id: str | None = None
    notes: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "BankTransaction":
        return cls(
            bank_transaction_id=row["bank_transaction_id"],
            bank_account_id=row["bank_account_id"],
            txn_date=parse_date(row["txn_date"]),
            description=row["description"],
            amount=parse_money(row["amount"]),
            dedup_key=row["dedup_key"],
            session_id=row.get("session_id"),
            reference=row.get("reference"),
            match_status=row["match_status"],
            matched_transaction_id=row.get("matched_transaction_id"),
            notes=row.get("notes"),
        )


class ReconciliationRepository:
    """Reconciliation Repository

    Args:
        db: SQLiteAdapter 인스턴스
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    # =========================================================================
    # 은행 계좌
    # =========================================================================

    async def insert_bank_account(self, account: BankAccount) -> None:
        await self.db.execute(
            """
            INSERT INTO bank_account (bank_account_id, name, account_id, fund_id, is_active)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                account.bank_account_id,
                account.name,
                account.account_id,
                account.fund_id,
                int(account.is_active),
            ),
        )
        await self.db.commit()

    async def get_bank_account(self, bank_account_id: str) -> BankAccount | None:
        row = await self.db.fetch_dict(
            "SELECT * FROM bank_account WHERE bank_account_id = ?",
            (bank_account_id,),
        )
        return BankAccount.from_row(row) if row else None

    async def list_bank_accounts(self) -> list[BankAccount]:
        rows = await self.db.fetch_dicts("SELECT * FROM bank_account ORDER BY bank_account_id")
        return [BankAccount.from_row(r) for r in rows]

    # =========================================================================
    # 대사 세션
    # =========================================================================

    async def insert_session(self, session: ReconciliationSession) -> None:
        """세션 생성

        Raises:
            sqlite3.IntegrityError: 해당 계좌에 열린 세션이 이미 존재
        """
        await self.db.execute(
            """
            INSERT INTO bank_reconciliation (
                session_id, bank_account_id, statement_balance,
                start_date, end_date, status, created_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session.session_id,
                session.bank_account_id,
                format_money(session.statement_balance),
                session.start_date.isoformat(),
                session.end_date.isoformat(),
                session.status,
                session.created_by,
            ),
        )
        await self.db.commit()

    async def get_session(self, session_id: str) -> ReconciliationSession | None:
        row = await self.db.fetch_dict(
            "SELECT * FROM bank_reconciliation WHERE session_id = ?",
            (session_id,),
        )
        return ReconciliationSession.from_row(row) if row else None

    async def get_open_session(self, bank_account_id: str) -> ReconciliationSession | None:
        """열린(DRAFT/IN_PROGRESS) 세션 조회"""
        row = await self.db.fetch_dict(
            """
            SELECT * FROM bank_reconciliation
            WHERE bank_account_id = ? AND status IN ('DRAFT', 'IN_PROGRESS')
            """,
            (bank_account_id,),
        )
        return ReconciliationSession.from_row(row) if row else None

    async def update_session(
        self,
        session_id: str,
        status: str,
        book_balance: Decimal | None = None,
        completed_by: str | None = None,
    ) -> None:
        completed_at = _now() if completed_by else None
        await self.db.execute(
            """
            UPDATE bank_reconciliation
            SET status = ?,
                book_balance = COALESCE(?, book_balance),
                completed_by = COALESCE(?, completed_by),
                completed_at = COALESCE(?, completed_at),
                updated_at = ?
            WHERE session_id = ?
            """,
            (
                status,
                format_money(book_balance) if book_balance is not None else None,
                completed_by,
                completed_at,
                _now(),
                session_id,
            ),
        )
        await self.db.commit()

    # =========================================================================
    # 은행 거래
    # =========================================================================

    async def insert_bank_transaction(self, txn: BankTransaction) -> bool:
        """은행 거래 삽입 (dedup_key 중복이면 무시)

        Returns:
            삽입 여부
        """
        cursor = await self.db.execute(
            """
            INSERT OR IGNORE INTO bank_transaction (
                bank_transaction_id, bank_account_id, session_id, txn_date,
                description, reference, amount, match_status, dedup_key
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                txn.bank_transaction_id,
                txn.bank_account_id,
                txn.session_id,
                txn.txn_date.isoformat(),
                txn.description,
                txn.reference,
                format_money(txn.amount),
                txn.match_status,
                txn.dedup_key,
            ),
        )
        await self.db.commit()
        return cursor.rowcount == 1

    async def attach_to_session(self, dedup_key: str, session_id: str) -> bool:
        """세션에 속하지 않은 기존 라인을 세션에 연결 (재가져오기)"""
        cursor = await self.db.execute(
            """
            UPDATE bank_transaction SET session_id = ?, updated_at = ?
            WHERE dedup_key = ? AND session_id IS NULL
            """,
            (session_id, _now(), dedup_key),
        )
        await self.db.commit()
        return cursor.rowcount == 1

    async def get_bank_transaction(self, bank_transaction_id: str) -> BankTransaction | None:
        row = await self.db.fetch_dict(
            "SELECT * FROM bank_transaction WHERE bank_transaction_id = ?",
            (bank_transaction_id,),
        )
        return BankTransaction.from_row(row) if row else None

    async def list_bank_transactions(
        self,
        session_id: str,
        match_status: str | None = None,
    ) -> list[BankTransaction]:
        sql = "SELECT * FROM bank_transaction WHERE session_id = ?"
        params: list[Any] = [session_id]
        if match_status:
            sql += " AND match_status = ?"
            params.append(match_status)
        sql += " ORDER BY txn_date, created_at, bank_transaction_id"
        rows = await self.db.fetch_dicts(sql, tuple(params))
        return [BankTransaction.from_row(r) for r in rows]

    async def find_by_matched_transaction(self, transaction_id: str) -> BankTransaction | None:
        row = await self.db.fetch_dict(
            "SELECT * FROM bank_transaction WHERE matched_transaction_id = ?",
            (transaction_id,),
        )
        return BankTransaction.from_row(row) if row else None

    async def set_match(
        self,
        bank_transaction_id: str,
        match_status: str,
        matched_transaction_id: str | None,
        notes: str | None = None,
    ) -> None:
        """매칭 상태 변경

        Raises:
            sqlite3.IntegrityError: 원장 거래가 다른 은행 거래와 이미 매칭됨
        """
        await self.db.execute(
            """
            UPDATE bank_transaction
            SET match_status = ?, matched_transaction_id = ?,
                notes = COALESCE(?, notes), updated_at = ?
            WHERE bank_transaction_id = ?
            """,
            (match_status, matched_transaction_id, notes, _now(), bank_transaction_id),
        )
        await self.db.commit()

    async def detach_session(self, session_id: str) -> int:
        """미매칭 라인을 세션에서 분리 (세션 포기 시)"""
        cursor = await self.db.execute(
            """
            UPDATE bank_transaction SET session_id = NULL, updated_at = ?
            WHERE session_id = ? AND match_status = ?
            """,
            (_now(), session_id, MatchStatus.UNMATCHED.value),
        )
        await self.db.commit()
        return cursor.rowcount

    # =========================================================================
    # 매칭 후보 조회
    # =========================================================================

    async def ledger_lines_for_account(
        self,
        account_id: str,
        start_date: date,
        end_date: date,
    ) -> list[dict[str, Any]]:
        """기간 내 계정에 닿는 미매칭 원장 라인

        취소된 거래와 역분개는 제외 (서로 상쇄).
        """
        return await self.db.fetch_dicts(
            """
            SELECT pe.transaction_id, pe.txn_date, pe.kind, pe.description,
                   pe.debit_amount, pe.credit_amount
            FROM v_posted_entry pe
            WHERE pe.account_id = ?
              AND pe.txn_date BETWEEN ? AND ?
              AND pe.status != 'VOIDED'
              AND pe.kind != 'REVERSAL'
              AND NOT EXISTS (
                  SELECT 1 FROM bank_transaction bt
                  WHERE bt.matched_transaction_id = pe.transaction_id
              )
            ORDER BY pe.txn_date, pe.seq, pe.line_order
            """,
            (account_id, start_date.isoformat(), end_date.isoformat()),
        )
