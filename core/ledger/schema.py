"""
원장 스키마 초기화

계정/펀드/원장 거래와 업무 모듈(정기 템플릿, 수업료 크레딧, 은행 대사) 테이블 생성.
CREATE IF NOT EXISTS / DROP VIEW IF EXISTS 패턴으로 안전하게 동작.

저장소 수준 보장:
- 전기된 분개 라인은 UPDATE/DELETE 불가 (트리거)
- 분개가 참조하는 계정의 번호/유형 변경 불가 (트리거)
- 은행 계좌당 열린 대사 세션 1개 (부분 UNIQUE 인덱스)
- 크레딧당 유효 지급 1건 (부분 UNIQUE 인덱스)
- 정기 생성 문서의 source_key UNIQUE
"""

import logging
from typing import TYPE_CHECKING

from adapters.db.sqlite_adapter import init_schema

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


async def init_ledger_schema(db: "SQLiteAdapter", seed: bool = True) -> None:
    """전체 스키마 초기화 (테이블 + 트리거 + View)

    이미 존재하는 경우 안전하게 건너뜀 (IF NOT EXISTS).

    Args:
        db: SQLiteAdapter 인스턴스
        seed: 초기 계정과목/기본 펀드 삽입 여부
    """
    await init_schema(db)
    await _create_ledger_tables(db)
    await _create_recurring_tables(db)
    await _create_tuition_tables(db)
    await _create_reconciliation_tables(db)
    await _create_guards(db)
    await _create_ledger_views(db)
    if seed:
        await _insert_initial_accounts(db)
    logger.info("Ledger 스키마 초기화 완료")


async def _create_ledger_tables(db: "SQLiteAdapter") -> None:
    """계정/펀드/원장 테이블 생성"""

    # account 테이블 (계정과목)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS account (
            account_id       TEXT PRIMARY KEY,
            account_number   TEXT NOT NULL UNIQUE,
            account_type     TEXT NOT NULL,
            name             TEXT NOT NULL,
            description      TEXT,
            is_active        INTEGER NOT NULL DEFAULT 1,
            created_at       TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # fund 테이블
    await db.execute("""
        CREATE TABLE IF NOT EXISTS fund (
            fund_id              TEXT PRIMARY KEY,
            name                 TEXT NOT NULL UNIQUE,
            fund_type            TEXT NOT NULL,
            restriction_details  TEXT,
            start_date           TEXT,
            end_date             TEXT,
            is_active            INTEGER NOT NULL DEFAULT 1,
            created_at           TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # ledger_transaction 테이블 (거래 헤더 + 청구서/송장 필드)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS ledger_transaction (
            seq              INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_id   TEXT NOT NULL UNIQUE,
            kind             TEXT NOT NULL,
            txn_date         TEXT NOT NULL,
            description      TEXT,
            reference        TEXT,
            status           TEXT NOT NULL,

            counterparty_id  TEXT,
            invoice_number   TEXT,
            due_date         TEXT,
            amount_due       TEXT,

            reversal_of      TEXT REFERENCES ledger_transaction(transaction_id),
            source_key       TEXT UNIQUE,

            created_by       TEXT,
            approved_by      TEXT,
            posted_at        TEXT,
            voided_at        TEXT,
            voided_by        TEXT,
            void_reason      TEXT,

            created_at       TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at       TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # ledger_entry 테이블 (분개 라인)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS ledger_entry (
            entry_id         INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_id   TEXT NOT NULL,
            line_order       INTEGER NOT NULL DEFAULT 0,
            account_id       TEXT NOT NULL,
            fund_id          TEXT NOT NULL,
            debit_amount     TEXT NOT NULL DEFAULT '0.00',
            credit_amount    TEXT NOT NULL DEFAULT '0.00',
            memo             TEXT,
            FOREIGN KEY (transaction_id) REFERENCES ledger_transaction(transaction_id),
            FOREIGN KEY (account_id) REFERENCES account(account_id),
            FOREIGN KEY (fund_id) REFERENCES fund(fund_id)
        )
    """)

    # document_payment 테이블 (청구서/송장 지급 내역)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS document_payment (
            payment_id               TEXT PRIMARY KEY,
            document_id              TEXT NOT NULL,
            payment_transaction_id   TEXT NOT NULL UNIQUE,
            amount                   TEXT NOT NULL,
            payment_date             TEXT NOT NULL,
            is_voided                INTEGER NOT NULL DEFAULT 0,
            created_by               TEXT,
            created_at               TEXT NOT NULL DEFAULT (datetime('now')),
            FOREIGN KEY (document_id) REFERENCES ledger_transaction(transaction_id),
            FOREIGN KEY (payment_transaction_id) REFERENCES ledger_transaction(transaction_id)
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS ix_ledger_transaction_date
        ON ledger_transaction(txn_date)
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS ix_ledger_transaction_status
        ON ledger_transaction(kind, status)
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS ix_ledger_entry_transaction
        ON ledger_entry(transaction_id)
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS ix_ledger_entry_fund
        ON ledger_entry(fund_id, account_id)
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS ix_ledger_entry_account
        ON ledger_entry(account_id)
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS ix_document_payment_document
        ON document_payment(document_id)
    """)

    await db.commit()
    logger.debug("Ledger 테이블 생성 완료")


async def _create_recurring_tables(db: "SQLiteAdapter") -> None:
    """정기 템플릿 테이블 생성"""
    await db.execute("""
        CREATE TABLE IF NOT EXISTS recurring_template (
            template_id            TEXT PRIMARY KEY,
            kind                   TEXT NOT NULL,
            counterparty_id        TEXT NOT NULL,
            description            TEXT,
            amount                 TEXT NOT NULL,
            account_id             TEXT NOT NULL REFERENCES account(account_id),
            fund_id                TEXT NOT NULL REFERENCES fund(fund_id),

            frequency              TEXT NOT NULL,
            day_of_month           INTEGER,
            interval_days          INTEGER,
            payment_terms_days     INTEGER,

            start_date             TEXT NOT NULL,
            end_date               TEXT,
            next_generation_date   TEXT NOT NULL,
            last_generated_date    TEXT,
            is_active              INTEGER NOT NULL DEFAULT 1,

            created_by             TEXT,
            created_at             TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at             TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS ix_recurring_template_due
        ON recurring_template(is_active, next_generation_date)
    """)
    await db.commit()


async def _create_tuition_tables(db: "SQLiteAdapter") -> None:
    """수업료 크레딧/배치/기관 지급 테이블 생성"""
    await db.execute("""
        CREATE TABLE IF NOT EXISTS tuition_credit_batch (
            batch_id                 TEXT PRIMARY KEY,
            name                     TEXT NOT NULL,
            description              TEXT,
            period_start             TEXT NOT NULL,
            period_end               TEXT NOT NULL,
            status                   TEXT NOT NULL,
            created_by               TEXT,
            approved_by              TEXT,
            processed_by             TEXT,
            processed_at             TEXT,
            accrual_transaction_id   TEXT REFERENCES ledger_transaction(transaction_id),
            created_at               TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at               TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS tuition_credit (
            credit_id                TEXT PRIMARY KEY,
            student_id               TEXT NOT NULL,
            student_name             TEXT,
            provider_id              TEXT NOT NULL,
            fund_id                  TEXT NOT NULL REFERENCES fund(fund_id),
            period_start             TEXT NOT NULL,
            period_end               TEXT NOT NULL,

            credit_amount            TEXT NOT NULL,
            dpp_portion              TEXT NOT NULL,
            family_portion           TEXT NOT NULL,

            status                   TEXT NOT NULL,
            is_adjustment            INTEGER NOT NULL DEFAULT 0,
            original_credit_id       TEXT REFERENCES tuition_credit(credit_id),
            batch_id                 TEXT REFERENCES tuition_credit_batch(batch_id),

            created_by               TEXT,
            approved_by              TEXT,
            approval_date            TEXT,
            rejection_reason         TEXT,
            void_reason              TEXT,
            accrual_transaction_id   TEXT REFERENCES ledger_transaction(transaction_id),
            processed_at             TEXT,
            paid_at                  TEXT,

            created_at               TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at               TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS provider_payment_batch (
            batch_id         TEXT PRIMARY KEY,
            name             TEXT NOT NULL,
            batch_date       TEXT NOT NULL,
            status           TEXT NOT NULL,
            created_by       TEXT,
            processed_by     TEXT,
            processed_at     TEXT,
            created_at       TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at       TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS provider_payment (
            payment_id               TEXT PRIMARY KEY,
            provider_id              TEXT NOT NULL,
            fund_id                  TEXT NOT NULL REFERENCES fund(fund_id),
            amount                   TEXT NOT NULL,
            payment_date             TEXT NOT NULL,
            method                   TEXT,
            status                   TEXT NOT NULL,
            description              TEXT,
            reference_id             TEXT,
            batch_id                 TEXT REFERENCES provider_payment_batch(batch_id),
            ledger_transaction_id    TEXT REFERENCES ledger_transaction(transaction_id),
            created_by               TEXT,
            processed_at             TEXT,
            failure_reason           TEXT,
            void_reason              TEXT,
            voided_at                TEXT,
            created_at               TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at               TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # 지급-크레딧 연결 (is_active=0이면 FAILED/VOIDED로 해제됨)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS provider_payment_credit (
            payment_id       TEXT NOT NULL REFERENCES provider_payment(payment_id),
            credit_id        TEXT NOT NULL REFERENCES tuition_credit(credit_id),
            is_active        INTEGER NOT NULL DEFAULT 1,
            PRIMARY KEY (payment_id, credit_id)
        )
    """)

    await db.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS ux_provider_payment_credit_active
        ON provider_payment_credit(credit_id) WHERE is_active = 1
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS ix_tuition_credit_status
        ON tuition_credit(provider_id, status)
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS ix_tuition_credit_batch
        ON tuition_credit(batch_id)
    """)
    await db.commit()


async def _create_reconciliation_tables(db: "SQLiteAdapter") -> None:
    """은행 계좌/대사 세션/은행 거래 테이블 생성"""
    await db.execute("""
        CREATE TABLE IF NOT EXISTS bank_account (
            bank_account_id  TEXT PRIMARY KEY,
            name             TEXT NOT NULL,
            account_id       TEXT NOT NULL REFERENCES account(account_id),
            fund_id          TEXT NOT NULL REFERENCES fund(fund_id),
            is_active        INTEGER NOT NULL DEFAULT 1,
            created_at       TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS bank_reconciliation (
            session_id         TEXT PRIMARY KEY,
            bank_account_id    TEXT NOT NULL REFERENCES bank_account(bank_account_id),
            statement_balance  TEXT NOT NULL,
            start_date         TEXT NOT NULL,
            end_date           TEXT NOT NULL,
            status             TEXT NOT NULL,
            book_balance       TEXT,
            created_by         TEXT,
            completed_by       TEXT,
            completed_at       TEXT,
            created_at         TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at         TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS bank_transaction (
            bank_transaction_id      TEXT PRIMARY KEY,
            bank_account_id          TEXT NOT NULL REFERENCES bank_account(bank_account_id),
            session_id               TEXT REFERENCES bank_reconciliation(session_id),
            txn_date                 TEXT NOT NULL,
            description              TEXT NOT NULL,
            reference                TEXT,
            amount                   TEXT NOT NULL,
            match_status             TEXT NOT NULL DEFAULT 'UNMATCHED',
            matched_transaction_id   TEXT REFERENCES ledger_transaction(transaction_id),
            notes                    TEXT,
            dedup_key                TEXT NOT NULL UNIQUE,
            created_at               TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at               TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # 은행 계좌당 열린 세션(DRAFT/IN_PROGRESS)은 1개
    await db.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS ux_bank_reconciliation_open
        ON bank_reconciliation(bank_account_id)
        WHERE status IN ('DRAFT', 'IN_PROGRESS')
    """)
    # 원장 거래 1건은 은행 거래 1건에만 매칭
    await db.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS ux_bank_transaction_matched
        ON bank_transaction(matched_transaction_id)
        WHERE matched_transaction_id IS NOT NULL
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS ix_bank_transaction_session
        ON bank_transaction(session_id, match_status)
    """)
    await db.commit()


async def _create_guards(db: "SQLiteAdapter") -> None:
    """append-only / 불변성 트리거 생성"""

    # 분개 라인은 수정 불가 (초안은 삭제 후 재작성)
    await db.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_ledger_entry_no_update
        BEFORE UPDATE ON ledger_entry
        BEGIN
            SELECT RAISE(ABORT, 'ledger entries are append-only');
        END
    """)

    # 전기된 거래의 분개 라인은 삭제 불가
    await db.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_ledger_entry_no_delete_posted
        BEFORE DELETE ON ledger_entry
        WHEN (
            SELECT status FROM ledger_transaction
            WHERE transaction_id = OLD.transaction_id
        ) NOT IN ('DRAFT', 'PENDING_APPROVAL', 'APPROVED')
        BEGIN
            SELECT RAISE(ABORT, 'posted ledger entries cannot be deleted');
        END
    """)

    # 전기된 거래는 삭제 불가
    await db.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_ledger_transaction_no_delete_posted
        BEFORE DELETE ON ledger_transaction
        WHEN OLD.status NOT IN ('DRAFT', 'PENDING_APPROVAL', 'APPROVED')
        BEGIN
            SELECT RAISE(ABORT, 'posted transactions cannot be deleted');
        END
    """)

    # 분개가 참조하는 계정은 번호/유형 변경 불가
    await db.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_account_immutable_when_referenced
        BEFORE UPDATE OF account_number, account_type ON account
        WHEN EXISTS (SELECT 1 FROM ledger_entry WHERE account_id = OLD.account_id)
        BEGIN
            SELECT RAISE(ABORT, 'referenced account number/type is immutable');
        END
    """)

    await db.commit()


async def _create_ledger_views(db: "SQLiteAdapter") -> None:
    """원장 조회용 View 생성"""

    # 전기된 분개 라인 (잔액 계산 대상)
    await db.execute("DROP VIEW IF EXISTS v_posted_entry")
    await db.execute("""
        CREATE VIEW v_posted_entry AS
        SELECT
            t.seq,
            t.transaction_id,
            t.kind,
            t.txn_date,
            t.status,
            t.description,
            e.entry_id,
            e.line_order,
            e.account_id,
            a.account_type,
            e.fund_id,
            e.debit_amount,
            e.credit_amount,
            e.memo
        FROM ledger_entry e
        JOIN ledger_transaction t ON t.transaction_id = e.transaction_id
        JOIN account a ON a.account_id = e.account_id
        WHERE t.status IN ('POSTED', 'PARTIALLY_PAID', 'PAID', 'VOIDED')
    """)

    # 계정별 거래 내역
    await db.execute("DROP VIEW IF EXISTS v_account_ledger")
    await db.execute("""
        CREATE VIEW v_account_ledger AS
        SELECT
            pe.txn_date,
            pe.transaction_id,
            pe.kind,
            pe.account_id,
            pe.fund_id,
            pe.debit_amount,
            pe.credit_amount,
            pe.description,
            pe.memo
        FROM v_posted_entry pe
        ORDER BY pe.account_id, pe.txn_date, pe.seq, pe.line_order
    """)

    await db.commit()
    logger.debug("Ledger View 생성 완료")


async def _insert_initial_accounts(db: "SQLiteAdapter") -> None:
    """초기 계정/펀드 삽입

    INITIAL_ACCOUNTS, INITIAL_FUNDS에 정의된 항목 생성.
    이미 존재하면 무시 (INSERT OR IGNORE).
    """
    from core.ledger.types import INITIAL_ACCOUNTS, INITIAL_FUNDS

    await db.executemany(
        """
        INSERT OR IGNORE INTO account (account_id, account_number, account_type, name)
        VALUES (?, ?, ?, ?)
        """,
        list(INITIAL_ACCOUNTS),
    )
    await db.executemany(
        """
        INSERT OR IGNORE INTO fund (fund_id, fund_type, name)
        VALUES (?, ?, ?)
        """,
        list(INITIAL_FUNDS),
    )

    await db.commit()
    logger.debug("초기 계정 삽입 완료")
