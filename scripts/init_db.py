"""
원장 스키마 초기화

테이블, 트리거, View를 생성하고 기본 계정과목과 일반 펀드를 등록.
여러 번 실행해도 안전 (IF NOT EXISTS / INSERT OR IGNORE).

사용법:
    python -m scripts.init_db
    python -m scripts.init_db --db data/fundledger.db
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from adapters.db.sqlite_adapter import SQLiteAdapter, get_db_path
from core.config.loader import get_settings
from core.ledger.schema import init_ledger_schema
from core.logging import setup_logging

logger = logging.getLogger(__name__)

REQUIRED_TABLES = [
    "event_store",
    "account",
    "fund",
    "ledger_transaction",
    "ledger_entry",
    "document_payment",
    "recurring_template",
    "tuition_credit",
    "tuition_credit_batch",
    "provider_payment",
    "provider_payment_credit",
    "provider_payment_batch",
    "bank_account",
    "bank_reconciliation",
    "bank_transaction",
]

REQUIRED_VIEWS = [
    "v_posted_entry",
    "v_account_ledger",
]


async def verify_schema(db: SQLiteAdapter) -> bool:
    """스키마 검증

    Returns:
        필수 테이블과 View가 모두 존재하면 True
    """
    for table in REQUIRED_TABLES:
        if not await db.table_exists(table):
            logger.error(f"테이블 누락: {table}")
            return False

    for view in REQUIRED_VIEWS:
        row = await db.fetchone(
            "SELECT name FROM sqlite_master WHERE type='view' AND name=?",
            (view,),
        )
        if not row:
            logger.error(f"View 누락: {view}")
            return False

    row = await db.fetchone("SELECT COUNT(*) FROM account")
    logger.info(f"등록된 계정 수: {row[0] if row else 0}")
    return True


async def main(db_path: Path) -> None:
    logger.info(f"스키마 초기화 시작: {db_path}")

    async with SQLiteAdapter(db_path) as db:
        await init_ledger_schema(db)

        if await verify_schema(db):
            logger.info("스키마 초기화 완료")
        else:
            raise RuntimeError("스키마 검증 실패")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="원장 스키마 초기화")
    parser.add_argument("--db", type=Path, default=None, help="DB 파일 경로 (기본: 설정값)")
    parser.add_argument("--config", type=Path, default=None, help="settings.yaml 경로")
    args = parser.parse_args()

    settings = get_settings(args.config)
    setup_logging("init_db", console_level=settings.app.log_level)
    asyncio.run(main(get_db_path(args.db or settings.db_path)))
