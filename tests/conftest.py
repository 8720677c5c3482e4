"""
pytest 공통 fixture 정의

임시 디렉토리, 설정 파일, 스키마가 적용된 임시 DB, 서비스, 행위자(Principal)
"""

import tempfile
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Iterator

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import Settings
from core.constants import Defaults
from core.ledger.entry_builder import LedgerEntry, LedgerTransaction
from core.ledger.schema import init_ledger_schema
from core.ledger.store import LedgerStore
from core.types import Principal
from finance.bootstrap import Services, build_services


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """OS 독립적인 임시 디렉토리 생성"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_settings_file(temp_dir: Path) -> Iterator[Path]:
    """테스트용 settings.yaml 파일 생성"""
    settings_content = """# 테스트용 settings.yaml
database:
  path: /tmp/fundledger_test.db

logging:
  level: debug

ledger:
  balance_epsilon: "0.01"

funds:
  transfer_policy:
    BOARD_DESIGNATED: allow_negative

recurring:
  payment_terms_days: 15

tuition:
  approver_roles: [FINANCE_MANAGER]

reconciliation:
  match_window_days: 5
  amount_epsilon: "0.05"
"""
    settings_path = temp_dir / "settings.yaml"
    settings_path.write_text(settings_content, encoding="utf-8")
    Settings.reset()
    yield settings_path
    Settings.reset()


# -------------------------------------------------------------------------
# DB / 서비스
# -------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db(temp_dir: Path) -> AsyncIterator[SQLiteAdapter]:
    """스키마와 기본 계정과목이 적용된 임시 DB"""
    adapter = SQLiteAdapter(temp_dir / "test_ledger.db")
    await adapter.connect()
    await init_ledger_schema(adapter)
    yield adapter
    await adapter.close()


@pytest.fixture
def services(db: SQLiteAdapter) -> Services:
    """기본 설정으로 조립한 서비스"""
    return build_services(db)


@pytest.fixture
def ledger(services: Services) -> LedgerStore:
    return services.ledger


# -------------------------------------------------------------------------
# 행위자
# -------------------------------------------------------------------------

@pytest.fixture
def clerk() -> Principal:
    """입력 담당자 (승인 권한 없음)"""
    return Principal.user("clerk-1", "CLERK")


@pytest.fixture
def manager() -> Principal:
    """재무 관리자 (승인 권한)"""
    return Principal.user("manager-1", "FINANCE_MANAGER")


@pytest.fixture
def second_manager() -> Principal:
    return Principal.user("manager-2", "FINANCE_MANAGER")


# -------------------------------------------------------------------------
# 원장 데이터 헬퍼
# -------------------------------------------------------------------------

@pytest.fixture
def contribute(
    ledger: LedgerStore,
    manager: Principal,
) -> Callable[..., Awaitable[LedgerTransaction]]:
    """현금 기부금 전기 헬퍼: 현금 (Debit) / 기부금 수익 (Credit)"""

    async def _contribute(
        amount: str,
        fund_id: str = Defaults.GENERAL_FUND_ID,
        txn_date: date = date(2025, 1, 2),
    ) -> LedgerTransaction:
        value = Decimal(amount)
        txn = ledger.builder.journal(
            txn_date,
            [
                LedgerEntry.debit(ledger.config.cash_account, fund_id, value),
                LedgerEntry.credit("REVENUE:CONTRIBUTIONS", fund_id, value),
            ],
            description="Contribution",
        )
        return await ledger.post(txn, manager)

    return _contribute
