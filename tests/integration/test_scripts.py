"""운영 스크립트 / 서비스 조립 통합 테스트"""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from types import ModuleType
from typing import Iterator

import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import AppSettings, Settings
from core.constants import PROJECT_ROOT, Defaults
from core.types import Frequency, Principal
from finance.bootstrap import open_services
from scripts import generate_recurring, init_db


@pytest.fixture
def script_settings(temp_dir: Path) -> Iterator[Path]:
    """임시 DB를 가리키는 settings.yaml"""
    path = temp_dir / "settings.yaml"
    path.write_text(
        f"database:\n  path: {(temp_dir / 'scripts.db').as_posix()}\n",
        encoding="utf-8",
    )
    Settings.reset()
    yield path
    Settings.reset()


class TestScriptPaths:
    """스크립트 단독 실행 시 프로젝트 루트 경로"""

    @pytest.mark.parametrize("script", [init_db, generate_recurring])
    def test_project_root_on_path(self, script: ModuleType) -> None:
        assert script.PROJECT_ROOT == PROJECT_ROOT
        assert str(PROJECT_ROOT) in sys.path


class TestInitDb:
    """스키마 초기화 스크립트"""

    @pytest.mark.asyncio
    async def test_verify_schema(self, temp_dir: Path) -> None:
        async with SQLiteAdapter(temp_dir / "fresh.db") as db:
            assert await init_db.verify_schema(db) is False

        await init_db.main(temp_dir / "fresh.db")

        async with SQLiteAdapter(temp_dir / "fresh.db") as db:
            assert await init_db.verify_schema(db) is True

    @pytest.mark.asyncio
    async def test_rerun_is_safe(self, temp_dir: Path) -> None:
        await init_db.main(temp_dir / "again.db")
        await init_db.main(temp_dir / "again.db")

        async with SQLiteAdapter(temp_dir / "again.db") as db:
            row = await db.fetchone("SELECT COUNT(*) FROM fund")
        assert row[0] == 1


class TestOpenServices:
    """DB 연결과 서비스 조립"""

    @pytest.mark.asyncio
    async def test_reads_use_reader(self, temp_dir: Path) -> None:
        settings = AppSettings(db_path=temp_dir / "svc.db")
        manager = Principal.user("manager-1", "FINANCE_MANAGER")

        async with open_services(settings) as services:
            fund = await services.ledger.create_fund("Scholarship", "TEMPORARILY_RESTRICTED", manager)
            funds = await services.ledger.list_funds()

        assert fund.fund_id in {f.fund_id for f in funds}


class TestGenerateRecurring:
    """정기 문서 생성 스크립트"""

    @pytest.mark.asyncio
    async def test_main_generates_once(self, script_settings: Path, temp_dir: Path) -> None:
        manager = Principal.user("manager-1", "FINANCE_MANAGER")
        async with open_services(AppSettings(db_path=temp_dir / "scripts.db")) as services:
            template = await services.recurring.create_template(
                "BILL",
                "landlord-1",
                Decimal("1200"),
                "EXPENSE:RENT",
                Defaults.GENERAL_FUND_ID,
                Frequency.MONTHLY,
                date(2025, 1, 1),
                manager,
            )

        failed = await generate_recurring.main(date(2025, 1, 15), script_settings)
        again = await generate_recurring.main(date(2025, 1, 15), script_settings)

        assert failed == 0
        assert again == 0
        async with open_services(AppSettings(db_path=temp_dir / "scripts.db")) as services:
            bills = await services.ledger.list_transactions(kind="BILL")
            saved = await services.recurring.get_template(template.template_id)
        assert len(bills) == 1
        assert saved.last_generated_date == date(2025, 1, 1)
