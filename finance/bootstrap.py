"""
서비스 조립

설정(AppSettings)에서 원장 저장소와 업무 서비스를 생성.

사용법:
    async with open_services(get_settings().app) as services:
        await services.recurring.run_due(Principal.system("scheduler"))
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import AppSettings
from core.ledger.schema import init_ledger_schema
from core.ledger.store import LedgerStore
from finance.funds.accounting import FundAccountingService
from finance.reconciliation.engine import ReconciliationEngine
from finance.recurring.generator import RecurringGenerator
from finance.tuition.lifecycle import TuitionCreditService
from finance.tuition.payments import ProviderPaymentService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """업무 서비스 묶음 (하나의 원장 저장소 공유)"""

    ledger: LedgerStore
    funds: FundAccountingService
    recurring: RecurringGenerator
    tuition: TuitionCreditService
    payments: ProviderPaymentService
    reconciliation: ReconciliationEngine


def build_services(
    db: SQLiteAdapter,
    settings: AppSettings | None = None,
    reader: SQLiteAdapter | None = None,
) -> Services:
    """연결된 어댑터로 서비스 생성"""
    settings = settings or AppSettings()
    ledger = LedgerStore(db, settings.ledger, reader=reader)
    funds = FundAccountingService(ledger, settings.funds)
    return Services(
        ledger=ledger,
        funds=funds,
        recurring=RecurringGenerator(ledger, settings.recurring),
        tuition=TuitionCreditService(ledger, settings.tuition),
        payments=ProviderPaymentService(ledger, funds),
        reconciliation=ReconciliationEngine(ledger, settings.reconciliation),
    )


@asynccontextmanager
async def open_services(
    settings: AppSettings,
    db_path: Path | None = None,
    init_schema: bool = True,
) -> AsyncIterator[Services]:
    """DB 연결을 열고 서비스 제공 (종료 시 연결 정리)

    쓰기 연결과 보고서용 읽기 전용 연결을 함께 사용.
    """
    path = db_path or settings.db_path
    async with SQLiteAdapter(path) as db:
        if init_schema:
            await init_ledger_schema(db)
        async with SQLiteAdapter(path, readonly=True) as reader:
            logger.info("서비스 준비 완료", extra={"db_path": str(path)})
            yield build_services(db, settings, reader)
