"""은행 대사 엔진 통합 테스트"""

from datetime import date
from decimal import Decimal
from typing import Awaitable, Callable

import pytest
import pytest_asyncio

from adapters.models import StatementLine
from core.constants import ControlAccounts, Defaults
from core.domain.errors import (
    AlreadyMatchedError,
    AmountMismatchError,
    InvalidStateTransitionError,
    LedgerValidationError,
    ReconciliationInProgressError,
    UnbalancedReconciliationError,
)
from core.ledger.entry_builder import LedgerEntry, LedgerTransaction
from core.ledger.store import LedgerStore
from core.types import AdjustmentType, Principal
from finance.bootstrap import Services
from finance.reconciliation import BankAccount, ReconciliationEngine

GENERAL = Defaults.GENERAL_FUND_ID
CASH = ControlAccounts.CASH

Contribute = Callable[..., Awaitable[LedgerTransaction]]

JANUARY = (date(2025, 1, 1), date(2025, 1, 31))

STATEMENT = [
    StatementLine(txn_date=date(2025, 1, 3), description="DEPOSIT", amount=Decimal("1000.00")),
    StatementLine(txn_date=date(2025, 1, 11), description="CHECK 101", amount=Decimal("-45.00"), reference="101"),
    StatementLine(txn_date=date(2025, 1, 31), description="MONTHLY SERVICE FEE", amount=Decimal("-5.00")),
]


async def _pay(ledger: LedgerStore, principal: Principal, amount: str, txn_date: date) -> LedgerTransaction:
    """현금 비용 지출: 임차료 (Debit) / 현금 (Credit)"""
    value = Decimal(amount)
    txn = ledger.builder.journal(
        txn_date,
        [
            LedgerEntry.debit("EXPENSE:RENT", GENERAL, value),
            LedgerEntry.credit(CASH, GENERAL, value),
        ],
        description="Rent",
    )
    return await ledger.post(txn, principal)


@pytest.fixture
def engine(services: Services) -> ReconciliationEngine:
    return services.reconciliation


@pytest_asyncio.fixture
async def bank_account(engine: ReconciliationEngine, manager: Principal) -> BankAccount:
    return await engine.register_bank_account("Operating", CASH, GENERAL, manager, bank_account_id="ba-op")


@pytest_asyncio.fixture
async def activity(
    services: Services, manager: Principal, contribute: Contribute
) -> dict[str, LedgerTransaction]:
    """1월 원장 거래: 기부금 1000 입금, 임차료 45 지출"""
    deposit = await contribute("1000")
    rent = await _pay(services.ledger, manager, "45", date(2025, 1, 10))
    return {"deposit": deposit, "rent": rent}


async def _lines(engine: ReconciliationEngine, session_id: str) -> dict[str, str]:
    """적요 → 은행 거래 ID"""
    return {line.description: line.bank_transaction_id for line in await engine.list_bank_transactions(session_id)}


class TestBankAccounts:
    """은행 계좌 등록"""

    @pytest.mark.asyncio
    async def test_register(self, engine: ReconciliationEngine, bank_account: BankAccount) -> None:
        saved = await engine.get_bank_account("ba-op")

        assert saved == bank_account
        assert saved.account_id == CASH
        assert saved.fund_id == GENERAL

    @pytest.mark.asyncio
    async def test_requires_asset_account(self, engine: ReconciliationEngine, manager: Principal) -> None:
        with pytest.raises(LedgerValidationError):
            await engine.register_bank_account("Rent", "EXPENSE:RENT", GENERAL, manager)


class TestSessions:
    """세션 시작 / 명세서 가져오기"""

    @pytest.mark.asyncio
    async def test_one_open_session_per_account(
        self, engine: ReconciliationEngine, bank_account: BankAccount, manager: Principal
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        assert session.status == "DRAFT"

        with pytest.raises(ReconciliationInProgressError) as exc_info:
            await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        assert exc_info.value.details["session_id"] == session.session_id

    @pytest.mark.asyncio
    async def test_import_is_idempotent(
        self, engine: ReconciliationEngine, bank_account: BankAccount, manager: Principal
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)

        first = await engine.import_statement(session.session_id, STATEMENT, manager)
        second = await engine.import_statement(session.session_id, STATEMENT, manager)

        assert first == {"created": 3, "skipped": 0}
        assert second == {"created": 0, "skipped": 3}
        assert len(await engine.list_bank_transactions(session.session_id)) == 3

    @pytest.mark.asyncio
    async def test_identical_lines_kept_apart(
        self, engine: ReconciliationEngine, bank_account: BankAccount, manager: Principal
    ) -> None:
        """같은 날 같은 금액·적요의 라인 2건은 각각 생성"""
        session = await engine.start_session("ba-op", Decimal("0"), *JANUARY, manager)
        fee = StatementLine(txn_date=date(2025, 1, 15), description="ATM FEE", amount=Decimal("-2.50"))

        result = await engine.import_statement(session.session_id, [fee, fee], manager)

        assert result == {"created": 2, "skipped": 0}

    @pytest.mark.asyncio
    async def test_line_outside_period(
        self, engine: ReconciliationEngine, bank_account: BankAccount, manager: Principal
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        stray = StatementLine(txn_date=date(2025, 2, 1), description="DEPOSIT", amount=Decimal("10"))

        with pytest.raises(LedgerValidationError):
            await engine.import_statement(session.session_id, [*STATEMENT, stray], manager)
        assert await engine.list_bank_transactions(session.session_id) == []

    @pytest.mark.asyncio
    async def test_end_before_start(
        self, engine: ReconciliationEngine, bank_account: BankAccount, manager: Principal
    ) -> None:
        with pytest.raises(LedgerValidationError):
            await engine.start_session("ba-op", Decimal("0"), date(2025, 1, 31), date(2025, 1, 1), manager)


class TestMatching:
    """매칭 / 조정 분개"""

    @pytest.mark.asyncio
    async def test_candidates(
        self,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        """출금 라인 후보는 같은 부호의 현금 거래만"""
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)

        candidates = await engine.find_match_candidates(ids["CHECK 101"])

        assert [c["transaction_id"] for c in candidates] == [activity["rent"].transaction_id]
        assert candidates[0]["amount"] == Decimal("-45.00")
        assert candidates[0]["difference"] == Decimal("0.00")
        assert candidates[0]["days_apart"] == 1

    @pytest.mark.asyncio
    async def test_voided_not_candidate(
        self,
        services: Services,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)

        await services.ledger.void(activity["rent"].transaction_id, manager, "wrong payee", date(2025, 1, 12))

        assert await engine.find_match_candidates(ids["CHECK 101"]) == []

    @pytest.mark.asyncio
    async def test_match(
        self,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)

        matched = await engine.match(ids["CHECK 101"], activity["rent"].transaction_id, manager)

        assert matched.match_status == "MATCHED"
        assert matched.matched_transaction_id == activity["rent"].transaction_id
        assert (await engine.get_session(session.session_id)).status == "IN_PROGRESS"
        # 매칭된 거래는 더 이상 후보가 아님
        assert await engine.find_match_candidates(ids["CHECK 101"]) == []

    @pytest.mark.asyncio
    async def test_amount_mismatch(
        self,
        services: Services,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        """-45 은행 라인 vs 40 원장 지출"""
        short = await _pay(services.ledger, manager, "40", date(2025, 1, 11))
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)

        with pytest.raises(AmountMismatchError) as exc_info:
            await engine.match(ids["CHECK 101"], short.transaction_id, manager)

        assert exc_info.value.details["difference"] == Decimal("-5.00")
        line = await engine.require_bank_transaction(ids["CHECK 101"])
        assert line.match_status == "UNMATCHED"

    @pytest.mark.asyncio
    async def test_transaction_matched_once(
        self,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        lines = [
            StatementLine(txn_date=date(2025, 1, 11), description="CHECK 101", amount=Decimal("-45.00")),
            StatementLine(txn_date=date(2025, 1, 12), description="CHECK 101 DUP", amount=Decimal("-45.00")),
        ]
        await engine.import_statement(session.session_id, lines, manager)
        ids = await _lines(engine, session.session_id)
        await engine.match(ids["CHECK 101"], activity["rent"].transaction_id, manager)

        with pytest.raises(AlreadyMatchedError):
            await engine.match(ids["CHECK 101 DUP"], activity["rent"].transaction_id, manager)
        with pytest.raises(AlreadyMatchedError):
            await engine.match(ids["CHECK 101"], activity["rent"].transaction_id, manager)

    @pytest.mark.asyncio
    async def test_adjustment_for_bank_fee(
        self,
        services: Services,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        """원장에 없는 수수료 → 조정 분개 생성 후 매칭"""
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)

        txn = await engine.create_adjustment(
            ids["MONTHLY SERVICE FEE"], "EXPENSE:BANK_FEES", AdjustmentType.EXPENSE, Decimal("5"), manager
        )

        assert txn.kind == "BANK_ADJUSTMENT"
        assert txn.txn_date == date(2025, 1, 31)
        assert await services.ledger.account_balance("EXPENSE:BANK_FEES") == Decimal("5.00")
        line = await engine.require_bank_transaction(ids["MONTHLY SERVICE FEE"])
        assert line.match_status == "MATCHED"
        assert line.matched_transaction_id == txn.transaction_id

    @pytest.mark.asyncio
    async def test_adjustment_validation(
        self,
        services: Services,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        manager: Principal,
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)
        fee = ids["MONTHLY SERVICE FEE"]

        # 유형과 계정 불일치
        with pytest.raises(LedgerValidationError):
            await engine.create_adjustment(fee, "REVENUE:INTEREST", AdjustmentType.EXPENSE, Decimal("5"), manager)
        # 수익 조정은 입금 라인에만 맞음
        with pytest.raises(AmountMismatchError):
            await engine.create_adjustment(fee, "REVENUE:INTEREST", AdjustmentType.REVENUE, Decimal("5"), manager)
        assert await services.ledger.list_transactions(kind="BANK_ADJUSTMENT") == []

    @pytest.mark.asyncio
    async def test_matched_adjustment_void_requires_unmatch(
        self,
        services: Services,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        manager: Principal,
    ) -> None:
        """매칭된 조정 분개는 직접 취소 불가, 매칭 해제 후에는 취소 가능"""
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)
        fee = ids["MONTHLY SERVICE FEE"]
        txn = await engine.create_adjustment(
            fee, "EXPENSE:BANK_FEES", AdjustmentType.EXPENSE, Decimal("5"), manager
        )

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await services.ledger.void(txn.transaction_id, manager, "wrong account")

        assert exc_info.value.details["bank_transaction_id"] == fee
        assert (await services.ledger.get_transaction(txn.transaction_id)).status == "POSTED"
        assert await services.ledger.account_balance("EXPENSE:BANK_FEES") == Decimal("5.00")
        assert (await engine.require_bank_transaction(fee)).matched_transaction_id == txn.transaction_id

        await engine.unmatch(fee, manager)
        await services.ledger.void(txn.transaction_id, manager, "wrong account", date(2025, 1, 31))

        assert await services.ledger.account_balance("EXPENSE:BANK_FEES") == Decimal("0.00")
        # 취소된 조정 분개는 재매칭 후보가 아님
        assert await engine.find_match_candidates(fee) == []

    @pytest.mark.asyncio
    async def test_mark_reconciled_and_unmatch(
        self,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)

        reconciled = await engine.mark_reconciled(ids["DEPOSIT"], manager, notes="cleared by phone")
        assert reconciled.match_status == "RECONCILED"
        assert reconciled.notes == "cleared by phone"

        matched = await engine.match(ids["CHECK 101"], activity["rent"].transaction_id, manager)
        unmatched = await engine.unmatch(matched.bank_transaction_id, manager)

        assert unmatched.match_status == "UNMATCHED"
        assert unmatched.matched_transaction_id is None
        # 해제된 원장 거래는 다시 후보
        candidates = await engine.find_match_candidates(ids["CHECK 101"])
        assert [c["transaction_id"] for c in candidates] == [activity["rent"].transaction_id]

        with pytest.raises(InvalidStateTransitionError):
            await engine.unmatch(ids["MONTHLY SERVICE FEE"], manager)


class TestCompletion:
    """세션 완료 / 포기"""

    async def _reconcile_all(
        self,
        engine: ReconciliationEngine,
        session_id: str,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        await engine.import_statement(session_id, STATEMENT, manager)
        ids = await _lines(engine, session_id)
        await engine.match(ids["DEPOSIT"], activity["deposit"].transaction_id, manager)
        await engine.match(ids["CHECK 101"], activity["rent"].transaction_id, manager)
        await engine.create_adjustment(
            ids["MONTHLY SERVICE FEE"], "EXPENSE:BANK_FEES", AdjustmentType.EXPENSE, Decimal("5"), manager
        )

    @pytest.mark.asyncio
    async def test_complete(
        self,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        """1000 - 45 - 5 = 950"""
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await self._reconcile_all(engine, session.session_id, activity, manager)

        completed = await engine.complete(session.session_id, manager)

        assert completed.status == "COMPLETED"
        assert completed.book_balance == Decimal("950.00")
        assert completed.completed_by == "manager-1"
        # 완료 후 같은 계좌에 새 세션 시작 가능
        await engine.start_session("ba-op", Decimal("950"), date(2025, 2, 1), date(2025, 2, 28), manager)

    @pytest.mark.asyncio
    async def test_unmatched_lines_block_completion(
        self,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)

        with pytest.raises(UnbalancedReconciliationError) as exc_info:
            await engine.complete(session.session_id, manager)

        assert sorted(exc_info.value.details["unmatched_ids"]) == sorted(ids.values())
        assert (await engine.get_session(session.session_id)).status == "DRAFT"

    @pytest.mark.asyncio
    async def test_balance_difference_blocks_completion(
        self,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("960"), *JANUARY, manager)
        await self._reconcile_all(engine, session.session_id, activity, manager)

        with pytest.raises(UnbalancedReconciliationError) as exc_info:
            await engine.complete(session.session_id, manager)

        assert exc_info.value.details["difference"] == Decimal("10.00")
        assert exc_info.value.details["unmatched_ids"] == []
        assert (await engine.get_session(session.session_id)).status == "IN_PROGRESS"

    @pytest.mark.asyncio
    async def test_completed_session_is_closed(
        self,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await self._reconcile_all(engine, session.session_id, activity, manager)
        await engine.complete(session.session_id, manager)
        ids = await _lines(engine, session.session_id)

        with pytest.raises(InvalidStateTransitionError):
            await engine.unmatch(ids["CHECK 101"], manager)
        with pytest.raises(InvalidStateTransitionError):
            await engine.import_statement(session.session_id, STATEMENT, manager)

    @pytest.mark.asyncio
    async def test_abandon_releases_unmatched_lines(
        self,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        """포기한 세션의 미매칭 라인은 다음 세션에서 다시 가져옴"""
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)
        await engine.match(ids["CHECK 101"], activity["rent"].transaction_id, manager)

        abandoned = await engine.abandon_session(session.session_id, manager)
        assert abandoned.status == "ABANDONED"
        assert list(await _lines(engine, session.session_id)) == ["CHECK 101"]

        retry = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        result = await engine.import_statement(retry.session_id, STATEMENT, manager)

        assert result == {"created": 2, "skipped": 1}
        retry_ids = await _lines(engine, retry.session_id)
        assert retry_ids["DEPOSIT"] == ids["DEPOSIT"]

    @pytest.mark.asyncio
    async def test_session_summary(
        self,
        engine: ReconciliationEngine,
        bank_account: BankAccount,
        activity: dict[str, LedgerTransaction],
        manager: Principal,
    ) -> None:
        session = await engine.start_session("ba-op", Decimal("950"), *JANUARY, manager)
        await engine.import_statement(session.session_id, STATEMENT, manager)
        ids = await _lines(engine, session.session_id)
        await engine.match(ids["CHECK 101"], activity["rent"].transaction_id, manager)

        summary = await engine.session_summary(session.session_id)

        assert summary["status"] == "IN_PROGRESS"
        assert summary["counts"] == {"UNMATCHED": 2, "MATCHED": 1, "RECONCILED": 0}
        assert summary["totals"]["UNMATCHED"] == Decimal("995.00")
        assert summary["book_balance"] == Decimal("955.00")
        assert summary["difference"] == Decimal("-5.00")
        assert sorted(summary["unmatched_ids"]) == sorted([ids["DEPOSIT"], ids["MONTHLY SERVICE FEE"]])
