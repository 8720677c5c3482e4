"""RecurringGenerator 통합 테스트"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from core.constants import Defaults
from core.domain.errors import (
    DuplicateGenerationError,
    InactiveTemplateError,
    InvalidAmountError,
    LedgerValidationError,
    TemplateNotDueError,
)
from core.domain.events import EventTypes
from core.types import EntityKind, Frequency, Principal
from finance.bootstrap import Services
from finance.recurring import RecurringGenerator
from finance.recurring.generator import first_occurrence, next_occurrence
from finance.recurring.repository import RecurringTemplate

GENERAL = Defaults.GENERAL_FUND_ID
SCHEDULER = Principal.system("recurring-scheduler")


async def _monthly_rent(
    recurring: RecurringGenerator,
    principal: Principal,
    start_date: date = date(2025, 1, 31),
    end_date: date | None = None,
) -> RecurringTemplate:
    return await recurring.create_template(
        "BILL",
        "landlord-1",
        Decimal("1200"),
        "EXPENSE:RENT",
        GENERAL,
        Frequency.MONTHLY,
        start_date,
        principal,
        description="Office rent",
        end_date=end_date,
    )


class TestOccurrences:
    """생성 일자 계산 테스트"""

    def _template(self, frequency: Frequency, start: date, **kwargs) -> RecurringTemplate:
        return RecurringTemplate(
            template_id="tpl-x", kind="BILL", counterparty_id="v", amount=Decimal("1"),
            account_id="EXPENSE:RENT", fund_id=GENERAL, frequency=frequency,
            start_date=start, next_generation_date=start, **kwargs,
        )

    def test_month_end_clamping(self) -> None:
        """1/31 → 2/28 → 3/31"""
        template = self._template(Frequency.MONTHLY, date(2025, 1, 31))

        feb = next_occurrence(template, date(2025, 1, 31))
        mar = next_occurrence(template, feb)

        assert feb == date(2025, 2, 28)
        assert mar == date(2025, 3, 31)

    def test_quarterly_and_annually(self) -> None:
        quarterly = self._template(Frequency.QUARTERLY, date(2024, 11, 30))
        annually = self._template(Frequency.ANNUALLY, date(2024, 2, 29))

        assert next_occurrence(quarterly, date(2024, 11, 30)) == date(2025, 2, 28)
        assert next_occurrence(annually, date(2024, 2, 29)) == date(2025, 2, 28)

    def test_day_steps(self) -> None:
        weekly = self._template(Frequency.BIWEEKLY, date(2025, 1, 1))
        custom = self._template(Frequency.CUSTOM, date(2025, 1, 1), interval_days=10)

        assert next_occurrence(weekly, date(2025, 1, 1)) == date(2025, 1, 15)
        assert next_occurrence(custom, date(2025, 1, 1)) == date(2025, 1, 11)

    def test_first_occurrence_with_day_of_month(self) -> None:
        """시작일 이후 첫 기준 일자"""
        assert first_occurrence(Frequency.MONTHLY, date(2025, 1, 20), 15) == date(2025, 2, 15)
        assert first_occurrence(Frequency.MONTHLY, date(2025, 1, 10), 15) == date(2025, 1, 15)
        assert first_occurrence(Frequency.WEEKLY, date(2025, 1, 10), 15) == date(2025, 1, 10)


class TestCreateTemplate:
    """템플릿 생성 검증"""

    @pytest.mark.asyncio
    async def test_create(self, services: Services, manager: Principal) -> None:
        template = await _monthly_rent(services.recurring, manager)

        assert template.next_generation_date == date(2025, 1, 31)
        saved = await services.recurring.get_template(template.template_id)
        assert saved is not None
        assert saved.frequency == Frequency.MONTHLY
        assert saved.amount == Decimal("1200.00")

    @pytest.mark.asyncio
    async def test_rejects_journal_kind(self, services: Services, manager: Principal) -> None:
        with pytest.raises(LedgerValidationError):
            await services.recurring.create_template(
                "JOURNAL", "x", Decimal("1"), "EXPENSE:RENT", GENERAL,
                Frequency.MONTHLY, date(2025, 1, 1), manager,
            )

    @pytest.mark.asyncio
    async def test_rejects_non_positive(self, services: Services, manager: Principal) -> None:
        with pytest.raises(InvalidAmountError):
            await services.recurring.create_template(
                "BILL", "x", Decimal("0"), "EXPENSE:RENT", GENERAL,
                Frequency.MONTHLY, date(2025, 1, 1), manager,
            )

    @pytest.mark.asyncio
    async def test_custom_requires_interval(self, services: Services, manager: Principal) -> None:
        with pytest.raises(LedgerValidationError):
            await services.recurring.create_template(
                "BILL", "x", Decimal("1"), "EXPENSE:RENT", GENERAL,
                Frequency.CUSTOM, date(2025, 1, 1), manager,
            )


class TestGenerate:
    """문서 생성 테스트"""

    @pytest.mark.asyncio
    async def test_generates_month_end_sequence(self, services: Services, manager: Principal) -> None:
        """1/31, 2/28, 3/31 순서로 생성"""
        template = await _monthly_rent(services.recurring, manager)

        dates = []
        for as_of in (date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)):
            document = await services.recurring.generate(template.template_id, SCHEDULER, as_of=as_of)
            dates.append(document.txn_date)

        assert dates == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)]
        saved = await services.recurring.get_template(template.template_id)
        assert saved.next_generation_date == date(2025, 4, 30)
        assert saved.last_generated_date == date(2025, 3, 31)

    @pytest.mark.asyncio
    async def test_document_fields(self, services: Services, manager: Principal) -> None:
        """생성 문서: BILL, AUTO- 송장 번호, Net 30 만기"""
        template = await _monthly_rent(services.recurring, manager)

        document = await services.recurring.generate(
            template.template_id, SCHEDULER, as_of=date(2025, 1, 31)
        )

        assert document.kind == "BILL"
        assert document.status == "POSTED"
        assert document.invoice_number == f"AUTO-{template.template_id}-20250131"
        assert document.due_date == date(2025, 3, 2)
        assert document.counterparty_id == "landlord-1"
        saved = await services.ledger.find_by_source_key(document.source_key)
        assert saved.transaction_id == document.transaction_id
        assert await services.ledger.fund_balance(GENERAL) == Decimal("-1200.00")

    @pytest.mark.asyncio
    async def test_duplicate_generation(self, services: Services, manager: Principal) -> None:
        """같은 일자 재생성 → DuplicateGenerationError, 문서 1건"""
        template = await _monthly_rent(services.recurring, manager)
        await services.recurring.generate(template.template_id, SCHEDULER, as_of=date(2025, 1, 31))

        with pytest.raises(DuplicateGenerationError):
            await services.recurring.generate(
                template.template_id, SCHEDULER, due_date=date(2025, 1, 31), as_of=date(2025, 1, 31)
            )

        assert len(await services.ledger.list_transactions(kind="BILL")) == 1
        events = await services.ledger.events.get_by_entity(
            EntityKind.TEMPLATE.value, template.template_id
        )
        generated = [e for e in events if e.event_type == EventTypes.DOCUMENT_GENERATED]
        assert len(generated) == 1

    @pytest.mark.asyncio
    async def test_concurrent_generation(self, services: Services, manager: Principal) -> None:
        """같은 일자 동시 생성 5건 → 문서 1건, 나머지 DuplicateGenerationError"""
        template = await _monthly_rent(services.recurring, manager)

        results = await asyncio.gather(
            *(
                services.recurring.generate(
                    template.template_id,
                    SCHEDULER,
                    due_date=template.next_generation_date,
                    as_of=date(2025, 1, 31),
                )
                for _ in range(5)
            ),
            return_exceptions=True,
        )

        documents = [r for r in results if not isinstance(r, BaseException)]
        errors = [r for r in results if isinstance(r, BaseException)]
        assert len(documents) == 1
        assert len(errors) == 4
        assert all(isinstance(e, DuplicateGenerationError) for e in errors)
        assert len(await services.ledger.list_transactions(kind="BILL")) == 1

    @pytest.mark.asyncio
    async def test_not_due(self, services: Services, manager: Principal) -> None:
        template = await _monthly_rent(services.recurring, manager)

        with pytest.raises(TemplateNotDueError):
            await services.recurring.generate(template.template_id, SCHEDULER, as_of=date(2025, 1, 30))

    @pytest.mark.asyncio
    async def test_end_date_deactivates(self, services: Services, manager: Principal) -> None:
        """종료일 이후 다음 일자 → 비활성화"""
        template = await _monthly_rent(services.recurring, manager, end_date=date(2025, 2, 28))

        await services.recurring.generate(template.template_id, SCHEDULER, as_of=date(2025, 1, 31))
        await services.recurring.generate(template.template_id, SCHEDULER, as_of=date(2025, 2, 28))

        saved = await services.recurring.get_template(template.template_id)
        assert not saved.is_active
        with pytest.raises(InactiveTemplateError):
            await services.recurring.generate(template.template_id, SCHEDULER, as_of=date(2025, 3, 31))

    @pytest.mark.asyncio
    async def test_deactivate_template(self, services: Services, manager: Principal) -> None:
        template = await _monthly_rent(services.recurring, manager)
        await services.recurring.deactivate_template(template.template_id, manager)

        assert await services.recurring.due_templates(date(2025, 12, 31)) == []
        assert await services.recurring.list_templates(active_only=True) == []


class TestRunDue:
    """run_due 테스트"""

    @pytest.mark.asyncio
    async def test_runs_only_due(self, services: Services, manager: Principal) -> None:
        due = await _monthly_rent(services.recurring, manager, start_date=date(2025, 1, 5))
        await _monthly_rent(services.recurring, manager, start_date=date(2025, 2, 5))

        result = await services.recurring.run_due(SCHEDULER, as_of=date(2025, 1, 31))

        assert len(result["generated"]) == 1
        assert result["failed"] == []
        saved = await services.recurring.get_template(due.template_id)
        assert saved.next_generation_date == date(2025, 2, 5)

    @pytest.mark.asyncio
    async def test_concurrent_runs(self, services: Services, manager: Principal) -> None:
        """동시에 실행된 run_due → 문서 1건, 늦은 쪽은 건너뛰거나 중복으로 실패 처리"""
        template = await _monthly_rent(services.recurring, manager, start_date=date(2025, 1, 5))

        first, second = await asyncio.gather(
            services.recurring.run_due(SCHEDULER, as_of=date(2025, 1, 31)),
            services.recurring.run_due(SCHEDULER, as_of=date(2025, 1, 31)),
        )

        generated = first["generated"] + second["generated"]
        failed = first["failed"] + second["failed"]
        assert len(generated) == 1
        assert set(failed) <= {template.template_id}
        assert len(await services.ledger.list_transactions(kind="BILL")) == 1

    @pytest.mark.asyncio
    async def test_failure_isolated(self, services: Services, manager: Principal) -> None:
        """한 템플릿 실패는 롤백되고 다른 템플릿은 생성"""
        program = await services.ledger.create_fund("Program", "RESTRICTED", manager)
        ok = await _monthly_rent(services.recurring, manager, start_date=date(2025, 1, 5))
        failing = await services.recurring.create_template(
            "BILL", "vendor-2", Decimal("50"), "EXPENSE:OPERATING", program.fund_id,
            Frequency.MONTHLY, date(2025, 1, 5), manager,
        )
        await services.ledger.set_fund_active(program.fund_id, False, manager)

        result = await services.recurring.run_due(SCHEDULER, as_of=date(2025, 1, 31))

        assert result["failed"] == [failing.template_id]
        assert len(result["generated"]) == 1
        assert (await services.recurring.get_template(ok.template_id)).last_generated_date == date(2025, 1, 5)
        # 실패한 생성은 멱등 키도 남기지 않음
        await services.ledger.set_fund_active(program.fund_id, True, manager)
        document = await services.recurring.generate(
            failing.template_id, SCHEDULER, as_of=date(2025, 1, 31)
        )
        assert document.txn_date == date(2025, 1, 5)
