"""
정기 문서 생성기

정기 템플릿에서 일자별 청구서(BILL)/송장(INVOICE)을 생성해 전기.

멱등성:
- (template_id, next_generation_date)당 문서 1건
- event_store.dedup_key UNIQUE + next_generation_date compare-and-set
- 생성 문서의 source_key UNIQUE
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import uuid4

from core.config.loader import RecurringConfig
from core.domain.errors import (
    DuplicateGenerationError,
    EntityNotFoundError,
    InactiveTemplateError,
    InvalidAmountError,
    LedgerError,
    LedgerValidationError,
    TemplateNotDueError,
)
from core.domain.events import Event, EventTypes
from core.ledger.entry_builder import LedgerTransaction
from core.ledger.types import DOCUMENT_KINDS, TransactionKind
from core.types import EntityKind, Frequency, Principal
from core.utils.dates import add_days, add_months, clamp_day
from core.utils.dedup import make_recurring_dedup_key
from core.utils.money import to_money
from finance.recurring.repository import RecurringTemplate, RecurringTemplateRepository

if TYPE_CHECKING:
    from core.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


# 월 단위 주기 (개월 수)
MONTH_STEPS: dict[Frequency, int] = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.ANNUALLY: 12,
}

# 일 단위 주기 (일수)
DAY_STEPS: dict[Frequency, int] = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
}


def next_occurrence(template: RecurringTemplate, current: date) -> date:
    """current 다음 생성 일자

    월 단위 주기는 day_of_month(없으면 시작일의 일자)를 기준으로 하고,
    해당 월에 그 일자가 없으면 말일로 조정 (1/31 → 2/28 → 3/31).
    """
    if template.frequency in MONTH_STEPS:
        anchor = template.day_of_month or template.start_date.day
        return add_months(current, MONTH_STEPS[template.frequency], anchor)
    if template.frequency in DAY_STEPS:
        return add_days(current, DAY_STEPS[template.frequency])
    if not template.interval_days:
        raise LedgerValidationError(
            "CUSTOM frequency requires interval_days",
            template_id=template.template_id,
        )
    return add_days(current, template.interval_days)


def first_occurrence(
    frequency: Frequency,
    start_date: date,
    day_of_month: int | None,
) -> date:
    """시작일 이후 첫 생성 일자"""
    if frequency not in MONTH_STEPS or day_of_month is None:
        return start_date
    candidate = clamp_day(start_date.year, start_date.month, day_of_month)
    if candidate < start_date:
        candidate = add_months(start_date, 1, day_of_month)
    return candidate


class RecurringGenerator:
    """정기 문서 생성기

    스스로 스케줄링하지 않음. 외부 스케줄러가 due_templates()로 조회 후
    템플릿별 generate() 호출.

    Args:
        ledger: 원장 저장소 (문서 전기)
        config: 정기 템플릿 설정
    """

    def __init__(self, ledger: LedgerStore, config: RecurringConfig | None = None):
        self.ledger = ledger
        self.db = ledger.db
        self.config = config or RecurringConfig()
        self.repository = RecurringTemplateRepository(ledger.db)

    # =========================================================================
    # 템플릿
    # =========================================================================

    async def create_template(
        self,
        kind: TransactionKind | str,
        counterparty_id: str,
        amount: Decimal,
        account_id: str,
        fund_id: str,
        frequency: Frequency | str,
        start_date: date,
        principal: Principal,
        description: str | None = None,
        day_of_month: int | None = None,
        interval_days: int | None = None,
        payment_terms_days: int | None = None,
        end_date: date | None = None,
    ) -> RecurringTemplate:
        """템플릿 생성

        Raises:
            LedgerValidationError: 유형/주기/일자 오류
            InvalidAmountError: 0 이하 금액
            EntityNotFoundError: 계정/펀드 없음
        """
        kind = TransactionKind(kind).value
        if kind not in DOCUMENT_KINDS:
            raise LedgerValidationError(
                f"Recurring templates generate bills or invoices, not {kind}",
                kind=kind,
            )
        frequency = Frequency(frequency)
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError("Template amount must be positive", amount=amount)
        if day_of_month is not None and not 1 <= day_of_month <= 31:
            raise LedgerValidationError(
                "day_of_month must be between 1 and 31",
                day_of_month=day_of_month,
            )
        if frequency == Frequency.CUSTOM and not (interval_days and interval_days > 0):
            raise LedgerValidationError(
                "CUSTOM frequency requires positive interval_days",
                interval_days=interval_days,
            )
        if end_date and end_date < start_date:
            raise LedgerValidationError(
                "Template end_date precedes start_date",
                start_date=start_date,
                end_date=end_date,
            )
        if await self.ledger.get_account(account_id) is None:
            raise EntityNotFoundError(f"Account not found: {account_id}", account_id=account_id)
        await self.ledger.require_fund(fund_id)

        template = RecurringTemplate(
            template_id=f"tpl-{uuid4().hex[:12]}",
            kind=kind,
            counterparty_id=counterparty_id,
            amount=amount,
            account_id=account_id,
            fund_id=fund_id,
            frequency=frequency,
            start_date=start_date,
            next_generation_date=first_occurrence(frequency, start_date, day_of_month),
            description=description,
            day_of_month=day_of_month,
            interval_days=interval_days,
            payment_terms_days=payment_terms_days,
            end_date=end_date,
            created_by=principal.user_id,
        )

        async with self.db.transaction():
            await self.repository.insert(template)
            await self.ledger.record_event(
                EventTypes.TEMPLATE_CREATED,
                EntityKind.TEMPLATE,
                template.template_id,
                principal,
                {
                    "kind": kind,
                    "frequency": frequency.value,
                    "amount": amount,
                    "next_generation_date": template.next_generation_date,
                },
            )

        logger.info(
            "정기 템플릿 생성",
            extra={
                "template_id": template.template_id,
                "frequency": frequency.value,
                "next_generation_date": template.next_generation_date.isoformat(),
            },
        )
        return template

    async def get_template(self, template_id: str) -> RecurringTemplate | None:
        return await self.repository.get(template_id)

    async def list_templates(
        self,
        kind: str | None = None,
        active_only: bool = False,
    ) -> list[RecurringTemplate]:
        return await self.repository.list_templates(kind, active_only)

    async def deactivate_template(self, template_id: str, principal: Principal) -> RecurringTemplate:
        """템플릿 비활성화 (삭제하지 않음)"""
        async with self.db.transaction():
            template = await self._require(template_id)
            if await self.repository.deactivate(template_id):
                await self.ledger.record_event(
                    EventTypes.TEMPLATE_DEACTIVATED,
                    EntityKind.TEMPLATE,
                    template_id,
                    principal,
                    {"reason": "manual"},
                )
            template.is_active = False
        return template

    async def _require(self, template_id: str) -> RecurringTemplate:
        template = await self.repository.get(template_id)
        if template is None:
            raise EntityNotFoundError(
                f"Template not found: {template_id}",
                template_id=template_id,
            )
        return template

    # =========================================================================
    # 생성
    # =========================================================================

    async def due_templates(self, as_of: date | None = None) -> list[RecurringTemplate]:
        """생성 대상 템플릿 (활성 + next_generation_date <= as_of)"""
        return await self.repository.get_due(as_of or date.today())

    async def generate(
        self,
        template_id: str,
        principal: Principal,
        due_date: date | None = None,
        as_of: date | None = None,
    ) -> LedgerTransaction:
        """템플릿 1회 생성

        next_generation_date 일자의 문서를 전기하고 다음 일자로 전진.
        문서 전기와 일자 전진은 하나의 트랜잭션.

        Args:
            template_id: 템플릿 ID
            principal: 실행 주체
            due_date: 생성 대상 일자 (None이면 next_generation_date)
            as_of: 기준일 (기본: 오늘)

        Returns:
            생성된 청구서/송장

        Raises:
            InactiveTemplateError: 비활성 템플릿
            TemplateNotDueError: 아직 생성 일자가 아님
            DuplicateGenerationError: 해당 일자 문서가 이미 생성됨
        """
        as_of = as_of or date.today()

        async with self.db.transaction():
            template = await self._require(template_id)
            target = due_date or template.next_generation_date

            if template.last_generated_date and target <= template.last_generated_date:
                raise DuplicateGenerationError(
                    f"Template {template_id} already generated for {target}",
                    template_id=template_id,
                    due_date=target,
                    last_generated_date=template.last_generated_date,
                )
            if not template.is_active:
                raise InactiveTemplateError(
                    f"Template is inactive: {template_id}",
                    template_id=template_id,
                )
            if target != template.next_generation_date or target > as_of:
                raise TemplateNotDueError(
                    f"Template {template_id} is not due for {target}",
                    template_id=template_id,
                    due_date=target,
                    next_generation_date=template.next_generation_date,
                    as_of=as_of,
                )

            dedup_key = make_recurring_dedup_key(template_id, target)
            appended = await self.ledger.events.append(
                Event.create(
                    event_type=EventTypes.DOCUMENT_GENERATED,
                    entity_kind=EntityKind.TEMPLATE.value,
                    entity_id=template_id,
                    actor_id=principal.user_id,
                    payload={"due_date": target.isoformat()},
                    dedup_key=dedup_key,
                )
            )
            if not appended:
                raise DuplicateGenerationError(
                    f"Template {template_id} already generated for {target}",
                    template_id=template_id,
                    due_date=target,
                )

            document = self._build_document(template, target, dedup_key)
            document.created_by = principal.user_id
            await self.ledger.post(document, principal)

            next_date = next_occurrence(template, target)
            finished = template.end_date is not None and next_date > template.end_date
            if not await self.repository.advance(
                template_id, target, next_date, target, deactivate=finished
            ):
                raise DuplicateGenerationError(
                    f"Template {template_id} advanced concurrently",
                    template_id=template_id,
                    due_date=target,
                )
            if finished:
                await self.ledger.record_event(
                    EventTypes.TEMPLATE_DEACTIVATED,
                    EntityKind.TEMPLATE,
                    template_id,
                    principal,
                    {"reason": "end_date", "end_date": template.end_date},
                )

        logger.info(
            "정기 문서 생성",
            extra={
                "template_id": template_id,
                "transaction_id": document.transaction_id,
                "due_date": target.isoformat(),
                "next_generation_date": next_date.isoformat(),
            },
        )
        return document

    def _build_document(
        self,
        template: RecurringTemplate,
        txn_date: date,
        source_key: str,
    ) -> LedgerTransaction:
        terms = template.payment_terms_days
        if terms is None:
            terms = self.config.payment_terms_days
        invoice_number = f"AUTO-{template.template_id}-{txn_date:%Y%m%d}"
        build = (
            self.ledger.builder.bill
            if template.kind == TransactionKind.BILL.value
            else self.ledger.builder.invoice
        )
        document = build(
            txn_date,
            template.counterparty_id,
            template.account_id,
            template.fund_id,
            template.amount,
            due_date=add_days(txn_date, terms),
            invoice_number=invoice_number,
            description=template.description,
        )
        document.source_key = source_key
        return document

    async def run_due(
        self,
        principal: Principal,
        as_of: date | None = None,
    ) -> dict[str, list[str]]:
        """생성 대상 템플릿 전체 처리 (스케줄러 진입점)

        템플릿별로 독립 실행. 한 템플릿의 실패가 다른 템플릿을 막지 않음.
        조회 시점의 생성 일자를 고정해서 넘기므로 동시 실행된 스케줄러는
        DuplicateGenerationError로 실패.

        Returns:
            {"generated": [transaction_id...], "failed": [template_id...]}
        """
        as_of = as_of or date.today()
        result: dict[str, list[str]] = {"generated": [], "failed": []}

        for template in await self.due_templates(as_of):
            try:
                document = await self.generate(
                    template.template_id,
                    principal,
                    due_date=template.next_generation_date,
                    as_of=as_of,
                )
                result["generated"].append(document.transaction_id)
            except LedgerError as e:
                logger.error(
                    f"정기 문서 생성 실패: {template.template_id}",
                    extra={"error": str(e), "kind": e.kind},
                )
                result["failed"].append(template.template_id)

        return result
