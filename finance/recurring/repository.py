"""
Recurring Template Repository

recurring_template 테이블 CRUD 처리.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.types import Frequency
from core.utils.dates import parse_date
from core.utils.money import format_money, parse_money

logger = logging.getLogger(__name__)


@dataclass
class RecurringTemplate:
    """정기 청구서/송장 템플릿

    Attributes:
        template_id: 템플릿 ID
        kind: 생성 문서 유형 (BILL/INVOICE)
        counterparty_id: 거래처 ID (BILL: 공급자, INVOICE: 고객)
        amount: 문서 금액
        account_id: 비용(BILL) 또는 수익(INVOICE) 계정
        fund_id: 귀속 펀드
        frequency: 생성 주기
        day_of_month: 월 단위 주기의 기준 일자 (없으면 start_date의 일자)
        interval_days: CUSTOM 주기 일수
        payment_terms_days: 지급 기한 (None이면 설정 기본값)
        start_date: 시작일
        end_date: 종료일 (이후 날짜는 생성하지 않음)
        next_generation_date: 다음 생성 일자
        last_generated_date: 마지막 생성 일자
        is_active: 활성 여부
    """

    template_id: str
    kind: str
    counterparty_id: str
    amount: Decimal
    account_id: str
    fund_id: str
    frequency: Frequency
    start_date: date
    next_generation_date: date
    description: str | None = None
    day_of_month: int | None = None
    interval_days: int | None = None
    payment_terms_days: int | None = None
    end_date: date | None = None
    last_generated_date: date | None = None
    is_active: bool = True
    created_by: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RecurringTemplate":
        """DB 행에서 생성"""
        return cls(
            template_id=row["template_id"],
            kind=row["kind"],
            counterparty_id=row["counterparty_id"],
            amount=parse_money(row["amount"]),
            account_id=row["account_id"],
            fund_id=row["fund_id"],
            frequency=Frequency(row["frequency"]),
            start_date=parse_date(row["start_date"]),
            next_generation_date=parse_date(row["next_generation_date"]),
            description=row.get("description"),
            day_of_month=row.get("day_of_month"),
            interval_days=row.get("interval_days"),
            payment_terms_days=row.get("payment_terms_days"),
            end_date=parse_date(row.get("end_date")),
            last_generated_date=parse_date(row.get("last_generated_date")),
            is_active=bool(row["is_active"]),
            created_by=row.get("created_by"),
        )


class RecurringTemplateRepository:
    """Recurring Template Repository

    Args:
        db: SQLiteAdapter 인스턴스
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    async def insert(self, template: RecurringTemplate) -> None:
        await self.db.execute(
            """
            INSERT INTO recurring_template (
                template_id, kind, counterparty_id, description, amount,
                account_id, fund_id, frequency, day_of_month, interval_days,
                payment_terms_days, start_date, end_date, next_generation_date,
                last_generated_date, is_active, created_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                template.template_id,
                template.kind,
                template.counterparty_id,
                template.description,
                format_money(template.amount),
                template.account_id,
                template.fund_id,
                template.frequency.value,
                template.day_of_month,
                template.interval_days,
                template.payment_terms_days,
                template.start_date.isoformat(),
                template.end_date.isoformat() if template.end_date else None,
                template.next_generation_date.isoformat(),
                None,
                int(template.is_active),
                template.created_by,
            ),
        )
        await self.db.commit()

    async def get(self, template_id: str) -> RecurringTemplate | None:
        """템플릿 조회"""
        row = await self.db.fetch_dict(
            "SELECT * FROM recurring_template WHERE template_id = ?",
            (template_id,),
        )
        return RecurringTemplate.from_row(row) if row else None

    async def list_templates(
        self,
        kind: str | None = None,
        active_only: bool = False,
    ) -> list[RecurringTemplate]:
        sql = "SELECT * FROM recurring_template WHERE 1=1"
        params: list[Any] = []
        if kind:
            sql += " AND kind = ?"
            params.append(kind)
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY next_generation_date, template_id"
        rows = await self.db.fetch_dicts(sql, tuple(params))
        return [RecurringTemplate.from_row(r) for r in rows]

    async def get_due(self, as_of: date) -> list[RecurringTemplate]:
        """생성 대상 템플릿 (활성 + next_generation_date <= as_of)"""
        rows = await self.db.fetch_dicts(
            """
            SELECT * FROM recurring_template
            WHERE is_active = 1 AND next_generation_date <= ?
            ORDER BY next_generation_date, template_id
            """,
            (as_of.isoformat(),),
        )
        return [RecurringTemplate.from_row(r) for r in rows]

    async def advance(
        self,
        template_id: str,
        expected_next: date,
        new_next: date,
        generated_date: date,
        deactivate: bool = False,
    ) -> bool:
        """다음 생성 일자 전진 (compare-and-set)

        next_generation_date가 expected_next일 때만 갱신.

        Returns:
            갱신 여부 (False면 다른 호출자가 먼저 생성함)
        """
        cursor = await self.db.execute(
            """
            UPDATE recurring_template
            SET next_generation_date = ?,
                last_generated_date = ?,
                is_active = CASE WHEN ? THEN 0 ELSE is_active END,
                updated_at = ?
            WHERE template_id = ? AND next_generation_date = ? AND is_active = 1
            """,
            (
                new_next.isoformat(),
                generated_date.isoformat(),
                int(deactivate),
                datetime.now(timezone.utc).isoformat(),
                template_id,
                expected_next.isoformat(),
            ),
        )
        await self.db.commit()
        return cursor.rowcount == 1

    async def deactivate(self, template_id: str) -> bool:
        cursor = await self.db.execute(
            """
            UPDATE recurring_template
            SET is_active = 0, updated_at = ?
            WHERE template_id = ? AND is_active = 1
            """,
            (datetime.now(timezone.utc).isoformat(), template_id),
        )
        await self.db.commit()
        return cursor.rowcount == 1
