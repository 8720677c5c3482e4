"""
Tuition Repository

수업료 크레딧, 크레딧 배치, 기관 지급, 지급 배치 테이블 CRUD 처리.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.utils.dates import parse_date
from core.utils.money import ZERO, format_money, parse_money

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class TuitionCredit:
    """수업료 크레딧

    불변식: dpp_portion + family_portion == credit_amount

    Attributes:
        credit_id: 크레딧 ID
        student_id: 학생 ID
        provider_id: 교육 기관 ID
        fund_id: 지급 재원 펀드
        period_start / period_end: 크레딧 기간
        credit_amount: 총 금액
        dpp_portion: 프로그램 부담분 (기관 지급 대상)
        family_portion: 가정 부담분
        status: CreditStatus
        is_adjustment: 취소로 발행된 조정 크레딧 여부
        original_credit_id: 조정 크레딧의 원 크레딧
        batch_id: 소속 배치
    """

    credit_id: str
    student_id: str
    provider_id: str
    fund_id: str
    period_start: date
    period_end: date
    credit_amount: Decimal
    dpp_portion: Decimal
    family_portion: Decimal
    status: str
    student_name: str | None = None
    is_adjustment: bool = False
    original_credit_id: str | None = None
    batch_id: str | None = None
    created_by: str | None = None
    approved_by: str | None = None
    approval_date: date | None = None
    rejection_reason: str | None = None
    void_reason: str | None = None
    accrual_transaction_id: str | None = None
    processed_at: str | None = None
    paid_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "TuitionCredit":
        """DB 행에서 생성"""
        return cls(
            credit_id=row["credit_id"],
            student_id=row["student_id"],
            provider_id=row["provider_id"],
            fund_id=row["fund_id"],
            period_start=parse_date(row["period_start"]),
            period_end=parse_date(row["period_end"]),
            credit_amount=parse_money(row["credit_amount"]),
            dpp_portion=parse_money(row["dpp_portion"]),
            family_portion=parse_money(row["family_portion"]),
            status=row["status"],
            student_name=row.get("student_name"),
            is_adjustment=bool(row["is_adjustment"]),
            original_credit_id=row.get("original_credit_id"),
            batch_id=row.get("batch_id"),
            created_by=row.get("created_by"),
            approved_by=row.get("approved_by"),
            approval_date=parse_date(row.get("approval_date")),
            rejection_reason=row.get("rejection_reason"),
            void_reason=row.get("void_reason"),
            accrual_transaction_id=row.get("accrual_transaction_id"),
            processed_at=row.get("processed_at"),
            paid_at=row.get("paid_at"),
        )


@dataclass
class CreditBatch:
    """크레딧 배치

    total_amount = 소속 크레딧 dpp_portion 합계 (조회 시 계산)
    """

    batch_id: str
    name: str
    period_start: date
    period_end: date
    status: str
    description: str | None = None
    created_by: str | None = None
    approved_by: str | None = None
    processed_by: str | None = None
    processed_at: str | None = None
    accrual_transaction_id: str | None = None
    credit_ids: list[str] = field(default_factory=list)
    provider_ids: list[str] = field(default_factory=list)
    total_amount: Decimal = ZERO

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CreditBatch":
        return cls(
            batch_id=row["batch_id"],
            name=row["name"],
            period_start=parse_date(row["period_start"]),
            period_end=parse_date(row["period_end"]),
            status=row["status"],
            description=row.get("description"),
            created_by=row.get("created_by"),
            approved_by=row.get("approved_by"),
            processed_by=row.get("processed_by"),
            processed_at=row.get("processed_at"),
            accrual_transaction_id=row.get("accrual_transaction_id"),
        )


@dataclass
class ProviderPayment:
    """기관 지급

    크레딧 1건은 유효한(PENDING/PROCESSING/COMPLETED) 지급 1건에만 포함.
    """

    payment_id: str
    provider_id: str
    fund_id: str
    amount: Decimal
    payment_date: date
    status: str
    method: str | None = None
    description: str | None = None
    reference_id: str | None = None
    batch_id: str | None = None
    ledger_transaction_id: str | None = None
    created_by: str | None = None
    processed_at: str | None = None
    failure_reason: str | None = None
    void_reason: str | None = None
    credit_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ProviderPayment":
        return cls(
            payment_id=row["payment_id"],
            provider_id=row["provider_id"],
            fund_id=row["fund_id"],
            amount=parse_money(row["amount"]),
            payment_date=parse_date(row["payment_date"]),
            status=row["status"],
            method=row.get("method"),
            description=row.get("description"),
            reference_id=row.get("reference_id"),
            batch_id=row.get("batch_id"),
            ledger_transaction_id=row.get("ledger_transaction_id"),
            created_by=row.get("created_by"),
            processed_at=row.get("processed_at"),
            failure_reason=row.get("failure_reason"),
            void_reason=row.get("void_reason"),
        )


@dataclass
class PaymentBatch:
    """지급 배치"""

    batch_id: str
    name: str
    batch_date: date
    status: str
    created_by: str | None = None
    processed_by: str | None = None
    processed_at: str | None = None
    payment_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PaymentBatch":
        return cls(
            batch_id=row["batch_id"],
            name=row["name"],
            batch_date=parse_date(row["batch_date"]),
            status=row["status"],
            created_by=row.get("created_by"),
            processed_by=row.get("processed_by"),
            processed_at=row.get("processed_at"),
        )


class TuitionRepository:
    """Tuition Repository

    Args:
        db: SQLiteAdapter 인스턴스
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    # =========================================================================
    # 크레딧
    # =========================================================================

    async def insert_credit(self, credit: TuitionCredit) -> None:
        await self.db.execute(
            """
            INSERT INTO tuition_credit (
                credit_id, student_id, student_name, provider_id, fund_id,
                period_start, period_end, credit_amount, dpp_portion, family_portion,
                status, is_adjustment, original_credit_id, created_by, void_reason
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                credit.credit_id,
                credit.student_id,
                credit.student_name,
                credit.provider_id,
                credit.fund_id,
                credit.period_start.isoformat(),
                credit.period_end.isoformat(),
                format_money(credit.credit_amount),
                format_money(credit.dpp_portion),
                format_money(credit.family_portion),
                credit.status,
                int(credit.is_adjustment),
                credit.original_credit_id,
                credit.created_by,
                credit.void_reason,
            ),
        )
        await self.db.commit()

    async def get_credit(self, credit_id: str) -> TuitionCredit | None:
        row = await self.db.fetch_dict(
            "SELECT * FROM tuition_credit WHERE credit_id = ?",
            (credit_id,),
        )
        return TuitionCredit.from_row(row) if row else None

    async def list_credits(
        self,
        provider_id: str | None = None,
        status: str | None = None,
        batch_id: str | None = None,
    ) -> list[TuitionCredit]:
        sql = "SELECT * FROM tuition_credit WHERE 1=1"
        params: list[Any] = []
        if provider_id:
            sql += " AND provider_id = ?"
            params.append(provider_id)
        if status:
            sql += " AND status = ?"
            params.append(status)
        if batch_id:
            sql += " AND batch_id = ?"
            params.append(batch_id)
        sql += " ORDER BY created_at, credit_id"
        rows = await self.db.fetch_dicts(sql, tuple(params))
        return [TuitionCredit.from_row(r) for r in rows]

    async def update_credit_status(
        self,
        credit_id: str,
        status: str,
        **fields: Any,
    ) -> None:
        """크레딧 상태 변경 (추가 컬럼 함께 갱신)

        Args:
            credit_id: 크레딧 ID
            status: 새 상태
            **fields: approved_by, approval_date, rejection_reason, void_reason,
                accrual_transaction_id, processed_at, paid_at
        """
        allowed = {
            "approved_by",
            "approval_date",
            "rejection_reason",
            "void_reason",
            "accrual_transaction_id",
            "processed_at",
            "paid_at",
        }
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown credit fields: {sorted(unknown)}")

        assignments = ["status = ?", "updated_at = ?"]
        params: list[Any] = [status, _now()]
        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            params.append(value.isoformat() if isinstance(value, date) else value)
        params.append(credit_id)

        await self.db.execute(
            f"UPDATE tuition_credit SET {', '.join(assignments)} WHERE credit_id = ?",
            tuple(params),
        )
        await self.db.commit()

    async def set_credit_batch(self, credit_id: str, batch_id: str | None) -> None:
        await self.db.execute(
            "UPDATE tuition_credit SET batch_id = ?, updated_at = ? WHERE credit_id = ?",
            (batch_id, _now(), credit_id),
        )
        await self.db.commit()

    async def active_payment_for_credit(self, credit_id: str) -> str | None:
        """크레딧을 점유 중인 지급 ID"""
        row = await self.db.fetchone(
            """
            SELECT payment_id FROM provider_payment_credit
            WHERE credit_id = ? AND is_active = 1
            """,
            (credit_id,),
        )
        return row[0] if row else None

    # =========================================================================
    # 크레딧 배치
    # =========================================================================

    async def insert_batch(self, batch: CreditBatch) -> None:
        await self.db.execute(
            """
            INSERT INTO tuition_credit_batch (
                batch_id, name, description, period_start, period_end, status, created_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                batch.batch_id,
                batch.name,
                batch.description,
                batch.period_start.isoformat(),
                batch.period_end.isoformat(),
                batch.status,
                batch.created_by,
            ),
        )
        await self.db.commit()

    async def get_batch(self, batch_id: str) -> CreditBatch | None:
        """배치 조회 (소속 크레딧 ID와 합계 포함)"""
        row = await self.db.fetch_dict(
            "SELECT * FROM tuition_credit_batch WHERE batch_id = ?",
            (batch_id,),
        )
        if row is None:
            return None
        batch = CreditBatch.from_row(row)
        members = await self.db.fetchall(
            "SELECT credit_id, provider_id, dpp_portion FROM tuition_credit WHERE batch_id = ? ORDER BY credit_id",
            (batch_id,),
        )
        batch.credit_ids = [m[0] for m in members]
        batch.provider_ids = sorted({m[1] for m in members})
        batch.total_amount = sum((parse_money(m[2]) for m in members), ZERO)
        return batch

    async def update_batch(self, batch_id: str, status: str, **fields: Any) -> None:
        allowed = {"approved_by", "processed_by", "processed_at", "accrual_transaction_id"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown batch fields: {sorted(unknown)}")

        assignments = ["status = ?", "updated_at = ?"]
        params: list[Any] = [status, _now()]
        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            params.append(value)
        params.append(batch_id)

        await self.db.execute(
            f"UPDATE tuition_credit_batch SET {', '.join(assignments)} WHERE batch_id = ?",
            tuple(params),
        )
        await self.db.commit()

    # =========================================================================
    # 기관 지급
    # =========================================================================

    async def insert_payment(self, payment: ProviderPayment) -> None:
        """지급 + 크레딧 연결 생성"""
        await self.db.execute(
            """
            INSERT INTO provider_payment (
                payment_id, provider_id, fund_id, amount, payment_date,
                method, status, description, created_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                payment.payment_id,
                payment.provider_id,
                payment.fund_id,
                format_money(payment.amount),
                payment.payment_date.isoformat(),
                payment.method,
                payment.status,
                payment.description,
                payment.created_by,
            ),
        )
        await self.db.executemany(
            "INSERT INTO provider_payment_credit (payment_id, credit_id) VALUES (?, ?)",
            [(payment.payment_id, credit_id) for credit_id in payment.credit_ids],
        )
        await self.db.commit()

    async def get_payment(self, payment_id: str) -> ProviderPayment | None:
        """지급 조회 (연결된 크레딧 ID 포함, 해제된 연결 포함)"""
        row = await self.db.fetch_dict(
            "SELECT * FROM provider_payment WHERE payment_id = ?",
            (payment_id,),
        )
        if row is None:
            return None
        payment = ProviderPayment.from_row(row)
        links = await self.db.fetchall(
            "SELECT credit_id FROM provider_payment_credit WHERE payment_id = ? ORDER BY credit_id",
            (payment_id,),
        )
        payment.credit_ids = [link[0] for link in links]
        return payment

    async def list_payments(
        self,
        provider_id: str | None = None,
        status: str | None = None,
        batch_id: str | None = None,
    ) -> list[ProviderPayment]:
        sql = "SELECT payment_id FROM provider_payment WHERE 1=1"
        params: list[Any] = []
        if provider_id:
            sql += " AND provider_id = ?"
            params.append(provider_id)
        if status:
            sql += " AND status = ?"
            params.append(status)
        if batch_id:
            sql += " AND batch_id = ?"
            params.append(batch_id)
        sql += " ORDER BY payment_date, created_at"
        rows = await self.db.fetchall(sql, tuple(params))
        payments = []
        for (payment_id,) in rows:
            payment = await self.get_payment(payment_id)
            if payment is not None:
                payments.append(payment)
        return payments

    async def update_payment(self, payment_id: str, status: str, **fields: Any) -> None:
        allowed = {
            "reference_id",
            "batch_id",
            "ledger_transaction_id",
            "processed_at",
            "failure_reason",
            "void_reason",
            "voided_at",
        }
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown payment fields: {sorted(unknown)}")

        assignments = ["status = ?", "updated_at = ?"]
        params: list[Any] = [status, _now()]
        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            params.append(value)
        params.append(payment_id)

        await self.db.execute(
            f"UPDATE provider_payment SET {', '.join(assignments)} WHERE payment_id = ?",
            tuple(params),
        )
        await self.db.commit()

    async def release_credits(self, payment_id: str) -> None:
        """지급-크레딧 연결 해제 (FAILED/VOIDED)"""
        await self.db.execute(
            "UPDATE provider_payment_credit SET is_active = 0 WHERE payment_id = ?",
            (payment_id,),
        )
        await self.db.commit()

    # =========================================================================
    # 지급 배치
    # =========================================================================

    async def insert_payment_batch(self, batch: PaymentBatch) -> None:
        await self.db.execute(
            """
            INSERT INTO provider_payment_batch (batch_id, name, batch_date, status, created_by)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                batch.batch_id,
                batch.name,
                batch.batch_date.isoformat(),
                batch.status,
                batch.created_by,
            ),
        )
        await self.db.commit()

    async def get_payment_batch(self, batch_id: str) -> PaymentBatch | None:
        row = await self.db.fetch_dict(
            "SELECT * FROM provider_payment_batch WHERE batch_id = ?",
            (batch_id,),
        )
        if row is None:
            return None
        batch = PaymentBatch.from_row(row)
        rows = await self.db.fetchall(
            "SELECT payment_id FROM provider_payment WHERE batch_id = ? ORDER BY payment_id",
            (batch_id,),
        )
        batch.payment_ids = [r[0] for r in rows]
        return batch

    async def update_payment_batch(
        self,
        batch_id: str,
        status: str,
        processed_by: str | None = None,
    ) -> None:
        await self.db.execute(
            """
            UPDATE provider_payment_batch
            SET status = ?, processed_by = ?, processed_at = ?, updated_at = ?
            WHERE batch_id = ?
            """,
            (status, processed_by, _now(), _now(), batch_id),
        )
        await self.db.commit()

    # =========================================================================
    # 보고서
    # =========================================================================

    async def credit_totals_by_provider(
        self,
        provider_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """기관/상태별 크레딧 건수와 금액 (조정 크레딧 제외)"""
        sql = """
            SELECT provider_id, status, credit_amount, dpp_portion, family_portion
            FROM tuition_credit
            WHERE is_adjustment = 0
        """
        params: tuple[Any, ...] = ()
        if provider_id:
            sql += " AND provider_id = ?"
            params = (provider_id,)
        return await self.db.fetch_dicts(sql, params)
