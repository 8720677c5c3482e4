"""
계정과목/펀드 모델
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from core.utils.dates import parse_date
from core.utils.money import parse_money


@dataclass
class Account:
    """계정과목

    분개가 참조한 뒤에는 번호/유형 변경 불가 (이름/활성 여부만 변경)
    """

    account_id: str
    account_number: str
    account_type: str
    name: str
    description: str | None = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Account":
        return cls(
            account_id=row["account_id"],
            account_number=row["account_number"],
            account_type=row["account_type"],
            name=row["name"],
            description=row.get("description"),
            is_active=bool(row["is_active"]),
        )


@dataclass
class Fund:
    """펀드

    start_date/end_date가 있으면 해당 기간의 거래만 전기 가능
    """

    fund_id: str
    name: str
    fund_type: str
    restriction_details: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True

    def accepts(self, txn_date: date) -> bool:
        """해당 일자 전기 가능 여부"""
        if not self.is_active:
            return False
        if self.start_date and txn_date < self.start_date:
            return False
        if self.end_date and txn_date > self.end_date:
            return False
        return True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Fund":
        return cls(
            fund_id=row["fund_id"],
            name=row["name"],
            fund_type=row["fund_type"],
            restriction_details=row.get("restriction_details"),
            start_date=parse_date(row.get("start_date")),
            end_date=parse_date(row.get("end_date")),
            is_active=bool(row["is_active"]),
        )


@dataclass
class DocumentPayment:
    """청구서/송장 지급 내역"""

    payment_id: str
    document_id: str
    payment_transaction_id: str
    amount: Decimal
    payment_date: date
    is_voided: bool = False
    created_by: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "DocumentPayment":
        return cls(
            payment_id=row["payment_id"],
            document_id=row["document_id"],
            payment_transaction_id=row["payment_transaction_id"],
            amount=parse_money(row["amount"]),
            payment_date=parse_date(row["payment_date"]),
            is_voided=bool(row["is_voided"]),
            created_by=row.get("created_by"),
        )
