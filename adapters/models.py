"""
어댑터 공통 데이터 모델

외부 협력자(은행 명세서, 지급 레일)와 주고받는 데이터 모델.
모든 금액은 Decimal 타입 사용.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from core.domain.errors import InvalidAmountError
from core.utils.money import to_money


class StatementLine(BaseModel):
    """은행 명세서 라인 (외부 파서가 CSV/OFX에서 변환한 결과)

    amount 부호: 입금 양수, 출금 음수
    """

    txn_date: date = Field(..., description="거래일")
    description: str = Field(..., min_length=1, description="적요")
    amount: Decimal = Field(..., description="금액 (입금 +, 출금 -)")
    reference: str | None = Field(default=None, description="은행 참조번호")

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "txn_date": "2025-01-15",
                    "description": "MONTHLY SERVICE FEE",
                    "amount": "-45.00",
                    "reference": None,
                },
            ]
        },
    }

    @field_validator("amount")
    @classmethod
    def _quantize_amount(cls, value: Decimal) -> Decimal:
        try:
            amount = to_money(value)
        except InvalidAmountError as e:
            raise ValueError(e.message) from e
        if amount == 0:
            raise ValueError("amount must be non-zero")
        return amount

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("description must not be blank")
        return value


@dataclass(frozen=True)
class RailResult:
    """지급 레일 처리 결과

    Attributes:
        success: 지급 성공 여부
        reference_id: 레일 참조 ID (성공 시)
        message: 실패 사유 등
    """

    success: bool
    reference_id: str | None = None
    message: str | None = None
