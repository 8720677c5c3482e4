"""
어댑터 모델 테스트

StatementLine 검증, RailResult 불변성
"""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from adapters.models import RailResult, StatementLine


class TestStatementLine:
    """StatementLine 테스트"""

    def test_creation(self) -> None:
        """문자열 입력 변환"""
        line = StatementLine(
            txn_date="2025-01-15",
            description="  MONTHLY SERVICE FEE ",
            amount="-45",
        )

        assert line.txn_date == date(2025, 1, 15)
        assert line.description == "MONTHLY SERVICE FEE"
        assert line.amount == Decimal("-45.00")
        assert line.reference is None

    def test_amount_quantized(self) -> None:
        line = StatementLine(txn_date=date(2025, 1, 15), description="DEP", amount=Decimal("10.005"))
        assert line.amount == Decimal("10.01")

    def test_zero_amount_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StatementLine(txn_date=date(2025, 1, 15), description="X", amount=Decimal("0"))

    def test_blank_description_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StatementLine(txn_date=date(2025, 1, 15), description="   ", amount=Decimal("1"))

    def test_invalid_date_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StatementLine(txn_date="2025-02-30", description="X", amount=Decimal("1"))

    def test_frozen(self) -> None:
        """불변성 확인"""
        line = StatementLine(txn_date=date(2025, 1, 15), description="X", amount=Decimal("1"))
        with pytest.raises(ValidationError):
            line.amount = Decimal("2")  # type: ignore[misc]


class TestRailResult:
    """RailResult 테스트"""

    def test_defaults(self) -> None:
        result = RailResult(success=False, message="declined")
        assert result.reference_id is None
        assert result.message == "declined"

    def test_frozen(self) -> None:
        result = RailResult(success=True, reference_id="r-1")
        with pytest.raises(AttributeError):
            result.success = False  # type: ignore[misc]
