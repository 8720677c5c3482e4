"""
금액 유틸리티

모든 금액은 Decimal, 센트 단위로 정규화 (ROUND_HALF_UP).
DB에는 문자열로 저장 (부동소수점 오차 방지).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from core.constants import Defaults
from core.domain.errors import InvalidAmountError

ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """금액을 센트 단위 Decimal로 변환

    float은 문자열을 거쳐 변환 (이진 표현 오차 방지).

    Raises:
        InvalidAmountError: 숫자가 아니거나 유한하지 않은 값

    Example:
        >>> to_money("10.005")
        Decimal('10.01')
        >>> to_money(3)
        Decimal('3.00')
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(str(value))
    else:
        try:
            amount = Decimal(value)
        except (InvalidOperation, TypeError) as e:
            raise InvalidAmountError(f"Invalid money value: {value!r}", value=repr(value)) from e
    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid money value: {value!r}", value=repr(value))
    return amount.quantize(Defaults.MONEY_QUANT, rounding=ROUND_HALF_UP)


def parse_money(value: str | None) -> Decimal:
    """DB 문자열 → Decimal (NULL은 0)"""
    if value is None or value == "":
        return ZERO
    return to_money(value)


def format_money(amount: Decimal) -> str:
    """Decimal → DB 저장용 문자열"""
    return str(to_money(amount))
