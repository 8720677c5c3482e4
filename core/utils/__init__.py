"""
유틸리티 패키지

금액 정규화, 날짜 계산, dedup_key 생성 등 공통 유틸리티
"""

from core.utils.dates import add_days, add_months, clamp_day, parse_date
from core.utils.money import ZERO, format_money, parse_money, to_money

__all__ = [
    "ZERO",
    "to_money",
    "parse_money",
    "format_money",
    "add_days",
    "add_months",
    "clamp_day",
    "parse_date",
]
