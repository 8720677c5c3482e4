"""
날짜 유틸리티

정기 템플릿 일정 계산과 ISO 날짜 변환.
월말 처리: 대상 월에 해당 일이 없으면 마지막 날로 조정 (1/31 → 2/28).
"""

import calendar
from datetime import date, datetime, timedelta


def clamp_day(year: int, month: int, day: int) -> date:
    """해당 월의 마지막 날을 넘지 않도록 일자 조정

    Example:
        >>> clamp_day(2025, 2, 31)
        datetime.date(2025, 2, 28)
        >>> clamp_day(2024, 2, 30)
        datetime.date(2024, 2, 29)
    """
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def add_months(base: date, months: int, anchor_day: int | None = None) -> date:
    """월 단위 날짜 이동

    Args:
        base: 기준 날짜
        months: 이동할 개월 수
        anchor_day: 목표 일자 (None이면 base.day). 월말 초과 시 말일로 조정.

    Example:
        >>> add_months(date(2025, 1, 31), 1)
        datetime.date(2025, 2, 28)
        >>> add_months(date(2025, 2, 28), 1, anchor_day=31)
        datetime.date(2025, 3, 31)
    """
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = anchor_day if anchor_day is not None else base.day
    return clamp_day(year, month, day)


def add_days(base: date, days: int) -> date:
    """일 단위 날짜 이동"""
    return base + timedelta(days=days)


def parse_date(value: str | date | None) -> date | None:
    """ISO 문자열 → date (None 허용)"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])
