"""
정기 문서 생성 모듈

정기 청구서/송장 템플릿과 일자별 문서 생성.
"""

from finance.recurring.generator import RecurringGenerator, first_occurrence, next_occurrence
from finance.recurring.repository import RecurringTemplate, RecurringTemplateRepository

__all__ = [
    "RecurringGenerator",
    "RecurringTemplate",
    "RecurringTemplateRepository",
    "first_occurrence",
    "next_occurrence",
]
