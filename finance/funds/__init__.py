"""
펀드 회계 모듈

펀드 간 이체/배분과 펀드별 잔액 보고서.
"""

from finance.funds.accounting import FundAccountingService, FundAllocation

__all__ = [
    "FundAccountingService",
    "FundAllocation",
]
