"""
수업료 크레딧

크레딧 생명주기(승인, 배치 처리, 취소)와 교육 기관 지급.
"""

from finance.tuition.lifecycle import TuitionCreditService, validate_split
from finance.tuition.payments import ProviderPaymentService
from finance.tuition.repository import (
    CreditBatch,
    PaymentBatch,
    ProviderPayment,
    TuitionCredit,
    TuitionRepository,
)

__all__ = [
    "CreditBatch",
    "PaymentBatch",
    "ProviderPayment",
    "ProviderPaymentService",
    "TuitionCredit",
    "TuitionCreditService",
    "TuitionRepository",
    "validate_split",
]
