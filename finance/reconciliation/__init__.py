"""
은행 대사 모듈

은행 명세서 라인과 원장 거래 매칭, 조정 분개, 대사 세션 관리.
"""

from finance.reconciliation.engine import ReconciliationEngine, signed_amount_on
from finance.reconciliation.repository import (
    BankAccount,
    BankTransaction,
    ReconciliationRepository,
    ReconciliationSession,
)

__all__ = [
    "BankAccount",
    "BankTransaction",
    "ReconciliationEngine",
    "ReconciliationRepository",
    "ReconciliationSession",
    "signed_amount_on",
]
