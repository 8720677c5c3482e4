"""
복식부기 원장 (Fund Accounting Ledger)

모든 금액 이동을 펀드 단위로 추적하는 복식부기 원장.
전기된 거래는 수정하지 않으며 취소는 역분개로만 표현.

사용 예시:
```python
from core.ledger import LedgerStore, JournalEntryBuilder, LedgerEntry

store = LedgerStore(db)

txn = store.builder.journal(
    date(2025, 1, 15),
    [
        LedgerEntry.debit("ASSET:CASH:OPERATING", "FUND:GENERAL", Decimal("100")),
        LedgerEntry.credit("REVENUE:CONTRIBUTIONS", "FUND:GENERAL", Decimal("100")),
    ],
)
await store.post(txn, principal)

# 펀드 잔액 (순자산)
balance = await store.fund_balance("FUND:GENERAL")

# 시산표
trial_balance = await store.trial_balance()
```
"""

from core.ledger.accounts import Account, DocumentPayment, Fund
from core.ledger.entry_builder import JournalEntryBuilder, LedgerEntry, LedgerTransaction
from core.ledger.schema import init_ledger_schema
from core.ledger.store import LedgerStore
from core.ledger.types import (
    DEBIT_NORMAL_TYPES,
    DOCUMENT_KINDS,
    INITIAL_ACCOUNTS,
    INITIAL_FUNDS,
    AccountType,
    FundType,
    TransactionKind,
)

__all__ = [
    # 핵심 클래스
    "LedgerStore",
    "JournalEntryBuilder",
    "LedgerTransaction",
    "LedgerEntry",
    "Account",
    "Fund",
    "DocumentPayment",
    "init_ledger_schema",
    # Enum
    "AccountType",
    "FundType",
    "TransactionKind",
    # 상수
    "DEBIT_NORMAL_TYPES",
    "DOCUMENT_KINDS",
    "INITIAL_ACCOUNTS",
    "INITIAL_FUNDS",
]
