"""
분개 생성기

원장 거래(LedgerTransaction)와 분개 라인(LedgerEntry) 모델,
그리고 청구서/지급/역분개/펀드 이체 등 표준 거래를 만드는 빌더
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import uuid4

from core.config.loader import LedgerConfig
from core.constants import Defaults
from core.domain.errors import InvalidAmountError, InvalidEntryError
from core.domain.state_machines import TransactionStatus
from core.ledger.types import TransactionKind
from core.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)


def new_transaction_id() -> str:
    return f"txn-{uuid4().hex[:16]}"


@dataclass
class LedgerEntry:
    """분개 라인

    차변(debit_amount)과 대변(credit_amount) 중 정확히 하나만 양수.
    모든 라인은 펀드에 귀속됨.
    """

    account_id: str
    fund_id: str
    debit_amount: Decimal = ZERO
    credit_amount: Decimal = ZERO
    memo: str | None = None

    def __post_init__(self) -> None:
        self.debit_amount = to_money(self.debit_amount)
        self.credit_amount = to_money(self.credit_amount)

    @classmethod
    def debit(
        cls, account_id: str, fund_id: str, amount: Decimal, memo: str | None = None
    ) -> LedgerEntry:
        return cls(account_id, fund_id, debit_amount=amount, memo=memo)

    @classmethod
    def credit(
        cls, account_id: str, fund_id: str, amount: Decimal, memo: str | None = None
    ) -> LedgerEntry:
        return cls(account_id, fund_id, credit_amount=amount, memo=memo)

    @property
    def signed_amount(self) -> Decimal:
        """차변 양수, 대변 음수"""
        return self.debit_amount - self.credit_amount

    def validate(self) -> None:
        """라인 검증

        Raises:
            InvalidEntryError: 음수 금액, 또는 차변/대변이 둘 다/둘 다 아닌 경우
        """
        if self.debit_amount < 0 or self.credit_amount < 0:
            raise InvalidEntryError(
                "Entry amounts must be non-negative",
                account_id=self.account_id,
                fund_id=self.fund_id,
                debit_amount=self.debit_amount,
                credit_amount=self.credit_amount,
            )
        if (self.debit_amount > 0) == (self.credit_amount > 0):
            raise InvalidEntryError(
                "Exactly one of debit_amount or credit_amount must be positive",
                account_id=self.account_id,
                fund_id=self.fund_id,
                debit_amount=self.debit_amount,
                credit_amount=self.credit_amount,
            )

    def reversed(self) -> LedgerEntry:
        """차변/대변을 뒤집은 라인"""
        return LedgerEntry(
            account_id=self.account_id,
            fund_id=self.fund_id,
            debit_amount=self.credit_amount,
            credit_amount=self.debit_amount,
            memo=self.memo,
        )


@dataclass
class LedgerTransaction:
    """원장 거래

    하나 이상의 분개 라인 묶음. 전기(POSTED) 시 차변 합계 = 대변 합계.
    BILL/INVOICE는 거래처, 송장 번호, 만기일, 청구 금액을 가짐.
    """

    transaction_id: str
    txn_date: date
    kind: str
    entries: list[LedgerEntry]
    description: str | None = None
    reference: str | None = None
    status: str = TransactionStatus.DRAFT.value

    # 청구서/송장
    counterparty_id: str | None = None
    invoice_number: str | None = None
    due_date: date | None = None
    amount_due: Decimal | None = None
    amount_paid: Decimal = ZERO

    # 연관 정보
    reversal_of: str | None = None
    source_key: str | None = None

    # 감사
    created_by: str | None = None
    approved_by: str | None = None
    seq: int | None = None

    @property
    def total_debit(self) -> Decimal:
        return sum((e.debit_amount for e in self.entries), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((e.credit_amount for e in self.entries), ZERO)

    @property
    def outstanding(self) -> Decimal:
        """미지급 잔액 (문서만 해당)"""
        if self.amount_due is None:
            return ZERO
        return self.amount_due - self.amount_paid

    @property
    def fund_ids(self) -> list[str]:
        return sorted({e.fund_id for e in self.entries})

    @property
    def account_ids(self) -> list[str]:
        return sorted({e.account_id for e in self.entries})

    def is_balanced(self, epsilon: Decimal = Defaults.BALANCE_EPSILON) -> bool:
        """균형 검증

        라인 금액은 센트 단위로 정규화되어 있으므로
        epsilon(0.01) 미만 차이는 곧 정확히 0.

        Returns:
            True if |sum(debit) - sum(credit)| < epsilon
        """
        return abs(self.total_debit - self.total_credit) < epsilon


class JournalEntryBuilder:
    """표준 거래 생성기

    통제 계정(현금, 미수금, 미지급금 등)은 LedgerConfig에서 주입.
    생성된 거래는 DRAFT 상태이며 LedgerStore.post()로 전기.

    Args:
        config: 원장 설정 (통제 계정 ID)
    """

    def __init__(self, config: LedgerConfig | None = None):
        self.config = config or LedgerConfig()

    def journal(
        self,
        txn_date: date,
        entries: list[LedgerEntry],
        description: str | None = None,
        reference: str | None = None,
        kind: str = TransactionKind.JOURNAL.value,
    ) -> LedgerTransaction:
        """일반 분개"""
        return LedgerTransaction(
            transaction_id=new_transaction_id(),
            txn_date=txn_date,
            kind=kind,
            entries=list(entries),
            description=description,
            reference=reference,
        )

    def bill(
        self,
        txn_date: date,
        counterparty_id: str,
        expense_account_id: str,
        fund_id: str,
        amount: Decimal,
        due_date: date | None = None,
        invoice_number: str | None = None,
        description: str | None = None,
    ) -> LedgerTransaction:
        """매입 청구서: 비용 (Debit) / 미지급금 (Credit)"""
        amount = self._positive(amount, "bill")
        txn = self.journal(
            txn_date,
            [
                LedgerEntry.debit(expense_account_id, fund_id, amount),
                LedgerEntry.credit(self.config.payables_account, fund_id, amount),
            ],
            description=description,
            reference=invoice_number,
            kind=TransactionKind.BILL.value,
        )
        txn.counterparty_id = counterparty_id
        txn.invoice_number = invoice_number
        txn.due_date = due_date
        txn.amount_due = amount
        return txn

    def invoice(
        self,
        txn_date: date,
        counterparty_id: str,
        revenue_account_id: str,
        fund_id: str,
        amount: Decimal,
        due_date: date | None = None,
        invoice_number: str | None = None,
        description: str | None = None,
    ) -> LedgerTransaction:
        """매출 송장: 미수금 (Debit) / 수익 (Credit)"""
        amount = self._positive(amount, "invoice")
        txn = self.journal(
            txn_date,
            [
                LedgerEntry.debit(self.config.receivables_account, fund_id, amount),
                LedgerEntry.credit(revenue_account_id, fund_id, amount),
            ],
            description=description,
            reference=invoice_number,
            kind=TransactionKind.INVOICE.value,
        )
        txn.counterparty_id = counterparty_id
        txn.invoice_number = invoice_number
        txn.due_date = due_date
        txn.amount_due = amount
        return txn

    def payment_for(
        self,
        document: LedgerTransaction,
        amount: Decimal,
        payment_date: date,
        cash_account_id: str | None = None,
    ) -> LedgerTransaction:
        """문서 지급 거래

        - BILL: 미지급금 (Debit) / 현금 (Credit)
        - INVOICE: 현금 (Debit) / 미수금 (Credit)

        펀드는 문서의 통제 계정 라인 펀드를 따름.
        """
        amount = self._positive(amount, "payment")
        cash = cash_account_id or self.config.cash_account
        if document.kind == TransactionKind.BILL.value:
            control = self.config.payables_account
            fund_id = self._control_fund(document, control)
            entries = [
                LedgerEntry.debit(control, fund_id, amount),
                LedgerEntry.credit(cash, fund_id, amount),
            ]
        else:
            control = self.config.receivables_account
            fund_id = self._control_fund(document, control)
            entries = [
                LedgerEntry.debit(cash, fund_id, amount),
                LedgerEntry.credit(control, fund_id, amount),
            ]
        txn = self.journal(
            payment_date,
            entries,
            description=f"Payment for {document.invoice_number or document.transaction_id}",
            reference=document.transaction_id,
            kind=TransactionKind.PAYMENT.value,
        )
        txn.counterparty_id = document.counterparty_id
        return txn

    def reversal_of(
        self,
        original: LedgerTransaction,
        void_date: date,
        reason: str | None = None,
    ) -> LedgerTransaction:
        """역분개 (모든 라인의 차변/대변 반전)"""
        txn = self.journal(
            void_date,
            [e.reversed() for e in original.entries],
            description=f"Reversal of {original.transaction_id}" + (f": {reason}" if reason else ""),
            reference=original.transaction_id,
            kind=TransactionKind.REVERSAL.value,
        )
        txn.reversal_of = original.transaction_id
        txn.counterparty_id = original.counterparty_id
        return txn

    def fund_transfer(
        self,
        from_fund_id: str,
        to_fund_id: str,
        amount: Decimal,
        txn_date: date,
        description: str | None = None,
    ) -> LedgerTransaction:
        """펀드 간 이체

        같은 청산 계정에 대해
        - 입금 펀드: Debit
        - 출금 펀드: Credit
        """
        amount = self._positive(amount, "transfer")
        clearing = self.config.interfund_clearing_account
        return self.journal(
            txn_date,
            [
                LedgerEntry.debit(clearing, to_fund_id, amount),
                LedgerEntry.credit(clearing, from_fund_id, amount),
            ],
            description=description or f"Transfer {from_fund_id} → {to_fund_id}",
            kind=TransactionKind.FUND_TRANSFER.value,
        )

    def _control_fund(self, document: LedgerTransaction, control_account: str) -> str:
        for entry in document.entries:
            if entry.account_id == control_account:
                return entry.fund_id
        return document.entries[0].fund_id

    @staticmethod
    def _positive(amount: Decimal, what: str) -> Decimal:
        value = to_money(amount)
        if value <= 0:
            raise InvalidAmountError(f"{what} amount must be positive", amount=value)
        return value

