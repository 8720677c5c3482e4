"""
core/ledger/entry_builder.py 테스트

분개 라인 검증, 거래 균형, 표준 거래 생성
"""

from datetime import date
from decimal import Decimal

import pytest

from core.config.loader import LedgerConfig
from core.constants import ControlAccounts
from core.domain.errors import InvalidAmountError, InvalidEntryError
from core.ledger.entry_builder import JournalEntryBuilder, LedgerEntry
from core.ledger.types import TransactionKind

FUND = "FUND:GENERAL"


@pytest.fixture
def builder() -> JournalEntryBuilder:
    return JournalEntryBuilder(LedgerConfig())


class TestLedgerEntry:
    """LedgerEntry 테스트"""

    def test_amounts_quantized(self) -> None:
        """금액은 센트 단위 정규화"""
        entry = LedgerEntry.debit("EXPENSE:RENT", FUND, Decimal("10.005"))
        assert entry.debit_amount == Decimal("10.01")
        assert entry.credit_amount == Decimal("0.00")

    def test_signed_amount(self) -> None:
        assert LedgerEntry.debit("A", FUND, Decimal("5")).signed_amount == Decimal("5.00")
        assert LedgerEntry.credit("A", FUND, Decimal("5")).signed_amount == Decimal("-5.00")

    def test_validate_both_sides(self) -> None:
        """차변/대변 동시 금액"""
        entry = LedgerEntry("A", FUND, debit_amount=Decimal("1"), credit_amount=Decimal("1"))
        with pytest.raises(InvalidEntryError):
            entry.validate()

    def test_validate_neither_side(self) -> None:
        entry = LedgerEntry("A", FUND)
        with pytest.raises(InvalidEntryError):
            entry.validate()

    def test_validate_negative(self) -> None:
        entry = LedgerEntry("A", FUND, debit_amount=Decimal("-1"))
        with pytest.raises(InvalidEntryError) as exc_info:
            entry.validate()
        assert exc_info.value.details["account_id"] == "A"

    def test_reversed(self) -> None:
        entry = LedgerEntry.debit("A", FUND, Decimal("7"), memo="m")
        reversed_entry = entry.reversed()
        assert reversed_entry.credit_amount == Decimal("7.00")
        assert reversed_entry.debit_amount == Decimal("0.00")
        assert reversed_entry.memo == "m"


class TestLedgerTransaction:
    """LedgerTransaction 균형 검증 테스트"""

    def test_unbalanced(self, builder: JournalEntryBuilder) -> None:
        """차변 100, 대변 90 → 불균형"""
        txn = builder.journal(
            date(2025, 1, 15),
            [
                LedgerEntry.debit("EXPENSE:RENT", FUND, Decimal("100")),
                LedgerEntry.credit(ControlAccounts.CASH, FUND, Decimal("90")),
            ],
        )
        assert not txn.is_balanced()
        assert txn.total_debit == Decimal("100.00")
        assert txn.total_credit == Decimal("90.00")

    def test_balanced_multi_line(self, builder: JournalEntryBuilder) -> None:
        txn = builder.journal(
            date(2025, 1, 15),
            [
                LedgerEntry.debit("EXPENSE:RENT", FUND, Decimal("60")),
                LedgerEntry.debit("EXPENSE:OPERATING", "FUND:OTHER", Decimal("40")),
                LedgerEntry.credit(ControlAccounts.CASH, FUND, Decimal("100")),
            ],
        )
        assert txn.is_balanced()
        assert txn.fund_ids == ["FUND:GENERAL", "FUND:OTHER"]
        assert txn.status == "DRAFT"


class TestJournalEntryBuilder:
    """표준 거래 생성 테스트"""

    def test_bill(self, builder: JournalEntryBuilder) -> None:
        """청구서: 비용 (Debit) / 미지급금 (Credit)"""
        bill = builder.bill(
            date(2025, 1, 31),
            "vendor-1",
            "EXPENSE:RENT",
            FUND,
            Decimal("1200"),
            due_date=date(2025, 3, 2),
            invoice_number="INV-1",
        )

        assert bill.kind == TransactionKind.BILL.value
        assert bill.amount_due == Decimal("1200.00")
        assert bill.outstanding == Decimal("1200.00")
        assert bill.entries[0].account_id == "EXPENSE:RENT"
        assert bill.entries[1].account_id == ControlAccounts.ACCOUNTS_PAYABLE
        assert bill.is_balanced()

    def test_invoice(self, builder: JournalEntryBuilder) -> None:
        """송장: 미수금 (Debit) / 수익 (Credit)"""
        invoice = builder.invoice(
            date(2025, 1, 31), "donor-1", "REVENUE:GRANTS", FUND, Decimal("500")
        )
        assert invoice.entries[0].account_id == ControlAccounts.ACCOUNTS_RECEIVABLE
        assert invoice.entries[0].debit_amount == Decimal("500.00")

    def test_non_positive_amount(self, builder: JournalEntryBuilder) -> None:
        with pytest.raises(InvalidAmountError):
            builder.bill(date(2025, 1, 31), "vendor-1", "EXPENSE:RENT", FUND, Decimal("0"))

    def test_payment_for_bill(self, builder: JournalEntryBuilder) -> None:
        """청구서 지급: 미지급금 (Debit) / 현금 (Credit)"""
        bill = builder.bill(date(2025, 1, 31), "vendor-1", "EXPENSE:RENT", FUND, Decimal("100"))
        payment = builder.payment_for(bill, Decimal("40"), date(2025, 2, 5))

        assert payment.kind == TransactionKind.PAYMENT.value
        assert payment.reference == bill.transaction_id
        assert payment.entries[0].account_id == ControlAccounts.ACCOUNTS_PAYABLE
        assert payment.entries[1].account_id == ControlAccounts.CASH
        assert payment.entries[1].credit_amount == Decimal("40.00")

    def test_payment_for_invoice(self, builder: JournalEntryBuilder) -> None:
        """송장 수금: 현금 (Debit) / 미수금 (Credit)"""
        invoice = builder.invoice(date(2025, 1, 31), "donor-1", "REVENUE:GRANTS", FUND, Decimal("100"))
        payment = builder.payment_for(invoice, Decimal("100"), date(2025, 2, 5))

        assert payment.entries[0].account_id == ControlAccounts.CASH
        assert payment.entries[0].debit_amount == Decimal("100.00")

    def test_reversal_nets_to_zero(self, builder: JournalEntryBuilder) -> None:
        """역분개와 원거래의 계정별 합계는 0"""
        bill = builder.bill(date(2025, 1, 31), "vendor-1", "EXPENSE:RENT", FUND, Decimal("100"))
        reversal = builder.reversal_of(bill, date(2025, 2, 1), "duplicate")

        assert reversal.kind == TransactionKind.REVERSAL.value
        assert reversal.reversal_of == bill.transaction_id
        assert "duplicate" in reversal.description
        net: dict[str, Decimal] = {}
        for entry in bill.entries + reversal.entries:
            net[entry.account_id] = net.get(entry.account_id, Decimal("0")) + entry.signed_amount
        assert all(v == 0 for v in net.values())

    def test_fund_transfer(self, builder: JournalEntryBuilder) -> None:
        """펀드 이체: 청산 계정 입금 펀드 Debit / 출금 펀드 Credit"""
        txn = builder.fund_transfer("FUND:GENERAL", "FUND:BUILDING", Decimal("50"), date(2025, 1, 31))

        assert txn.kind == TransactionKind.FUND_TRANSFER.value
        assert txn.entries[0].fund_id == "FUND:BUILDING"
        assert txn.entries[0].debit_amount == Decimal("50.00")
        assert txn.entries[1].fund_id == "FUND:GENERAL"
        assert txn.entries[1].credit_amount == Decimal("50.00")
        assert {e.account_id for e in txn.entries} == {ControlAccounts.INTERFUND_CLEARING}
