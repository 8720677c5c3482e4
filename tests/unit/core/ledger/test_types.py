"""Ledger 타입 테스트"""

from datetime import date

from core.constants import ControlAccounts, Defaults
from core.ledger.accounts import Fund
from core.ledger.types import (
    DEBIT_NORMAL_TYPES,
    DOCUMENT_KINDS,
    INITIAL_ACCOUNTS,
    INITIAL_FUNDS,
    OWNED_KINDS,
    AccountType,
    TransactionKind,
)
from core.types import EntityKind



class TestAccountType:
    """AccountType Enum 테스트"""

    def test_five_types(self) -> None:
        assert {t.value for t in AccountType} == {
            "ASSET", "LIABILITY", "EQUITY", "REVENUE", "EXPENSE",
        }

    def test_debit_normal(self) -> None:
        assert set(DEBIT_NORMAL_TYPES) == {"ASSET", "EXPENSE"}


class TestTransactionKind:
    """TransactionKind 테스트"""

    def test_document_kinds(self) -> None:
        assert DOCUMENT_KINDS == ("BILL", "INVOICE")

    def test_str_enum(self) -> None:
        assert TransactionKind.REVERSAL == "REVERSAL"

    def test_owned_kinds(self) -> None:
        """소유 서비스가 있는 거래 종류 → EntityKind 값"""
        assert OWNED_KINDS == {
            TransactionKind.TUITION_ACCRUAL.value: EntityKind.CREDIT.value,
            TransactionKind.PROVIDER_PAYMENT.value: EntityKind.PROVIDER_PAYMENT.value,
        }


class TestInitialAccounts:
    """초기 계정과목 테스트"""

    def test_control_accounts_present(self) -> None:
        """통제 계정이 모두 초기 계정에 포함"""
        ids = {a[0] for a in INITIAL_ACCOUNTS}
        for account_id in (
            ControlAccounts.CASH,
            ControlAccounts.ACCOUNTS_RECEIVABLE,
            ControlAccounts.INTERFUND_CLEARING,
            ControlAccounts.ACCOUNTS_PAYABLE,
            ControlAccounts.PROVIDER_PAYABLE,
            ControlAccounts.TUITION_CREDIT_EXPENSE,
        ):
            assert account_id in ids

    def test_unique_numbers(self) -> None:
        numbers = [a[1] for a in INITIAL_ACCOUNTS]
        assert len(numbers) == len(set(numbers))

    def test_valid_types(self) -> None:
        valid = {t.value for t in AccountType}
        for _, _, account_type, _ in INITIAL_ACCOUNTS:
            assert account_type in valid

    def test_general_fund(self) -> None:
        assert INITIAL_FUNDS[0][0] == Defaults.GENERAL_FUND_ID


class TestFundAccepts:
    """Fund.accepts 테스트"""

    def test_date_range(self) -> None:
        fund = Fund(
            "fund-grant", "Grant", "TEMPORARILY_RESTRICTED",
            start_date=date(2025, 1, 1), end_date=date(2025, 12, 31),
        )
        assert fund.accepts(date(2025, 6, 1))
        assert not fund.accepts(date(2024, 12, 31))
        assert not fund.accepts(date(2026, 1, 1))

    def test_inactive(self) -> None:
        fund = Fund("fund-old", "Old", "GENERAL", is_active=False)
        assert not fund.accepts(date(2025, 6, 1))
