"""
복식부기 타입 정의

계정/펀드/거래 유형 Enum과 초기 계정과목 정의
"""

from enum import Enum

from core.constants import ControlAccounts, Defaults


class AccountType(str, Enum):
    """계정 유형 (복식부기 5대 계정)"""

    ASSET = "ASSET"  # 자산 (현금, 미수금)
    LIABILITY = "LIABILITY"  # 부채 (미지급금)
    EQUITY = "EQUITY"  # 순자산
    REVENUE = "REVENUE"  # 수익
    EXPENSE = "EXPENSE"  # 비용


# 차변 잔액이 정상인 계정 유형
DEBIT_NORMAL_TYPES: tuple[str, ...] = (
    AccountType.ASSET.value,
    AccountType.EXPENSE.value,
)


class FundType(str, Enum):
    """펀드 유형 (비영리 펀드 회계)"""

    GENERAL = "GENERAL"
    RESTRICTED = "RESTRICTED"
    TEMPORARILY_RESTRICTED = "TEMPORARILY_RESTRICTED"
    PERMANENTLY_RESTRICTED = "PERMANENTLY_RESTRICTED"
    BOARD_DESIGNATED = "BOARD_DESIGNATED"


class TransactionKind(str, Enum):
    """원장 거래 종류"""

    JOURNAL = "JOURNAL"  # 일반 분개
    BILL = "BILL"  # 매입 청구서 (미지급금)
    INVOICE = "INVOICE"  # 매출 송장 (미수금)
    PAYMENT = "PAYMENT"  # 청구서/송장 지급
    REVERSAL = "REVERSAL"  # 역분개 (void)
    FUND_TRANSFER = "FUND_TRANSFER"  # 펀드 간 이체
    FUND_ALLOCATION = "FUND_ALLOCATION"  # 펀드 배분
    TUITION_ACCRUAL = "TUITION_ACCRUAL"  # 수업료 크레딧 비용 인식
    PROVIDER_PAYMENT = "PROVIDER_PAYMENT"  # 기관 지급
    BANK_ADJUSTMENT = "BANK_ADJUSTMENT"  # 은행 대사 조정


# 지급 대상 문서 종류
DOCUMENT_KINDS: tuple[str, ...] = (
    TransactionKind.BILL.value,
    TransactionKind.INVOICE.value,
)


# 소유 엔티티가 있는 거래 종류 → 소유 EntityKind 값
# 해당 서비스만 ledger.void로 취소할 수 있음
OWNED_KINDS: dict[str, str] = {
    TransactionKind.TUITION_ACCRUAL.value: "CREDIT",
    TransactionKind.PROVIDER_PAYMENT.value: "PROVIDER_PAYMENT",
}


# 초기 계정 목록 (init_db에서 사용)
INITIAL_ACCOUNTS: list[tuple[str, str, str, str]] = [
    # (account_id, account_number, account_type, name)

    # ASSET
    (ControlAccounts.CASH, "1000", "ASSET", "Operating Cash"),
    (ControlAccounts.ACCOUNTS_RECEIVABLE, "1200", "ASSET", "Accounts Receivable"),
    (ControlAccounts.INTERFUND_CLEARING, "1900", "ASSET", "Interfund Transfer Clearing"),

    # LIABILITY
    (ControlAccounts.ACCOUNTS_PAYABLE, "2000", "LIABILITY", "Accounts Payable"),
    (ControlAccounts.PROVIDER_PAYABLE, "2100", "LIABILITY", "Provider Payable"),

    # EQUITY
    ("EQUITY:NET_ASSETS", "3000", "EQUITY", "Net Assets"),

    # REVENUE
    ("REVENUE:CONTRIBUTIONS", "4000", "REVENUE", "Contributions"),
    ("REVENUE:GRANTS", "4100", "REVENUE", "Grant Revenue"),
    ("REVENUE:INTEREST", "4800", "REVENUE", "Interest Income"),

    # EXPENSE
    ("EXPENSE:OPERATING", "5000", "EXPENSE", "Operating Expenses"),
    (ControlAccounts.TUITION_CREDIT_EXPENSE, "5100", "EXPENSE", "Tuition Credit Expense"),
    ("EXPENSE:RENT", "5200", "EXPENSE", "Rent"),
    ("EXPENSE:BANK_FEES", "5900", "EXPENSE", "Bank Fees"),
]


# 초기 펀드 목록
INITIAL_FUNDS: list[tuple[str, str, str]] = [
    # (fund_id, fund_type, name)
    (Defaults.GENERAL_FUND_ID, FundType.GENERAL.value, "General Fund"),
]
