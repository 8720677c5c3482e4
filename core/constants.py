"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from decimal import Decimal
from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → fundledger/)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class Defaults:
    """기본값 상수 (settings.yaml에서 덮어쓸 수 있음)"""

    CURRENCY: str = "USD"
    LOG_LEVEL: str = "INFO"

    # 금액 정밀도 (센트 단위)
    MONEY_QUANT: Decimal = Decimal("0.01")
    BALANCE_EPSILON: Decimal = Decimal("0.01")

    # 은행 대사
    MATCH_WINDOW_DAYS: int = 3
    MATCH_AMOUNT_EPSILON: Decimal = Decimal("0.01")
    CANDIDATE_TOLERANCE_RATIO: Decimal = Decimal("0.10")

    # 정기 청구서 (Net 30)
    PAYMENT_TERMS_DAYS: int = 30

    # 수업료 크레딧 승인 역할
    APPROVER_ROLES: tuple[str, ...] = ("ADMIN", "FINANCE_MANAGER")

    # 기본 펀드
    GENERAL_FUND_ID: str = "FUND:GENERAL"


class ControlAccounts:
    """통제 계정 ID 기본값 (INITIAL_ACCOUNTS에 포함)"""

    CASH: str = "ASSET:CASH:OPERATING"
    ACCOUNTS_RECEIVABLE: str = "ASSET:ACCOUNTS_RECEIVABLE"
    INTERFUND_CLEARING: str = "ASSET:INTERFUND_CLEARING"
    ACCOUNTS_PAYABLE: str = "LIABILITY:ACCOUNTS_PAYABLE"
    PROVIDER_PAYABLE: str = "LIABILITY:PROVIDER_PAYABLE"
    TUITION_CREDIT_EXPENSE: str = "EXPENSE:TUITION_CREDITS"


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    # 설정 파일
    SETTINGS_FILE: Path = CONFIG_DIR / "settings.yaml"

    # DB 파일
    LEDGER_DB: Path = DATA_DIR / "fundledger.db"
