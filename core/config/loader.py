"""
설정 로더

settings.yaml 로드 및 모듈별 설정 생성
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from core.constants import ControlAccounts, Defaults, Paths
from core.types import TransferPolicy


@dataclass(frozen=True)
class LedgerConfig:
    """원장 설정

    통제 계정 ID와 균형 허용 오차
    """

    balance_epsilon: Decimal = Defaults.BALANCE_EPSILON
    cash_account: str = ControlAccounts.CASH
    receivables_account: str = ControlAccounts.ACCOUNTS_RECEIVABLE
    payables_account: str = ControlAccounts.ACCOUNTS_PAYABLE
    provider_payable_account: str = ControlAccounts.PROVIDER_PAYABLE
    tuition_expense_account: str = ControlAccounts.TUITION_CREDIT_EXPENSE
    interfund_clearing_account: str = ControlAccounts.INTERFUND_CLEARING


def _default_transfer_policies() -> dict[str, TransferPolicy]:
    return {
        "GENERAL": TransferPolicy.BALANCE_REQUIRED,
        "RESTRICTED": TransferPolicy.BALANCE_REQUIRED,
        "TEMPORARILY_RESTRICTED": TransferPolicy.BALANCE_REQUIRED,
        "PERMANENTLY_RESTRICTED": TransferPolicy.LOCKED,
        "BOARD_DESIGNATED": TransferPolicy.BALANCE_REQUIRED,
    }


@dataclass(frozen=True)
class FundPolicyConfig:
    """펀드 유형별 출금 정책"""

    transfer_policies: dict[str, TransferPolicy] = field(
        default_factory=_default_transfer_policies
    )

    def policy_for(self, fund_type: str) -> TransferPolicy:
        """펀드 유형의 출금 정책 (미설정 유형은 BALANCE_REQUIRED)"""
        return self.transfer_policies.get(fund_type, TransferPolicy.BALANCE_REQUIRED)


@dataclass(frozen=True)
class RecurringConfig:
    """정기 템플릿 설정"""

    payment_terms_days: int = Defaults.PAYMENT_TERMS_DAYS


@dataclass(frozen=True)
class TuitionConfig:
    """수업료 크레딧 설정

    approver_roles가 비어 있으면 역할 검사 생략
    """

    approver_roles: tuple[str, ...] = Defaults.APPROVER_ROLES


@dataclass(frozen=True)
class ReconciliationConfig:
    """은행 대사 설정"""

    match_window_days: int = Defaults.MATCH_WINDOW_DAYS
    amount_epsilon: Decimal = Defaults.MATCH_AMOUNT_EPSILON
    candidate_tolerance_ratio: Decimal = Defaults.CANDIDATE_TOLERANCE_RATIO


@dataclass(frozen=True)
class AppSettings:
    """애플리케이션 설정 (settings.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지
    """

    db_path: Path = Paths.LEDGER_DB
    log_level: str = Defaults.LOG_LEVEL
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    funds: FundPolicyConfig = field(default_factory=FundPolicyConfig)
    recurring: RecurringConfig = field(default_factory=RecurringConfig)
    tuition: TuitionConfig = field(default_factory=TuitionConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)


class SettingsLoadError(Exception):
    """Settings 로드 실패 예외"""

    pass


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise SettingsLoadError(f"settings.yaml의 '{name}' 섹션은 매핑이어야 합니다")
    return value


def _decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise SettingsLoadError(f"'{key}' 값이 숫자가 아닙니다: {value!r}") from e


def _parse_ledger(section: dict[str, Any]) -> LedgerConfig:
    base = LedgerConfig()
    accounts = section.get("accounts") or {}
    return LedgerConfig(
        balance_epsilon=_decimal(
            section.get("balance_epsilon", base.balance_epsilon), "ledger.balance_epsilon"
        ),
        cash_account=accounts.get("cash", base.cash_account),
        receivables_account=accounts.get("receivables", base.receivables_account),
        payables_account=accounts.get("payables", base.payables_account),
        provider_payable_account=accounts.get(
            "provider_payable", base.provider_payable_account
        ),
        tuition_expense_account=accounts.get(
            "tuition_expense", base.tuition_expense_account
        ),
        interfund_clearing_account=accounts.get(
            "interfund_clearing", base.interfund_clearing_account
        ),
    )


def _parse_funds(section: dict[str, Any]) -> FundPolicyConfig:
    policies = _default_transfer_policies()
    for fund_type, policy in (section.get("transfer_policy") or {}).items():
        try:
            policies[str(fund_type).upper()] = TransferPolicy(str(policy).upper())
        except ValueError as e:
            valid = [p.value for p in TransferPolicy]
            raise SettingsLoadError(
                f"유효하지 않은 transfer_policy입니다: '{policy}'. 유효한 값: {valid}"
            ) from e
    return FundPolicyConfig(transfer_policies=policies)


def load_settings(path: Path | None = None) -> AppSettings:
    """settings.yaml 파일 로드

    Args:
        path: settings.yaml 경로 (None이면 기본 경로, 기본 파일이 없으면 기본값)

    Returns:
        AppSettings 인스턴스

    Raises:
        SettingsLoadError: 지정한 파일이 없거나 형식이 잘못된 경우
    """
    if path is None:
        path = Paths.SETTINGS_FILE
        if not path.exists():
            return AppSettings()

    if not path.exists():
        raise SettingsLoadError(f"settings.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SettingsLoadError(f"settings.yaml 파싱 실패: {e}") from e

    if data is None:
        return AppSettings()
    if not isinstance(data, dict):
        raise SettingsLoadError("settings.yaml 최상위는 매핑이어야 합니다")

    database = _section(data, "database")
    logging_section = _section(data, "logging")
    recurring = _section(data, "recurring")
    tuition = _section(data, "tuition")
    recon = _section(data, "reconciliation")

    db_path = Path(database.get("path", Paths.LEDGER_DB))
    if not db_path.is_absolute():
        db_path = path.parent.parent / db_path

    recon_base = ReconciliationConfig()

    return AppSettings(
        db_path=db_path,
        log_level=str(logging_section.get("level", Defaults.LOG_LEVEL)).upper(),
        ledger=_parse_ledger(_section(data, "ledger")),
        funds=_parse_funds(_section(data, "funds")),
        recurring=RecurringConfig(
            payment_terms_days=int(
                recurring.get("payment_terms_days", Defaults.PAYMENT_TERMS_DAYS)
            ),
        ),
        tuition=TuitionConfig(
            approver_roles=tuple(
                tuition.get("approver_roles", list(Defaults.APPROVER_ROLES))
            ),
        ),
        reconciliation=ReconciliationConfig(
            match_window_days=int(
                recon.get("match_window_days", recon_base.match_window_days)
            ),
            amount_epsilon=_decimal(
                recon.get("amount_epsilon", recon_base.amount_epsilon),
                "reconciliation.amount_epsilon",
            ),
            candidate_tolerance_ratio=_decimal(
                recon.get("candidate_tolerance_ratio", recon_base.candidate_tolerance_ratio),
                "reconciliation.candidate_tolerance_ratio",
            ),
        ),
    )


class Settings:
    """애플리케이션 설정 (싱글턴 패턴)

    settings.yaml을 로드하고 관련 설정을 제공
    """

    _instance: "Settings | None" = None
    _settings: AppSettings | None = None

    def __new__(cls, settings_path: Path | None = None) -> "Settings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, settings_path: Path | None = None) -> None:
        if self._settings is None:
            self._settings = load_settings(settings_path)

    @property
    def app(self) -> AppSettings:
        """전체 설정"""
        assert self._settings is not None
        return self._settings

    @property
    def db_path(self) -> Path:
        """DB 경로"""
        return self.app.db_path

    @property
    def ledger(self) -> LedgerConfig:
        return self.app.ledger

    @property
    def reconciliation(self) -> ReconciliationConfig:
        return self.app.reconciliation

    @classmethod
    def reset(cls) -> None:
        """싱글턴 리셋 (테스트용)"""
        cls._instance = None
        cls._settings = None


def get_settings(settings_path: Path | None = None) -> Settings:
    """Settings 싱글턴 인스턴스 반환"""
    return Settings(settings_path)
