"""
타입 정의 모듈

Enum, Dataclass 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

from dataclasses import dataclass
from enum import Enum


class EntityKind(str, Enum):
    """Entity 종류 (이벤트 저장소 분류용)"""

    ACCOUNT = "ACCOUNT"
    FUND = "FUND"
    TRANSACTION = "TRANSACTION"
    TEMPLATE = "TEMPLATE"
    CREDIT = "CREDIT"
    CREDIT_BATCH = "CREDIT_BATCH"
    PROVIDER_PAYMENT = "PROVIDER_PAYMENT"
    PAYMENT_BATCH = "PAYMENT_BATCH"
    BANK_ACCOUNT = "BANK_ACCOUNT"
    BANK_TRANSACTION = "BANK_TRANSACTION"
    RECONCILIATION = "RECONCILIATION"


class Frequency(str, Enum):
    """정기 템플릿 생성 주기"""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUALLY = "ANNUALLY"
    CUSTOM = "CUSTOM"


class AdjustmentType(str, Enum):
    """은행 대사 조정 분개 유형"""

    EXPENSE = "EXPENSE"  # 은행 수수료 등
    REVENUE = "REVENUE"  # 이자 수익 등


class TransferPolicy(str, Enum):
    """펀드 유형별 이체 출금 정책"""

    BALANCE_REQUIRED = "BALANCE_REQUIRED"  # 잔액 이내에서만 출금
    ALLOW_NEGATIVE = "ALLOW_NEGATIVE"      # 음수 잔액 허용
    LOCKED = "LOCKED"                      # 출금 금지


class ActorKind(str, Enum):
    """행위자 종류"""

    USER = "USER"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class Principal:
    """행위자 (불변)

    외부 Principal/Role Provider가 제공하는 사용자 식별자와 역할.
    모든 변경 작업의 created_by/approved_by 기록에 사용.
    """

    user_id: str
    role: str
    kind: str = ActorKind.USER.value

    @classmethod
    def user(cls, user_id: str, role: str) -> "Principal":
        """사용자 Principal 생성"""
        return cls(user_id=user_id, role=role, kind=ActorKind.USER.value)

    @classmethod
    def system(cls, system_name: str) -> "Principal":
        """시스템 Principal 생성 (스케줄러 등)"""
        return cls(
            user_id=f"system:{system_name}",
            role="SYSTEM",
            kind=ActorKind.SYSTEM.value,
        )
