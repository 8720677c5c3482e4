"""
도메인 오류 정의

모든 오류는 관련 ID와 금액을 details에 담아 UI 계층이 사용자에게
설명할 수 있도록 함.

분류:
- LedgerValidationError: 입력 검증 실패 (저장 전 거부)
- StateGuardError: 현재 상태에서 허용되지 않는 작업
- IdempotencyError: 중복 실행 거부 (무시하지 않고 명시적으로 실패)
- EntityNotFoundError: 대상 엔티티 없음
"""

from decimal import Decimal
from typing import Any


def _serialize(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple, set)):
        return [_serialize(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


class LedgerError(Exception):
    """도메인 오류 기본 클래스

    Args:
        message: 오류 메시지
        **details: 관련 ID/금액 (UI 표시용)
    """

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """UI 응답용 직렬화"""
        return {
            "error": self.kind,
            "message": self.message,
            "details": {k: _serialize(v) for k, v in self.details.items()},
        }


# =============================================================================
# 검증 오류
# =============================================================================


class LedgerValidationError(LedgerError):
    """입력 검증 실패"""


class InvalidEntryError(LedgerValidationError):
    """분개 라인 오류 (차변/대변 중 정확히 하나만 양수여야 함)"""


class InvalidAmountError(LedgerValidationError):
    """금액 오류 (0 이하 등)"""


class UnbalancedEntriesError(LedgerValidationError):
    """차변 합계와 대변 합계 불일치"""


class UnbalancedAllocationError(LedgerValidationError):
    """펀드 배분 합계가 0이 아님"""


class OverpaymentError(LedgerValidationError):
    """미지급 잔액 초과 지급"""


class AmountMismatchError(LedgerValidationError):
    """은행 거래와 원장 거래 금액 불일치"""


class CreditSplitError(LedgerValidationError):
    """dppPortion + familyPortion != creditAmount"""


# =============================================================================
# 상태 가드 오류
# =============================================================================


class StateGuardError(LedgerError):
    """현재 상태에서 허용되지 않는 작업"""


class InvalidStateTransitionError(StateGuardError):
    """허용되지 않은 상태 전이"""


class InactiveAccountError(StateGuardError):
    """비활성 계정에 분개"""


class InactiveFundError(StateGuardError):
    """비활성 펀드(또는 유효 기간 외)에 분개"""


class SameFundError(StateGuardError):
    """출금 펀드와 입금 펀드가 동일"""


class InsufficientFundBalanceError(StateGuardError):
    """펀드 가용 잔액 부족"""


class RestrictedFundError(StateGuardError):
    """출금이 금지된 펀드"""


class OutstandingPaymentsError(StateGuardError):
    """지급이 남아있는 문서는 취소 불가"""


class ApprovalGuardError(StateGuardError):
    """승인 조건 위반 (작성자 승인, 권한 없음 등)"""


class CreditNotEligibleError(StateGuardError):
    """배치/지급 대상이 될 수 없는 크레딧"""


class ProviderMismatchError(StateGuardError):
    """다른 기관의 크레딧 포함"""


class AlreadyMatchedError(StateGuardError):
    """이미 다른 은행 거래와 매칭된 원장 거래"""


class ReconciliationInProgressError(StateGuardError):
    """해당 은행 계좌에 진행 중인 대사 세션 존재"""


class UnbalancedReconciliationError(StateGuardError):
    """대사 완료 조건 불충족 (미매칭 거래 또는 잔액 불일치)"""


class TemplateNotDueError(StateGuardError):
    """생성 예정일이 도래하지 않은 템플릿"""


class InactiveTemplateError(StateGuardError):
    """비활성 템플릿"""


# =============================================================================
# 멱등성 / 조회 오류
# =============================================================================


class IdempotencyError(LedgerError):
    """중복 실행 거부"""


class DuplicateGenerationError(IdempotencyError):
    """같은 (template_id, due_date)에 대한 문서가 이미 생성됨"""


class EntityNotFoundError(LedgerError):
    """엔티티 없음"""
