"""
State Machines

원장 거래, 수업료 크레딧, 배치, 기관 지급, 은행 대사 세션의 상태 전이 관리.
전이 규칙은 각 머신의 TRANSITIONS에 선언하고, 위반 시
InvalidStateTransitionError를 발생시킴.
"""

import logging
from enum import Enum

from core.domain.errors import InvalidStateTransitionError

logger = logging.getLogger(__name__)


class TransactionStatus(str, Enum):
    """원장 거래 상태

    전이 규칙:
    - DRAFT → PENDING_APPROVAL: 승인 요청
    - DRAFT → POSTED: 직접 전기 (시스템 생성 분개)
    - PENDING_APPROVAL → APPROVED: 승인
    - PENDING_APPROVAL → DRAFT: 반려
    - APPROVED → POSTED: 전기
    - POSTED → PARTIALLY_PAID / PAID: 지급 반영
    - PARTIALLY_PAID / PAID → POSTED / PARTIALLY_PAID: 지급 취소 반영
    - POSTED / PARTIALLY_PAID → VOIDED: 역분개로 취소
    """
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    POSTED = "POSTED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    VOIDED = "VOIDED"


# 잔액 계산에 포함되는 (전기된) 상태
POSTED_STATUSES: tuple[str, ...] = (
    TransactionStatus.POSTED.value,
    TransactionStatus.PARTIALLY_PAID.value,
    TransactionStatus.PAID.value,
    TransactionStatus.VOIDED.value,
)


class CreditStatus(str, Enum):
    """수업료 크레딧 상태

    전이 규칙:
    - DRAFT → PENDING_APPROVAL: 작성자 제출
    - PENDING_APPROVAL → APPROVED: 승인 (작성자 외 승인자)
    - PENDING_APPROVAL → REJECTED: 반려 (사유 필수)
    - APPROVED → PROCESSED: 처리 (배치 또는 단건)
    - PROCESSED → PAID: 지급 완료 (COMPLETED 지급에 의해서만)
    - PAID → PROCESSED: 완료된 지급 취소
    - APPROVED / PROCESSED → VOIDED: 취소 (조정 크레딧 발행)
    """
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PROCESSED = "PROCESSED"
    PAID = "PAID"
    VOIDED = "VOIDED"


class CreditBatchStatus(str, Enum):
    """크레딧 배치 상태

    전이 규칙:
    - DRAFT → PENDING_APPROVAL → APPROVED → PROCESSED
    - PENDING_APPROVAL → DRAFT: 반려
    - DRAFT → CANCELLED
    """
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    PROCESSED = "PROCESSED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """기관 지급 상태

    전이 규칙:
    - PENDING → PROCESSING: 지급 레일 전송
    - PENDING / PROCESSING → COMPLETED: 지급 확인
    - PENDING / PROCESSING → FAILED: 지급 실패
    - PENDING / COMPLETED → VOIDED: 취소
    """
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    VOIDED = "VOIDED"


class PaymentBatchStatus(str, Enum):
    """지급 배치 상태"""
    OPEN = "OPEN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ReconciliationStatus(str, Enum):
    """은행 대사 세션 상태

    전이 규칙:
    - DRAFT → IN_PROGRESS: 첫 매칭 작업
    - IN_PROGRESS → COMPLETED: 전 거래 매칭 + 잔액 일치
    - DRAFT / IN_PROGRESS → ABANDONED: 세션 포기
    """
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


# 은행 계좌당 1개만 허용되는 열린 세션 상태
OPEN_RECONCILIATION_STATUSES: tuple[str, ...] = (
    ReconciliationStatus.DRAFT.value,
    ReconciliationStatus.IN_PROGRESS.value,
)


class MatchStatus(str, Enum):
    """은행 거래 매칭 상태

    전이 규칙:
    - UNMATCHED → MATCHED: 원장 거래와 매칭 (또는 조정 분개)
    - UNMATCHED → RECONCILED: 원장 대응 없이 확인 처리
    - MATCHED / RECONCILED → UNMATCHED: 매칭 해제
    """
    UNMATCHED = "UNMATCHED"
    MATCHED = "MATCHED"
    RECONCILED = "RECONCILED"


class StateMachine:
    """상태 머신 기본 클래스

    Args:
        initial_state: 초기 상태
        transitions: 허용된 전이 정의 {from_state: [to_states]}
        name: 머신 이름 (로깅/오류 메시지용)
        entity_id: 대상 엔티티 ID (오류 details용)
    """

    def __init__(
        self,
        initial_state: str | Enum,
        transitions: dict[str, list[str]],
        name: str = "StateMachine",
        entity_id: str | None = None,
    ):
        self._state = initial_state.value if isinstance(initial_state, Enum) else initial_state
        self._transitions = transitions
        self._name = name
        self._entity_id = entity_id
        self._history: list[tuple[str, str]] = []

    @property
    def state(self) -> str:
        """현재 상태"""
        return self._state

    def can_transition(self, to_state: str | Enum) -> bool:
        """전이 가능 여부 확인"""
        target = to_state.value if isinstance(to_state, Enum) else to_state
        allowed = self._transitions.get(self._state, [])
        return target in allowed

    def transition(self, to_state: str | Enum) -> str:
        """상태 전이

        Args:
            to_state: 목표 상태

        Returns:
            새 상태

        Raises:
            InvalidStateTransitionError: 허용되지 않은 전이
        """
        target = to_state.value if isinstance(to_state, Enum) else to_state

        if not self.can_transition(target):
            allowed = self._transitions.get(self._state, [])
            raise InvalidStateTransitionError(
                f"{self._name}: Cannot transition from {self._state} to {target}. "
                f"Allowed: {allowed}",
                entity_id=self._entity_id,
                from_state=self._state,
                to_state=target,
                allowed=allowed,
            )

        old_state = self._state
        self._state = target
        self._history.append((old_state, target))

        logger.debug(
            f"{self._name}: {old_state} → {target}",
            extra={"entity_id": self._entity_id},
        )

        return target

    @property
    def history(self) -> list[tuple[str, str]]:
        """상태 전이 이력"""
        return self._history.copy()


class TransactionStateMachine(StateMachine):
    """원장 거래 상태 머신"""

    TRANSITIONS: dict[str, list[str]] = {
        "DRAFT": ["PENDING_APPROVAL", "POSTED"],
        "PENDING_APPROVAL": ["APPROVED", "DRAFT"],
        "APPROVED": ["POSTED"],
        "POSTED": ["PARTIALLY_PAID", "PAID", "VOIDED"],
        "PARTIALLY_PAID": ["PAID", "POSTED", "VOIDED"],
        "PAID": ["PARTIALLY_PAID", "POSTED"],
        "VOIDED": [],
    }

    def __init__(
        self,
        initial_state: str | TransactionStatus = TransactionStatus.DRAFT,
        entity_id: str | None = None,
    ):
        super().__init__(initial_state, self.TRANSITIONS, "Transaction", entity_id)

    @property
    def is_posted(self) -> bool:
        return self._state in POSTED_STATUSES

    @property
    def is_editable(self) -> bool:
        """초안 수정 가능 여부"""
        return self._state == TransactionStatus.DRAFT.value


class CreditStateMachine(StateMachine):
    """수업료 크레딧 상태 머신"""

    TRANSITIONS: dict[str, list[str]] = {
        "DRAFT": ["PENDING_APPROVAL"],
        "PENDING_APPROVAL": ["APPROVED", "REJECTED"],
        "APPROVED": ["PROCESSED", "VOIDED"],
        "REJECTED": [],
        "PROCESSED": ["PAID", "VOIDED"],
        "PAID": ["PROCESSED"],
        "VOIDED": [],
    }

    def __init__(
        self,
        initial_state: str | CreditStatus = CreditStatus.DRAFT,
        entity_id: str | None = None,
    ):
        super().__init__(initial_state, self.TRANSITIONS, "TuitionCredit", entity_id)


class CreditBatchStateMachine(StateMachine):
    """크레딧 배치 상태 머신"""

    TRANSITIONS: dict[str, list[str]] = {
        "DRAFT": ["PENDING_APPROVAL", "CANCELLED"],
        "PENDING_APPROVAL": ["APPROVED", "DRAFT"],
        "APPROVED": ["PROCESSED"],
        "PROCESSED": [],
        "CANCELLED": [],
    }

    def __init__(
        self,
        initial_state: str | CreditBatchStatus = CreditBatchStatus.DRAFT,
        entity_id: str | None = None,
    ):
        super().__init__(initial_state, self.TRANSITIONS, "CreditBatch", entity_id)

    @property
    def is_editable(self) -> bool:
        """크레딧 추가/제거 가능 여부"""
        return self._state == CreditBatchStatus.DRAFT.value


class PaymentStateMachine(StateMachine):
    """기관 지급 상태 머신"""

    TRANSITIONS: dict[str, list[str]] = {
        "PENDING": ["PROCESSING", "COMPLETED", "FAILED", "VOIDED"],
        "PROCESSING": ["COMPLETED", "FAILED"],
        "COMPLETED": ["VOIDED"],
        "FAILED": [],
        "VOIDED": [],
    }

    def __init__(
        self,
        initial_state: str | PaymentStatus = PaymentStatus.PENDING,
        entity_id: str | None = None,
    ):
        super().__init__(initial_state, self.TRANSITIONS, "ProviderPayment", entity_id)

    @property
    def holds_credits(self) -> bool:
        """크레딧을 점유 중인 상태 (FAILED/VOIDED는 크레딧 해제)"""
        return self._state in ("PENDING", "PROCESSING", "COMPLETED")


class PaymentBatchStateMachine(StateMachine):
    """지급 배치 상태 머신"""

    TRANSITIONS: dict[str, list[str]] = {
        "OPEN": ["COMPLETED", "CANCELLED"],
        "COMPLETED": [],
        "CANCELLED": [],
    }

    def __init__(
        self,
        initial_state: str | PaymentBatchStatus = PaymentBatchStatus.OPEN,
        entity_id: str | None = None,
    ):
        super().__init__(initial_state, self.TRANSITIONS, "PaymentBatch", entity_id)


class ReconciliationStateMachine(StateMachine):
    """은행 대사 세션 상태 머신"""

    TRANSITIONS: dict[str, list[str]] = {
        "DRAFT": ["IN_PROGRESS", "ABANDONED"],
        "IN_PROGRESS": ["COMPLETED", "ABANDONED"],
        "COMPLETED": [],
        "ABANDONED": [],
    }

    def __init__(
        self,
        initial_state: str | ReconciliationStatus = ReconciliationStatus.DRAFT,
        entity_id: str | None = None,
    ):
        super().__init__(initial_state, self.TRANSITIONS, "Reconciliation", entity_id)

    @property
    def is_open(self) -> bool:
        return self._state in OPEN_RECONCILIATION_STATUSES


class MatchStateMachine(StateMachine):
    """은행 거래 매칭 상태 머신"""

    TRANSITIONS: dict[str, list[str]] = {
        "UNMATCHED": ["MATCHED", "RECONCILED"],
        "MATCHED": ["UNMATCHED"],
        "RECONCILED": ["UNMATCHED"],
    }

    def __init__(
        self,
        initial_state: str | MatchStatus = MatchStatus.UNMATCHED,
        entity_id: str | None = None,
    ):
        super().__init__(initial_state, self.TRANSITIONS, "BankTransaction", entity_id)
