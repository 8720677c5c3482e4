"""
Event 도메인 모델

모든 상태 변경은 Event로 감사 로그에 기록됨 (append-only).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from core.utils.dedup import make_event_dedup_key


@dataclass
class Event:
    """이벤트

    상태 변경을 기록하는 데이터 구조.
    dedup_key로 중복 이벤트를 방지함.
    """

    event_id: str
    event_type: str
    ts: datetime
    correlation_id: str
    actor_id: str
    entity_kind: str
    entity_id: str
    dedup_key: str
    payload: dict[str, Any]
    seq: int | None = None  # DB에서 조회 시 자동 할당되는 시퀀스 번호

    @staticmethod
    def create(
        event_type: str,
        entity_kind: str,
        entity_id: str,
        actor_id: str,
        payload: dict[str, Any],
        dedup_key: str | None = None,
        correlation_id: str | None = None,
    ) -> "Event":
        """새 이벤트 생성

        Args:
            event_type: 이벤트 타입 (예: TransactionPosted)
            entity_kind: 엔티티 종류 (TRANSACTION, CREDIT 등)
            entity_id: 엔티티 ID
            actor_id: 행위자 ID (Principal.user_id)
            payload: 이벤트 상세 데이터
            dedup_key: 중복 제거 키 (없으면 이벤트마다 고유 키)
            correlation_id: 상관 ID (없으면 자동 생성)

        Returns:
            새 Event 인스턴스
        """
        event_id = str(uuid4())
        return Event(
            event_id=event_id,
            event_type=event_type,
            ts=datetime.now(timezone.utc),
            correlation_id=correlation_id or str(uuid4()),
            actor_id=actor_id,
            entity_kind=entity_kind,
            entity_id=entity_id,
            dedup_key=dedup_key or make_event_dedup_key(
                entity_kind, entity_id, event_type, event_id
            ),
            payload=payload,
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (직렬화용)"""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "ts": self.ts.isoformat(),
            "correlation_id": self.correlation_id,
            "actor_id": self.actor_id,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "dedup_key": self.dedup_key,
            "payload": self.payload,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Event":
        """딕셔너리에서 생성 (역직렬화용)"""
        ts = data["ts"]
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)

        return Event(
            event_id=data["event_id"],
            event_type=data["event_type"],
            ts=ts,
            correlation_id=data["correlation_id"],
            actor_id=data["actor_id"],
            entity_kind=data["entity_kind"],
            entity_id=data["entity_id"],
            dedup_key=data["dedup_key"],
            payload=data.get("payload", {}),
            seq=data.get("seq"),
        )


class EventTypes:
    """Event Type 상수"""

    # Chart of accounts / Funds
    ACCOUNT_CREATED: str = "AccountCreated"
    ACCOUNT_UPDATED: str = "AccountUpdated"
    FUND_CREATED: str = "FundCreated"
    FUND_UPDATED: str = "FundUpdated"

    # Ledger
    TRANSACTION_DRAFTED: str = "TransactionDrafted"
    TRANSACTION_SUBMITTED: str = "TransactionSubmitted"
    TRANSACTION_APPROVED: str = "TransactionApproved"
    TRANSACTION_POSTED: str = "TransactionPosted"
    TRANSACTION_VOIDED: str = "TransactionVoided"
    PAYMENT_APPLIED: str = "PaymentApplied"

    # Funds
    FUND_TRANSFERRED: str = "FundTransferred"
    FUND_ALLOCATED: str = "FundAllocated"

    # Recurring
    TEMPLATE_CREATED: str = "TemplateCreated"
    TEMPLATE_DEACTIVATED: str = "TemplateDeactivated"
    DOCUMENT_GENERATED: str = "DocumentGenerated"

    # Tuition credits
    CREDIT_CREATED: str = "CreditCreated"
    CREDIT_STATUS_CHANGED: str = "CreditStatusChanged"
    CREDIT_VOIDED: str = "CreditVoided"
    CREDIT_BATCH_CHANGED: str = "CreditBatchChanged"
    CREDIT_BATCH_PROCESSED: str = "CreditBatchProcessed"
    PROVIDER_PAYMENT_CREATED: str = "ProviderPaymentCreated"
    PROVIDER_PAYMENT_STATUS_CHANGED: str = "ProviderPaymentStatusChanged"
    PAYMENT_BATCH_COMPLETED: str = "PaymentBatchCompleted"

    # Reconciliation
    BANK_ACCOUNT_REGISTERED: str = "BankAccountRegistered"
    RECONCILIATION_STARTED: str = "ReconciliationStarted"
    STATEMENT_IMPORTED: str = "StatementImported"
    BANK_TRANSACTION_MATCHED: str = "BankTransactionMatched"
    BANK_TRANSACTION_RECONCILED: str = "BankTransactionReconciled"
    BANK_TRANSACTION_UNMATCHED: str = "BankTransactionUnmatched"
    RECONCILIATION_COMPLETED: str = "ReconciliationCompleted"
    RECONCILIATION_ABANDONED: str = "ReconciliationAbandoned"
