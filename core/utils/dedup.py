"""
Dedup Key 생성 유틸리티

event_store.dedup_key, bank_transaction.dedup_key, ledger_transaction.source_key
에 사용하는 키 생성 함수 제공
"""

import hashlib
from datetime import date
from decimal import Decimal


def make_recurring_dedup_key(template_id: str, due_date: date) -> str:
    """정기 템플릿 생성용 dedup_key

    (template_id, next_generation_date) 조합당 문서는 1건만 존재.

    Args:
        template_id: 정기 템플릿 ID
        due_date: 생성 대상 일자 (next_generation_date)

    Returns:
        dedup_key: recurring:{template_id}:{YYYY-MM-DD}

    Example:
        >>> make_recurring_dedup_key("tpl-1", date(2025, 1, 31))
        'recurring:tpl-1:2025-01-31'
    """
    return f"recurring:{template_id}:{due_date.isoformat()}"


def make_status_dedup_key(
    entity_kind: str,
    entity_id: str,
    status: str,
) -> str:
    """상태 전이 이벤트용 dedup_key (상태별 1회)

    Example:
        >>> make_status_dedup_key("CREDIT_BATCH", "cb-1", "PROCESSED")
        'CREDIT_BATCH:cb-1:status:PROCESSED'
    """
    return f"{entity_kind}:{entity_id}:status:{status}"


def make_event_dedup_key(
    entity_kind: str,
    entity_id: str,
    event_type: str,
    event_id: str,
) -> str:
    """일반 이벤트용 dedup_key (이벤트마다 고유)

    Example:
        >>> make_event_dedup_key("TRANSACTION", "txn-1", "TransactionPosted", "e1")
        'TRANSACTION:txn-1:TransactionPosted:e1'
    """
    return f"{entity_kind}:{entity_id}:{event_type}:{event_id}"


def make_statement_line_dedup_key(
    bank_account_id: str,
    txn_date: date,
    amount: Decimal,
    description: str,
    reference: str | None,
    occurrence: int,
) -> str:
    """은행 명세서 라인용 dedup_key

    같은 명세서를 다시 가져와도 중복 생성되지 않도록 내용 기반 해시 사용.
    같은 날 동일 금액·적요 라인이 여러 건이면 occurrence(0부터)로 구분.

    Returns:
        dedup_key: stmt:{bank_account_id}:{sha1 앞 16자리}
    """
    raw = "|".join([
        bank_account_id,
        txn_date.isoformat(),
        str(amount),
        description.strip(),
        reference or "",
        str(occurrence),
    ])
    digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]
    return f"stmt:{bank_account_id}:{digest}"
