"""
EventStore - 감사 로그 저장소

모든 변경 작업은 같은 DB 트랜잭션 안에서 Event로 기록됨.
dedup_key로 중복 이벤트를 방지하고, append-only 방식으로 저장.
"""

import json
import logging
from datetime import datetime
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.events import Event

logger = logging.getLogger(__name__)

_EVENT_COLUMNS = """
    seq, event_id, event_type, ts, correlation_id, actor_id,
    entity_kind, entity_id, dedup_key, payload_json
"""


class EventStore:
    """이벤트 저장소

    append-only로 저장하고, dedup_key로 중복 방지.
    호출자가 연 트랜잭션에 합류하므로 원장 변경과 이벤트가 함께 커밋/롤백됨.

    Args:
        db: SQLiteAdapter 인스턴스

    사용 예시:
    ```python
    async with db.transaction():
        await ledger_store.post(txn, principal)
        saved = await event_store.append(event)
    ```
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    async def append(self, event: Event) -> bool:
        """이벤트 저장 (dedup_key로 중복 제거)

        Args:
            event: 저장할 Event 인스턴스

        Returns:
            True: 저장 성공 (신규 이벤트)
            False: 중복으로 무시됨
        """
        payload_json = json.dumps(event.payload, ensure_ascii=False, default=str)

        try:
            # INSERT OR IGNORE로 중복 방지 (dedup_key UNIQUE 제약)
            await self.db.execute(
                """
                INSERT OR IGNORE INTO event_store (
                    event_id, event_type, ts, correlation_id, actor_id,
                    entity_kind, entity_id, dedup_key, payload_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.event_id,
                    event.event_type,
                    event.ts.isoformat(),
                    event.correlation_id,
                    event.actor_id,
                    event.entity_kind,
                    event.entity_id,
                    event.dedup_key,
                    payload_json,
                ),
            )
            await self.db.commit()

            row = await self.db.fetchone(
                "SELECT seq FROM event_store WHERE event_id = ?",
                (event.event_id,),
            )
        except Exception as e:
            logger.error(
                "이벤트 저장 실패",
                extra={"event_id": event.event_id, "error": str(e)},
            )
            raise

        if row:
            event.seq = row[0]
            logger.debug(
                "이벤트 저장 완료",
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            return True

        logger.debug(
            "이벤트 중복 (무시됨)",
            extra={"dedup_key": event.dedup_key},
        )
        return False

    async def exists(self, dedup_key: str) -> bool:
        """dedup_key 존재 여부"""
        row = await self.db.fetchone(
            "SELECT 1 FROM event_store WHERE dedup_key = ?",
            (dedup_key,),
        )
        return row is not None

    async def get_last_seq(self) -> int:
        """마지막 이벤트 seq (원장 버전으로 사용)"""
        row = await self.db.fetchone("SELECT MAX(seq) FROM event_store")
        return row[0] if row and row[0] is not None else 0

    async def get_since(self, last_seq: int, limit: int = 1000) -> list[Event]:
        """특정 seq 이후 이벤트 조회 (seq 순서)"""
        rows = await self.db.fetchall(
            f"""
            SELECT {_EVENT_COLUMNS}
            FROM event_store
            WHERE seq > ?
            ORDER BY seq ASC
            LIMIT ?
            """,
            (last_seq, limit),
        )
        return [self._row_to_event(row) for row in rows]

    async def get_by_entity(
        self,
        entity_kind: str,
        entity_id: str,
        limit: int = 100,
    ) -> list[Event]:
        """엔티티별 이벤트 조회 (seq 순서)

        Args:
            entity_kind: 엔티티 종류 (TRANSACTION, CREDIT 등)
            entity_id: 엔티티 ID
            limit: 최대 조회 개수 (기본 100)
        """
        rows = await self.db.fetchall(
            f"""
            SELECT {_EVENT_COLUMNS}
            FROM event_store
            WHERE entity_kind = ? AND entity_id = ?
            ORDER BY seq ASC
            LIMIT ?
            """,
            (entity_kind, entity_id, limit),
        )
        return [self._row_to_event(row) for row in rows]

    async def get_by_type(self, event_type: str, limit: int = 100) -> list[Event]:
        """이벤트 타입별 조회 (최신순)"""
        rows = await self.db.fetchall(
            f"""
            SELECT {_EVENT_COLUMNS}
            FROM event_store
            WHERE event_type = ?
            ORDER BY seq DESC
            LIMIT ?
            """,
            (event_type, limit),
        )
        return [self._row_to_event(row) for row in rows]

    def _row_to_event(self, row: tuple[Any, ...]) -> Event:
        """DB 행을 Event로 변환"""
        return Event(
            seq=row[0],
            event_id=row[1],
            event_type=row[2],
            ts=datetime.fromisoformat(row[3]),
            correlation_id=row[4],
            actor_id=row[5],
            entity_kind=row[6],
            entity_id=row[7],
            dedup_key=row[8],
            payload=json.loads(row[9]) if row[9] else {},
        )
