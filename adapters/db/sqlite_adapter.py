"""
SQLite 어댑터

WAL 모드로 SQLite 연결 관리.
쓰기 연결 1개 + 읽기 전용 연결(선택)로 조회가 쓰기를 막지 않도록 구성.

트랜잭션 규칙:
- transaction()은 BEGIN IMMEDIATE로 시작하고 asyncio.Lock으로 직렬화
- 같은 Task 안에서 중첩 호출하면 바깥 트랜잭션에 합류 (재진입)
- 트랜잭션 안에서 호출된 commit()은 가장 바깥 블록이 끝날 때까지 보류
- 트랜잭션 밖의 조회/실행은 다른 Task의 트랜잭션이 끝날 때까지 대기
  (커밋 전 중간 상태를 읽지 않음)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from core.constants import Paths

logger = logging.getLogger(__name__)


def get_db_path(path: Path | str | None = None) -> Path:
    """DB 경로 반환 (None이면 기본 경로)"""
    if path is None:
        return Paths.LEDGER_DB
    return Path(path)


async def create_connection(
    db_path: Path | str,
    readonly: bool = False,
) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드)

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부

    Returns:
        aiosqlite 연결 객체
    """
    db_path_str = str(db_path)

    # 디렉토리가 없으면 생성
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    if readonly:
        conn = await aiosqlite.connect(f"file:{db_path_str}?mode=ro", uri=True)
    else:
        conn = await aiosqlite.connect(db_path_str)
        # WAL 모드 설정 (읽기 전용 연결은 쓰기 연결이 설정한 모드를 따름)
        await conn.execute("PRAGMA journal_mode=WAL")

    # 동시 접근 설정
    await conn.execute("PRAGMA busy_timeout=30000")  # 30초 대기

    # 외래 키 제약 활성화
    await conn.execute("PRAGMA foreign_keys=ON")

    logger.info(
        "SQLite 연결 생성",
        extra={"db_path": db_path_str, "readonly": readonly},
    )

    return conn


class SQLiteAdapter:
    """SQLite 어댑터

    WAL 모드로 SQLite 연결 관리.
    트랜잭션 컨텍스트 매니저 제공.

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부 (보고서 조회용)

    사용 예시:
    ```python
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()

    async with adapter.transaction():
        await adapter.execute("INSERT INTO ...")
        async with adapter.transaction():  # 같은 Task: 바깥 트랜잭션에 합류
            await adapter.execute("UPDATE ...")

    await adapter.close()
    ```
    """

    def __init__(self, db_path: Path | str, readonly: bool = False):
        self.db_path = Path(db_path)
        self.readonly = readonly
        self._conn: aiosqlite.Connection | None = None
        self._tx_lock = asyncio.Lock()
        self._tx_owner: asyncio.Task[Any] | None = None

    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        """현재 Task가 트랜잭션을 보유 중인지"""
        return self._tx_owner is not None and self._tx_owner is asyncio.current_task()

    async def connect(self) -> None:
        """연결 생성"""
        if self._conn is not None:
            return

        self._conn = await create_connection(self.db_path, self.readonly)

    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite 연결 종료")

    @asynccontextmanager
    async def _outside_transaction(self) -> AsyncIterator[None]:
        """다른 Task의 트랜잭션이 끝날 때까지 대기

        트랜잭션을 보유한 Task는 그대로 통과.
        """
        if self.in_transaction:
            yield
            return
        async with self._tx_lock:
            yield

    async def _execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> aiosqlite.Cursor:
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        if parameters:
            return await self._conn.execute(sql, parameters)
        return await self._conn.execute(sql)

    async def execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> aiosqlite.Cursor:
        """SQL 실행"""
        async with self._outside_transaction():
            return await self._execute(sql, parameters)

    async def executemany(
        self,
        sql: str,
        parameters: list[tuple[Any, ...]],
    ) -> aiosqlite.Cursor:
        """SQL 다중 실행"""
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        async with self._outside_transaction():
            return await self._conn.executemany(sql, parameters)

    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> tuple[Any, ...] | None:
        """단일 행 조회"""
        async with self._outside_transaction():
            cursor = await self._execute(sql, parameters)
            return await cursor.fetchone()

    async def fetchall(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> list[tuple[Any, ...]]:
        """전체 행 조회"""
        async with self._outside_transaction():
            cursor = await self._execute(sql, parameters)
            return list(await cursor.fetchall())

    async def fetch_dicts(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> list[dict[str, Any]]:
        """전체 행 조회 (컬럼명 dict)"""
        async with self._outside_transaction():
            cursor = await self._execute(sql, parameters)
            columns = [d[0] for d in cursor.description]
            rows = await cursor.fetchall()
        return [dict(zip(columns, row)) for row in rows]

    async def fetch_dict(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> dict[str, Any] | None:
        """단일 행 조회 (컬럼명 dict)"""
        rows = await self.fetch_dicts(sql, parameters)
        return rows[0] if rows else None

    async def commit(self) -> None:
        """커밋

        transaction() 블록 안에서는 보류 (가장 바깥 블록이 커밋).
        다른 Task가 트랜잭션을 보유 중이면 끝날 때까지 대기.
        """
        if self._conn is None:
            return
        if self.in_transaction:
            return
        async with self._outside_transaction():
            await self._conn.commit()

    async def rollback(self) -> None:
        """롤백"""
        if self._conn is not None:
            await self._conn.rollback()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """트랜잭션 컨텍스트 매니저

        성공 시 자동 커밋, 예외 시 자동 롤백.
        같은 Task의 중첩 호출은 바깥 트랜잭션에 합류.

        사용 예시:
        ```python
        async with adapter.transaction() as conn:
            await conn.execute("INSERT INTO ...")
            # 성공 시 자동 커밋
        ```
        """
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        if self.in_transaction:
            yield self._conn
            return

        async with self._tx_lock:
            self._tx_owner = asyncio.current_task()
            try:
                # 트랜잭션 밖에서 실행된 쓰기의 암묵적 트랜잭션 정리
                if self._conn.in_transaction:
                    await self._conn.commit()
                await self._conn.execute("BEGIN IMMEDIATE")
                try:
                    yield self._conn
                except BaseException:
                    await self._conn.rollback()
                    raise
                await self._conn.commit()
            finally:
                self._tx_owner = None

    async def table_exists(self, table_name: str) -> bool:
        """테이블 존재 여부 확인"""
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None

    async def get_table_info(self, table_name: str) -> list[dict[str, Any]]:
        """테이블 정보 조회"""
        rows = await self.fetchall(f"PRAGMA table_info({table_name})")

        columns = []
        for row in rows:
            columns.append({
                "cid": row[0],
                "name": row[1],
                "type": row[2],
                "notnull": bool(row[3]),
                "default_value": row[4],
                "pk": bool(row[5]),
            })

        return columns

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SQLiteAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def init_schema(adapter: SQLiteAdapter) -> None:
    """공통 스키마 초기화 (감사 로그)

    Args:
        adapter: 연결된 SQLiteAdapter

    주의: 업무 테이블은 core.ledger.schema.init_ledger_schema()에서 생성.
    """
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS event_store (
            seq              INTEGER PRIMARY KEY AUTOINCREMENT,
            event_id         TEXT NOT NULL UNIQUE,
            event_type       TEXT NOT NULL,
            ts               TEXT NOT NULL,

            correlation_id   TEXT NOT NULL,
            actor_id         TEXT NOT NULL,

            entity_kind      TEXT NOT NULL,
            entity_id        TEXT NOT NULL,

            dedup_key        TEXT NOT NULL UNIQUE,
            payload_json     TEXT NOT NULL,

            created_at       TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_event_store_entity
        ON event_store(entity_kind, entity_id)
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_event_store_type
        ON event_store(event_type)
    """)

    await adapter.commit()

    logger.info("스키마 초기화 완료")
