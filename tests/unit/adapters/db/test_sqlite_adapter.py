"""
SQLite 어댑터 테스트

SQLiteAdapter 및 관련 함수 테스트.
"""

import asyncio
from pathlib import Path
from typing import AsyncIterator

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import (
    SQLiteAdapter,
    create_connection,
    get_db_path,
    init_schema,
)
from core.constants import Paths


class TestGetDbPath:
    """get_db_path 테스트"""

    def test_default(self) -> None:
        """기본 경로"""
        path = get_db_path()

        assert path == Paths.LEDGER_DB
        assert isinstance(path, Path)

    def test_string_path(self, tmp_path: Path) -> None:
        path = get_db_path(str(tmp_path / "x.db"))

        assert path == tmp_path / "x.db"


class TestCreateConnection:
    """create_connection 테스트"""

    @pytest.mark.asyncio
    async def test_create_connection(self, tmp_path: Path) -> None:
        """연결 생성 (WAL 모드)"""
        conn = await create_connection(tmp_path / "test.db")

        cursor = await conn.execute("PRAGMA journal_mode")
        row = await cursor.fetchone()
        assert row[0].upper() == "WAL"

        await conn.close()

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, tmp_path: Path) -> None:
        """부모 디렉토리 생성"""
        db_path = tmp_path / "subdir" / "test.db"

        conn = await create_connection(db_path)

        assert db_path.parent.exists()

        await conn.close()

    @pytest.mark.asyncio
    async def test_foreign_keys_enabled(self, tmp_path: Path) -> None:
        conn = await create_connection(tmp_path / "test.db")

        cursor = await conn.execute("PRAGMA foreign_keys")
        row = await cursor.fetchone()
        assert row[0] == 1

        await conn.close()


@pytest_asyncio.fixture
async def adapter(tmp_path: Path) -> AsyncIterator[SQLiteAdapter]:
    db = SQLiteAdapter(tmp_path / "adapter.db")
    await db.connect()
    await db.execute("CREATE TABLE item (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
    await db.commit()
    yield db
    await db.close()


async def _count(db: SQLiteAdapter) -> int:
    row = await db.fetchone("SELECT COUNT(*) FROM item")
    return row[0]


class TestSQLiteAdapter:
    """SQLiteAdapter 기본 동작 테스트"""

    @pytest.mark.asyncio
    async def test_not_connected(self, tmp_path: Path) -> None:
        """연결 전 실행 시 에러"""
        db = SQLiteAdapter(tmp_path / "x.db")

        assert not db.is_connected
        with pytest.raises(RuntimeError, match="Not connected"):
            await db.execute("SELECT 1")

    @pytest.mark.asyncio
    async def test_context_manager(self, tmp_path: Path) -> None:
        async with SQLiteAdapter(tmp_path / "ctx.db") as db:
            assert db.is_connected
            assert await db.fetchone("SELECT 1") == (1,)
        assert not db.is_connected

    @pytest.mark.asyncio
    async def test_fetch_dicts(self, adapter: SQLiteAdapter) -> None:
        """컬럼명 dict 조회"""
        await adapter.execute("INSERT INTO item (name) VALUES (?)", ("a",))
        await adapter.commit()

        rows = await adapter.fetch_dicts("SELECT id, name FROM item")

        assert rows == [{"id": 1, "name": "a"}]
        assert await adapter.fetch_dict("SELECT * FROM item WHERE id = ?", (99,)) is None

    @pytest.mark.asyncio
    async def test_table_exists(self, adapter: SQLiteAdapter) -> None:
        assert await adapter.table_exists("item")
        assert not await adapter.table_exists("nothing")

    @pytest.mark.asyncio
    async def test_init_schema(self, adapter: SQLiteAdapter) -> None:
        """감사 로그 테이블 생성 (재실행 안전)"""
        await init_schema(adapter)
        await init_schema(adapter)

        assert await adapter.table_exists("event_store")
        columns = {c["name"] for c in await adapter.get_table_info("event_store")}
        assert {"seq", "event_id", "dedup_key", "payload_json"} <= columns


class TestTransaction:
    """transaction() 테스트"""

    @pytest.mark.asyncio
    async def test_commit_on_success(self, adapter: SQLiteAdapter) -> None:
        async with adapter.transaction():
            assert adapter.in_transaction
            await adapter.execute("INSERT INTO item (name) VALUES ('a')")

        assert not adapter.in_transaction
        assert await _count(adapter) == 1

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, adapter: SQLiteAdapter) -> None:
        """예외 시 전체 롤백"""
        with pytest.raises(ValueError):
            async with adapter.transaction():
                await adapter.execute("INSERT INTO item (name) VALUES ('a')")
                raise ValueError("boom")

        assert await _count(adapter) == 0

    @pytest.mark.asyncio
    async def test_nested_joins_outer(self, adapter: SQLiteAdapter) -> None:
        """중첩 호출은 바깥 트랜잭션에 합류, 내부 commit()은 보류"""
        with pytest.raises(ValueError):
            async with adapter.transaction():
                await adapter.execute("INSERT INTO item (name) VALUES ('a')")
                async with adapter.transaction():
                    await adapter.execute("INSERT INTO item (name) VALUES ('b')")
                    await adapter.commit()
                raise ValueError("boom")

        assert await _count(adapter) == 0

    @pytest.mark.asyncio
    async def test_serialized_across_tasks(self, adapter: SQLiteAdapter) -> None:
        """다른 Task의 트랜잭션은 직렬화"""
        order: list[str] = []

        async def worker(name: str) -> None:
            async with adapter.transaction():
                order.append(f"{name}:start")
                await adapter.execute("INSERT INTO item (name) VALUES (?)", (name,))
                await asyncio.sleep(0.01)
                order.append(f"{name}:end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (
            ["a:start", "a:end", "b:start", "b:end"],
            ["b:start", "b:end", "a:start", "a:end"],
        )
        assert await _count(adapter) == 2

    @pytest.mark.asyncio
    async def test_read_waits_for_other_transaction(self, adapter: SQLiteAdapter) -> None:
        """다른 Task의 트랜잭션 도중 조회 → 커밋 후 결과만 보임"""
        first_written = asyncio.Event()
        release = asyncio.Event()

        async def writer() -> None:
            async with adapter.transaction():
                await adapter.execute("INSERT INTO item (name) VALUES ('a')")
                first_written.set()
                await release.wait()
                await adapter.execute("INSERT INTO item (name) VALUES ('b')")

        writer_task = asyncio.create_task(writer())
        await first_written.wait()
        reader_task = asyncio.create_task(_count(adapter))
        await asyncio.sleep(0.05)

        assert not reader_task.done()

        release.set()
        await writer_task
        assert await reader_task == 2

    @pytest.mark.asyncio
    async def test_read_sees_nothing_after_rollback(self, adapter: SQLiteAdapter) -> None:
        first_written = asyncio.Event()
        release = asyncio.Event()

        async def writer() -> None:
            async with adapter.transaction():
                await adapter.execute("INSERT INTO item (name) VALUES ('a')")
                first_written.set()
                await release.wait()
                raise ValueError("boom")

        writer_task = asyncio.create_task(writer())
        await first_written.wait()
        reader_task = asyncio.create_task(_count(adapter))
        await asyncio.sleep(0.05)
        release.set()

        with pytest.raises(ValueError):
            await writer_task
        assert await reader_task == 0

    @pytest.mark.asyncio
    async def test_transaction_after_plain_write(self, adapter: SQLiteAdapter) -> None:
        """트랜잭션 밖의 쓰기 후에도 transaction() 시작 가능"""
        await adapter.execute("INSERT INTO item (name) VALUES ('a')")

        async with adapter.transaction():
            await adapter.execute("INSERT INTO item (name) VALUES ('b')")

        assert await _count(adapter) == 2
