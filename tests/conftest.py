"""
Shared pytest fixtures for pharos tests.

Provides small in-memory stand-ins for the asyncpg objects pharos touches
(pool, connection, prepared statement, cursor, transaction) so the query
services run end to end without a server.

Usage:
    conn = FakeConnection()
    conn.add_statement("SELECT id FROM users", [("id", "int4")], [(1,), (2,)])
    registry = make_registry(FakePool(conn))
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pytest

from pharos.core.registry import PoolHandle, SessionRegistry
from pharos.core.settings import PharosSettings
from pharos.ops.context import OperationContext

CONNECTION_ID = "local"
CONNECT_KWARGS = {"host": "db.local", "port": 5432, "user": "app", "password": "s3cret", "database": "app"}


@dataclass
class FakeType:
    name: str
    kind: str = "scalar"


@dataclass
class FakeAttribute:
    name: str
    type: FakeType


class FakeStatement:
    """Prepared statement returning canned records."""

    def __init__(self, columns: list[tuple[str, str]], rows: list[tuple], on_row: Callable[[int], None] | None = None):
        self.attributes = [
            FakeAttribute(name, FakeType(typname, "array" if typname.startswith("_") else "scalar"))
            for name, typname in columns
        ]
        self.rows = rows
        self.on_row = on_row
        self.rows_consumed = 0

    def get_attributes(self) -> list[FakeAttribute]:
        return self.attributes

    async def fetch(self) -> list[tuple]:
        return list(self.rows)

    async def cursor(self, prefetch: int | None = None):  # async generator
        for index, row in enumerate(self.rows):
            self.rows_consumed += 1
            if self.on_row is not None:
                self.on_row(index)
            yield row


class FakeTransaction:
    def __init__(self, conn: FakeConnection):
        self.conn = conn

    async def __aenter__(self) -> FakeTransaction:
        self.conn.transactions.append("begin")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None and self.conn.commit_error is not None:
            self.conn.transactions.append("rollback")
            raise self.conn.commit_error
        self.conn.transactions.append("rollback" if exc_type else "commit")
        return False


class FakeConnection:
    """Records everything executed on it.

    ``statements`` maps SQL text to a :class:`FakeStatement` or an exception
    raised from ``prepare``.  ``execute_results`` maps SQL text to a status
    string, an exception, or a callable taking the bound args.
    """

    def __init__(self, server_pid: int = 4242):
        self.server_pid = server_pid
        self.statements: dict[str, FakeStatement | BaseException] = {}
        self.execute_results: dict[str, Any] = {}
        self.fetch_results: dict[str, list[dict[str, Any]]] = {}
        self.fetchval_results: dict[str, Any] = {}
        self.executed: list[tuple[str, tuple]] = []
        self.prepared: list[str] = []
        self.transactions: list[str] = []
        self.commit_error: BaseException | None = None
        self.closed = False

    def add_statement(self, sql: str, columns: list[tuple[str, str]], rows: list[tuple], **kwargs: Any) -> FakeStatement:
        statement = FakeStatement(columns, rows, **kwargs)
        self.statements[sql] = statement
        return statement

    def get_server_pid(self) -> int:
        return self.server_pid

    async def prepare(self, sql: str) -> FakeStatement:
        self.prepared.append(sql)
        statement = self.statements.get(sql)
        if statement is None:
            return FakeStatement([], [])
        if isinstance(statement, BaseException):
            raise statement
        return statement

    async def execute(self, sql: str, *args: Any) -> str:
        self.executed.append((sql, args))
        result = self.execute_results.get(sql, "SELECT 0")
        if isinstance(result, BaseException):
            raise result
        if callable(result):
            result = result(args)
            if isinstance(result, BaseException):
                raise result
        return result

    async def fetch(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        self.executed.append((sql, args))
        return self.fetch_results.get(sql, [])

    async def fetchval(self, sql: str, *args: Any) -> Any:
        self.executed.append((sql, args))
        result = self.fetchval_results.get(sql)
        if isinstance(result, BaseException):
            raise result
        return result

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    async def close(self) -> None:
        self.closed = True


class FakePool:
    """Hands out one connection and counts leases."""

    def __init__(self, conn: FakeConnection | None = None):
        self.conn = conn or FakeConnection()
        self.acquired = 0
        self.released = 0
        self.closed = False
        self.acquire_error: BaseException | None = None

    async def acquire(self, timeout: float | None = None) -> FakeConnection:
        if self.acquire_error is not None:
            raise self.acquire_error
        self.acquired += 1
        return self.conn

    async def release(self, conn: FakeConnection) -> None:
        self.released += 1

    async def fetch(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        return await self.conn.fetch(sql, *args)

    async def close(self) -> None:
        self.closed = True

    def get_size(self) -> int:
        return 2

    def get_idle_size(self) -> int:
        return 2 - (self.acquired - self.released)

    def get_min_size(self) -> int:
        return 1

    def get_max_size(self) -> int:
        return 5


def column_row(
    name: str,
    data_type: str,
    position: int,
    *,
    primary_key: bool = False,
    nullable: bool = True,
    default: str | None = None,
) -> dict[str, Any]:
    """One row of the column-introspection query."""
    return {
        "column_name": name,
        "data_type": data_type,
        "is_nullable": nullable,
        "ordinal_position": position,
        "column_default": default,
        "is_primary_key": primary_key,
    }


def make_registry(pool: FakePool, connection_id: str = CONNECTION_ID) -> SessionRegistry:
    registry = SessionRegistry()
    registry.register_pool(PoolHandle(connection_id=connection_id, pool=pool, connect_kwargs=dict(CONNECT_KWARGS)))
    return registry


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture()
def settings() -> PharosSettings:
    """Settings independent of the environment."""
    return PharosSettings(default_limit=1000, cursor_prefetch=10, _env_file=None)


@pytest.fixture()
def conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture()
def pool(conn: FakeConnection) -> FakePool:
    return FakePool(conn)


@pytest.fixture()
def registry(pool: FakePool) -> SessionRegistry:
    return make_registry(pool)


@pytest.fixture()
def ctx(registry: SessionRegistry, settings: PharosSettings) -> OperationContext:
    """Operation context sharing the fake pool registered under ``CONNECTION_ID``."""
    return OperationContext(settings=settings, registry=registry, caller="test")
