"""Tests for connection operations."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from conftest import FakeConnection, FakePool

from pharos.core.connection import ConnectionConfig, InMemoryConfigStore
from pharos.core.secrets import InMemorySecretStore
from pharos.ops import connections as conn_ops
from pharos.ops.context import OperationContext

CONFIG = ConnectionConfig(host="db", database="app", username="bob", name="App")


@pytest.fixture()
def app_ctx(settings) -> OperationContext:
    return OperationContext(
        config_store=InMemoryConfigStore({"app": CONFIG}),
        secret_store=InMemorySecretStore({"app": "s3cret"}),
        settings=settings,
        caller="test",
    )


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_and_status(self, app_ctx):
        with patch("pharos.core.connection.create_pool", new=AsyncMock(return_value=FakePool())):
            result = await conn_ops.connect(app_ctx, "app")

        assert result.success is True
        assert result.data.connected is True
        assert conn_ops.connection_status(app_ctx, "app").data.pool["size"] == 2

    @pytest.mark.asyncio
    async def test_unknown_connection(self, app_ctx):
        result = await conn_ops.connect(app_ctx, "missing")
        assert result.error.code == "CONFIG_ERROR"
        assert result.error.message == "Connection not found: missing"

    @pytest.mark.asyncio
    async def test_disconnect(self, app_ctx):
        with patch("pharos.core.connection.create_pool", new=AsyncMock(return_value=FakePool())):
            await conn_ops.connect(app_ctx, "app")

        assert (await conn_ops.disconnect(app_ctx, "app")).data is True
        assert (await conn_ops.disconnect(app_ctx, "app")).data is False
        assert conn_ops.connection_status(app_ctx, "app").data.connected is False

    @pytest.mark.asyncio
    async def test_close_drains_pools(self, app_ctx):
        pool = FakePool()
        with patch("pharos.core.connection.create_pool", new=AsyncMock(return_value=pool)):
            await conn_ops.connect(app_ctx, "app")
        await app_ctx.close()
        assert pool.closed is True
        assert app_ctx.registry.connection_ids() == []


class TestTestConnection:
    @pytest.mark.asyncio
    async def test_reports_version(self, app_ctx):
        conn = FakeConnection()
        conn.fetchval_results["SELECT version()"] = "PostgreSQL 16.2"
        with patch("pharos.core.connection.open_connection", new=AsyncMock(return_value=conn)):
            result = await conn_ops.test_connection(app_ctx, CONFIG, "s3cret")
        assert result.data.server_version == "PostgreSQL 16.2"

    @pytest.mark.asyncio
    async def test_failure_is_redacted(self, app_ctx):
        conn = FakeConnection()
        conn.fetchval_results["SELECT version()"] = OSError("password=s3cret rejected")
        with patch("pharos.core.connection.open_connection", new=AsyncMock(return_value=conn)):
            result = await conn_ops.test_connection(app_ctx, CONFIG, "s3cret")
        assert result.error.code == "CONNECTION_FAILED"
        assert "s3cret" not in result.error.message
