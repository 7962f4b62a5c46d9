"""
Connection configuration and pool lifecycle.

``ConnectionConfig`` describes where a server lives; it never holds the
password.  ``ConnectionManager`` joins a config with its password from the
secret store, builds an asyncpg pool, and registers it in the
``SessionRegistry`` under the connection id.  Disconnect removes and closes
it.  ``test_connection`` opens one throwaway connection and reports the
server version, without touching the registry.

Examples:
    >>> config, password = ConnectionConfig.from_url("postgresql://bob@db.local:5433/app?sslmode=require")
    >>> config.host, config.port, config.database, config.username, config.ssl_mode
    ('db.local', 5433, 'app', 'bob', <SslMode.REQUIRE: 'require'>)
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, unquote, urlsplit

from pharos.core.database import (
    DRIVER_ERRORS,
    close_pool,
    connection_failure,
    create_pool,
    normalize_database_url,
    open_connection,
    pool_stats,
)
from pharos.core.errors import ConfigError, MissingConfigError, NotConnectedError
from pharos.core.logging import get_logger
from pharos.core.registry import PoolHandle, SessionRegistry
from pharos.core.settings import PharosSettings, get_settings

if TYPE_CHECKING:
    from pharos.core.protocols import ConfigStore, SecretStore

logger = get_logger(__name__)


class SslMode(str, Enum):
    """libpq ``sslmode`` values understood by asyncpg."""

    DISABLE = "disable"
    ALLOW = "allow"
    PREFER = "prefer"
    REQUIRE = "require"
    VERIFY_CA = "verify-ca"
    VERIFY_FULL = "verify-full"


@dataclass(frozen=True)
class ConnectionConfig:
    """Where to reach a PostgreSQL server. The password lives in a SecretStore."""

    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    username: str = "postgres"
    ssl_mode: SslMode = SslMode.PREFER
    name: str = ""

    def connect_kwargs(self, password: str | None = None) -> dict[str, Any]:
        """Keyword arguments for ``asyncpg.connect`` / ``asyncpg.create_pool``."""
        kwargs: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.username,
            "database": self.database,
            "ssl": self.ssl_mode.value,
        }
        if password:
            kwargs["password"] = password
        return kwargs

    def display_url(self) -> str:
        """Credential-free URL for logs and status output."""
        return f"postgresql://{self.username}@{self.host}:{self.port}/{self.database}"

    @classmethod
    def from_url(cls, url: str, name: str = "") -> tuple[ConnectionConfig, str | None]:
        """Parse a ``postgresql://`` URL into a config and its password."""
        raw = url
        url = normalize_database_url(url)
        parts = urlsplit(url)
        if parts.scheme not in ("postgres", "postgresql"):
            raise ConfigError(f"Unsupported connection URL scheme: {parts.scheme or '<none>'}")

        query = parse_qs(urlsplit(raw).query)
        ssl_value = query.get("sslmode", [SslMode.PREFER.value])[0]
        try:
            ssl_mode = SslMode(ssl_value)
        except ValueError as exc:
            raise ConfigError(f"Invalid sslmode: {ssl_value}", cause=exc) from exc

        try:
            port = parts.port or 5432
        except ValueError as exc:
            raise ConfigError("Invalid port in connection URL", cause=exc) from exc

        config = cls(
            host=parts.hostname or "localhost",
            port=port,
            database=unquote(parts.path.lstrip("/")) or "postgres",
            username=unquote(parts.username) if parts.username else "postgres",
            ssl_mode=ssl_mode,
            name=name,
        )
        password = unquote(parts.password) if parts.password else None
        return config, password

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "username": self.username,
            "ssl_mode": self.ssl_mode.value,
        }


class InMemoryConfigStore:
    """Dictionary-backed :class:`~pharos.core.protocols.ConfigStore`."""

    def __init__(self, configs: dict[str, ConnectionConfig] | None = None):
        self._configs = dict(configs or {})
        self._lock = threading.Lock()

    def get(self, connection_id: str) -> ConnectionConfig | None:
        with self._lock:
            return self._configs.get(connection_id)

    def set(self, connection_id: str, config: ConnectionConfig) -> None:
        with self._lock:
            self._configs[connection_id] = config

    def delete(self, connection_id: str) -> None:
        with self._lock:
            self._configs.pop(connection_id, None)

    def list(self) -> list[ConnectionConfig]:
        with self._lock:
            return list(self._configs.values())


@dataclass(frozen=True)
class ConnectionStatus:
    connection_id: str
    connected: bool
    pool: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"connection_id": self.connection_id, "connected": self.connected, "pool": dict(self.pool)}


@dataclass(frozen=True)
class TestConnectionResult:
    server_version: str
    latency_ms: int

    __test__ = False  # not a pytest class

    def to_dict(self) -> dict[str, Any]:
        return {"server_version": self.server_version, "latency_ms": self.latency_ms}


class ConnectionManager:
    """Creates, registers and closes pools for configured connections."""

    def __init__(
        self,
        registry: SessionRegistry,
        config_store: ConfigStore,
        secret_store: SecretStore,
        settings: PharosSettings | None = None,
    ):
        self.registry = registry
        self.config_store = config_store
        self.secret_store = secret_store
        self.settings = settings or get_settings()

    async def connect(self, connection_id: str) -> PoolHandle:
        """Close any pool already open for ``connection_id``, then build and register a new one."""
        config = self.config_store.get(connection_id)
        if config is None:
            raise MissingConfigError(connection_id, f"Connection not found: {connection_id}")
        password = self.secret_store.get(connection_id)
        kwargs = config.connect_kwargs(password)

        previous = self.registry.remove_pool(connection_id)
        if previous is not None:
            await close_pool(previous.pool)
            logger.info("pool_replaced", connection_id=connection_id)

        pool = await create_pool(
            kwargs,
            min_size=self.settings.pool_min_size,
            max_size=self.settings.pool_max_size,
            connect_timeout=self.settings.connect_timeout,
            command_timeout=self.settings.command_timeout,
        )
        handle = PoolHandle(connection_id=connection_id, pool=pool, connect_kwargs=kwargs)
        self.registry.register_pool(handle)
        logger.info("connected", connection_id=connection_id, target=config.display_url())
        return handle

    async def disconnect(self, connection_id: str) -> bool:
        """Close and forget the pool; ``False`` when nothing was connected."""
        handle = self.registry.remove_pool(connection_id)
        if handle is None:
            return False
        await close_pool(handle.pool)
        logger.info("disconnected", connection_id=connection_id)
        return True

    async def disconnect_all(self) -> int:
        handles = self.registry.drain_pools()
        for handle in handles:
            await close_pool(handle.pool)
        return len(handles)

    async def test_connection(self, config: ConnectionConfig, password: str | None = None) -> TestConnectionResult:
        """Open one connection, read the server version, close it."""
        started = time.perf_counter()
        conn = await open_connection(config.connect_kwargs(password), timeout=self.settings.connect_timeout)
        try:
            version = await conn.fetchval("SELECT version()")
        except DRIVER_ERRORS as exc:
            raise connection_failure(exc, "Connection test failed") from exc
        finally:
            await conn.close()
        latency_ms = int((time.perf_counter() - started) * 1000)
        logger.info("connection_tested", target=config.display_url(), latency_ms=latency_ms)
        return TestConnectionResult(server_version=version or "", latency_ms=latency_ms)

    def status(self, connection_id: str) -> ConnectionStatus:
        try:
            handle = self.registry.lease(connection_id)
        except NotConnectedError:
            return ConnectionStatus(connection_id=connection_id, connected=False)
        return ConnectionStatus(connection_id=connection_id, connected=True, pool=pool_stats(handle.pool))


__all__ = [
    "SslMode",
    "ConnectionConfig",
    "InMemoryConfigStore",
    "ConnectionStatus",
    "TestConnectionResult",
    "ConnectionManager",
]
