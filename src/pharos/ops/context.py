"""
Application-scoped context for operations.

Every operation function receives an :class:`OperationContext` as its first
argument.  The context owns the one :class:`SessionRegistry` of the process
and the services built on it, so nothing in pharos keeps pools or running
queries in module globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pharos.core.connection import ConnectionManager, InMemoryConfigStore
from pharos.core.protocols import ConfigStore, SecretStore
from pharos.core.registry import SessionRegistry
from pharos.core.secrets import InMemorySecretStore
from pharos.core.settings import PharosSettings, get_settings
from pharos.query.commit import CommitEngine
from pharos.query.editing import EditabilityAnalyzer
from pharos.query.executor import QueryExecutor
from pharos.query.transfer import TableTransfer


@dataclass
class OperationContext:
    """Context passed to every operation function.

    Attributes:
        config_store: Connection configurations by connection id.
        secret_store: Passwords by connection id.
        settings: Runtime defaults; loaded from the environment if omitted.
        registry: Pools and running queries shared by all services.
        caller: Origin of the requests, ``"ui"``, ``"cli"`` or ``"sdk"``.
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    config_store: ConfigStore = field(default_factory=InMemoryConfigStore)
    secret_store: SecretStore = field(default_factory=InMemorySecretStore)
    settings: PharosSettings = field(default_factory=get_settings)
    registry: SessionRegistry = field(default_factory=SessionRegistry)
    caller: str = "sdk"
    metadata: dict[str, Any] = field(default_factory=dict)

    connections: ConnectionManager = field(init=False, repr=False)
    executor: QueryExecutor = field(init=False, repr=False)
    analyzer: EditabilityAnalyzer = field(init=False, repr=False)
    commits: CommitEngine = field(init=False, repr=False)
    transfer: TableTransfer = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.connections = ConnectionManager(self.registry, self.config_store, self.secret_store, self.settings)
        self.executor = QueryExecutor(self.registry, self.settings)
        self.analyzer = EditabilityAnalyzer(self.registry, self.settings)
        self.commits = CommitEngine(self.registry, self.settings)
        self.transfer = TableTransfer(self.registry, self.settings)

    async def close(self) -> None:
        """Close every registered pool."""
        await self.connections.disconnect_all()
