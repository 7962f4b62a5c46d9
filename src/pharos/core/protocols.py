"""
Collaborator protocols consumed by the query core.

Connection configuration and password storage live outside the core (the
desktop shell keeps them in its own store and the OS keychain).  The core
only depends on these shapes, so tests and the CLI plug in the in-memory
implementations from :mod:`pharos.core.connection` and
:mod:`pharos.core.secrets`.

Architecture:
    ::

        protocols.py
        ├── ConfigStore   maps connection id → ConnectionConfig (get/set/delete/list)
        └── SecretStore   maps connection id → password (get/set/delete)

    Consumers:
        core/connection.py (ConnectionManager), ops/context.py
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pharos.core.connection import ConnectionConfig


@runtime_checkable
class ConfigStore(Protocol):
    """Key-value store of connection configurations."""

    def get(self, connection_id: str) -> ConnectionConfig | None:
        """Return the stored config, or ``None`` when unknown."""
        ...

    def set(self, connection_id: str, config: ConnectionConfig) -> None:
        ...

    def delete(self, connection_id: str) -> None:
        ...

    def list(self) -> list[ConnectionConfig]:
        ...


@runtime_checkable
class SecretStore(Protocol):
    """Password store keyed by connection id. Values are never logged."""

    def get(self, connection_id: str) -> str | None:
        ...

    def set(self, connection_id: str, password: str) -> None:
        ...

    def delete(self, connection_id: str) -> None:
        ...


__all__ = [
    "ConfigStore",
    "SecretStore",
]
