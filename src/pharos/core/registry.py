"""
Session registry: pooled connections and in-flight queries.

The registry is the only mutable state shared between concurrent query
executions.  It holds two maps, both guarded by one lock:

- connection id → :class:`PoolHandle` (inserted on connect, removed on
  disconnect)
- query id → :class:`QuerySession` (inserted when a query starts streaming,
  removed on every exit path)

A ``SessionRegistry`` is created once per application and handed to every
service that needs it; there is no module-level instance.

Architecture:
    ::

        ┌───────────────────────────── SessionRegistry ───────────────────┐
        │  _lock: threading.Lock                                          │
        │  _pools:   {connection_id: PoolHandle(pool, connect_kwargs)}    │
        │  _queries: {query_id: QuerySession(backend_pid, cancel_event)}  │
        └─────────────────────────────────────────────────────────────────┘
              ▲ lease / register_pool          ▲ begin / end / request_cancel
              │                                │
        ConnectionManager, CommitEngine     QueryExecutor

Cancellation is cooperative.  ``request_cancel`` only sets the shared
``threading.Event``; the executor polls it between rows.  Stopping a
statement that has not produced rows yet needs the backend cancel request
that :meth:`QueryExecutor.cancel` sends separately.

Examples:
    >>> registry = SessionRegistry()
    >>> flag = registry.begin_query("q-1", backend_pid=4242)
    >>> registry.request_cancel("q-1")
    True
    >>> flag.is_set()
    True
    >>> registry.end_query("q-1")
    >>> registry.request_cancel("q-1")
    False
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from pharos.core.errors import NotConnectedError
from pharos.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PoolHandle:
    """A live pool plus what is needed to open side connections to the same server."""

    connection_id: str
    pool: Any
    connect_kwargs: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class QuerySession:
    """Bookkeeping for one in-flight query execution."""

    query_id: str
    backend_pid: int
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class SessionRegistry:
    """Thread-safe owner of pool handles and running-query sessions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pools: dict[str, PoolHandle] = {}
        self._queries: dict[str, QuerySession] = {}

    # ------------------------------------------------------------------ #
    # Pools
    # ------------------------------------------------------------------ #

    def register_pool(self, handle: PoolHandle) -> PoolHandle | None:
        """Store ``handle``; returns the handle it replaced, if any."""
        with self._lock:
            previous = self._pools.get(handle.connection_id)
            self._pools[handle.connection_id] = handle
        logger.debug("pool_registered", connection_id=handle.connection_id)
        return previous

    def remove_pool(self, connection_id: str) -> PoolHandle | None:
        with self._lock:
            handle = self._pools.pop(connection_id, None)
        if handle is not None:
            logger.debug("pool_removed", connection_id=connection_id)
        return handle

    def has_pool(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._pools

    def lease(self, connection_id: str) -> PoolHandle:
        """Return the pool handle for ``connection_id``.

        Raises:
            NotConnectedError: No pool is registered for the id
        """
        with self._lock:
            handle = self._pools.get(connection_id)
        if handle is None:
            raise NotConnectedError(connection_id)
        return handle

    def connection_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._pools)

    def drain_pools(self) -> list[PoolHandle]:
        """Remove and return every handle (application shutdown)."""
        with self._lock:
            handles = list(self._pools.values())
            self._pools.clear()
        return handles

    # ------------------------------------------------------------------ #
    # Running queries
    # ------------------------------------------------------------------ #

    def begin_query(self, query_id: str, backend_pid: int) -> threading.Event:
        """Register an in-flight query and return its cancellation flag."""
        session = QuerySession(query_id=query_id, backend_pid=backend_pid)
        with self._lock:
            replaced = query_id in self._queries
            self._queries[query_id] = session
        if replaced:
            logger.warning("query_id_reused", query_id=query_id)
        return session.cancel_event

    def end_query(self, query_id: str) -> None:
        """Forget ``query_id``. Safe to call more than once."""
        with self._lock:
            self._queries.pop(query_id, None)

    def request_cancel(self, query_id: str) -> bool:
        """Set the cancellation flag; ``False`` when the query is not running."""
        with self._lock:
            session = self._queries.get(query_id)
            if session is None:
                return False
            session.cancel_event.set()
        return True

    def backend_pid(self, query_id: str) -> int | None:
        with self._lock:
            session = self._queries.get(query_id)
            return session.backend_pid if session is not None else None

    def is_running(self, query_id: str) -> bool:
        with self._lock:
            return query_id in self._queries

    def running_count(self) -> int:
        with self._lock:
            return len(self._queries)


__all__ = [
    "PoolHandle",
    "QuerySession",
    "SessionRegistry",
]
