"""Credential handling: redaction and password stores.

Connection passwords never live in ``ConnectionConfig``; they are looked up
by connection id from a ``SecretStore`` just before a pool is created.  Any
text that may echo a DSN back (driver errors, test-connection failures) is
run through :func:`redact_credentials` before it leaves the core.

Examples:
    >>> redact_credentials("could not connect to postgres://bob:s3cret@db:5432/app")
    'could not connect to postgres://[credentials]@db:5432/app'
    >>> redact_credentials("host=db password=s3cret user=bob")
    'host=db password=[hidden] user=bob'

    >>> store = InMemorySecretStore()
    >>> store.set("local", "s3cret")
    >>> str(store.get_secret_value("local"))
    '[REDACTED]'
"""

from __future__ import annotations

import os
import re
import threading

# user[:password]@ after a postgres scheme, up to the last @ before whitespace
_URL_CREDENTIALS = re.compile(r"(postgres(?:ql)?://)\S*@", re.IGNORECASE)
# key=value style; the value ends at whitespace, &, quotes or ;
_PASSWORD_PARAM = re.compile(r"(password\s*=\s*)[^\s&\"';]+", re.IGNORECASE)


def redact_credentials(text: str) -> str:
    """Scrub URL credentials and ``password=`` values from ``text``."""
    text = _URL_CREDENTIALS.sub(r"\1[credentials]@", text)
    return _PASSWORD_PARAM.sub(r"\1[hidden]", text)


class SecretValue:
    """Wrapper for secret values that prevents accidental logging.

    The string representation shows ``[REDACTED]`` instead of the value.
    Use ``.get_secret()`` to access the actual value.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    def get_secret(self) -> str:
        """Get the actual secret value."""
        return self._value

    def __str__(self) -> str:
        return "[REDACTED]"

    def __repr__(self) -> str:
        return "SecretValue('[REDACTED]')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretValue):
            return self._value == other._value
        return False

    def __hash__(self) -> int:
        return hash(self._value)

    def __bool__(self) -> bool:
        return bool(self._value)


# ---------------------------------------------------------------------------
# Secret stores
# ---------------------------------------------------------------------------


class InMemorySecretStore:
    """Dictionary-backed password store keyed by connection id."""

    def __init__(self, secrets: dict[str, str] | None = None):
        self._secrets = dict(secrets or {})
        self._lock = threading.Lock()

    def get(self, connection_id: str) -> str | None:
        with self._lock:
            return self._secrets.get(connection_id)

    def set(self, connection_id: str, password: str) -> None:
        with self._lock:
            self._secrets[connection_id] = password

    def delete(self, connection_id: str) -> None:
        with self._lock:
            self._secrets.pop(connection_id, None)

    def get_secret_value(self, connection_id: str) -> SecretValue | None:
        value = self.get(connection_id)
        return SecretValue(value) if value is not None else None


class EnvSecretStore:
    """Read-only store resolving ``PHAROS_SECRET_<CONNECTION_ID>`` variables.

    Non-alphanumeric characters in the id become underscores, so
    ``prod-db`` reads ``PHAROS_SECRET_PROD_DB``.
    """

    prefix = "PHAROS_SECRET_"

    def _env_name(self, connection_id: str) -> str:
        return self.prefix + re.sub(r"[^A-Za-z0-9]", "_", connection_id).upper()

    def get(self, connection_id: str) -> str | None:
        return os.environ.get(self._env_name(connection_id))

    def set(self, connection_id: str, password: str) -> None:
        raise NotImplementedError("EnvSecretStore is read-only")

    def delete(self, connection_id: str) -> None:
        raise NotImplementedError("EnvSecretStore is read-only")


__all__ = [
    "redact_credentials",
    "SecretValue",
    "InMemorySecretStore",
    "EnvSecretStore",
]
