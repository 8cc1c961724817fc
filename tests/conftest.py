"""
Shared pytest fixtures for the vaultfactory test suite.

- Argon2 runs with tiny cost parameters so hashing stays fast
- Cores get in-memory stores and an injectable clock
- SQLite stores and audit logs live under tmp_path
"""

from datetime import timedelta

import pytest

from vaultfactory.auth import AuthManager, TokenIssuer
from vaultfactory.core.audit_log import AuditLogger
from vaultfactory.core.config import VaultConfig
from vaultfactory.db import MemoryStores, SQLiteStores
from vaultfactory.models import utcnow
from vaultfactory.vault import CryptoEngine, VaultManager

JWT_SECRET = "test-secret-0123456789-abcdefghijklmnopqrstuvwxyz"


class FakeClock:
    """
    Controllable clock for the cores.

    Starts at the real current time so issued JWTs pass expiry checks.
    Each call advances by ``step`` (zero by default).
    """

    def __init__(self, start=None, step=timedelta(0)):
        self.now = start or utcnow()
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def crypto():
    return CryptoEngine(memory_cost=1024, time_cost=1, parallelism=1)


@pytest.fixture
def tokens():
    return TokenIssuer(JWT_SECRET, access_ttl=timedelta(minutes=5))


@pytest.fixture
def stores():
    return MemoryStores()


@pytest.fixture
def sqlite_stores(tmp_path):
    return SQLiteStores(tmp_path / "vault.db")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def auth(stores, crypto, tokens, clock):
    return AuthManager(
        stores.users,
        stores.sessions,
        crypto,
        tokens,
        refresh_ttl=timedelta(days=30),
        clock=clock,
    )


@pytest.fixture
def vault_clock():
    # Strictly increasing timestamps so sync ordering is deterministic.
    return FakeClock(step=timedelta(seconds=1))


@pytest.fixture
def vault(stores, crypto, vault_clock):
    return VaultManager(stores.items, stores.versions, crypto, clock=vault_clock)


@pytest.fixture
def config(tmp_path):
    return VaultConfig(
        jwt_secret=JWT_SECRET,
        argon2_memory_cost=1024,
        argon2_time_cost=1,
        argon2_parallelism=1,
        database_path=tmp_path / "vault.db",
        session_sweep_interval=0,
        request_timeout=10,
    )


@pytest.fixture
def audit(tmp_path):
    audit_logger = AuditLogger(tmp_path / "audit_logs")
    yield audit_logger
    audit_logger.close()


@pytest.fixture
def jwt_secret():
    return JWT_SECRET
