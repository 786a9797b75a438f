"""Pytest fixtures and configuration for test suite

This module provides:
1. Environment defaults applied before the application settings load
2. Factory functions for device records and registries
3. Pytest fixtures built on the factories

Factory Functions:
    - make_record(**overrides) -> DeviceRecord
    - make_registry(*records) -> InMemoryDeviceRegistry
"""
import os
import tempfile

# Settings are read at import time, so the environment has to be in place
# before anything from coursepush is imported.
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="coursepush-logs-"))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REGISTRY_BACKEND", "memory")
os.environ.setdefault("FCM_PARTNER_CREDENTIALS", "poc1=/secrets/poc1.json,poc2=/secrets/poc2.json")

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from coursepush.core.database import Base
from coursepush.services.push.credentials import CredentialSelector
from coursepush.services.push.models import DeviceRecord
from coursepush.services.push.registry import InMemoryDeviceRegistry, SqlDeviceRegistry


# =============================================================================
# Factory Functions for Test Objects
# =============================================================================

def make_record(
    id: str = "poc1qa123456",
    token: str = "",
    partner: str = "",
    environment: str = "",
    version: str = "",
    courses=("123",),
    updated_at: datetime = None,
) -> DeviceRecord:
    """
    Factory function to create DeviceRecord instances for testing.

    Example:
        record = make_record(token="tok-1", partner="poc1", environment="qa")
    """
    if token and updated_at is None:
        updated_at = datetime.now(timezone.utc)
    return DeviceRecord(
        id=id,
        token=token,
        partner=partner,
        environment=environment,
        version=version,
        courses=frozenset(courses),
        updated_at=updated_at,
    )


def make_registry(*records: DeviceRecord) -> InMemoryDeviceRegistry:
    """Create an in-memory registry holding the given records."""
    return InMemoryDeviceRegistry(records)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def roster():
    """Small roster: two poc1/qa students in course 123, one poc1/release, one poc2/qa."""
    return {
        "poc1qa123456": ["123"],
        "poc1qa654321": ["123", "555"],
        "poc1release123456": ["789"],
        "poc2qa123456": ["321"],
    }


@pytest.fixture
def empty_registry(roster):
    """Registry with every roster entry provisioned but unregistered."""
    return InMemoryDeviceRegistry.from_roster(roster)


@pytest.fixture
def registry():
    """Registry with registered devices across partners, environments and versions."""
    return make_registry(
        make_record(id="poc1qa123456", token="tok-qa-1", partner="poc1",
                    environment="qa", version="1.0.0", courses=["123"]),
        make_record(id="poc1qa654321", token="tok-qa-2", partner="poc1",
                    environment="qa", version="1.1.0", courses=["123", "555"]),
        make_record(id="poc1qa000000", token="", partner="", environment="",
                    version="", courses=["123"]),
        make_record(id="poc1release123456", token="tok-rel-1", partner="poc1",
                    environment="release", version="1.0.0", courses=["789"]),
        make_record(id="poc2qa123456", token="tok-poc2-1", partner="poc2",
                    environment="qa", version="1.0.0", courses=["123"]),
    )


@pytest.fixture
def selector():
    """Credential selector for partners poc1 and poc2."""
    return CredentialSelector.from_mapping({
        "poc1": "/secrets/poc1.json",
        "poc2": "/secrets/poc2.json",
    })


@pytest.fixture
def sql_session_factory():
    """
    Session factory bound to a fresh in-memory SQLite database.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield SessionLocal

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sql_registry(sql_session_factory, roster):
    """SQL registry provisioned with the test roster."""
    registry = SqlDeviceRegistry(sql_session_factory)
    registry.seed(roster)
    return registry
