"""
Device Registry.

Keyed store of per-student device records over a closed roster:
- Registration only updates existing ids, it never inserts
- Writes to the same id are serialized; different ids proceed independently
- Reads return immutable records, list() returns a point-in-time snapshot

Two backends share the DeviceRegistry contract:
- InMemoryDeviceRegistry: process-local dict of immutable records
- SqlDeviceRegistry: SQLAlchemy table, one transaction per update
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from sqlalchemy.orm import Session

from coursepush.core.config import settings
from coursepush.core.database import Base, SessionLocal, engine, ensure_sqlite_directory
from coursepush.core.logging_config import mask_token
from coursepush.models.student_device import StudentDevice
from coursepush.services.push.constants import DEFAULT_ROSTER
from coursepush.services.push.exceptions import NotFound
from coursepush.services.push.models import DeviceRecord

logger = logging.getLogger(__name__)


def student_not_found(student_id: str) -> NotFound:
    return NotFound(f"Student {student_id} not found.")


class _KeyLocks:
    """Lazily created per-key locks."""

    def __init__(self, keys: Iterable[str] = ()):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {k: threading.Lock() for k in keys}

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


class DeviceRegistry(ABC):
    """Contract shared by all registry backends."""

    backend: str = ""

    @abstractmethod
    def get(self, student_id: str) -> DeviceRecord:
        """Return the record for student_id, raise NotFound if not on the roster."""

    @abstractmethod
    def list(self) -> List[DeviceRecord]:
        """Return a consistent snapshot of all records."""

    @abstractmethod
    def update(
        self,
        student_id: str,
        token: str,
        partner: str,
        environment: str,
        version: str,
        updated_at: Optional[datetime] = None,
    ) -> DeviceRecord:
        """Replace the registration fields of an existing record as one unit."""


class InMemoryDeviceRegistry(DeviceRegistry):
    """
    Process-local registry.

    The id -> record mapping is guarded by a store lock held only while a
    record is swapped in or while the mapping is copied, so scans never see
    a half-applied write. Per-id locks linearize writers to the same id;
    last write wins by commit order.
    """

    backend = "memory"

    def __init__(self, records: Iterable[DeviceRecord] = ()):
        self._records: Dict[str, DeviceRecord] = {r.id: r for r in records}
        self._store_lock = threading.Lock()
        self._key_locks = _KeyLocks(self._records.keys())

    @classmethod
    def from_roster(cls, roster: Mapping[str, Iterable[str]]) -> "InMemoryDeviceRegistry":
        """Provision unregistered records for every roster id."""
        return cls(DeviceRecord.provision(sid, courses) for sid, courses in roster.items())

    def get(self, student_id: str) -> DeviceRecord:
        with self._store_lock:
            record = self._records.get(student_id)
        if record is None:
            raise student_not_found(student_id)
        return record

    def list(self) -> List[DeviceRecord]:
        with self._store_lock:
            return list(self._records.values())

    def update(
        self,
        student_id: str,
        token: str,
        partner: str,
        environment: str,
        version: str,
        updated_at: Optional[datetime] = None,
    ) -> DeviceRecord:
        with self._key_locks.get(student_id):
            with self._store_lock:
                current = self._records.get(student_id)
            if current is None:
                raise student_not_found(student_id)

            updated = current.with_registration(
                token=token,
                partner=partner,
                environment=environment,
                version=version,
                updated_at=updated_at or datetime.now(timezone.utc),
            )
            with self._store_lock:
                self._records[student_id] = updated

        logger.debug(
            "Device record updated",
            extra={"student_id": student_id, "token": mask_token(token)}
        )
        return updated

    def __len__(self) -> int:
        with self._store_lock:
            return len(self._records)


class SqlDeviceRegistry(DeviceRegistry):
    """
    SQLAlchemy-backed registry.

    Each update runs in its own transaction under the per-id lock. list()
    reads every row in a single SELECT and returns detached records.
    """

    backend = "sql"

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._key_locks = _KeyLocks()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _to_record(row: StudentDevice) -> DeviceRecord:
        updated_at = row.updated_at
        # SQLite drops tzinfo on round trip
        if updated_at is not None and updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return DeviceRecord(
            id=row.id,
            token=row.token or "",
            partner=row.partner or "",
            environment=row.environment or "",
            version=row.version or "",
            courses=frozenset(row.get_courses()),
            updated_at=updated_at,
        )

    def seed(self, roster: Mapping[str, Iterable[str]]) -> int:
        """
        Provision roster ids that are not yet stored.

        Existing rows are left untouched so registrations survive restarts.

        Returns:
            Number of rows inserted
        """
        inserted = 0
        with self._session() as db:
            existing = {sid for (sid,) in db.query(StudentDevice.id).all()}
            for student_id, courses in roster.items():
                if student_id in existing:
                    continue
                row = StudentDevice(id=student_id)
                row.set_courses(courses)
                db.add(row)
                inserted += 1
            db.commit()

        if inserted:
            logger.info("Roster provisioned", extra={"inserted": inserted})
        return inserted

    def get(self, student_id: str) -> DeviceRecord:
        with self._session() as db:
            row = db.get(StudentDevice, student_id)
            if row is None:
                raise student_not_found(student_id)
            return self._to_record(row)

    def list(self) -> List[DeviceRecord]:
        with self._session() as db:
            rows = db.query(StudentDevice).all()
            return [self._to_record(row) for row in rows]

    def update(
        self,
        student_id: str,
        token: str,
        partner: str,
        environment: str,
        version: str,
        updated_at: Optional[datetime] = None,
    ) -> DeviceRecord:
        with self._key_locks.get(student_id):
            with self._session() as db:
                row = db.get(StudentDevice, student_id)
                if row is None:
                    raise student_not_found(student_id)

                row.token = token
                row.partner = partner
                row.environment = environment
                row.version = version
                row.updated_at = updated_at or datetime.now(timezone.utc)
                db.commit()
                db.refresh(row)
                record = self._to_record(row)

        logger.debug(
            "Device record updated",
            extra={"student_id": student_id, "token": mask_token(token)}
        )
        return record


def load_roster(path: Optional[str] = None) -> Dict[str, List[str]]:
    """
    Load the closed student roster.

    The file maps student ids either to {"courses": [...]} or directly to a
    list of course ids. Without a path the built-in roster is returned.

    Raises:
        ValueError: If the file is not a JSON object of that shape
    """
    if not path:
        return {sid: list(courses) for sid, courses in DEFAULT_ROSTER.items()}

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Roster file {path} must contain a JSON object")

    roster: Dict[str, List[str]] = {}
    for student_id, entry in raw.items():
        courses = entry.get("courses", []) if isinstance(entry, dict) else entry
        if not isinstance(courses, list):
            raise ValueError(f"Roster entry {student_id} must list its courses")
        roster[str(student_id)] = [str(c) for c in courses]
    return roster


def build_registry(
    backend: str,
    roster: Mapping[str, Iterable[str]],
    session_factory: Optional[Callable[[], Session]] = None,
) -> DeviceRegistry:
    """Create and provision a registry for the configured backend."""
    if backend == "memory":
        registry: DeviceRegistry = InMemoryDeviceRegistry.from_roster(roster)
    elif backend == "sql":
        if session_factory is None:
            raise ValueError("SQL registry requires a session factory")
        registry = SqlDeviceRegistry(session_factory)
        registry.seed(roster)
    else:
        raise ValueError(f"Unknown registry backend: {backend}")

    logger.info(
        "Device registry ready",
        extra={"backend": backend, "roster_size": len(roster)}
    )
    return registry


# Global singleton instance
_device_registry: Optional[DeviceRegistry] = None


def get_device_registry() -> DeviceRegistry:
    """
    Get the global DeviceRegistry instance.

    Creates and provisions the configured backend on first call.

    Returns:
        DeviceRegistry singleton instance
    """
    global _device_registry

    if _device_registry is None:
        if settings.REGISTRY_BACKEND == "sql":
            ensure_sqlite_directory(settings.DATABASE_URL)
            Base.metadata.create_all(bind=engine)
        _device_registry = build_registry(
            settings.REGISTRY_BACKEND,
            load_roster(settings.ROSTER_FILE),
            session_factory=SessionLocal,
        )

    return _device_registry
