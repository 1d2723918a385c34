# alfred_core/infrastructure/memory/repository.py

import copy
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional

from alfred_core.core.errors import RecordAlreadyExists, UserNotFound
from alfred_core.core.models import UserVmRecord, VmStatus
from alfred_core.core.repository import FailureTracker, UserVmRepository


class InMemoryUserVmRepository(UserVmRepository):
    def __init__(self):
        self._store: dict[str, UserVmRecord] = {}
        self._subdomains: dict[str, str] = {}
        self._lock = Lock()
    def create(self, record: UserVmRecord) -> None:
        with self._lock:
            if record.user_id in self._store:
                raise RecordAlreadyExists(f"User {record.user_id} already exists")
            self._store[record.user_id] = copy.deepcopy(record)
            if record.vm_subdomain:
                self._subdomains.setdefault(record.vm_subdomain, record.user_id)
    def get(self, user_id: str) -> UserVmRecord | None:
        record = self._store.get(user_id)
        return copy.deepcopy(record) if record else None
    def get_by_subdomain(self, subdomain: str) -> UserVmRecord | None:
        for record in self._store.values():
            if record.vm_subdomain == subdomain:
                return copy.deepcopy(record)
        return None
    def get_by_email(self, email: str) -> UserVmRecord | None:
        email = email.strip().lower()
        for record in self._store.values():
            if record.email and record.email.lower() == email:
                return copy.deepcopy(record)
        return None
    def update(self, record: UserVmRecord) -> None:
        with self._lock:
            if record.user_id not in self._store:
                raise UserNotFound(f"User {record.user_id} not found")

            record.updated_at = datetime.now(timezone.utc)
            self._store[record.user_id] = copy.deepcopy(record)
    def update_vm_status(self, user_id: str, status: VmStatus) -> UserVmRecord | None:
        with self._lock:
            record = self._store.get(user_id)
            if not record:
                return None

            record.vm_status = status
            record.updated_at = datetime.now(timezone.utc)
            return copy.deepcopy(record)
    def list_by_status(self, status: VmStatus) -> List[UserVmRecord]:
        return [
            copy.deepcopy(r) for r in self._store.values()
            if r.vm_status == status
        ]
    def reserve_subdomain(self, subdomain: str, user_id: str) -> bool:
        with self._lock:
            if subdomain in self._subdomains:
                return False
            self._subdomains[subdomain] = user_id
            return True


class InMemoryFailureTracker(FailureTracker):
    """Process-local tracker. Lost on restart."""

    def __init__(self):
        self._entries: dict[str, Dict[str, Any]] = {}
        self._lock = Lock()
    def get_count(self, user_id: str) -> int:
        entry = self._entries.get(user_id)
        return entry["count"] if entry else 0
    def increment(self, user_id: str, now: Optional[datetime] = None) -> int:
        with self._lock:
            entry = self._entries.setdefault(user_id, {"count": 0, "last_check": None})
            entry["count"] += 1
            entry["last_check"] = now or datetime.now(timezone.utc)
            return entry["count"]
    def reset(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)
    def stats(self) -> List[Dict[str, Any]]:
        return [
            {
                "user_id": user_id,
                "consecutive_failures": entry["count"],
                "last_check": entry["last_check"],
            }
            for user_id, entry in self._entries.items()
        ]
    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count
