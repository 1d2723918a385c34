# alfred_core/core/repository.py

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Any

from alfred_core.core.models import UserVmRecord, VmStatus


class UserVmRepository(ABC):
    """
    Persistence contract for user VM records.
    """

    @abstractmethod
    def create(self, record: UserVmRecord) -> None:
        """
        Persist a new record.
        Must fail if user_id already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, user_id: str) -> Optional[UserVmRecord]:
        """
        Fetch record by user ID.
        Returns None if not found.
        """
        raise NotImplementedError

    @abstractmethod
    def get_by_subdomain(self, subdomain: str) -> Optional[UserVmRecord]:
        raise NotImplementedError

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[UserVmRecord]:
        raise NotImplementedError

    @abstractmethod
    def update(self, record: UserVmRecord) -> None:
        """
        Persist the VM fields of an existing record.
        """
        raise NotImplementedError

    @abstractmethod
    def update_vm_status(self, user_id: str, status: VmStatus) -> Optional[UserVmRecord]:
        """
        Write vm_status only.
        Returns the updated record, or None if the user does not exist.
        """
        raise NotImplementedError

    @abstractmethod
    def list_by_status(self, status: VmStatus) -> List[UserVmRecord]:
        """
        List records in a given status.
        Used by the health sweep.
        """
        raise NotImplementedError

    @abstractmethod
    def reserve_subdomain(self, subdomain: str, user_id: str) -> bool:
        """
        Atomically claim a subdomain for a user.
        Returns False if it was ever assigned before.
        """
        raise NotImplementedError


class FailureTracker(ABC):
    """
    Consecutive health-probe failures per user.
    """

    @abstractmethod
    def get_count(self, user_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def increment(self, user_id: str, now: Optional[datetime] = None) -> int:
        """
        Add one failure and return the new count.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self, user_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> List[Dict[str, Any]]:
        """
        [{"user_id", "consecutive_failures", "last_check"}, ...]
        """
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> int:
        """
        Drop every entry. Returns how many were dropped.
        """
        raise NotImplementedError
