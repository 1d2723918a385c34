#alfred_core\infrastructure\postgres\models.py
"""SQLAlchemy ORM models for database tables."""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, DateTime, Enum as SQLEnum, Boolean, Text
)

from alfred_core.core.models import VmStatus
from alfred_core.infrastructure.postgres.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class UserVmORM(Base):
    """
    User VM table - one row per platform user.

    Indexes:
    - Primary key on user_id
    - Unique index on vm_subdomain
    - Index on vm_status for the health sweep
    - Index on email for operator reset
    """

    __tablename__ = "user_vms"

    # Identity
    user_id = Column(String(64), primary_key=True, nullable=False)
    email = Column(String(320), nullable=True, index=True)
    has_access = Column(Boolean, nullable=False, default=False)

    # VM
    vm_status = Column(
        SQLEnum(VmStatus, name="vm_status"),
        nullable=False,
        default=VmStatus.PENDING,
        index=True
    )
    vm_subdomain = Column(String(63), nullable=True, unique=True)
    vm_ip = Column(String(45), nullable=True)
    vm_server_id = Column(String(64), nullable=True)

    # Registration
    vm_auth_secret_hash = Column(String(128), nullable=True)
    vm_public_key = Column(Text, nullable=True)
    vm_provisioned_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<UserVm(user_id={self.user_id}, vm_status={self.vm_status}, vm_subdomain={self.vm_subdomain})>"


class SubdomainAssignmentORM(Base):
    """
    Every subdomain ever handed out. Rows are never deleted, so a subdomain
    is not reused after a reset or deprovision.
    """

    __tablename__ = "subdomain_assignments"

    subdomain = Column(String(63), primary_key=True, nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    assigned_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class VmHealthFailureORM(Base):
    """Consecutive health probe failures, shared by every monitor process."""

    __tablename__ = "vm_health_failures"

    user_id = Column(String(64), primary_key=True, nullable=False)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    last_check = Column(DateTime(timezone=True), nullable=True)
