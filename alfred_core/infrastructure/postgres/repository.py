#alfred_core\infrastructure\postgres\repository.py

"""PostgreSQL repository implementation using SQLAlchemy."""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from alfred_core.core.errors import RecordAlreadyExists, RepositoryError, UserNotFound
from alfred_core.core.models import UserVmRecord, VmStatus
from alfred_core.core.repository import UserVmRepository
from alfred_core.infrastructure.postgres.database import get_session_factory
from alfred_core.infrastructure.postgres.models import SubdomainAssignmentORM, UserVmORM

logger = logging.getLogger(__name__)


# VM fields written by update(); identity columns are immutable here
VM_FIELDS = (
    "vm_status",
    "vm_subdomain",
    "vm_ip",
    "vm_server_id",
    "vm_auth_secret_hash",
    "vm_public_key",
    "vm_provisioned_at",
)


# ============================================
# Mapping Functions
# ============================================

def orm_to_domain(orm: UserVmORM) -> UserVmRecord:
    """Convert ORM model to domain model."""
    return UserVmRecord(
        user_id=orm.user_id,
        email=orm.email,
        has_access=orm.has_access,
        vm_status=orm.vm_status,
        vm_subdomain=orm.vm_subdomain,
        vm_ip=orm.vm_ip,
        vm_server_id=orm.vm_server_id,
        vm_auth_secret_hash=orm.vm_auth_secret_hash,
        vm_public_key=orm.vm_public_key,
        vm_provisioned_at=orm.vm_provisioned_at,
        created_at=orm.created_at,
        updated_at=orm.updated_at,
    )


def domain_to_orm(record: UserVmRecord) -> UserVmORM:
    """Convert domain model to ORM model."""
    return UserVmORM(
        user_id=record.user_id,
        email=record.email,
        has_access=record.has_access,
        vm_status=record.vm_status,
        vm_subdomain=record.vm_subdomain,
        vm_ip=record.vm_ip,
        vm_server_id=record.vm_server_id,
        vm_auth_secret_hash=record.vm_auth_secret_hash,
        vm_public_key=record.vm_public_key,
        vm_provisioned_at=record.vm_provisioned_at,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


# ============================================
# Repository Implementation
# ============================================

class PostgresUserVmRepository(UserVmRepository):
    """PostgreSQL implementation using SQLAlchemy with dependency injection."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """
        Initialize repository with optional session factory.

        Args:
            session_factory: SQLAlchemy session factory. If None, uses default production factory.
        """
        self._session_factory = session_factory or get_session_factory()

    def _get_session(self) -> Session:
        """Get new session from the injected factory."""
        return self._session_factory()

    # -------------------------
    # CREATE
    # -------------------------

    def create(self, record: UserVmRecord) -> None:
        session = self._get_session()
        try:
            session.add(domain_to_orm(record))
            if record.vm_subdomain:
                session.add(SubdomainAssignmentORM(
                    subdomain=record.vm_subdomain,
                    user_id=record.user_id,
                ))
            session.commit()
            logger.debug(f"[postgres] create {record.user_id} -> done")
        except IntegrityError as e:
            session.rollback()
            raise RecordAlreadyExists(f"User {record.user_id} already exists") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise RepositoryError(f"Failed to create user {record.user_id}: {e}") from e
        finally:
            session.close()

    # -------------------------
    # READ
    # -------------------------

    def get(self, user_id: str) -> Optional[UserVmRecord]:
        session = self._get_session()
        try:
            orm = session.get(UserVmORM, user_id)
            return orm_to_domain(orm) if orm else None
        finally:
            session.close()

    def get_by_subdomain(self, subdomain: str) -> Optional[UserVmRecord]:
        session = self._get_session()
        try:
            orm = session.query(UserVmORM).filter(
                UserVmORM.vm_subdomain == subdomain
            ).first()
            return orm_to_domain(orm) if orm else None
        finally:
            session.close()

    def get_by_email(self, email: str) -> Optional[UserVmRecord]:
        session = self._get_session()
        try:
            orm = session.query(UserVmORM).filter(
                func.lower(UserVmORM.email) == email.strip().lower()
            ).first()
            return orm_to_domain(orm) if orm else None
        finally:
            session.close()

    def list_by_status(self, status: VmStatus) -> List[UserVmRecord]:
        session = self._get_session()
        try:
            results = session.query(UserVmORM).filter(
                UserVmORM.vm_status == status
            ).order_by(UserVmORM.created_at.asc()).all()

            logger.debug(f"[postgres] list_by_status status={status.value} -> {len(results)} rows")

            return [orm_to_domain(orm) for orm in results]
        finally:
            session.close()

    # -------------------------
    # UPDATE
    # -------------------------

    def update(self, record: UserVmRecord) -> None:
        session = self._get_session()
        try:
            orm = session.get(UserVmORM, record.user_id)
            if orm is None:
                raise UserNotFound(f"User {record.user_id} not found")

            for name in VM_FIELDS:
                setattr(orm, name, getattr(record, name))

            record.updated_at = datetime.now(timezone.utc)
            orm.updated_at = record.updated_at
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise RepositoryError(f"Failed to update user {record.user_id}: {e}") from e
        finally:
            session.close()

    def update_vm_status(self, user_id: str, status: VmStatus) -> Optional[UserVmRecord]:
        session = self._get_session()
        try:
            orm = session.get(UserVmORM, user_id)
            if orm is None:
                return None

            orm.vm_status = status
            orm.updated_at = datetime.now(timezone.utc)
            session.commit()

            logger.debug(f"[postgres] update_vm_status {user_id} -> {status.value}")

            return orm_to_domain(orm)
        except SQLAlchemyError as e:
            session.rollback()
            raise RepositoryError(f"Failed to update status for {user_id}: {e}") from e
        finally:
            session.close()

    # -------------------------
    # SUBDOMAIN LEDGER
    # -------------------------

    def reserve_subdomain(self, subdomain: str, user_id: str) -> bool:
        session = self._get_session()
        try:
            session.add(SubdomainAssignmentORM(subdomain=subdomain, user_id=user_id))
            session.commit()
            return True
        except IntegrityError:
            session.rollback()
            return False
        finally:
            session.close()
