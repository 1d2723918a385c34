#alfred_core\infrastructure\postgres\failure_tracker.py

"""Failure tracker shared by every health monitor process."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from alfred_core.core.repository import FailureTracker
from alfred_core.infrastructure.postgres.database import get_session_factory
from alfred_core.infrastructure.postgres.models import VmHealthFailureORM


class PostgresFailureTracker(FailureTracker):

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def _get_session(self) -> Session:
        return self._session_factory()

    def get_count(self, user_id: str) -> int:
        session = self._get_session()
        try:
            orm = session.get(VmHealthFailureORM, user_id)
            return orm.consecutive_failures if orm else 0
        finally:
            session.close()

    def increment(self, user_id: str, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)

        # One retry covers two monitors inserting the first failure at once
        for _ in range(2):
            session = self._get_session()
            try:
                orm = session.query(VmHealthFailureORM).filter(
                    VmHealthFailureORM.user_id == user_id
                ).with_for_update().first()

                if orm is None:
                    orm = VmHealthFailureORM(user_id=user_id, consecutive_failures=0)
                    session.add(orm)

                orm.consecutive_failures += 1
                orm.last_check = now
                session.commit()

                return orm.consecutive_failures
            except IntegrityError:
                session.rollback()
            finally:
                session.close()

        raise RuntimeError(f"Could not increment failure count for {user_id}")

    def reset(self, user_id: str) -> None:
        session = self._get_session()
        try:
            session.query(VmHealthFailureORM).filter(
                VmHealthFailureORM.user_id == user_id
            ).delete()
            session.commit()
        finally:
            session.close()

    def stats(self) -> List[Dict[str, Any]]:
        session = self._get_session()
        try:
            return [
                {
                    "user_id": orm.user_id,
                    "consecutive_failures": orm.consecutive_failures,
                    "last_check": orm.last_check,
                }
                for orm in session.query(VmHealthFailureORM).all()
            ]
        finally:
            session.close()

    def clear(self) -> int:
        session = self._get_session()
        try:
            count = session.query(VmHealthFailureORM).delete()
            session.commit()
            return count
        finally:
            session.close()
