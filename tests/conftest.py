#tests\conftest.py

"""Pytest configuration and fixtures."""

import json
from unittest.mock import Mock

import pytest
import requests
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from alfred_core.core.models import UserVmRecord, VmStatus
from alfred_core.gateway.client import VmGateway
from alfred_core.infrastructure.memory.repository import (
    InMemoryFailureTracker,
    InMemoryUserVmRepository,
)
from alfred_core.infrastructure.postgres.database import Base, get_session_factory, init_db
from alfred_core.signing.signer import JwtRequestSigner


TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"


# ============================================
# HTTP helpers
# ============================================

def make_response(status_code=200, json_data=None, text=None, headers=None):
    """Build a real requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status_code
    response.encoding = "utf-8"

    if json_data is not None:
        response._content = json.dumps(json_data).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    elif text is not None:
        response._content = text.encode("utf-8")
        response.headers["Content-Type"] = "text/plain"
    else:
        response._content = b""

    for key, value in (headers or {}).items():
        response.headers[key] = value

    return response


@pytest.fixture
def http_response():
    """Factory fixture for make_response."""
    return make_response


@pytest.fixture
def http_session():
    """Session stand-in; set .request.return_value / .side_effect per test."""
    return Mock(spec=requests.Session)


# ============================================
# Domain
# ============================================

@pytest.fixture
def repository():
    return InMemoryUserVmRepository()


@pytest.fixture
def failure_tracker():
    return InMemoryFailureTracker()


@pytest.fixture
def make_user(repository):
    """Create and persist a user record."""

    def _make_user(user_id="user-1", status=VmStatus.READY, subdomain="cozy-peanut", **fields):
        record = UserVmRecord(
            user_id=user_id,
            email=fields.pop("email", f"{user_id}@example.com"),
            has_access=fields.pop("has_access", True),
            vm_status=status,
            vm_subdomain=subdomain,
            **fields,
        )
        repository.create(record)
        return record

    return _make_user


@pytest.fixture
def signer():
    return JwtRequestSigner(TEST_JWT_SECRET)


@pytest.fixture
def gateway(repository, signer, http_session):
    return VmGateway(
        repository=repository,
        signer=signer,
        vm_domain="alfredos.site",
        timeout=5,
        session=http_session,
    )


# ============================================
# SQL
# ============================================

@pytest.fixture
def sql_engine():
    """In-memory SQLite shared across sessions of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return get_session_factory(sql_engine)
