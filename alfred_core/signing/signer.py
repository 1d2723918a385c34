# alfred_core/signing/signer.py
"""Short-lived signed tokens for dashboard-to-VM requests."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import jwt

from alfred_core.core.errors import (
    ConfigurationError,
    TokenExpiredError,
    TokenInvalidError,
)
from alfred_core.core.models import TokenClaims

logger = logging.getLogger(__name__)


DEFAULT_EXPIRES_IN = 300  # 5 minutes


class RequestSigner(ABC):
    """Signing strategy. Callers depend on this, not on a key scheme."""

    @abstractmethod
    def sign(
        self,
        user_id: str,
        vm_subdomain: str,
        action: str,
        *,
        expires_in: Optional[int] = None,
    ) -> str:
        """Issue a token binding user, VM and action."""
        pass

    @abstractmethod
    def verify(
        self,
        token: str,
        *,
        expected_vm: Optional[str] = None,
        expected_action: Optional[str] = None,
    ) -> TokenClaims:
        """
        Validate signature and expiry.

        Raises:
            TokenExpiredError: token was valid but has expired
            TokenInvalidError: malformed, tampered, or claims don't match
        """
        pass


class JwtRequestSigner(RequestSigner):
    """
    HS256 JWTs signed with one process-wide shared secret.

    No per-user keys and no rotation; a rotating implementation can replace
    this class behind the RequestSigner interface.
    """

    ALGORITHM = "HS256"

    def __init__(
        self,
        secret: str,
        default_expires_in: int = DEFAULT_EXPIRES_IN,
        leeway: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ConfigurationError("VM_JWT_SECRET environment variable is not set")

        self._secret = secret
        self.default_expires_in = default_expires_in
        self.leeway = leeway
        self._clock = clock

    def sign(
        self,
        user_id: str,
        vm_subdomain: str,
        action: str,
        *,
        expires_in: Optional[int] = None,
    ) -> str:
        if not user_id:
            raise ValueError("user_id is required")
        if not vm_subdomain:
            raise ValueError("vm_subdomain is required")
        if not action:
            raise ValueError("action is required")

        now = int(self._clock())
        payload = {
            "sub": str(user_id),
            "vm": vm_subdomain,
            "action": action,
            "iat": now,
            "exp": now + (self.default_expires_in if expires_in is None else expires_in),
        }

        return jwt.encode(payload, self._secret, algorithm=self.ALGORITHM)

    def verify(
        self,
        token: str,
        *,
        expected_vm: Optional[str] = None,
        expected_action: Optional[str] = None,
    ) -> TokenClaims:
        if not token:
            raise TokenInvalidError("token is required")

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.ALGORITHM],
                leeway=self.leeway,
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("VM token has expired")
        except jwt.InvalidTokenError as e:
            raise TokenInvalidError(f"Invalid VM token: {str(e)}")

        vm = claims.get("vm")
        action = claims.get("action")

        if not vm or not action:
            raise TokenInvalidError("Invalid VM token: missing vm or action claim")

        if expected_vm is not None and vm != expected_vm:
            logger.warning(f"Token VM mismatch: expected {expected_vm}, got {vm}")
            raise TokenInvalidError("Invalid VM token: vm claim mismatch")

        if expected_action is not None and action != expected_action:
            raise TokenInvalidError("Invalid VM token: action claim mismatch")

        return TokenClaims(
            sub=claims["sub"],
            vm=vm,
            action=action,
            iat=int(claims["iat"]),
            exp=int(claims["exp"]),
        )
