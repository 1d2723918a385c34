# alfred_core/core/errors.py

# -----------------------------
# Base Errors
# -----------------------------

class AlfredCoreError(Exception):
    """Base class for all VM lifecycle errors."""
    pass


class ConfigurationError(AlfredCoreError):
    """Required configuration is missing. Fatal, never retried."""
    pass


# -----------------------------
# Validation Errors
# -----------------------------

class ProvisioningValidationError(AlfredCoreError):
    """Invalid provisioning input."""
    pass


# -----------------------------
# Signing Errors
# -----------------------------

class TokenError(AlfredCoreError):
    """Base class for request token failures."""
    pass


class TokenExpiredError(TokenError):
    """Token signature is fine but its expiry has passed."""
    pass


class TokenInvalidError(TokenError):
    """Malformed token, bad signature or unexpected claims."""
    pass


# -----------------------------
# Persistence Errors
# -----------------------------

class RepositoryError(AlfredCoreError):
    pass


class UserNotFound(RepositoryError):
    pass


class RecordAlreadyExists(RepositoryError):
    pass


# -----------------------------
# Registration Errors
# -----------------------------

class RegistrationError(AlfredCoreError):
    """VM boot callback rejected."""
    pass


class VmAlreadyRegistered(RegistrationError):
    pass


class RegistrationNotExpected(RegistrationError):
    pass


class InvalidAuthSecret(RegistrationError):
    pass


# -----------------------------
# State Errors
# -----------------------------

class InvalidStateTransition(AlfredCoreError, ValueError):
    """Illegal VM status or provisioning step transition."""
    pass


class ProvisioningRefused(AlfredCoreError):
    """VM is already provisioned or a provisioning run is in progress."""
    pass
