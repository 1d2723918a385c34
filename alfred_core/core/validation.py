#alfred_core\core\validation.py
import re

from alfred_core.core.errors import ProvisioningValidationError
from alfred_core.core.models import ProvisioningRequest


SUPPORTED_PROVIDERS = ("hetzner", "aws", "gcp", "digitalocean")

# Lowercase alphanumeric, hyphens allowed only inside.
SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")

# ASCII digits only; int() would accept other Unicode digits
IPV4_PATTERN = re.compile(r"^[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}$")


def is_valid_subdomain(subdomain) -> bool:
    if not subdomain or not isinstance(subdomain, str):
        return False
    return SUBDOMAIN_PATTERN.fullmatch(subdomain) is not None


def is_valid_ipv4(ip) -> bool:
    if not ip or not isinstance(ip, str):
        return False
    if not IPV4_PATTERN.fullmatch(ip):
        return False
    return all(0 <= int(octet) <= 255 for octet in ip.split("."))


def validate_provisioning_request(request: ProvisioningRequest) -> None:
    # -------------------------
    # Identity
    # -------------------------
    if not request.subdomain or not isinstance(request.subdomain, str):
        raise ProvisioningValidationError("Invalid subdomain")

    if not request.user_id:
        raise ProvisioningValidationError("User ID is required")

    # -------------------------
    # Provider
    # -------------------------
    if request.provider not in SUPPORTED_PROVIDERS:
        raise ProvisioningValidationError(
            f"Unsupported provider: {request.provider}"
        )

    # -------------------------
    # Subdomain format
    # -------------------------
    if not is_valid_subdomain(request.subdomain):
        raise ProvisioningValidationError(
            "Subdomain must be alphanumeric with optional hyphens"
        )
