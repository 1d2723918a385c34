"""Test provisioning input validation."""

import pytest

from alfred_core.core.errors import ProvisioningValidationError
from alfred_core.core.models import ProvisioningRequest
from alfred_core.core.validation import (
    is_valid_ipv4,
    is_valid_subdomain,
    validate_provisioning_request,
)


VALID_SUBDOMAINS = ["cozy-peanut", "a", "abc123", "a-b-c", "0day", "x1-y2-z3", "a--b"]
INVALID_SUBDOMAINS = ["", "-abc", "abc-", "Cozy-Peanut", "ABC", "a_b", "a.b", "a b", "café", None, 42]


class TestSubdomainValidation:

    @pytest.mark.parametrize("subdomain", VALID_SUBDOMAINS)
    def test_accepts_valid_subdomain(self, subdomain):
        assert is_valid_subdomain(subdomain)
        validate_provisioning_request(ProvisioningRequest(subdomain=subdomain, user_id="user-1"))

    @pytest.mark.parametrize("subdomain", INVALID_SUBDOMAINS)
    def test_rejects_invalid_subdomain(self, subdomain):
        assert not is_valid_subdomain(subdomain)
        with pytest.raises(ProvisioningValidationError):
            validate_provisioning_request(ProvisioningRequest(subdomain=subdomain, user_id="user-1"))


class TestProvisioningRequestValidation:

    def test_empty_subdomain_message(self):
        with pytest.raises(ProvisioningValidationError, match="Invalid subdomain"):
            validate_provisioning_request(ProvisioningRequest(subdomain="", user_id="user-1"))

    def test_missing_user_id(self):
        with pytest.raises(ProvisioningValidationError, match="User ID is required"):
            validate_provisioning_request(ProvisioningRequest(subdomain="cozy-peanut", user_id=""))

    def test_unsupported_provider(self):
        request = ProvisioningRequest(subdomain="cozy-peanut", user_id="user-1", provider="azure")

        with pytest.raises(ProvisioningValidationError) as exc:
            validate_provisioning_request(request)

        assert str(exc.value) == "Unsupported provider: azure"

    @pytest.mark.parametrize("provider", ["hetzner", "aws", "gcp", "digitalocean"])
    def test_supported_providers(self, provider):
        validate_provisioning_request(
            ProvisioningRequest(subdomain="cozy-peanut", user_id="user-1", provider=provider)
        )

    def test_bad_format_message(self):
        with pytest.raises(ProvisioningValidationError) as exc:
            validate_provisioning_request(ProvisioningRequest(subdomain="Bad_Name", user_id="user-1"))

        assert str(exc.value) == "Subdomain must be alphanumeric with optional hyphens"


class TestIpv4Validation:

    @pytest.mark.parametrize("ip", ["1.2.3.4", "0.0.0.0", "255.255.255.255", "203.0.113.10"])
    def test_valid(self, ip):
        assert is_valid_ipv4(ip)

    @pytest.mark.parametrize("ip", [
        "", None, "256.1.1.1", "1.2.3", "1.2.3.4.5", "a.b.c.d", "::1",
        "١٢٣.0.0.1", "１.2.3.4",
    ])
    def test_invalid(self, ip):
        assert not is_valid_ipv4(ip)
