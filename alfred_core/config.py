#alfred_core\config.py

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class PlatformSettings(BaseSettings):
    """VM lifecycle configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Request signing (NO DEFAULT)
    vm_jwt_secret: str
    vm_jwt_expires_in: int = 300

    # VM addressing
    vm_domain: str = "alfredos.site"
    platform_url: str = "https://alfred.rocks"
    user_agent: str = "Alfred-Core/1.0"

    # Timeouts (seconds)
    vm_communication_timeout: float = 10.0
    vm_health_check_timeout: float = 10.0
    provider_request_timeout: float = 30.0

    # Health monitoring
    vm_health_max_failures: int = 3
    vm_health_check_delay: float = 0.1
    health_check_interval: int = 300

    # Hetzner Cloud
    hetzner_api_key: str = ""
    hetzner_api_base: str = "https://api.hetzner.cloud/v1"
    hetzner_location: str = "nbg1"
    hetzner_server_type: str = "cx22"
    hetzner_image: str = "ubuntu-24.04"

    # Cloudflare DNS
    cloudflare_api_token: str = ""
    cloudflare_api_base: str = "https://api.cloudflare.com/client/v4"
    cloudflare_zone_name: str = "alfredos.site"
    cloudflare_zone_id: Optional[str] = None

    # Provisioning polls (fixed interval, bounded attempts)
    provision_ready_max_attempts: int = 30
    provision_ready_interval: float = 10.0
    provision_verify_max_attempts: int = 30
    provision_verify_interval: float = 10.0
    provision_rollback_on_failure: bool = True

    # Storage: "postgres" or "memory" (local runs, process lifetime only)
    repository_backend: str = "postgres"

    # Endpoint protection
    cron_secret: Optional[str] = None
    admin_secret: Optional[str] = None


@lru_cache()
def get_settings() -> PlatformSettings:
    return PlatformSettings()
