"""Configuration management using Pydantic settings."""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


# Value published alongside every address. Consumers expire records on their
# own; nothing here renews them.
RECORD_TTL = 60

DEFAULT_ETCD_DIAL_TIMEOUT = 5.0
DEFAULT_ETCD_API_PREFIX = "/v3"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables.

    The camelCase names used by existing deployments (``vCSAHostname``,
    ``etcdEndpoint`` ...) are accepted alongside snake_case names.
    """

    # vCenter settings
    vcsa_hostname: str = Field(
        "", validation_alias=AliasChoices("vCSAHostname", "vcsa_hostname")
    )  # URL, e.g. https://vcsa.example.com
    vcsa_username: str = Field(
        "", validation_alias=AliasChoices("vCSAUserName", "vcsa_username")
    )
    vcsa_password: str = Field(
        "", validation_alias=AliasChoices("vCSAPassword", "vcsa_password")
    )
    # Skip TLS certificate verification toward vCenter
    vcsa_insecure: bool = Field(
        False, validation_alias=AliasChoices("vCSAInsecure", "vcsa_insecure")
    )

    # etcd settings
    etcd_endpoint: str = Field(
        "", validation_alias=AliasChoices("etcdEndpoint", "etcd_endpoint")
    )  # host:port or URL of a single member
    etcd_plugin_root_path: str = Field(
        "", validation_alias=AliasChoices("etcdPluginRootPath", "etcd_plugin_root_path")
    )
    etcd_domain_name: str = Field(
        "", validation_alias=AliasChoices("etcdDomainName", "etcd_domain_name")
    )
    etcd_dial_timeout: float = DEFAULT_ETCD_DIAL_TIMEOUT  # seconds
    etcd_api_prefix: str = DEFAULT_ETCD_API_PREFIX  # /v3beta for etcd 3.3 gateways

    # Sync behaviour
    abort_on_write_error: bool = True

    # Development settings
    debug: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"

    def get_etcd_api_prefix(self) -> str:
        """Return the API prefix without a trailing slash."""
        prefix = (self.etcd_api_prefix or DEFAULT_ETCD_API_PREFIX).strip()
        if not prefix.startswith("/"):
            prefix = "/" + prefix
        return prefix.rstrip("/")

    def has_credentials(self) -> bool:
        """Check if vCenter credentials are configured."""
        return bool(self.vcsa_username and self.vcsa_password)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""

    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Forget cached settings. Primarily useful for tests."""

    global _settings
    _settings = None
