"""Configuration validation utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from .config import Settings


class ConfigError(ValueError):
    """Raised when configuration values cannot be used."""


@dataclass
class ConfigIssue:
    """Represents a single configuration issue."""

    message: str
    hint: Optional[str] = None


@dataclass
class ConfigValidationResult:
    """Outcome of running configuration checks."""

    checked_at: datetime
    errors: List[ConfigIssue] = field(default_factory=list)
    warnings: List[ConfigIssue] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


def _warn(result: ConfigValidationResult, message: str, hint: Optional[str] = None) -> None:
    result.warnings.append(ConfigIssue(message=message, hint=hint))


def _error(result: ConfigValidationResult, message: str, hint: Optional[str] = None) -> None:
    result.errors.append(ConfigIssue(message=message, hint=hint))


def parse_vcenter_url(endpoint: str) -> Tuple[str, str, int]:
    """Split a vCenter URL into ``(protocol, host, port)``.

    Raises:
        ConfigError: If the URL has no http(s) scheme or no host.
    """

    try:
        parts = urlsplit((endpoint or "").strip())
        port = parts.port
    except ValueError as exc:
        raise ConfigError(f"Invalid vCenter URL '{endpoint}': {exc}") from exc

    if parts.scheme not in ("http", "https"):
        raise ConfigError(
            f"Invalid vCenter URL '{endpoint}': scheme must be http or https"
        )
    if not parts.hostname:
        raise ConfigError(f"Invalid vCenter URL '{endpoint}': missing host")

    if port is None:
        port = 443 if parts.scheme == "https" else 80
    return parts.scheme, parts.hostname, port


def run_config_checks(settings: Settings) -> ConfigValidationResult:
    """Validate configuration combinations before any network call."""

    result = ConfigValidationResult(checked_at=datetime.now(timezone.utc))

    if not settings.vcsa_hostname.strip():
        _error(
            result,
            "vCSAHostname is not set.",
            "Set vCSAHostname to the vCenter URL, e.g. https://vcsa.example.com.",
        )
    else:
        try:
            parse_vcenter_url(settings.vcsa_hostname)
        except ConfigError as exc:
            _error(result, str(exc), "Use a URL of the form https://host[:port].")

    if not settings.has_credentials():
        _error(
            result,
            "vCenter credentials are not configured.",
            "Set vCSAUserName and vCSAPassword.",
        )

    if settings.vcsa_insecure:
        _warn(
            result,
            "TLS certificate verification toward vCenter is disabled.",
            "Only set vCSAInsecure for lab deployments with self-signed certificates.",
        )

    if not settings.etcd_endpoint.strip():
        _error(
            result,
            "etcdEndpoint is not set.",
            "Set etcdEndpoint to the address of an etcd member, e.g. 10.0.0.10:2379.",
        )

    if settings.etcd_dial_timeout <= 0:
        _error(
            result,
            "ETCD_DIAL_TIMEOUT must be positive.",
            "Use a small value such as 5 seconds.",
        )

    if not settings.etcd_plugin_root_path:
        _warn(
            result,
            "etcdPluginRootPath is empty; records will be written at the key space root.",
            "Set etcdPluginRootPath to the prefix your DNS plugin reads, e.g. /skydns/.",
        )

    if not settings.etcd_domain_name:
        _warn(
            result,
            "etcdDomainName is empty.",
            "Set etcdDomainName to group records under a zone.",
        )

    if not settings.etcd_api_prefix.strip().startswith("/"):
        _warn(
            result,
            "ETCD_API_PREFIX does not start with '/'.",
            "A leading slash will be added automatically.",
        )

    if not settings.abort_on_write_error:
        _warn(
            result,
            "ABORT_ON_WRITE_ERROR is disabled; failed writes will not stop the run.",
            "Failures are still reported and the run still exits non-zero.",
        )

    return result
