"""Command line entry point."""

import logging
import sys
from typing import Optional

from pydantic import ValidationError

from .core.config import Settings, get_settings
from .core.config_validation import ConfigError, run_config_checks
from .services.etcd_service import EtcdServiceError
from .services.sync_service import run_reconciliation
from .services.vcenter_service import VCenterServiceError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(debug: bool = False) -> None:
    """Send log records to stderr."""

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _report_config(settings: Settings) -> bool:
    """Log configuration issues; return False if any are fatal."""

    config_result = run_config_checks(settings)

    for issue in config_result.warnings:
        logger.warning("Configuration warning: %s", issue.message)
        if issue.hint:
            logger.warning("Hint: %s", issue.hint)

    for issue in config_result.errors:
        logger.error("Configuration error: %s", issue.message)
        if issue.hint:
            logger.error("Hint: %s", issue.hint)

    return not config_result.has_errors


def main(settings: Optional[Settings] = None) -> int:
    """Run one reconciliation pass and return the process exit status."""

    if settings is None:
        try:
            settings = get_settings()
        except ValidationError as exc:
            configure_logging()
            logger.error("Invalid configuration: %s", exc)
            return 1

    configure_logging(settings.debug)

    if not _report_config(settings):
        return 1

    try:
        result = run_reconciliation(settings)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 1
    except VCenterServiceError as exc:
        logger.error("Inventory collection failed: %s", exc)
        return 1
    except EtcdServiceError as exc:
        logger.error("Record sync failed: %s", exc)
        return 1

    if not result.succeeded:
        logger.error("Reconciliation finished with failed writes")
        return 1

    logger.info(
        "Reconciliation complete: %d VM records, %d host records",
        result.vms.total,
        result.hosts.total,
    )
    return 0


def run() -> None:
    """Console script wrapper."""
    sys.exit(main())


if __name__ == "__main__":
    run()
