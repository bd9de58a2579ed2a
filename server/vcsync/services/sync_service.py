"""Reconciliation pass publishing vCenter inventory into etcd."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from ..core.config import Settings
from ..core.models import InventoryEntry, InventoryKind, ReconciliationResult, SyncReport
from ..core.records import derive_records, find_collisions, short_name
from .etcd_service import etcd_session, sync_records
from .vcenter_service import VCenterService, vcenter_service

logger = logging.getLogger(__name__)


class SyncService:
    """Run one reconciliation pass: vCenter -> records -> etcd."""

    def __init__(
        self,
        settings: Settings,
        vcenter: Optional[VCenterService] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.vcenter = vcenter or vcenter_service
        self._transport = transport
        # Entries handled by earlier passes of this run
        self._published: List[InventoryEntry] = []

    def run(self) -> ReconciliationResult:
        """Sync VMs then hosts, each pass with its own etcd session.

        Any inventory or store error propagates to the caller untouched.
        """

        settings = self.settings
        result = ReconciliationResult()

        with self.vcenter.connect(
            settings.vcsa_hostname,
            settings.vcsa_username,
            settings.vcsa_password,
            insecure=settings.vcsa_insecure,
        ) as session:
            vms = self.vcenter.list_vms(session)
            result.vms = self.sync_entries(vms, InventoryKind.VM)

            hosts = self.vcenter.list_hosts(session)
            result.hosts = self.sync_entries(hosts, InventoryKind.HOST)

        return result

    def sync_entries(self, entries: List[InventoryEntry], kind: InventoryKind) -> SyncReport:
        """Derive records for ``entries`` and apply them in a fresh etcd session."""

        settings = self.settings
        entries = list(entries)
        collisions = self._track_collisions(entries)
        records = derive_records(
            entries, settings.etcd_plugin_root_path, settings.etcd_domain_name
        )
        with etcd_session(
            settings.etcd_endpoint,
            settings.etcd_dial_timeout,
            settings.get_etcd_api_prefix(),
            transport=self._transport,
        ) as store:
            report = sync_records(
                store, records, kind, abort_on_error=settings.abort_on_write_error
            )
        report.collisions = sorted(collisions)
        return report

    def _track_collisions(self, entries: List[InventoryEntry]) -> Dict[str, List[str]]:
        """Log and return the short names in ``entries`` claimed more than once.

        Entries from earlier passes count too, so a host sharing a short name
        with a VM is reported by the host pass, whose record overwrites the
        VM's.
        """

        current = {short_name(entry.name) for entry in entries}
        self._published.extend(entries)
        collisions = {
            name: owners
            for name, owners in find_collisions(self._published).items()
            if name in current
        }
        for name, owners in sorted(collisions.items()):
            logger.warning(
                "Short name '%s' is shared by %d inventory objects (%s); last one wins",
                name,
                len(owners),
                ", ".join(owners),
            )
        return collisions


def run_reconciliation(
    settings: Settings,
    vcenter: Optional[VCenterService] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> ReconciliationResult:
    """Convenience wrapper around :class:`SyncService`."""

    return SyncService(settings, vcenter=vcenter, transport=transport).run()
