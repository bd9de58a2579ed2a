"""Derive presence records from inventory entries."""
from __future__ import annotations

import json
from typing import Dict, Iterable, List

from .config import RECORD_TTL
from .models import InventoryEntry, PresenceRecord, RecordAction


def short_name(name: str) -> str:
    """Return the portion of ``name`` before its first dot."""
    return name.split(".", 1)[0]


def build_key(root_path: str, domain_name: str, name: str) -> str:
    """Compose the store key for ``name``.

    Components are concatenated as-is, so ``root_path`` is expected to carry
    its own trailing separator (``/skydns/`` rather than ``/skydns``).
    """
    return f"{root_path}{domain_name}/{name}"


def record_value(ip: str) -> str:
    """Render the JSON payload published for a live address."""
    return json.dumps({"host": ip, "ttl": RECORD_TTL}, separators=(",", ":"))


def derive(entry: InventoryEntry, root_path: str, domain_name: str) -> PresenceRecord:
    """Map one inventory entry to the record that should exist for it.

    An entry without an address always yields a delete. vCLS agent VMs and
    powered-off guests fall in that bucket.
    """
    key = build_key(root_path, domain_name, short_name(entry.name))
    if entry.ip:
        return PresenceRecord(key=key, action=RecordAction.PUT, value=record_value(entry.ip))
    return PresenceRecord(key=key, action=RecordAction.DELETE)


def find_collisions(entries: Iterable[InventoryEntry]) -> Dict[str, List[str]]:
    """Return short names claimed by more than one configured name."""

    claimed: Dict[str, List[str]] = {}
    for entry in entries:
        claimed.setdefault(short_name(entry.name), []).append(entry.name)
    return {name: owners for name, owners in claimed.items() if len(owners) > 1}


def derive_records(
    entries: Iterable[InventoryEntry], root_path: str, domain_name: str
) -> List[PresenceRecord]:
    """Derive one record per entry, preserving inventory order.

    When several entries share a short name they map to the same key and the
    last one in inventory order wins once the records are applied.
    """
    return [derive(entry, root_path, domain_name) for entry in entries]
