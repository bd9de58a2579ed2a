"""Data models for the application."""
from pydantic import BaseModel, Field
from typing import List, Optional, Union
from enum import Enum


class InventoryKind(str, Enum):
    """Kind of inventory object."""
    VM = "vm"
    HOST = "host"


class RecordAction(str, Enum):
    """Action to take against the record store."""
    PUT = "put"
    DELETE = "delete"


class VMEntry(BaseModel):
    """Virtual machine discovered in vCenter."""
    name: str = Field(..., description="Configured VM name, possibly domain qualified")
    guest_ip: str = Field("", description="Primary guest IP reported by VMware Tools")

    @property
    def ip(self) -> str:
        return self.guest_ip


class HostEntry(BaseModel):
    """ESXi host discovered in vCenter."""
    name: str = Field(..., description="Configured host name, possibly domain qualified")
    management_ip: str = Field("", description="Management server IP from the host summary")

    @property
    def ip(self) -> str:
        return self.management_ip


InventoryEntry = Union[VMEntry, HostEntry]


class PresenceRecord(BaseModel):
    """Instruction to publish or remove a name to address mapping."""

    model_config = {"frozen": True}

    key: str
    action: RecordAction
    value: Optional[str] = None  # JSON payload, PUT only


class SyncReport(BaseModel):
    """Outcome of applying one batch of records to the store."""
    kind: InventoryKind
    total: int = 0
    put: int = 0
    deleted: int = 0
    failed: int = 0
    collisions: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.failed == 0


class ReconciliationResult(BaseModel):
    """Summary of a full reconciliation pass over VMs and hosts."""
    vms: Optional[SyncReport] = None
    hosts: Optional[SyncReport] = None

    @property
    def succeeded(self) -> bool:
        reports = [r for r in (self.vms, self.hosts) if r is not None]
        return len(reports) == 2 and all(r.succeeded for r in reports)
