"""vCenter service for discovering VMs and ESXi hosts."""
from __future__ import annotations

import http.client
import logging
import ssl
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pyVim.connect import Disconnect, SmartConnect
from pyVmomi import vim, vmodl

from ..core.config_validation import parse_vcenter_url
from ..core.models import HostEntry, VMEntry

logger = logging.getLogger(__name__)


VM_PROPERTIES = ["name", "config.name", "summary.guest.ipAddress"]
HOST_PROPERTIES = ["name", "summary.config.name", "summary.managementServerIp"]


class VCenterServiceError(RuntimeError):
    """Base exception for vCenter service failures."""


class AuthError(VCenterServiceError):
    """Raised when vCenter rejects the supplied credentials."""


class NetworkError(VCenterServiceError):
    """Raised when a session to vCenter cannot be established."""


class NoDatacenterError(VCenterServiceError):
    """Raised when the default datacenter cannot be resolved."""


class QueryError(VCenterServiceError):
    """Raised when listing objects or collecting their properties fails."""


@dataclass
class VCenterSession:
    """Authenticated vCenter session bound to its default datacenter."""

    host: str
    service_instance: Any
    content: Any
    datacenter: Any

    def close(self) -> None:
        """Log out of vCenter. Safe to call more than once."""

        if self.service_instance is None:
            return
        try:
            Disconnect(self.service_instance)
            logger.debug("Disconnected from vCenter %s", self.host)
        except Exception as exc:  # pragma: no cover - session may already be gone
            logger.warning("Error during disconnect from %s: %s", self.host, exc)
        finally:
            self.service_instance = None

    def __enter__(self) -> "VCenterSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _build_ssl_context(insecure: bool) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _parse_object_content(oc: Any) -> Tuple[Any, Dict[str, Any]]:
    """Return ``(managed_object, {property_path: value})`` for one result."""

    props = {p.name: p.val for p in (getattr(oc, "propSet", None) or [])}
    return oc.obj, props


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class VCenterService:
    """Read-only access to vCenter inventory."""

    def connect(
        self,
        endpoint: str,
        username: str,
        password: str,
        insecure: bool = False,
    ) -> VCenterSession:
        """Open a session and resolve the default datacenter.

        Raises:
            ConfigError: If ``endpoint`` is not a usable URL.
            AuthError: If the credentials are rejected.
            NetworkError: If vCenter cannot be reached.
            NoDatacenterError: If there is no single default datacenter.
        """

        protocol, host, port = parse_vcenter_url(endpoint)
        if insecure:
            logger.warning("TLS certificate verification disabled for vCenter %s", host)

        logger.info("Connecting to vCenter %s:%d as %s", host, port, username)
        try:
            service_instance = SmartConnect(
                protocol=protocol,
                host=host,
                port=port,
                user=username,
                pwd=password,
                sslContext=_build_ssl_context(insecure) if protocol == "https" else None,
            )
        except (vim.fault.InvalidLogin, vim.fault.NoPermission) as exc:
            raise AuthError(
                f"Authentication to vCenter {host} failed: {getattr(exc, 'msg', exc)}"
            ) from exc
        except vmodl.MethodFault as exc:
            raise NetworkError(
                f"vCenter {host} refused the session: {getattr(exc, 'msg', exc)}"
            ) from exc
        except (OSError, http.client.HTTPException) as exc:
            raise NetworkError(f"Unable to reach vCenter {host}:{port}: {exc}") from exc
        except Exception as exc:
            # SmartConnect raises a plain Exception when the endpoint answers
            # HTTP but does not serve the vSphere API.
            raise NetworkError(
                f"vCenter {host}:{port} is not a vSphere API endpoint: {exc}"
            ) from exc

        session = VCenterSession(
            host=host,
            service_instance=service_instance,
            content=None,
            datacenter=None,
        )
        try:
            session.content = service_instance.RetrieveContent()
            session.datacenter = self._resolve_default_datacenter(session.content)
        except Exception:
            session.close()
            raise

        logger.info("Using datacenter '%s' on %s", session.datacenter.name, host)
        return session

    def _resolve_default_datacenter(self, content: Any) -> Any:
        """Return the only datacenter directly under the root folder.

        Datacenters nested in folders are not considered.
        """

        try:
            datacenters = self._list_view(
                content, content.rootFolder, vim.Datacenter, recursive=False
            )
        except QueryError as exc:
            raise NoDatacenterError(f"Unable to list datacenters: {exc}") from exc

        if not datacenters:
            raise NoDatacenterError("No datacenter found in vCenter inventory")
        if len(datacenters) > 1:
            names = ", ".join(sorted(_text(getattr(dc, "name", "")) for dc in datacenters))
            raise NoDatacenterError(
                f"Default datacenter resolves to multiple instances ({names})"
            )
        return datacenters[0]

    def list_vms(self, session: VCenterSession) -> List[VMEntry]:
        """Return every VM under the session's datacenter."""

        refs = self._list_view(session.content, session.datacenter.vmFolder, vim.VirtualMachine)
        entries = []
        for _, props in self._collect(session.content, refs, vim.VirtualMachine, VM_PROPERTIES):
            entries.append(
                VMEntry(
                    name=_text(props.get("config.name")) or _text(props.get("name")),
                    guest_ip=_text(props.get("summary.guest.ipAddress")),
                )
            )
        logger.info("Collected %d VMs from %s", len(entries), session.host)
        return entries

    def list_hosts(self, session: VCenterSession) -> List[HostEntry]:
        """Return every ESXi host under the session's datacenter."""

        refs = self._list_view(session.content, session.datacenter.hostFolder, vim.HostSystem)
        entries = []
        for _, props in self._collect(session.content, refs, vim.HostSystem, HOST_PROPERTIES):
            entries.append(
                HostEntry(
                    name=_text(props.get("summary.config.name")) or _text(props.get("name")),
                    management_ip=_text(props.get("summary.managementServerIp")),
                )
            )
        logger.info("Collected %d hosts from %s", len(entries), session.host)
        return entries

    @staticmethod
    def _list_view(
        content: Any, container: Any, obj_type: Any, recursive: bool = True
    ) -> List[Any]:
        """List objects of ``obj_type`` below ``container``."""

        view = None
        try:
            view = content.viewManager.CreateContainerView(container, [obj_type], recursive)
            return list(view.view or [])
        except (vmodl.MethodFault, OSError, http.client.HTTPException) as exc:
            raise QueryError(
                f"Listing {obj_type.__name__} objects failed: {getattr(exc, 'msg', None) or exc}"
            ) from exc
        finally:
            if view is not None:
                try:
                    view.Destroy()
                except Exception as exc:  # pragma: no cover - view is server side only
                    logger.debug("Failed to destroy container view: %s", exc)

    @staticmethod
    def _collect(
        content: Any,
        refs: Sequence[Any],
        obj_type: Any,
        path_set: List[str],
    ) -> List[Tuple[Any, Dict[str, Any]]]:
        """Fetch ``path_set`` for every reference in one PropertyCollector call.

        Results are returned in the order of ``refs``.
        """

        if not refs:
            return []

        collector = vmodl.query.PropertyCollector
        filter_spec = collector.FilterSpec(
            objectSet=[collector.ObjectSpec(obj=ref, skip=False) for ref in refs],
            propSet=[collector.PropertySpec(type=obj_type, pathSet=path_set, all=False)],
        )
        try:
            results = content.propertyCollector.RetrieveContents([filter_spec]) or []
        except (vmodl.MethodFault, OSError, http.client.HTTPException) as exc:
            raise QueryError(
                f"Retrieving {obj_type.__name__} properties failed: "
                f"{getattr(exc, 'msg', None) or exc}"
            ) from exc

        order = {_moid(ref): index for index, ref in enumerate(refs)}
        parsed = [_parse_object_content(oc) for oc in results]
        parsed.sort(key=lambda item: order.get(_moid(item[0]), len(order)))
        return parsed


def _moid(obj: Any) -> Optional[str]:
    return getattr(obj, "_moId", None)


# Global service instance
vcenter_service = VCenterService()
