"""etcd service for publishing presence records."""
from __future__ import annotations

import base64
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, Optional

import httpx

from ..core.config import DEFAULT_ETCD_API_PREFIX, DEFAULT_ETCD_DIAL_TIMEOUT
from ..core.models import InventoryKind, PresenceRecord, RecordAction, SyncReport

logger = logging.getLogger(__name__)


class EtcdServiceError(RuntimeError):
    """Base exception for etcd service failures."""


class ConnectError(EtcdServiceError):
    """Raised when the etcd endpoint cannot be reached."""


class WriteError(EtcdServiceError):
    """Raised when a put or delete is rejected or cannot be sent."""

    def __init__(self, key: str, action: RecordAction, message: str):
        super().__init__(message)
        self.key = key
        self.action = action
        self.message = message


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def normalize_endpoint(endpoint: str) -> str:
    """Return ``endpoint`` as a base URL, defaulting to plain http."""

    endpoint = (endpoint or "").strip().rstrip("/")
    if not endpoint:
        raise ConnectError("etcd endpoint is empty")
    if "://" not in endpoint:
        endpoint = f"http://{endpoint}"
    return endpoint


def _error_detail(response: httpx.Response) -> str:
    """Extract the gRPC gateway error message from a failed response."""

    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return response.reason_phrase


class EtcdSession:
    """Client session against the etcd v3 JSON gateway of a single member."""

    def __init__(
        self,
        endpoint: str,
        dial_timeout: float = DEFAULT_ETCD_DIAL_TIMEOUT,
        api_prefix: str = DEFAULT_ETCD_API_PREFIX,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.endpoint = normalize_endpoint(endpoint)
        self.api_prefix = api_prefix.rstrip("/")
        # Only the dial is bounded; requests on an established connection wait.
        self._client = httpx.Client(
            base_url=self.endpoint,
            timeout=httpx.Timeout(None, connect=dial_timeout),
            transport=transport,
        )

    def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        return self._client.post(f"{self.api_prefix}{path}", json=payload)

    def check_status(self) -> None:
        """Verify the member answers, raising ConnectError otherwise."""

        try:
            response = self._post("/maintenance/status", {})
        except httpx.TimeoutException as exc:
            raise ConnectError(f"Timed out connecting to etcd at {self.endpoint}") from exc
        except httpx.RequestError as exc:
            raise ConnectError(f"Unable to connect to etcd at {self.endpoint}: {exc}") from exc

        if response.is_error:
            raise ConnectError(
                f"etcd at {self.endpoint} returned {response.status_code}: "
                f"{_error_detail(response)}"
            )
        logger.debug("etcd status at %s: %s", self.endpoint, response.text.strip())

    def put(self, key: str, value: str) -> None:
        """Write ``key`` unconditionally."""
        self._send(key, RecordAction.PUT, "/kv/put", {"key": _b64(key), "value": _b64(value)})

    def delete(self, key: str) -> int:
        """Remove ``key``; returns the number of keys deleted (0 if absent)."""
        response = self._send(key, RecordAction.DELETE, "/kv/deleterange", {"key": _b64(key)})
        try:
            return int(response.json().get("deleted", 0))
        except (ValueError, AttributeError, TypeError):
            return 0

    def apply(self, record: PresenceRecord) -> None:
        """Apply one presence record to the store."""

        if record.action is RecordAction.PUT:
            self.put(record.key, record.value or "")
            logger.debug("Put %s = %s", record.key, record.value)
        else:
            deleted = self.delete(record.key)
            logger.debug("Deleted %s (%d removed)", record.key, deleted)

    def _send(
        self, key: str, action: RecordAction, path: str, payload: Dict[str, Any]
    ) -> httpx.Response:
        try:
            response = self._post(path, payload)
        except httpx.RequestError as exc:
            raise WriteError(key, action, f"{action.value} {key} failed: {exc}") from exc

        if response.is_error:
            raise WriteError(
                key,
                action,
                f"{action.value} {key} rejected with {response.status_code}: "
                f"{_error_detail(response)}",
            )
        return response

    def close(self) -> None:
        self._client.close()


def connect(
    endpoint: str,
    dial_timeout: float = DEFAULT_ETCD_DIAL_TIMEOUT,
    api_prefix: str = DEFAULT_ETCD_API_PREFIX,
    transport: Optional[httpx.BaseTransport] = None,
) -> EtcdSession:
    """Open a session and confirm the endpoint is reachable."""

    session = EtcdSession(endpoint, dial_timeout, api_prefix, transport=transport)
    try:
        session.check_status()
    except Exception:
        session.close()
        raise
    logger.debug("Connected to etcd at %s", session.endpoint)
    return session


@contextmanager
def etcd_session(
    endpoint: str,
    dial_timeout: float = DEFAULT_ETCD_DIAL_TIMEOUT,
    api_prefix: str = DEFAULT_ETCD_API_PREFIX,
    transport: Optional[httpx.BaseTransport] = None,
) -> Iterator[EtcdSession]:
    """Yield a connected session and always close it afterwards."""

    session = connect(endpoint, dial_timeout, api_prefix, transport=transport)
    try:
        yield session
    finally:
        session.close()


def sync_records(
    session: EtcdSession,
    records: Iterable[PresenceRecord],
    kind: InventoryKind,
    abort_on_error: bool = True,
) -> SyncReport:
    """Apply ``records`` in order.

    With ``abort_on_error`` the first WriteError propagates. Otherwise every
    record is attempted and failures are counted in the returned report.
    """

    report = SyncReport(kind=kind)
    for record in records:
        report.total += 1
        try:
            session.apply(record)
        except WriteError as exc:
            if abort_on_error:
                raise
            logger.error("Failed to sync %s record: %s", kind.value, exc.message)
            report.failed += 1
            report.errors.append(exc.message)
            continue

        if record.action is RecordAction.PUT:
            report.put += 1
        else:
            report.deleted += 1

    logger.info(
        "Synced %d %s records to %s (put=%d deleted=%d failed=%d)",
        report.total,
        kind.value,
        session.endpoint,
        report.put,
        report.deleted,
        report.failed,
    )
    return report
