"""Test configuration for the vcsync test suite."""

import base64
import json
import logging
from typing import Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import httpx
import pytest

from vcsync.core import config
from vcsync.core.config import Settings


ENV_NAMES = (
    "vCSAHostname",
    "vCSAUserName",
    "vCSAPassword",
    "vCSAInsecure",
    "VCSA_HOSTNAME",
    "VCSA_USERNAME",
    "VCSA_PASSWORD",
    "VCSA_INSECURE",
    "etcdEndpoint",
    "etcdPluginRootPath",
    "etcdDomainName",
    "ETCD_ENDPOINT",
    "ETCD_PLUGIN_ROOT_PATH",
    "ETCD_DOMAIN_NAME",
    "ETCD_DIAL_TIMEOUT",
    "ETCD_API_PREFIX",
    "ABORT_ON_WRITE_ERROR",
    "DEBUG",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the developer's shell configuration out of the tests."""

    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    config.reset_settings()
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    config.reset_settings()
    # main.configure_logging() replaces the root handlers
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        values = {
            "vcsa_hostname": "https://vcsa.example.com",
            "vcsa_username": "administrator@vsphere.local",
            "vcsa_password": "secret",
            "etcd_endpoint": "127.0.0.1:2379",
            "etcd_plugin_root_path": "/skydns/",
            "etcd_domain_name": "local",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


def _b64decode(value: str) -> str:
    return base64.b64decode(value).decode("utf-8")


class FakeEtcd:
    """In-memory etcd member answering the v3 JSON gateway API."""

    def __init__(self, prefix: str = "/v3") -> None:
        self.prefix = prefix
        self.store: Dict[str, str] = {}
        self.requests: List[Tuple[str, dict]] = []
        self.fail_keys: set = set()
        self.unavailable = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.unavailable:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        body = json.loads(request.content or b"{}")
        self.requests.append((path, body))

        if path == f"{self.prefix}/maintenance/status":
            return httpx.Response(200, json={"version": "3.5.9"})

        if path == f"{self.prefix}/kv/put":
            key = _b64decode(body["key"])
            if key in self.fail_keys:
                return httpx.Response(
                    503,
                    json={"error": "etcdserver: request timed out", "code": 14},
                )
            self.store[key] = _b64decode(body["value"])
            return httpx.Response(200, json={"header": {"revision": "2"}})

        if path == f"{self.prefix}/kv/deleterange":
            key = _b64decode(body["key"])
            if key in self.fail_keys:
                return httpx.Response(
                    503,
                    json={"error": "etcdserver: request timed out", "code": 14},
                )
            if self.store.pop(key, None) is None:
                # etcd omits zero-valued fields
                return httpx.Response(200, json={"header": {"revision": "2"}})
            return httpx.Response(200, json={"header": {"revision": "3"}, "deleted": "1"})

        return httpx.Response(404, text="404 page not found")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def writes(self) -> List[Tuple[str, dict]]:
        return [entry for entry in self.requests if not entry[0].endswith("/maintenance/status")]


@pytest.fixture
def fake_etcd():
    return FakeEtcd()


class FakeVCenter:
    """Stand-in for VCenterService returning canned inventory."""

    def __init__(self, vms=None, hosts=None, error: Optional[Exception] = None, fail_on: str = "vms"):
        self.vms = list(vms or [])
        self.hosts = list(hosts or [])
        self.error = error
        self.fail_on = fail_on
        self.calls: List[str] = []
        self.session = MagicMock()
        self.session.__enter__.return_value = self.session
        self.session.__exit__.return_value = False

    def connect(self, endpoint, username, password, insecure=False):
        self.calls.append("connect")
        if self.error is not None and self.fail_on == "connect":
            raise self.error
        return self.session

    def list_vms(self, session):
        self.calls.append("list_vms")
        if self.error is not None and self.fail_on == "vms":
            raise self.error
        return list(self.vms)

    def list_hosts(self, session):
        self.calls.append("list_hosts")
        if self.error is not None and self.fail_on == "hosts":
            raise self.error
        return list(self.hosts)


@pytest.fixture
def fake_vcenter_factory():
    return FakeVCenter

