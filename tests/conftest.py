"""Pytest configuration and fixtures for herd-share tests."""

import subprocess
import uuid
from pathlib import Path
from typing import Optional

import pytest

from herd_share.errors import CloudflaredError
from herd_share.prober import RemoteStateProber
from herd_share.reconciler import Reconciler
from herd_share.registry import RegistryStore
from herd_share.settings import Settings


DEFAULT_VNET_ID = "a5fb1c3e-2f0d-4c51-9d3b-6f1e7c2a9b10"


class FakeCloudflared:
    """In-memory stand-in for the cloudflared client."""

    def __init__(self) -> None:
        self.tunnels: dict[str, str] = {}  # id -> name
        self.routes: dict[str, str] = {}  # hostname -> id
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.cleaned: list[str] = []
        self.runs: list[tuple[Path, str]] = []
        self.logged_in = True
        self.logins = 0
        self.fail_listing = False
        self.fail_routes = False
        self.fail_dns = False
        self.create_output: Optional[str] = None
        self.run_status = 0

    def add_tunnel(self, name: str, tunnel_id: Optional[str] = None) -> str:
        tunnel_id = tunnel_id or str(uuid.uuid4())
        self.tunnels[tunnel_id] = name
        return tunnel_id

    def version(self) -> str:
        return "cloudflared version 2024.1.0"

    def is_logged_in(self) -> bool:
        return self.logged_in

    def login(self) -> None:
        self.logins += 1
        self.logged_in = True

    def list_tunnels(self) -> list[dict]:
        if self.fail_listing:
            raise CloudflaredError(["cloudflared", "tunnel", "list"], 1, "not logged in")
        return [{"id": tid, "name": name} for tid, name in self.tunnels.items()]

    def create_tunnel(self, name: str) -> str:
        self.created.append(name)
        if self.create_output is not None:
            return self.create_output
        tunnel_id = self.add_tunnel(name)
        return f"Tunnel credentials written to /tmp/{tunnel_id}.json\nCreated tunnel {name} with id {tunnel_id}"

    def delete_tunnel(self, tunnel_id: str) -> None:
        self.deleted.append(tunnel_id)
        self.tunnels.pop(tunnel_id, None)

    def cleanup_tunnel(self, tunnel_id: str) -> None:
        self.cleaned.append(tunnel_id)

    def list_routes(self) -> str:
        if self.fail_routes:
            raise CloudflaredError(["cloudflared", "tunnel", "route", "ip", "show"], 1, "boom")
        # Same columns as `cloudflared tunnel route ip show`; hostnames only
        # appear in the comment column
        lines = ["ID                                     NETWORK        VIRTUAL NET ID                         "
                 "COMMENT            TUNNEL ID                              TUNNEL NAME   CREATED"]
        for i, (host, tid) in enumerate(self.routes.items()):
            lines.append(
                f"{uuid.uuid4()}   10.0.{i}.0/24    {DEFAULT_VNET_ID}   "
                f"{host}   {tid}   {self.tunnels.get(tid, '-')}   2024-01-01T00:00:00Z"
            )
        return "\n".join(lines)

    def create_dns_route(self, tunnel_id: str, domain: str) -> str:
        if self.fail_dns:
            raise CloudflaredError(
                ["cloudflared", "tunnel", "route", "dns", tunnel_id, domain], 1, "record already exists"
            )
        self.routes[domain] = tunnel_id
        return f"Added CNAME {domain} which will route to this tunnel"

    def run(self, config_path: Path, tunnel_id: str, cancel=None) -> int:
        self.runs.append((config_path, tunnel_id))
        return self.run_status


class FakeHerd:
    """In-memory stand-in for the herd client."""

    def __init__(self) -> None:
        self.links: set[str] = set()
        self.linked: list[tuple[str, Optional[Path]]] = []
        self.secured: list[str] = []

    def list_links(self) -> str:
        return "\n".join(sorted(self.links))

    def is_linked(self, domain: str) -> bool:
        return domain in self.links

    def link(self, domain: str, path: Optional[Path] = None) -> None:
        self.links.add(domain)
        self.linked.append((domain, path))

    def secure(self, domain: str) -> None:
        self.secured.append(domain)


def completed(stdout: str = "", stderr: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    """Build a CompletedProcess for fake runners."""
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary directory."""
    return Settings(
        config_dir=tmp_path / "config",
        cloudflared_dir=tmp_path / "cloudflared",
    )


@pytest.fixture
def registry(settings: Settings) -> RegistryStore:
    return RegistryStore(settings.registry_path)


@pytest.fixture
def fake_cloudflared() -> FakeCloudflared:
    return FakeCloudflared()


@pytest.fixture
def fake_herd() -> FakeHerd:
    return FakeHerd()


@pytest.fixture
def reconciler(registry: RegistryStore, fake_cloudflared: FakeCloudflared) -> Reconciler:
    return Reconciler(registry, RemoteStateProber(fake_cloudflared), fake_cloudflared)
