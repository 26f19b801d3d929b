"""Tests for the cloudflared command wrapper."""

import json
import subprocess
import threading
from pathlib import Path

import pytest

from herd_share.cloudflared import Cloudflared, extract_tunnel_id
from herd_share.errors import CloudflaredError, MissingDependencyError

from .conftest import completed

TUNNEL_ID = "6ff42ae2-765d-4adf-8112-31c55c1551ef"


class RecordingRunner:
    """subprocess.run replacement returning canned results."""

    def __init__(self, result: subprocess.CompletedProcess):
        self.result = result
        self.calls: list[list[str]] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        return self.result


def missing_binary(cmd, **kwargs):
    raise FileNotFoundError(cmd[0])


def test_extract_tunnel_id() -> None:
    output = f"Tunnel credentials written to /root/.cloudflared/{TUNNEL_ID}.json.\nCreated tunnel herd-x with id {TUNNEL_ID}"
    assert extract_tunnel_id(output) == TUNNEL_ID
    assert extract_tunnel_id(TUNNEL_ID.upper()) == TUNNEL_ID
    assert extract_tunnel_id("no id here") is None
    assert extract_tunnel_id("") is None


def test_list_tunnels_parses_json_and_skips_deleted() -> None:
    payload = [
        {"id": TUNNEL_ID, "name": "herd-example-com", "deleted_at": "0001-01-01T00:00:00Z"},
        {"id": "11111111-2222-3333-4444-555555555555", "name": "gone", "deleted_at": "2024-01-02T10:00:00Z"},
        {"id": "22222222-2222-3333-4444-555555555555", "name": "no-deleted-field"},
    ]
    runner = RecordingRunner(completed(stdout=json.dumps(payload)))
    client = Cloudflared(runner=runner)

    names = [t["name"] for t in client.list_tunnels()]

    assert names == ["herd-example-com", "no-deleted-field"]
    assert runner.calls == [["cloudflared", "tunnel", "list", "--output", "json"]]


def test_list_tunnels_bad_json_raises() -> None:
    client = Cloudflared(runner=RecordingRunner(completed(stdout="You need to login")))

    with pytest.raises(CloudflaredError):
        client.list_tunnels()


def test_failed_command_raises_with_stderr() -> None:
    client = Cloudflared(runner=RecordingRunner(completed(stderr="Cannot determine default origin certificate", returncode=1)))

    with pytest.raises(CloudflaredError) as excinfo:
        client.list_routes()
    assert excinfo.value.returncode == 1
    assert "origin certificate" in excinfo.value.stderr


def test_missing_binary_raises_missing_dependency() -> None:
    client = Cloudflared(binary="cloudflared", runner=missing_binary)

    with pytest.raises(MissingDependencyError) as excinfo:
        client.version()
    assert excinfo.value.tools == ["cloudflared"]


def test_create_tunnel_combines_stdout_and_stderr() -> None:
    runner = RecordingRunner(completed(stdout=f"Created tunnel herd-example-com with id {TUNNEL_ID}", stderr="INF written"))
    output = Cloudflared(runner=runner).create_tunnel("herd-example-com")

    assert TUNNEL_ID in output
    assert runner.calls == [["cloudflared", "tunnel", "create", "herd-example-com"]]


def test_subcommand_arguments() -> None:
    runner = RecordingRunner(completed())
    client = Cloudflared(binary="/opt/bin/cloudflared", runner=runner)

    client.delete_tunnel(TUNNEL_ID)
    client.cleanup_tunnel(TUNNEL_ID)
    client.create_dns_route(TUNNEL_ID, "example.com")

    assert runner.calls == [
        ["/opt/bin/cloudflared", "tunnel", "delete", "-f", TUNNEL_ID],
        ["/opt/bin/cloudflared", "tunnel", "cleanup", TUNNEL_ID],
        ["/opt/bin/cloudflared", "tunnel", "route", "dns", TUNNEL_ID, "example.com"],
    ]


def test_is_logged_in_checks_origin_cert(tmp_path: Path) -> None:
    cert = tmp_path / "cert.pem"
    client = Cloudflared(origin_cert=cert)
    assert not client.is_logged_in()

    cert.write_text("cert")
    assert client.is_logged_in()


class FakeProcess:
    """Popen replacement that never exits on its own until terminated."""

    def __init__(self, exit_after: int = -1):
        self.exit_after = exit_after
        self.waits = 0
        self.terminated = False
        self.killed = False

    def wait(self, timeout=None):
        self.waits += 1
        if self.terminated:
            return -15
        if self.exit_after >= 0 and self.waits > self.exit_after:
            return 0
        raise subprocess.TimeoutExpired("cloudflared", timeout)

    def terminate(self):
        self.terminated = True

    def kill(self):
        self.killed = True


def test_run_returns_exit_status(tmp_path: Path) -> None:
    process = FakeProcess(exit_after=2)
    started = []

    def popen(cmd):
        started.append(cmd)
        return process

    client = Cloudflared(popen=popen)
    status = client.run(tmp_path / "example.com.yml", TUNNEL_ID, poll_interval=0)

    assert status == 0
    assert started == [["cloudflared", "tunnel", "--config", str(tmp_path / "example.com.yml"), "run", TUNNEL_ID]]
    assert not process.terminated


def test_run_stops_when_cancelled(tmp_path: Path) -> None:
    process = FakeProcess()
    cancel = threading.Event()
    cancel.set()

    status = Cloudflared(popen=lambda cmd: process).run(tmp_path / "c.yml", TUNNEL_ID, cancel=cancel, poll_interval=0)

    assert process.terminated
    assert status == -15


def test_run_stops_on_keyboard_interrupt(tmp_path: Path) -> None:
    class InterruptedProcess(FakeProcess):
        def wait(self, timeout=None):
            if not self.terminated:
                raise KeyboardInterrupt
            return -2

    process = InterruptedProcess()
    cancel = threading.Event()

    status = Cloudflared(popen=lambda cmd: process).run(tmp_path / "c.yml", TUNNEL_ID, cancel=cancel)

    assert process.terminated
    assert cancel.is_set()
    assert status == -2
