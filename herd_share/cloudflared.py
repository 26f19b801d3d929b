"""Thin wrapper around the cloudflared command line."""
import json
import logging
import re
import subprocess
import threading
from pathlib import Path
from typing import Callable, Optional

from .errors import CloudflaredError, MissingDependencyError

logger = logging.getLogger(__name__)

UUID_SEARCH_RE = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")

# cloudflared reports live tunnels with a zero timestamp here
_ZERO_TIME_PREFIX = "0001-01-01"


def extract_tunnel_id(text: str) -> Optional[str]:
    """Pull the first UUID out of free-form cloudflared output."""
    match = UUID_SEARCH_RE.search(text or "")
    return match.group(0).lower() if match else None


class Cloudflared:
    """Run cloudflared subcommands.

    Args:
        binary: Executable name or path
        origin_cert: Path of the account certificate created by `tunnel login`
        runner: Callable with the signature of subprocess.run
    """

    def __init__(self, binary: str = "cloudflared", origin_cert: Optional[Path] = None,
                 runner: Callable = subprocess.run, popen: Callable = subprocess.Popen):
        self.binary = binary
        self.origin_cert = origin_cert
        self._runner = runner
        self._popen = popen

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        cmd = [self.binary, *args]
        logger.debug("Running: %s", " ".join(cmd))
        try:
            result = self._runner(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            raise MissingDependencyError([self.binary])
        if check and result.returncode != 0:
            raise CloudflaredError(cmd, result.returncode, result.stderr)
        return result

    def version(self) -> str:
        return self._run("--version").stdout.strip()

    def is_logged_in(self) -> bool:
        """Whether the account certificate from `tunnel login` is present."""
        return bool(self.origin_cert and Path(self.origin_cert).exists())

    def login(self) -> None:
        """Run the interactive browser login; output goes straight to the terminal."""
        cmd = [self.binary, "tunnel", "login"]
        logger.debug("Running: %s", " ".join(cmd))
        try:
            result = self._runner(cmd)
        except FileNotFoundError:
            raise MissingDependencyError([self.binary])
        if result.returncode != 0:
            raise CloudflaredError(cmd, result.returncode)

    def list_tunnels(self) -> list[dict]:
        """List live tunnels on the account as dicts with at least `id` and `name`."""
        result = self._run("tunnel", "list", "--output", "json")
        try:
            tunnels = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            raise CloudflaredError(["tunnel", "list"], 0, f"unparseable output: {e}") from e
        if not isinstance(tunnels, list):
            return []

        live = []
        for tunnel in tunnels:
            if not isinstance(tunnel, dict):
                continue
            deleted_at = tunnel.get("deleted_at") or ""
            if deleted_at and not deleted_at.startswith(_ZERO_TIME_PREFIX):
                continue
            live.append(tunnel)
        return live

    def create_tunnel(self, name: str) -> str:
        """Create a named tunnel and return the raw command output."""
        result = self._run("tunnel", "create", name)
        # cloudflared writes its summary to stdout but logs to stderr
        return "\n".join(part for part in (result.stdout, result.stderr) if part)

    def delete_tunnel(self, tunnel_id: str) -> None:
        self._run("tunnel", "delete", "-f", tunnel_id)

    def cleanup_tunnel(self, tunnel_id: str) -> None:
        """Drop stale connections registered for a tunnel."""
        self._run("tunnel", "cleanup", tunnel_id)

    def list_routes(self) -> str:
        """Return the route listing as text.

        This lists private-network (CIDR) routes. Hostnames only show up here
        when someone put them in a route's comment, so route-based discovery
        rarely matches and callers must fall back to the tunnel listing.
        """
        return self._run("tunnel", "route", "ip", "show").stdout

    def create_dns_route(self, tunnel_id: str, domain: str) -> str:
        """Point a hostname's CNAME at the tunnel."""
        result = self._run("tunnel", "route", "dns", tunnel_id, domain)
        return "\n".join(part for part in (result.stdout, result.stderr) if part).strip()

    def run(self, config_path: Path, tunnel_id: str,
            cancel: Optional[threading.Event] = None, poll_interval: float = 0.5) -> int:
        """Run the tunnel in the foreground until it exits or `cancel` is set.

        Returns:
            The cloudflared exit status (or the status after termination)
        """
        cmd = [self.binary, "tunnel", "--config", str(config_path), "run", tunnel_id]
        logger.debug("Running: %s", " ".join(cmd))
        try:
            process = self._popen(cmd)
        except FileNotFoundError:
            raise MissingDependencyError([self.binary])

        try:
            while True:
                try:
                    return process.wait(timeout=poll_interval)
                except subprocess.TimeoutExpired:
                    if cancel is not None and cancel.is_set():
                        break
        except KeyboardInterrupt:
            logger.debug("Interrupted, stopping cloudflared")
            if cancel is not None:
                cancel.set()

        process.terminate()
        try:
            return process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            return process.wait()
