"""Local record of which tunnel serves which domain."""
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import atomic_write
from .errors import RegistryIOError

logger = logging.getLogger(__name__)

UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


def is_valid_tunnel_id(tunnel_id: str) -> bool:
    """Check that a tunnel id is a canonical 8-4-4-4-12 UUID."""
    return isinstance(tunnel_id, str) and bool(UUID_RE.match(tunnel_id))


@dataclass
class RegistryEntry:
    """A domain bound to a remote tunnel."""
    domain: str
    tunnel_id: str
    tunnel_name: str


class RegistryStore:
    """JSON-backed mapping of domain -> tunnel id and name.

    The document looks like::

        {"tunnels": {"example.com": {"id": "<uuid>", "name": "herd-example-com"}}}

    Every mutation reads the whole document, changes it and replaces the file
    atomically. Concurrent writers are not supported.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict:
        if not self.path.exists():
            return {"tunnels": {}}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise RegistryIOError(f"Registry file {self.path} is corrupted: {e}") from e
        except OSError as e:
            raise RegistryIOError(f"Cannot read registry file {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("tunnels", {}), dict):
            raise RegistryIOError(f"Registry file {self.path} has an unexpected layout")
        data.setdefault("tunnels", {})
        return data

    def _save(self, data: dict) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(self.path, json.dumps(data, indent=2, sort_keys=True) + "\n")
        except OSError as e:
            raise RegistryIOError(f"Cannot write registry file {self.path}: {e}") from e

    def get(self, domain: str, validate: bool = True) -> Optional[RegistryEntry]:
        """Return the entry for a domain, or None if absent.

        With `validate`, an entry whose id is not a UUID also reads as None.
        """
        raw = self._load()["tunnels"].get(domain)
        if not isinstance(raw, dict):
            return None

        tunnel_id = raw.get("id", "")
        if not isinstance(tunnel_id, str):
            tunnel_id = ""
        if validate and not is_valid_tunnel_id(tunnel_id):
            logger.debug("Ignoring registry entry for %s with invalid id %r", domain, tunnel_id)
            return None
        return RegistryEntry(domain=domain, tunnel_id=tunnel_id, tunnel_name=raw.get("name", ""))

    def put(self, domain: str, entry: RegistryEntry) -> None:
        """Insert or replace the entry for a domain."""
        data = self._load()
        data["tunnels"][domain] = {"id": entry.tunnel_id, "name": entry.tunnel_name}
        self._save(data)
        logger.debug("Registered %s -> %s (%s)", domain, entry.tunnel_id, entry.tunnel_name)

    def delete(self, domain: str) -> None:
        """Remove the entry for a domain. Missing domains are ignored."""
        data = self._load()
        if data["tunnels"].pop(domain, None) is None:
            return
        self._save(data)
        logger.debug("Unregistered %s", domain)

    def entries(self) -> list[RegistryEntry]:
        return [
            RegistryEntry(domain=domain, tunnel_id=raw.get("id", ""), tunnel_name=raw.get("name", ""))
            for domain, raw in sorted(self._load()["tunnels"].items())
            if isinstance(raw, dict)
        ]

    def list(self) -> list[tuple[str, str]]:
        """All (domain, tunnel_id) pairs."""
        return [(entry.domain, entry.tunnel_id) for entry in self.entries()]
