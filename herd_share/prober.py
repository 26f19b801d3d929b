"""Look up tunnels that already exist on the Cloudflare account.

Cloudflare has no "tunnel for this hostname" query, so the mapping is
rebuilt from the route listing and the tunnel listing. Every lookup is
best-effort: a failing command counts as "not found".
"""
import logging
import re
from typing import Optional

from .cloudflared import Cloudflared, extract_tunnel_id
from .errors import CloudflaredError, RemoteLookupError

logger = logging.getLogger(__name__)


class RemoteStateProber:
    """Query remote tunnel state through a Cloudflared client."""

    def __init__(self, client: Cloudflared):
        self.client = client

    def _list_tunnels(self) -> list[dict]:
        try:
            return self.client.list_tunnels()
        except CloudflaredError as e:
            raise RemoteLookupError(str(e)) from e

    def find_tunnel_by_existing_route(self, domain: str) -> Optional[str]:
        """Find the tunnel id on a route line that names `domain` exactly.

        Subdomains and longer hostnames sharing a suffix don't count.
        """
        try:
            routes = self.client.list_routes()
        except CloudflaredError as e:
            logger.debug("Route lookup for %s failed: %s", domain, e)
            return None

        pattern = re.compile(rf"(?<![\w.-]){re.escape(domain)}(?![\w-]|\.\w)", re.IGNORECASE)
        for line in routes.splitlines():
            match = pattern.search(line)
            if not match:
                continue
            # Route and virtual network ids come before the comment column
            tunnel_id = extract_tunnel_id(line[match.end():])
            if tunnel_id:
                logger.debug("Route for %s points at tunnel %s", domain, tunnel_id)
                return tunnel_id
        return None

    def find_tunnel_by_name(self, tunnel_name: str) -> Optional[str]:
        """Id of the first tunnel whose name is exactly `tunnel_name`."""
        try:
            tunnels = self._list_tunnels()
        except RemoteLookupError as e:
            logger.debug("Tunnel lookup for %s failed: %s", tunnel_name, e)
            return None

        for tunnel in tunnels:
            if tunnel.get("name") == tunnel_name and tunnel.get("id"):
                return str(tunnel["id"]).lower()
        return None

    def tunnel_exists(self, tunnel_id: str) -> bool:
        """Whether a previously known tunnel is still on the account."""
        try:
            tunnels = self._list_tunnels()
        except RemoteLookupError as e:
            logger.debug("Existence check for %s failed: %s", tunnel_id, e)
            return False

        wanted = tunnel_id.lower()
        return any(str(t.get("id", "")).lower() == wanted for t in tunnels)
