"""Decide which tunnel serves a domain, reusing what already exists."""
import logging

from .cloudflared import Cloudflared, extract_tunnel_id
from .errors import TunnelCreationError, UnknownDomainError
from .prober import RemoteStateProber
from .registry import RegistryEntry, RegistryStore

logger = logging.getLogger(__name__)

TUNNEL_NAME_PREFIX = "herd-"


def derive_tunnel_name(domain: str) -> str:
    """Deterministic tunnel name for a domain, e.g. example.com -> herd-example-com."""
    return TUNNEL_NAME_PREFIX + domain.replace(".", "-")


class Reconciler:
    """Resolve a domain to exactly one tunnel id and keep the registry in sync.

    Resolution order, first hit wins:

    1. registry entry whose tunnel still exists remotely
    2. a DNS route that already mentions the domain
    3. a tunnel named ``derive_tunnel_name(domain)``
    4. a freshly created tunnel with that name

    Whatever wins in 2-4 is written back to the registry.
    """

    def __init__(self, registry: RegistryStore, prober: RemoteStateProber, client: Cloudflared):
        self.registry = registry
        self.prober = prober
        self.client = client

    def _remember(self, domain: str, tunnel_id: str, tunnel_name: str) -> str:
        self.registry.put(domain, RegistryEntry(domain=domain, tunnel_id=tunnel_id, tunnel_name=tunnel_name))
        return tunnel_id

    def resolve_tunnel(self, domain: str) -> str:
        tunnel_name = derive_tunnel_name(domain)

        cached = self.registry.get(domain)
        if cached is not None:
            if self.prober.tunnel_exists(cached.tunnel_id):
                logger.debug("Reusing registered tunnel %s for %s", cached.tunnel_id, domain)
                return cached.tunnel_id
            logger.info("Registered tunnel %s for %s no longer exists, re-resolving", cached.tunnel_id, domain)

        tunnel_id = self.prober.find_tunnel_by_existing_route(domain)
        if tunnel_id:
            logger.info("Found tunnel %s via existing route for %s", tunnel_id, domain)
            return self._remember(domain, tunnel_id, tunnel_name)

        tunnel_id = self.prober.find_tunnel_by_name(tunnel_name)
        if tunnel_id:
            logger.info("Found existing tunnel %s named %s", tunnel_id, tunnel_name)
            return self._remember(domain, tunnel_id, tunnel_name)

        output = self.client.create_tunnel(tunnel_name)
        tunnel_id = extract_tunnel_id(output)
        if not tunnel_id:
            raise TunnelCreationError(
                f"Could not read a tunnel id from 'cloudflared tunnel create {tunnel_name}' output"
            )
        logger.info("Created tunnel %s (%s)", tunnel_name, tunnel_id)
        return self._remember(domain, tunnel_id, tunnel_name)

    def lookup(self, domain: str, validate: bool = True) -> RegistryEntry:
        """Registry entry for a domain, failing loudly if there is none.

        Pass ``validate=False`` to also return entries with a malformed id.
        """
        entry = self.registry.get(domain, validate=validate)
        if entry is None:
            raise UnknownDomainError(domain)
        return entry

    def forget(self, domain: str) -> RegistryEntry:
        """Drop a domain from the registry and return what was stored."""
        entry = self.lookup(domain, validate=False)
        self.registry.delete(domain)
        return entry
