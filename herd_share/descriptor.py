"""Write the cloudflared ingress config for a shared site."""
import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from . import atomic_write, validate_port
from .settings import Settings

logger = logging.getLogger(__name__)

NOT_FOUND_STATUS = 404


@dataclass
class TunnelDescriptor:
    """Everything cloudflared needs to route a hostname to the local site."""
    tunnel_id: str
    credentials_path: Path
    hostname: str
    local_service_url: str
    default_fallback_status: int = NOT_FOUND_STATUS

    def to_config(self) -> dict:
        """Render as a cloudflared config document."""
        rule = {"hostname": self.hostname, "service": self.local_service_url}
        if self.local_service_url.startswith("https://"):
            # Herd issues self-signed certificates
            rule["originRequest"] = {"noTLSVerify": True}
        return {
            "tunnel": self.tunnel_id,
            "credentials-file": str(self.credentials_path),
            "ingress": [
                rule,
                {"service": f"http_status:{self.default_fallback_status}"},
            ],
        }


class ConfigEmitter:
    """Generate one descriptor file per domain under the settings' descriptor dir."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def path_for(self, domain: str) -> Path:
        return self.settings.descriptor_dir / f"{domain}.yml"

    def emit(self, tunnel_id: str, domain: str, port: int = 80, protocol: str = "http") -> TunnelDescriptor:
        """Write (or overwrite) the descriptor binding `domain` to the local site."""
        if not validate_port(port):
            raise ValueError(f"Invalid port number: {port}")
        if protocol not in ("http", "https"):
            raise ValueError(f"Unsupported protocol: {protocol}")

        descriptor = TunnelDescriptor(
            tunnel_id=tunnel_id,
            credentials_path=self.settings.credentials_path(tunnel_id),
            hostname=domain,
            local_service_url=f"{protocol}://{domain}.{self.settings.local_suffix}:{port}",
        )

        path = self.path_for(domain)
        path.parent.mkdir(parents=True, exist_ok=True)
        content = yaml.safe_dump(descriptor.to_config(), default_flow_style=False, sort_keys=False)

        atomic_write(path, content)
        logger.debug("Wrote tunnel config to %s", path)
        return descriptor

    def remove(self, domain: str) -> bool:
        """Delete a domain's descriptor. Returns False if there was none."""
        path = self.path_for(domain)
        if not path.exists():
            return False
        path.unlink()
        return True
