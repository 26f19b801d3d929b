"""Configuration paths and tool names, from the environment or a .env file."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "herd-share"
DEFAULT_CLOUDFLARED_DIR = Path.home() / ".cloudflared"
DEFAULT_LOCAL_SUFFIX = "test"

ENV_PREFIX = "HERD_SHARE_"


@dataclass
class Settings:
    """Resolved herd-share configuration."""
    config_dir: Path = DEFAULT_CONFIG_DIR
    cloudflared_dir: Path = DEFAULT_CLOUDFLARED_DIR
    local_suffix: str = DEFAULT_LOCAL_SUFFIX
    cloudflared_bin: str = "cloudflared"
    herd_bin: str = "herd"

    @property
    def registry_path(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def descriptor_dir(self) -> Path:
        return self.config_dir / "tunnels"

    @property
    def origin_cert(self) -> Path:
        """Account certificate written by `cloudflared tunnel login`."""
        return self.cloudflared_dir / "cert.pem"

    def credentials_path(self, tunnel_id: str) -> Path:
        return self.cloudflared_dir / f"{tunnel_id}.json"

    def ensure_dirs(self) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.descriptor_dir.mkdir(parents=True, exist_ok=True)


def _read_dotenv(env_file: Path) -> dict:
    if not env_file.exists():
        return {}
    return {k: v for k, v in dotenv_values(env_file).items() if v is not None}


def load_settings(environ: Optional[Mapping[str, str]] = None, env_file: Optional[Path] = None) -> Settings:
    """Build Settings from a .env file overlaid with environment variables.

    Args:
        environ: Environment mapping (defaults to os.environ)
        env_file: dotenv file to read (defaults to <config dir>/.env)

    Environment variables take precedence over values in the dotenv file.
    """
    environ = os.environ if environ is None else environ

    config_dir = Path(environ.get(f"{ENV_PREFIX}CONFIG_DIR", DEFAULT_CONFIG_DIR)).expanduser()
    values = _read_dotenv(env_file or config_dir / ".env")
    values.update({k: v for k, v in environ.items() if k.startswith(ENV_PREFIX)})

    def get(key: str, default):
        return values.get(f"{ENV_PREFIX}{key}") or default

    return Settings(
        config_dir=config_dir,
        cloudflared_dir=Path(get("CLOUDFLARED_DIR", DEFAULT_CLOUDFLARED_DIR)).expanduser(),
        local_suffix=get("LOCAL_SUFFIX", DEFAULT_LOCAL_SUFFIX).lstrip("."),
        cloudflared_bin=get("CLOUDFLARED_BIN", "cloudflared"),
        herd_bin=get("HERD_BIN", "herd"),
    )
