"""herd-share: Share Laravel Herd sites through named Cloudflare tunnels."""
import os
import re
import tempfile
from pathlib import Path

__version__ = "0.1.0"


def validate_port(port: int) -> bool:
    """True for a TCP port cloudflared can forward to (1-65535)."""
    return isinstance(port, int) and 1 <= port <= 65535


def is_valid_domain(domain: str) -> bool:
    """True if `domain` is safe to use as a hostname, tunnel name suffix and file name."""
    if not domain or len(domain) > 253:
        return False
    # Letters, digits, dots and dashes, starting and ending on a letter or digit
    return bool(re.fullmatch(r'[a-zA-Z0-9]([a-zA-Z0-9\-\.]*[a-zA-Z0-9])?', domain))


def atomic_write(path: Path, content: str) -> None:
    """Write content to file atomically (write to temp, then rename)."""
    # Temp file in the same directory so the rename stays on one filesystem
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix='.tmp_', suffix=path.suffix)
    try:
        with os.fdopen(fd, 'w') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)  # Atomic on POSIX
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
