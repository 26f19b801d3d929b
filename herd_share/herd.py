"""Link and secure sites through the Laravel Herd CLI."""
import logging
import re
import subprocess
from pathlib import Path
from typing import Callable, Optional

from .errors import HerdError, MissingDependencyError

logger = logging.getLogger(__name__)


class Herd:
    """Run herd subcommands.

    Args:
        binary: Executable name or path
        runner: Callable with the signature of subprocess.run
    """

    def __init__(self, binary: str = "herd", runner: Callable = subprocess.run):
        self.binary = binary
        self._runner = runner

    def _run(self, *args: str, cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
        cmd = [self.binary, *args]
        logger.debug("Running: %s%s", " ".join(cmd), f" (in {cwd})" if cwd else "")
        try:
            result = self._runner(cmd, capture_output=True, text=True, cwd=cwd)
        except FileNotFoundError:
            raise MissingDependencyError([self.binary])
        if result.returncode != 0:
            raise HerdError(cmd, result.returncode, result.stderr)
        return result

    def list_links(self) -> str:
        return self._run("links").stdout

    def is_linked(self, domain: str) -> bool:
        """Whether `herd links` mentions the site as a whole word."""
        pattern = re.compile(rf"(?<![\w.-]){re.escape(domain)}(?![\w-])")
        return bool(pattern.search(self.list_links()))

    def link(self, domain: str, path: Optional[Path] = None) -> None:
        """Link the directory at `path` (default: cwd) as `domain`."""
        self._run("link", domain, cwd=path)

    def secure(self, domain: str) -> None:
        """Issue a local TLS certificate for the site."""
        self._run("secure", domain)
