"""
Exceptions raised by herd-share operations.
"""


class HerdShareError(Exception):
    """Base exception for all herd-share errors."""
    pass


class MissingDependencyError(HerdShareError):
    """Raised when a required external tool is not installed."""

    def __init__(self, tools):
        self.tools = list(tools)
        super().__init__(f"Missing required tool(s): {', '.join(self.tools)}")


class MissingArgumentError(HerdShareError):
    """Raised when a required argument (usually the domain) is absent."""
    pass


class InvalidDomainError(HerdShareError):
    """Raised when a domain is not a well-formed hostname."""
    pass


class RemoteLookupError(HerdShareError):
    """Raised when probing remote tunnel state fails.

    Never escapes the prober: lookups that fail are reported as "not found".
    """
    pass


class TunnelCreationError(HerdShareError):
    """Raised when a tunnel could not be created or its id not parsed."""
    pass


class RegistryIOError(HerdShareError):
    """Raised when the tunnel registry cannot be read or written."""
    pass


class UnknownDomainError(HerdShareError):
    """Raised when an operation targets a domain with no registry entry."""

    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"No tunnel registered for '{domain}'")


class CommandError(HerdShareError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, cmd, returncode: int, stderr: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"'{' '.join(self.cmd)}' exited with status {returncode}{detail}")


class CloudflaredError(CommandError):
    """Raised when a cloudflared command fails."""
    pass


class HerdError(CommandError):
    """Raised when a herd command fails."""
    pass
