"""CLI interface for herd-share."""
import logging
import shutil
import signal
import threading
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, is_valid_domain
from .cloudflared import Cloudflared
from .descriptor import ConfigEmitter
from .errors import (
    CloudflaredError,
    HerdShareError,
    InvalidDomainError,
    MissingArgumentError,
    MissingDependencyError,
)
from .herd import Herd
from .prober import RemoteStateProber
from .reconciler import Reconciler
from .registry import RegistryStore, is_valid_tunnel_id
from .settings import Settings, load_settings

app = typer.Typer(
    name="herd-share",
    help="Share Laravel Herd sites on a public hostname through Cloudflare tunnels",
)
console = Console()
err_console = Console(stderr=True)


def get_cloudflared(settings: Settings) -> Cloudflared:
    return Cloudflared(settings.cloudflared_bin, origin_cert=settings.origin_cert)


def get_herd(settings: Settings) -> Herd:
    return Herd(settings.herd_bin)


def check_dependencies(*tools: str) -> None:
    """Fail before touching any state if a required tool is not on PATH."""
    missing = [tool for tool in tools if shutil.which(tool) is None]
    if missing:
        raise MissingDependencyError(missing)


def require_domain(domain: Optional[str]) -> str:
    if not domain:
        raise MissingArgumentError("A domain is required, e.g. herd-share share example.com")
    domain = domain.strip().lower()
    if not is_valid_domain(domain):
        raise InvalidDomainError(f"Invalid domain format: {domain}")
    return domain


def build_reconciler(settings: Settings, client: Cloudflared) -> Reconciler:
    return Reconciler(RegistryStore(settings.registry_path), RemoteStateProber(client), client)


def fail(error: Exception) -> None:
    err_console.print(f"[red]Error:[/red] {error}")
    if isinstance(error, MissingDependencyError):
        err_console.print("[dim]Install cloudflared (brew install cloudflared) and Laravel Herd, then retry.[/dim]")
    raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
):
    """Share Laravel Herd sites on a public hostname through Cloudflare tunnels."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def share(
    domain: Optional[str] = typer.Argument(None, help="Public hostname to share, e.g. example.com"),
    secure: bool = typer.Option(False, "--secure", "-s", help="Serve the local site over HTTPS"),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Site directory to link (default: current)"),
    run_tunnel: bool = typer.Option(True, "--run/--no-run", help="Run the tunnel in the foreground"),
):
    """Provision a tunnel for DOMAIN, route DNS to it and run it."""
    try:
        domain = require_domain(domain)
        settings = load_settings()
        check_dependencies(settings.cloudflared_bin, settings.herd_bin)
        settings.ensure_dirs()

        cloudflared = get_cloudflared(settings)
        herd = get_herd(settings)

        if not cloudflared.is_logged_in():
            console.print("[yellow]Not logged in to Cloudflare, starting login...[/yellow]")
            cloudflared.login()

        if herd.is_linked(domain):
            console.print(f"[dim]Already linked in Herd:[/dim] {domain}")
        else:
            herd.link(domain, path)
            console.print(f"  [green]✓[/green] Linked {domain} in Herd")

        if secure:
            herd.secure(domain)
            console.print(f"  [green]✓[/green] Secured {domain}.{settings.local_suffix}")

        tunnel_id = build_reconciler(settings, cloudflared).resolve_tunnel(domain)
        console.print(f"  [green]✓[/green] Tunnel [cyan]{tunnel_id}[/cyan]")

        try:
            cloudflared.create_dns_route(tunnel_id, domain)
            console.print(f"  [green]✓[/green] DNS routed for {domain}")
        except CloudflaredError as e:
            # Usually the record already exists
            console.print(f"  [yellow]![/yellow] DNS route not created: {e.stderr or e}")

        emitter = ConfigEmitter(settings)
        emitter.emit(tunnel_id, domain)
        if secure:
            emitter.emit(tunnel_id, domain, port=443, protocol="https")
        config_path = emitter.path_for(domain)
        console.print(f"  [green]✓[/green] Config written to {config_path}")
    except HerdShareError as e:
        fail(e)

    console.print(f"\n[bold green]Done![/bold green] {domain} is shared at https://{domain}/")
    if not run_tunnel:
        console.print(f"[dim]Start it with: {settings.cloudflared_bin} tunnel --config {config_path} run {tunnel_id}[/dim]")
        return

    console.print("[dim]Running tunnel, press Ctrl+C to stop.[/dim]\n")
    cancel = threading.Event()
    previous = signal.signal(signal.SIGTERM, lambda *_: cancel.set())
    try:
        status = cloudflared.run(config_path, tunnel_id, cancel=cancel)
    except HerdShareError as e:
        fail(e)
    finally:
        signal.signal(signal.SIGTERM, previous)

    if cancel.is_set():
        console.print("\n[yellow]Tunnel stopped.[/yellow]")
    elif status != 0:
        err_console.print(f"[red]cloudflared exited with status {status}[/red]")
        raise typer.Exit(1)


@app.command("list")
def list_shares(
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List shared domains and their tunnels."""
    try:
        settings = load_settings()
        entries = RegistryStore(settings.registry_path).entries()
    except HerdShareError as e:
        fail(e)

    if output_json:
        console.print_json(data={e.domain: {"id": e.tunnel_id, "name": e.tunnel_name} for e in entries}, highlight=False)
        return

    if not entries:
        console.print("[yellow]No shared domains.[/yellow]")
        return

    emitter = ConfigEmitter(settings)
    table = Table(title="Shared Domains")
    table.add_column("Domain", style="cyan")
    table.add_column("Tunnel", style="green")
    table.add_column("Tunnel ID", style="magenta")
    table.add_column("Config", style="dim")

    for entry in entries:
        config_path = emitter.path_for(entry.domain)
        table.add_row(
            entry.domain,
            entry.tunnel_name,
            entry.tunnel_id,
            str(config_path) if config_path.exists() else "-",
        )

    console.print(table)


@app.command()
def remove(
    domain: Optional[str] = typer.Argument(None, help="Domain to forget"),
):
    """Forget DOMAIN locally. The Cloudflare tunnel itself is kept."""
    try:
        domain = require_domain(domain)
        settings = load_settings()
        entry = build_reconciler(settings, get_cloudflared(settings)).forget(domain)
        ConfigEmitter(settings).remove(domain)
    except HerdShareError as e:
        fail(e)

    console.print(f"[green]Removed[/green] {domain} ({entry.tunnel_name})")
    console.print(f"[dim]Tunnel {entry.tunnel_id} still exists; use 'herd-share cleanup' to delete it.[/dim]")


@app.command()
def cleanup(
    domain: Optional[str] = typer.Argument(None, help="Domain to tear down"),
):
    """Delete DOMAIN's Cloudflare tunnel and forget it locally."""
    try:
        domain = require_domain(domain)
        settings = load_settings()
        check_dependencies(settings.cloudflared_bin)

        cloudflared = get_cloudflared(settings)
        reconciler = build_reconciler(settings, cloudflared)
        entry = reconciler.lookup(domain, validate=False)

        if is_valid_tunnel_id(entry.tunnel_id) and reconciler.prober.tunnel_exists(entry.tunnel_id):
            try:
                cloudflared.cleanup_tunnel(entry.tunnel_id)
            except CloudflaredError as e:
                console.print(f"  [yellow]![/yellow] Could not clean up connections: {e.stderr or e}")
            cloudflared.delete_tunnel(entry.tunnel_id)
            console.print(f"  [green]✓[/green] Deleted tunnel {entry.tunnel_name} ({entry.tunnel_id})")
        else:
            console.print(f"  [dim]Tunnel {entry.tunnel_id} already gone remotely[/dim]")

        reconciler.forget(domain)
        ConfigEmitter(settings).remove(domain)
    except HerdShareError as e:
        fail(e)

    console.print(f"[green]Cleaned up[/green] {domain}")
    console.print(f"[dim]The DNS record for {domain} is left in place; delete it in the Cloudflare dashboard if unused.[/dim]")


@app.command()
def install():
    """Check dependencies, create config directories and log in to Cloudflare."""
    try:
        settings = load_settings()
        check_dependencies(settings.cloudflared_bin, settings.herd_bin)
        settings.ensure_dirs()
        console.print(f"  [green]✓[/green] Config directory {settings.config_dir}")

        cloudflared = get_cloudflared(settings)
        console.print(f"  [green]✓[/green] {cloudflared.version()}")
        if cloudflared.is_logged_in():
            console.print("  [green]✓[/green] Logged in to Cloudflare")
        else:
            console.print("[yellow]Logging in to Cloudflare...[/yellow]")
            cloudflared.login()
    except HerdShareError as e:
        fail(e)

    console.print("\n[bold green]Ready![/bold green] Share a site with: herd-share share <domain>")


@app.command()
def stop():
    """Explain how to stop a running tunnel."""
    # Tunnels run in the foreground of 'share'; there is no background process to stop.
    console.print("Tunnels run in the foreground. Press Ctrl+C in the terminal running 'herd-share share'.")


@app.command("help")
def show_help(ctx: typer.Context):
    """Show this message."""
    console.print(ctx.parent.get_help())


@app.command()
def version():
    """Show version information."""
    console.print(f"herd-share {__version__}")


if __name__ == "__main__":
    app()
