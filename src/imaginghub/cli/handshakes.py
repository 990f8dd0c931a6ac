"""Pending sign-in (handshake) CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from imaginghub.database import get_session_context
from imaginghub.services.errors import HandshakeError
from imaginghub.services.handshake import SessionManager
from imaginghub.tasks import queue
from imaginghub.tasks.maintenance import MAINTENANCE_TIMEOUT_SECONDS

console = Console()
app = typer.Typer(help="Pending cross-device sign-in commands")

STATUS_STYLES = {
    "pending": "yellow",
    "authenticated": "green",
    "expired": "dim",
}


@app.command("list")
def list_handshakes(
    limit: int = typer.Option(50, "--limit", "-l", help="Number of sessions to show"),
):
    """List the most recent pending sessions."""

    async def _list():
        async with get_session_context() as session:
            manager = SessionManager(session)
            records = await manager.store.list_recent(limit=limit)
            now = manager.clock.now()

            table = Table(title="Pending Sessions")
            table.add_column("ID", style="cyan")
            table.add_column("Email", style="green")
            table.add_column("Status")
            table.add_column("Device", style="dim")
            table.add_column("Created", style="dim")
            table.add_column("Expires", style="dim")

            for record in records:
                state = record.status_at(now).value
                style = STATUS_STYLES.get(state, "white")
                table.add_row(
                    record.id,
                    record.email,
                    f"[{style}]{state}[/{style}]",
                    record.device_info or "-",
                    record.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                    record.expires_at.strftime("%Y-%m-%d %H:%M:%S"),
                )

            console.print(table)

    asyncio.run(_list())


@app.command("login-url")
def login_url(
    email: str = typer.Argument(..., help="Email address to sign in"),
    device: str | None = typer.Option(None, "--device", "-d", help="Device description"),
):
    """Create a pending session and print its magic link without sending email.

    The session token is printed too, so the sign-in can be completed from
    another client. Only the local identity provider can sign links itself.
    """
    from imaginghub.api.auth import build_magic_link
    from imaginghub.services.identity import LocalIdentityProvider, get_identity_provider

    provider = get_identity_provider()
    if not isinstance(provider, LocalIdentityProvider):
        console.print("[red]Error:[/red] Login URLs need the local identity provider")
        raise typer.Exit(1)

    async def _generate():
        async with get_session_context() as session:
            manager = SessionManager(session)
            try:
                pending = await manager.create_session(email, device_info=device)
            except HandshakeError as e:
                console.print(f"[red]Error:[/red] {e.message}")
                raise typer.Exit(1) from e

            link = provider.sign_link(build_magic_link(pending.session_token), pending.email)
            console.print(f"[green]Login URL:[/green] {link}")
            console.print(f"[dim]Session token: {pending.session_token}[/dim]")
            console.print(f"[dim]Expires: {pending.expires_at}[/dim]")

    asyncio.run(_generate())


@app.command("sweep")
def sweep(
    background: bool = typer.Option(False, "--background", "-b", help="Run in background worker"),
):
    """Delete expired pending sessions and expired device sessions."""

    async def _sweep():
        if background:
            job = await queue.enqueue(
                "sweep_expired_sessions",
                timeout=MAINTENANCE_TIMEOUT_SECONDS,
            )
            console.print(f"[green]Queued sweep job:[/green] {job.id if job else 'unknown'}")
            return

        from imaginghub.tasks.maintenance import sweep_expired_sessions

        result = await sweep_expired_sessions(ctx={})
        if not result.get("success"):
            console.print(f"[red]Error:[/red] {result.get('error')}")
            raise typer.Exit(1)

        table = Table(title="Session Sweep Results")
        table.add_column("Table", style="cyan")
        table.add_column("Deleted", justify="right")
        table.add_row("pending_auth_sessions", str(result["pending_sessions_deleted"]))
        table.add_row("user_sessions", str(result["device_sessions_deleted"]))
        console.print(table)

    asyncio.run(_sweep())
