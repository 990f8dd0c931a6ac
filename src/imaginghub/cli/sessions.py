"""Device session CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from imaginghub.database import get_session_context
from imaginghub.services.device_sessions import DeviceSessionService

console = Console()
app = typer.Typer(help="Signed-in device session commands")


@app.command("list")
def list_sessions(email: str = typer.Argument(..., help="User email")):
    """List the active device sessions of a user."""

    async def _list():
        async with get_session_context() as session:
            records = await DeviceSessionService(session).list_active(email.strip().lower())

            table = Table(title=f"Device Sessions for {email}")
            table.add_column("ID", style="cyan")
            table.add_column("Device", style="green")
            table.add_column("IP", style="dim")
            table.add_column("Last Active", style="dim")
            table.add_column("Expires", style="dim")

            for record in records:
                device = " / ".join(
                    part for part in (record.browser_name, record.os_name, record.device_name) if part
                )
                table.add_row(
                    record.id,
                    device or "-",
                    record.ip_address or "-",
                    record.last_activity.strftime("%Y-%m-%d %H:%M"),
                    record.expires_at.strftime("%Y-%m-%d %H:%M"),
                )

            console.print(table)

    asyncio.run(_list())


@app.command("revoke-all")
def revoke_all(
    email: str = typer.Argument(..., help="User email"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """Sign a user out of every device."""
    if not force and not typer.confirm(f"Revoke every session for {email}?"):
        console.print("[dim]Cancelled[/dim]")
        raise typer.Exit(0)

    async def _revoke():
        async with get_session_context() as session:
            revoked = await DeviceSessionService(session).revoke_others(email.strip().lower())
            console.print(f"[green]Revoked {revoked} sessions for[/green] {email}")

    asyncio.run(_revoke())
