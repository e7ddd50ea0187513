import asyncio

import typer
from rich.markup import escape

from qualia_chat.errors import ChatError
from qualia_cli.utils import build_gateway, build_session, console, get_http_client


async def run_drain() -> int:
    """Deliver queued messages and return how many are still pending."""
    gateway = build_gateway()
    async with get_http_client() as http:
        session = build_session(gateway, http)
        try:
            if not await session.monitor.check():
                console.print("[yellow]Still offline; messages stay queued.[/yellow]")
                return len(await session.queue.items())
            # Restores the stored thread and flushes the queue into it
            await session.initialize()
            if session.error:
                console.print(f"[red]{escape(session.error)}[/red]")
            return len(await session.queue.items())
        finally:
            await session.close()
            await gateway.aclose()


def drain_queue() -> None:
    """Send queued messages now."""
    try:
        pending = asyncio.run(run_drain())
    except (ChatError, ValueError) as e:
        message = e.user_message if isinstance(e, ChatError) else str(e)
        console.print(f"[red]{escape(message)}[/red]")
        raise typer.Exit(1)
    if pending:
        console.print(f"[yellow]{pending} message(s) still queued.[/yellow]")
    else:
        console.print("[green]All queued messages delivered.[/green]")
