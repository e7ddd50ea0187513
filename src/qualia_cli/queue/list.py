import asyncio

from rich.markup import escape
from rich.table import Table

from qualia_chat.queue import OfflineQueue
from qualia_cli.utils import console, get_store


def list_queue() -> None:
    """List messages waiting to be delivered."""
    items = asyncio.run(OfflineQueue(get_store()).items())
    if not items:
        console.print("[dim]No queued messages.[/dim]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Queued at")
    table.add_column("Thread")
    table.add_column("Message")
    for item in items:
        table.add_row(item.id, f"{item.timestamp:%Y-%m-%d %H:%M:%S}", item.thread_id or "", escape(item.content))
    console.print(table)
