import asyncio

import typer
from rich.markup import escape
from rich.table import Table

from qualia_chat.cache import BoundedCache
from qualia_chat.errors import ChatError
from qualia_chat.services import SearchResponse, WebSearchClient
from qualia_cli.utils import console, get_http_client
from qualia_core.config import settings


async def run_search(query: str, num: int, start: int, lr: str, safe: str) -> SearchResponse:
    async with get_http_client() as http:
        client = WebSearchClient(
            http,
            BoundedCache("search", settings.search_cache_size, ttl=settings.search_cache_ttl),
            api_key=settings.search_api_key,
            engine_id=settings.search_engine_id,
            url=settings.search_url,
        )
        return await client.search(query, num=num, start=start, lr=lr, safe=safe)


def search(
    query: str = typer.Argument(..., help="Search terms"),
    num: int = typer.Option(10, "--num", "-n", min=1, max=10, help="Number of results"),
    start: int = typer.Option(1, "--start", min=1, help="Index of the first result"),
    lr: str = typer.Option("", "--lr", help="Restrict results to a language, e.g. lang_en"),
    safe: str = typer.Option("off", "--safe", help="Safe search level (off or active)"),
) -> None:
    """Search the web with Google Custom Search."""
    try:
        response = asyncio.run(run_search(query, num, start, lr, safe))
    except ChatError as e:
        console.print(f"[red]{escape(e.user_message)}[/red]")
        raise typer.Exit(1)

    if response.fallback:
        console.print("[yellow]Search is not configured; showing a placeholder result.[/yellow]")

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Link")
    for index, result in enumerate(response.results, start=start):
        table.add_row(str(index), escape(result.title), result.link)
    console.print(table)
    console.print(
        f"[dim]About {response.total_results} results ({response.search_time:.2f}s)"
        f"{' - more available' if response.has_next_page else ''}[/dim]"
    )
