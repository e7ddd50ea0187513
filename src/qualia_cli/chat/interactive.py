"""Interactive chat mode for Qualia CLI."""

import asyncio

import typer
from rich.markup import escape

from qualia_chat.errors import ChatError
from qualia_chat.schemas import Message
from qualia_chat.session import ConversationSession
from qualia_cli.utils import build_gateway, build_session, console, get_http_client

HELP = "[dim]Commands: /more older messages, /reset new chat, /force-reset start over, /queue pending, /exit quit[/dim]"

ROLE_STYLES = {
    "user": ("You", "bold blue"),
    "assistant": ("Assistant", "bold magenta"),
}


def print_message(message: Message) -> None:
    if message.role not in ROLE_STYLES:
        return
    label, style = ROLE_STYLES[message.role]
    suffix = ""
    if message.queued:
        suffix = " [yellow](queued)[/yellow]"
    elif message.failed:
        suffix = " [red](not sent)[/red]"
    console.print(f"[{style}]{label}:[/{style}] {escape(message.content)}{suffix}")


def print_status(session: ConversationSession) -> None:
    if session.error:
        console.print(f"[red]{escape(session.error)}[/red]")
    if session.notice:
        console.print(f"[yellow]{escape(session.notice)}[/yellow]")


def print_history(session: ConversationSession) -> None:
    for message in session.messages:
        print_message(message)
    if session.has_more_messages:
        console.print("[dim]Older messages available, type /more to load them.[/dim]")


async def send(session: ConversationSession, text: str, seen: set[str]) -> None:
    with console.status("Thinking..."):
        await session.send_message(text)
    for message in session.messages:
        if message.id not in seen and (message.role == "assistant" or message.queued or message.failed):
            print_message(message)
    seen.update(m.id for m in session.messages)
    print_status(session)


async def load_more(session: ConversationSession, seen: set[str]) -> None:
    if not session.has_more_messages:
        console.print("[dim]No older messages.[/dim]")
        return
    before = len(session.messages)
    await session.load_more_messages()
    older = session.messages[: len(session.messages) - before]
    if older:
        console.print("[dim]--- older messages ---[/dim]")
        for message in older:
            print_message(message)
        console.print("[dim]--- end of older messages ---[/dim]")
    seen.update(m.id for m in older)
    print_status(session)


async def show_queue(session: ConversationSession) -> None:
    items = await session.queue.items()
    if not items:
        console.print("[dim]No queued messages.[/dim]")
        return
    for item in items:
        console.print(f"[yellow]{item.timestamp:%Y-%m-%d %H:%M}[/yellow] {escape(item.content)}")


async def run_chat() -> None:
    try:
        gateway = build_gateway()
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)
    http = get_http_client()
    session = build_session(gateway, http)
    try:
        await session.monitor.check()
        session.monitor.start()
        try:
            await session.initialize()
        except ChatError as e:
            console.print(f"[red]{escape(e.user_message)}[/red]")
            raise typer.Exit(1)

        console.print("[bold green]Qualia Chat[/bold green]")
        console.print(HELP + "\n")
        print_history(session)
        print_status(session)
        seen = {m.id for m in session.messages}

        while True:
            try:
                user_input = await asyncio.to_thread(console.input, "[bold blue]You:[/bold blue] ")
            except (EOFError, KeyboardInterrupt):
                console.print("\n[dim]Ending chat session...[/dim]")
                break

            command = user_input.strip().lower()
            if command in ("/exit", "/quit", "exit", "quit"):
                console.print("[dim]Ending chat session...[/dim]")
                break
            if not command:
                continue
            if command == "/more":
                await load_more(session, seen)
            elif command in ("/reset", "/force-reset"):
                if command == "/reset":
                    await session.reset_thread()
                else:
                    await session.force_reset()
                if not session.error:
                    console.print("[dim]Started a new conversation.[/dim]")
                print_history(session)
                print_status(session)
                seen = {m.id for m in session.messages}
            elif command == "/queue":
                await show_queue(session)
            elif command.startswith("/"):
                console.print(HELP)
            else:
                await send(session, user_input, seen)
    finally:
        await session.close()
        await session.monitor.stop()
        await gateway.aclose()
        await http.aclose()


def interactive(ctx: typer.Context) -> None:
    """Start an interactive chat session with the assistant."""
    if ctx.invoked_subcommand is not None:
        return
    asyncio.run(run_chat())
