"""Qualia CLI - Main entry point."""

import logging

import typer

from qualia_cli import chat, queue, search, speak
from qualia_core.config import settings

app = typer.Typer(
    help="Qualia - Business assistant in your terminal",
    no_args_is_help=True,
)

app.add_typer(chat.app, name="chat", help="Chat with the assistant")
app.add_typer(queue.app, name="queue", help="Inspect and deliver offline messages")
app.command(name="search", help="Search the web")(search.search)
app.command(name="speak", help="Convert text to speech")(speak.speak)


@app.callback()
def configure(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs")) -> None:
    logging.basicConfig(level="DEBUG" if verbose else settings.log_level, format=settings.log_format)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
