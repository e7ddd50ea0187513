import typer

from .drain import drain_queue
from .list import list_queue

app = typer.Typer()

app.command(name="list")(list_queue)
app.command(name="drain")(drain_queue)
