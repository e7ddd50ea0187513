import typer

from .interactive import interactive

app = typer.Typer()
app.callback(invoke_without_command=True)(interactive)
