"""Console output helpers for the dotconf CLI."""

from rich.console import Console
from rich.markup import escape

console = Console(highlight=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, soft_wrap=True)


def plain(message: str) -> None:
    console.print(escape(message))


def header(message: str) -> None:
    console.print(f"[bold]{escape(message)}[/bold]")


def success(message: str) -> None:
    console.print(f"[green]✓[/green] {escape(message)}")


def info(message: str) -> None:
    console.print(f"[cyan]→[/cyan] {escape(message)}")


def warning(message: str) -> None:
    console.print(f"[yellow]⚠[/yellow] {escape(message)}")


def muted(message: str) -> None:
    console.print(f"[dim]{escape(message)}[/dim]")


def error(message: str) -> None:
    err_console.print(f"[red]✗[/red] {escape(message)}")
