"""Command-line interface for running and provisioning the book catalog."""

import typer
from rich.console import Console

from src.catalog.runtime.context import get_config

console = Console()

app = typer.Typer(
    name="book-catalog",
    help="Book catalog service commands",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.command("init-db")
def init_db_command() -> None:
    """Create the books table if it does not exist."""
    from src.catalog.runtime.init_db import init_db

    config = get_config()
    console.print(f"[blue]Provisioning tables on {config.database.backend}...[/blue]")
    try:
        init_db()
    except Exception as e:
        console.print(f"[red]Table provisioning failed: {e}[/red]")
        raise typer.Exit(1) from e
    console.print("[green]Books table checked/created successfully[/green]")


@app.command("serve")
def serve_command(
    host: str | None = typer.Option(None, help="Bind address (defaults to app.host)"),
    port: int | None = typer.Option(None, help="Bind port (defaults to app.port)"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    config = get_config()
    bind_host = host or config.app.host
    bind_port = port or config.app.port
    console.print(f"[green]Serving book catalog on http://{bind_host}:{bind_port}[/green]")
    uvicorn.run(
        "src.catalog.api.http.app:app",
        host=bind_host,
        port=bind_port,
        reload=reload,
        access_log=False,  # Request logging happens in middleware
    )


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
