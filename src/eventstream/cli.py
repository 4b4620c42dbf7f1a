"""eventstream command line interface."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

app = typer.Typer(help="Server-Sent Events session toolkit", no_args_is_help=True)


@app.callback()
def main(
    log_level: str = typer.Option("INFO", help="Logging level (DEBUG, INFO, WARNING, ...)"),
) -> None:
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("serve")
def serve_demo(
    host: str | None = typer.Option(None, help="Bind host (defaults to config)"),
    port: int | None = typer.Option(None, help="Bind port (defaults to config)"),
    config: Path = typer.Option(Path("configs/default.yaml"), help="App config yaml"),
) -> None:
    """Start the demo clock stream server."""
    from eventstream.app import serve
    from eventstream.config import load_settings

    settings = load_settings(config)
    serve(
        host=host if host is not None else settings.server.host,
        port=port if port is not None else settings.server.port,
        config_path=config,
    )


@app.command("version")
def version() -> None:
    """Print the package version."""
    from eventstream import __version__

    typer.echo(__version__)


if __name__ == "__main__":
    app()
