"""Command line utilities for the weather API server."""

from __future__ import annotations

from pathlib import Path

import typer
import uvicorn
from fastapi import FastAPI

from .bootstrap import ServiceHost
from .exceptions import ConfigurationError

app = typer.Typer(help="Start the weather API server.")

_HOST_OPTION = typer.Option("127.0.0.1", "--host", help="Interface to bind")
_PORT_OPTION = typer.Option(8000, "--port", "-p", help="Port to bind")
_LOG_LEVEL_OPTION = typer.Option("info", "--log-level", help="Uvicorn log level")
_RELOAD_OPTION = typer.Option(False, "--reload", help="Enable auto-reload (development only)")
_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to the service configuration file (YAML). Environment variables override it.",
)
_LOGGING_CONFIG_OPTION = typer.Option(
    Path("logging.yaml"),
    "--logging-config",
    help="Path to the logging configuration file (YAML, dictConfig schema)",
)


@app.callback(invoke_without_command=True)
def start(
    host: str = _HOST_OPTION,
    port: int = _PORT_OPTION,
    log_level: str = _LOG_LEVEL_OPTION,
    reload: bool = _RELOAD_OPTION,
    config: Path | None = _CONFIG_OPTION,
    logging_config: Path = _LOGGING_CONFIG_OPTION,
) -> None:
    """Start the FastAPI server using uvicorn."""

    def _serve(api: FastAPI) -> None:
        uvicorn.run(
            api,
            host=host,
            port=port,
            log_level=log_level,
            reload=reload,
        )

    service_host = ServiceHost(
        _serve,
        config_path=config.expanduser() if config is not None else None,
        logging_config=logging_config.expanduser(),
        log_level=log_level,
    )
    try:
        service_host.run()
    except ConfigurationError as e:
        typer.echo(f"Error: {e.detail}", err=True)
        raise typer.Exit(code=1) from e


def main() -> None:
    app()


if __name__ == "__main__":
    main()
