"""
Command line entry point.

Usage:
    lti-roster serve --addr :8080 --datastore memory
    lti-roster serve --datastore sql
    lti-roster bootstrap --database-url sqlite:///test.db
"""

from __future__ import annotations

import logging

import typer

from lti_roster.errors import LtiRosterError
from lti_roster.settings import get_settings

app = typer.Typer(name="lti-roster", help="LTI 1.3 roster tool")

logger = logging.getLogger(__name__)


def parse_addr(addr: str, default_host: str = "0.0.0.0") -> tuple[str, int]:
    """Split ``host:port`` (or ``:port``) into its parts."""
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise typer.BadParameter(f"expected HOST:PORT, got {addr!r}", param_hint="--addr")
    return host or default_host, int(port)


@app.command("serve")
def serve(
    addr: str = typer.Option(None, "--addr", help="Listen address, e.g. :8080"),
    datastore: str = typer.Option(None, "--datastore", help="Datastore to use: memory or sql"),
):
    """Bootstrap the registration store and serve the tool."""
    import uvicorn

    from lti_roster.app import configure_logging, create_app
    from lti_roster.context import build_context

    settings = get_settings()
    configure_logging(settings.log_level)
    host, port = parse_addr(addr) if addr else (settings.host, settings.port)

    try:
        context = build_context(settings, datastore=datastore)
    except LtiRosterError as e:
        logger.error("startup failed: %s", e)
        raise typer.Exit(code=1) from e

    logger.info("Listening for connections on %s:%d...", host, port)
    uvicorn.run(create_app(context, settings), host=host, port=port, log_level=settings.log_level.lower())


@app.command("bootstrap")
def bootstrap(
    database_url: str = typer.Option(None, "--database-url", help="Database to create and seed"),
):
    """Create and seed a relational registration store without serving."""
    from lti_roster.app import configure_logging
    from lti_roster.datastore import bootstrap_sql_store
    from lti_roster.settings import load_deployment, load_registration

    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        registration = load_registration()
        store = bootstrap_sql_store(
            database_url or settings.database_url,
            registration,
            load_deployment(registration.issuer),
        )
    except LtiRosterError as e:
        logger.error("bootstrap failed: %s", e)
        raise typer.Exit(code=1) from e

    store.close()
    typer.echo(f"Seeded registration for {registration.issuer}")


if __name__ == "__main__":
    app()
