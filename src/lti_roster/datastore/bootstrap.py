"""
Store bootstrapping.

Runs once at process start: chooses a backend, creates the schema where
needed, and seeds one registration and one deployment. Every error raised
here is fatal to startup.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

from lti_roster.errors import AlreadyExistsError, ConfigurationError, StoreIOError

from .base import RegistrationStore
from .memory import InMemoryStore
from .models import Deployment, Registration
from .sql import SQLStore

logger = logging.getLogger(__name__)

DATASTORES = ("memory", "sql")


def seed_store(
    store: RegistrationStore, registration: Registration, deployment: Deployment
) -> None:
    """Add a registration and its deployment to *store*."""
    if deployment.issuer != registration.issuer:
        raise ConfigurationError(
            f"deployment issuer {deployment.issuer!r} does not match "
            f"registration issuer {registration.issuer!r}"
        )
    store.store_registration(registration)
    store.store_deployment(registration.issuer, deployment.deployment_id)
    logger.info(
        "Seeded registration issuer=%s client_id=%s deployment_id=%s",
        registration.issuer,
        registration.client_id,
        deployment.deployment_id,
    )


def bootstrap_memory_store(registration: Registration, deployment: Deployment) -> InMemoryStore:
    """Create a fresh in-memory store and seed it."""
    store = InMemoryStore()
    seed_store(store, registration, deployment)
    return store


def must_be_empty(database_url: str) -> None:
    """Raise AlreadyExistsError if *database_url* already holds data.

    A file-backed SQLite database is refused as soon as the file exists;
    other databases are refused if they contain any table. Nothing is
    created or written.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:" and Path(url.database).exists():
            raise AlreadyExistsError(f"database file already exists ({url.database})")
        return

    engine = create_engine(url)
    try:
        tables = inspect(engine).get_table_names()
    except SQLAlchemyError as e:
        raise StoreIOError(f"cannot inspect database: {e}") from e
    finally:
        engine.dispose()

    if tables:
        raise AlreadyExistsError(f"database already contains tables: {', '.join(sorted(tables))}")


def bootstrap_sql_store(
    database_url: str, registration: Registration, deployment: Deployment
) -> SQLStore:
    """Create a relational store in an empty database and seed it."""
    must_be_empty(database_url)
    store = SQLStore.from_url(database_url)
    logger.info("Created registration tables in %s", make_url(database_url).render_as_string())
    seed_store(store, registration, deployment)
    return store


def build_store(
    datastore: str,
    registration: Registration,
    deployment: Deployment,
    database_url: str = "",
) -> RegistrationStore:
    """Choose, create and seed the store named by *datastore*."""
    if datastore == "memory":
        return bootstrap_memory_store(registration, deployment)
    if datastore == "sql":
        if not database_url:
            raise ConfigurationError("a database URL is required for the sql datastore")
        return bootstrap_sql_store(database_url, registration, deployment)
    raise ConfigurationError(
        f"unsupported datastore ({datastore}); expected one of {', '.join(DATASTORES)}"
    )
