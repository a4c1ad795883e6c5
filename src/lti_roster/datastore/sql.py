"""
Relational registration/deployment store (SQLAlchemy).

The schema is created on construction with existence checks, so pointing a
store at an already initialized database is harmless. Concurrency control is
left to the database; no in-process lock is held across a round trip.

Uses the synchronous engine: pylti1p3 queries its tool configuration
synchronously during login and launch validation.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, create_engine, select
from sqlalchemy.exc import IntegrityError, MultipleResultsFound, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from lti_roster.errors import (
    DeploymentNotFoundError,
    DuplicateKeyError,
    RegistrationNotFoundError,
    StoreIntegrityError,
    StoreIOError,
)

from .models import Base, Deployment, DeploymentModel, Registration, RegistrationModel

logger = logging.getLogger(__name__)


class SQLStore:
    """Store backed by the ``registration`` and ``deployment`` tables."""

    def __init__(self, engine: Engine, create_schema: bool = True):
        self._engine = engine
        self._session_factory: sessionmaker[Session] = sessionmaker(
            engine,
            expire_on_commit=False,
        )
        if create_schema:
            self.create_schema()

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SQLStore":
        """Create a store from a database URL (e.g. ``sqlite:///test.db``)."""
        return cls(create_engine(database_url, echo=echo, pool_pre_ping=True))

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        """Create both tables if they do not exist yet."""
        try:
            Base.metadata.create_all(self._engine, checkfirst=True)
        except SQLAlchemyError as e:
            raise StoreIOError(f"cannot create tables: {e}") from e

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------

    def store_registration(self, registration: Registration) -> None:
        row = RegistrationModel(**registration.model_dump())
        try:
            with self._session_factory.begin() as session:
                session.add(row)
        except IntegrityError as e:
            raise DuplicateKeyError(
                f"registration already exists for issuer {registration.issuer!r}"
            ) from e
        except SQLAlchemyError as e:
            raise StoreIOError(f"cannot store registration: {e}") from e
        logger.debug("Stored registration for issuer=%s", registration.issuer)

    def fetch_registration(self, issuer: str) -> Registration:
        try:
            with self._session_factory() as session:
                result = session.execute(
                    select(RegistrationModel).where(RegistrationModel.issuer == issuer)
                )
                row = result.scalar_one_or_none()
        except MultipleResultsFound as e:
            raise StoreIntegrityError(f"multiple registrations for issuer {issuer!r}") from e
        except SQLAlchemyError as e:
            raise StoreIOError(f"cannot fetch registration: {e}") from e

        if row is None:
            raise RegistrationNotFoundError(f"no registration for issuer {issuer!r}")
        return Registration.model_validate(row)

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------

    def store_deployment(self, issuer: str, deployment_id: str) -> None:
        deployment = Deployment(issuer=issuer, deployment_id=deployment_id)
        try:
            with self._session_factory.begin() as session:
                session.add(DeploymentModel(**deployment.model_dump()))
        except IntegrityError as e:
            raise DuplicateKeyError(
                f"deployment {deployment_id!r} already exists for issuer {issuer!r}"
            ) from e
        except SQLAlchemyError as e:
            raise StoreIOError(f"cannot store deployment: {e}") from e
        logger.debug("Stored deployment issuer=%s deployment_id=%s", issuer, deployment_id)

    def fetch_deployment(self, issuer: str, deployment_id: str) -> Deployment:
        try:
            with self._session_factory() as session:
                result = session.execute(
                    select(DeploymentModel).where(
                        DeploymentModel.issuer == issuer,
                        DeploymentModel.deployment_id == deployment_id,
                    )
                )
                row = result.scalar_one_or_none()
        except MultipleResultsFound as e:
            raise StoreIntegrityError(
                f"multiple deployments {deployment_id!r} for issuer {issuer!r}"
            ) from e
        except SQLAlchemyError as e:
            raise StoreIOError(f"cannot fetch deployment: {e}") from e

        if row is None:
            raise DeploymentNotFoundError(f"no deployment {deployment_id!r} for issuer {issuer!r}")
        return Deployment.model_validate(row)

    def close(self) -> None:
        self._engine.dispose()
