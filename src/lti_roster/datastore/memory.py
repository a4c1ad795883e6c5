"""
In-memory registration/deployment store.

Nonpersistent; every process starts empty. A single lock serializes all
reads and writes.
"""

from __future__ import annotations

import logging
import threading

from lti_roster.errors import (
    DeploymentNotFoundError,
    DuplicateKeyError,
    RegistrationNotFoundError,
)

from .models import Deployment, Registration

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Dict-backed store guarded by one mutex."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._registrations: dict[str, Registration] = {}
        self._deployments: dict[tuple[str, str], Deployment] = {}

    def store_registration(self, registration: Registration) -> None:
        with self._lock:
            if registration.issuer in self._registrations:
                raise DuplicateKeyError(f"registration already exists for issuer {registration.issuer!r}")
            self._registrations[registration.issuer] = registration
        logger.debug("Stored registration for issuer=%s", registration.issuer)

    def fetch_registration(self, issuer: str) -> Registration:
        with self._lock:
            registration = self._registrations.get(issuer)
        if registration is None:
            raise RegistrationNotFoundError(f"no registration for issuer {issuer!r}")
        return registration

    def store_deployment(self, issuer: str, deployment_id: str) -> None:
        deployment = Deployment(issuer=issuer, deployment_id=deployment_id)
        key = (issuer, deployment_id)
        with self._lock:
            if key in self._deployments:
                raise DuplicateKeyError(
                    f"deployment {deployment_id!r} already exists for issuer {issuer!r}"
                )
            self._deployments[key] = deployment
        logger.debug("Stored deployment issuer=%s deployment_id=%s", issuer, deployment_id)

    def fetch_deployment(self, issuer: str, deployment_id: str) -> Deployment:
        with self._lock:
            deployment = self._deployments.get((issuer, deployment_id))
        if deployment is None:
            raise DeploymentNotFoundError(
                f"no deployment {deployment_id!r} for issuer {issuer!r}"
            )
        return deployment

    def close(self) -> None:
        with self._lock:
            self._registrations.clear()
            self._deployments.clear()
