"""
Store protocol shared by the registration/deployment backends.

Backends satisfy the protocol structurally; they do not inherit from it.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import Deployment, Registration


@runtime_checkable
class RegistrationStore(Protocol):
    """Persistence for registrations and deployments."""

    def store_registration(self, registration: Registration) -> None:
        """Add a registration. Raises DuplicateKeyError if the issuer exists."""
        ...

    def fetch_registration(self, issuer: str) -> Registration:
        """Return the registration for *issuer* or raise RegistrationNotFoundError."""
        ...

    def store_deployment(self, issuer: str, deployment_id: str) -> None:
        """Add a deployment. Raises DuplicateKeyError if the pair exists."""
        ...

    def fetch_deployment(self, issuer: str, deployment_id: str) -> Deployment:
        """Return the deployment or raise DeploymentNotFoundError."""
        ...

    def close(self) -> None:
        """Release any resources held by the store."""
        ...
