"""
Exception hierarchy for the LTI roster tool.

Startup errors (configuration, store conflicts during bootstrap) terminate
the process. Everything else is request-scoped and is converted into an
opaque HTTP error at the launch handler.
"""

from __future__ import annotations

# ============================================================================
# Base
# ============================================================================


class LtiRosterError(Exception):
    """Base exception for the tool."""


class ConfigurationError(LtiRosterError):
    """Seed data, keys or settings are missing or malformed."""


# ============================================================================
# Store
# ============================================================================


class StoreError(LtiRosterError):
    """Base exception for registration/deployment store operations."""


class DuplicateKeyError(StoreError):
    """A record with the same key already exists."""


class AlreadyExistsError(StoreError):
    """The backing storage location already holds data."""


class NotFoundError(StoreError):
    """A requested record does not exist."""


class RegistrationNotFoundError(NotFoundError):
    """No registration for the issuer."""


class DeploymentNotFoundError(NotFoundError):
    """No deployment for the (issuer, deployment id) pair."""


class StoreIntegrityError(StoreError):
    """The backing storage violates a uniqueness invariant."""


class StoreIOError(StoreError):
    """The backing storage could not be read or written."""


# ============================================================================
# Connector
# ============================================================================


class ConnectorError(LtiRosterError):
    """Base exception for connector construction and state."""


class LaunchNotFoundError(ConnectorError):
    """The launch id is unknown or its cached launch data has expired."""


class InvalidKeyError(ConnectorError):
    """The signing key is missing, malformed or of an unsupported type."""


class InvalidStateError(ConnectorError):
    """The connector cannot perform the operation in its current state."""


# ============================================================================
# Platform services
# ============================================================================


class ServiceError(LtiRosterError):
    """Base exception for platform service calls."""

    retryable = True


class ServiceNotAvailableError(ServiceError):
    """The platform did not advertise the service for this launch."""

    retryable = False


class AuthFailureError(ServiceError):
    """The platform rejected the tool's credentials or access token."""


class UpstreamError(ServiceError):
    """The platform answered with a non-2xx status, or could not be reached."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ParseError(ServiceError):
    """The platform's response body could not be understood."""
