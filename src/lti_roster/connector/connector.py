"""
Launch-scoped connectors.

A connector binds one completed launch to its registration, deployment and
the tool's signing key, and can be upgraded to platform services. It is
created per request and never shared.

State machine:

    CREATED -> KEYED -> SERVICE_READY -> AUTHENTICATED

Upgrading validates service availability only. The OAuth2 client-credentials
exchange and bearer-authenticated requests are pylti1p3's ServiceConnector;
the token is acquired on the first service call and cached per scope set for
the life of the connector. An authentication failure drops the cached token
and moves the connector back to SERVICE_READY so the next call re-acquires it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from enum import StrEnum
from typing import TypeVar

import requests
from pylti1p3.exception import LtiServiceException
from pylti1p3.service_connector import ServiceConnector

from lti_roster.datastore import Deployment, Registration, RegistrationStore
from lti_roster.errors import (
    AuthFailureError,
    InvalidStateError,
    ParseError,
    RegistrationNotFoundError,
    ServiceNotAvailableError,
    UpstreamError,
)
from lti_roster.lti.keys import load_signing_key
from lti_roster.lti.tool_config import to_lti_registration

from .nrps import NRPSConnector
from .session import LaunchSession, LaunchSessionProvider

logger = logging.getLogger(__name__)

DEFAULT_KEY_ID = "defaultKey"
DEFAULT_TIMEOUT = 10.0

_TOKEN_REJECTED = (400, 401, 403)
_SERVICE_REJECTED = (401, 403)

T = TypeVar("T")


class Capability(StrEnum):
    """Platform services a connector can be upgraded to."""

    NRPS = "nrps"
    AGS = "ags"


class ConnectorState(StrEnum):
    """Connector lifecycle."""

    CREATED = "created"
    KEYED = "keyed"
    SERVICE_READY = "service_ready"
    AUTHENTICATED = "authenticated"


VALID_TRANSITIONS = {
    ConnectorState.CREATED: [ConnectorState.KEYED],
    ConnectorState.KEYED: [ConnectorState.KEYED, ConnectorState.SERVICE_READY],
    ConnectorState.SERVICE_READY: [ConnectorState.AUTHENTICATED],
    ConnectorState.AUTHENTICATED: [
        ConnectorState.AUTHENTICATED,
        ConnectorState.SERVICE_READY,  # Only via an authentication failure
    ],
}


class TimeoutSession(requests.Session):
    """A requests session that applies a default timeout.

    pylti1p3 issues its token, JWKS and service requests without one.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        super().__init__()
        self.timeout = timeout

    def request(self, method, url, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return super().request(method, url, **kwargs)


class Connector:
    """Request-scoped client for platform services on behalf of one launch."""

    def __init__(
        self,
        launch: LaunchSession,
        registration: Registration,
        deployment: Deployment,
        key_id: str | None = None,
        http: requests.Session | None = None,
    ):
        self.launch = launch
        self.registration = registration
        self.deployment = deployment
        self.key_id = key_id or DEFAULT_KEY_ID
        self._owns_http = http is None
        self._http = http if http is not None else TimeoutSession()
        self._state = ConnectorState.CREATED
        self._lti_registration = to_lti_registration(registration, key_id=self.key_id)
        self._service = ServiceConnector(self._lti_registration, self._http)

    def __repr__(self) -> str:
        return f"<Connector launch={self.launch.launch_id} state={self._state}>"

    def __enter__(self) -> Connector:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP session if the connector created it."""
        if self._owns_http:
            self._http.close()

    @property
    def state(self) -> ConnectorState:
        return self._state

    @property
    def service_connector(self) -> ServiceConnector:
        """pylti1p3 service connector holding this launch's tokens."""
        return self._service

    def _transition(self, new_state: ConnectorState) -> None:
        if new_state not in VALID_TRANSITIONS[self._state]:
            raise InvalidStateError(
                f"connector for launch {self.launch.launch_id} cannot move "
                f"from {self._state} to {new_state}"
            )
        self._state = new_state

    # ------------------------------------------------------------------
    # Keys and upgrades
    # ------------------------------------------------------------------

    def set_signing_key(self, pem: str | None) -> None:
        """Attach the tool's private key. Raises InvalidKeyError."""
        load_signing_key(pem)
        self._transition(ConnectorState.KEYED)
        self._lti_registration.set_tool_private_key(pem)

    def upgrade(self, capability: Capability | str) -> NRPSConnector:
        """Upgrade to *capability*. Only NRPS is provided."""
        if capability == Capability.NRPS:
            return self.upgrade_nrps()
        raise ServiceNotAvailableError(f"capability {capability!r} is not supported by this tool")

    def upgrade_nrps(self) -> NRPSConnector:
        """Upgrade to Names and Role Provisioning Services.

        Raises ServiceNotAvailableError if the launch did not advertise NRPS.
        Performs no network I/O.
        """
        if self._state == ConnectorState.CREATED:
            raise InvalidStateError("signing key must be set before upgrading")

        service = NRPSConnector.from_connector(self)
        if self._state == ConnectorState.KEYED:
            self._transition(ConnectorState.SERVICE_READY)
        logger.debug("Upgraded connector for launch %s to NRPS", self.launch.launch_id)
        return service

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def access_token(self, scopes: Iterable[str]) -> str:
        """Return a bearer token for *scopes*, acquiring one if needed."""
        if self._state not in (ConnectorState.SERVICE_READY, ConnectorState.AUTHENTICATED):
            raise InvalidStateError(f"connector is {self._state}; upgrade before calling services")

        scopes = sorted(set(scopes))
        try:
            token = self._service.get_access_token(scopes)
        except LtiServiceException as e:
            status = e.response.status_code
            if status in _TOKEN_REJECTED:
                self.invalidate_token()
                raise AuthFailureError(f"token request rejected by platform ({status})") from e
            raise UpstreamError(f"token endpoint returned {status}", status=status) from e
        except requests.JSONDecodeError as e:
            raise ParseError(f"token response is not JSON: {e}") from e
        except requests.RequestException as e:
            raise UpstreamError(f"token request failed: {e}") from e
        except (KeyError, TypeError) as e:
            raise ParseError("token response has no access_token") from e

        if not token:
            self.invalidate_token()
            raise ParseError("token response has no access_token")
        if self._state == ConnectorState.SERVICE_READY:
            logger.info(
                "Acquired access token for client_id=%s scopes=%s",
                self.registration.client_id,
                " ".join(scopes),
            )
        self._transition(ConnectorState.AUTHENTICATED)
        return token

    def invalidate_token(self) -> None:
        """Forget cached tokens."""
        self._service = ServiceConnector(self._lti_registration, self._http)
        if self._state == ConnectorState.AUTHENTICATED:
            self._transition(ConnectorState.SERVICE_READY)

    # ------------------------------------------------------------------
    # Service calls
    # ------------------------------------------------------------------

    def call(self, scopes: Iterable[str], request: Callable[[ServiceConnector], T]) -> T:
        """
        Run *request* against the service connector with a token for *scopes*.

        Raises:
            AuthFailureError: If the platform rejects the credentials or token
            UpstreamError: On any other non-2xx status or a transport error
            ParseError: If the response body is not JSON
        """
        self.access_token(scopes)
        try:
            return request(self._service)
        except LtiServiceException as e:
            status = e.response.status_code
            if status in _SERVICE_REJECTED:
                self.invalidate_token()
                raise AuthFailureError(f"platform rejected access token ({status})") from e
            raise UpstreamError(f"{e.response.url} returned {status}", status=status) from e
        except requests.JSONDecodeError as e:
            raise ParseError(f"service response is not JSON: {e}") from e
        except requests.RequestException as e:
            raise UpstreamError(f"service request failed: {e}") from e


def new_connector(
    store: RegistrationStore,
    sessions: LaunchSessionProvider,
    launch_id: str,
    key_id: str | None = None,
    http: requests.Session | None = None,
) -> Connector:
    """
    Build a connector for a completed launch.

    Raises:
        LaunchNotFoundError: If the launch id is unknown or expired
        RegistrationNotFoundError: If the launch's issuer has no registration
        DeploymentNotFoundError: If the launch's deployment is not registered
    """
    launch = sessions.get(launch_id)
    registration = store.fetch_registration(launch.issuer)
    if registration.client_id != launch.client_id:
        raise RegistrationNotFoundError(
            f"no registration for client {launch.client_id!r} at issuer {launch.issuer!r}"
        )
    deployment = store.fetch_deployment(launch.issuer, launch.deployment_id)
    return Connector(launch, registration, deployment, key_id=key_id, http=http)
