"""
PyLTI1p3 tool configuration backed by a registration store.

PyLTI1p3 asks its tool configuration for registrations and deployments while
validating logins and launches; this class answers from the store so both
backends serve the library unchanged.
"""

from __future__ import annotations

import logging

from pylti1p3.deployment import Deployment as LtiDeployment
from pylti1p3.registration import Registration as LtiRegistration
from pylti1p3.tool_config.abstract import ToolConfAbstract

from lti_roster.datastore import Registration, RegistrationStore
from lti_roster.errors import NotFoundError

logger = logging.getLogger(__name__)


class KeyedRegistration(LtiRegistration):
    """A pylti1p3 registration that signs with the key id the tool publishes."""

    def __init__(self, key_id: str | None = None):
        self._key_id = key_id

    def get_kid(self) -> str | None:
        return self._key_id or super().get_kid()


def to_lti_registration(
    registration: Registration,
    private_key: str | None = None,
    key_id: str | None = None,
) -> KeyedRegistration:
    """Build the pylti1p3 view of a stored registration."""
    lti_registration = KeyedRegistration(key_id)
    lti_registration.set_issuer(registration.issuer)
    lti_registration.set_client_id(registration.client_id)
    lti_registration.set_auth_token_url(registration.auth_token_uri)
    lti_registration.set_auth_login_url(registration.auth_login_uri)
    lti_registration.set_key_set_url(registration.keyset_uri)
    if private_key:
        lti_registration.set_tool_private_key(private_key)
    return lti_registration


class StoreToolConf(ToolConfAbstract):
    """Resolves pylti1p3 registrations and deployments through the store.

    The store keys registrations by issuer, so every issuer has exactly one
    client.
    """

    def __init__(
        self,
        store: RegistrationStore,
        private_key: str | None = None,
        key_id: str | None = None,
    ):
        super().__init__()
        self._store = store
        self._private_key = private_key
        self._key_id = key_id

    def check_iss_has_one_client(self, iss: str) -> bool:
        return True

    def check_iss_has_many_clients(self, iss: str) -> bool:
        return False

    def _fetch(self, iss: str) -> Registration | None:
        try:
            return self._store.fetch_registration(iss)
        except NotFoundError:
            logger.info("No registration for issuer=%s", iss)
            return None

    def find_registration_by_issuer(self, iss, *args, **kwargs) -> LtiRegistration | None:
        registration = self._fetch(iss)
        if registration is None:
            return None
        return to_lti_registration(registration, self._private_key, self._key_id)

    def find_registration_by_params(self, iss, client_id, *args, **kwargs) -> LtiRegistration | None:
        registration = self._fetch(iss)
        if registration is None or registration.client_id != client_id:
            return None
        return to_lti_registration(registration, self._private_key, self._key_id)

    def find_deployment(self, iss, deployment_id) -> LtiDeployment | None:
        try:
            deployment = self._store.fetch_deployment(iss, deployment_id)
        except NotFoundError:
            logger.info("No deployment %s for issuer=%s", deployment_id, iss)
            return None
        lti_deployment = LtiDeployment()
        lti_deployment.set_deployment_id(deployment.deployment_id)
        return lti_deployment

    def find_deployment_by_params(self, iss, deployment_id, client_id, *args, **kwargs) -> LtiDeployment | None:
        if self.find_registration_by_params(iss, client_id) is None:
            return None
        return self.find_deployment(iss, deployment_id)

    def default_target_link_uri(self, iss: str) -> str | None:
        """The registration's target link URI, used when a login omits one."""
        registration = self._fetch(iss) if iss else None
        return registration.target_link_uri if registration else None
