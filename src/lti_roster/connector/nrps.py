"""
Names and Role Provisioning Services (NRPS).

Fetches the context membership (course roster) advertised by a launch.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pylti1p3.names_roles import NamesRolesProvisioningService

from lti_roster.errors import ParseError, ServiceNotAvailableError

if TYPE_CHECKING:
    from .connector import Connector

logger = logging.getLogger(__name__)

NRPS_SCOPE = "https://purl.imsglobal.org/spec/lti-nrps/scope/contextmembership.readonly"
NRPS_VERSION = "2.0"


# ============================================================================
# Membership models
# ============================================================================


class MembershipContext(BaseModel):
    """The course (context) a membership belongs to."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    label: str | None = None
    title: str | None = None


class Member(BaseModel):
    """One member of a context."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    user_id: str
    roles: list[str]
    status: str | None = None
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        full = " ".join(filter(None, [self.given_name, self.family_name]))
        return full or self.user_id

    @property
    def role_names(self) -> list[str]:
        """Roles without their vocabulary URI (``...membership#Learner`` -> ``Learner``)."""
        return [role.rsplit("#", 1)[-1] for role in self.roles]


class Membership(BaseModel):
    """A read-only roster snapshot."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    context: MembershipContext
    members: list[Member] = Field(default_factory=list)


# ============================================================================
# Service
# ============================================================================


class NRPSConnector:
    """A connector upgraded to NRPS."""

    def __init__(self, connector: Connector, claim: dict):
        self._connector = connector
        self._claim = claim
        self.memberships_url = claim["context_memberships_url"]

    @classmethod
    def from_connector(cls, connector: Connector) -> NRPSConnector:
        """Validate that the launch advertised NRPS and attach its endpoint."""
        claim = connector.launch.nrps_claim
        url = claim.get("context_memberships_url")
        if not url:
            raise ServiceNotAvailableError(
                f"launch {connector.launch.launch_id} did not advertise NRPS"
            )

        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ServiceNotAvailableError(f"NRPS memberships URL is not absolute: {url!r}")

        versions = claim.get("service_versions")
        if versions and NRPS_VERSION not in versions:
            raise ServiceNotAvailableError(
                f"platform offers NRPS versions {versions}, need {NRPS_VERSION}"
            )

        return cls(connector, claim)

    def get_membership(self) -> Membership:
        """
        Fetch the full roster, following ``next`` page links.

        Raises:
            AuthFailureError: If the platform rejects the tool's credentials
            UpstreamError: If the platform returns a non-2xx status
            ParseError: If a page is not a membership container
        """
        context: MembershipContext | None = None
        members: list[Member] = []
        visited: set[str] = set()
        url: str | None = self.memberships_url

        while url and url not in visited:
            visited.add(url)
            data = self._connector.call(
                [NRPS_SCOPE],
                lambda service, url=url: NamesRolesProvisioningService(
                    service, self._claim
                ).get_nrps_data(members_url=url),
            )
            page = self._parse_page(data["body"])
            context = context or page.context
            members.extend(page.members)
            next_url = data["next_page_url"]
            url = urljoin(url, next_url) if next_url else None

        logger.info(
            "Fetched %d member(s) for context %s (launch %s)",
            len(members),
            context.id if context else None,
            self._connector.launch.launch_id,
        )
        return Membership(context=context, members=members)

    @staticmethod
    def _parse_page(body) -> Membership:
        if body is None:
            raise ParseError("membership response is empty")
        try:
            return Membership.model_validate(body)
        except ValidationError as e:
            raise ParseError(f"membership response is malformed: {e}") from e
