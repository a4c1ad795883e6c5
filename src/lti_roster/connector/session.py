"""
Launch sessions.

A launch session is the claim set of one completed, validated launch, as
cached by pylti1p3 under its launch id. Restoring one is a storage read: no
JWT is re-verified and no network call is made.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from pylti1p3.exception import LtiException
from pylti1p3.launch_data_storage.base import LaunchDataStorage
from pylti1p3.session import SessionService
from redis.exceptions import RedisError

from lti_roster.errors import LaunchNotFoundError
from lti_roster.lti.adapter import FastAPIRequest

logger = logging.getLogger(__name__)

DEPLOYMENT_ID_CLAIM = "https://purl.imsglobal.org/spec/lti/claim/deployment_id"
CONTEXT_CLAIM = "https://purl.imsglobal.org/spec/lti/claim/context"
NRPS_CLAIM = "https://purl.imsglobal.org/spec/lti-nrps/claim/namesroleservice"


@dataclass(frozen=True)
class LaunchSession:
    """Claims of a completed launch, plus the identifiers derived from them."""

    launch_id: str
    issuer: str
    client_id: str
    deployment_id: str
    claims: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, launch_id: str, claims: dict[str, Any]) -> LaunchSession:
        """Build a session from cached launch claims.

        The client id is ``azp`` when present, else the (first) audience.
        """
        audience = claims.get("aud")
        if isinstance(audience, list):
            audience = audience[0] if audience else None
        client_id = claims.get("azp") or audience

        issuer = claims.get("iss")
        deployment_id = claims.get(DEPLOYMENT_ID_CLAIM)
        if not issuer or not client_id or not deployment_id:
            raise LaunchNotFoundError(f"launch {launch_id} has incomplete launch data")

        return cls(
            launch_id=launch_id,
            issuer=issuer,
            client_id=client_id,
            deployment_id=deployment_id,
            claims=claims,
        )

    @property
    def nrps_claim(self) -> dict[str, Any]:
        return self.claims.get(NRPS_CLAIM) or {}

    @property
    def context(self) -> dict[str, Any]:
        return self.claims.get(CONTEXT_CLAIM) or {}


class LaunchSessionProvider(Protocol):
    """Anything that can resolve a launch id to its launch session."""

    def get(self, launch_id: str) -> LaunchSession:
        ...


class CachedLaunchSessions:
    """Restores launch sessions from pylti1p3's launch data storage."""

    def __init__(self, launch_data_storage: LaunchDataStorage):
        self._storage = launch_data_storage

    def get(self, launch_id: str) -> LaunchSession:
        if not launch_id:
            raise LaunchNotFoundError("no launch id")

        # Same keys MessageLaunch.save_launch_data writes under
        session_service = SessionService(FastAPIRequest.detached())
        try:
            session_service.set_data_storage(self._storage)
            claims = session_service.get_launch_data(launch_id)
        except (LtiException, RedisError) as e:
            raise LaunchNotFoundError(f"launch {launch_id} could not be restored: {e}") from e

        if not claims:
            logger.info("Launch %s not found in launch data storage (expired?)", launch_id)
            raise LaunchNotFoundError(f"launch {launch_id} not found")

        return LaunchSession.from_claims(launch_id, claims)
