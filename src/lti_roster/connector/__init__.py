"""
Launch-scoped connectors to platform services.
"""

from .connector import (
    Capability,
    Connector,
    ConnectorState,
    TimeoutSession,
    VALID_TRANSITIONS,
    new_connector,
)
from .nrps import (
    NRPS_SCOPE,
    Member,
    Membership,
    MembershipContext,
    NRPSConnector,
)
from .session import (
    NRPS_CLAIM,
    CachedLaunchSessions,
    LaunchSession,
    LaunchSessionProvider,
)

__all__ = [
    "CachedLaunchSessions",
    "Capability",
    "Connector",
    "ConnectorState",
    "LaunchSession",
    "LaunchSessionProvider",
    "Member",
    "Membership",
    "MembershipContext",
    "NRPSConnector",
    "NRPS_CLAIM",
    "NRPS_SCOPE",
    "TimeoutSession",
    "VALID_TRANSITIONS",
    "new_connector",
]
