"""
Per-process composition of the tool.

``ToolContext`` holds everything a request needs that outlives the request:
the registration store, pylti1p3's launch data storage, and the signing key.
It is built once at startup and handed to the app explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial

import requests
from pylti1p3.launch_data_storage.base import LaunchDataStorage

from lti_roster.connector import CachedLaunchSessions, LaunchSessionProvider, TimeoutSession
from lti_roster.datastore import RegistrationStore, build_store
from lti_roster.errors import ConfigurationError, InvalidKeyError
from lti_roster.lti.keys import load_signing_key
from lti_roster.lti.storage import build_launch_data_storage
from lti_roster.lti.tool_config import StoreToolConf
from lti_roster.settings import (
    Settings,
    load_deployment,
    load_private_key,
    load_registration,
)

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Long-lived collaborators shared by all requests."""

    store: RegistrationStore
    launch_data_storage: LaunchDataStorage
    private_key: str
    key_id: str = "defaultKey"
    http_timeout: float = 10.0
    # A fresh HTTP session per request; closed when the request is done
    http_factory: Callable[[], requests.Session] | None = None
    sessions: LaunchSessionProvider | None = None
    tool_config: StoreToolConf = field(init=False)

    def __post_init__(self) -> None:
        self.tool_config = StoreToolConf(self.store, private_key=self.private_key, key_id=self.key_id)
        if self.http_factory is None:
            self.http_factory = partial(TimeoutSession, self.http_timeout)
        if self.sessions is None:
            self.sessions = CachedLaunchSessions(self.launch_data_storage)

    def close(self) -> None:
        self.store.close()


def build_context(settings: Settings, datastore: str | None = None) -> ToolContext:
    """Bootstrap the store and assemble the context from the environment.

    Raises ConfigurationError, DuplicateKeyError or AlreadyExistsError; all
    are fatal to startup.
    """
    registration = load_registration()
    deployment = load_deployment(registration.issuer)
    private_key = load_private_key()
    try:
        load_signing_key(private_key)
    except InvalidKeyError as e:
        raise ConfigurationError(f"KEY_PRIVATE is not usable: {e}") from e

    store = build_store(
        datastore or settings.datastore,
        registration,
        deployment,
        database_url=settings.database_url,
    )
    logger.info("Registration store ready (%s)", datastore or settings.datastore)

    return ToolContext(
        store=store,
        launch_data_storage=build_launch_data_storage(settings.redis_url),
        private_key=private_key,
        key_id=settings.key_id,
        http_timeout=settings.http_timeout,
    )
