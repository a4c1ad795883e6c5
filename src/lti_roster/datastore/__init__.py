"""
Registration and deployment storage.

Exports the store protocol, both backends and the bootstrapper.
"""

from .base import RegistrationStore
from .bootstrap import (
    bootstrap_memory_store,
    bootstrap_sql_store,
    build_store,
    must_be_empty,
    seed_store,
)
from .memory import InMemoryStore
from .models import Deployment, DeploymentModel, Registration, RegistrationModel
from .sql import SQLStore

__all__ = [
    "Deployment",
    "DeploymentModel",
    "InMemoryStore",
    "Registration",
    "RegistrationModel",
    "RegistrationStore",
    "SQLStore",
    "bootstrap_memory_store",
    "bootstrap_sql_store",
    "build_store",
    "must_be_empty",
    "seed_store",
]
