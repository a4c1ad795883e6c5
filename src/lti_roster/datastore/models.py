"""
Registration and deployment models.

A registration is the tool's trust anchor for one platform: the platform's
OAuth/OIDC endpoints and the client id the platform issued to the tool. A
deployment scopes a registration to one installation on that platform.
"""

from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Integer, MetaData, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# ============================================================================
# Pydantic Models (for validation and exchange)
# ============================================================================


def _require_absolute_uri(value: str) -> str:
    parsed = urlparse(value)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"not an absolute URI: {value!r}")
    return value


class Registration(BaseModel):
    """A platform registration, keyed by issuer."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    issuer: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    auth_token_uri: str
    auth_login_uri: str
    keyset_uri: str
    target_link_uri: str

    @field_validator("auth_token_uri", "auth_login_uri", "keyset_uri", "target_link_uri")
    @classmethod
    def _absolute(cls, value: str) -> str:
        return _require_absolute_uri(value)


class Deployment(BaseModel):
    """A deployment of the tool within a platform registration."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    issuer: str = Field(..., min_length=1)
    deployment_id: str = Field(..., min_length=1)


# ============================================================================
# SQLAlchemy Models (for the relational store)
# ============================================================================

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """Base class for the store's tables."""

    metadata = metadata

    __tablename__: str

    def to_dict(self) -> dict[str, Any]:
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}


class RegistrationModel(Base):
    """SQLAlchemy model for the registration table."""

    __tablename__ = "registration"

    # Surrogate key; issuer uniqueness is the UNIQUE constraint below
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    issuer: Mapped[str] = mapped_column(String, nullable=False)
    client_id: Mapped[str] = mapped_column(String, nullable=False)
    auth_token_uri: Mapped[str] = mapped_column(String, nullable=False)
    auth_login_uri: Mapped[str] = mapped_column(String, nullable=False)
    keyset_uri: Mapped[str] = mapped_column(String, nullable=False)
    target_link_uri: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (UniqueConstraint("issuer", name="uq_registration_issuer"),)


class DeploymentModel(Base):
    """SQLAlchemy model for the deployment table."""

    __tablename__ = "deployment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    issuer: Mapped[str] = mapped_column(String, nullable=False)
    deployment_id: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("issuer", "deployment_id", name="uq_deployment_issuer_deployment_id"),
    )
