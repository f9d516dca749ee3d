"""Pydantic models for wicked portal API resources.

The portal API speaks camelCase JSON; fields are aliased so the models can be
populated from, and dumped back to, the wire format.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ClientType(str, Enum):
    """Client types the gateway knows. Settings pass any string through."""

    CONFIDENTIAL = "confidential"
    PUBLIC_SPA = "public_spa"
    PUBLIC_NATIVE = "public_native"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Application(_WireModel):
    """A registered API consumer."""

    id: str
    name: str = ""
    # Plain string so unknown server-side client types still load
    client_type: str | None = Field(default=None, alias="clientType")
    redirect_uris: list[str] = Field(default_factory=list, alias="redirectUris")


class ApplicationPatch(_WireModel):
    """Full replacement of the mutable application fields."""

    id: str
    client_type: str = Field(alias="clientType")
    redirect_uris: list[str] = Field(alias="redirectUris")


class SubscriptionRequest(_WireModel):
    application: str
    api: str
    plan: str


class Subscription(_WireModel):
    """Binding of an application to an API under a plan.

    Carries either an OAuth2 client pair or an API key, never both.
    """

    application: str
    api: str
    plan: str | None = None
    client_id: str | None = Field(default=None, alias="clientId")
    client_secret: str | None = Field(default=None, alias="clientSecret")
    apikey: str | None = None
