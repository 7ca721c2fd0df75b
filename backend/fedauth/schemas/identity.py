"""External identity Pydantic schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class IdentityResponse(BaseModel):
    """A connected external identity. Credentials are never returned."""

    id: int
    provider: str
    uid: str
    info: dict[str, Any]
    created_at: datetime
    updated_at: datetime


class ProviderLinks(BaseModel):
    """Routes for one registered provider."""

    name: str
    request_path: str
    callback_path: str
    connected: bool


class IdentityListResponse(BaseModel):
    identities: list[IdentityResponse]
    providers: list[ProviderLinks]
    csrf_token: str


class DisconnectRequest(BaseModel):
    password: Optional[str] = None


class DisconnectResponse(BaseModel):
    provider: str
    removed: int
    message: str


class AuthMethodsResponse(BaseModel):
    methods: list[str]


class CloseAccountResponse(BaseModel):
    account_id: int
    identities_removed: int
