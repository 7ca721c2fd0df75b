"""External identity management API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from fedauth.core.database import get_db
from fedauth.crud.identity import deserialize_identity_data
from fedauth.dependencies import (
    get_current_account,
    get_identity_service,
    get_omniauth,
    get_session_handle,
)
from fedauth.models.account import Account
from fedauth.schemas.identity import (
    AuthMethodsResponse,
    CloseAccountResponse,
    DisconnectRequest,
    DisconnectResponse,
    IdentityListResponse,
    IdentityResponse,
    ProviderLinks,
)
from fedauth.services.identity_service import IdentityService
from fedauth.services.omniauth.config import OmniauthConfig
from fedauth.services.omniauth.hooks import csrf_token
from fedauth.services.omniauth.login import REMOVED_NOTICE
from fedauth.services.omniauth.session import SessionHandle

router = APIRouter()


@router.get("", response_model=IdentityListResponse)
async def list_identities(
    account: Account = Depends(get_current_account),
    handle: SessionHandle = Depends(get_session_handle),
    db: AsyncSession = Depends(get_db),
    service: IdentityService = Depends(get_identity_service),
    config: OmniauthConfig = Depends(get_omniauth),
):
    """List connected identities and the providers that can be connected."""
    identities = await service.list_identities(db, account)
    connected = {identity.provider for identity in identities}
    providers = [
        ProviderLinks(
            name=registration.name,
            request_path=registration.request_path,
            callback_path=registration.callback_path,
            connected=registration.name in connected,
        )
        for registration in config.registry
    ]
    body = IdentityListResponse(
        identities=[
            IdentityResponse(
                id=identity.id,
                provider=identity.provider,
                uid=identity.uid,
                info=deserialize_identity_data(identity.info),
                created_at=identity.created_at,
                updated_at=identity.updated_at,
            )
            for identity in identities
        ],
        providers=providers,
        csrf_token=csrf_token(handle.data),
    )
    response = JSONResponse(body.model_dump(mode="json"))
    return config.session_bridge.apply(handle, response)


@router.get("/auth-methods", response_model=AuthMethodsResponse)
async def auth_methods(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    service: IdentityService = Depends(get_identity_service),
):
    """Login methods the current account can use."""
    return AuthMethodsResponse(methods=await service.possible_authentication_methods(db, account))


@router.post("/close-account", response_model=CloseAccountResponse)
async def close_account(
    account: Account = Depends(get_current_account),
    handle: SessionHandle = Depends(get_session_handle),
    db: AsyncSession = Depends(get_db),
    service: IdentityService = Depends(get_identity_service),
    config: OmniauthConfig = Depends(get_omniauth),
):
    """Close the current account and log it out."""
    account_id = account.id
    removed = await service.close_account(db, account)
    handle.data.clear()
    body = CloseAccountResponse(account_id=account_id, identities_removed=removed)
    return config.session_bridge.apply(handle, JSONResponse(body.model_dump()))


@router.delete("/{provider}", response_model=DisconnectResponse)
async def disconnect_identity(
    provider: str,
    payload: Optional[DisconnectRequest] = None,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    service: IdentityService = Depends(get_identity_service),
):
    """Disconnect a provider from the current account."""
    password = payload.password if payload else None
    removed = await service.disconnect(db, account, provider, password=password)
    return DisconnectResponse(provider=provider, removed=removed, message=REMOVED_NOTICE)
