"""FastAPI dependencies for session-based authentication."""

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from fedauth.core.database import get_db
from fedauth.crud.account import AccountCRUD
from fedauth.models.account import Account, AccountStatus
from fedauth.services.identity_service import IdentityService
from fedauth.services.omniauth.config import OmniauthConfig
from fedauth.services.omniauth.errors import SessionBridgeError
from fedauth.services.omniauth.session import ACCOUNT_ID_KEY, SessionHandle


def get_omniauth(request: Request) -> OmniauthConfig:
    return request.app.state.omniauth


def get_identity_service(config: OmniauthConfig = Depends(get_omniauth)) -> IdentityService:
    return IdentityService(config)


def get_session_handle(
    request: Request,
    config: OmniauthConfig = Depends(get_omniauth),
) -> SessionHandle:
    """Materialize the cookie or token session for a host route."""
    try:
        return config.session_bridge.materialize(request)
    except SessionBridgeError as exc:
        raise HTTPException(
            status_code=exc.status,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"} if exc.status == 401 else None,
        ) from exc


async def get_current_account(
    handle: SessionHandle = Depends(get_session_handle),
    db: AsyncSession = Depends(get_db),
) -> Account:
    """
    Get the logged-in account from the session.

    Raises:
        HTTPException: If nobody is logged in or the account is closed
    """
    account_id = handle.data.get(ACCOUNT_ID_KEY)
    if account_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not logged in",
        )

    account = await AccountCRUD.get_by_id(db, account_id)
    if account is None or account.status == AccountStatus.CLOSED:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate session",
        )
    return account
