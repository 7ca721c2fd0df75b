"""Management of an account's external identities."""

import logging
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from fedauth.core.security import verify_password
from fedauth.crud.account import AccountCRUD
from fedauth.crud.identity import IdentityCRUD
from fedauth.models.account import Account
from fedauth.models.identity import AccountIdentity
from fedauth.services.omniauth.config import OmniauthConfig

logger = logging.getLogger(__name__)

PASSWORD_METHOD = "password"
EMAIL_AUTH_METHOD = "email_auth"
OMNIAUTH_METHOD = "omniauth"


class IdentityService:
    """Lists, disconnects and cleans up external identities."""

    def __init__(self, config: OmniauthConfig):
        self.config = config
        self.settings = config.settings

    async def list_identities(self, db: AsyncSession, account: Account) -> list[AccountIdentity]:
        return await IdentityCRUD.list_for_account(db, account.id)

    async def connected_providers(self, db: AsyncSession, account: Account) -> list[str]:
        return await IdentityCRUD.connected_providers(db, account.id)

    def available_providers(self) -> list[str]:
        return self.config.registry.providers()

    async def possible_authentication_methods(self, db: AsyncSession, account: Account) -> list[str]:
        """
        Login methods the account can currently use.

        External login is only listed when it is the account's way in: at
        least one identity, no password, and not already covered by email
        authentication.
        """
        methods = []
        if account.password_hash:
            methods.append(PASSWORD_METHOD)
        elif self.settings.EMAIL_AUTH_ENABLED:
            methods.append(EMAIL_AUTH_METHOD)

        if (
            not account.password_hash
            and EMAIL_AUTH_METHOD not in methods
            and await IdentityCRUD.count_for_account(db, account.id) > 0
        ):
            methods.append(OMNIAUTH_METHOD)
        return methods

    async def disconnect(
        self,
        db: AsyncSession,
        account: Account,
        provider: str,
        password: Optional[str] = None,
    ) -> int:
        """
        Disconnect a provider from an account.

        Raises:
            HTTPException(401): Password required and missing or wrong
            HTTPException(404): The provider is not connected
        """
        if (
            self.settings.OMNIAUTH_REMOVAL_REQUIRES_PASSWORD
            and account.password_hash
            and not verify_password(password or "", account.password_hash)
        ):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid password",
            )

        hooks = self.config.hooks
        try:
            await hooks.run("before_remove", account, provider)
            removed = await IdentityCRUD.remove_provider(db, account.id, provider)
            if not removed:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"No {provider} identity is connected to this account",
                )
            await hooks.run("after_remove", account, provider)
            await db.commit()
        except BaseException:
            await db.rollback()
            raise

        logger.info("Disconnected %s from account %s", provider, account.id)
        return removed

    async def close_account(self, db: AsyncSession, account: Account) -> int:
        """Close an account, deleting every external identity it holds."""
        try:
            removed = await IdentityCRUD.remove_for_account(db, account.id)
            await AccountCRUD.mark_closed(db, account)
            await db.commit()
        except BaseException:
            await db.rollback()
            raise

        logger.info("Closed account %s, removed %d identities", account.id, removed)
        return removed
