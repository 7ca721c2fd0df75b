"""CRUD operations for accounts.

Methods flush but never commit; the caller owns the transaction.
"""

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from fedauth.models.account import Account, AccountStatus, AccountVerificationKey


class AccountCRUD:
    """CRUD operations for Account model."""

    @staticmethod
    async def get_by_id(db: AsyncSession, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        result = await db.execute(select(Account).where(Account.id == account_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_login(db: AsyncSession, login: Optional[str]) -> Optional[Account]:
        """Get a non-closed account by login (email)."""
        if not login:
            return None
        result = await db.execute(
            select(Account).where(
                Account.email == login,
                Account.status != AccountStatus.CLOSED,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def insert(db: AsyncSession, account: Account) -> Account:
        """Insert a new account row and populate its ID."""
        db.add(account)
        await db.flush()
        return account

    @staticmethod
    async def mark_verified(db: AsyncSession, account: Account) -> None:
        """Open an unverified account and drop its pending verification keys."""
        account.status = AccountStatus.OPEN
        await db.execute(
            delete(AccountVerificationKey).where(AccountVerificationKey.account_id == account.id)
        )
        await db.flush()

    @staticmethod
    async def mark_closed(db: AsyncSession, account: Account) -> None:
        """Close an account."""
        account.status = AccountStatus.CLOSED
        await db.flush()
