"""CRUD operations for external identities.

Methods flush but never commit; the caller owns the transaction.
"""

import json
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fedauth.models.identity import AccountIdentity

def serialize_identity_data(data: Optional[dict[str, Any]]) -> str:
    """Serialize provider data for storage in a text column."""
    return json.dumps(data or {}, default=str, sort_keys=True)


def deserialize_identity_data(raw: Optional[str]) -> dict[str, Any]:
    """Inverse of serialize_identity_data; tolerates NULL columns."""
    if not raw:
        return {}
    return json.loads(raw)


class IdentityCRUD:
    """CRUD operations for AccountIdentity model."""

    @staticmethod
    async def get_by_provider_uid(
        db: AsyncSession, provider: str, uid: str
    ) -> Optional[AccountIdentity]:
        """Get the identity for a (provider, uid) pair."""
        result = await db.execute(
            select(AccountIdentity).where(
                AccountIdentity.provider == provider,
                AccountIdentity.uid == uid,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_account(db: AsyncSession, account_id: int) -> list[AccountIdentity]:
        """All identities linked to an account, oldest first."""
        result = await db.execute(
            select(AccountIdentity)
            .where(AccountIdentity.account_id == account_id)
            .order_by(AccountIdentity.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def connected_providers(db: AsyncSession, account_id: int) -> list[str]:
        """Provider names linked to an account."""
        result = await db.execute(
            select(AccountIdentity.provider)
            .where(AccountIdentity.account_id == account_id)
            .order_by(AccountIdentity.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def count_for_account(db: AsyncSession, account_id: int) -> int:
        result = await db.execute(
            select(func.count(AccountIdentity.id)).where(AccountIdentity.account_id == account_id)
        )
        return result.scalar_one()

    @staticmethod
    async def insert(
        db: AsyncSession,
        account_id: Optional[int],
        provider: str,
        uid: str,
        data: dict[str, str],
    ) -> AccountIdentity:
        """Insert an identity row.

        Raises:
            IntegrityError: If the (provider, uid) pair already exists
        """
        identity = AccountIdentity(account_id=account_id, provider=provider, uid=uid, **data)
        db.add(identity)
        await db.flush()
        return identity

    @staticmethod
    async def update(db: AsyncSession, identity: AccountIdentity, changes: dict[str, Any]) -> bool:
        """Apply changed columns to an identity.

        Returns False (and issues no UPDATE) when nothing differs from the
        stored values.
        """
        changes = {
            column: value
            for column, value in changes.items()
            if getattr(identity, column) != value
        }
        if not changes:
            return False
        for column, value in changes.items():
            setattr(identity, column, value)
        await db.flush()
        return True

    @staticmethod
    async def remove_for_account(db: AsyncSession, account_id: int) -> int:
        """Delete every identity of an account. Returns the number removed."""
        result = await db.execute(
            delete(AccountIdentity).where(AccountIdentity.account_id == account_id)
        )
        return result.rowcount or 0

    @staticmethod
    async def remove_provider(db: AsyncSession, account_id: int, provider: str) -> int:
        """Disconnect one provider from an account. Returns the number removed."""
        result = await db.execute(
            delete(AccountIdentity).where(
                AccountIdentity.account_id == account_id,
                AccountIdentity.provider == provider,
            )
        )
        return result.rowcount or 0
