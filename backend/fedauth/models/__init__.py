"""SQLAlchemy models package."""

from fedauth.models.account import Account, AccountStatus, AccountVerificationKey
from fedauth.models.identity import AccountIdentity

__all__ = [
    "Account",
    "AccountStatus",
    "AccountVerificationKey",
    "AccountIdentity",
]
