"""Account models.

The account store belongs to the host application; fedauth reads and writes
these rows but only the columns it needs are declared here.
"""

import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from fedauth.core.database import Base
from fedauth.utils.datetime_utils import utc_now, utc_now_lambda


class AccountStatus(str, enum.Enum):
    """Account status enum."""

    UNVERIFIED = "unverified"
    OPEN = "open"
    CLOSED = "closed"


class Account(Base):
    """Local account that external identities are linked to."""

    __tablename__ = "accounts"
    __table_args__ = (
        Index(
            "ix_accounts_email",
            "email",
            unique=True,
            postgresql_where=text("status <> 'CLOSED'"),
            sqlite_where=text("status <> 'CLOSED'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    # The login; external identities are matched against it by email.
    # Unique among non-closed accounts only, so a closed login can be reused.
    email = Column(String(255), nullable=False)
    status = Column(
        SQLEnum(AccountStatus, name="account_status", native_enum=False),
        nullable=False,
        default=AccountStatus.OPEN,
    )
    # NULL for accounts that only ever logged in through an external provider
    password_hash = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)
    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)

    # Relationships
    identities = relationship(
        "AccountIdentity",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    verification_keys = relationship(
        "AccountVerificationKey",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Account {self.id} status={self.status}>"

    @property
    def is_open(self) -> bool:
        return self.status == AccountStatus.OPEN


class AccountVerificationKey(Base):
    """Pending verification key for an unverified account."""

    __tablename__ = "account_verification_keys"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # SHA-256 hex digest; the raw key is never stored
    key_hash = Column(String(64), nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    account = relationship("Account", back_populates="verification_keys")

    def __repr__(self):
        return f"<AccountVerificationKey account={self.account_id}>"

    @property
    def is_valid(self) -> bool:
        return utc_now() < self.expires_at
