"""AccountIdentity model: links local accounts to external provider identities."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from fedauth.core.database import Base
from fedauth.utils.datetime_utils import utc_now_lambda


class AccountIdentity(Base):
    """One external identity (provider + uid) and the account it belongs to.

    An account can be linked to several providers, but a (provider, uid) pair
    exists at most once system-wide, e.g.::

        provider="github",    uid="583231"
        provider="developer", uid="janko@hey.com"

    ``info``, ``credentials`` and ``extra`` hold the serialized provider data
    from the most recent callback.
    """

    __tablename__ = "account_identities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    provider = Column(String(100), nullable=False)
    uid = Column(String(255), nullable=False)
    info = Column(Text, nullable=True)
    credentials = Column(Text, nullable=True)
    extra = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)
    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)

    # Relationships
    account = relationship("Account", back_populates="identities")

    __table_args__ = (
        UniqueConstraint("provider", "uid", name="uq_account_identities_provider_uid"),
    )

    def __repr__(self) -> str:
        return f"<AccountIdentity provider={self.provider!r} uid={self.uid!r}>"
