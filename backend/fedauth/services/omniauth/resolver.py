"""Identity resolution.

Decides which local account a completed external handshake belongs to and
persists the outcome in one transaction:

    CALLBACK_COMPLETED -> IDENTITY_LOOKUP -> IDENTITY_FOUND | IDENTITY_NOT_FOUND
    IDENTITY_FOUND      -> CONNECT (logged in) | ACCOUNT_RESOLVED (owner) | EMAIL_MATCH
    IDENTITY_NOT_FOUND  -> CONNECT (logged in) | EMAIL_MATCH
    EMAIL_MATCH         -> ACCOUNT_RESOLVED | NO_ACCOUNT
    ACCOUNT_RESOLVED    -> PERSIST_AND_LOGIN (open) | VERIFICATION_CHECK
    VERIFICATION_CHECK  -> AUTO_VERIFY -> ACCOUNT_RESOLVED | REJECTED
    NO_ACCOUNT          -> CREATE_ACCOUNT -> PERSIST_AND_LOGIN | REJECTED
    CONNECT             -> PERSIST_AND_CONNECT
    PERSIST_AND_LOGIN   -> LOGGED_IN
    PERSIST_AND_CONNECT -> CONNECTED

A unique-constraint collision on the account or identity insert (a concurrent
callback for the same login, or the same provider and uid) rolls back and
replays the resolution once, which then takes the IDENTITY_FOUND or
EMAIL_MATCH branch.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fedauth.crud.account import AccountCRUD
from fedauth.crud.identity import IdentityCRUD, serialize_identity_data
from fedauth.models.account import Account, AccountStatus
from fedauth.models.identity import AccountIdentity
from fedauth.services.omniauth.errors import (
    HandshakeFailure,
    PersistenceConflict,
    ResolutionRejection,
)
from fedauth.services.omniauth.failure import (
    NO_MATCHING_ACCOUNT_MESSAGE,
    UNVERIFIED_ACCOUNT_MESSAGE,
)
from fedauth.services.omniauth.session import ACCOUNT_ID_KEY
from fedauth.utils.logging_utils import redact_email, redact_uid

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    CALLBACK_COMPLETED = "callback_completed"
    IDENTITY_LOOKUP = "identity_lookup"
    IDENTITY_FOUND = "identity_found"
    IDENTITY_NOT_FOUND = "identity_not_found"
    EMAIL_MATCH = "email_match"
    ACCOUNT_RESOLVED = "account_resolved"
    NO_ACCOUNT = "no_account"
    VERIFICATION_CHECK = "verification_check"
    AUTO_VERIFY = "auto_verify"
    CREATE_ACCOUNT = "create_account"
    CONNECT = "connect"
    PERSIST_AND_LOGIN = "persist_and_login"
    PERSIST_AND_CONNECT = "persist_and_connect"
    LOGGED_IN = "logged_in"
    CONNECTED = "connected"
    REJECTED = "rejected"


TERMINAL_STATES = frozenset({ResolutionState.LOGGED_IN, ResolutionState.CONNECTED})


class ResolutionOutcome(str, Enum):
    LOGGED_IN = "logged_in"
    CONNECTED = "connected"


@dataclass
class ResolutionResult:
    outcome: ResolutionOutcome
    account: Account
    identity: AccountIdentity
    account_created: bool = False
    account_verified: bool = False
    identity_created: bool = False
    trail: list[ResolutionState] = field(default_factory=list)


class _Resolution:
    """Working state of one resolution attempt."""

    def __init__(self, ctx, db: AsyncSession):
        self.ctx = ctx
        self.db = db
        self.settings = ctx.settings
        self.payload = ctx.payload
        self.current_account: Optional[Account] = None
        self.identity: Optional[AccountIdentity] = None
        self.account: Optional[Account] = None
        self.account_created = False
        self.account_verified = False
        self.identity_created = False
        self.trail: list[ResolutionState] = []

    async def run(self) -> ResolutionResult:
        state = ResolutionState.CALLBACK_COMPLETED
        while True:
            self.trail.append(state)
            if state in TERMINAL_STATES:
                break
            handler = getattr(self, f"_on_{state.value}")
            try:
                state = await handler()
            except ResolutionRejection as exc:
                self.trail.append(ResolutionState.REJECTED)
                exc.trail = self.trail
                raise

        outcome = (
            ResolutionOutcome.CONNECTED
            if state is ResolutionState.CONNECTED
            else ResolutionOutcome.LOGGED_IN
        )
        return ResolutionResult(
            outcome=outcome,
            account=self.account,
            identity=self.identity,
            account_created=self.account_created,
            account_verified=self.account_verified,
            identity_created=self.identity_created,
            trail=self.trail,
        )

    def _usable(self, account: Optional[Account]) -> Optional[Account]:
        if account is None or account.status == AccountStatus.CLOSED:
            return None
        return account

    async def _on_callback_completed(self) -> ResolutionState:
        account_id = self.ctx.session.get(ACCOUNT_ID_KEY)
        if account_id is not None:
            account = self._usable(await AccountCRUD.get_by_id(self.db, account_id))
            if account is not None and (self.settings.SKIP_STATUS_CHECKS or account.is_open):
                self.current_account = account
        return ResolutionState.IDENTITY_LOOKUP

    async def _on_identity_lookup(self) -> ResolutionState:
        self.identity = await IdentityCRUD.get_by_provider_uid(
            self.db, self.payload.provider, self.payload.uid
        )
        if self.identity is not None:
            return ResolutionState.IDENTITY_FOUND
        return ResolutionState.IDENTITY_NOT_FOUND

    async def _on_identity_found(self) -> ResolutionState:
        if self.current_account is not None:
            return ResolutionState.CONNECT
        if self.identity.account_id is not None:
            owner = self._usable(await AccountCRUD.get_by_id(self.db, self.identity.account_id))
            if owner is not None:
                self.account = owner
                return ResolutionState.ACCOUNT_RESOLVED
        return ResolutionState.EMAIL_MATCH

    async def _on_identity_not_found(self) -> ResolutionState:
        if self.current_account is not None:
            return ResolutionState.CONNECT
        return ResolutionState.EMAIL_MATCH

    async def _on_email_match(self) -> ResolutionState:
        self.account = await AccountCRUD.get_by_login(self.db, self.payload.email)
        if self.account is not None:
            return ResolutionState.ACCOUNT_RESOLVED
        return ResolutionState.NO_ACCOUNT

    async def _on_account_resolved(self) -> ResolutionState:
        if self.settings.SKIP_STATUS_CHECKS or self.account.is_open:
            return ResolutionState.PERSIST_AND_LOGIN
        return ResolutionState.VERIFICATION_CHECK

    async def _on_verification_check(self) -> ResolutionState:
        if (
            self.settings.VERIFY_ACCOUNT_ENABLED
            and self.account.status == AccountStatus.UNVERIFIED
            and self.payload.email is not None
            and self.payload.email == self.account.email
        ):
            return ResolutionState.AUTO_VERIFY
        raise ResolutionRejection(
            "unverified_account",
            UNVERIFIED_ACCOUNT_MESSAGE,
            self.settings.UNOPEN_ACCOUNT_ERROR_STATUS,
        )

    async def _on_auto_verify(self) -> ResolutionState:
        await AccountCRUD.mark_verified(self.db, self.account)
        self.account_verified = True
        logger.info("Auto-verified account %s via external identity", self.account.id)
        return ResolutionState.ACCOUNT_RESOLVED

    async def _on_no_account(self) -> ResolutionState:
        if self.settings.OMNIAUTH_CREATE_ACCOUNT and self.payload.email:
            return ResolutionState.CREATE_ACCOUNT
        raise ResolutionRejection(
            "no_matching_account",
            NO_MATCHING_ACCOUNT_MESSAGE,
            self.settings.NO_MATCHING_ACCOUNT_ERROR_STATUS,
        )

    async def _on_create_account(self) -> ResolutionState:
        account = Account(email=self.payload.email)
        if not self.settings.SKIP_STATUS_CHECKS:
            account.status = AccountStatus.OPEN
        hooks = self.ctx.config.hooks
        await hooks.run("before_create_account", self.ctx, account)
        try:
            self.account = await AccountCRUD.insert(self.db, account)
        except IntegrityError as exc:
            raise PersistenceConflict(
                f"Account {redact_email(account.email)} already exists"
            ) from exc
        self.account_created = True
        await hooks.run("after_create_account", self.ctx, account)
        logger.info(
            "Created account %s for %s", account.id, redact_email(account.email)
        )
        return ResolutionState.PERSIST_AND_LOGIN

    async def _on_connect(self) -> ResolutionState:
        self.account = self.current_account
        return ResolutionState.PERSIST_AND_CONNECT

    async def _on_persist_and_login(self) -> ResolutionState:
        await self._persist_identity()
        return ResolutionState.LOGGED_IN

    async def _on_persist_and_connect(self) -> ResolutionState:
        await self._persist_identity()
        return ResolutionState.CONNECTED

    def _identity_data(self) -> dict[str, str]:
        return {
            "info": serialize_identity_data(self.payload.info),
            "credentials": serialize_identity_data(self.payload.credentials),
            "extra": serialize_identity_data(self.payload.extra),
        }

    async def _persist_identity(self) -> None:
        if self.identity is None:
            try:
                self.identity = await IdentityCRUD.insert(
                    self.db,
                    self.account.id,
                    self.payload.provider,
                    self.payload.uid,
                    self._identity_data(),
                )
            except IntegrityError as exc:
                raise PersistenceConflict(
                    f"Identity {self.payload.provider}/{redact_uid(self.payload.uid)} already exists"
                ) from exc
            self.identity_created = True
            return

        changes = self._identity_data() if self.settings.UPDATE_OMNIAUTH_IDENTITY else {}
        if self.identity.account_id != self.account.id:
            if self.identity.account_id is not None:
                logger.warning(
                    "Rebinding identity %s from account %s to account %s",
                    self.identity.id,
                    self.identity.account_id,
                    self.account.id,
                )
            changes["account_id"] = self.account.id
        await IdentityCRUD.update(self.db, self.identity, changes)


class IdentityResolver:
    """Runs a resolution inside the callback's database transaction."""

    max_attempts = 2

    async def resolve(self, ctx, db: Optional[AsyncSession] = None) -> ResolutionResult:
        """
        Resolve ``ctx.payload`` to an account and commit the outcome.

        Raises:
            ResolutionRejection: Unverified account or no matching account;
                nothing is committed
            HandshakeFailure: The account or identity insert kept conflicting
        """
        db = db or ctx.db
        payload = ctx.payload
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await _Resolution(ctx, db).run()
                await db.commit()
            except PersistenceConflict as exc:
                await db.rollback()
                if attempt == self.max_attempts:
                    raise HandshakeFailure("identity_conflict", ctx.strategy, exc) from exc
                logger.info(
                    "Conflicting write, retrying resolution | provider=%s | uid=%s",
                    payload.provider,
                    redact_uid(payload.uid),
                )
                continue
            except ResolutionRejection as exc:
                await db.rollback()
                logger.info(
                    "External login rejected | provider=%s | email=%s | reason=%s",
                    payload.provider,
                    redact_email(payload.email),
                    exc.reason,
                )
                raise
            except BaseException:
                # Includes cancellation
                await db.rollback()
                raise

            logger.info(
                "External identity resolved | provider=%s | uid=%s | account_id=%s | outcome=%s",
                payload.provider,
                redact_uid(payload.uid),
                result.account.id,
                result.outcome.value,
            )
            return result
