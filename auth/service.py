"""
auth/service.py -- AuthService: the orchestrator behind register, login,
refresh, logout and change_password.

Composes the credential hasher, token signer, user store, refresh-token store
and login-attempt tracker. Holds no mutable state of its own, so one instance
is shared by every worker thread.

Security design decisions:
  [T1] Timing equalisation on login. When the email does not resolve to a
       password-capable account, bcrypt still runs against the hasher's decoy
       digest before InvalidCredentials is raised. Unknown email, wrong
       password, inactive account and password-less account all cost one
       bcrypt verification and produce the same error.
  [T2] Throttle before hashing. is_throttled() is consulted first; a throttled
       login fails with RateLimited without touching bcrypt.
  [T3] Rotation with reuse detection. refresh() delegates the atomic
       consume-and-replace to RefreshTokenStore.rotate(). Presenting an
       already-consumed secret revokes every active refresh token of that
       user (the whole chain), forcing a full re-login.
  [T4] Password change revokes all refresh tokens in the same transaction as
       the hash update. There is no observable state with the new password
       and an old refresh session still alive.

Error translation happens once, in _translate(): RepositoryError from the
stores becomes either a domain outcome (Conflict on register) or a generic
ServiceUnavailable. Storage detail only reaches the logs.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from auth.attempts import LoginAttemptTracker
from auth.models import LoginResult, PublicUser, TokenPair, User
from auth.passwords import PasswordHasher
from auth.refresh_store import RefreshTokenStore
from auth.store import UserStore
from auth.tokens import RefreshTokenHasher, TokenSigner, bearer_token, generate_refresh_secret
from auth.validation import LoginInput, PasswordChangeInput, RegistrationInput, parse
from core.errors import (
    AuthCoreError,
    Conflict,
    InvalidCredentials,
    InvalidRefreshToken,
    RateLimited,
    RepositoryConflict,
    RepositoryError,
    ServiceUnavailable,
    Unauthorized,
)
from db.pool import ConnectionPool

logger = logging.getLogger("authcore.auth")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """Authentication use cases. Every public method returns a plain value or
    raises a core.errors.AuthCoreError subclass."""

    def __init__(
        self,
        pool: ConnectionPool,
        users: UserStore,
        refresh_tokens: RefreshTokenStore,
        attempts: LoginAttemptTracker,
        hasher: PasswordHasher,
        signer: TokenSigner,
        refresh_hasher: RefreshTokenHasher,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ) -> None:
        self.pool = pool
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.attempts = attempts
        self.hasher = hasher
        self.signer = signer
        self.refresh_hasher = refresh_hasher
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, email: str, username: str, password: str) -> PublicUser:
        """Create an account. No tokens are issued.

        Raises ValidationError on bad input and Conflict if the email or the
        username is taken (checked up front and again by the UNIQUE
        constraints, which win any race between two registrations).
        """
        data = parse(RegistrationInput, email=email, username=username, password=password)
        try:
            if self.users.exists(data.email, data.username):
                raise Conflict()
            password_hash = self.hasher.hash(data.password)
            user = self.users.create_user(User(email=data.email, username=data.username, password_hash=password_hash))
        except RepositoryError as exc:
            raise self._translate(exc, "register", conflict=Conflict()) from exc
        logger.info("Registered user %s", user.id)
        return PublicUser.from_user(user)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, user_agent: str | None = None) -> LoginResult:
        """Authenticate by email + password and issue an access/refresh pair.

        Always records a LoginAttempt. Raises RateLimited [T2] or
        InvalidCredentials [T1]; never reveals which check failed.
        """
        data = parse(LoginInput, email=email, password=password, user_agent=user_agent)
        try:
            return self._login(data)
        except RepositoryError as exc:
            raise self._translate(exc, "login") from exc

    def _login(self, data: LoginInput) -> LoginResult:
        if self.attempts.is_throttled(data.email):
            # Store read only; bcrypt stays untouched while throttled.
            target = self.users.get_by_email(data.email)
            self.attempts.record(target.id if target else None, False, data.user_agent, identifier=data.email)
            logger.warning("Login throttled for identifier after repeated failures")
            raise RateLimited()

        user = self.users.get_by_email(data.email)
        if user is None or user.password_hash is None:
            self.hasher.verify_decoy(data.password)  # [T1]
            self.attempts.record(user.id if user else None, False, data.user_agent, identifier=data.email)
            raise InvalidCredentials()

        if not self.hasher.verify(data.password, user.password_hash) or not user.is_active:
            self.attempts.record(user.id, False, data.user_agent, identifier=data.email)
            raise InvalidCredentials()

        now = _now()
        tokens = self._issue_tokens(user.id, now)
        self.users.update_last_login(user.id, now)
        self.attempts.record(user.id, True, data.user_agent, identifier=data.email)
        logger.info("User %s logged in", user.id)
        return LoginResult(user=PublicUser.from_user(replace(user, last_login_at=now)), tokens=tokens)

    # ------------------------------------------------------------------
    # Refresh / logout
    # ------------------------------------------------------------------

    def refresh(self, raw_refresh_token: str) -> TokenPair:
        """Exchange a refresh secret for a new access token and a new secret [T3].

        The presented secret is single-use. Unknown, expired and reused
        secrets all raise InvalidRefreshToken; reuse additionally revokes
        every active refresh token of the owning user.
        """
        if not isinstance(raw_refresh_token, str) or not raw_refresh_token:
            raise InvalidRefreshToken()
        now = _now()
        new_secret = generate_refresh_secret()
        try:
            outcome = self.refresh_tokens.rotate(
                self.refresh_hasher.digest(raw_refresh_token),
                self.refresh_hasher.digest(new_secret),
                now + self.refresh_ttl,
                now,
            )
            if outcome.status == "reused":
                logger.warning(
                    "Refresh token reuse detected for user %s; revoked %d active token(s)",
                    outcome.user_id,
                    outcome.revoked_count,
                )
                raise InvalidRefreshToken()
            if outcome.status != "rotated":
                raise InvalidRefreshToken()

            user = self.users.get_by_id(outcome.user_id)
            if user is None or not user.is_active:
                self.refresh_tokens.revoke_all_for_user(outcome.user_id, now)
                raise InvalidRefreshToken()
        except RepositoryError as exc:
            raise self._translate(exc, "refresh") from exc

        return TokenPair(
            access_token=self.signer.issue(user.id, self.access_ttl),
            refresh_token=new_secret,
            expires_in=int(self.access_ttl.total_seconds()),
        )

    def logout(self, raw_refresh_token: str | None) -> None:
        """Revoke the matching refresh token. Unknown or already-revoked is not an error."""
        if not raw_refresh_token:
            return
        try:
            self.refresh_tokens.revoke(self.refresh_hasher.digest(raw_refresh_token))
        except RepositoryError as exc:
            raise self._translate(exc, "logout") from exc

    def logout_all(self, user_id: str) -> int:
        """Revoke every active refresh token of a user ("log out everywhere")."""
        try:
            revoked = self.refresh_tokens.revoke_all_for_user(user_id)
        except RepositoryError as exc:
            raise self._translate(exc, "logout_all") from exc
        logger.info("Revoked %d refresh token(s) for user %s", revoked, user_id)
        return revoked

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        """Replace the password after verifying the old one [T4].

        Raises ValidationError if the new password fails policy,
        Unauthorized if the user no longer exists or is inactive, and
        InvalidCredentials if old_password is wrong.
        """
        data = parse(PasswordChangeInput, old_password=old_password, new_password=new_password)
        try:
            user = self.users.get_by_id(user_id)
            if user is None or not user.is_active:
                raise Unauthorized()
            if user.password_hash is None:
                self.hasher.verify_decoy(data.old_password)
                raise InvalidCredentials()
            if not self.hasher.verify(data.old_password, user.password_hash):
                raise InvalidCredentials()

            new_hash = self.hasher.hash(data.new_password)
            with self.pool.begin() as conn:
                if not self.users.update_password(user.id, new_hash, conn=conn):
                    raise Unauthorized()
                revoked = self.refresh_tokens.revoke_all_for_user(user.id, conn=conn)
        except RepositoryError as exc:
            raise self._translate(exc, "change_password") from exc
        logger.info("Password changed for user %s; revoked %d refresh token(s)", user.id, revoked)

    # ------------------------------------------------------------------
    # Access-token consumers
    # ------------------------------------------------------------------

    def authenticate(self, authorization: str | None) -> PublicUser:
        """Resolve an ``Authorization: Bearer`` header value to the current user.

        TokenError subclasses propagate unchanged so the transport can choose
        between "refresh and retry" (TokenExpired) and a hard reject.
        """
        claims = self.signer.verify(bearer_token(authorization))
        return self.get_user(claims.sub)

    def get_user(self, user_id: str) -> PublicUser:
        """Return the public view of an active user, or raise Unauthorized."""
        try:
            user = self.users.get_by_id(user_id)
        except RepositoryError as exc:
            raise self._translate(exc, "get_user") from exc
        if user is None or not user.is_active:
            raise Unauthorized()
        return PublicUser.from_user(user)

    def delete_account(self, requesting_user_id: str, target_user_id: str) -> None:
        """Delete an account. Users may only delete their own."""
        if requesting_user_id != target_user_id:
            raise Unauthorized("You can only delete your own account.")
        try:
            deleted = self.users.delete_user(target_user_id)
        except RepositoryError as exc:
            raise self._translate(exc, "delete_account") from exc
        if not deleted:
            raise Unauthorized()
        logger.info("Deleted user %s", target_user_id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired_refresh_tokens(self, older_than: timedelta) -> int:
        """Delete refresh rows expired or revoked more than ``older_than`` ago."""
        try:
            purged = self.refresh_tokens.purge(_now() - older_than)
        except RepositoryError as exc:
            raise self._translate(exc, "purge") from exc
        logger.info("Purged %d refresh token row(s)", purged)
        return purged

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _issue_tokens(self, user_id: str, now: datetime) -> TokenPair:
        secret = generate_refresh_secret()
        self.refresh_tokens.issue(user_id, self.refresh_hasher.digest(secret), now + self.refresh_ttl)
        return TokenPair(
            access_token=self.signer.issue(user_id, self.access_ttl),
            refresh_token=secret,
            expires_in=int(self.access_ttl.total_seconds()),
        )

    def _translate(
        self,
        exc: RepositoryError,
        operation: str,
        conflict: AuthCoreError | None = None,
    ) -> AuthCoreError:
        """Map a storage error to what the caller of ``operation`` may see."""
        if conflict is not None and isinstance(exc, RepositoryConflict):
            return conflict
        logger.error("%s failed: %s", operation, exc.code, exc_info=exc)
        return ServiceUnavailable()
