"""
SessionManager: the single owner of the authentication session.

Construct once at startup and inject it where needed:

    session = SessionManager(provider, config)
    await session.bootstrap()          # never raises, never blocks past the auth timeout

    sub = session.subscribe(on_auth_event)
    match await session.login("admin@x.com", "pw"):
        case Ok(s):
            assert s.role is Role.ADMIN  # visible immediately
        case Error(e):
            show(e.message)

Ordering rule:
    Every update carries a sequence number. Fetches capture theirs when issued;
    explicit sign-in/sign-out take the next one synchronously when applied.
    An update older than the last applied one is dropped, so a slow startup
    fetch can never overwrite a fresher sign-in.

Anti-downgrade rule:
    While a user stays signed in, a lower-confidence role never replaces a
    higher-confidence one. Lower-confidence updates may still refresh the
    token and profile details.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable
from dataclasses import replace

import structlog
from kungfu import Result, Ok, Error

from topup.config import TopupConfig
from topup.session._bus import EventBus, Handler, Subscription
from topup.session._provider import AuthProvider
from topup.session._types import (
    AuthError,
    AuthErrorKind,
    AuthState,
    Confidence,
    Identity,
    Role,
    STAFF_ROLES,
    Session,
    SessionEvent,
    SignedIn,
    SignedOut,
    TokenRefreshed,
    UserInfo,
    role_from_metadata,
)

logger = structlog.get_logger(__name__)

_UNREACHABLE = (AuthErrorKind.TIMEOUT, AuthErrorKind.NETWORK)


class SessionManager:
    """Bootstraps and maintains the session; resolves role without races."""

    def __init__(
        self,
        provider: AuthProvider,
        config: TopupConfig | None = None,
        *,
        bus: EventBus[SessionEvent] | None = None,
    ) -> None:
        self._provider = provider
        self._config = config or TopupConfig()
        self._bus: EventBus[SessionEvent] = bus if bus is not None else EventBus()
        self._session: Session | None = None
        self._state = AuthState.UNAUTHENTICATED
        self._offline = False
        self._issued = 0
        self._applied = 0
        self._background: set[asyncio.Task[None]] = set()

    # ───────────────────────────────────────────────────────────────────────────
    # Read side
    # ───────────────────────────────────────────────────────────────────────────

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def offline(self) -> bool:
        """Auth backend unreachable. Guest browsing continues."""
        return self._offline

    @property
    def role(self) -> Role | None:
        return self._session.role if self._session is not None else None

    @property
    def is_authenticated(self) -> bool:
        return self._state == AuthState.AUTHENTICATED and self._session is not None

    @property
    def applied_version(self) -> int:
        return self._applied

    def access_token(self) -> str | None:
        """Token source for RequestExecutor."""
        return self._session.access_token if self._session is not None else None

    # Permission helpers. All of them require an authenticated session.

    def has_role(self, role: Role) -> bool:
        return self.is_authenticated and self.role == role

    def can_access(self, roles: Iterable[Role]) -> bool:
        return self.is_authenticated and self.role in set(roles)

    @property
    def is_admin(self) -> bool:
        return self.has_role(Role.ADMIN)

    @property
    def is_cs(self) -> bool:
        return self.has_role(Role.CS)

    @property
    def is_staff(self) -> bool:
        return self.can_access(STAFF_ROLES)

    @property
    def is_regular_user(self) -> bool:
        return self.has_role(Role.USER)

    # ───────────────────────────────────────────────────────────────────────────
    # Events
    # ───────────────────────────────────────────────────────────────────────────

    def subscribe(self, handler: Handler[SessionEvent]) -> Subscription:
        return self._bus.subscribe(handler)

    def notify(self, event: SessionEvent) -> None:
        """
        Feed an externally-originated auth event (e.g. provider callback).

        Applied through the same sequencing rule as local updates.
        """
        match event:
            case SignedIn(session=incoming):
                seq = self._next_seq()
                if (applied := self._apply(replace(incoming, source_version=seq), seq)) is not None:
                    self._bus.publish(SignedIn(applied))
            case TokenRefreshed(session=incoming):
                seq = self._next_seq()
                if (applied := self._apply(replace(incoming, source_version=seq), seq)) is not None:
                    self._bus.publish(TokenRefreshed(applied))
            case SignedOut():
                self._clear(self._next_seq())

    # ───────────────────────────────────────────────────────────────────────────
    # Sequencing
    # ───────────────────────────────────────────────────────────────────────────

    def _next_seq(self) -> int:
        self._issued += 1
        return self._issued

    def _is_current(self, seq: int) -> bool:
        return seq >= self._applied

    def _apply(self, candidate: Session, seq: int) -> Session | None:
        """Apply a session update if it is not stale. Returns the session now held, or None."""
        if not self._is_current(seq):
            logger.info("session.stale_update_dropped", seq=seq, applied=self._applied)
            return None

        current = self._session
        if current is not None and candidate.confidence < current.confidence:
            if current.user_id != candidate.user_id:
                logger.info(
                    "session.weaker_identity_dropped",
                    seq=seq,
                    confidence=candidate.confidence.name,
                )
                return None
            # Same user, weaker role signal: keep the role, take fresher details
            candidate = replace(candidate, role=current.role, confidence=current.confidence)
        return self._install(candidate, seq)

    def _install(self, candidate: Session, seq: int) -> Session:
        self._session = candidate
        self._applied = seq
        self._state = AuthState.AUTHENTICATED
        logger.info(
            "session.applied",
            seq=seq,
            user_id=candidate.user_id,
            role=candidate.role.value,
            confidence=candidate.confidence.name,
        )
        return candidate

    def _clear(self, seq: int) -> None:
        had_session = self._session is not None
        self._session = None
        self._applied = seq
        self._state = AuthState.UNAUTHENTICATED
        logger.info("session.cleared", seq=seq)
        if had_session:
            self._bus.publish(SignedOut())

    def _from_identity(
        self, identity: Identity, seq: int, strongest: Confidence
    ) -> Session:
        role, confidence = role_from_metadata(identity.metadata, strongest)
        full_name = identity.metadata.get("full_name")
        return Session(
            user_id=identity.user_id,
            email=identity.email,
            role=role,
            access_token=identity.access_token,
            expires_at=identity.expires_at,
            source_version=seq,
            confidence=confidence,
            full_name=full_name if isinstance(full_name, str) else None,
        )

    async def _bounded[T](
        self, call: Awaitable[Result[T, AuthError]]
    ) -> Result[T, AuthError]:
        """Run a provider call under the auth timeout."""
        try:
            async with asyncio.timeout(self._config.timeouts.auth):
                return await call
        except TimeoutError:
            return Error(AuthError(AuthErrorKind.TIMEOUT, "Auth service did not respond in time"))

    def _mark_reachability(self, result: Result[object, AuthError]) -> None:
        match result:
            case Error(e) if e.kind in _UNREACHABLE:
                if not self._offline:
                    logger.warning("session.offline", reason=e.message)
                self._offline = True
            case _:
                self._offline = False

    # ───────────────────────────────────────────────────────────────────────────
    # Operations
    # ───────────────────────────────────────────────────────────────────────────

    async def bootstrap(self) -> None:
        """
        Restore an existing session, or continue as guest.

        Never raises. On timeout/error sets offline=True.
        """
        seq = self._next_seq()
        previous_state = self._state
        if self._state == AuthState.UNAUTHENTICATED:
            self._state = AuthState.AUTHENTICATING

        result = await self._bounded(self._provider.get_session())

        if not self._is_current(seq):
            logger.info("session.bootstrap_superseded", seq=seq, applied=self._applied)
            return

        match result:
            case Error(e):
                self._mark_reachability(result)
                logger.warning("session.bootstrap_failed", kind=e.kind.name, error=e.message)
                if self._session is None:
                    self._state = AuthState.UNAUTHENTICATED
                else:
                    self._state = previous_state
            case Ok(None):
                self._offline = False
                if self._session is None:
                    self._state = AuthState.UNAUTHENTICATED
                    self._applied = seq
            case Ok(identity):
                self._offline = False
                candidate = self._from_identity(identity, seq, Confidence.CLAIMS)
                if (applied := self._apply(candidate, seq)) is not None:
                    self._bus.publish(SignedIn(applied))
                    self._schedule_user_refresh()

    async def login(self, email: str, password: str) -> Result[Session, AuthError]:
        """
        Explicit sign-in. Highest confidence; wins over any stale background state.
        """
        if not email.strip() or not password:
            return Error(AuthError(AuthErrorKind.VALIDATION, "Email and password are required"))

        previous_state = self._state
        if self._state == AuthState.UNAUTHENTICATED:
            self._state = AuthState.AUTHENTICATING

        result = await self._bounded(self._provider.sign_in(email.strip(), password))
        self._mark_reachability(result)

        match result:
            case Error(e):
                if self._state == AuthState.AUTHENTICATING:
                    self._state = previous_state
                logger.info("session.login_failed", kind=e.kind.name)
                return Error(e)
            case Ok(identity):
                seq = self._next_seq()
                candidate = self._from_identity(identity, seq, Confidence.EXPLICIT)
                # Explicit sign-in replaces whatever was there, even a stronger role
                session = self._install(candidate, seq)
                self._bus.publish(SignedIn(session))
                if candidate.confidence < Confidence.EXPLICIT:
                    self._schedule_user_refresh()
                return Ok(session)

    async def register(
        self, email: str, password: str, full_name: str | None = None
    ) -> Result[Session, AuthError]:
        """Sign up through the backend, then sign in."""
        if not email.strip() or not password:
            return Error(AuthError(AuthErrorKind.VALIDATION, "Email and password are required"))

        signup = await self._bounded(self._provider.sign_up(email.strip(), password, full_name))
        self._mark_reachability(signup)
        match signup:
            case Error(e):
                logger.info("session.signup_failed", kind=e.kind.name)
                return Error(e)
            case Ok(_):
                return await self.login(email, password)

    async def logout(self) -> None:
        """Clear the session immediately; provider sign-out is best effort."""
        current = self._session
        self._cancel_background()
        self._clear(self._next_seq())

        if current is None:
            return
        result = await self._bounded(self._provider.sign_out(current.access_token))
        match result:
            case Error(e):
                logger.warning("session.provider_signout_failed", kind=e.kind.name, error=e.message)
            case Ok(_):
                pass

    async def refresh_session(self) -> Result[Session | None, AuthError]:
        """
        Force a session re-fetch. Anti-downgrade applies.

        Unrecoverable failure (token rejected) signs the user out.
        """
        seq = self._next_seq()
        before = self._session
        result = await self._bounded(self._provider.get_session())
        self._mark_reachability(result)

        if not self._is_current(seq):
            return Ok(self._session)

        match result:
            case Error(e) if e.kind == AuthErrorKind.UNAUTHORIZED:
                self._clear(seq)
                return Error(e)
            case Error(e):
                return Error(e)
            case Ok(None):
                if before is not None:
                    self._clear(seq)
                return Ok(None)
            case Ok(identity):
                candidate = self._from_identity(identity, seq, Confidence.CLAIMS)
                session = self._apply(candidate, seq)
                if session is None:
                    return Ok(self._session)
                if before is None:
                    self._bus.publish(SignedIn(session))
                elif before.access_token != session.access_token:
                    self._bus.publish(TokenRefreshed(session))
                return Ok(session)

    async def retry_connection(self) -> bool:
        """Re-probe the auth backend from offline mode. True when reachable."""
        result = await self.refresh_session()
        match result:
            case Error(e) if e.kind in _UNREACHABLE:
                return False
            case _:
                return True

    # ───────────────────────────────────────────────────────────────────────────
    # Background refresh
    # ───────────────────────────────────────────────────────────────────────────

    def _schedule_user_refresh(self) -> None:
        session = self._session
        if session is None:
            return
        seq = self._next_seq()
        task = asyncio.get_running_loop().create_task(
            self._refresh_user(seq, session.access_token)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_user(self, seq: int, access_token: str) -> None:
        result = await self._bounded(self._provider.get_user(access_token))
        match result:
            case Error(e):
                # Details stay as bootstrapped; no downgrade on failure
                logger.info("session.user_refresh_failed", kind=e.kind.name)
            case Ok(user):
                self._merge_user(user, seq)

    def _merge_user(self, user: UserInfo, seq: int) -> None:
        current = self._session
        if current is None or current.user_id != user.user_id:
            logger.info("session.user_refresh_orphaned", seq=seq)
            return
        role, confidence = role_from_metadata(user.metadata)
        full_name = user.metadata.get("full_name")
        candidate = replace(
            current,
            email=user.email or current.email,
            role=role,
            confidence=confidence,
            source_version=seq,
            full_name=full_name if isinstance(full_name, str) else current.full_name,
        )
        self._apply(candidate, seq)

    def _cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()

    async def wait_idle(self) -> None:
        """Wait for outstanding background refreshes."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        self._cancel_background()
        await self.wait_idle()


__all__ = ("SessionManager",)
