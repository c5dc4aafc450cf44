"""Tests for SessionManager: bootstrap, ordering, anti-downgrade, events."""

import asyncio
from typing import Any

import pytest
from kungfu import Error, Ok, Result

from topup.config import TopupConfig
from topup.request import RequestExecutor
from topup.session import (
    AuthError,
    AuthErrorKind,
    AuthState,
    Confidence,
    HttpAuthProvider,
    Identity,
    MemoryTokenStore,
    Role,
    Session,
    SessionManager,
    SignedIn,
    SignedOut,
    TokenRefreshed,
    UserInfo,
    role_from_metadata,
)


def identity(user_id: str, email: str, role: str | None = None, token: str = "tok", **extra: Any) -> Identity:
    metadata = dict(extra)
    if role is not None:
        metadata["role"] = role
    return Identity(user_id=user_id, email=email, access_token=token, refresh_token=f"r-{token}", metadata=metadata)


class FakeAuthProvider:
    """Scriptable provider. Gates hold calls open until the test releases them."""

    def __init__(self) -> None:
        self.session: Identity | None = None
        self.session_error: AuthError | None = None
        self.session_gate: asyncio.Event | None = None
        self.accounts: dict[str, tuple[str, Identity]] = {}
        self.user: UserInfo | None = None
        self.user_gate: asyncio.Event | None = None
        self.signed_out: list[str] = []
        self.sign_out_error: AuthError | None = None

    async def sign_in(self, email: str, password: str) -> Result[Identity, AuthError]:
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            return Error(AuthError(AuthErrorKind.INVALID_CREDENTIALS, "Invalid login credentials", 400))
        return Ok(account[1])

    async def sign_up(self, email: str, password: str, full_name: str | None = None) -> Result[None, AuthError]:
        self.accounts[email] = (password, identity(f"new-{email}", email, token=f"tok-{email}", full_name=full_name))
        return Ok(None)

    async def sign_out(self, access_token: str) -> Result[None, AuthError]:
        self.signed_out.append(access_token)
        if self.sign_out_error is not None:
            return Error(self.sign_out_error)
        return Ok(None)

    async def get_session(self) -> Result[Identity | None, AuthError]:
        if self.session_gate is not None:
            await self.session_gate.wait()
        if self.session_error is not None:
            return Error(self.session_error)
        return Ok(self.session)

    async def get_user(self, access_token: str) -> Result[UserInfo, AuthError]:
        if self.user_gate is not None:
            await self.user_gate.wait()
        if self.user is None:
            return Error(AuthError(AuthErrorKind.SERVER, "user lookup failed"))
        return Ok(self.user)


@pytest.fixture
def provider() -> FakeAuthProvider:
    fake = FakeAuthProvider()
    fake.accounts["admin@example.com"] = ("pw", identity("admin-1", "admin@example.com", "admin", token="admin-tok"))
    fake.accounts["player@example.com"] = ("pw", identity("user-1", "player@example.com", token="player-tok"))
    return fake


@pytest.fixture
def manager(provider: FakeAuthProvider, config: TopupConfig) -> SessionManager:
    return SessionManager(provider, config.with_timeouts(auth=0.2))


# ═══════════════════════════════════════════════════════════════════════════════
# Bootstrap
# ═══════════════════════════════════════════════════════════════════════════════


async def test_bootstrap_without_session_is_guest(manager: SessionManager):
    await manager.bootstrap()

    assert manager.state is AuthState.UNAUTHENTICATED
    assert manager.session is None
    assert not manager.offline


async def test_bootstrap_restores_role_from_claims(manager, provider):
    provider.session = identity("cs-1", "cs@example.com", "cs", token="cs-tok")

    await manager.bootstrap()

    assert manager.state is AuthState.AUTHENTICATED
    assert manager.role is Role.CS
    assert manager.session.confidence is Confidence.CLAIMS
    assert manager.is_staff and manager.is_cs and not manager.is_admin


async def test_bootstrap_network_failure_goes_offline(manager, provider):
    provider.session_error = AuthError(AuthErrorKind.NETWORK, "Unable to reach the server")

    await manager.bootstrap()

    assert manager.offline
    assert manager.state is AuthState.UNAUTHENTICATED


async def test_bootstrap_times_out_within_auth_budget(manager, provider):
    provider.session_gate = asyncio.Event()  # never released

    async with asyncio.timeout(2):
        await manager.bootstrap()

    assert manager.offline
    assert manager.session is None


async def test_retry_connection_clears_offline(manager, provider):
    provider.session_error = AuthError(AuthErrorKind.TIMEOUT, "timed out")
    await manager.bootstrap()
    assert manager.offline

    assert await manager.retry_connection() is False

    provider.session_error = None
    assert await manager.retry_connection() is True
    assert not manager.offline


async def test_missing_role_claim_upgraded_by_user_record(manager, provider):
    provider.session = identity("admin-1", "admin@example.com", token="admin-tok")
    provider.user = UserInfo("admin-1", "admin@example.com", {"role": "admin", "full_name": "Ada"})

    await manager.bootstrap()
    assert manager.role is Role.USER
    assert manager.session.confidence is Confidence.DEFAULT

    await manager.wait_idle()
    assert manager.role is Role.ADMIN
    assert manager.session.full_name == "Ada"


async def test_role_less_user_record_keeps_claims_admin(manager, provider):
    provider.session = identity("admin-1", "admin@example.com", "admin", token="admin-tok")
    provider.user = UserInfo("admin-1", "admin@example.com", {"full_name": "Ada"})

    await manager.bootstrap()
    await manager.wait_idle()

    assert manager.role is Role.ADMIN
    assert manager.session.confidence is Confidence.CLAIMS
    assert manager.session.full_name == "Ada"


async def test_user_refresh_finishing_after_login_is_dropped(manager, provider):
    provider.accounts["player@example.com"] = (
        "pw",
        identity("user-1", "player@example.com", "user", token="player-tok"),
    )
    provider.session = identity("user-1", "player@example.com", token="boot-tok")
    provider.user = UserInfo("user-1", "player@example.com", {"role": "cs", "full_name": "Old Name"})
    provider.user_gate = asyncio.Event()

    await manager.bootstrap()
    assert manager.access_token() == "boot-tok"

    await manager.login("player@example.com", "pw")
    provider.user_gate.set()
    await manager.wait_idle()

    assert manager.role is Role.USER
    assert manager.session.confidence is Confidence.EXPLICIT
    assert manager.session.full_name is None
    assert manager.access_token() == "player-tok"


# ═══════════════════════════════════════════════════════════════════════════════
# Login / logout
# ═══════════════════════════════════════════════════════════════════════════════


async def test_login_role_visible_immediately(manager):
    result = await manager.login("admin@example.com", "pw")

    match result:
        case Ok(session):
            assert session.role is Role.ADMIN
            assert session.confidence is Confidence.EXPLICIT
        case Error(e):
            raise AssertionError(f"login failed: {e}")
    assert manager.is_admin
    assert manager.access_token() == "admin-tok"


async def test_login_invalid_credentials(manager):
    result = await manager.login("admin@example.com", "wrong")

    match result:
        case Error(e):
            assert e.kind is AuthErrorKind.INVALID_CREDENTIALS
        case Ok(_):
            raise AssertionError("expected failure")
    assert manager.state is AuthState.UNAUTHENTICATED


async def test_login_requires_email_and_password(manager, provider):
    result = await manager.login("  ", "pw")

    assert isinstance(result, Error)
    assert result.value.kind is AuthErrorKind.VALIDATION


async def test_slow_bootstrap_cannot_overwrite_login(manager, provider):
    provider.session = identity("user-1", "player@example.com", token="stale-tok")
    provider.session_gate = asyncio.Event()

    boot = asyncio.create_task(manager.bootstrap())
    await asyncio.sleep(0)
    assert manager.state is AuthState.AUTHENTICATING

    await manager.login("admin@example.com", "pw")
    provider.session_gate.set()
    await boot

    assert manager.session.user_id == "admin-1"
    assert manager.role is Role.ADMIN
    assert manager.access_token() == "admin-tok"


async def test_weaker_refresh_keeps_role_takes_token(manager, provider):
    await manager.login("admin@example.com", "pw")
    events = []
    manager.subscribe(events.append)

    # Same user, no role claim this time
    provider.session = identity("admin-1", "admin@example.com", token="admin-tok-2")
    result = await manager.refresh_session()

    assert isinstance(result, Ok)
    assert manager.role is Role.ADMIN
    assert manager.session.confidence is Confidence.EXPLICIT
    assert manager.access_token() == "admin-tok-2"
    assert [type(e) for e in events] == [TokenRefreshed]


async def test_weaker_update_for_other_user_dropped(manager):
    await manager.login("admin@example.com", "pw")

    claims_only = identity("user-9", "other@example.com", "user", token="other-tok")
    role, confidence = role_from_metadata(claims_only.metadata)
    manager.notify(
        SignedIn(
            Session(
                user_id=claims_only.user_id,
                email=claims_only.email,
                role=role,
                access_token=claims_only.access_token,
                expires_at=None,
                source_version=0,
                confidence=confidence,
            )
        )
    )

    assert manager.session.user_id == "admin-1"
    assert manager.role is Role.ADMIN


async def test_logout_clears_immediately_and_publishes(manager, provider):
    await manager.login("player@example.com", "pw")
    events = []
    manager.subscribe(events.append)

    await manager.logout()

    assert manager.session is None
    assert manager.state is AuthState.UNAUTHENTICATED
    assert provider.signed_out == ["player-tok"]
    assert events == [SignedOut()]


async def test_logout_survives_provider_failure(manager, provider):
    await manager.login("player@example.com", "pw")
    provider.sign_out_error = AuthError(AuthErrorKind.NETWORK, "down")

    await manager.logout()

    assert manager.session is None


async def test_register_signs_in(manager, provider):
    result = await manager.register("new@example.com", "pw", "New Player")

    match result:
        case Ok(session):
            assert session.email == "new@example.com"
            assert session.role is Role.USER
        case Error(e):
            raise AssertionError(f"register failed: {e}")


async def test_refresh_unauthorized_signs_out(manager, provider):
    await manager.login("player@example.com", "pw")
    provider.session_error = AuthError(AuthErrorKind.UNAUTHORIZED, "expired", 401)

    result = await manager.refresh_session()

    assert isinstance(result, Error)
    assert manager.session is None


async def test_unsubscribe_stops_delivery(manager):
    events = []
    sub = manager.subscribe(events.append)
    await manager.login("player@example.com", "pw")
    sub.unsubscribe()
    await manager.logout()

    assert len(events) == 1
    assert isinstance(events[0], SignedIn)
    assert not sub.active


async def test_failing_handler_does_not_block_others(manager):
    seen = []

    def broken(_event):
        raise RuntimeError("boom")

    manager.subscribe(broken)
    manager.subscribe(seen.append)
    await manager.login("player@example.com", "pw")

    assert len(seen) == 1


async def test_permission_helpers_need_session(manager):
    assert not manager.is_admin
    assert not manager.is_regular_user
    assert not manager.can_access([Role.USER, Role.ADMIN])

    await manager.login("player@example.com", "pw")
    assert manager.is_regular_user
    assert manager.can_access([Role.USER])
    assert not manager.is_staff


# ═══════════════════════════════════════════════════════════════════════════════
# Over HTTP
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def http_manager(executor: RequestExecutor, config: TopupConfig):
    def build(refresh_token: str | None = None) -> SessionManager:
        provider = HttpAuthProvider(executor, config, MemoryTokenStore(refresh_token))
        manager = SessionManager(provider, config)
        executor.bind_token_source(manager.access_token)
        return manager

    return build


async def test_http_login_sends_session_token_afterwards(http_manager, executor, backend):
    manager = http_manager()

    result = await manager.login("admin@example.com", "admin-pw")

    assert isinstance(result, Ok)
    assert manager.role is Role.ADMIN
    assert manager.session.full_name == "Ada Admin"

    await executor.get("/products")
    assert backend.headers[-1]["authorization"] == f"Bearer {manager.access_token()}"


async def test_http_bootstrap_from_stored_refresh_token(http_manager, backend):
    backend.tokens["rt-stored"] = "cs@example.com"
    manager = http_manager("rt-stored")

    await manager.bootstrap()
    await manager.wait_idle()

    assert manager.role is Role.CS
    assert "GET /user" in backend.calls


async def test_http_bootstrap_with_revoked_token_is_guest(http_manager):
    manager = http_manager("rt-revoked")

    await manager.bootstrap()

    assert manager.session is None
    assert not manager.offline


async def test_http_login_rejected(http_manager):
    manager = http_manager()

    result = await manager.login("admin@example.com", "nope")

    match result:
        case Error(e):
            assert e.kind is AuthErrorKind.INVALID_CREDENTIALS
            assert e.message == "Invalid login credentials"
        case Ok(_):
            raise AssertionError("expected rejection")


async def test_http_auth_outage_leaves_catalog_usable(http_manager, orders, backend, config):
    backend.tokens["rt-stored"] = "player@example.com"
    backend.delays["POST /token"] = 5
    manager = http_manager("rt-stored")

    async with asyncio.timeout(3):
        await manager.bootstrap()
    assert manager.offline
    assert manager.session is None

    catalog = await orders.list_products()
    assert isinstance(catalog, Ok)

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await manager.login("player@example.com", "player-pw")
    elapsed = loop.time() - started

    match result:
        case Error(e):
            assert e.kind in (AuthErrorKind.TIMEOUT, AuthErrorKind.NETWORK)
        case Ok(_):
            raise AssertionError("login should not succeed while auth is unreachable")
    assert elapsed < config.timeouts.auth + 0.5
    assert manager.session is None
    assert manager.offline
