"""
Session: resilient authentication bootstrap and role resolution.

    from topup import session as S

    manager = S.SessionManager(S.HttpAuthProvider(executor, config), config)
    await manager.bootstrap()

    if manager.offline:
        show_offline_banner(retry=manager.retry_connection)

    sub = manager.subscribe(lambda ev: print(type(ev).__name__))
    await manager.login("cs@example.com", "secret")
    manager.is_staff   # True for admin / cs
    sub.unsubscribe()
"""

from topup.session._types import (
    Role,
    STAFF_ROLES,
    Confidence,
    role_from_metadata,
    AuthState,
    Identity,
    UserInfo,
    Session,
    SignedIn,
    SignedOut,
    TokenRefreshed,
    SessionEvent,
    AuthErrorKind,
    AuthError,
)
from topup.session._bus import Handler, Subscription, EventBus
from topup.session._provider import (
    AuthProvider,
    TokenStore,
    MemoryTokenStore,
    auth_error_from,
    HttpAuthProvider,
)
from topup.session._manager import SessionManager

__all__ = (
    # Types
    "Role",
    "STAFF_ROLES",
    "Confidence",
    "role_from_metadata",
    "AuthState",
    "Identity",
    "UserInfo",
    "Session",
    # Events
    "SignedIn",
    "SignedOut",
    "TokenRefreshed",
    "SessionEvent",
    "Handler",
    "Subscription",
    "EventBus",
    # Errors
    "AuthErrorKind",
    "AuthError",
    # Provider
    "AuthProvider",
    "TokenStore",
    "MemoryTokenStore",
    "auth_error_from",
    "HttpAuthProvider",
    # Manager
    "SessionManager",
)
