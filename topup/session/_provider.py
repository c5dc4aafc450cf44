"""
Auth provider: protocol plus an HTTP implementation for a GoTrue-style backend.

Endpoints (relative to config.auth_base_url unless noted):

    POST /token?grant_type=password        sign in
    POST /token?grant_type=refresh_token   restore persisted session
    POST /logout                           sign out
    GET  /user                             current user
    POST {api_base_url}/auth/signup        backend sign-up (then sign in)
"""

from __future__ import annotations

from typing import Protocol

import structlog
from kungfu import Result, Ok, Error
from pydantic import BaseModel, ValidationError

from topup.config import TopupConfig
from topup.request import (
    Budget,
    RequestError,
    RequestErrorKind,
    RequestExecutor,
    Response,
)
from topup.session._types import AuthError, AuthErrorKind, Identity, UserInfo
from topup.session._wire import RefreshIn, SignInIn, SignUpIn, TokenOut, UserOut

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Protocols
# ═══════════════════════════════════════════════════════════════════════════════


class AuthProvider(Protocol):
    """
    External authentication backend.

    All methods return Result; none of them may raise transport errors.
    """

    async def sign_in(self, email: str, password: str) -> Result[Identity, AuthError]:
        ...

    async def sign_up(
        self, email: str, password: str, full_name: str | None = None
    ) -> Result[None, AuthError]:
        ...

    async def sign_out(self, access_token: str) -> Result[None, AuthError]:
        ...

    async def get_session(self) -> Result[Identity | None, AuthError]:
        """Existing session, Ok(None) when there is none to restore."""
        ...

    async def get_user(self, access_token: str) -> Result[UserInfo, AuthError]:
        ...


class TokenStore(Protocol):
    """Where the refresh token survives between process runs."""

    def load(self) -> str | None: ...

    def save(self, refresh_token: str) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStore:
    """In-process token store."""

    def __init__(self, refresh_token: str | None = None) -> None:
        self._token = refresh_token

    def load(self) -> str | None:
        return self._token

    def save(self, refresh_token: str) -> None:
        self._token = refresh_token

    def clear(self) -> None:
        self._token = None


# ═══════════════════════════════════════════════════════════════════════════════
# Error Mapping
# ═══════════════════════════════════════════════════════════════════════════════


def auth_error_from(err: RequestError, *, credentials: bool = False) -> AuthError:
    """Map a transport error onto the session taxonomy."""
    match err.kind:
        case RequestErrorKind.TIMEOUT:
            return AuthError(AuthErrorKind.TIMEOUT, err.message)
        case RequestErrorKind.NETWORK:
            return AuthError(AuthErrorKind.NETWORK, err.message)
        case RequestErrorKind.ABORTED:
            return AuthError(AuthErrorKind.CANCELLED, err.message)
        case RequestErrorKind.VALIDATION:
            return AuthError(AuthErrorKind.VALIDATION, err.message)
        case RequestErrorKind.HTTP:
            status = err.status or 0
            if credentials and status in (400, 401, 403, 422):
                return AuthError(AuthErrorKind.INVALID_CREDENTIALS, err.message, status)
            if status in (401, 403):
                return AuthError(AuthErrorKind.UNAUTHORIZED, err.message, status)
            return AuthError(AuthErrorKind.SERVER, err.message, status)


def _decode[M: BaseModel](model: type[M], resp: Response) -> Result[M, AuthError]:
    try:
        return Ok(model.model_validate(resp.json_object()))
    except ValidationError as e:
        logger.warning("auth.malformed_payload", model=model.__name__, errors=e.error_count())
        return Error(AuthError(AuthErrorKind.SERVER, "Malformed response from auth provider"))


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP Provider
# ═══════════════════════════════════════════════════════════════════════════════


class HttpAuthProvider:
    """
    GoTrue-style provider over RequestExecutor.

    Every call runs under the AUTH budget.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        config: TopupConfig,
        tokens: TokenStore | None = None,
    ) -> None:
        self._executor = executor
        self._config = config
        self._tokens: TokenStore = tokens if tokens is not None else MemoryTokenStore()

    def _auth_url(self, path: str) -> str:
        return f"{self._config.auth_base_url}/{path.lstrip('/')}"

    async def _token_grant(
        self, grant_type: str, body: BaseModel, *, credentials: bool
    ) -> Result[Identity, AuthError]:
        result = await self._executor.request(
            "POST",
            self._auth_url("token"),
            budget=Budget.AUTH,
            json=body.model_dump(),
            params={"grant_type": grant_type},
            access_token=self._config.anon_key or None,
        )
        match result:
            case Error(err):
                return Error(auth_error_from(err, credentials=credentials))
            case Ok(resp):
                decoded = _decode(TokenOut, resp)

        match decoded:
            case Ok(token):
                identity = token.to_domain()
                if identity.refresh_token:
                    self._tokens.save(identity.refresh_token)
                return Ok(identity)
            case Error(e):
                return Error(e)

    async def sign_in(self, email: str, password: str) -> Result[Identity, AuthError]:
        return await self._token_grant(
            "password", SignInIn(email=email, password=password), credentials=True
        )

    async def sign_up(
        self, email: str, password: str, full_name: str | None = None
    ) -> Result[None, AuthError]:
        result = await self._executor.post(
            "/auth/signup",
            SignUpIn(email=email, password=password, full_name=full_name).model_dump(),
            budget=Budget.AUTH,
        )
        match result:
            case Ok(_):
                return Ok(None)
            case Error(err):
                return Error(auth_error_from(err))

    async def sign_out(self, access_token: str) -> Result[None, AuthError]:
        self._tokens.clear()
        result = await self._executor.request(
            "POST",
            self._auth_url("logout"),
            budget=Budget.AUTH,
            access_token=access_token,
        )
        match result:
            case Ok(_):
                return Ok(None)
            case Error(err):
                return Error(auth_error_from(err))

    async def get_session(self) -> Result[Identity | None, AuthError]:
        refresh_token = self._tokens.load()
        if not refresh_token:
            return Ok(None)

        result = await self._token_grant(
            "refresh_token", RefreshIn(refresh_token=refresh_token), credentials=False
        )
        match result:
            case Error(e) if e.status in (400, 401, 403):
                # Persisted token was revoked; nothing to restore
                self._tokens.clear()
                return Ok(None)
            case Error(e):
                return Error(e)
            case Ok(identity):
                return Ok(identity)

    async def get_user(self, access_token: str) -> Result[UserInfo, AuthError]:
        result = await self._executor.get(
            self._auth_url("user"), budget=Budget.AUTH, access_token=access_token
        )
        match result:
            case Error(err):
                return Error(auth_error_from(err))
            case Ok(resp):
                decoded = _decode(UserOut, resp)

        match decoded:
            case Ok(user):
                return Ok(user.to_domain())
            case Error(e):
                return Error(e)


__all__ = (
    "AuthProvider",
    "TokenStore",
    "MemoryTokenStore",
    "auth_error_from",
    "HttpAuthProvider",
)
