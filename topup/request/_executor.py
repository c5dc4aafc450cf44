"""
RequestExecutor: bounded-timeout HTTP calls with classified errors.

Every call:
    - runs under the deadline of its Budget (READ/WRITE/PAYMENT/UPLOAD/AUTH)
    - can be aborted through a CancelToken
    - carries `Authorization: Bearer <session token | anon key>`
    - resolves to Ok(Response) or Error(RequestError), never raises transport errors

No automatic retries: callers decide whether to offer one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import httpx
import structlog
from kungfu import LazyCoroResult, Result, Ok, Error

from topup.config import TopupConfig
from topup.request._cancel import CancelToken
from topup.request._types import (
    Budget,
    Response,
    RequestError,
    RequestErrorKind,
)

logger = structlog.get_logger(__name__)

type TokenSource = Callable[[], str | None]

TIMEOUT_MESSAGE = "Request timed out, please check your connection"
NETWORK_MESSAGE = "Unable to reach the server"


# ═══════════════════════════════════════════════════════════════════════════════
# Payload helpers
# ═══════════════════════════════════════════════════════════════════════════════


def extract_message(payload: Any, fallback: str) -> str:
    """
    Pick a human message out of an error payload.

    Chain: payload.error → payload.message → fallback.
    """
    if isinstance(payload, dict):
        for field in ("error", "message"):
            value = payload.get(field)
            if isinstance(value, str) and value.strip():
                return value
            if isinstance(value, dict):
                nested = value.get("message")
                if isinstance(nested, str) and nested.strip():
                    return nested
    return fallback


def decode_body(response: httpx.Response) -> Any:
    """JSON when the content type says so, text otherwise."""
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


def timeout_for(config: TopupConfig, budget: Budget) -> float:
    t = config.timeouts
    match budget:
        case Budget.READ:
            return t.read
        case Budget.WRITE:
            return t.write
        case Budget.PAYMENT:
            return t.payment
        case Budget.UPLOAD:
            return t.upload
        case Budget.AUTH:
            return t.auth


# ═══════════════════════════════════════════════════════════════════════════════
# Executor
# ═══════════════════════════════════════════════════════════════════════════════


class RequestExecutor:
    """
    Uniform network call wrapper.

    Example:
        executor = RequestExecutor(httpx.AsyncClient(), config, session.access_token)

        match await executor.get("/products"):
            case Ok(resp):
                games = resp.json_object()["games"]
            case Error(err) if err.kind == RequestErrorKind.TIMEOUT:
                show_retry(err.message)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: TopupConfig,
        token_source: TokenSource | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self._token_source = token_source

    @property
    def config(self) -> TopupConfig:
        return self._config

    def bind_token_source(self, source: TokenSource) -> None:
        """Attach the session token provider after construction."""
        self._token_source = source

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._config.api_base_url}/{path.lstrip('/')}"

    def _headers(
        self, access_token: str | None, extra: Mapping[str, str] | None
    ) -> dict[str, str]:
        token = access_token
        if token is None and self._token_source is not None:
            token = self._token_source()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token or self._config.anon_key}",
        }
        if self._config.anon_key:
            headers["apikey"] = self._config.anon_key
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        method: str,
        path: str,
        *,
        budget: Budget,
        json: Any = None,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        access_token: str | None = None,
        cancel: CancelToken | None = None,
    ) -> LazyCoroResult[Response, RequestError]:
        """Build a lazy call. Nothing is sent until awaited."""
        client = self._client
        deadline = timeout_for(self._config, budget)
        fallback = self._config.fallback_message

        async def execute() -> Result[Response, RequestError]:
            if not path:
                return Error(RequestError(RequestErrorKind.VALIDATION, "Empty request path"))
            if cancel is not None and cancel.cancelled:
                return Error(
                    RequestError(RequestErrorKind.ABORTED, cancel.reason or "Request cancelled")
                )

            try:
                request = client.build_request(
                    method.upper(),
                    self.url_for(path),
                    json=json if method.upper() != "GET" else None,
                    params=params,
                    headers=self._headers(access_token, headers),
                    timeout=deadline,
                )
            except (TypeError, ValueError, httpx.InvalidURL) as e:
                return Error(RequestError(RequestErrorKind.VALIDATION, str(e)))

            log = logger.bind(method=request.method, path=request.url.path, budget=budget.name)
            sent = await _send_within(client, request, deadline, cancel)

            match sent:
                case Error(err):
                    log.warning("request.failed", kind=err.kind.name, error=err.message)
                    return Error(err)
                case Ok(raw):
                    pass

            body = decode_body(raw)
            if raw.is_success:
                log.debug("request.ok", status=raw.status_code)
                return Ok(Response(status=raw.status_code, body=body, headers=dict(raw.headers)))

            message = extract_message(body, f"{fallback} ({raw.status_code})")
            log.warning("request.http_error", status=raw.status_code, error=message)
            return Error(
                RequestError(
                    RequestErrorKind.HTTP,
                    message,
                    status=raw.status_code,
                    payload=body,
                )
            )

        return LazyCoroResult(execute)

    def get(
        self,
        path: str,
        *,
        budget: Budget = Budget.READ,
        params: Mapping[str, str] | None = None,
        access_token: str | None = None,
        cancel: CancelToken | None = None,
    ) -> LazyCoroResult[Response, RequestError]:
        return self.request(
            "GET", path, budget=budget, params=params, access_token=access_token, cancel=cancel
        )

    def post(
        self,
        path: str,
        json: Any = None,
        *,
        budget: Budget = Budget.WRITE,
        access_token: str | None = None,
        cancel: CancelToken | None = None,
    ) -> LazyCoroResult[Response, RequestError]:
        return self.request(
            "POST", path, budget=budget, json=json, access_token=access_token, cancel=cancel
        )


async def _send_within(
    client: httpx.AsyncClient,
    request: httpx.Request,
    deadline: float,
    cancel: CancelToken | None,
) -> Result[httpx.Response, RequestError]:
    """Race the send against the deadline and the cancel token."""
    send = asyncio.ensure_future(client.send(request))
    waiters: set[asyncio.Future[Any]] = {send}
    stop = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
    if stop is not None:
        waiters.add(stop)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=deadline, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for waiter in waiters:
            if not waiter.done():
                waiter.cancel()

    if cancel is not None and stop in done:
        return Error(RequestError(RequestErrorKind.ABORTED, cancel.reason or "Request cancelled"))

    if send not in done:
        return Error(RequestError(RequestErrorKind.TIMEOUT, TIMEOUT_MESSAGE))

    try:
        return Ok(send.result())
    except httpx.TimeoutException:
        return Error(RequestError(RequestErrorKind.TIMEOUT, TIMEOUT_MESSAGE))
    except httpx.TransportError as e:
        return Error(RequestError(RequestErrorKind.NETWORK, f"{NETWORK_MESSAGE}: {e}"))
    except (httpx.HTTPError, httpx.StreamError) as e:
        # Undecodable body, redirect loop: the response never became usable
        logger.warning("request.unreadable_response", url=str(request.url), error=type(e).__name__)
        return Error(RequestError(RequestErrorKind.NETWORK, f"{NETWORK_MESSAGE}: {e}"))


__all__ = (
    "RequestExecutor",
    "TokenSource",
    "extract_message",
    "decode_body",
    "timeout_for",
    "TIMEOUT_MESSAGE",
    "NETWORK_MESSAGE",
)
