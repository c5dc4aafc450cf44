"""
Request: uniform bounded-timeout network calls.

    from topup import request as R

    executor = R.RequestExecutor(client, config, token_source=session.access_token)
    token = R.CancelToken()

    match await executor.post("/orders", body, budget=R.Budget.WRITE, cancel=token):
        case Ok(resp):
            ...
        case Error(R.RequestError(kind=R.RequestErrorKind.TIMEOUT)):
            ...
"""

from topup.request._types import (
    Budget,
    Response,
    RequestError,
    RequestErrorKind,
)
from topup.request._cancel import CancelToken
from topup.request._executor import (
    RequestExecutor,
    TokenSource,
    extract_message,
    decode_body,
    timeout_for,
    TIMEOUT_MESSAGE,
    NETWORK_MESSAGE,
)

__all__ = (
    "Budget",
    "Response",
    "RequestError",
    "RequestErrorKind",
    "CancelToken",
    "RequestExecutor",
    "TokenSource",
    "extract_message",
    "decode_body",
    "timeout_for",
    "TIMEOUT_MESSAGE",
    "NETWORK_MESSAGE",
)
