"""
Cancellation token: abort in-flight requests from outside.
"""

from __future__ import annotations

import asyncio


class CancelToken:
    """
    One-shot cancellation signal.

    Example:
        token = CancelToken()
        task = asyncio.create_task(executor.get("/products", cancel=token)())
        token.cancel("user left the page")
        result = await task   # Error(RequestError(kind=ABORTED, ...))
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "Request cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


__all__ = ("CancelToken",)
