"""
Request types: responses and transport error taxonomy.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


# ═══════════════════════════════════════════════════════════════════════════════
# Budget: Which timeout applies
# ═══════════════════════════════════════════════════════════════════════════════


class Budget(Enum):
    """
    Timeout budget of an operation.

    READ:    catalog and order fetches
    WRITE:   order creation, fulfillment
    PAYMENT: gateway create/capture and direct payment submission
    UPLOAD:  file uploads
    AUTH:    session fetch and sign-in
    """

    READ = auto()
    WRITE = auto()
    PAYMENT = auto()
    UPLOAD = auto()
    AUTH = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Response
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Response:
    """
    Successful (2xx) response.

    body is the decoded JSON when the content type says so, else raw text.
    """

    status: int
    body: Any
    headers: Mapping[str, str] = field(default_factory=dict)

    def json_object(self) -> dict[str, Any]:
        """Body as a JSON object, empty dict for anything else."""
        return self.body if isinstance(self.body, dict) else {}


# ═══════════════════════════════════════════════════════════════════════════════
# Error Taxonomy
# ═══════════════════════════════════════════════════════════════════════════════


class RequestErrorKind(Enum):
    """Kinds of transport errors."""

    VALIDATION = auto()  # Rejected locally, never sent
    TIMEOUT = auto()  # Deadline elapsed
    ABORTED = auto()  # Cancelled by the caller
    HTTP = auto()  # Non-2xx response, status set
    NETWORK = auto()  # Connection failure


@dataclass(frozen=True, slots=True)
class RequestError:
    """
    Classified transport error.

    Note: message already went through the payload fallback chain.
    """

    kind: RequestErrorKind
    message: str
    status: int | None = None
    payload: Any = None

    @property
    def is_server_error(self) -> bool:
        return self.kind == RequestErrorKind.HTTP and (self.status or 0) >= 500

    @property
    def is_unauthorized(self) -> bool:
        return self.kind == RequestErrorKind.HTTP and self.status in (401, 403)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Budget",
    "Response",
    "RequestErrorKind",
    "RequestError",
)
