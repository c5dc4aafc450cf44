"""
Configuration: immutable client settings.

    config = (
        TopupConfig.from_env()
        .with_api_base_url("https://shop.example.com/functions/v1/server")
        .with_timeouts(payment=45)
    )

Environment (read through python-dotenv, so a local `.env` works):

    TOPUP_API_BASE_URL      backend function base url
    TOPUP_AUTH_URL          auth provider base url
    TOPUP_ANON_KEY          anonymous bearer key for unauthenticated calls
    TOPUP_AUTH_TIMEOUT      seconds, session fetch / sign-in budget
    TOPUP_READ_TIMEOUT      seconds
    TOPUP_WRITE_TIMEOUT     seconds
    TOPUP_PAYMENT_TIMEOUT   seconds
    TOPUP_UPLOAD_TIMEOUT    seconds
    TOPUP_CURRENCY          ISO currency for direct payments
    TOPUP_RETURN_URL        gateway return target
    TOPUP_CANCEL_URL        gateway cancel target
    TOPUP_REDIRECT_DB_URL   SQLAlchemy url of the redirect store
    TOPUP_LOG_LEVEL         logging level name
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace

from dotenv import load_dotenv


# ═══════════════════════════════════════════════════════════════════════════════
# Timeouts: Per-operation Budgets
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Timeouts:
    """Timeout budgets in seconds."""

    read: float = 15.0
    write: float = 10.0
    payment: float = 30.0
    upload: float = 30.0
    auth: float = 5.0


# ═══════════════════════════════════════════════════════════════════════════════
# TopupConfig
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class TopupConfig:
    """
    Client configuration.

    Fluent builder pattern: each `with_*` returns a new config.
    """

    api_base_url: str = "http://localhost:54321/functions/v1/server"
    auth_base_url: str = "http://localhost:54321/auth/v1"
    anon_key: str = ""
    timeouts: Timeouts = field(default_factory=Timeouts)
    currency: str = "USD"
    return_url: str = "http://localhost:3000/payment/paypal/return"
    cancel_url: str = "http://localhost:3000/payment/paypal/cancel"
    redirect_db_url: str = "sqlite+aiosqlite:///topup_redirects.db"
    fallback_message: str = "Request failed, please try again later"
    catalog_cache_size: int = 256
    log_level: str = "INFO"

    def with_api_base_url(self, url: str) -> TopupConfig:
        return replace(self, api_base_url=url.rstrip("/"))

    def with_auth_base_url(self, url: str) -> TopupConfig:
        return replace(self, auth_base_url=url.rstrip("/"))

    def with_anon_key(self, key: str) -> TopupConfig:
        return replace(self, anon_key=key)

    def with_timeouts(
        self,
        *,
        read: float | None = None,
        write: float | None = None,
        payment: float | None = None,
        upload: float | None = None,
        auth: float | None = None,
    ) -> TopupConfig:
        """
        Override timeout budgets (seconds). Unset budgets keep their value.

        Example:
            .with_timeouts(auth=1, payment=45)
        """
        current = self.timeouts
        return replace(
            self,
            timeouts=Timeouts(
                read=read if read is not None else current.read,
                write=write if write is not None else current.write,
                payment=payment if payment is not None else current.payment,
                upload=upload if upload is not None else current.upload,
                auth=auth if auth is not None else current.auth,
            ),
        )

    def with_currency(self, currency: str) -> TopupConfig:
        return replace(self, currency=currency.upper())

    def with_redirect_urls(self, *, return_url: str, cancel_url: str) -> TopupConfig:
        return replace(self, return_url=return_url, cancel_url=cancel_url)

    def with_redirect_db_url(self, url: str) -> TopupConfig:
        return replace(self, redirect_db_url=url)

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> TopupConfig:
        """Build config from environment, loading `.env` first if present."""
        load_dotenv(dotenv_path)
        defaults = cls()
        base = defaults.timeouts
        return cls(
            api_base_url=os.getenv("TOPUP_API_BASE_URL", defaults.api_base_url).rstrip("/"),
            auth_base_url=os.getenv("TOPUP_AUTH_URL", defaults.auth_base_url).rstrip("/"),
            anon_key=os.getenv("TOPUP_ANON_KEY", defaults.anon_key),
            timeouts=Timeouts(
                read=_float_env("TOPUP_READ_TIMEOUT", base.read),
                write=_float_env("TOPUP_WRITE_TIMEOUT", base.write),
                payment=_float_env("TOPUP_PAYMENT_TIMEOUT", base.payment),
                upload=_float_env("TOPUP_UPLOAD_TIMEOUT", base.upload),
                auth=_float_env("TOPUP_AUTH_TIMEOUT", base.auth),
            ),
            currency=os.getenv("TOPUP_CURRENCY", defaults.currency).upper(),
            return_url=os.getenv("TOPUP_RETURN_URL", defaults.return_url),
            cancel_url=os.getenv("TOPUP_CANCEL_URL", defaults.cancel_url),
            redirect_db_url=os.getenv("TOPUP_REDIRECT_DB_URL", defaults.redirect_db_url),
            log_level=os.getenv("TOPUP_LOG_LEVEL", defaults.log_level).upper(),
        )


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from e


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Timeouts",
    "TopupConfig",
)
