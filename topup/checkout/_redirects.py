"""
Redirect store: pending gateway redirects that outlive the page.

Written before the browser leaves for the gateway, read back on return,
cleared once the redirect resolves. Two implementations:

    MemoryRedirectStore      tests, single process
    SQLAlchemyRedirectStore  durable, any async SQLAlchemy URL (aiosqlite by default)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from combinators import lift as L
from kungfu import Result, Ok
from sqlalchemy import DateTime, String, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from topup.checkout._types import PendingRedirect
from topup.payments import PaymentMethod


@dataclass(frozen=True, slots=True)
class RedirectStoreError:
    message: str
    cause: Exception | None = None


class RedirectStore(Protocol):
    async def save(self, pending: PendingRedirect) -> Result[None, RedirectStoreError]: ...

    async def load(self, order_id: str) -> Result[PendingRedirect | None, RedirectStoreError]: ...

    async def delete(self, order_id: str) -> Result[bool, RedirectStoreError]: ...


# ═══════════════════════════════════════════════════════════════════════════════
# In-memory
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryRedirectStore:
    def __init__(self) -> None:
        self._data: dict[str, PendingRedirect] = {}
        self._lock = asyncio.Lock()

    async def save(self, pending: PendingRedirect) -> Result[None, RedirectStoreError]:
        async with self._lock:
            self._data[pending.order_id] = pending
            return Ok(None)

    async def load(self, order_id: str) -> Result[PendingRedirect | None, RedirectStoreError]:
        return Ok(self._data.get(order_id))

    async def delete(self, order_id: str) -> Result[bool, RedirectStoreError]:
        async with self._lock:
            return Ok(self._data.pop(order_id, None) is not None)

    def __len__(self) -> int:
        return len(self._data)


# ═══════════════════════════════════════════════════════════════════════════════
# SQLAlchemy
# ═══════════════════════════════════════════════════════════════════════════════


class RedirectBase(DeclarativeBase):
    pass


class PendingRedirectRow(RedirectBase):
    __tablename__ = "pending_redirects"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    checkout_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_domain(self) -> PendingRedirect:
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return PendingRedirect(
            order_id=self.order_id,
            method=PaymentMethod(self.method),
            created_at=created,
            checkout_id=self.checkout_id,
        )


class SQLAlchemyRedirectStore:
    """
    Example:
        store = await SQLAlchemyRedirectStore.create("sqlite+aiosqlite:///redirects.db")
        await store.save(PendingRedirect(order.id, PaymentMethod.PAYPAL, datetime.now(timezone.utc)))
        ...
        await store.dispose()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    async def create(cls, url: str) -> SQLAlchemyRedirectStore:
        """Create engine and schema, return a ready store owning the engine."""
        engine = create_async_engine(url, echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(RedirectBase.metadata.create_all)
        return cls(async_sessionmaker(engine, expire_on_commit=False), engine)

    async def save(self, pending: PendingRedirect) -> Result[None, RedirectStoreError]:
        async def do_save() -> None:
            async with self._session_factory() as session:
                await session.merge(
                    PendingRedirectRow(
                        order_id=pending.order_id,
                        method=pending.method.value,
                        checkout_id=pending.checkout_id,
                        created_at=pending.created_at,
                    )
                )
                await session.commit()

        return await L.catching_async(
            do_save,
            on_error=lambda e: RedirectStoreError(f"Failed to save redirect: {e}", e),
        )

    async def load(self, order_id: str) -> Result[PendingRedirect | None, RedirectStoreError]:
        async def do_load() -> PendingRedirect | None:
            async with self._session_factory() as session:
                stmt = select(PendingRedirectRow).where(PendingRedirectRow.order_id == order_id)
                row = (await session.execute(stmt)).scalar_one_or_none()
                return row.to_domain() if row is not None else None

        return await L.catching_async(
            do_load,
            on_error=lambda e: RedirectStoreError(f"Failed to load redirect: {e}", e),
        )

    async def delete(self, order_id: str) -> Result[bool, RedirectStoreError]:
        async def do_delete() -> bool:
            async with self._session_factory() as session:
                row = await session.get(PendingRedirectRow, order_id)
                if row is None:
                    return False
                await session.delete(row)
                await session.commit()
                return True

        return await L.catching_async(
            do_delete,
            on_error=lambda e: RedirectStoreError(f"Failed to delete redirect: {e}", e),
        )

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()


__all__ = (
    "RedirectStoreError",
    "RedirectStore",
    "MemoryRedirectStore",
    "RedirectBase",
    "PendingRedirectRow",
    "SQLAlchemyRedirectStore",
)
