"""
Auth wire models: provider JSON to session types.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from topup.session._types import Identity, UserInfo


class UserOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email: str = ""
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    app_metadata: dict[str, Any] = Field(default_factory=dict)

    def claims(self) -> dict[str, Any]:
        # user_metadata wins; app_metadata is the provider-managed fallback
        return {**self.app_metadata, **self.user_metadata}

    def to_domain(self) -> UserInfo:
        return UserInfo(user_id=self.id, email=self.email, metadata=self.claims())


class TokenOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    expires_at: int | None = None
    user: UserOut

    def to_domain(self, now: datetime | None = None) -> Identity:
        now = now or datetime.now(timezone.utc)
        expires: datetime | None = None
        if self.expires_at is not None:
            expires = datetime.fromtimestamp(self.expires_at, tz=timezone.utc)
        elif self.expires_in is not None:
            expires = now + timedelta(seconds=self.expires_in)
        return Identity(
            user_id=self.user.id,
            email=self.user.email,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=expires,
            metadata=self.user.claims(),
        )


class SignInIn(BaseModel):
    email: str
    password: str


class SignUpIn(BaseModel):
    email: str
    password: str
    full_name: str | None = None


class RefreshIn(BaseModel):
    refresh_token: str


__all__ = (
    "UserOut",
    "TokenOut",
    "SignInIn",
    "SignUpIn",
    "RefreshIn",
)
