"""
Session shapes.

The engine returns a loosely-typed session payload. `AuthSession` maps it
onto a stable public shape: known base fields are typed, everything else
(roles, tokens, custom ids added by engine callbacks) is carried along as
extension fields instead of being dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict


USER_BASE_FIELDS = ("name", "email", "image")
SESSION_BASE_FIELDS = ("user", "expires")


class AuthUser(BaseModel):
    """
    Public user shape.

    Base profile fields plus any extension fields, e.g.:
        user.roles, user.id
    """

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    email: str | None = None
    image: str | None = None

    @property
    def extensions(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    @property
    def roles(self) -> list[str]:
        roles = (self.model_extra or {}).get("roles") or []
        if isinstance(roles, str):
            roles = [roles]
        return [str(role) for role in roles]


class AuthSession(BaseModel):
    """
    Public session shape.

    Usage:
        session = AuthSession.from_core(raw)
        if session:
            print(session.user.email, session.to_dict()["idToken"])
    """

    model_config = ConfigDict(extra="allow")

    user: AuthUser | None = None
    expires: str | None = None

    @classmethod
    def from_core(cls, raw: Any) -> AuthSession | None:
        """
        Build from the engine's raw session payload.

        Returns None when there is no session or the session has no user.
        """
        if isinstance(raw, AuthSession):
            raw = raw.to_dict()
        if not isinstance(raw, dict):
            return None

        raw_user = raw.get("user")
        if not isinstance(raw_user, dict):
            return None

        user: dict[str, Any] = {}
        for key in USER_BASE_FIELDS:
            if key in raw_user:
                user[key] = raw_user[key]
        user.update({k: v for k, v in raw_user.items() if k not in USER_BASE_FIELDS})

        data: dict[str, Any] = {"user": AuthUser.model_validate(user)}
        if isinstance(raw.get("expires"), str):
            data["expires"] = raw["expires"]
        data.update({k: v for k, v in raw.items() if k not in SESSION_BASE_FIELDS})

        return cls.model_validate(data)

    @property
    def extensions(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def to_dict(self) -> dict[str, Any]:
        """Plain dict in the public shape, extensions included."""
        return self.model_dump(exclude_unset=True)

    def with_fields(self, **patch: Any) -> AuthSession:
        """Return a copy with extra fields merged in (shallow)."""
        data = self.to_dict()
        data.update(patch)
        return AuthSession.model_validate(data)


# =============================================================================
# Request context
# =============================================================================


@dataclass
class AuthContext:
    """
    What the guard learned about the current request.

    Attached to the request by the runtime adapter and read by handlers:
        ctx = adapter.get_context(request)
        if ctx.is_authenticated:
            ...
    """

    session: AuthSession | None = None
    user: AuthUser | None = None
    property_name: str = "user"

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def roles(self) -> list[str]:
        """Roles of the resolved user (empty when anonymous)."""
        return self.user.roles if self.user else []

    @classmethod
    def anonymous(cls, property_name: str = "user") -> AuthContext:
        return cls(session=None, user=None, property_name=property_name)

    @classmethod
    def from_session(cls, session: AuthSession | None, property_name: str = "user") -> AuthContext:
        return cls(session=session, user=session.user if session else None, property_name=property_name)
