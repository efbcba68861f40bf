"""
Staff sessions for the admin panel.

The browser only holds an opaque session id inside Starlette's signed
session cookie. The authenticated user (the credential row without its
password) lives server-side in SessionStore, so logging out or restarting
the process invalidates every session.
"""

import secrets
import time
from dataclasses import dataclass, field
from typing import Callable, Optional
from fastapi import Request
from prionstudy.config import get_settings
from prionstudy.exceptions import AuthError, ForbiddenError

SESSION_KEY = "sid"


@dataclass
class UserPrincipal:
    """Resolved identity attached to each request."""
    username: str
    display_name: str
    role: str
    lang: str = "es"
    list_name: str = ""
    fields: dict = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: dict) -> "UserPrincipal":
        return cls(
            username=record["user"],
            display_name=record.get("full_name") or record["user"],
            role=record.get("role") or "user",
            lang=record.get("lang") or "es",
            list_name=record.get("list", ""),
            fields={k: v for k, v in record.items() if k != "password"},
        )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def as_record(self) -> dict:
        return dict(self.fields)


class SessionStore:
    def __init__(self, max_age: int, clock: Callable[[], float] = time.time):
        self.max_age = max_age
        self._clock = clock
        self._sessions: dict[str, tuple[UserPrincipal, float]] = {}

    def _expired(self, created_at: float) -> bool:
        return self._clock() - created_at > self.max_age

    def prune(self) -> int:
        """Drop abandoned sessions; returns how many were removed."""
        stale = [sid for sid, (_, created_at) in self._sessions.items() if self._expired(created_at)]
        for sid in stale:
            del self._sessions[sid]
        return len(stale)

    def create(self, user: UserPrincipal) -> str:
        self.prune()
        session_id = secrets.token_urlsafe(32)
        self._sessions[session_id] = (user, self._clock())
        return session_id

    def get(self, session_id: Optional[str]) -> Optional[UserPrincipal]:
        if not session_id or session_id not in self._sessions:
            return None
        user, created_at = self._sessions[session_id]
        if self._expired(created_at):
            del self._sessions[session_id]
            return None
        return user

    def destroy(self, session_id: Optional[str]) -> None:
        if session_id:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


session_store = SessionStore(max_age=get_settings().session_max_age)


def login_session(request: Request, user: UserPrincipal) -> None:
    request.session[SESSION_KEY] = session_store.create(user)


def logout_session(request: Request) -> None:
    session_store.destroy(request.session.get(SESSION_KEY))
    request.session.clear()


async def get_current_user(request: Request) -> UserPrincipal:
    """FastAPI dependency. Raises AuthError (401) when there is no live session."""
    user = session_store.get(request.session.get(SESSION_KEY))
    if user is None:
        raise AuthError("Unauthorized")
    return user


async def require_admin(request: Request) -> UserPrincipal:
    user = await get_current_user(request)
    if not user.is_admin:
        raise ForbiddenError("Your role does not permit this action")
    return user


async def require_admin_token(request: Request) -> None:
    """Guard for the backup endpoints; open when ADMIN_TOKEN is unset."""
    expected = get_settings().admin_token
    if expected and not secrets.compare_digest(request.headers.get("X-Admin-Token", ""), expected):
        raise AuthError("Invalid admin token")
