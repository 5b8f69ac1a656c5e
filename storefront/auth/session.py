"""Server-side sessions keyed by an opaque cookie.

The store only ever holds ``{"user_id": <int>}``. Two backends exist: an
in-process dict with lazy expiry pruning, and Redis with per-key TTLs. The
active store lives in ``app.extensions["session_store"]`` and is created and
closed with the app.
"""
import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from functools import wraps
from typing import Any, Dict, Optional, Tuple

from quart import current_app, g, jsonify, request

from ..common.config import settings
from ..common.redis_client import close_redis, get_redis

_logger = logging.getLogger(__name__)


class SessionStore(ABC):
    @abstractmethod
    async def get(self, sid: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set(self, sid: str, data: Dict[str, Any], ttl: int) -> None:
        ...

    @abstractmethod
    async def destroy(self, sid: str) -> None:
        ...

    async def close(self) -> None:
        pass


class MemorySessionStore(SessionStore):
    def __init__(self, prune_interval: float = 60.0):
        self._data: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._prune_interval = prune_interval
        self._last_prune = time.monotonic()

    def _prune(self, now: float) -> None:
        if now - self._last_prune < self._prune_interval:
            return
        self._last_prune = now
        expired = [sid for sid, (expires_at, _) in self._data.items() if expires_at <= now]
        for sid in expired:
            del self._data[sid]

    async def get(self, sid: str) -> Optional[Dict[str, Any]]:
        now = time.monotonic()
        self._prune(now)
        entry = self._data.get(sid)
        if entry is None:
            return None
        expires_at, data = entry
        if expires_at <= now:
            self._data.pop(sid, None)
            return None
        return dict(data)

    async def set(self, sid: str, data: Dict[str, Any], ttl: int) -> None:
        self._data[sid] = (time.monotonic() + ttl, dict(data))

    async def destroy(self, sid: str) -> None:
        self._data.pop(sid, None)

    async def close(self) -> None:
        self._data.clear()


class RedisSessionStore(SessionStore):
    def __init__(self, prefix: str = "session:"):
        self.prefix = prefix

    def _key(self, sid: str) -> str:
        return f"{self.prefix}{sid}"

    async def get(self, sid: str) -> Optional[Dict[str, Any]]:
        r = await get_redis()
        raw = await r.get(self._key(sid))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            _logger.warning("Discarding unreadable session | sid_prefix=%s", sid[:6])
            await r.delete(self._key(sid))
            return None

    async def set(self, sid: str, data: Dict[str, Any], ttl: int) -> None:
        r = await get_redis()
        await r.set(self._key(sid), json.dumps(data), ex=ttl)

    async def destroy(self, sid: str) -> None:
        r = await get_redis()
        await r.delete(self._key(sid))

    async def close(self) -> None:
        await close_redis()


def build_session_store() -> SessionStore:
    backend = settings.SESSION_BACKEND.strip().lower()
    if backend == "redis":
        return RedisSessionStore(prefix=settings.SESSION_KEY_PREFIX)
    if backend == "memory":
        return MemorySessionStore()
    raise ValueError(f"Unknown SESSION_BACKEND: {settings.SESSION_BACKEND!r}")


def _store() -> SessionStore:
    return current_app.extensions["session_store"]


async def load_session() -> None:
    """before_request hook: resolve the session cookie to ``g.user_id``."""
    g.session_id = None
    g.user_id = None
    sid = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not sid:
        return
    data = await _store().get(sid)
    if data and data.get("user_id"):
        g.session_id = sid
        g.user_id = int(data["user_id"])


async def start_session(response, user_id: int, remember: bool = False):
    previous = getattr(g, "session_id", None)
    if previous:
        await _store().destroy(previous)
    sid = secrets.token_urlsafe(32)
    await _store().set(sid, {"user_id": user_id}, settings.SESSION_TTL_SECONDS)
    g.session_id = sid
    g.user_id = user_id
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        sid,
        max_age=settings.SESSION_TTL_SECONDS if remember else None,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="Lax",
    )
    return response


async def end_session(response):
    sid = getattr(g, "session_id", None) or request.cookies.get(settings.SESSION_COOKIE_NAME)
    if sid:
        await _store().destroy(sid)
    g.session_id = None
    g.user_id = None
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response


def current_user_id() -> Optional[int]:
    return getattr(g, "user_id", None)


def require_auth(func):
    @wraps(func)
    async def wrapper(*args, **kwargs):
        if current_user_id() is None:
            return jsonify({"message": "Authentification requise"}), 401
        return await func(*args, **kwargs)

    return wrapper
