"""Cookie-backed session storage.

A session is identified by the ``session_id`` cookie. Its values live either
inside the signed ``app_session`` cookie or in a Redis hash keyed by the id; both
backends share the ``SessionStore`` interface so ``SessionManager`` does not
care which one is in use.
"""
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Protocol

import redis
from fastapi import Request, Response

from backend.auth import session_token
from backend.core import config

logger = logging.getLogger(__name__)

SESSION_ID_COOKIE = "session_id"
SESSION_DATA_COOKIE = "app_session"


class CookieJar(Protocol):
    def read_cookie(self, name: str) -> str | None:
        ...

    def write_cookie(self, name: str, value: str) -> None:
        ...

    def delete_cookie(self, name: str) -> None:
        ...


class SessionStore(Protocol):
    def load(self, jar: CookieJar, session_id: str) -> dict | None:
        ...

    def save(self, jar: CookieJar, session_id: str, data: dict) -> None:
        ...

    def delete(self, jar: CookieJar, session_id: str) -> None:
        ...


def _expires_at() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=config.SESSION_MAX_AGE_DAYS)


class CookieSessionStore:
    """Keeps the session values client-side in a signed token."""

    def load(self, jar: CookieJar, session_id: str) -> dict | None:
        claims = session_token.decrypt(jar.read_cookie(SESSION_DATA_COOKIE))
        if not claims:
            return None
        try:
            data = json.loads(claims["data"])
        except (KeyError, TypeError, ValueError):
            logger.debug("Session token for %s carried no readable data", session_id)
            return None
        return data if isinstance(data, dict) else None

    def save(self, jar: CookieJar, session_id: str, data: dict) -> None:
        token = session_token.encrypt({
            "data": json.dumps(data),
            "expires": _expires_at().isoformat(),
        })
        jar.write_cookie(SESSION_DATA_COOKIE, token)

    def delete(self, jar: CookieJar, session_id: str) -> None:
        # The data cookie is dropped together with the id cookie in SessionManager.clear.
        return None


_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        logger.info("Connecting session store to Redis")
        _redis_client = redis.from_url(config.REDIS_URL, decode_responses=True)
    return _redis_client


class RedisSessionStore:
    """Keeps the session values in a Redis hash keyed by session id.

    Each session key is one hash field holding a JSON value. The hash expires
    together with the session cookie, so an abandoned session disappears from
    Redis on its own.
    """

    key_prefix = "session:"

    def __init__(self, client: redis.Redis | None = None) -> None:
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis_client()
        return self._client

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def load(self, jar: CookieJar, session_id: str) -> dict | None:
        fields = self.client.hgetall(self._key(session_id))
        if not fields:
            return None
        data = {}
        for name, raw in fields.items():
            try:
                data[name] = json.loads(raw)
            except ValueError:
                logger.warning("Skipping unreadable session field %s for %s", name, session_id)
        return data

    def save(self, jar: CookieJar, session_id: str, data: dict) -> None:
        key = self._key(session_id)
        stale = [name for name in self.client.hkeys(key) if name not in data]
        if stale:
            self.client.hdel(key, *stale)
        if data:
            self.client.hset(key, mapping={name: json.dumps(value) for name, value in data.items()})
            self.client.expire(key, config.SESSION_MAX_AGE_SECONDS)

    def delete(self, jar: CookieJar, session_id: str) -> None:
        self.client.delete(self._key(session_id))


_cookie_store = CookieSessionStore()
_redis_store = RedisSessionStore()


def get_session_store() -> SessionStore:
    if config.SESSION_BACKEND == "redis":
        return _redis_store
    return _cookie_store


class SessionManager:
    """Reads session values from the request and writes cookies to the response.

    Writes are remembered so that a later read in the same request sees them.
    """

    def __init__(self, request: Request, response: Response, store: SessionStore | None = None) -> None:
        self.request = request
        self.response = response
        self.store = store or get_session_store()
        self._pending: dict[str, str | None] = {}

    def read_cookie(self, name: str) -> str | None:
        if name in self._pending:
            return self._pending[name]
        return self.request.cookies.get(name)

    def write_cookie(self, name: str, value: str) -> None:
        self._pending[name] = value
        self.response.set_cookie(
            key=name,
            value=value,
            max_age=config.SESSION_MAX_AGE_SECONDS,
            httponly=True,
            secure=config.SESSION_COOKIE_SECURE,
            samesite="lax",
            path="/",
        )

    def delete_cookie(self, name: str) -> None:
        self._pending[name] = None
        self.response.delete_cookie(
            key=name,
            httponly=True,
            secure=config.SESSION_COOKIE_SECURE,
            samesite="lax",
            path="/",
        )

    @property
    def session_id(self) -> str | None:
        return self.read_cookie(SESSION_ID_COOKIE)

    def _load(self) -> dict | None:
        session_id = self.session_id
        if not session_id:
            return None
        return self.store.load(self, session_id)

    def get(self, key: str) -> Any | None:
        data = self._load()
        if not data:
            return None
        return data.get(key)

    def set(self, key: str, value: Any) -> None:
        session_id = self.session_id
        if not session_id:
            session_id = str(uuid.uuid4())
        # Rewriting the id cookie slides its expiry along with the data cookie.
        self.write_cookie(SESSION_ID_COOKIE, session_id)

        data = self.store.load(self, session_id) or {}
        data[key] = value
        self.store.save(self, session_id, data)

    def remove_keys(self, keys: Iterable[str]) -> list[str]:
        keys = list(keys)
        session_id = self.session_id
        if not session_id or not keys:
            return []

        data = self.store.load(self, session_id)
        if data is None:
            return []

        removed = [key for key in keys if key in data]
        if not removed:
            return []

        for key in removed:
            del data[key]
        self.store.save(self, session_id, data)
        return removed

    def remove(self, key: str) -> bool:
        return key in self.remove_keys([key])

    def clear(self) -> bool:
        session_id = self.session_id
        if session_id:
            self.store.delete(self, session_id)
        self.delete_cookie(SESSION_ID_COOKIE)
        self.delete_cookie(SESSION_DATA_COOKIE)
        return session_id is not None


def get_session_manager(request: Request, response: Response) -> SessionManager:
    return SessionManager(request, response)
