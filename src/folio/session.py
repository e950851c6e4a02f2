"""
Authentication and session lifetime for Folio.

- LocalAuthClient: accounts with hashed passwords and server-side sessions
- KeepAlive: background thread that touches a session at a fixed interval
- SessionProvider: the identity of one logged-in session plus its keep-alive
- SessionRegistry: active providers by session token (one per login)
- requires_login: view decorator exposing the identity as ``g.identity``

The session token is the only thing stored in the signed Flask cookie.
"""

from __future__ import annotations

import functools
import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from flask import current_app, g, redirect, request, session, url_for
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthenticationError, BackendError, FolioError, ValidationError
from .models import AuthSession, User, db

logger = logging.getLogger(__name__)

SESSION_TOKEN_KEY = "auth_token"
MIN_PASSWORD_LENGTH = 6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class SessionInfo:
    token: str
    user_id: str
    email: str
    expires_at: datetime


class LocalAuthClient:
    """
    Account and session store backed by the ``users`` and ``auth_sessions``
    tables. All methods need an application context.
    """

    def __init__(self, lifetime_seconds: int = 3600):
        self.lifetime = timedelta(seconds=lifetime_seconds)

    def _commit(self) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise BackendError(str(getattr(e, "orig", None) or e), table="auth_sessions") from e

    def create_user(self, email: str, password: str) -> User:
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise ValidationError("A valid email address is required", {"email": ["Invalid email"]})
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                {"password": ["Password too short"]},
            )
        if User.query.filter_by(email=email).first() is not None:
            raise ValidationError(f"User already registered: {email}", {"email": ["Already registered"]})

        user = User(email=email, password_hash=generate_password_hash(password))
        db.session.add(user)
        self._commit()
        logger.info(f"Created user {email}")
        return user

    def sign_in(self, email: str, password: str) -> SessionInfo:
        """
        Check credentials and open a session.

        Raises:
            AuthenticationError: Unknown email or wrong password.
        """
        email = (email or "").strip().lower()
        user = User.query.filter_by(email=email).first()
        if user is None or not check_password_hash(user.password_hash, password or ""):
            logger.info("Failed sign-in attempt")
            raise AuthenticationError("Invalid login credentials")

        now = _utcnow()
        record = AuthSession(
            token=secrets.token_urlsafe(32),
            user_id=user.id,
            created_at=now,
            last_seen_at=now,
            expires_at=now + self.lifetime,
        )
        db.session.add(record)
        self._commit()
        logger.info(f"User {user.id} signed in")
        return SessionInfo(record.token, user.id, user.email, record.expires_at)

    def get_session(self, token: Optional[str], touch: bool = False) -> Optional[SessionInfo]:
        """
        The live session for ``token``; expired sessions are removed.

        With ``touch`` the session's last activity is set to now.
        """
        if not token:
            return None
        record = db.session.get(AuthSession, token)
        if record is None:
            return None
        if record.expires_at <= _utcnow():
            user_id = record.user_id
            db.session.delete(record)
            self._commit()
            logger.info(f"Session for user {user_id} expired")
            return None
        if touch:
            record.last_seen_at = _utcnow()
            self._commit()
        return SessionInfo(record.token, record.user_id, record.user.email, record.expires_at)

    def refresh_session(self, token: str) -> bool:
        """
        Move the session's expiry to one lifetime after its last activity.

        Returns False when the session is gone or has been idle for longer
        than its lifetime.
        """
        record = db.session.get(AuthSession, token)
        if record is None:
            return False
        expires_at = record.last_seen_at + self.lifetime
        if expires_at <= _utcnow():
            return False
        record.expires_at = expires_at
        self._commit()
        return True

    def sign_out(self, token: Optional[str]) -> None:
        if not token:
            return
        record = db.session.get(AuthSession, token)
        if record is not None:
            user_id = record.user_id
            db.session.delete(record)
            self._commit()
            logger.info(f"User {user_id} signed out")

    def update_password(self, user_id: str, new_password: str) -> None:
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                {"password": ["Password too short"]},
            )
        user = db.session.get(User, user_id)
        if user is None:
            raise AuthenticationError("User not found")
        user.password_hash = generate_password_hash(new_password)
        self._commit()
        logger.info(f"Password updated for user {user_id}")


class KeepAlive:
    """
    Calls ``callback`` every ``interval`` seconds on a daemon thread until
    stopped, or until the callback returns False. ``on_stop`` runs once in the
    latter case.
    """

    def __init__(
        self,
        app,
        interval: float,
        callback: Callable[[], bool],
        on_stop: Optional[Callable[[], None]] = None,
        name: str = "folio-keepalive",
    ):
        self.app = app
        self.interval = interval
        self.callback = callback
        self.on_stop = on_stop
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stop.is_set()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            with self.app.app_context():
                try:
                    alive = self.callback()
                except FolioError as e:
                    logger.warning(f"Keep-alive failed: {e}")
                    continue
            if not alive:
                logger.debug("Keep-alive stopping: session ended")
                self._stop.set()
                if self.on_stop is not None:
                    self.on_stop()
                return
            logger.debug("Keep-alive tick")


class SessionProvider:
    """Identity of one logged-in session and the task keeping it alive."""

    def __init__(
        self,
        app,
        auth: LocalAuthClient,
        info: SessionInfo,
        keep_alive_seconds: float,
        on_end: Optional[Callable[[], None]] = None,
    ):
        self.auth = auth
        self.info = info
        self.keep_alive = KeepAlive(app, keep_alive_seconds, self._touch, on_stop=on_end)
        self.keep_alive.start()

    @property
    def identity(self) -> str:
        return self.info.user_id

    @property
    def token(self) -> str:
        return self.info.token

    @property
    def email(self) -> str:
        return self.info.email

    def _touch(self) -> bool:
        return self.auth.refresh_session(self.token)

    def close(self) -> None:
        self.keep_alive.stop()


class SessionRegistry:
    """Active session providers, keyed by session token."""

    def __init__(self, app, auth: LocalAuthClient, keep_alive_seconds: float):
        self.app = app
        self.auth = auth
        self.keep_alive_seconds = keep_alive_seconds
        self._lock = threading.Lock()
        self._providers: Dict[str, SessionProvider] = {}

    def open(self, email: str, password: str) -> SessionProvider:
        info = self.auth.sign_in(email, password)
        return self._register(info)

    def _register(self, info: SessionInfo) -> SessionProvider:
        with self._lock:
            provider = self._providers.get(info.token)
            if provider is None:
                provider = SessionProvider(
                    self.app,
                    self.auth,
                    info,
                    self.keep_alive_seconds,
                    on_end=functools.partial(self._discard, info.token),
                )
                self._providers[info.token] = provider
            return provider

    def current(self, token: Optional[str]) -> Optional[SessionProvider]:
        """
        Provider for ``token`` if the session is still live.

        Sessions that outlived a process restart get a fresh provider; expired
        ones have their keep-alive stopped.
        """
        info = self.auth.get_session(token, touch=True)
        if info is None:
            self._discard(token)
            return None
        return self._register(info)

    def _discard(self, token: Optional[str]) -> None:
        if not token:
            return
        with self._lock:
            provider = self._providers.pop(token, None)
        if provider is not None:
            provider.close()

    def close(self, token: Optional[str]) -> None:
        """Log out: stop the keep-alive and delete the session."""
        self._discard(token)
        self.auth.sign_out(token)

    def close_all(self) -> None:
        with self._lock:
            providers = list(self._providers.values())
            self._providers.clear()
        for provider in providers:
            provider.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)


def requires_login(f: Callable) -> Callable:
    """
    Decorator for admin views.

    Resolves the session token from the cookie, sets ``g.identity`` and
    ``g.session_provider``, and redirects anonymous visitors to the login page.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        registry: SessionRegistry = current_app.extensions["folio"].sessions
        provider = registry.current(session.get(SESSION_TOKEN_KEY))
        if provider is None:
            session.pop(SESSION_TOKEN_KEY, None)
            return redirect(url_for("login", next=request.path))
        g.identity = provider.identity
        g.session_provider = provider
        return f(*args, **kwargs)
    return decorated
