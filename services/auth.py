import secrets
import time
import uuid
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

from services.errors import AuthenticationError
from services.logging_utils import get_logger

logger = get_logger(__name__)

# Fixed namespace so a given email always maps to the same user id
USER_NAMESPACE = uuid.UUID("6f1c2a0e-3b8d-4c55-9a57-1d0e6b2f9c41")

DEFAULT_SESSION_TTL = 12 * 60 * 60


@dataclass(frozen=True)
class User:
    id: str
    email: str


@dataclass(frozen=True)
class Session:
    access_token: str
    user: User


class AuthProvider:
    """Interface the API depends on; swap in a managed provider in production."""

    def login(self, email: str, password: str) -> Session:
        raise NotImplementedError

    def logout(self, token: str) -> None:
        raise NotImplementedError

    def current_user(self, token: str) -> Optional[User]:
        raise NotImplementedError


def user_id_for(email: str) -> str:
    return str(uuid.uuid5(USER_NAMESPACE, email.strip().lower()))


class StaticAuthProvider(AuthProvider):
    """
    Authenticates against a fixed email -> password map and keeps issued
    bearer tokens in memory until logout or until they are older than
    session_ttl_seconds.
    """

    def __init__(
        self,
        accounts: Dict[str, str],
        session_ttl_seconds: float = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._accounts = {email.lower(): pw for email, pw in accounts.items()}
        self._ttl = session_ttl_seconds
        self._clock = clock
        # token -> (user, issued at)
        self._sessions: Dict[str, Tuple[User, float]] = {}
        self._lock = Lock()

    def login(self, email: str, password: str) -> Session:
        email = email.strip().lower()
        expected = self._accounts.get(email)
        # compare_digest on both branches so unknown users take the same time
        if expected is None:
            secrets.compare_digest(password, password)
            raise AuthenticationError("Invalid login credentials")
        if not secrets.compare_digest(password, expected):
            raise AuthenticationError("Invalid login credentials")

        user = User(id=user_id_for(email), email=email)
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._sessions[token] = (user, self._clock())
        logger.info("user logged in", extra={"user_id": user.id})
        return Session(access_token=token, user=user)

    def logout(self, token: str) -> None:
        with self._lock:
            entry = self._sessions.pop(token, None)
        if entry:
            logger.info("user logged out", extra={"user_id": entry[0].id})

    def current_user(self, token: str) -> Optional[User]:
        if not token:
            return None
        with self._lock:
            self._purge_expired()
            entry = self._sessions.get(token)
        return entry[0] if entry else None

    def active_sessions(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._sessions)

    def _purge_expired(self):
        # caller holds self._lock
        cutoff = self._clock() - self._ttl
        expired = [t for t, (_, issued) in self._sessions.items() if issued <= cutoff]
        for token in expired:
            del self._sessions[token]
        if expired:
            logger.info("expired sessions dropped", extra={"count": len(expired)})
