import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)

SESSION_COOKIE = "x402_session"


class PaidSet(ABC):
    """Segments one session has paid for. Add-only."""

    @abstractmethod
    def add(self, segment_id: str) -> bool:
        """Record a payment. Returns False if it was already recorded."""

    @abstractmethod
    def contains(self, segment_id: str) -> bool:
        ...


class SessionStore(ABC):
    @abstractmethod
    def get_or_create(self, session_id: str) -> PaidSet:
        ...

    def close(self) -> None:
        pass


class InMemoryPaidSet(PaidSet):
    def __init__(self) -> None:
        self._segments: Set[str] = set()
        self._lock = threading.Lock()

    def add(self, segment_id: str) -> bool:
        with self._lock:
            if segment_id in self._segments:
                return False
            self._segments.add(segment_id)
            return True

    def contains(self, segment_id: str) -> bool:
        with self._lock:
            return segment_id in self._segments


class InMemorySessionStore(SessionStore):
    """Process-local store; everything is gone on restart."""

    def __init__(self) -> None:
        self._sessions: Dict[str, InMemoryPaidSet] = {}
        self._lock = threading.Lock()

    def get_or_create(self, session_id: str) -> PaidSet:
        with self._lock:
            paid = self._sessions.get(session_id)
            if paid is None:
                paid = self._sessions[session_id] = InMemoryPaidSet()
            return paid


@dataclass(frozen=True)
class ResolvedSession:
    session_id: str
    is_new: bool
    paid: PaidSet


def new_session_id() -> str:
    # uuid4 draws from os.urandom
    return str(uuid.uuid4())


def is_valid_session_id(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        parsed = uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return str(parsed) == value


def resolve_session(store: SessionStore, credential: Optional[str]) -> ResolvedSession:
    """Bind a request to exactly one session.

    A missing or malformed credential is not an error: a fresh identifier is
    minted and the caller must send it back to the client as a cookie.
    """
    if is_valid_session_id(credential):
        return ResolvedSession(
            session_id=credential,
            is_new=False,
            paid=store.get_or_create(credential),
        )

    if credential:
        logger.info("Discarding malformed session credential")

    session_id = new_session_id()
    logger.info(f"Issued new session {session_id[:8]}...")
    return ResolvedSession(
        session_id=session_id,
        is_new=True,
        paid=store.get_or_create(session_id),
    )
