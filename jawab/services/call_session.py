import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional
from uuid import UUID

from jawab.logging_config import get_logger

logger = get_logger("call_session")


class CallPhase(str, Enum):
    GREETING = "greeting"
    TURN = "turn"
    HANGUP = "hangup"


@dataclass
class CallSession:
    call_id: str
    tenant_id: Optional[UUID]
    conversation_id: Optional[UUID]
    started_at: datetime
    last_seen_at: datetime
    turns: List[dict] = field(default_factory=list)
    phase: CallPhase = CallPhase.GREETING


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallSessionStore:
    """In-process voice call state keyed by call id.

    Sessions are evicted on hangup, or lazily once idle for longer than the TTL.
    """

    def __init__(self, ttl_minutes: int = 30, max_turns: int = 20, clock: Callable[[], datetime] = _utcnow):
        self.ttl = timedelta(minutes=ttl_minutes)
        self.max_turns = max_turns
        self._clock = clock
        self._sessions: Dict[str, CallSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired(self._clock())
            return len(self._sessions)

    def _evict_expired(self, now: datetime) -> None:
        expired = [call_id for call_id, s in self._sessions.items() if now - s.last_seen_at > self.ttl]
        for call_id in expired:
            del self._sessions[call_id]
        if expired:
            logger.info(f"Evicted {len(expired)} idle call session(s)")

    def start(
        self,
        call_id: str,
        tenant_id: Optional[UUID],
        conversation_id: Optional[UUID],
        turns: Optional[List[dict]] = None,
        phase: CallPhase = CallPhase.GREETING,
    ) -> CallSession:
        now = self._clock()
        session = CallSession(
            call_id=call_id,
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            started_at=now,
            last_seen_at=now,
            turns=list(turns or [])[-self.max_turns:],
            phase=phase,
        )
        with self._lock:
            self._evict_expired(now)
            self._sessions[call_id] = session
        return session

    def get(self, call_id: str) -> Optional[CallSession]:
        with self._lock:
            self._evict_expired(self._clock())
            return self._sessions.get(call_id)

    def touch(self, call_id: str) -> Optional[CallSession]:
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            session = self._sessions.get(call_id)
            if session is not None:
                session.last_seen_at = now
            return session

    def add_turns(self, call_id: str, turns: List[dict]) -> Optional[CallSession]:
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            session = self._sessions.get(call_id)
            if session is None:
                return None
            session.turns = (session.turns + list(turns))[-self.max_turns:]
            session.phase = CallPhase.TURN
            session.last_seen_at = now
            return session

    def history(self, call_id: str) -> List[dict]:
        session = self.get(call_id)
        return [dict(turn) for turn in session.turns] if session else []

    def end(self, call_id: str) -> Optional[CallSession]:
        with self._lock:
            session = self._sessions.pop(call_id, None)
        if session is not None:
            session.phase = CallPhase.HANGUP
        return session
