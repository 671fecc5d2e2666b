# In-memory registry of game sessions.
# - Sessions are keyed by an unguessable hex token; holding the token is what
#   lets a client submit guesses, ownership is still re-checked by the service.
# - A secondary index maps each user to their one non-completed session.
# - Nothing here is durable: a restart drops every session and players start over.

from __future__ import annotations
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import MAX_ATTEMPTS
from .words import Mark


@dataclass
class GameSession:
    session_id: str
    user_id: int
    solution: str
    language: str
    created_on_date: str
    is_practice_mode: bool = False
    guess_history: List[str] = field(default_factory=list)
    feedback_history: List[List[Mark]] = field(default_factory=list)
    attempts_used: int = 0
    outcome: str = "in_progress"  # "in_progress"|"won"|"lost"
    final_score: Optional[int] = None
    completed: bool = False
    hint_used: bool = False
    created_at: float = field(default_factory=time.time)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def won(self) -> bool:
        return self.outcome == "won"

    @property
    def game_over(self) -> bool:
        return self.outcome != "in_progress"

    @property
    def remaining_attempts(self) -> int:
        return MAX_ATTEMPTS - self.attempts_used


def new_session_id() -> str:
    return secrets.token_hex(16)


class SessionStore:
    def __init__(self):
        self._sessions: Dict[str, GameSession] = {}
        self._by_user: Dict[int, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self, user_id: int, language: str, solution: str, date: str,
               is_practice_mode: bool = False) -> GameSession:
        with self._lock:
            sid = new_session_id()
            while sid in self._sessions:
                sid = new_session_id()
            session = GameSession(
                session_id=sid,
                user_id=user_id,
                solution=solution,
                language=language,
                created_on_date=date,
                is_practice_mode=is_practice_mode,
            )
            # One live session per user: a new one replaces the previous
            previous = self._by_user.get(user_id)
            if previous is not None:
                self._sessions.pop(previous, None)
            self._by_user[user_id] = sid
            self._sessions[sid] = session
            return session

    def get(self, session_id: str) -> Optional[GameSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def find_active_for_user(self, user_id: int) -> Optional[GameSession]:
        with self._lock:
            sid = self._by_user.get(user_id)
            if sid is None:
                return None
            session = self._sessions.get(sid)
            if session is None:
                del self._by_user[user_id]
                return None
            if session.completed:
                # Lazy GC: completed sessions are dropped on the owner's next lookup
                del self._sessions[sid]
                del self._by_user[user_id]
                return None
            return session

    def remove(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is not None and self._by_user.get(session.user_id) == session_id:
                del self._by_user[session.user_id]
