# Core game logic: one daily puzzle per player, server-authoritative.
#
# Session lifecycle: created -> playing -> won/lost -> completed.
# - start_game hands back the player's open session for the same day and
#   language instead of opening a second one, so repeated starts cannot be
#   used to fish for an easier word or an extra six guesses.
# - The solution leaves the server only once the game is over.
# - A finished game is persisted as a ranked result only on the player's first
#   completion of the day; later games that day are practice and are never
#   written. Replayed completions answer with the current streak.

from __future__ import annotations
import logging
import random
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from . import dates
from .config import (
    ENFORCE_SINGLE_HINT, FORCE_RANKED, LANGUAGES, MAX_ATTEMPTS, SOLUTION_MODE, WORD_SALT,
)
from .db import Store, UniqueConstraintViolation
from .errors import (
    Forbidden, GameNotFinished, HintAlreadyUsed, NoAttemptsRemaining, SessionNotFound, ValidationError,
)
from .payments import is_valid_tx_hash
from .scoring import loss_score, win_score
from .sessions import GameSession, SessionStore
from .words import Mark, derive_solution, feedback, is_well_formed, normalize, random_solution

logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    session_id: str
    is_practice_mode: bool
    reused: bool
    max_attempts: int = MAX_ATTEMPTS


@dataclass
class GuessResult:
    feedback: List[Mark]
    attempts_used: int
    won: bool
    remaining_attempts: int
    game_over: bool
    solution: Optional[str] = None
    score: Optional[int] = None


@dataclass
class CompleteResult:
    streak: int
    max_streak: int
    is_practice_mode: bool
    recorded: bool


@dataclass
class Hint:
    position: int
    letter: str


class GameService:
    def __init__(
        self,
        store: Store,
        sessions: SessionStore,
        salt: str = WORD_SALT,
        solution_mode: str = SOLUTION_MODE,
        force_ranked: bool = FORCE_RANKED,
        single_hint: bool = ENFORCE_SINGLE_HINT,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.sessions = sessions
        self.salt = salt
        self.solution_mode = solution_mode
        self.force_ranked = force_ranked
        self.single_hint = single_hint
        self._rng = rng or random.Random()
        # find-then-create must not interleave for the same player
        self._start_locks: Dict[int, threading.Lock] = {}
        self._start_locks_guard = threading.Lock()

    def _start_lock(self, user_id: int) -> threading.Lock:
        with self._start_locks_guard:
            lock = self._start_locks.get(user_id)
            if lock is None:
                lock = self._start_locks[user_id] = threading.Lock()
            return lock

    def pick_solution(self, language: str, today: str) -> str:
        if self.solution_mode == "random":
            return random_solution(language)
        return derive_solution(today, language, self.salt)

    def _has_ranked_result(self, user_id: int, today: str) -> bool:
        return self.store.get_daily_result(user_id, today) is not None

    def _practice_mode(self, user_id: int, today: str) -> bool:
        if self.force_ranked:
            return False
        return self._has_ranked_result(user_id, today)

    def _owned_session(self, session_id: str, user_id: int) -> GameSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound()
        if session.user_id != user_id:
            raise Forbidden("This game session belongs to another player.")
        return session

    def start_game(self, user_id: int, language: str, today: str) -> StartResult:
        if language not in LANGUAGES:
            raise ValidationError(f"Invalid language. Must be one of: {', '.join(LANGUAGES)}")

        with self._start_lock(user_id):
            is_practice = self._practice_mode(user_id, today)
            active = self.sessions.find_active_for_user(user_id)
            if active is not None:
                if active.created_on_date != today or active.language != language:
                    logger.info("discarding session %s of fid=%s (day=%s lang=%s)",
                                active.session_id, user_id, active.created_on_date, active.language)
                    self.sessions.remove(active.session_id)
                else:
                    active.is_practice_mode = is_practice
                    logger.info("reusing session %s for fid=%s", active.session_id, user_id)
                    return StartResult(session_id=active.session_id, is_practice_mode=is_practice, reused=True)

            session = self.sessions.create(
                user_id=user_id,
                language=language,
                solution=self.pick_solution(language, today),
                date=today,
                is_practice_mode=is_practice,
            )

        logger.info("created session %s for fid=%s lang=%s practice=%s",
                    session.session_id, user_id, language, is_practice)
        return StartResult(session_id=session.session_id, is_practice_mode=is_practice, reused=False)

    def submit_guess(self, session_id: str, user_id: int, raw_guess: str) -> GuessResult:
        session = self._owned_session(session_id, user_id)

        guess = normalize(raw_guess or "", session.language)
        if not is_well_formed(guess, session.language):
            if session.language == "tr":
                raise ValidationError("Must be 5 letters (A-Z or Turkish characters)")
            raise ValidationError("Must be 5 letters (A-Z)")

        with session.lock:
            if session.game_over or session.attempts_used >= MAX_ATTEMPTS:
                raise NoAttemptsRemaining("No attempts remaining")

            marks = feedback(guess, session.solution)
            session.guess_history.append(guess)
            session.feedback_history.append(marks)
            session.attempts_used += 1

            won = guess == session.solution
            game_over = won or session.attempts_used >= MAX_ATTEMPTS
            if game_over:
                session.outcome = "won" if won else "lost"
                session.final_score = win_score(session.attempts_used) if won else loss_score(marks)
                logger.info("game over fid=%s session=%s outcome=%s attempts=%s score=%s",
                            user_id, session_id, session.outcome, session.attempts_used, session.final_score)

            return GuessResult(
                feedback=marks,
                attempts_used=session.attempts_used,
                won=won,
                remaining_attempts=session.remaining_attempts,
                game_over=game_over,
                solution=session.solution if game_over else None,
                score=session.final_score if game_over else None,
            )

    def _current_streak(self, user_id: int, is_practice: bool, recorded: bool) -> CompleteResult:
        streak = self.store.get_or_create_streak(user_id)
        return CompleteResult(
            streak=streak.current_streak,
            max_streak=streak.max_streak,
            is_practice_mode=is_practice,
            recorded=recorded,
        )

    def complete_game(self, session_id: str, user_id: int, payment_proof: str, today: str) -> CompleteResult:
        session = self._owned_session(session_id, user_id)
        if not session.game_over:
            raise GameNotFinished("Game not completed")
        # Format only: the proof is not checked for on-chain inclusion.
        if not is_valid_tx_hash(payment_proof):
            raise ValidationError("Invalid transaction hash format")

        with session.lock:
            if session.completed:
                logger.info("replayed completion for session %s fid=%s", session_id, user_id)
                return self._current_streak(user_id, session.is_practice_mode, recorded=False)

            already_ranked = self._has_ranked_result(user_id, today)
            is_practice = session.is_practice_mode and already_ranked

            if is_practice or already_ranked:
                session.completed = True
                logger.info("completion without score for fid=%s day=%s practice=%s",
                            user_id, today, is_practice)
                return self._current_streak(user_id, is_practice, recorded=False)

            try:
                self.store.create_daily_result(
                    user_id, today, session.attempts_used, session.won, session.final_score or 0,
                )
            except UniqueConstraintViolation:
                session.completed = True
                logger.info("duplicate ranked result absorbed for fid=%s day=%s", user_id, today)
                return self._current_streak(user_id, False, recorded=False)

            streak = self.store.get_or_create_streak(user_id)
            if dates.is_consecutive_day(streak.last_played_yyyymmdd, today):
                current = streak.current_streak + 1
            else:
                current = 1
            maximum = max(streak.max_streak, current)
            self.store.update_streak(user_id, current, maximum, today)

            session.completed = True
            logger.info("ranked result recorded fid=%s day=%s score=%s streak=%s",
                        user_id, today, session.final_score, current)
            return CompleteResult(streak=current, max_streak=maximum, is_practice_mode=False, recorded=True)

    def get_hint(self, session_id: str, user_id: int) -> Hint:
        session = self._owned_session(session_id, user_id)
        with session.lock:
            if self.single_hint and session.hint_used:
                raise HintAlreadyUsed("Hint already used for this game")
            session.hint_used = True
            position = self._rng.randrange(len(session.solution))
            return Hint(position=position, letter=session.solution[position])

    def get_me(self, user_id: int, today: str) -> dict:
        profile = self.store.get_or_create_profile(user_id)
        streak = self.store.get_or_create_streak(user_id)
        completed_today = self._has_ranked_result(user_id, today)
        return {
            "fid": user_id,
            "username": profile.username,
            "wallet_address": profile.wallet_address,
            "streak": streak.current_streak,
            "max_streak": streak.max_streak,
            "last_played": streak.last_played_yyyymmdd,
            "today": today,
            "remaining_attempts": 0 if completed_today else MAX_ATTEMPTS,
            "has_completed_today": completed_today,
        }
