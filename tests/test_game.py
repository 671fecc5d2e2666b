import threading

import pytest

from conftest import SALT, TODAY, TX_HASH, wrong_guess
from wordcast.db import UniqueConstraintViolation
from wordcast.errors import (
    Forbidden, GameNotFinished, HintAlreadyUsed, NoAttemptsRemaining, SessionNotFound, ValidationError,
)
from wordcast.game import GameService
from wordcast.words import derive_solution


def play_to_win(service, sid, fid, solution, misses=2):
    results = []
    for letter in "XYZWV"[:misses]:
        results.append(service.submit_guess(sid, fid, wrong_guess(solution, letter)))
    results.append(service.submit_guess(sid, fid, solution.lower()))
    return results


def play_to_lose(service, sid, fid, solution):
    return [service.submit_guess(sid, fid, wrong_guess(solution)) for _ in range(6)]


def test_start_game_returns_same_session_for_same_day(service):
    first = service.start_game(1, "en", TODAY)
    second = service.start_game(1, "en", TODAY)
    assert first.session_id == second.session_id
    assert second.reused
    assert first.max_attempts == 6
    assert not first.is_practice_mode


def test_start_game_next_day_opens_new_session(service, sessions):
    first = service.start_game(1, "en", TODAY)
    second = service.start_game(1, "en", "20240316")
    assert first.session_id != second.session_id
    assert sessions.get(first.session_id) is None


def test_start_game_other_language_replaces_session(service, sessions):
    en = service.start_game(1, "en", TODAY)
    tr = service.start_game(1, "tr", TODAY)
    assert en.session_id != tr.session_id
    assert sessions.get(en.session_id) is None
    assert sessions.get(tr.session_id).solution == derive_solution(TODAY, "tr", SALT)


def test_start_game_rejects_unknown_language(service):
    with pytest.raises(ValidationError):
        service.start_game(1, "de", TODAY)


def test_concurrent_starts_share_one_session(service):
    ids = []

    def start():
        ids.append(service.start_game(5, "en", TODAY).session_id)

    threads = [threading.Thread(target=start) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(set(ids)) == 1


def test_start_for_one_player_does_not_wait_on_another(service):
    done = []
    with service._start_lock(1):
        t = threading.Thread(target=lambda: done.append(service.start_game(2, "en", TODAY)))
        t.start()
        t.join(timeout=5)
    assert len(done) == 1


def test_solution_is_derived_from_date(service, sessions, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    assert sessions.get(sid).solution == solution_en


def test_win_on_third_guess(service, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    r1, r2, r3 = play_to_win(service, sid, 1, solution_en)
    assert not r1.game_over and r1.solution is None and r1.score is None
    assert r2.remaining_attempts == 4 and r2.solution is None
    assert r3.won and r3.game_over
    assert r3.feedback == ["correct"] * 5
    assert r3.score == 80
    assert r3.solution == solution_en
    assert r3.attempts_used == 3


def test_loss_after_six_guesses_reveals_solution(service, sessions, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    results = play_to_lose(service, sid, 1, solution_en)
    assert all(r.solution is None for r in results[:5])
    last = results[-1]
    assert last.game_over and not last.won
    assert last.remaining_attempts == 0
    assert last.solution == solution_en
    session = sessions.get(sid)
    assert session.outcome == "lost"
    assert session.final_score == last.score
    assert len(session.guess_history) == session.attempts_used == 6


def test_guess_after_game_over_is_rejected(service, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    play_to_lose(service, sid, 1, solution_en)
    with pytest.raises(NoAttemptsRemaining):
        service.submit_guess(sid, 1, "CRANE")


def test_guess_after_win_is_rejected(service, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    service.submit_guess(sid, 1, solution_en)
    with pytest.raises(NoAttemptsRemaining):
        service.submit_guess(sid, 1, "CRANE")


def test_guess_errors(service):
    sid = service.start_game(1, "en", TODAY).session_id
    with pytest.raises(SessionNotFound):
        service.submit_guess("nope", 1, "CRANE")
    with pytest.raises(Forbidden):
        service.submit_guess(sid, 2, "CRANE")
    with pytest.raises(ValidationError):
        service.submit_guess(sid, 1, "CRAN")
    with pytest.raises(ValidationError):
        service.submit_guess(sid, 1, "CR4NE")


def test_concurrent_guesses_never_exceed_six(service, sessions, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    rejected = []

    def guess():
        try:
            service.submit_guess(sid, 1, wrong_guess(solution_en))
        except NoAttemptsRemaining:
            rejected.append(1)

    threads = [threading.Thread(target=guess) for _ in range(12)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    session = sessions.get(sid)
    assert session.attempts_used == 6
    assert len(session.guess_history) == 6
    assert len(rejected) == 6


def test_complete_records_ranked_result_and_starts_streak(service, store, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    play_to_win(service, sid, 1, solution_en)
    result = service.complete_game(sid, 1, TX_HASH, TODAY)
    assert result.recorded and not result.is_practice_mode
    assert result.streak == 1 and result.max_streak == 1
    row = store.get_daily_result(1, TODAY)
    assert (row.attempts, row.won, row.score) == (3, True, 80)


def test_complete_extends_streak_from_yesterday(service, store, solution_en):
    store.update_streak(1, 4, 6, "20240314")
    sid = service.start_game(1, "en", TODAY).session_id
    play_to_win(service, sid, 1, solution_en)
    result = service.complete_game(sid, 1, TX_HASH, TODAY)
    assert result.streak == 5
    assert result.max_streak == 6


def test_complete_resets_streak_after_gap(service, store, solution_en):
    store.update_streak(1, 4, 4, "20240310")
    sid = service.start_game(1, "en", TODAY).session_id
    play_to_lose(service, sid, 1, solution_en)
    result = service.complete_game(sid, 1, TX_HASH, TODAY)
    assert result.streak == 1
    assert result.max_streak == 4
    assert store.get_or_create_streak(1).last_played_yyyymmdd == TODAY


def test_complete_twice_is_idempotent(service, store, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    play_to_win(service, sid, 1, solution_en)
    first = service.complete_game(sid, 1, TX_HASH, TODAY)
    second = service.complete_game(sid, 1, TX_HASH, TODAY)
    assert first.recorded and not second.recorded
    assert (second.streak, second.max_streak) == (1, 1)
    assert len(store.get_all_results()) == 1


def test_complete_errors(service, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    with pytest.raises(GameNotFinished):
        service.complete_game(sid, 1, TX_HASH, TODAY)
    service.submit_guess(sid, 1, solution_en)
    with pytest.raises(SessionNotFound):
        service.complete_game("nope", 1, TX_HASH, TODAY)
    with pytest.raises(Forbidden):
        service.complete_game(sid, 2, TX_HASH, TODAY)
    for bad in ("", "0x123", "ab" * 33, "0x" + "zz" * 32):
        with pytest.raises(ValidationError):
            service.complete_game(sid, 1, bad, TODAY)


def test_second_game_same_day_is_practice(service, store, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    play_to_win(service, sid, 1, solution_en)
    service.complete_game(sid, 1, TX_HASH, TODAY)

    again = service.start_game(1, "en", TODAY)
    assert again.session_id != sid
    assert again.is_practice_mode
    play_to_win(service, again.session_id, 1, solution_en, misses=0)
    result = service.complete_game(again.session_id, 1, TX_HASH, TODAY)
    assert result.is_practice_mode and not result.recorded
    assert store.get_daily_result(1, TODAY).score == 80
    assert result.streak == 1


def test_force_ranked_override(store, sessions, solution_en):
    service = GameService(store, sessions, salt=SALT, force_ranked=True)
    store.create_daily_result(1, TODAY, 4, True, 60)
    assert not service.start_game(1, "en", TODAY).is_practice_mode


def test_duplicate_insert_race_is_absorbed(service, store, solution_en, monkeypatch):
    sid = service.start_game(1, "en", TODAY).session_id
    play_to_win(service, sid, 1, solution_en)

    # Another request persisted the result between the read and the insert
    def racing_insert(*args, **kwargs):
        raise UniqueConstraintViolation("daily result exists")

    monkeypatch.setattr(store, "create_daily_result", racing_insert)
    result = service.complete_game(sid, 1, TX_HASH, TODAY)
    assert not result.recorded
    assert result.streak == 0


def test_completed_result_elsewhere_blocks_second_write(service, store, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    play_to_win(service, sid, 1, solution_en)
    store.create_daily_result(1, TODAY, 2, True, 100)
    result = service.complete_game(sid, 1, TX_HASH, TODAY)
    assert not result.recorded
    assert store.get_daily_result(1, TODAY).score == 100


def test_hint_reveals_solution_letter_once(service, solution_en):
    sid = service.start_game(1, "en", TODAY).session_id
    hint = service.get_hint(sid, 1)
    assert 0 <= hint.position < 5
    assert solution_en[hint.position] == hint.letter
    with pytest.raises(HintAlreadyUsed):
        service.get_hint(sid, 1)


def test_hint_errors(service):
    sid = service.start_game(1, "en", TODAY).session_id
    with pytest.raises(SessionNotFound):
        service.get_hint("nope", 1)
    with pytest.raises(Forbidden):
        service.get_hint(sid, 2)


def test_get_me(service, solution_en):
    me = service.get_me(1, TODAY)
    assert me["remaining_attempts"] == 6 and not me["has_completed_today"]
    sid = service.start_game(1, "en", TODAY).session_id
    play_to_win(service, sid, 1, solution_en)
    service.complete_game(sid, 1, TX_HASH, TODAY)
    me = service.get_me(1, TODAY)
    assert me["remaining_attempts"] == 0 and me["has_completed_today"]
    assert me["streak"] == 1 and me["last_played"] == TODAY
