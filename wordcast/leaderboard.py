# Leaderboards over persisted daily results.
#
# Entries are sorted by:
#  - score DESC (more points is better)
#  - attempts ASC (fewer guesses is better)
# and ranked with standard competition ranking on score: equal scores
# share a rank and the next rank skips accordingly (1,1,3). Attempts only
# order entries inside a tie.
#
# Weekly and all-time boards first reduce each player to their single best
# day, preferring higher score, then fewer attempts, then the earliest result.

from __future__ import annotations
from typing import Dict, Iterable, List

from .db import Store


def _best_key(row: Dict):
    return (-row["score"], row["attempts"], row["created_at"], row["id"])


def best_per_user(rows: Iterable[Dict]) -> List[Dict]:
    best: Dict[int, Dict] = {}
    for r in rows:
        current = best.get(r["fid"])
        if current is None or _best_key(r) < _best_key(current):
            best[r["fid"]] = r
    return list(best.values())


def rank_entries(rows: Iterable[Dict], limit: int) -> List[Dict]:
    entries = sorted(rows, key=_best_key)

    ranked = []
    last_key = None
    last_rank = 0
    for idx, e in enumerate(entries):
        if len(ranked) >= limit:
            break
        key = e["score"]
        if key == last_key:
            rank = last_rank
        else:
            rank = idx + 1
            last_key = key
            last_rank = rank
        ranked.append({
            "fid": e["fid"],
            "username": e.get("username"),
            "wallet_address": e.get("wallet_address"),
            "score": e["score"],
            "attempts": e["attempts"],
            "won": e["won"],
            "date": e["date"],
            "rank": rank,
        })
    return ranked


def daily_leaderboard(rows: Iterable[Dict], limit: int = 100) -> List[Dict]:
    return rank_entries(rows, limit)


def weekly_leaderboard(rows: Iterable[Dict], limit: int = 100) -> List[Dict]:
    return rank_entries(best_per_user(rows), limit)


def best_scores_leaderboard(rows: Iterable[Dict], limit: int = 100) -> List[Dict]:
    return rank_entries(best_per_user(rows), limit)


class Leaderboard:
    """Binds the ranking rules to the result store."""

    def __init__(self, store: Store):
        self.store = store

    def daily(self, date: str, limit: int = 100) -> List[Dict]:
        return daily_leaderboard(self.store.get_results_between(date, date), limit)

    def weekly(self, start: str, end: str, limit: int = 100) -> List[Dict]:
        return weekly_leaderboard(self.store.get_results_between(start, end), limit)

    def best_scores(self, limit: int = 100) -> List[Dict]:
        return best_scores_leaderboard(self.store.get_all_results(), limit)

    def board_stats(self, date: str) -> Dict:
        return self.store.get_board_stats(date)
