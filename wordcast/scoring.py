# Score for a finished game.
# A win is worth 20 points times a multiplier that shrinks with every attempt
# used; a loss only earns credit for the letters of the last guess.

from __future__ import annotations
from typing import Sequence

BASE_WIN_POINTS = 20
WIN_MULTIPLIERS = [6, 5, 4, 3, 2, 1]


def win_score(attempts_used: int) -> int:
    if 1 <= attempts_used <= len(WIN_MULTIPLIERS):
        multiplier = WIN_MULTIPLIERS[attempts_used - 1]
    else:
        multiplier = 1
    return round(BASE_WIN_POINTS * multiplier)


def loss_score(marks: Sequence[str]) -> int:
    correct = sum(1 for m in marks if m == "correct")
    present = sum(1 for m in marks if m == "present")
    return 2 * correct + present
