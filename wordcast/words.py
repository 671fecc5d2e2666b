# Word lists and the rules for judging a guess.
# Implements canonical Wordle marking rules:
# - Two-pass algorithm: first mark exact-position matches as "correct" and
#   consume those answer slots, then mark "present" on the first unconsumed
#   matching slot, left to right.
# - A letter guessed twice but present once in the answer is marked at most once.
#
# The daily word is derived from sha256(salt + date + language); without the
# salt the choice cannot be predicted from the date alone.

from __future__ import annotations
import hashlib
import random
import re
import unicodedata
from functools import lru_cache
from typing import Dict, List, Literal

from .config import LANGUAGES, WORD_LENGTH, WORDS_DIR

Mark = Literal["correct", "present", "absent"]

_ALPHABETS: Dict[str, re.Pattern] = {
    "en": re.compile(r"[A-Z]{%d}" % WORD_LENGTH),
    "tr": re.compile(r"[A-ZÇĞİÖŞÜ]{%d}" % WORD_LENGTH),
}

# Prefix of the hex digest read as an unsigned 32-bit index.
_DIGEST_PREFIX = 8


def load_words(language: str) -> List[str]:
    path = WORDS_DIR / f"words_{language}.txt"
    words = []
    seen = set()
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            w = normalize(line, language)
            if is_well_formed(w, language) and w not in seen:
                seen.add(w)
                words.append(w)
    if not words:
        raise RuntimeError(f"Word list for '{language}' is empty or missing.")
    return words


@lru_cache(maxsize=None)
def target_words(language: str) -> tuple:
    if language not in LANGUAGES:
        raise ValueError(f"Unsupported language: {language}")
    return tuple(load_words(language))


def daily_index(date: str, language: str, secret: str, size: int) -> int:
    digest = hashlib.sha256(f"{secret}{date}{language}".encode("utf-8")).hexdigest()
    return int(digest[:_DIGEST_PREFIX], 16) % size


def derive_solution(date: str, language: str, secret: str) -> str:
    words = target_words(language)
    return words[daily_index(date, language, secret, len(words))]


def random_solution(language: str) -> str:
    return random.choice(target_words(language))


def normalize(raw: str, language: str) -> str:
    """Trim and uppercase ``raw`` with the casing rules of ``language``.

    Turkish has a dotted and a dotless i: ``i`` uppercases to ``İ`` and
    ``ı`` to ``I``. Plain ``str.upper`` would turn ``i`` into ``I``.
    """
    w = unicodedata.normalize("NFC", raw.strip())
    if language == "tr":
        w = w.replace("i", "İ").replace("ı", "I")
    return unicodedata.normalize("NFC", w.upper())


def is_well_formed(normalized: str, language: str) -> bool:
    pattern = _ALPHABETS.get(language)
    if pattern is None:
        return False
    return bool(pattern.fullmatch(normalized))


def feedback(guess: str, solution: str) -> List[Mark]:
    marks: List[Mark] = ["absent"] * len(guess)
    used = [False] * len(solution)

    # First pass: exact hits consume their slot
    for i, ch in enumerate(guess):
        if i < len(solution) and ch == solution[i]:
            marks[i] = "correct"
            used[i] = True

    # Second pass: first unconsumed slot holding the letter
    for i, ch in enumerate(guess):
        if marks[i] == "correct":
            continue
        for j, sol_ch in enumerate(solution):
            if not used[j] and sol_ch == ch:
                marks[i] = "present"
                used[j] = True
                break

    return marks
