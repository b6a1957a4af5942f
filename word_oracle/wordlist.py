from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from pathlib import Path

from word_oracle.api.models import Difficulty


logger = logging.getLogger(__name__)

# Draw weights per tier: 40% easy, 40% medium, 20% hard.
TIER_WEIGHTS: dict[Difficulty, float] = {
    Difficulty.easy: 0.4,
    Difficulty.medium: 0.4,
    Difficulty.hard: 0.2,
}


class WordListError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class WordTiers:
    by_difficulty: dict[Difficulty, tuple[str, ...]]

    def words(self, difficulty: Difficulty) -> tuple[str, ...]:
        return self.by_difficulty.get(difficulty, ())

    def all_words(self) -> list[str]:
        return [w for tier in self.by_difficulty.values() for w in tier]


def _load_tier_file(path: Path) -> tuple[str, ...]:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError as e:
        raise WordListError(f"Word list not found: {path}") from e

    words: list[str] = []
    seen: set[str] = set()
    for line in lines:
        word = line.strip().lower()
        if not word or word.startswith("#") or word in seen:
            continue
        seen.add(word)
        words.append(word)
    return tuple(words)


def load_word_tiers(*, root: Path) -> WordTiers:
    """Load `assets/words/{easy,medium,hard}.txt` under `root`.

    Every tier must hold at least one word; an empty tier is a configuration error.
    """

    words_dir = root / "assets" / "words"
    by_difficulty: dict[Difficulty, tuple[str, ...]] = {}
    for difficulty in Difficulty:
        words = _load_tier_file(words_dir / f"{difficulty.value}.txt")
        if not words:
            raise WordListError(f"Word tier '{difficulty.value}' is empty")
        by_difficulty[difficulty] = words
    return WordTiers(by_difficulty=by_difficulty)


_TIERS: WordTiers | None = None


def init_word_tiers(*, project_root: Path) -> WordTiers:
    """Load word tiers once and cache them. Later calls return the cached instance."""

    global _TIERS
    if _TIERS is None:
        _TIERS = load_word_tiers(root=project_root)
        logger.info(
            "Loaded word tiers: %s",
            ", ".join(f"{d.value}={len(w)}" for d, w in _TIERS.by_difficulty.items()),
        )
    return _TIERS


def reset_word_tiers_for_tests() -> None:
    global _TIERS
    _TIERS = None


def get_word_tiers() -> WordTiers:
    if _TIERS is None:
        # project root is one level up from this file: word_oracle/wordlist.py
        return init_word_tiers(project_root=Path(__file__).resolve().parents[1])
    return _TIERS


def select_secret(*, rng: random.Random | None = None, tiers: WordTiers | None = None) -> tuple[str, Difficulty]:
    """Pick a (word, difficulty) pair: weighted tier draw, then a uniform word draw."""

    rng = rng or random.SystemRandom()
    tiers = tiers or get_word_tiers()

    difficulties = list(TIER_WEIGHTS)
    difficulty = rng.choices(difficulties, weights=[TIER_WEIGHTS[d] for d in difficulties], k=1)[0]

    words = tiers.words(difficulty)
    if not words:
        raise WordListError(f"Word tier '{difficulty.value}' is empty")
    return rng.choice(words), difficulty
