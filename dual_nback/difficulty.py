from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from .cognitive_core import round_half_up
from .scoring import SessionStats

PROMOTE_ABOVE = 80
WARN_BELOW = 50
MAX_WARNS = 2


@dataclass(slots=True)
class PlayerSkillState:
    """Process-lifetime skill level shared by consecutive sessions.

    Read when a session is built; written only when a session runs to its
    natural end.
    """

    n: int = 2
    warns: int = 0

    def __post_init__(self) -> None:
        if self.n < 1:
            raise ValueError("n must be >= 1")
        if not (0 <= self.warns <= MAX_WARNS):
            raise ValueError(f"warns must be in [0, {MAX_WARNS}]")


def session_score(stats: SessionStats) -> int:
    """Percentage of resolved assertions that were correct (0 if none were)."""

    resolved = stats.correct + stats.incorrect
    if resolved == 0:
        return 0
    return round_half_up(100.0 * stats.correct / resolved)


def adapt_difficulty(skill: PlayerSkillState, stats: SessionStats) -> int:
    """Apply one session's result to `skill` and return the session score.

    Above 80 raises n. Below 50 first accumulates warnings, and only once
    the warnings are used up lowers n (never below 1). 50..80 holds.
    """

    score = session_score(stats)
    before = (skill.n, skill.warns)

    if score > PROMOTE_ABOVE:
        skill.n += 1
        skill.warns = 0
    elif score < WARN_BELOW and skill.warns < MAX_WARNS:
        skill.warns += 1
    elif score < WARN_BELOW and skill.n > 1:
        skill.n -= 1
        skill.warns = 0

    logger.info(
        "Session score {}%: n {} -> {}, warns {} -> {}",
        score,
        before[0],
        skill.n,
        before[1],
        skill.warns,
    )
    return score
