from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .cognitive_core import MODALITIES, Modality, SeededRng


@dataclass(slots=True)
class StimulusSlot:
    id: int
    correct: bool | None = None  # None = unresolved
    complete: bool = False


@dataclass(slots=True)
class Trial:
    """One paired presentation: a grid position and a tone."""

    position: StimulusSlot
    sound: StimulusSlot

    @classmethod
    def of(cls, position: int, sound: int) -> "Trial":
        return cls(position=StimulusSlot(int(position)), sound=StimulusSlot(int(sound)))

    def slot(self, modality: Modality) -> StimulusSlot:
        if modality is Modality.POSITION:
            return self.position
        return self.sound


def is_nback_match(trials: Sequence[Trial], index: int, n: int, modality: Modality) -> bool:
    """True when trial `index` repeats trial `index - n` in `modality`.

    Indices below `n` have nothing to compare against and never match.
    """

    if index < n or index >= len(trials):
        return False
    return trials[index].slot(modality).id == trials[index - n].slot(modality).id


def count_matches(trials: Sequence[Trial], n: int, modality: Modality) -> int:
    return sum(1 for i in range(n, len(trials)) if is_nback_match(trials, i, n, modality))


def count_match_indices(trials: Sequence[Trial], n: int) -> int:
    """Number of trials that repeat in at least one modality."""

    return sum(
        1
        for i in range(n, len(trials))
        if any(is_nback_match(trials, i, n, m) for m in MODALITIES)
    )


class DualNBackSequenceGenerator:
    """Builds a session's trial list with a minimum number of n-back repeats.

    Ids are drawn uniformly, then random indices are forced to repeat their
    n-back partner until the quota is met. Forced repeats are counted across
    both modalities, so the quota may reach twice the comparable trials. A
    pick that already repeats is not counted and is retried on a later pass.
    Forcing one index can undo the repeat of the index `n` after it, so the
    loop also keeps going until the sequence actually holds the quota (and,
    as far as the length allows, that many repeating trials).
    """

    def __init__(self, rng: SeededRng) -> None:
        self._rng = rng

    def generate(self, *, n: int, length: int, min_matches: int) -> tuple[Trial, ...]:
        if n < 1:
            raise ValueError("n must be >= 1")
        if length <= n:
            raise ValueError("length must be > n")
        if min_matches < 0:
            raise ValueError("min_matches must be >= 0")
        comparable = length - n
        if min_matches > 2 * comparable:
            raise ValueError("min_matches must be <= 2 * (length - n)")

        trials = [Trial.of(self._rng.stimulus_id(), self._rng.stimulus_id()) for _ in range(length)]
        index_quota = min(min_matches, comparable)

        forced = 0
        while True:
            repeats = count_matches(trials, n, Modality.POSITION) + count_matches(trials, n, Modality.SOUND)
            if repeats == 2 * comparable:
                # Every trial repeats in both modalities; nothing is left to force.
                break
            if (
                forced >= min_matches
                and repeats >= min_matches
                and count_match_indices(trials, n) >= index_quota
            ):
                break
            for modality in MODALITIES:
                i = self._rng.randint(n, length - 1)
                target = trials[i].slot(modality)
                source = trials[i - n].slot(modality)
                if target.id != source.id:
                    target.id = source.id
                    forced += 1

        return tuple(trials)
