from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .cognitive_core import MODALITIES, Modality
from .sequence import Trial, is_nback_match


@dataclass(frozen=True, slots=True)
class ModalityStats:
    matches: int = 0
    correct: int = 0
    incorrect: int = 0


@dataclass(frozen=True, slots=True)
class SessionStats:
    position: ModalityStats
    sound: ModalityStats

    @property
    def correct(self) -> int:
        return self.position.correct + self.sound.correct

    @property
    def incorrect(self) -> int:
        return self.position.incorrect + self.sound.incorrect


def evaluate_match(trials: Sequence[Trial], index: int, n: int, modality: Modality) -> bool | None:
    """Score a user's "this repeats" assertion for one modality of one trial.

    Returns None (and changes nothing) when the trial has no n-back partner
    or the slot was already resolved; otherwise locks the slot and returns
    whether the assertion was right.
    """

    if index < n or index >= len(trials):
        return None
    slot = trials[index].slot(modality)
    if slot.complete:
        return None

    slot.complete = True
    success = is_nback_match(trials, index, n, modality)
    slot.correct = success
    return success


def resolve_round_timeout(trials: Sequence[Trial], index: int, n: int) -> list[Modality]:
    """Close trial `index` and return the modalities scored as missed matches.

    A true repeat the user never asserted becomes incorrect. A non-repeat
    left alone stays unresolved: silence is the right answer there and is
    neither rewarded nor penalised.
    """

    if index < 0 or index >= len(trials):
        return []

    missed: list[Modality] = []
    trial = trials[index]
    for modality in MODALITIES:
        slot = trial.slot(modality)
        if slot.correct is None and is_nback_match(trials, index, n, modality):
            slot.correct = False
            missed.append(modality)
        slot.complete = True
    return missed


def _tally_modality(trials: Sequence[Trial], n: int, modality: Modality) -> ModalityStats:
    matches = correct = incorrect = 0
    for i in range(n, len(trials)):
        if is_nback_match(trials, i, n, modality):
            matches += 1
        verdict = trials[i].slot(modality).correct
        if verdict is True:
            correct += 1
        elif verdict is False:
            incorrect += 1
    return ModalityStats(matches=matches, correct=correct, incorrect=incorrect)


def tally_session(trials: Sequence[Trial], n: int) -> SessionStats:
    return SessionStats(
        position=_tally_modality(trials, n, Modality.POSITION),
        sound=_tally_modality(trials, n, Modality.SOUND),
    )
