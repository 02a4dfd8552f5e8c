from __future__ import annotations

import math
import random
from enum import Enum, StrEnum

from loguru import logger

STIMULUS_COUNT = 9  # 3x3 grid cells / tone bank size
MIN_STIMULUS_ID = 0
MAX_STIMULUS_ID = STIMULUS_COUNT - 1


class Phase(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    PRESENTING = "presenting"
    AWAITING_RESPONSE = "awaiting_response"
    FEEDBACK = "feedback"
    ENDED = "ended"


class Modality(StrEnum):
    POSITION = "position"
    SOUND = "sound"


MODALITIES: tuple[Modality, ...] = (Modality.POSITION, Modality.SOUND)


def parse_modality(value: object) -> Modality | None:
    """Coerce `value` to a Modality, logging and returning None when invalid."""

    if isinstance(value, Modality):
        return value
    try:
        return Modality(str(value).strip().lower())
    except ValueError:
        logger.warning("Can only match position or sound. Ignoring: {!r}", value)
        return None


def is_stimulus_id(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return MIN_STIMULUS_ID <= value <= MAX_STIMULUS_ID


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def stimulus_id(self) -> int:
        return self._rng.randint(MIN_STIMULUS_ID, MAX_STIMULUS_ID)


def round_half_up(x: float) -> int:
    # Percent scores round .5 upwards, never to even.
    return int(math.floor(x + 0.5))
