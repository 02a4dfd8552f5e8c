from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal, Protocol

from loguru import logger

from .clock import Clock, Deadline
from .cognitive_core import Modality, Phase, SeededRng, parse_modality
from .difficulty import PlayerSkillState, adapt_difficulty
from .scoring import SessionStats, evaluate_match, resolve_round_timeout, tally_session
from .sequence import DualNBackSequenceGenerator, Trial


@dataclass(frozen=True, slots=True)
class DualNBackConfig:
    display_duration_s: float = 1.5
    round_duration_s: float = 2.5
    feedback_duration_s: float = 0.5
    start_delay_s: float = 0.5
    base_session_length: int = 20
    min_matches: int = 3

    @property
    def effective_min_matches(self) -> int:
        # A quota longer than the session cannot be met; fall back to pure chance.
        if self.min_matches > self.base_session_length:
            return 0
        return self.min_matches

    def session_length(self, n: int) -> int:
        return self.base_session_length + int(n)


class PresentationSurface(Protocol):
    def render(self, position_id: int, sound_id: int, *, at_s: float | None = None) -> None: ...
    def show_feedback(self, modality: Modality | str, correct: bool) -> None: ...
    def reset(self) -> None: ...
    def register_click_matchers(
        self,
        on_position: Callable[[], None],
        on_sound: Callable[[], None],
    ) -> None: ...
    def clear_click_matchers(self) -> None: ...
    def show_skill_state(self, n: int, warns: int) -> None: ...


AssertListener = Callable[[Modality | str], None]


class InputSurface(Protocol):
    def attach(self, listener: AssertListener) -> None: ...
    def detach(self) -> None: ...


@dataclass(frozen=True, slots=True)
class MatchEvent:
    trial_index: int
    modality: Modality
    source: Literal["user", "timeout"]
    is_correct: bool
    response_time_s: float | None


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """View model for the UI (pure data)."""

    title: str
    phase: Phase
    prompt: str
    input_hint: str
    n: int
    trial_index: int
    length: int
    round_open: bool
    position_id: int | None
    sound_id: int | None
    skill_n: int
    skill_warns: int


_OPEN_PHASES = (Phase.PRESENTING, Phase.AWAITING_RESPONSE)


class DualNBackSession:
    """Timed dual n-back session: present -> respond -> feedback per trial.

    - Deterministic: the trial sequence comes from an RNG seeded at construction.
    - Time is entirely via injected Clock; the owner calls update() every frame.
    - At most one Deadline is pending. end() bumps the generation so nothing
      armed before it can fire afterwards.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        seed: int,
        skill: PlayerSkillState,
        surface: PresentationSurface,
        input_surface: InputSurface | None = None,
        config: DualNBackConfig | None = None,
    ) -> None:
        cfg = config or DualNBackConfig()

        if cfg.display_duration_s <= 0.0:
            raise ValueError("display_duration_s must be > 0")
        if cfg.round_duration_s <= 0.0:
            raise ValueError("round_duration_s must be > 0")
        if cfg.feedback_duration_s <= 0.0:
            raise ValueError("feedback_duration_s must be > 0")
        if cfg.start_delay_s <= 0.0:
            raise ValueError("start_delay_s must be > 0")
        if cfg.base_session_length < 1:
            raise ValueError("base_session_length must be >= 1")
        if cfg.min_matches < 0:
            raise ValueError("min_matches must be >= 0")

        self._clock = clock
        self._seed = int(seed)
        self._cfg = cfg
        self._skill = skill
        self._surface = surface
        self._input = input_surface

        self._n = int(skill.n)
        self._length = cfg.session_length(self._n)
        self._trials: tuple[Trial, ...] = DualNBackSequenceGenerator(SeededRng(self._seed)).generate(
            n=self._n,
            length=self._length,
            min_matches=cfg.effective_min_matches,
        )

        self._phase = Phase.IDLE
        self._current = 0
        self._deadline: Deadline | None = None
        self._generation = 0
        self._presented_at_s: float | None = None

        self._events: list[MatchEvent] = []
        self._quit: bool | None = None
        self._stats: SessionStats | None = None
        self._score: int | None = None

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def n(self) -> int:
        return self._n

    @property
    def length(self) -> int:
        return self._length

    @property
    def current(self) -> int:
        return self._current

    @property
    def trials(self) -> tuple[Trial, ...]:
        return self._trials

    @property
    def skill(self) -> PlayerSkillState:
        return self._skill

    @property
    def deadline(self) -> Deadline | None:
        return self._deadline

    @property
    def round_open(self) -> bool:
        return self._phase in _OPEN_PHASES

    @property
    def quit(self) -> bool | None:
        """None while running, True if aborted, False if it ran out of trials."""
        return self._quit

    @property
    def stats(self) -> SessionStats | None:
        return self._stats

    @property
    def score(self) -> int | None:
        return self._score

    def events(self) -> list[MatchEvent]:
        return list(self._events)

    def start(self) -> bool:
        if self._phase is not Phase.IDLE:
            logger.debug("start() ignored in phase {}", self._phase.value)
            return False

        self._generation += 1
        if self._input is not None:
            self._input.attach(self.on_assert)
        self._surface.register_click_matchers(
            lambda: self.on_assert(Modality.POSITION),
            lambda: self.on_assert(Modality.SOUND),
        )

        self._phase = Phase.STARTING
        self._arm(self._clock.now() + self._cfg.start_delay_s)
        logger.info("Dual {}-back session started: {} trials, seed={}", self._n, self._length, self._seed)
        return True

    def update(self) -> None:
        now = self._clock.now()
        while self._deadline is not None and self._deadline.is_due(now):
            deadline = self._deadline
            self._deadline = None
            if deadline.generation != self._generation:
                return
            self._fire(deadline.due_at_s)

    def on_assert(self, modality: Modality | str) -> None:
        """Input-surface listener; only dispatched while a round is open."""
        if not self.round_open:
            return
        self.match(modality)

    def match(self, modality: Modality | str) -> bool | None:
        """Score an assertion that the current trial repeats in `modality`.

        Returns the verdict, or None when the assertion was ignored (invalid
        modality, no round open, no n-back partner yet, already answered).
        """

        parsed = parse_modality(modality)
        if parsed is None or not self.round_open:
            return None

        verdict = evaluate_match(self._trials, self._current, self._n, parsed)
        if verdict is None:
            return None

        rt = None if self._presented_at_s is None else max(0.0, self._clock.now() - self._presented_at_s)
        self._events.append(
            MatchEvent(
                trial_index=self._current,
                modality=parsed,
                source="user",
                is_correct=verdict,
                response_time_s=rt,
            )
        )
        self._surface.show_feedback(parsed, verdict)
        return verdict

    def end(self, quit: bool) -> None:
        if self._phase is Phase.ENDED:
            return

        self._generation += 1
        self._deadline = None
        if self._input is not None:
            self._input.detach()
        self._surface.clear_click_matchers()
        self._surface.reset()

        self._current = self._length
        self._phase = Phase.ENDED
        self._presented_at_s = None
        self._quit = bool(quit)

        if self._quit:
            logger.info("Dual {}-back session quit; skill unchanged", self._n)
            return

        self._stats = tally_session(self._trials, self._n)
        self._score = adapt_difficulty(self._skill, self._stats)
        self._surface.show_skill_state(self._skill.n, self._skill.warns)

    def snapshot(self) -> SessionSnapshot:
        trial = self._trials[self._current] if self.round_open else None
        return SessionSnapshot(
            title=f"Dual {self._n}-Back",
            phase=self._phase,
            prompt=self.current_prompt(),
            input_hint="A = position match   L = sound match   Space = start/quit",
            n=self._n,
            trial_index=self._current,
            length=self._length,
            round_open=self.round_open,
            position_id=None if trial is None else trial.position.id,
            sound_id=None if trial is None else trial.sound.id,
            skill_n=self._skill.n,
            skill_warns=self._skill.warns,
        )

    def current_prompt(self) -> str:
        if self._phase is Phase.IDLE:
            return "Press Space to start the session."
        if self._phase is Phase.STARTING:
            return "Get ready..."
        if self._phase is Phase.ENDED:
            if self._quit:
                return "Session quit. Press Space to start a new one."
            return f"Session complete. Score: {self._score}%. Press Space to start a new one."
        return f"Trial {self._current + 1} / {self._length}"

    def _arm(self, due_at_s: float) -> None:
        self._deadline = Deadline(due_at_s=float(due_at_s), generation=self._generation)

    def _fire(self, due_at_s: float) -> None:
        generation = self._generation
        if self._phase is Phase.STARTING:
            self._present(due_at_s)
        elif self._phase is Phase.PRESENTING:
            # Display and round windows overlap; the round is measured from presentation.
            assert self._presented_at_s is not None
            self._phase = Phase.AWAITING_RESPONSE
            self._arm(max(due_at_s, self._presented_at_s + self._cfg.round_duration_s))
        elif self._phase is Phase.AWAITING_RESPONSE:
            self._close_round(due_at_s, generation)
        elif self._phase is Phase.FEEDBACK:
            self._current += 1
            if self._current < self._length:
                self._present(due_at_s)
            else:
                self.end(False)

    def _present(self, at_s: float) -> None:
        generation = self._generation
        trial = self._trials[self._current]
        self._phase = Phase.PRESENTING
        self._presented_at_s = at_s
        self._surface.reset()
        self._surface.render(trial.position.id, trial.sound.id, at_s=at_s)
        if generation != self._generation:
            return
        self._arm(at_s + self._cfg.display_duration_s)

    def _close_round(self, at_s: float, generation: int) -> None:
        self._phase = Phase.FEEDBACK
        missed = resolve_round_timeout(self._trials, self._current, self._n)
        for modality in missed:
            logger.debug("Trial {}: missed {} match", self._current, modality.value)
            self._events.append(
                MatchEvent(
                    trial_index=self._current,
                    modality=modality,
                    source="timeout",
                    is_correct=False,
                    response_time_s=None,
                )
            )
            self._surface.show_feedback(modality, False)
            if generation != self._generation:
                return
        self._arm(at_s + self._cfg.feedback_duration_s)


def build_dual_nback_session(
    *,
    clock: Clock,
    seed: int,
    skill: PlayerSkillState,
    surface: PresentationSurface,
    input_surface: InputSurface | None = None,
    config: DualNBackConfig | None = None,
) -> DualNBackSession:
    return DualNBackSession(
        clock=clock,
        seed=seed,
        skill=skill,
        surface=surface,
        input_surface=input_surface,
        config=config,
    )
