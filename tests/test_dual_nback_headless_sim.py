from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import pytest

from dual_nback.cognitive_core import MODALITIES, Modality, Phase
from dual_nback.difficulty import PlayerSkillState
from dual_nback.results import session_result
from dual_nback.session import DualNBackConfig, DualNBackSession, SessionSnapshot, build_dual_nback_session


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


class NullSurface:
    def render(self, position_id: int, sound_id: int, *, at_s: float | None = None) -> None:
        pass

    def show_feedback(self, modality: Modality | str, correct: bool) -> None:
        pass

    def reset(self) -> None:
        pass

    def register_click_matchers(self, on_position: Callable[[], None], on_sound: Callable[[], None]) -> None:
        pass

    def clear_click_matchers(self) -> None:
        pass

    def show_skill_state(self, n: int, warns: int) -> None:
        pass


Player = Callable[[DualNBackSession, SessionSnapshot, dict[int, tuple[int, int]]], None]

CFG = DualNBackConfig(
    display_duration_s=0.5,
    round_duration_s=1.0,
    feedback_duration_s=0.25,
    start_delay_s=0.25,
    base_session_length=20,
    min_matches=3,
)


def _perfect_player(session: DualNBackSession, snap: SessionSnapshot, seen: dict[int, tuple[int, int]]) -> None:
    i = snap.trial_index
    if i < snap.n:
        return
    now = (snap.position_id, snap.sound_id)
    for idx, modality in enumerate(MODALITIES):
        if now[idx] == seen[i - snap.n][idx]:
            session.on_assert(modality)


def _silent_player(session: DualNBackSession, snap: SessionSnapshot, seen: dict[int, tuple[int, int]]) -> None:
    pass


def _button_masher(session: DualNBackSession, snap: SessionSnapshot, seen: dict[int, tuple[int, int]]) -> None:
    session.on_assert(Modality.POSITION)
    session.on_assert(Modality.SOUND)


def _run_scripted_session(*, seed: int, player: Player, skill: PlayerSkillState) -> DualNBackSession:
    clock = FakeClock()
    session = build_dual_nback_session(clock=clock, seed=seed, skill=skill, surface=NullSurface(), config=CFG)
    session.start()

    seen: dict[int, tuple[int, int]] = {}
    for _ in range(20000):
        clock.advance(1.0 / 60.0)
        session.update()
        snap = session.snapshot()
        if snap.phase is Phase.ENDED:
            return session
        if not snap.round_open:
            continue
        assert snap.position_id is not None and snap.sound_id is not None
        seen[snap.trial_index] = (snap.position_id, snap.sound_id)
        # React a few frames after the stimulus appears.
        if clock.t - (CFG.start_delay_s + snap.trial_index * (CFG.round_duration_s + CFG.feedback_duration_s)) > 0.3:
            player(session, snap, seen)

    raise AssertionError("session did not end")


def _compact(session: DualNBackSession) -> list[tuple[object, ...]]:
    return [
        (
            e.trial_index,
            e.modality,
            e.source,
            e.is_correct,
            None if e.response_time_s is None else round(e.response_time_s, 9),
        )
        for e in session.events()
    ]


def test_headless_scripted_run_is_exactly_deterministic() -> None:
    s1 = _run_scripted_session(seed=441, player=_perfect_player, skill=PlayerSkillState(n=2))
    s2 = _run_scripted_session(seed=441, player=_perfect_player, skill=PlayerSkillState(n=2))

    assert _compact(s1) == _compact(s2)
    assert s1.stats == s2.stats


@pytest.mark.parametrize("seed", [3, 441, 9001])
def test_perfect_player_scores_every_match_and_levels_up(seed: int) -> None:
    skill = PlayerSkillState(n=2, warns=1)
    session = _run_scripted_session(seed=seed, player=_perfect_player, skill=skill)

    stats = session.stats
    assert stats is not None
    assert stats.position.matches + stats.sound.matches >= CFG.min_matches
    assert stats.position.correct == stats.position.matches
    assert stats.sound.correct == stats.sound.matches
    assert stats.incorrect == 0
    assert session.score == 100
    assert (skill.n, skill.warns) == (3, 0)

    result = session_result(session)
    assert result is not None
    assert result.missed_matches == 0
    assert result.user_assertions == stats.correct
    assert result.mean_rt_ms is not None and result.mean_rt_ms > 300.0
    assert result.median_rt_ms is not None
    assert result.level_change == 1


def test_silent_player_misses_every_match() -> None:
    skill = PlayerSkillState(n=2, warns=0)
    session = _run_scripted_session(seed=77, player=_silent_player, skill=skill)

    stats = session.stats
    assert stats is not None
    assert stats.correct == 0
    assert stats.incorrect == stats.position.matches + stats.sound.matches
    assert session.score == 0
    assert (skill.n, skill.warns) == (2, 1)

    result = session_result(session)
    assert result is not None
    assert result.user_assertions == 0
    assert result.mean_rt_ms is None
    assert result.missed_matches == stats.incorrect


def test_button_masher_is_scored_once_per_trial_and_modality() -> None:
    skill = PlayerSkillState(n=1, warns=2)
    session = _run_scripted_session(seed=5, player=_button_masher, skill=skill)

    stats = session.stats
    assert stats is not None
    comparable = session.length - session.n
    assert stats.position.correct + stats.position.incorrect == comparable
    assert stats.sound.correct + stats.sound.incorrect == comparable
    assert stats.position.correct == stats.position.matches
    assert len([e for e in session.events() if e.source == "user"]) == 2 * comparable


def test_quit_session_has_no_result() -> None:
    clock = FakeClock()
    skill = PlayerSkillState(n=2)
    session = build_dual_nback_session(clock=clock, seed=1, skill=skill, surface=NullSurface(), config=CFG)
    assert session_result(session) is None
    session.start()
    clock.advance(3.0)
    session.update()
    session.end(True)

    assert session_result(session) is None
    assert (skill.n, skill.warns) == (2, 0)
