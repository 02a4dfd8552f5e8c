from __future__ import annotations

from dataclasses import dataclass

from .scoring import SessionStats
from .session import DualNBackSession, MatchEvent


@dataclass(frozen=True, slots=True)
class SessionResult:
    """Summary + event log for a session that ran to its natural end.

    Lives only as long as the process; nothing here is written to disk.
    """

    seed: int
    n: int
    length: int
    stats: SessionStats
    score: int
    skill_n_after: int
    skill_warns_after: int

    user_assertions: int
    missed_matches: int
    mean_rt_ms: float | None
    median_rt_ms: float | None

    events: list[MatchEvent]

    @property
    def level_change(self) -> int:
        return self.skill_n_after - self.n


def session_result(session: DualNBackSession) -> SessionResult | None:
    """Build a SessionResult, or None if the session is unfinished or was quit."""

    if session.quit is not False:
        return None
    stats = session.stats
    score = session.score
    assert stats is not None and score is not None

    events = session.events()
    user_events = [e for e in events if e.source == "user"]
    rts_ms = sorted(
        int(round(e.response_time_s * 1000.0)) for e in user_events if e.response_time_s is not None
    )

    mean_ms: float | None
    median_ms: float | None
    if not rts_ms:
        mean_ms = None
        median_ms = None
    else:
        mean_ms = float(sum(rts_ms)) / float(len(rts_ms))
        mid = len(rts_ms) // 2
        if len(rts_ms) % 2 == 1:
            median_ms = float(rts_ms[mid])
        else:
            median_ms = float(rts_ms[mid - 1] + rts_ms[mid]) / 2.0

    return SessionResult(
        seed=int(session.seed),
        n=int(session.n),
        length=int(session.length),
        stats=stats,
        score=int(score),
        skill_n_after=int(session.skill.n),
        skill_warns_after=int(session.skill.warns),
        user_assertions=len(user_events),
        missed_matches=sum(1 for e in events if e.source == "timeout"),
        mean_rt_ms=mean_ms,
        median_rt_ms=median_ms,
        events=events,
    )
