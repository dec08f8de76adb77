"""Game phases and the fixed next-phase table.

The lifecycle is linear: waiting -> briefing -> drawing -> voting ->
results -> completed. ``cancelled`` is a terminal sink set by other actors;
the timer never produces it.
"""

import enum
from typing import Dict, Optional


class GameStatus(str, enum.Enum):
    WAITING = 'waiting'
    BRIEFING = 'briefing'
    DRAWING = 'drawing'
    VOTING = 'voting'
    RESULTS = 'results'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


NEXT_PHASE: Dict[GameStatus, Optional[GameStatus]] = {
    GameStatus.WAITING: GameStatus.BRIEFING,
    GameStatus.BRIEFING: GameStatus.DRAWING,
    GameStatus.DRAWING: GameStatus.VOTING,
    GameStatus.VOTING: GameStatus.RESULTS,
    GameStatus.RESULTS: GameStatus.COMPLETED,
    GameStatus.COMPLETED: None,
    GameStatus.CANCELLED: None,
}

_missing = set(GameStatus) - set(NEXT_PHASE)
if _missing:
    raise RuntimeError(f"NEXT_PHASE has no entry for {sorted(s.value for s in _missing)}")

# Phases that run on a clock and are therefore visible to the expired game finder
TIMED_PHASES = frozenset({
    GameStatus.BRIEFING,
    GameStatus.DRAWING,
    GameStatus.VOTING,
    GameStatus.RESULTS,
})

TERMINAL_PHASES = frozenset(s for s, nxt in NEXT_PHASE.items() if nxt is None)


def next_phase(status) -> Optional[GameStatus]:
    return NEXT_PHASE[GameStatus(status)]


def phase_duration_for(status: GameStatus, config, round_duration=None, voting_duration=None) -> Optional[int]:
    """Seconds allotted to ``status`` when it begins, or None for untimed phases."""
    if status == GameStatus.BRIEFING:
        return int(config.get('BRIEFING_DURATION_SEC', 20))
    if status == GameStatus.DRAWING:
        return int(round_duration or 60)
    if status == GameStatus.VOTING:
        return int(voting_duration or 30)
    if status == GameStatus.RESULTS:
        return int(config.get('RESULTS_DURATION_SEC', 15))
    return None


def phase_entry_values(status: GameStatus, now: float, config,
                       round_duration=None, voting_duration=None) -> dict:
    """Column values written when a game enters ``status``.

    Lifecycle timestamps are filled with SQL ``coalesce`` by the caller so a
    value set earlier is never overwritten.
    """
    duration = phase_duration_for(status, config, round_duration, voting_duration)
    return {
        'status': status.value,
        'phase_duration': duration,
        'phase_started_at': now,
        'phase_expires_at': (now + duration) if duration is not None else None,
        'grace_started_at': None,
    }


# Lifecycle column stamped the first time a game enters each phase
PHASE_TIMESTAMP_COLUMNS = {
    GameStatus.BRIEFING: 'started_at',
    GameStatus.DRAWING: 'drawing_started_at',
    GameStatus.VOTING: 'voting_started_at',
    GameStatus.COMPLETED: 'completed_at',
    GameStatus.CANCELLED: 'completed_at',
}
