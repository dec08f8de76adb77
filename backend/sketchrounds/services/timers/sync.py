from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select

from sketchrounds import db
from sketchrounds.models import Game, Participant
from .clock import now_ts, to_iso


class GameNotFound(Exception):
    pass


class NotAParticipant(Exception):
    pass


@dataclass(frozen=True)
class TimerState:
    time_remaining: Optional[int]
    phase_duration: Optional[int]
    phase_expires_at: Optional[float]
    server_time: float
    phase: str

    def to_dict(self) -> dict:
        return {
            'timeRemaining': self.time_remaining,
            'phaseDuration': self.phase_duration,
            'phaseExpiresAt': to_iso(self.phase_expires_at),
            'serverTime': to_iso(self.server_time),
            'phase': self.phase,
        }


def is_active_participant(game_id: str, user_id: int) -> bool:
    return db.session.execute(
        select(Participant.id)
        .where(Participant.game_id == game_id)
        .where(Participant.user_id == user_id)
        .where(Participant.left_at.is_(None))
    ).first() is not None


def get_timer_state(game_id: str, user_id: int, now: Optional[float] = None) -> TimerState:
    """Authoritative phase clock for a participant.

    Remaining time is computed from the server clock only and never goes
    below zero. It can jump upward between calls when the drawing grace
    window extends the phase.
    """
    game = db.session.execute(
        select(Game.status, Game.phase_duration, Game.phase_expires_at).where(Game.id == game_id)
    ).first()
    if game is None:
        raise GameNotFound(game_id)
    if not is_active_participant(game_id, user_id):
        raise NotAParticipant(game_id)

    now = now_ts(now)
    remaining = None
    if game.phase_expires_at is not None:
        remaining = max(0, int(round(game.phase_expires_at - now)))
    return TimerState(
        time_remaining=remaining,
        phase_duration=game.phase_duration,
        phase_expires_at=game.phase_expires_at,
        server_time=now,
        phase=game.status,
    )
