from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import and_, or_, select

from sketchrounds import db
from sketchrounds.models import Game
from .clock import now_ts
from .phases import GameStatus, TIMED_PHASES


@dataclass(frozen=True)
class ExpiredGame:
    game_id: str
    current_status: GameStatus
    phase_expires_at: float
    phase_duration: Optional[int] = None
    in_grace: bool = False


def find_expired_games(limit: int = 50, now: Optional[float] = None) -> List[ExpiredGame]:
    """Games whose phase clock has run out, oldest expiry first.

    Drawing games sitting in their grace window are included too, so that
    the grace controller can end the window as soon as every player has
    submitted. Terminal and untimed statuses are never returned even if a
    stale ``phase_expires_at`` was left behind. Anything past ``limit``
    waits for the next tick.
    """
    now = now_ts(now)
    expired = Game.phase_expires_at <= now
    in_grace = and_(
        Game.status == GameStatus.DRAWING.value,
        Game.grace_started_at.isnot(None),
    )
    rows = db.session.execute(
        select(Game.id, Game.status, Game.phase_expires_at, Game.phase_duration, Game.grace_started_at)
        .where(Game.phase_expires_at.isnot(None))
        .where(Game.status.in_([s.value for s in TIMED_PHASES]))
        .where(or_(expired, in_grace))
        .order_by(Game.phase_expires_at.asc(), Game.id.asc())
        .limit(int(limit))
    ).all()
    return [
        ExpiredGame(
            game_id=row.id,
            current_status=GameStatus(row.status),
            phase_expires_at=row.phase_expires_at,
            phase_duration=row.phase_duration,
            in_grace=row.grace_started_at is not None,
        )
        for row in rows
    ]
