"""Grace window before drawing ends.

When the drawing clock runs out while some players have not submitted, the
phase is held open once for ``DRAWING_GRACE_SEC`` so last-second uploads can
land. The marker is ``Game.grace_started_at``: it is set once with a
conditional write that also extends ``phase_expires_at``, and stays set
until the transition to voting clears it. Neither repeated ticks nor a
later change to the timer can open a second window in the same phase.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from sketchrounds import db
from sketchrounds.models import Game, Participant, Submission
from .clock import now_ts
from .phases import GameStatus


class GraceAction(str, enum.Enum):
    PROCEED = 'proceed'
    DELAY = 'delay'
    SKIP = 'skip'


@dataclass(frozen=True)
class GraceDecision:
    action: GraceAction
    reason: str


def grace_key(game_id: str) -> str:
    return f"drawing_grace_{game_id}"


def submission_progress(game_id: str):
    participants = db.session.execute(
        select(func.count(Participant.id))
        .where(Participant.game_id == game_id)
        .where(Participant.left_at.is_(None))
    ).scalar_one()
    submissions = db.session.execute(
        select(func.count(Submission.id)).where(Submission.game_id == game_id)
    ).scalar_one()
    return participants, submissions


def _cut_grace_short(game_id: str, started: float, window: int, now: float) -> None:
    # Only our own extension is pulled back; a timer moved by anyone else stays put
    own_expiry = started + window
    db.session.execute(
        update(Game)
        .where(Game.id == game_id)
        .where(Game.grace_started_at == started)
        .where(Game.phase_expires_at == own_expiry)
        .values(phase_expires_at=min(own_expiry, now))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


def evaluate_drawing_grace(game_id: str, now: Optional[float] = None,
                           window: Optional[int] = None) -> GraceDecision:
    """Decide whether an expired drawing phase may move to voting this tick."""
    now = now_ts(now)
    if window is None:
        window = int(current_app.config.get('DRAWING_GRACE_SEC', 15))
    log = current_app.logger
    key = grace_key(game_id)

    try:
        participants, submissions = submission_progress(game_id)
        started = db.session.execute(
            select(Game.grace_started_at).where(Game.id == game_id)
        ).scalar_one_or_none()
        log.info(f"[grace-check] game={game_id} submissions={submissions}/{participants} in_grace={started is not None}")

        if submissions >= participants:
            if started is not None:
                _cut_grace_short(game_id, started, window, now)
                log.info(f"[grace-end] game={game_id} key={key} all players submitted")
            return GraceDecision(GraceAction.PROCEED, 'All submissions complete')

        if started is None:
            result = db.session.execute(
                update(Game)
                .where(Game.id == game_id)
                .where(Game.status == GameStatus.DRAWING.value)
                .where(Game.grace_started_at.is_(None))
                .values(grace_started_at=now, phase_expires_at=now + window)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.session.rollback()
                log.info(f"[grace-skip] game={game_id} key={key} could not claim grace window")
                return GraceDecision(GraceAction.SKIP, 'Grace window claimed elsewhere or phase changed')
            db.session.commit()
            log.info(f"[grace-start] game={game_id} key={key} window={window}s")
            return GraceDecision(GraceAction.DELAY, 'Grace period started')

        if now < started + window:
            log.info(f"[grace-wait] game={game_id} key={key} remaining={started + window - now:.1f}s")
            return GraceDecision(GraceAction.DELAY, 'Grace period still active')

        # Marker stays until the phase moves so the window never reopens
        log.info(f"[grace-end] game={game_id} key={key} window elapsed")
        return GraceDecision(GraceAction.PROCEED, 'Grace period expired')
    except SQLAlchemyError as exc:
        db.session.rollback()
        log.warning(f"[grace-error] game={game_id} key={key} {exc}")
        return GraceDecision(GraceAction.SKIP, 'Grace period check failed')
