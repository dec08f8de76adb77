"""Phase transition engine.

Every automatic status change goes through :func:`attempt_transition`. It
re-reads the game immediately before writing, then writes with a
conditional ``UPDATE ... WHERE status = :from`` so that two ticks, or a tick
and a direct gameplay write, can never both advance the same phase. Losing
that race is a normal outcome, reported as a skip.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import func, select, update

from sketchrounds import db
from sketchrounds.models import Game, PhaseTransition
from .clock import now_ts
from .phases import GameStatus, PHASE_TIMESTAMP_COLUMNS, next_phase, phase_entry_values


class InvalidTransition(Exception):
    pass


class TransitionOutcome(str, enum.Enum):
    TRANSITIONED = 'transitioned'
    SKIPPED_TERMINAL = 'terminal'
    SKIPPED_NOT_FOUND = 'not_found'
    SKIPPED_ALREADY_TRANSITIONED = 'already_transitioned'
    SKIPPED_TIMER_EXTENDED = 'timer_extended'


@dataclass(frozen=True)
class TransitionResult:
    outcome: TransitionOutcome
    from_status: GameStatus
    to_status: Optional[GameStatus] = None
    phase_started_at: Optional[float] = None

    @property
    def transitioned(self) -> bool:
        return self.outcome == TransitionOutcome.TRANSITIONED


def conditional_transition(game_id: str, from_status, to_status, *, triggered_by: str = 'manual',
                           execution_id: Optional[str] = None, now: Optional[float] = None) -> bool:
    """Move ``game_id`` from ``from_status`` to ``to_status`` atomically.

    Returns False when the row was no longer in ``from_status`` (race lost).
    Only the next-step edge is allowed. Commits on success and rolls back
    on a lost race; store errors roll back and propagate.
    """
    from_status = GameStatus(from_status)
    to_status = GameStatus(to_status)
    if next_phase(from_status) != to_status:
        raise InvalidTransition(f"Invalid transition from {from_status.value} to {to_status.value}")
    now = now_ts(now)

    settings = db.session.execute(
        select(Game.round_duration, Game.voting_duration).where(Game.id == game_id)
    ).first()
    if settings is None:
        db.session.rollback()
        return False

    values = phase_entry_values(
        to_status, now, current_app.config,
        round_duration=settings.round_duration,
        voting_duration=settings.voting_duration,
    )
    stamp = PHASE_TIMESTAMP_COLUMNS.get(to_status)
    if stamp:
        values[stamp] = func.coalesce(getattr(Game, stamp), now)

    try:
        result = db.session.execute(
            update(Game)
            .where(Game.id == game_id)
            .where(Game.status == from_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            return False
        db.session.add(PhaseTransition(
            game_id=game_id,
            from_status=from_status.value,
            to_status=to_status.value,
            triggered_by=triggered_by,
            execution_id=execution_id,
            created_at=now,
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return True


def attempt_transition(game_id: str, from_status, *, triggered_by: str = 'server_timer',
                       execution_id: Optional[str] = None, now: Optional[float] = None) -> TransitionResult:
    """Advance an expired game one step if it is still where the caller saw it."""
    from_status = GameStatus(from_status)
    now = now_ts(now)
    log = current_app.logger

    to_status = next_phase(from_status)
    if to_status is None:
        log.info(f"[transition-skip] game={game_id} status={from_status.value} is terminal")
        return TransitionResult(TransitionOutcome.SKIPPED_TERMINAL, from_status)

    current = db.session.execute(
        select(Game.status, Game.phase_expires_at).where(Game.id == game_id)
    ).first()
    if current is None:
        log.info(f"[transition-skip] game={game_id} not found")
        return TransitionResult(TransitionOutcome.SKIPPED_NOT_FOUND, from_status, to_status)

    if current.status != from_status.value:
        log.info(f"[transition-skip] game={game_id} already moved {from_status.value} -> {current.status}")
        return TransitionResult(TransitionOutcome.SKIPPED_ALREADY_TRANSITIONED, from_status, to_status)

    if current.phase_expires_at is not None and current.phase_expires_at > now:
        log.info(f"[transition-skip] game={game_id} timer extended to {current.phase_expires_at:.3f}")
        return TransitionResult(TransitionOutcome.SKIPPED_TIMER_EXTENDED, from_status, to_status)

    won = conditional_transition(
        game_id, from_status, to_status,
        triggered_by=triggered_by, execution_id=execution_id, now=now,
    )
    if not won:
        log.info(f"[transition-race] game={game_id} lost conditional write for {from_status.value}")
        return TransitionResult(TransitionOutcome.SKIPPED_ALREADY_TRANSITIONED, from_status, to_status)

    log.info(f"[transition] game={game_id} {from_status.value}->{to_status.value} execution={execution_id}")
    return TransitionResult(TransitionOutcome.TRANSITIONED, from_status, to_status, phase_started_at=now)
