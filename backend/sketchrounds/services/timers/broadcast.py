"""Best-effort phase-changed notifications.

Events go to the Socket.IO room ``game-<gameId>`` on the ``/ws`` namespace.
They only shorten the time until clients notice a new phase: the database
stays authoritative and clients reconcile through timer sync polling, so a
failed publish is logged and dropped.
"""

from dataclasses import dataclass, field
from typing import Optional

from flask import current_app

from sketchrounds import db, socketio
from sketchrounds.models import Game
from .clock import now_ts, to_iso

NAMESPACE = '/ws'
EVENT_NAME = 'phase_changed'


def channel_name(game_id: str) -> str:
    return f"game-{game_id}"


@dataclass
class PhaseChangedEvent:
    game_id: str
    previous_phase: str
    new_phase: str
    execution_id: Optional[str]
    triggered_by: str = 'server_timer'
    timestamp: float = field(default_factory=now_ts)
    phase_started_at: Optional[float] = None
    game: Optional[dict] = None

    def to_payload(self) -> dict:
        data = {
            'newPhase': self.new_phase,
            'previousPhase': self.previous_phase,
            'phaseStartedAt': to_iso(self.phase_started_at or self.timestamp),
            'executionId': self.execution_id,
        }
        if self.game is not None:
            data['game'] = self.game
        return {
            'type': EVENT_NAME,
            'gameId': self.game_id,
            'timestamp': to_iso(self.timestamp),
            'triggeredBy': self.triggered_by,
            'data': data,
        }


def _snapshot(game_id: str) -> Optional[dict]:
    try:
        game = db.session.get(Game, game_id)
        return game.to_dict() if game else None
    except Exception as exc:
        db.session.rollback()
        current_app.logger.warning(f"[broadcast-fallback] game={game_id} snapshot unavailable: {exc}")
        return None


def publish(channel: str, payload: dict) -> None:
    socketio.emit(EVENT_NAME, payload, to=channel, namespace=NAMESPACE)


def broadcast_phase_change(game_id: str, previous_phase, new_phase, execution_id: Optional[str] = None,
                           triggered_by: str = 'server_timer',
                           phase_started_at: Optional[float] = None) -> bool:
    """Publish a phase change; returns False instead of raising on failure."""
    event = PhaseChangedEvent(
        game_id=game_id,
        previous_phase=getattr(previous_phase, 'value', previous_phase),
        new_phase=getattr(new_phase, 'value', new_phase),
        execution_id=execution_id,
        triggered_by=triggered_by,
        phase_started_at=phase_started_at,
    )
    if current_app.config.get('BROADCAST_FULL_SNAPSHOT', True):
        event.game = _snapshot(game_id)

    channel = channel_name(game_id)
    try:
        publish(channel, event.to_payload())
    except Exception as exc:
        current_app.logger.warning(
            f"[broadcast-failed] game={game_id} channel={channel} "
            f"{event.previous_phase}->{event.new_phase} execution={execution_id}: {exc}"
        )
        return False
    current_app.logger.info(
        f"[broadcast] game={game_id} channel={channel} {event.previous_phase}->{event.new_phase} "
        f"snapshot={event.game is not None} execution={execution_id}"
    )
    return True
