"""Monitoring tick: find expired phases and advance them.

One tick runs under the advisory lock, reads a bounded batch of expired
games and pushes each through the grace controller, the transition engine
and the broadcaster on a small worker pool. Each worker returns its own
:class:`GameOutcome`; the tick totals them after every worker is done.
"""

import secrets
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

from sketchrounds import db, socketio
from .broadcast import broadcast_phase_change
from .clock import now_ts, to_iso
from .finder import ExpiredGame, find_expired_games
from .grace import GraceAction, evaluate_drawing_grace
from .locks import AdvisoryLock, build_lock
from .phases import GameStatus, next_phase
from .transitions import attempt_transition

PROCESSED = 'processed'
SKIPPED = 'skipped'
ERROR = 'error'


@dataclass(frozen=True)
class GameOutcome:
    game_id: str
    kind: str
    reason: str = ''
    broadcast: Optional[bool] = None


@dataclass
class TickResult:
    processed: int = 0
    errors: int = 0
    skipped: int = 0
    execution_time_ms: int = 0
    timestamp: str = ''
    message: Optional[str] = None
    error: Optional[str] = None
    failed: bool = False
    outcomes: List[GameOutcome] = field(default_factory=list)

    def to_dict(self) -> dict:
        payload = {
            'processed': self.processed,
            'errors': self.errors,
            'skipped': self.skipped,
            'executionTime': self.execution_time_ms,
            'timestamp': self.timestamp,
        }
        if self.message:
            payload['message'] = self.message
        if self.error:
            payload['error'] = self.error
        return payload


def new_execution_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(5)}"


def process_expired_game(app, expired: ExpiredGame, now: Optional[float] = None) -> GameOutcome:
    """Grace check, transition and broadcast for one game, in its own app context."""
    execution_id = new_execution_id()
    with app.app_context():
        log = app.logger
        gid = expired.game_id
        try:
            log.info(f"[tick-game] game={gid} status={expired.current_status.value} execution={execution_id}")
            to_status = next_phase(expired.current_status)
            if to_status is None:
                return GameOutcome(gid, SKIPPED, 'terminal')

            if expired.current_status == GameStatus.DRAWING and to_status == GameStatus.VOTING:
                decision = evaluate_drawing_grace(gid, now=now)
                if decision.action != GraceAction.PROCEED:
                    log.info(f"[tick-game] game={gid} grace {decision.action.value}: {decision.reason}")
                    return GameOutcome(gid, SKIPPED, f"grace_{decision.action.value}")

            result = attempt_transition(
                gid, expired.current_status,
                triggered_by='server_timer', execution_id=execution_id, now=now,
            )
            if not result.transitioned:
                return GameOutcome(gid, SKIPPED, result.outcome.value)

            # The transition is committed; nothing below may undo or retry it
            delivered = broadcast_phase_change(
                gid, result.from_status, result.to_status,
                execution_id=execution_id,
                phase_started_at=result.phase_started_at,
            )
            return GameOutcome(gid, PROCESSED, f"{result.from_status.value}->{result.to_status.value}", delivered)
        except Exception as exc:
            log.exception(f"[tick-error] game={gid} execution={execution_id}: {exc}")
            return GameOutcome(gid, ERROR, str(exc))


def _fan_out(app, batch: List[ExpiredGame], workers: int, now: Optional[float]) -> List[GameOutcome]:
    if workers <= 1:
        return [process_expired_game(app, game, now) for game in batch]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='phase-timer') as pool:
        return list(pool.map(lambda game: process_expired_game(app, game, now), batch))


def run_tick(app, lock: Optional[AdvisoryLock] = None, now: Optional[float] = None) -> TickResult:
    """Run one monitoring pass. Never raises for per-game problems."""
    started = time.monotonic()
    log = app.logger
    result = TickResult()

    def finish(res: TickResult) -> TickResult:
        res.execution_time_ms = int((time.monotonic() - started) * 1000)
        res.timestamp = to_iso(now_ts())
        log.info(f"[tick-done] {res.to_dict()}")
        return res

    with app.app_context():
        lock = lock or build_lock(app)
        lock_name = app.config.get('TIMER_LOCK_NAME', 'timer_monitoring_lock')
        if not lock.acquire(lock_name, int(app.config.get('TIMER_LOCK_TIMEOUT_SEC', 30))):
            log.info(f"[lock-skip] key={lock_name} monitoring already in progress")
            result.skipped = 1
            result.message = 'Execution skipped - already in progress'
            return finish(result)

        try:
            try:
                batch = find_expired_games(int(app.config.get('TIMER_BATCH_LIMIT', 50)), now=now)
            except Exception as exc:
                db.session.rollback()
                log.error(f"[tick-error] expired game query failed: {exc}")
                result.errors = 1
                result.error = 'Database query failed'
                result.failed = True
                return finish(result)
            # Release the read transaction before workers open their own
            db.session.commit()

            log.info(f"[tick-start] found {len(batch)} expired game(s)")
            if not batch:
                result.message = 'No expired games found'
                return finish(result)

            outcomes = _fan_out(app, batch, int(app.config.get('TIMER_CONCURRENCY', 5)), now)
            result.outcomes = outcomes
            result.processed = sum(1 for o in outcomes if o.kind == PROCESSED)
            result.skipped = sum(1 for o in outcomes if o.kind == SKIPPED)
            result.errors = sum(1 for o in outcomes if o.kind == ERROR)
            return finish(result)
        finally:
            lock.release(lock_name)


class TimerMonitor:
    """Calls :func:`run_tick` on an interval, for deployments without an external cron."""

    def __init__(self, interval: Optional[int] = None):
        self.interval = interval
        self._running = False

    def interval_for(self, app) -> int:
        return int(self.interval or app.config.get('TIMER_MONITOR_INTERVAL_SEC', 10))

    def start(self, app):
        if self._running:
            return
        self._running = True
        socketio.start_background_task(self._loop, app)
        app.logger.info(f"[monitor] started, interval={self.interval_for(app)}s")

    def stop(self):
        self._running = False

    def run_forever(self, app):
        self._running = True
        self._loop(app)

    def _loop(self, app):
        while self._running:
            try:
                run_tick(app)
            except Exception:
                app.logger.exception('[monitor] tick failed')
            socketio.sleep(self.interval_for(app))


timer_monitor = TimerMonitor()
