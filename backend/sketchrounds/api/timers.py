from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
import hmac
import uuid

from sketchrounds.services.timers.clock import now_ts, to_iso
from sketchrounds.services.timers.monitor import run_tick
from sketchrounds.services.timers.sync import GameNotFound, NotAParticipant, get_timer_state


timers = Blueprint('timers', __name__)


def _valid_game_id(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


@timers.route('/monitor', methods=['POST'])
def monitor_game_timers():
    """Entry point for the external scheduler (every ~10s)."""
    expected = current_app.config.get('CRON_SECRET')
    if not expected:
        current_app.logger.error('[monitor] CRON_SECRET is not configured')
        return jsonify({'error': 'Timer monitoring is not configured'}), 500

    supplied = request.headers.get('X-Cron-Secret') or ''
    if not hmac.compare_digest(supplied.encode('utf-8'), expected.encode('utf-8')):
        return jsonify({'error': 'Unauthorized cron execution'}), 401

    try:
        result = run_tick(current_app._get_current_object())
    except Exception as exc:
        current_app.logger.exception('[monitor] unexpected error in timer monitoring')
        return jsonify({
            'processed': 0,
            'errors': 1,
            'skipped': 0,
            'executionTime': 0,
            'timestamp': to_iso(now_ts()),
            'error': str(exc) or 'Unknown error',
        }), 500

    return jsonify(result.to_dict()), (500 if result.failed else 200)


@timers.route('/sync', methods=['POST'])
@login_required
def sync_game_timer():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON in request body'}), 400
    game_id = data.get('gameId')
    if not _valid_game_id(game_id):
        return jsonify({'error': 'Invalid gameId format'}), 400

    try:
        state = get_timer_state(game_id, current_user.id)
    except GameNotFound:
        return jsonify({'error': 'Game not found'}), 404
    except NotAParticipant:
        return jsonify({'error': 'Access denied: not a participant in this game'}), 403
    except Exception:
        current_app.logger.exception(f"[timer-sync] failed for game={game_id}")
        return jsonify({'error': 'Failed to fetch timer data'}), 500

    return jsonify(state.to_dict())
