import pytest

from sketchrounds.services.timers.phases import (
    GameStatus,
    NEXT_PHASE,
    TERMINAL_PHASES,
    TIMED_PHASES,
    next_phase,
    phase_entry_values,
)


def test_lifecycle_is_linear():
    chain = [GameStatus.WAITING]
    while next_phase(chain[-1]) is not None:
        chain.append(next_phase(chain[-1]))
    assert [s.value for s in chain] == ['waiting', 'briefing', 'drawing', 'voting', 'results', 'completed']


def test_every_status_has_an_entry():
    assert set(NEXT_PHASE) == set(GameStatus)


def test_terminal_and_timed_sets():
    assert TERMINAL_PHASES == {GameStatus.COMPLETED, GameStatus.CANCELLED}
    assert GameStatus.WAITING not in TIMED_PHASES
    assert not (TIMED_PHASES & TERMINAL_PHASES)
    # The timer never produces cancelled
    assert GameStatus.CANCELLED not in NEXT_PHASE.values()


def test_next_phase_accepts_plain_strings():
    assert next_phase('drawing') == GameStatus.VOTING
    with pytest.raises(ValueError):
        next_phase('lobby')


def test_entry_values_use_game_settings():
    cfg = {'BRIEFING_DURATION_SEC': 20, 'RESULTS_DURATION_SEC': 15}
    drawing = phase_entry_values(GameStatus.DRAWING, 1000.0, cfg, round_duration=90, voting_duration=45)
    assert drawing['status'] == 'drawing'
    assert drawing['phase_duration'] == 90
    assert drawing['phase_expires_at'] == 1090.0
    assert drawing['grace_started_at'] is None

    voting = phase_entry_values(GameStatus.VOTING, 1000.0, cfg, round_duration=90, voting_duration=45)
    assert voting['phase_expires_at'] == 1045.0

    briefing = phase_entry_values(GameStatus.BRIEFING, 1000.0, cfg)
    assert briefing['phase_duration'] == 20

    completed = phase_entry_values(GameStatus.COMPLETED, 1000.0, cfg)
    assert completed['phase_duration'] is None
    assert completed['phase_expires_at'] is None
