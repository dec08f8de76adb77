import pytest

from sketchrounds.models import AdvisoryLockLease
from sketchrounds.services.timers.locks import (
    DatabaseLock,
    NullLock,
    build_lock,
    cleanup_stale_leases,
    lease_status,
)


def test_second_holder_is_refused_until_release(flask_app):
    first = DatabaseLock(holder='worker-a')
    second = DatabaseLock(holder='worker-b')

    assert first.acquire('timer_monitoring_lock', 30) is True
    assert second.acquire('timer_monitoring_lock', 30) is False

    first.release('timer_monitoring_lock')
    assert second.acquire('timer_monitoring_lock', 30) is True


def test_release_by_other_holder_keeps_the_lease(flask_app):
    owner = DatabaseLock(holder='owner')
    owner.acquire('k', 30)
    DatabaseLock(holder='intruder').release('k')
    assert AdvisoryLockLease.query.get('k').acquired_by.startswith('owner:')


def test_stuck_lease_is_taken_over_after_its_timeout(flask_app):
    clock = {'t': 1000.0}
    dead = DatabaseLock(holder='dead', clock=lambda: clock['t'])
    fresh = DatabaseLock(holder='fresh', clock=lambda: clock['t'])

    assert dead.acquire('k', 5)
    clock['t'] += 3
    assert not fresh.acquire('k', 5)
    clock['t'] += 3
    assert fresh.acquire('k', 5)
    assert AdvisoryLockLease.query.get('k').acquired_by.startswith('fresh:')


def test_taken_over_lease_survives_release_from_same_process(flask_app, reload):
    clock = {'t': 1000.0}
    # Same host and pid: an HTTP tick and the in-process monitor
    slow = DatabaseLock(holder='web-1:4242', clock=lambda: clock['t'])
    fast = DatabaseLock(holder='web-1:4242', clock=lambda: clock['t'])

    assert slow.acquire('k', 5)
    clock['t'] += 6
    assert fast.acquire('k', 5)
    taken = reload(AdvisoryLockLease, 'k').acquired_by

    slow.release('k')
    assert reload(AdvisoryLockLease, 'k').acquired_by == taken

    fast.release('k')
    assert reload(AdvisoryLockLease, 'k') is None


def test_lease_status_and_cleanup(flask_app):
    DatabaseLock(holder='old', clock=lambda: 100.0).acquire('old-lock', 10)
    DatabaseLock(holder='new', clock=lambda: 195.0).acquire('new-lock', 10)

    rows = {r['lock_key']: r for r in lease_status(now=200.0)}
    assert rows['old-lock']['is_stuck'] is True
    assert rows['new-lock']['is_stuck'] is False
    assert rows['new-lock']['age_seconds'] == 5

    assert cleanup_stale_leases(now=200.0) == 1
    assert [r['lock_key'] for r in lease_status(now=200.0)] == ['new-lock']


def test_null_lock_never_refuses():
    lock = NullLock()
    assert lock.acquire('k', 1)
    assert lock.acquire('k', 1)
    lock.release('k')


def test_backend_is_chosen_by_config(flask_app):
    flask_app.config['TIMER_LOCK_BACKEND'] = 'none'
    assert isinstance(build_lock(flask_app), NullLock)
    flask_app.config['TIMER_LOCK_BACKEND'] = 'database'
    assert isinstance(build_lock(flask_app), DatabaseLock)
    flask_app.config['TIMER_LOCK_BACKEND'] = 'zookeeper'
    with pytest.raises(ValueError):
        build_lock(flask_app)
