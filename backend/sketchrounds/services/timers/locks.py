"""Cluster-wide advisory lock used to keep monitoring ticks from overlapping.

The lock only saves work. Correctness under overlapping ticks comes from the
conditional status write in the transition engine, so ``NullLock`` is a
valid choice for single-instance deployments.
"""

import os
import secrets
import socket
from typing import List, Optional

from flask import current_app
from sqlalchemy import delete, insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sketchrounds import db
from sketchrounds.models import AdvisoryLockLease
from .clock import now_ts


class AdvisoryLock:
    def acquire(self, name: str, timeout_seconds: int) -> bool:
        raise NotImplementedError

    def release(self, name: str) -> None:
        raise NotImplementedError


class NullLock(AdvisoryLock):
    """Always acquires. Batch processing behaves exactly as with a real lock."""

    def acquire(self, name: str, timeout_seconds: int) -> bool:
        return True

    def release(self, name: str) -> None:
        return None


class DatabaseLock(AdvisoryLock):
    """Lease row keyed by lock name.

    The primary key makes acquisition atomic across processes. A lease older
    than its own timeout belongs to a holder that died without releasing and
    is removed before the insert is attempted. Acquisition never waits.
    Each acquisition records its own token, so a holder whose lease was taken
    over cannot release the new lease, even from the same process.
    """

    def __init__(self, holder: Optional[str] = None, clock=now_ts):
        self.holder = holder or f"{socket.gethostname()}:{os.getpid()}"
        self._clock = clock
        self._lease = None

    def acquire(self, name: str, timeout_seconds: int) -> bool:
        now = self._clock()
        token = f"{self.holder}:{secrets.token_hex(4)}"
        try:
            stale = db.session.execute(
                delete(AdvisoryLockLease)
                .where(AdvisoryLockLease.lock_key == name)
                .where(AdvisoryLockLease.acquired_at + AdvisoryLockLease.timeout_seconds < now)
                .execution_options(synchronize_session=False)
            )
            if stale.rowcount:
                current_app.logger.warning(f"[lock-stale] key={name} forced release of stuck lease")
            db.session.execute(insert(AdvisoryLockLease).values(
                lock_key=name,
                acquired_at=now,
                acquired_by=token,
                timeout_seconds=int(timeout_seconds),
            ))
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return False
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[lock-error] key={name} acquire failed: {exc}")
            return False
        self._lease = token
        return True

    def release(self, name: str) -> None:
        if self._lease is None:
            return
        try:
            db.session.execute(
                delete(AdvisoryLockLease)
                .where(AdvisoryLockLease.lock_key == name)
                .where(AdvisoryLockLease.acquired_by == self._lease)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            self._lease = None
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[lock-error] key={name} release failed: {exc}")


_BACKENDS = {
    'database': DatabaseLock,
    'none': NullLock,
}


def build_lock(app) -> AdvisoryLock:
    backend = str(app.config.get('TIMER_LOCK_BACKEND', 'database')).lower()
    try:
        return _BACKENDS[backend]()
    except KeyError:
        raise ValueError(f"Unknown TIMER_LOCK_BACKEND {backend!r}; expected one of {sorted(_BACKENDS)}")


def lease_status(now: Optional[float] = None) -> List[dict]:
    now = now_ts(now)
    rows = AdvisoryLockLease.query.order_by(AdvisoryLockLease.acquired_at.desc()).all()
    out = []
    for row in rows:
        age = int(now - row.acquired_at)
        out.append({
            'lock_key': row.lock_key,
            'acquired_by': row.acquired_by,
            'timeout_seconds': row.timeout_seconds,
            'age_seconds': age,
            'is_stuck': age > row.timeout_seconds,
        })
    return out


def cleanup_stale_leases(now: Optional[float] = None) -> int:
    now = now_ts(now)
    result = db.session.execute(
        delete(AdvisoryLockLease)
        .where(AdvisoryLockLease.acquired_at + AdvisoryLockLease.timeout_seconds < now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount or 0
