import time
from datetime import datetime, timezone
from typing import Optional


def now_ts(now: Optional[float] = None) -> float:
    """Epoch seconds; callers pass ``now`` through so one tick uses one clock reading."""
    return time.time() if now is None else float(now)


def to_iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace('+00:00', 'Z')
