from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler


logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self._now = start if start.tzinfo else start.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, at: datetime) -> None:
        self._now = at

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now


class TimerBackend(Protocol):
    def arm(self, key: str, run_at: datetime, callback: Callable[[], None]) -> None: ...

    def disarm(self, key: str) -> bool: ...

    def start(self) -> None: ...

    def shutdown(self) -> None: ...

    @property
    def running(self) -> bool: ...


class APSchedulerTimers:
    """Delay-based timers on an APScheduler background scheduler.

    The executor has a single worker, so timer callbacks run one at a time and
    each runs to completion before the next starts. Late jobs always run
    (misfire_grace_time=None) so a busy worker never drops an alert.
    """

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": None},
            timezone=timezone.utc,
        )

    def arm(self, key: str, run_at: datetime, callback: Callable[[], None]) -> None:
        self._scheduler.add_job(callback, trigger="date", run_date=run_at, id=key, replace_existing=True)

    def disarm(self, key: str) -> bool:
        try:
            self._scheduler.remove_job(key)
        except JobLookupError:
            return False
        return True

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("timer backend started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("timer backend stopped")

    @property
    def running(self) -> bool:
        return self._scheduler.running


class ManualTimers:
    """Virtual-time backend: callbacks run only when the clock is advanced."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self._jobs: Dict[str, Tuple[datetime, int, Callable[[], None]]] = {}
        self._seq = itertools.count()
        self._running = False

    def arm(self, key: str, run_at: datetime, callback: Callable[[], None]) -> None:
        self._jobs[key] = (run_at, next(self._seq), callback)

    def disarm(self, key: str) -> bool:
        return self._jobs.pop(key, None) is not None

    def start(self) -> None:
        self._running = True

    def shutdown(self) -> None:
        self._running = False
        self._jobs.clear()

    @property
    def running(self) -> bool:
        return self._running

    def pending(self) -> List[str]:
        return [key for key, _ in sorted(self._jobs.items(), key=lambda item: item[1][:2])]

    def advance(self, delta: timedelta) -> None:
        self.run_until(self.clock.now() + delta)

    def run_until(self, target: datetime) -> None:
        while True:
            due = [(run_at, seq, key) for key, (run_at, seq, _) in self._jobs.items() if run_at <= target]
            if not due:
                break
            run_at, _, key = min(due)
            _, _, callback = self._jobs.pop(key)
            if run_at > self.clock.now():
                self.clock.set(run_at)
            callback()
        if target > self.clock.now():
            self.clock.set(target)


class TimerState(str, Enum):
    PENDING = "pending"
    FIRED = "fired"
    CANCELLED = "cancelled"


@dataclass
class TimerHandle:
    occurrence_id: str
    key: str
    fire_at: datetime
    state: TimerState = TimerState.PENDING


class TimerRegistry:
    """Arena of timer handles indexed by occurrence id.

    Each component owns one registry; the namespace keeps its backend keys
    apart from other registries sharing the same backend.
    """

    def __init__(self, backend: TimerBackend, namespace: str) -> None:
        self.backend = backend
        self.namespace = namespace
        self._handles: Dict[str, TimerHandle] = {}
        self._lock = threading.Lock()

    def arm(self, occurrence_id: str, fire_at: datetime, callback: Callable[[str], None]) -> TimerHandle:
        self.cancel(occurrence_id)
        handle = TimerHandle(occurrence_id=occurrence_id, key=f"{self.namespace}:{occurrence_id}", fire_at=fire_at)

        def run() -> None:
            with self._lock:
                if handle.state != TimerState.PENDING:
                    return
                handle.state = TimerState.FIRED
                if self._handles.get(occurrence_id) is handle:
                    del self._handles[occurrence_id]
            callback(occurrence_id)

        with self._lock:
            self._handles[occurrence_id] = handle
        self.backend.arm(handle.key, fire_at, run)
        return handle

    def cancel(self, occurrence_id: str) -> bool:
        with self._lock:
            handle = self._handles.pop(occurrence_id, None)
            if handle is None or handle.state != TimerState.PENDING:
                return False
            handle.state = TimerState.CANCELLED
        self.backend.disarm(handle.key)
        return True

    def get(self, occurrence_id: str) -> Optional[TimerHandle]:
        with self._lock:
            return self._handles.get(occurrence_id)

    def pending(self) -> List[str]:
        with self._lock:
            return list(self._handles)

    def cancel_all(self) -> int:
        return sum(1 for occurrence_id in self.pending() if self.cancel(occurrence_id))
