"""Once-a-day driver for the time-based round transitions.

Stage order matters: expired rounds are concluded before reminders go out so
a round past its close date never gets a reminder batch.
"""
import json
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from residentpulse.extensions import db
from residentpulse.utils.helpers import utcnow
from .reminders import send_approaching_reminders, send_reminders
from .rounds import conclude_expired_rounds

STAGES = (
    ("approaching_reminders", send_approaching_reminders),
    ("conclude_expired", conclude_expired_rounds),
    ("member_reminders", send_reminders),
)


class DailyScheduler:
    def __init__(self, app, hour_utc: Optional[int] = None, sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], datetime] = utcnow):
        self.app = app
        self.hour_utc = app.config.get("SCHEDULER_HOUR_UTC", 9) if hour_utc is None else hour_utc
        self._sleep = sleep
        self._clock = clock
        self.stages = STAGES

    def tick(self, now: Optional[datetime] = None) -> dict:
        """Run the stages in order. The first stage to raise ends the tick; later stages wait for tomorrow."""
        now = now or self._clock()
        report = {name: {"ok": False, "skipped": True} for name, _ in self.stages}
        with self.app.app_context():
            name = None
            try:
                for name, stage in self.stages:
                    report[name] = {"ok": True, "result": stage(now)}
                    self.app.logger.info(json.dumps({"event": "scheduler_stage", "stage": name, "outcome": "ok"}, default=str))
            except Exception as exc:
                db.session.rollback()
                report[name] = {"ok": False, "error": str(exc)}
                self.app.logger.error(json.dumps({"event": "scheduler_stage", "stage": name, "outcome": "error", "error": str(exc)}))
            finally:
                db.session.remove()
        return report

    def next_run(self, now: datetime) -> datetime:
        run = now.replace(hour=self.hour_utc, minute=0, second=0, microsecond=0)
        if run <= now:
            run += timedelta(days=1)
        return run

    def run_forever(self, max_ticks: Optional[int] = None) -> None:
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            now = self._clock()
            self._sleep(max(0.0, (self.next_run(now) - now).total_seconds()))
            try:
                self.tick()
            except Exception as exc:
                self.app.logger.error(json.dumps({"event": "scheduler_tick_failed", "error": str(exc)}))
            ticks += 1
