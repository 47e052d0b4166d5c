# reportdraft/schedule.py

"""
Recurring report schedules.

A schedule describes when a template is due (hourly, daily, weekly or
monthly); ``run_due`` is meant to be called from cron or any timer and
invokes the pipeline only for schedules whose latest slot has not run yet.
"""

import calendar
import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from reportdraft.config import atomic_save_json

LOGGER = logging.getLogger(__name__)

FREQUENCIES = ("hourly", "daily", "weekly", "monthly")


@dataclass(slots=True)
class Schedule:
    template_name: str
    frequency: str
    hour: int = 9
    minute: int = 0
    day_of_week: Optional[int] = None   # 1 = Monday ... 7 = Sunday
    day_of_month: Optional[int] = None
    every_minutes: int = 60
    overrides: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: Optional[datetime] = None
    last_run: Optional[datetime] = None

    def validate(self) -> List[str]:
        errors = []
        if not self.template_name:
            errors.append("template_name is required")
        if self.frequency not in FREQUENCIES:
            errors.append(f"Unknown frequency: {self.frequency}. Use: {', '.join(FREQUENCIES)}")
        if not 0 <= self.hour <= 23:
            errors.append("hour must be 0-23")
        if not 0 <= self.minute <= 59:
            errors.append("minute must be 0-59")
        if self.frequency == "weekly" and not (self.day_of_week and 1 <= self.day_of_week <= 7):
            errors.append("weekly schedules need day_of_week 1-7 (1 = Monday)")
        if self.frequency == "monthly" and not (self.day_of_month and 1 <= self.day_of_month <= 31):
            errors.append("monthly schedules need day_of_month 1-31")
        if self.frequency == "hourly" and not 1 <= self.every_minutes <= 1440:
            errors.append("every_minutes must be 1-1440")
        return errors

    # -------------------------
    # Due calculation
    # -------------------------

    def _at(self, d: date, like: datetime) -> datetime:
        return datetime.combine(d, time(self.hour, self.minute), tzinfo=like.tzinfo)

    def latest_slot(self, now: datetime) -> datetime:
        """The most recent moment at or before ``now`` when this schedule fires."""
        if self.frequency == "daily":
            slot = self._at(now.date(), now)
            return slot if slot <= now else slot - timedelta(days=1)

        if self.frequency == "weekly":
            back = (now.isoweekday() - self.day_of_week) % 7
            slot = self._at(now.date() - timedelta(days=back), now)
            return slot if slot <= now else slot - timedelta(days=7)

        if self.frequency == "monthly":
            slot = self._at(month_day(now.year, now.month, self.day_of_month), now)
            if slot <= now:
                return slot
            year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
            return self._at(month_day(year, month, self.day_of_month), now)

        raise ValueError(f"No fixed slot for frequency '{self.frequency}'")

    def is_due(self, now: datetime, last_run: Optional[datetime] = None) -> bool:
        last = last_run or self.last_run or self.created_at
        if self.frequency == "hourly":
            return last is None or now - last >= timedelta(minutes=self.every_minutes)
        slot = self.latest_slot(now)
        return last is None or last < slot

    # -------------------------
    # Serialization
    # -------------------------

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("created_at", "last_run"):
            data[key] = data[key].isoformat() if data[key] else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Schedule":
        data = dict(data)
        for key in ("created_at", "last_run"):
            data[key] = datetime.fromisoformat(data[key]) if data.get(key) else None
        return cls(**data)


def month_day(year: int, month: int, day: int) -> date:
    """``day`` of the month, clamped to the month's length (31 -> 28/29/30)."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


# ============================================================
# store
# ============================================================

class ScheduleStore:
    """Schedules persisted as one JSON file."""

    def __init__(self, path: str):
        self.path = Path(path).expanduser()

    def load(self) -> List[Schedule]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [Schedule.from_dict(item) for item in data.get("schedules", [])]

    def save(self, schedules: List[Schedule]) -> None:
        atomic_save_json(str(self.path), {"schedules": [s.to_dict() for s in schedules]})

    def add(self, schedule: Schedule, now: Optional[datetime] = None) -> Schedule:
        errors = schedule.validate()
        if errors:
            raise ValueError("; ".join(errors))
        if schedule.created_at is None:
            schedule.created_at = now or datetime.now().astimezone()

        schedules = self.load()
        schedules.append(schedule)
        self.save(schedules)
        LOGGER.info("Scheduled '%s' (%s) as %s", schedule.template_name, schedule.frequency, schedule.id)
        return schedule

    def remove(self, schedule_id: str) -> bool:
        schedules = self.load()
        kept = [s for s in schedules if s.id != schedule_id]
        if len(kept) == len(schedules):
            return False
        self.save(kept)
        return True

    def remove_template(self, template_name: str) -> int:
        schedules = self.load()
        kept = [s for s in schedules if s.template_name != template_name]
        self.save(kept)
        return len(schedules) - len(kept)


def run_due(
    store: ScheduleStore,
    run_fn: Callable[[Schedule], Any],
    now: datetime,
) -> List[Tuple[Schedule, Any]]:
    """
    Invoke ``run_fn`` for every due schedule and stamp ``last_run``.

    A failing run is logged and still stamped, so the slot is not retried.
    """
    schedules = store.load()
    ran: List[Tuple[Schedule, Any]] = []

    for schedule in schedules:
        if not schedule.is_due(now):
            continue
        LOGGER.info("Schedule %s due: running '%s'", schedule.id, schedule.template_name)
        try:
            outcome = run_fn(schedule)
        except Exception as exc:
            LOGGER.error("Scheduled run of '%s' failed: %s", schedule.template_name, exc)
            outcome = exc
        schedule.last_run = now
        ran.append((schedule, outcome))

    if ran:
        store.save(schedules)
    return ran
