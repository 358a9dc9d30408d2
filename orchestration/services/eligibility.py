"""Schedule eligibility checks (run windows, intervals, cooldowns)."""

from datetime import datetime, timedelta
from typing import Optional

from orchestration.models.schedule import ALL_DAYS, Schedule


def day_of_week(now: datetime) -> int:
    """Day number with Sunday=0 .. Saturday=6."""
    return (now.weekday() + 1) % 7


def ineligibility_reason(schedule: Schedule, now: datetime) -> Optional[str]:
    """
    Return why a schedule may not run at ``now``, or None if it may.

    All times are naive UTC.

    Args:
        schedule: Schedule to check
        now: Evaluation timestamp

    Returns:
        Name of the first failing rule, or None
    """
    run_on_days = schedule.run_on_days if schedule.run_on_days is not None else ALL_DAYS
    if day_of_week(now) not in run_on_days:
        return "day_of_week"

    if schedule.run_after_time and schedule.run_before_time:
        current = now.time().replace(microsecond=0)
        if current < schedule.run_after_time or current > schedule.run_before_time:
            return "time_window"

    if schedule.last_run_at:
        if now - schedule.last_run_at < timedelta(minutes=schedule.min_interval_minutes or 0):
            return "min_interval"

    if schedule.last_failure_at and (schedule.consecutive_failures or 0) > 0:
        cooldown = timedelta(minutes=schedule.cooldown_after_error_minutes or 0)
        if now - schedule.last_failure_at < cooldown:
            return "error_cooldown"

    return None


def should_run_now(schedule: Schedule, now: datetime) -> bool:
    """Check if a schedule is inside a valid run window at ``now``."""
    return ineligibility_reason(schedule, now) is None
