"""
Today's medication schedule.

Turns a user's medication records and today's usage log into a time-ordered
list of reminder slots, each tagged overdue / due_now / upcoming, and folds
that into the dashboard counters. Nothing here reads the database: callers
fetch the rows and pass them in, and re-run the projection as the clock moves.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple, Union

from schemas import MedicationOut, MedicationStats, MedicationUsageOut, ScheduleItem

logger = logging.getLogger(__name__)

# Minutes either side of a scheduled time that still count as "due now"
DUE_WINDOW_MINUTES = 30


def to_minutes(time_str: str) -> int:
    hours, minutes = time_str.split(":")
    return int(hours) * 60 + int(minutes)


def classify_status(scheduled_minutes: int, current_minutes: int) -> str:
    delta = scheduled_minutes - current_minutes
    if delta < -DUE_WINDOW_MINUTES:
        return "overdue"
    if delta <= DUE_WINDOW_MINUTES:
        return "due_now"
    return "upcoming"


def day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Return [start, end) of the calendar day containing ``now``."""
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(hours=24)


def format_time(time_str: str) -> str:
    """'14:05' -> '2:05 PM'"""
    parsed = datetime.strptime(time_str, "%H:%M")
    return parsed.strftime("%I:%M %p").lstrip("0")


def _local_taken_at(taken_at: Union[datetime, str], now: datetime) -> datetime:
    if isinstance(taken_at, str):
        taken_at = datetime.fromisoformat(taken_at)
    if taken_at.tzinfo is not None:
        taken_at = taken_at.astimezone(now.tzinfo)
        if now.tzinfo is None:
            taken_at = taken_at.replace(tzinfo=None)
    return taken_at


def _taken_at_key(taken_at: Union[datetime, str]) -> str:
    return taken_at.isoformat() if isinstance(taken_at, datetime) else taken_at


def project_today_schedule(
    records: Sequence[MedicationOut],
    usage_today: Sequence[MedicationUsageOut],
    now: Optional[datetime] = None,
) -> List[ScheduleItem]:
    """Build today's schedule.

    Daily records yield one slot per configured time, classified against
    ``now``. As-needed records yield a single slot for their first usage in
    ``usage_today`` and nothing if unused. The result is sorted by time of day;
    ties keep emission order.
    """
    now = now or datetime.now()
    current = now.hour * 60 + now.minute
    items: List[ScheduleItem] = []

    for med in records:
        if not med.is_active:
            continue
        if med.is_daily:
            for t in med.times:
                items.append(ScheduleItem(
                    id=f"{med.id}_{t}",
                    medication_id=med.id,
                    name=med.name,
                    dosage=med.dosage,
                    type=med.type,
                    scheduled_time=t,
                    display_time=format_time(t),
                    status=classify_status(to_minutes(t), current),
                    instruction=med.instruction,
                    is_daily=True,
                ))
            continue

        usage = next((u for u in usage_today if u.medication_id == med.id), None)
        if usage is None:
            continue
        taken = _local_taken_at(usage.taken_at, now)
        t = f"{taken.hour:02d}:{taken.minute:02d}"
        items.append(ScheduleItem(
            id=f"{med.id}_prn_{_taken_at_key(usage.taken_at)}",
            medication_id=med.id,
            name=f"{med.name} (PRN)",
            dosage=med.dosage,
            type=med.type,
            scheduled_time=t,
            display_time=format_time(t),
            status="upcoming",
            instruction=med.instruction,
            is_daily=False,
        ))

    items.sort(key=lambda item: to_minutes(item.scheduled_time))
    logger.debug("Projected %d schedule items for %s", len(items), now.isoformat())
    return items


def compute_stats(
    records: Sequence[MedicationOut],
    schedule_items: Sequence[ScheduleItem],
    usage_today: Sequence[MedicationUsageOut],
) -> MedicationStats:
    active_daily = [m for m in records if m.is_active and m.is_daily]
    return MedicationStats(
        total_medications=len(records),
        active_daily_medications=len(active_daily),
        active_prn_medications=sum(1 for m in records if m.is_active and not m.is_daily),
        total_reminders=sum(len(m.times) for m in active_daily),
        overdue_medications=sum(1 for i in schedule_items if i.status == "overdue"),
        medications_due_now=sum(1 for i in schedule_items if i.status == "due_now"),
        prn_used_today=len(usage_today),
    )
