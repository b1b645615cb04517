"""Upcoming-class ranking and ongoing-class counting."""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .models import ScheduleEntry, UpcomingEntry
from .store import ScheduleStore
from .time_window import (
    DEFAULT_GRACE_MINUTES,
    RangeFallback,
    day_name,
    next_occurrence_for,
    range_contains_now,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3

# An unparseable range is never "happening now"; a false "class happening
# now" is worse than a missing one.
ONGOING_FALLBACK = RangeFallback.NEVER


def _entry_field(entry: Dict[str, Any], *names: str) -> str:
    for name in names:
        value = entry.get(name)
        if value:
            return str(value).strip()
    return ""


def flatten_schedule(schedule: Any) -> List[ScheduleEntry]:
    """
    Flatten a stored schedule into (subject, day, time range) entries.

    Two shapes are stored: a mapping of subject -> list of {day, time}
    slots, or a flat list of {subject, day, time} dicts. Anything else
    yields an empty list.
    """
    entries: List[ScheduleEntry] = []
    if isinstance(schedule, dict) and "subjects" in schedule:
        schedule = schedule["subjects"]

    if isinstance(schedule, dict):
        for subject, slots in schedule.items():
            if not isinstance(slots, list):
                continue
            for slot in slots:
                if not isinstance(slot, dict):
                    continue
                entries.append(ScheduleEntry(
                    subject=str(subject),
                    day=_entry_field(slot, "day", "Day", "dayOfWeek"),
                    time_range=_entry_field(slot, "time", "Time"),
                ))
    elif isinstance(schedule, list):
        for slot in schedule:
            if not isinstance(slot, dict):
                continue
            entries.append(ScheduleEntry(
                subject=_entry_field(slot, "subject", "Subject"),
                day=_entry_field(slot, "day", "Day", "dayOfWeek"),
                time_range=_entry_field(slot, "time", "Time"),
            ))
    return entries


def is_ongoing(
    entry: ScheduleEntry,
    now: datetime,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> bool:
    if entry.day.lower() != day_name(now).lower():
        return False
    return range_contains_now(entry.time_range, now, ONGOING_FALLBACK, grace_minutes)


def rank_upcoming(
    entries: Iterable[ScheduleEntry],
    now: datetime,
    limit: int = DEFAULT_LIMIT,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> List[UpcomingEntry]:
    """
    Ongoing entries first, then future entries by next occurrence.

    Entries whose next occurrence cannot be computed, or is not strictly
    after `now`, are dropped.
    """
    ranked: List[UpcomingEntry] = []
    for entry in entries:
        if is_ongoing(entry, now, grace_minutes):
            ranked.append(UpcomingEntry(entry.subject, entry.day, entry.time_range, True))
            continue
        when = next_occurrence_for(entry.day, entry.time_range, now)
        if when is None or when <= now:
            continue
        ranked.append(UpcomingEntry(entry.subject, entry.day, entry.time_range, False, when))

    # ongoing entries carry no `when`; the first key keeps them on top
    ranked.sort(key=lambda e: (not e.ongoing, e.when or now))
    return ranked[:limit]


def current_key(entry: ScheduleEntry, now: datetime) -> str:
    """Key used to tag a schedule_current alert for one class on one date."""
    return f"{day_name(now)}_{entry.subject}_{entry.time_range}_{now.date().isoformat()}"


def active_classes(
    schedule: Any,
    now: datetime,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> List[Dict[str, str]]:
    """Today's classes happening now, each with its current key."""
    return [
        {"subject": e.subject, "time": e.time_range, "currentKey": current_key(e, now)}
        for e in flatten_schedule(schedule)
        if is_ongoing(e, now, grace_minutes)
    ]


def count_ongoing(
    schedules: Iterable[Any],
    now: datetime,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> int:
    """Number of ongoing classes across several schedules."""
    return sum(len(active_classes(s, now, grace_minutes)) for s in schedules)


class UpcomingService:
    """Serves ranked upcoming classes per entity from a schedule store."""

    def __init__(
        self,
        schedules: ScheduleStore,
        limit: int = DEFAULT_LIMIT,
        grace_minutes: int = DEFAULT_GRACE_MINUTES,
        clock=datetime.now,
    ):
        self.schedules = schedules
        self.limit = limit
        self.grace_minutes = grace_minutes
        self.clock = clock

    def _load(self, entity_id: str) -> Optional[Any]:
        try:
            return self.schedules.read_schedule(entity_id)
        except Exception as e:
            logger.error(f"Error reading schedule for {entity_id}: {e}")
            return None

    def get_ranked_upcoming(self, entity_id: str) -> List[Dict[str, Any]]:
        """Up to `limit` entries as {subject, day, time, ongoing} dicts."""
        schedule = self._load(entity_id)
        if schedule is None:
            return []
        ranked = rank_upcoming(
            flatten_schedule(schedule), self.clock(), self.limit, self.grace_minutes
        )
        logger.debug(f"Ranked {len(ranked)} upcoming entries for {entity_id}")
        return [entry.to_dict() for entry in ranked]

    def count_ongoing(self, entity_ids: Iterable[str]) -> int:
        now = self.clock()
        schedules = [self._load(entity_id) for entity_id in entity_ids]
        return count_ongoing([s for s in schedules if s is not None], now, self.grace_minutes)
