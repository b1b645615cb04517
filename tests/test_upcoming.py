"""Unit tests for upcoming-class ranking."""

import random
from datetime import datetime

import pytest

from attendance_alerts.models import ScheduleEntry
from attendance_alerts.store import InMemoryScheduleStore
from attendance_alerts.upcoming import (
    UpcomingService,
    active_classes,
    count_ongoing,
    flatten_schedule,
    rank_upcoming,
)

# 2024-01-01 is a Monday
MONDAY_10AM = datetime(2024, 1, 1, 10, 0)

SCHEDULE = {
    "Science": [{"day": "Wednesday", "time": "8:00 AM - 9:00 AM"}],
    "Math": [{"day": "Monday", "time": "9:30 AM - 10:30 AM"}],
    "English": [{"day": "Tuesday", "time": "1:00 PM - 2:00 PM"}],
}


class TestFlattenSchedule:
    """Tests for the two stored schedule shapes."""

    def test_subject_mapping(self):
        entries = flatten_schedule(SCHEDULE)
        assert ScheduleEntry("Math", "Monday", "9:30 AM - 10:30 AM") in entries
        assert len(entries) == 3

    def test_wrapped_in_subjects_field(self):
        assert len(flatten_schedule({"subjects": SCHEDULE})) == 3

    def test_flat_list_with_alternate_keys(self):
        entries = flatten_schedule([
            {"subject": "PE", "Day": "Friday", "Time": "3:00 PM - 4:00 PM"},
            {"subject": "Art", "dayOfWeek": "Thursday", "time": "10:00-11:00"},
        ])
        assert entries == [
            ScheduleEntry("PE", "Friday", "3:00 PM - 4:00 PM"),
            ScheduleEntry("Art", "Thursday", "10:00-11:00"),
        ]

    @pytest.mark.parametrize("schedule", [None, "Math", 42, {"Math": "Monday"}, [None, "x"]])
    def test_malformed_schedules_are_empty(self, schedule):
        assert flatten_schedule(schedule) == []


class TestRankUpcoming:
    """Tests for rank_upcoming."""

    def test_ongoing_first_then_by_next_occurrence(self):
        ranked = rank_upcoming(flatten_schedule(SCHEDULE), MONDAY_10AM)

        assert [e.subject for e in ranked] == ["Math", "English", "Science"]
        assert ranked[0].ongoing is True
        assert ranked[1].when == datetime(2024, 1, 2, 13, 0)
        assert ranked[2].when == datetime(2024, 1, 3, 8, 0)

    def test_input_order_does_not_matter(self):
        entries = flatten_schedule(SCHEDULE)
        rng = random.Random(7)
        for _ in range(10):
            rng.shuffle(entries)
            ranked = rank_upcoming(entries, MONDAY_10AM)
            assert [e.subject for e in ranked] == ["Math", "English", "Science"]

    def test_truncates_to_limit(self):
        entries = [
            ScheduleEntry(f"S{i}", "Thursday", f"{8 + i}:00 AM - {9 + i}:00 AM")
            for i in range(3)
        ] + [ScheduleEntry("Late", "Friday", "8:00 AM - 9:00 AM")]

        ranked = rank_upcoming(entries, MONDAY_10AM)

        assert [e.subject for e in ranked] == ["S0", "S1", "S2"]
        assert len(rank_upcoming(entries, MONDAY_10AM, limit=1)) == 1

    def test_unparseable_and_unknown_day_entries_are_dropped(self):
        entries = [
            ScheduleEntry("Bad", "Monday", "after lunch"),
            ScheduleEntry("Nowhere", "Someday", "8:00 AM - 9:00 AM"),
            ScheduleEntry("Good", "Tuesday", "8:00 AM - 9:00 AM"),
        ]
        assert [e.subject for e in rank_upcoming(entries, MONDAY_10AM)] == ["Good"]

    def test_finished_class_today_comes_round_next_week(self):
        entries = [
            ScheduleEntry("Early", "Monday", "7:00 AM - 8:00 AM"),
            ScheduleEntry("Later", "Monday", "1:00 PM - 2:00 PM"),
        ]
        ranked = rank_upcoming(entries, MONDAY_10AM)

        assert [e.subject for e in ranked] == ["Later", "Early"]
        assert ranked[1].when == datetime(2024, 1, 8, 7, 0)
        assert not any(e.ongoing for e in ranked)

    def test_day_match_is_case_insensitive(self):
        ranked = rank_upcoming([ScheduleEntry("Math", "monday", "9:30-10:30")], MONDAY_10AM)
        assert ranked[0].ongoing is True

    def test_overnight_class_is_ongoing_before_midnight(self):
        late = datetime(2024, 1, 1, 23, 0)
        ranked = rank_upcoming([ScheduleEntry("Astro", "Monday", "10:00 PM - 2:00 AM")], late)
        assert ranked[0].ongoing is True


class TestOngoing:
    """Tests for active_classes and count_ongoing."""

    def test_active_classes_carry_current_key(self):
        assert active_classes(SCHEDULE, MONDAY_10AM) == [{
            "subject": "Math",
            "time": "9:30 AM - 10:30 AM",
            "currentKey": "Monday_Math_9:30 AM - 10:30 AM_2024-01-01",
        }]

    def test_count_across_schedules(self):
        other = [{"subject": "PE", "day": "Monday", "time": "10:00 AM - 11:00 AM"}]
        assert count_ongoing([SCHEDULE, other, None], MONDAY_10AM) == 2

    def test_unparseable_range_never_counts(self):
        assert count_ongoing([[{"subject": "X", "day": "Monday", "time": "all day"}]], MONDAY_10AM) == 0


class TestUpcomingService:
    """Tests for UpcomingService."""

    def test_get_ranked_upcoming(self, schedule_store: InMemoryScheduleStore):
        schedule_store.put_schedule("2024-0001", SCHEDULE)
        service = UpcomingService(schedule_store, clock=lambda: MONDAY_10AM)

        assert service.get_ranked_upcoming("2024-0001") == [
            {"subject": "Math", "day": "Monday", "time": "9:30 AM - 10:30 AM", "ongoing": True},
            {"subject": "English", "day": "Tuesday", "time": "1:00 PM - 2:00 PM", "ongoing": False},
            {"subject": "Science", "day": "Wednesday", "time": "8:00 AM - 9:00 AM", "ongoing": False},
        ]

    def test_missing_schedule_is_empty(self, schedule_store):
        service = UpcomingService(schedule_store, clock=lambda: MONDAY_10AM)
        assert service.get_ranked_upcoming("nobody") == []

    def test_store_failure_is_empty(self):
        class BrokenStore(InMemoryScheduleStore):
            def read_schedule(self, entity_id):
                raise RuntimeError("store down")

        service = UpcomingService(BrokenStore(), clock=lambda: MONDAY_10AM)
        assert service.get_ranked_upcoming("2024-0001") == []

    def test_count_ongoing(self, schedule_store):
        schedule_store.put_schedule("a", SCHEDULE)
        schedule_store.put_schedule("b", SCHEDULE)
        service = UpcomingService(schedule_store, clock=lambda: MONDAY_10AM)
        assert service.count_ongoing(["a", "b", "missing"]) == 2
