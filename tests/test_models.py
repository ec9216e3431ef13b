"""Tests for the schedule record model and save-time validation."""

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from core.models import Priority, ScheduleRecord, ScheduleType, validate_record


def test_defaults():
    rec = ScheduleRecord(title="Call mom", date="2024-05-05T18:00")
    assert rec.id
    assert rec.priority == Priority.MEDIUM
    assert rec.schedule_type == ScheduleType.SINGLE
    assert rec.recurring_interval == 1


def test_generated_ids_are_unique():
    assert ScheduleRecord(title="a").id != ScheduleRecord(title="b").id


def test_null_schedule_type_is_single():
    rec = ScheduleRecord.model_validate({"title": "t", "scheduleType": None, "date": "2024-01-01T09:00"})
    assert rec.schedule_type == ScheduleType.SINGLE


def test_interval_below_one_rejected():
    with pytest.raises(ValidationError):
        ScheduleRecord.model_validate({"title": "t", "recurringInterval": 0})


def test_unknown_priority_rejected():
    with pytest.raises(ValidationError):
        ScheduleRecord.model_validate({"title": "t", "priority": "urgent"})


def test_end_dates_accept_datetime_strings():
    rec = ScheduleRecord.model_validate({
        "title": "t",
        "recurringEndDate": "2024-03-01T00:00",
        "periodStartDate": "2024-03-01T10:00:00",
        "periodEndDate": "2024-03-05",
    })
    assert rec.recurring_end_date == date(2024, 3, 1)
    assert rec.period_start_date == date(2024, 3, 1)
    assert rec.period_end_date == date(2024, 3, 5)


def test_null_description_becomes_empty():
    rec = ScheduleRecord.model_validate({"title": "t", "description": None, "location": None})
    assert rec.description == ""
    assert rec.location == ""


def test_text_fields_are_trimmed():
    rec = ScheduleRecord(title="  Dentist  ", description="\tBring card\n", location=" Main St ")
    assert (rec.title, rec.description, rec.location) == ("Dentist", "Bring card", "Main St")


def test_to_storage_uses_camel_case_and_drops_nulls():
    rec = ScheduleRecord.model_validate({
        "id": "abc",
        "title": "Standup",
        "scheduleType": "recurring",
        "date": "2024-01-01T09:00",
        "recurringType": "weekly",
        "recurringInterval": 2,
        "recurringEndDate": "2024-03-01",
    })
    data = rec.to_storage()
    assert data["id"] == "abc"
    assert data["scheduleType"] == "recurring"
    assert data["recurringType"] == "weekly"
    assert data["recurringInterval"] == 2
    assert data["recurringEndDate"] == "2024-03-01"
    assert data["date"] == "2024-01-01T09:00:00"
    assert "periodStartDate" not in data
    assert "createdAt" not in data


def test_storage_round_trip():
    rec = ScheduleRecord.model_validate({
        "title": "Trip",
        "scheduleType": "period",
        "periodStartDate": "2024-07-01",
        "periodEndDate": "2024-07-10",
        "periodStartTime": "08:30",
        "createdAt": "2024-06-01T12:00:00Z",
    })
    assert ScheduleRecord.model_validate(rec.to_storage()).model_dump() == rec.model_dump()


def test_inactive_shape_fields_are_kept():
    rec = ScheduleRecord.model_validate({
        "title": "t",
        "scheduleType": "period",
        "date": "2024-01-01T09:00",
        "recurringType": "daily",
        "periodStartDate": "2024-02-01",
        "periodEndDate": "2024-02-02",
    })
    data = rec.to_storage()
    assert data["date"] == "2024-01-01T09:00:00"
    assert data["recurringType"] == "daily"


def test_anchor_and_last_day():
    rec = ScheduleRecord.model_validate({
        "title": "t", "scheduleType": "recurring", "date": "2024-01-01T09:00",
        "recurringType": "daily", "recurringEndDate": "2024-01-31",
    })
    assert rec.anchor_day() == date(2024, 1, 1)
    assert rec.last_day() == date(2024, 1, 31)


# ── validate_record ───────────────────────────────────────────────────────────

def test_valid_single():
    assert validate_record(ScheduleRecord(title="Dentist", date=datetime(2024, 5, 5, 10))) == {}


def test_blank_title_rejected():
    errors = validate_record(ScheduleRecord(title="   ", date=datetime(2024, 5, 5, 10)))
    assert set(errors) == {"title"}


def test_single_requires_date():
    assert set(validate_record(ScheduleRecord(title="t"))) == {"date"}


def test_recurring_requires_type_and_end():
    rec = ScheduleRecord.model_validate({"title": "t", "scheduleType": "recurring", "date": "2024-01-01T09:00"})
    assert set(validate_record(rec)) == {"recurringType", "recurringEndDate"}


def test_recurring_end_before_anchor_rejected():
    rec = ScheduleRecord.model_validate({
        "title": "t", "scheduleType": "recurring", "date": "2024-02-01T09:00",
        "recurringType": "daily", "recurringEndDate": "2024-01-01",
    })
    assert "recurringEndDate" in validate_record(rec)


def test_period_requires_start_before_end():
    rec = ScheduleRecord.model_validate({
        "title": "t", "scheduleType": "period",
        "periodStartDate": "2024-03-10", "periodEndDate": "2024-03-10",
    })
    assert set(validate_record(rec)) == {"periodEndDate"}


def test_period_requires_both_bounds():
    rec = ScheduleRecord.model_validate({"title": "t", "scheduleType": "period"})
    assert set(validate_record(rec)) == {"periodStartDate", "periodEndDate"}


def test_period_time_format_checked():
    rec = ScheduleRecord.model_validate({
        "title": "t", "scheduleType": "period",
        "periodStartDate": "2024-03-10", "periodEndDate": "2024-03-11",
        "periodStartTime": "9am", "periodEndTime": "17:00",
    })
    assert set(validate_record(rec)) == {"periodStartTime"}
