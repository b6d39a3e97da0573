from __future__ import annotations

import datetime
import sys
from pathlib import Path

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from areas import required_area  # noqa: E402
from directory import (  # noqa: E402
    SCHEDULED_MARKER,
    assigned_employees,
    day_employees,
    extract_employees_from_positions,
    filter_by_area,
    is_employee_on_current_shift,
    scheduled_employees,
    unassigned_employees,
)
from errors import ValidationError  # noqa: E402
from models import Employee, Setup  # noqa: E402


def build_setup() -> Setup:
    return Setup.from_dict(
        {
            "id": "setup-1",
            "name": "Week of June 2",
            "startDate": "2024-06-02",
            "endDate": "2024-06-08",
            "weekSchedule": {
                "Monday": {
                    "timeBlocks": [
                        {
                            "id": "b1",
                            "start": "08:00",
                            "end": "12:00",
                            "positions": [
                                {"id": "p1", "name": "Register 1", "category": "Front Counter"},
                                {
                                    "id": "p2",
                                    "name": "Grill",
                                    "category": "Kitchen",
                                    "employeeId": "e3",
                                    "employeeName": "Cole",
                                },
                            ],
                        },
                        {
                            "id": "b2",
                            "start": "12:00",
                            "end": "16:00",
                            "positions": [
                                {
                                    "id": "p3",
                                    "name": "Drive Thru Runner",
                                    "category": "Drive Thru",
                                    "employeeId": "x9",
                                    "employeeName": "Unknown Employee",
                                },
                            ],
                        },
                    ]
                },
                "wed": {"timeBlocks": []},
                "someday": {"timeBlocks": []},
            },
            "uploadedSchedules": [
                {"id": "e1", "name": "Ann", "day": "Monday", "timeBlock": "07:00 - 13:00", "area": "FOH"},
                {"id": "e2", "name": "bob", "day": "mon", "timeBlock": "10:00 - 18:00", "area": "FOH"},
                {"id": "e3", "name": "Cole", "day": "Monday", "timeBlock": "06:00 - 14:00", "area": "BOH"},
                {"id": "e4", "name": "Dee", "day": "Tuesday", "timeBlock": "09:00 - 17:00", "area": "FOH"},
                {"id": "e5", "name": "Eve", "timeBlock": "08:00 - 12:00", "area": "Kitchen"},
            ],
        }
    )


def test_setup_keys_are_normalized_and_unknown_days_dropped():
    setup = build_setup()
    assert setup.days() == ["monday", "wednesday"]
    assert setup.uploaded_schedules[4].area == "BOH"


def test_setup_days_run_monday_to_sunday():
    setup = Setup.from_dict(
        {"id": "s", "weekSchedule": {"sunday": {}, "friday": {}, "monday": {}}}
    )
    assert setup.days() == ["monday", "friday", "sunday"]
    assert list(setup.to_dict()["weekSchedule"]) == ["monday", "friday", "sunday"]


def test_scheduled_employees_merge_roster_and_positions_for_the_day():
    directory = scheduled_employees(build_setup(), "Monday")
    assert [employee.id for employee in directory] == ["e1", "e2", "e3", "e5", "x9"]
    embedded = directory[-1]
    assert embedded.area == "FOH"
    assert embedded.time_block == "12:00 - 16:00"


def test_scheduled_employees_fall_back_to_legacy_list():
    setup = Setup.from_dict(
        {
            "id": "legacy",
            "employees": [
                {"id": "L1", "name": "Lee", "day": "monday", "shiftStart": "09:00", "shiftEnd": "17:00"},
            ],
        }
    )
    directory = scheduled_employees(setup, "monday")
    assert [employee.time_block for employee in directory] == ["09:00 - 17:00"]


def test_same_id_on_several_days_is_listed_per_day():
    setup = Setup.from_dict(
        {
            "id": "multi",
            "uploadedSchedules": [
                {"id": "e1", "name": "Ann", "day": "monday", "timeBlock": "08:00 - 16:00", "area": "FOH"},
                {"id": "e1", "name": "Ann", "day": "wednesday", "timeBlock": "09:00 - 15:00", "area": "FOH"},
            ],
        }
    )
    wednesday = scheduled_employees(setup, "wednesday")
    assert [(employee.id, employee.time_block) for employee in wednesday] == [("e1", "09:00 - 15:00")]
    unassigned = unassigned_employees(wednesday, "wednesday", setup.week_schedule)
    assert [employee.name for employee in unassigned] == ["Ann"]
    assert scheduled_employees(setup, "friday") == []


def test_unassigned_employees_sorted_case_insensitively():
    setup = build_setup()
    unassigned = unassigned_employees(scheduled_employees(setup, "monday"), "monday", setup.week_schedule)
    assert [employee.name for employee in unassigned] == ["Ann", "bob", "Eve"]


def test_assigned_employees_aggregate_positions_and_fallback_names():
    setup = build_setup()
    records = {record.id: record for record in assigned_employees(setup, "monday")}
    assert records["e3"].positions == ["Grill"]
    assert records["e3"].time_blocks == ["08:00 - 12:00"]
    assert records["e3"].area == "BOH"
    assert records["x9"].name == "Drive Thru Runner"
    assert records["x9"].area == "FOH"


def test_day_employees_tag_unplaced_people_as_scheduled():
    records = {record.id: record for record in day_employees(build_setup(), "monday")}
    assert set(records) == {"e1", "e2", "e3", "e5", "x9"}
    assert records["e1"].positions == [SCHEDULED_MARKER]
    assert records["e1"].time_blocks == ["07:00 - 13:00"]
    assert records["e3"].positions == ["Grill"]


def test_extract_employees_skips_positions_without_names():
    setup = build_setup()
    setup.week_schedule["monday"].time_blocks[0].positions[0].bind("e1", "Ann")
    found = extract_employees_from_positions(setup.week_schedule)
    assert {employee.id for employee in found} == {"e1", "e3", "x9"}


def test_filter_by_area_tabs():
    directory = scheduled_employees(build_setup(), "monday")
    assert len(filter_by_area(directory, "all")) == len(directory)
    assert [employee.id for employee in filter_by_area(directory, "BOH")] == ["e3", "e5"]


@pytest.mark.parametrize(
    "moment, expected",
    [
        (datetime.datetime(2024, 6, 3, 9, 0), True),
        (datetime.datetime(2024, 6, 3, 17, 0), True),
        (datetime.datetime(2024, 6, 3, 17, 1), False),
        (datetime.datetime(2024, 6, 4, 10, 0), False),
    ],
)
def test_current_shift_bounds_are_inclusive(moment, expected):
    employee = Employee(id="e1", name="Ann", day="Monday", time_block="09:00 - 17:00")
    assert is_employee_on_current_shift(employee, moment) is expected


def test_current_shift_checks_every_time_block_when_day_unset():
    employee = Employee(id="e1", name="Ann", time_block="bad", time_blocks=["06:00 - 08:00", "18:00 - 22:00"])
    assert is_employee_on_current_shift(employee, datetime.datetime(2024, 6, 5, 19, 30)) is True


def test_roster_entries_require_id_and_name():
    with pytest.raises(ValidationError):
        Setup.from_dict({"id": "s", "uploadedSchedules": [{"id": "e1"}]})
    with pytest.raises(ValidationError):
        Setup.from_dict({"id": "s", "weekSchedule": {"monday": {"timeBlocks": [{"start": "08:00"}]}}})
    with pytest.raises(ValidationError):
        Setup.from_dict(
            {"id": "s", "weekSchedule": {"monday": {"timeBlocks": [{"id": "b", "positions": [{"name": "Grill"}]}]}}}
        )


@pytest.mark.parametrize(
    "category, section, expected",
    [
        ("Kitchen", None, "BOH"),
        ("front counter", "BOH", "FOH"),
        ("Drive Thru", None, "FOH"),
        ("BOH", None, "BOH"),
        ("Grill", None, None),
        ("Register", None, None),
        ("Break", "FOH", None),
        ("", "back of house", "BOH"),
        (None, None, None),
    ],
)
def test_required_area_only_for_listed_categories(category, section, expected):
    assert required_area(category, section) == expected
