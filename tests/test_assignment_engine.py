from __future__ import annotations

import datetime
import itertools
import sys
from pathlib import Path

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from editor.engine import AssignmentEngine  # noqa: E402
from errors import ValidationError  # noqa: E402
from models import Position, Setup  # noqa: E402


def sequential_ids(prefix: str = "new"):
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


def build_setup() -> Setup:
    return Setup.from_dict(
        {
            "id": "setup-1",
            "name": "Week of June 2",
            "startDate": "2024-06-02",
            "endDate": "2024-06-08",
            "weekSchedule": {
                "monday": {
                    "timeBlocks": [
                        {
                            "id": "b1",
                            "start": "09:00",
                            "end": "12:00",
                            "positions": [
                                {"id": "p1", "name": "Register 1", "category": "Front Counter"},
                                {"id": "p2", "name": "Grill", "category": "Kitchen"},
                            ],
                        },
                        {
                            "id": "b2",
                            "start": "12:00",
                            "end": "15:00",
                            "positions": [
                                {"id": "p3", "name": "Drive Thru Order", "category": "Drive Thru"},
                            ],
                        },
                    ]
                },
                "wednesday": {
                    "timeBlocks": [
                        {
                            "id": "w1",
                            "start": "10:00",
                            "end": "14:00",
                            "positions": [
                                {"id": "wp1", "name": "Register 1", "category": "Front Counter"},
                            ],
                        }
                    ]
                },
            },
            "uploadedSchedules": [
                {"id": "e1", "name": "Ann", "day": "monday", "timeBlock": "08:00 - 16:00", "area": "FOH"},
                {"id": "e2", "name": "Ben", "day": "monday", "timeBlock": "11:00 - 19:00", "area": "FOH"},
                {"id": "e3", "name": "cara", "day": "monday", "timeBlock": "06:00 - 14:00", "area": "BOH"},
                {"id": "e4", "name": "Dan", "day": "monday", "timeBlock": "05:00 - 09:00", "area": "FOH"},
                {"id": "e1", "name": "Ann", "day": "wednesday", "timeBlock": "09:00 - 15:00", "area": "FOH"},
            ],
        }
    )


@pytest.fixture
def engine() -> AssignmentEngine:
    return AssignmentEngine(build_setup(), "Monday", id_factory=sequential_ids())


def register(position_id: str = "candidate") -> Position:
    return Position(id=position_id, name="Register 2", category="Front Counter")


def ids(employees):
    return [employee.id for employee in employees]


def test_assign_then_remove_round_trip(engine):
    assert "e1" in ids(engine.unassigned())
    result = engine.assign("p1", "e1", "Ann")
    _, position = engine.find_position("p1")
    assert result.applied is True
    assert position.binding() == ("e1", "Ann")
    assert "e1" not in ids(engine.unassigned())

    removed = engine.remove("p1")
    assert removed.applied is True
    assert position.binding() == (None, None)
    assert "e1" in ids(engine.unassigned())


def test_assign_uses_position_name_for_placeholder(engine):
    engine.assign("p1", "e9", "Unknown Employee")
    _, position = engine.find_position("p1")
    assert position.employee_name == "Register 1"


def test_assign_looks_up_directory_name_when_missing(engine):
    engine.assign("p1", "e2")
    _, position = engine.find_position("p1")
    assert position.employee_name == "Ben"


def test_missing_position_is_a_noop(engine):
    result = engine.assign("nope", "e1", "Ann")
    assert result.applied is False
    assert engine.remove("nope").applied is False


def test_assign_requires_employee_id(engine):
    with pytest.raises(ValidationError):
        engine.assign("p1", "  ")


def test_availability_excludes_overlapping_assignments_only(engine):
    engine.assign("p1", "e1", "Ann")

    overlapping = engine.available_employees(register(), "11:00", "14:00")
    assert "e1" not in ids(overlapping)

    adjacent = engine.available_employees(register(), "12:00", "15:00")
    assert "e1" in ids(adjacent)


def test_availability_keeps_employee_for_the_position_being_edited(engine):
    engine.assign("p1", "e1", "Ann")
    editing = engine.available_employees(register("p1"), "09:00", "12:00", editing_position_id="p1")
    assert "e1" in ids(editing)
    assert "e1" in ids(engine.available_for_position("p1"))


def test_availability_window_is_half_open(engine):
    # Dan works 05:00-09:00: ending exactly at the block start is not available.
    assert "e4" not in ids(engine.available_employees(register(), "09:00", "12:00"))
    assert "e4" in ids(engine.available_employees(register(), "08:00", "09:00"))


def test_availability_filters_by_required_area_and_name(engine):
    kitchen = Position(id="k", name="Fries", category="Kitchen")
    assert ids(engine.available_employees(kitchen, "09:00", "12:00")) == ["e3"]
    front = engine.available_employees(register(), "09:00", "12:00")
    assert ids(front) == ["e1", "e2"]
    assert ids(engine.available_employees(register(), "09:00", "12:00", name_filter="BE")) == ["e2"]
    everyone = engine.available_employees(None, "09:00", "12:00")
    assert [employee.name for employee in everyone] == ["Ann", "Ben", "cara"]


def test_availability_backfills_area_from_other_sources():
    setup = build_setup()
    setup.uploaded_schedules[2].area = None
    setup.employees = [setup.uploaded_schedules[2].copy()]
    setup.employees[0].area = "BOH"
    engine = AssignmentEngine(setup, "monday")
    kitchen = Position(id="k", name="Fries", category="Kitchen")
    assert ids(engine.available_employees(kitchen, "09:00", "12:00")) == ["e3"]


def test_repeated_roster_id_is_available_on_each_listed_day(engine):
    engine.set_active_day("wednesday")
    assert ids(engine.directory()) == ["e1"]
    assert engine.directory()[0].time_block == "09:00 - 15:00"
    assert ids(engine.unassigned()) == ["e1"]
    assert ids(engine.available_for_position("wp1")) == ["e1"]

    engine.set_active_day("monday")
    assert engine.directory()[0].time_block == "08:00 - 16:00"


def test_bulk_assign_fills_open_positions_alphabetically(engine):
    result = engine.bulk_assign("b1")
    assert result.applied is True
    assert result.value == [("p1", "e1"), ("p2", "e3")]
    assert engine.find_position("p1")[1].binding() == ("e1", "Ann")
    assert engine.find_position("p2")[1].binding() == ("e3", "cara")

    again = engine.bulk_assign("b1")
    assert again.applied is False

    result.revert()
    assert engine.find_position("p1")[1].binding() == (None, None)
    assert engine.find_position("p2")[1].binding() == (None, None)


def test_bulk_assign_narrows_by_area_and_position_type(engine):
    kitchen = engine.bulk_assign("b1", area="BOH")
    assert kitchen.value == [("p2", "e3")]
    assert engine.find_position("p1")[1].binding() == (None, None)

    engine.assign("p1", "e1", "Ann")
    registers = engine.bulk_assign("b1", area="ALL", position_type="register 1")
    assert registers.applied is False

    engine.remove("p1")
    registers = engine.bulk_assign("b1", position_type="Register 1")
    assert registers.value == [("p1", "e1")]


def test_bulk_assign_skips_people_already_busy(engine):
    engine.assign("p2", "e1", "Ann")
    added = engine.add_position("b1", "Register 2", "Front Counter").value
    result = engine.bulk_assign("b1", area="FOH")
    assert result.value == [("p1", "e2")]
    assert added.binding() == (None, None)


def test_bulk_assign_places_each_person_once_per_block(engine):
    added = engine.add_position("b1", "Register 2", "Front Counter").value
    result = engine.bulk_assign("b1", area="FOH")
    assert result.value == [("p1", "e1"), (added.id, "e2")]


def test_bulk_assign_rejects_unknown_inputs(engine):
    assert engine.bulk_assign("missing").applied is False
    with pytest.raises(ValidationError):
        engine.bulk_assign("b1", area="Patio")


def test_end_to_end_assignment_blocks_overlapping_slot():
    setup = Setup.from_dict(
        {
            "id": "s",
            "weekSchedule": {
                "monday": {
                    "timeBlocks": [
                        {
                            "id": "b1",
                            "start": "08:00",
                            "end": "12:00",
                            "positions": [{"id": "r1", "name": "Register 1", "category": "Front Counter"}],
                        }
                    ]
                }
            },
            "uploadedSchedules": [{"id": "e1", "name": "Ann", "day": "monday", "timeBlock": "07:00 - 13:00"}],
        }
    )
    engine = AssignmentEngine(setup, "monday", id_factory=sequential_ids())
    engine.assign("r1", "e1", "Ann")
    assert engine.find_position("r1")[1].employee_id == "e1"
    assert engine.unassigned() == []

    added = engine.add_position("b2", "Register 2", "Front Counter", start="10:00", end="14:00")
    assert "e1" not in ids(engine.available_for_position(added.value.id))


def test_replace_renames_on_active_day_only(engine):
    engine.assign("p1", "e1", "Ann")
    engine.set_active_day("wednesday")
    engine.assign("wp1", "e1", "Ann")
    engine.set_active_day("monday")

    result = engine.replace("e1", "Annie")
    assert result.applied is True
    assert engine.find_position("p1")[1].binding() == ("e1", "Annie")
    assert engine.find_position("wp1", "wednesday")[1].binding() == ("e1", "Ann")
    assert {employee.name for employee in engine.setup.uploaded_schedules if employee.id == "e1"} == {"Annie"}

    result.revert()
    assert engine.find_position("p1")[1].employee_name == "Ann"
    assert {employee.name for employee in engine.setup.uploaded_schedules if employee.id == "e1"} == {"Ann"}


def test_delete_employee_clears_every_day(engine):
    engine.assign("p1", "e1", "Ann")
    engine.set_active_day("wednesday")
    engine.assign("wp1", "e1", "Ann")
    engine.set_active_day("monday")

    result = engine.delete_employee_everywhere("e1")
    assert result.applied is True
    assert result.value == 2
    assert engine.find_position("p1")[1].employee_id is None
    assert engine.find_position("wp1", "wednesday")[1].employee_id is None
    assert "e1" not in [employee.id for employee in engine.setup.uploaded_schedules]

    result.revert()
    assert engine.find_position("wp1", "wednesday")[1].employee_id == "e1"
    assert [employee.id for employee in engine.setup.uploaded_schedules] == ["e1", "e2", "e3", "e4", "e1"]


def test_revert_only_touches_its_own_fields(engine):
    first = engine.assign("p1", "e1", "Ann")
    engine.assign("p3", "e2", "Ben")
    first.revert()
    assert engine.find_position("p1")[1].employee_id is None
    assert engine.find_position("p3")[1].employee_id == "e2"


def test_add_employee_joins_the_active_day(engine):
    result = engine.add_employee("Gus", "front of house", "09:00", "17:00")
    employee = result.value
    assert employee.id == "new1"
    assert employee.day == "monday"
    assert employee.area == "FOH"
    assert employee.time_block == "09:00 - 17:00"
    assert "new1" in ids(engine.unassigned())
    assert all(position.employee_id != "new1" for _, _, position in engine.setup.iter_positions())

    result.revert()
    assert "new1" not in ids(engine.directory())


@pytest.mark.parametrize(
    "name, area, start, end",
    [("", "FOH", "09:00", "17:00"), ("Gus", "FOH", "", "17:00"), ("Gus", "patio", "09:00", "17:00")],
)
def test_add_employee_rejects_missing_fields(engine, name, area, start, end):
    with pytest.raises(ValidationError):
        engine.add_employee(name, area, start, end)


def test_add_position_to_existing_and_new_blocks(engine):
    existing = engine.add_position("b1", "Register 3", "Front Counter")
    assert existing.value.id == "new1"
    assert existing.value.employee_id is None
    assert engine.find_block("b1").positions[-1] is existing.value

    created = engine.add_position("b9", "Breading", "Kitchen", start="15:00", end="18:00")
    assert engine.find_block("b9").label == "15:00 - 18:00"
    assert created.value.section == "BOH"

    created.revert()
    assert engine.find_block("b9") is None

    with pytest.raises(ValidationError):
        engine.add_position("b10", "Breading", "Kitchen")
    with pytest.raises(ValidationError):
        engine.add_position("b1", "", "Kitchen")


def test_add_position_creates_missing_day():
    engine = AssignmentEngine(build_setup(), "friday", id_factory=sequential_ids())
    result = engine.add_position("f1", "Register 1", "Front Counter", start="09:00", end="13:00")
    assert engine.setup.days() == ["monday", "wednesday", "friday"]
    result.revert()
    assert engine.setup.days() == ["monday", "wednesday"]


def test_hour_views_and_counts(engine):
    engine.assign("p2", "e3", "cara")
    assert engine.hours() == [9, 12]
    assert [block.id for block in engine.blocks_for_hour(12)] == ["b2"]
    assert [block.id for block in engine.current_blocks(datetime.datetime(2024, 6, 3, 12, 0))] == ["b1", "b2"]
    assert engine.position_counts() == {"FOH": {"total": 2, "filled": 0}, "BOH": {"total": 1, "filled": 1}}


def test_set_active_day_rejects_unknown_labels(engine):
    assert engine.set_active_day("Wed") == "wednesday"
    with pytest.raises(ValidationError):
        engine.set_active_day("funday")
