import asyncio
from datetime import date

import pytest

from app.models.class_draft import ApprovalStatus
from app.models.resource import ResourceType
from app.models.weekday import Weekday
from app.pipeline.errors import ErrorKind, PipelineError
from app.pipeline.patterns import (
    Dimension,
    PatternAssignmentEngine,
    TimeSlotChoices,
    derive_current_pattern,
    filter_time_slots,
    propose_pattern,
)
from app.schemas.class_creation import ClassBasicInfo, ClassSessionOut, ResourceOption, TimeSlotOption

MON = Weekday.monday
WED = Weekday.wednesday

EVENING = TimeSlotOption(id="evening", name="Evening", start_time="18:00", end_time="19:30", duration_hours=1.5)
MORNING = TimeSlotOption(id="morning", name="Morning", start_time="08:00", end_time="10:00", duration_hours=2.0)


def session(number, day, **values):
    return ClassSessionOut(
        session_id=f"s{number}",
        sequence_number=number,
        date=date(2027, 1, number),
        day_of_week=day,
        week_number=1,
        **values,
    )


def room(code):
    return ResourceOption(
        id=code.lower(),
        code=code,
        name=code,
        resource_type=ResourceType.room,
        capacity=30,
        display_name=code,
    )


def test_current_pattern_is_most_frequent_value_per_weekday():
    sessions = [
        session(1, MON, resource_id="r1"),
        session(2, WED),
        session(3, MON, resource_id="r2"),
        session(4, WED),
        session(5, MON, resource_id="r1"),
    ]

    assert derive_current_pattern(sessions, [MON, WED], Dimension.resource) == {MON: "r1", WED: None}


def test_current_pattern_tie_keeps_first_value_seen():
    sessions = [session(1, MON, teacher_id="t2"), session(2, MON, teacher_id="t1")]

    assert derive_current_pattern(sessions, [MON], Dimension.teacher) == {MON: "t2"}


def test_proposed_pattern_drops_empty_days_and_orders_by_weekday():
    pattern = propose_pattern({"WED": "r2", MON: "r1", Weekday.friday: None}, [MON, WED, Weekday.friday])

    assert list(pattern.items()) == [(MON, "r1"), (WED, "r2")]


def test_proposed_pattern_rejects_days_outside_schedule():
    with pytest.raises(PipelineError) as exc_info:
        propose_pattern({"TUE": "r1", "XYZ": "r2"}, [MON, WED])

    assert exc_info.value.kind == ErrorKind.validation
    assert exc_info.value.details == {
        "TUE": "Weekday is not part of the class schedule",
        "XYZ": "Unknown weekday",
    }


def test_time_slots_filtered_by_session_length():
    assert filter_time_slots([EVENING, MORNING], 1.5) == [EVENING]
    assert filter_time_slots([EVENING, MORNING], 1.75, tolerance=0.3) == [EVENING, MORNING]


def test_choices_require_a_valid_selection_for_every_day():
    choices = TimeSlotChoices(weekdays=[MON, WED], candidates={MON: [EVENING], WED: []})

    assert choices.non_assignable == [WED]
    choices.select(MON, "evening")
    assert choices.is_complete is False

    with pytest.raises(PipelineError):
        choices.select(MON, "morning")
    with pytest.raises(PipelineError):
        choices.select(Weekday.friday, "evening")


@pytest.mark.anyio
async def test_time_slot_choices_prefill_from_sessions(fake_gateway, basic_info):
    created = await fake_gateway.create_draft(basic_info)
    fake_gateway.time_slots = [EVENING, MORNING]
    for item in fake_gateway.sessions:
        if item.day_of_week == MON:
            item.time_slot_template_id = "evening"
        else:
            item.time_slot_template_id = "morning"
    engine = PatternAssignmentEngine(fake_gateway)
    draft = await fake_gateway.get_draft(created.class_id)

    choices = await engine.load_time_slot_choices(draft)

    assert choices.candidates == {MON: [EVENING], WED: [EVENING]}
    # a prefilled value that no longer fits the course is not offered
    assert choices.selected == {MON: "evening", WED: None}
    with pytest.raises(PipelineError):
        await engine.apply_time_slots(draft, choices)
    assert fake_gateway.count("apply_time_slot_pattern") == 0

    choices.select(WED, "evening")
    result = await engine.apply_time_slots(draft, choices)

    assert result.success_count == 10
    assert fake_gateway.calls[-1] == ("apply_time_slot_pattern", "class-1", {MON: "evening", WED: "evening"})


@pytest.mark.anyio
async def test_superseded_resource_candidates_are_dropped(fake_gateway, basic_info):
    created = await fake_gateway.create_draft(basic_info)
    fake_gateway.resource_options = {WED: [room("R1")]}
    fake_gateway.resource_delays = {WED: 0.01}
    engine = PatternAssignmentEngine(fake_gateway)

    first, second = await asyncio.gather(
        engine.resource_candidates(created.class_id, WED, "evening"),
        engine.resource_candidates(created.class_id, WED, "late"),
    )

    assert first is None
    assert [item.code for item in second] == ["R1"]


@pytest.mark.anyio
async def test_resource_pattern_is_refused_locally_for_locked_draft(fake_gateway, basic_info):
    created = await fake_gateway.create_draft(basic_info)
    draft = (await fake_gateway.get_draft(created.class_id)).model_copy(
        update={"approval_status": ApprovalStatus.pending}
    )
    engine = PatternAssignmentEngine(fake_gateway)

    with pytest.raises(PipelineError) as exc_info:
        await engine.apply_resources(draft, {MON: "r1"})

    assert exc_info.value.kind == ErrorKind.not_editable
    assert fake_gateway.count("apply_resource_pattern") == 0


@pytest.mark.anyio
async def test_resource_pattern_needs_at_least_one_choice(fake_gateway, basic_info):
    created = await fake_gateway.create_draft(basic_info)
    draft = await fake_gateway.get_draft(created.class_id)
    engine = PatternAssignmentEngine(fake_gateway)

    with pytest.raises(PipelineError):
        await engine.apply_resources(draft, {MON: None, WED: ""})

    pattern, result = await engine.apply_resources(draft, {"WED": "r2", "MON": "r1"})
    assert pattern == {MON: "r1", WED: "r2"}
    assert result.success_count == 10


@pytest.mark.anyio
async def test_applied_patterns_are_derived_back_from_sessions(gateway, catalog):
    def info(name, days):
        return ClassBasicInfo(
            branch_id=catalog.branch_id,
            course_id=catalog.course_id,
            name=name,
            start_date=catalog.start_date,
            schedule_days=days,
            max_capacity=20,
        )

    # Another class already holds R1 on Monday evenings.
    holder = await gateway.create_draft(info("Monday English", [MON]))
    await gateway.apply_time_slot_pattern(holder.class_id, {MON: catalog.evening_id})
    await gateway.apply_resource_pattern(holder.class_id, {MON: catalog.r1_id})

    created = await gateway.create_draft(info("Evening English B", [MON, WED]))
    slot_pattern = {MON: catalog.evening_id, WED: catalog.late_id}
    applied = await gateway.apply_time_slot_pattern(created.class_id, slot_pattern)
    assert applied.success_count == 10

    resource_pattern = {MON: catalog.r1_id, WED: catalog.r3_id}
    result = await gateway.apply_resource_pattern(created.class_id, resource_pattern)
    conflicted_days = {item.day_of_week for item in result.conflicts}
    assert conflicted_days == {MON}

    sessions = (await gateway.list_sessions(created.class_id)).sessions
    assert derive_current_pattern(sessions, [MON, WED], Dimension.time_slot) == slot_pattern
    derived = derive_current_pattern(sessions, [MON, WED], Dimension.resource)
    clean_days = [day for day in resource_pattern if day not in conflicted_days]
    assert clean_days == [WED]
    assert {day: derived[day] for day in clean_days} == {day: resource_pattern[day] for day in clean_days}
