from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest
from pydantic import ValidationError

import app.modules.availability.service as availability_service_module
from app.core.enums import RoleEnum
from app.modules.availability.schemas import (
    AvailabilityRuleCreate,
    AvailabilityRuleRead,
    AvailabilityRuleUpdate,
    BlockedIntervalCreate,
)
from app.modules.availability.service import AvailabilityService, local_day_bounds, tutor_timezone
from app.shared.exceptions import (
    BusinessRuleException,
    InvalidInputException,
    NotFoundException,
    UnauthorizedException,
)

MONDAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _frozen_clock(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(availability_service_module, "utc_now", lambda: NOW)


@dataclass
class FakeRule:
    id: UUID
    tutor_id: UUID
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool = True


@dataclass
class FakeBlock:
    id: UUID
    tutor_id: UUID
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None = None


class FakeAvailabilityRepository:
    def __init__(self) -> None:
        self.rules: list[FakeRule] = []
        self.blocks: list[FakeBlock] = []

    async def create_rule(self, tutor_id: UUID, **fields) -> FakeRule:
        rule = FakeRule(id=uuid4(), tutor_id=tutor_id, **fields)
        self.rules.append(rule)
        return rule

    async def get_rule_by_id(self, rule_id: UUID) -> FakeRule | None:
        return next((item for item in self.rules if item.id == rule_id), None)

    async def update_rule(self, rule: FakeRule, **changes) -> FakeRule:
        for key, value in changes.items():
            setattr(rule, key, value)
        return rule

    async def delete_rule(self, rule: FakeRule) -> None:
        self.rules.remove(rule)

    async def list_rules(self, tutor_id: UUID) -> list[FakeRule]:
        return [item for item in self.rules if item.tutor_id == tutor_id]

    async def create_block(self, tutor_id: UUID, **fields) -> FakeBlock:
        block = FakeBlock(id=uuid4(), tutor_id=tutor_id, **fields)
        self.blocks.append(block)
        return block

    async def get_block_by_id(self, block_id: UUID) -> FakeBlock | None:
        return next((item for item in self.blocks if item.id == block_id), None)

    async def delete_block(self, block: FakeBlock) -> None:
        self.blocks.remove(block)

    async def list_blocks_overlapping(self, tutor_id: UUID, start: datetime, end: datetime) -> list[FakeBlock]:
        return [
            item
            for item in self.blocks
            if item.tutor_id == tutor_id and item.start_datetime < end and item.end_datetime > start
        ]


class FakeProfilesRepository:
    def __init__(self, *profiles) -> None:
        self.profiles = {item.id: item for item in profiles}

    async def get_profile_by_id(self, profile_id: UUID):
        return self.profiles.get(profile_id)


class FakeBookingRepository:
    def __init__(self) -> None:
        self.bookings: list[SimpleNamespace] = []

    async def list_active_bookings_for_day(self, tutor_id: UUID, lesson_date: date, **_) -> list[SimpleNamespace]:
        return [item for item in self.bookings if item.tutor_id == tutor_id and item.lesson_date == lesson_date]


def _profile(role: RoleEnum, timezone: str | None = "UTC") -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), role=role, timezone=timezone, full_name=f"{role.value} name")


@pytest.fixture
def setup():
    tutor = _profile(RoleEnum.TUTOR)
    student = _profile(RoleEnum.STUDENT)
    repository = FakeAvailabilityRepository()
    bookings = FakeBookingRepository()
    service = AvailabilityService(
        repository=repository,
        profiles_repository=FakeProfilesRepository(tutor, student),
        booking_repository=bookings,
    )
    return SimpleNamespace(service=service, repository=repository, bookings=bookings, tutor=tutor, student=student)


def test_tutor_timezone_falls_back_to_schedule_zone() -> None:
    assert str(tutor_timezone(_profile(RoleEnum.TUTOR, timezone="America/New_York"))) == "America/New_York"
    assert str(tutor_timezone(_profile(RoleEnum.TUTOR, timezone=None))) == "Europe/London"
    assert str(tutor_timezone(_profile(RoleEnum.TUTOR, timezone="Mars/Olympus"))) == "Europe/London"


def test_local_day_bounds_are_utc() -> None:
    start, end = local_day_bounds(date(2030, 7, 1), tutor_timezone(_profile(RoleEnum.TUTOR, "Europe/London")))

    assert start == datetime(2030, 6, 30, 23, 0, tzinfo=UTC)
    assert end == datetime(2030, 7, 1, 23, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_only_tutors_manage_rules(setup) -> None:
    payload = AvailabilityRuleCreate(day_of_week=1, start_time=time(9), end_time=time(12))

    with pytest.raises(UnauthorizedException):
        await setup.service.create_rule(payload, setup.student)

    rule = await setup.service.create_rule(payload, setup.tutor)
    assert rule.tutor_id == setup.tutor.id
    assert await setup.service.list_rules(setup.tutor.id) == [rule]


@pytest.mark.asyncio
async def test_rule_update_keeps_window_ordered(setup) -> None:
    rule = await setup.service.create_rule(
        AvailabilityRuleCreate(day_of_week=1, start_time=time(9), end_time=time(12)),
        setup.tutor,
    )

    with pytest.raises(BusinessRuleException):
        await setup.service.update_rule(rule.id, AvailabilityRuleUpdate(start_time=time(13)), setup.tutor)

    updated = await setup.service.update_rule(rule.id, AvailabilityRuleUpdate(end_time=time(15)), setup.tutor)
    assert updated.end_time == time(15)


@pytest.mark.asyncio
async def test_other_tutor_cannot_touch_rule(setup) -> None:
    rule = await setup.service.create_rule(
        AvailabilityRuleCreate(day_of_week=1, start_time=time(9), end_time=time(12)),
        setup.tutor,
    )
    intruder = _profile(RoleEnum.TUTOR)

    with pytest.raises(UnauthorizedException):
        await setup.service.delete_rule(rule.id, intruder)
    with pytest.raises(NotFoundException):
        await setup.service.delete_rule(uuid4(), setup.tutor)

    await setup.service.delete_rule(rule.id, setup.tutor)
    assert setup.repository.rules == []


@pytest.mark.asyncio
async def test_naive_block_is_stored_in_utc_from_tutor_zone(setup) -> None:
    setup.tutor.timezone = "Europe/London"

    block = await setup.service.create_block(
        BlockedIntervalCreate(
            start_datetime=datetime(2030, 7, 1, 10, 0),
            end_datetime=datetime(2030, 7, 1, 11, 0),
            reason="dentist",
        ),
        setup.tutor,
    )

    assert block.start_datetime == datetime(2030, 7, 1, 9, 0, tzinfo=UTC)
    assert block.end_datetime == datetime(2030, 7, 1, 10, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_list_blocks_rejects_inverted_window(setup) -> None:
    with pytest.raises(InvalidInputException):
        await setup.service.list_blocks(
            setup.tutor.id,
            datetime(2030, 1, 2, tzinfo=UTC),
            datetime(2030, 1, 1, tzinfo=UTC),
        )


@pytest.mark.asyncio
async def test_available_start_times_combine_rules_blocks_and_bookings(setup) -> None:
    await setup.service.create_rule(
        AvailabilityRuleCreate(day_of_week=1, start_time=time(9), end_time=time(12)),
        setup.tutor,
    )
    await setup.service.create_block(
        BlockedIntervalCreate(
            start_datetime=datetime(2030, 1, 7, 11, 0, tzinfo=UTC),
            end_datetime=datetime(2030, 1, 7, 11, 30, tzinfo=UTC),
        ),
        setup.tutor,
    )
    setup.bookings.bookings.append(
        SimpleNamespace(tutor_id=setup.tutor.id, lesson_date=MONDAY, lesson_time=time(9), duration_minutes=60),
    )

    result = await setup.service.get_available_start_times(setup.tutor.id, MONDAY, 60)

    assert result.step_minutes == 15
    assert result.start_times == ["10:00"]


@pytest.mark.asyncio
async def test_past_dates_have_no_slots(setup) -> None:
    await setup.service.create_rule(
        AvailabilityRuleCreate(day_of_week=1, start_time=time(9), end_time=time(12)),
        setup.tutor,
    )

    result = await setup.service.get_available_start_times(setup.tutor.id, date(2029, 12, 31), 60)

    assert result.start_times == []


@pytest.mark.asyncio
async def test_slot_lookup_validates_duration_and_tutor(setup) -> None:
    with pytest.raises(InvalidInputException):
        await setup.service.get_available_start_times(setup.tutor.id, MONDAY, 50)
    with pytest.raises(NotFoundException):
        await setup.service.get_available_start_times(setup.student.id, MONDAY, 60)


def test_rule_schema_accepts_window_ending_at_midnight() -> None:
    payload = AvailabilityRuleCreate(day_of_week=1, start_time="22:00", end_time="24:00")

    assert payload.end_time == time(0)
    with pytest.raises(ValidationError):
        AvailabilityRuleCreate(day_of_week=1, start_time="24:00", end_time="23:00")
    with pytest.raises(ValidationError):
        AvailabilityRuleCreate(day_of_week=1, start_time="10:00", end_time="09:00")


@pytest.mark.asyncio
async def test_midnight_rule_is_stored_and_keeps_last_slot(setup) -> None:
    rule = await setup.service.create_rule(
        AvailabilityRuleCreate(day_of_week=1, start_time="22:00", end_time="24:00"),
        setup.tutor,
    )
    rule.created_at = rule.updated_at = NOW

    result = await setup.service.get_available_start_times(setup.tutor.id, MONDAY, 60)

    assert result.start_times == ["22:00", "22:15", "22:30", "22:45", "23:00"]
    assert AvailabilityRuleRead.model_validate(rule).model_dump(mode="json")["end_time"] == "24:00:00"


@pytest.mark.asyncio
async def test_rule_update_may_extend_to_midnight(setup) -> None:
    rule = await setup.service.create_rule(
        AvailabilityRuleCreate(day_of_week=1, start_time=time(20), end_time=time(22)),
        setup.tutor,
    )

    updated = await setup.service.update_rule(rule.id, AvailabilityRuleUpdate(end_time="24:00"), setup.tutor)

    assert updated.end_time == time(0)
    with pytest.raises(BusinessRuleException):
        await setup.service.update_rule(rule.id, AvailabilityRuleUpdate(end_time=time(19)), setup.tutor)
