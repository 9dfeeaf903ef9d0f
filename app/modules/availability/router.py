"""Availability API router."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.enums import RoleEnum
from app.modules.availability.schemas import (
    AvailabilityRuleCreate,
    AvailabilityRuleRead,
    AvailabilityRuleUpdate,
    AvailableSlotsRead,
    BlockedIntervalCreate,
    BlockedIntervalRead,
)
from app.modules.availability.service import AvailabilityService, get_availability_service
from app.modules.profiles.service import get_current_user, require_roles

router = APIRouter(prefix="/availability", tags=["availability"])


@router.post("/rules", response_model=AvailabilityRuleRead, status_code=status.HTTP_201_CREATED)
async def create_rule(
    payload: AvailabilityRuleCreate,
    service: AvailabilityService = Depends(get_availability_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> AvailabilityRuleRead:
    """Create weekly availability rule."""
    rule = await service.create_rule(payload, current_user)
    return AvailabilityRuleRead.model_validate(rule)


@router.patch("/rules/{rule_id}", response_model=AvailabilityRuleRead)
async def update_rule(
    rule_id: UUID,
    payload: AvailabilityRuleUpdate,
    service: AvailabilityService = Depends(get_availability_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> AvailabilityRuleRead:
    rule = await service.update_rule(rule_id, payload, current_user)
    return AvailabilityRuleRead.model_validate(rule)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: UUID,
    service: AvailabilityService = Depends(get_availability_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> Response:
    await service.delete_rule(rule_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/tutors/{tutor_id}/rules", response_model=list[AvailabilityRuleRead])
async def list_rules(
    tutor_id: UUID,
    service: AvailabilityService = Depends(get_availability_service),
    current_user=Depends(get_current_user),
) -> list[AvailabilityRuleRead]:
    """List tutor weekly rules."""
    rules = await service.list_rules(tutor_id)
    return [AvailabilityRuleRead.model_validate(item) for item in rules]


@router.post("/blocks", response_model=BlockedIntervalRead, status_code=status.HTTP_201_CREATED)
async def create_block(
    payload: BlockedIntervalCreate,
    service: AvailabilityService = Depends(get_availability_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> BlockedIntervalRead:
    """Block an absolute time range."""
    block = await service.create_block(payload, current_user)
    return BlockedIntervalRead.model_validate(block)


@router.delete("/blocks/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_block(
    block_id: UUID,
    service: AvailabilityService = Depends(get_availability_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> Response:
    await service.delete_block(block_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/tutors/{tutor_id}/blocks", response_model=list[BlockedIntervalRead])
async def list_blocks(
    tutor_id: UUID,
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    service: AvailabilityService = Depends(get_availability_service),
    current_user=Depends(get_current_user),
) -> list[BlockedIntervalRead]:
    """List blocked intervals overlapping a window."""
    blocks = await service.list_blocks(tutor_id, start, end)
    return [BlockedIntervalRead.model_validate(item) for item in blocks]


@router.get("/tutors/{tutor_id}/slots", response_model=AvailableSlotsRead)
async def list_available_slots(
    tutor_id: UUID,
    day: date = Query(alias="date"),
    duration_minutes: int | None = Query(default=None, ge=1, le=480),
    service: AvailabilityService = Depends(get_availability_service),
    current_user=Depends(get_current_user),
) -> AvailableSlotsRead:
    """Return bookable start times for tutor and date."""
    return await service.get_available_start_times(tutor_id, day, duration_minutes)
