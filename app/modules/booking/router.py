"""Booking API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.enums import BookingStatusEnum
from app.core.rate_limit import checkout_rate_limit
from app.modules.booking.schemas import (
    BookingCreate,
    BookingDetailRead,
    BookingRead,
    BookingStatusUpdate,
)
from app.modules.booking.service import BookingService, get_booking_service
from app.modules.profiles.service import get_current_user
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/booking", tags=["booking"])


@router.post(
    "",
    response_model=BookingRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(checkout_rate_limit("booking"))],
)
async def create_booking(
    payload: BookingCreate,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    """Create pending booking for a free slot."""
    booking = await service.create_booking(payload, current_user)
    return BookingRead.model_validate(booking)


@router.get("/my", response_model=Page[BookingDetailRead])
async def list_my_bookings(
    status_filter: BookingStatusEnum | None = Query(default=None, alias="status"),
    pagination=Depends(get_pagination_params),
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> Page[BookingDetailRead]:
    """List bookings for current user."""
    items, total = await service.list_bookings(
        current_user,
        pagination.limit,
        pagination.offset,
        status=status_filter,
    )
    serialized = [BookingDetailRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{booking_id}", response_model=BookingDetailRead)
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingDetailRead:
    """Return booking with tutor and student details."""
    booking = await service.get_booking(booking_id, current_user)
    return BookingDetailRead.model_validate(booking)


@router.post("/{booking_id}/status", response_model=BookingRead)
async def change_booking_status(
    booking_id: UUID,
    payload: BookingStatusUpdate,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    """Move booking through its lifecycle."""
    booking = await service.change_status(booking_id, payload, current_user)
    return BookingRead.model_validate(booking)
