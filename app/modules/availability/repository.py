"""Availability repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.availability.models import AvailabilityRule, BlockedInterval


class AvailabilityRepository:
    """DB operations for weekly rules and blocked intervals."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_rule(self, tutor_id: UUID, **fields) -> AvailabilityRule:
        rule = AvailabilityRule(tutor_id=tutor_id, **fields)
        self.session.add(rule)
        await self.session.flush()
        return rule

    async def get_rule_by_id(self, rule_id: UUID) -> AvailabilityRule | None:
        return await self.session.get(AvailabilityRule, rule_id)

    async def list_rules(self, tutor_id: UUID) -> list[AvailabilityRule]:
        stmt = (
            select(AvailabilityRule)
            .where(AvailabilityRule.tutor_id == tutor_id)
            .order_by(AvailabilityRule.day_of_week.asc(), AvailabilityRule.start_time.asc())
        )
        return (await self.session.scalars(stmt)).all()

    async def update_rule(self, rule: AvailabilityRule, **changes) -> AvailabilityRule:
        for key, value in changes.items():
            setattr(rule, key, value)
        await self.session.flush()
        return rule

    async def delete_rule(self, rule: AvailabilityRule) -> None:
        await self.session.execute(delete(AvailabilityRule).where(AvailabilityRule.id == rule.id))

    async def create_block(
        self,
        tutor_id: UUID,
        start_datetime: datetime,
        end_datetime: datetime,
        reason: str | None,
    ) -> BlockedInterval:
        block = BlockedInterval(
            tutor_id=tutor_id,
            start_datetime=start_datetime,
            end_datetime=end_datetime,
            reason=reason,
        )
        self.session.add(block)
        await self.session.flush()
        return block

    async def get_block_by_id(self, block_id: UUID) -> BlockedInterval | None:
        return await self.session.get(BlockedInterval, block_id)

    async def list_blocks_overlapping(
        self,
        tutor_id: UUID,
        window_start: datetime,
        window_end: datetime,
    ) -> list[BlockedInterval]:
        stmt = (
            select(BlockedInterval)
            .where(
                BlockedInterval.tutor_id == tutor_id,
                BlockedInterval.start_datetime < window_end,
                BlockedInterval.end_datetime > window_start,
            )
            .order_by(BlockedInterval.start_datetime.asc())
        )
        return (await self.session.scalars(stmt)).all()

    async def delete_block(self, block: BlockedInterval) -> None:
        await self.session.execute(delete(BlockedInterval).where(BlockedInterval.id == block.id))
