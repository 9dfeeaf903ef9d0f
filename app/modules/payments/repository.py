"""Payments repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import PaymentMethodEnum, PaymentStatusEnum, RoleEnum
from app.modules.payments.models import Payment


class PaymentsRepository:
    """DB operations for payment rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_payment(self, **fields) -> Payment:
        """Insert inside a savepoint so a unique-index clash leaves the session usable."""
        payment = Payment(**fields)
        async with self.session.begin_nested():
            self.session.add(payment)
        return payment

    async def get_payment_by_id(self, payment_id: UUID) -> Payment | None:
        return await self.session.get(Payment, payment_id)

    async def get_by_provider_transaction(
        self,
        payment_method: PaymentMethodEnum,
        provider_transaction_id: str,
    ) -> Payment | None:
        stmt = select(Payment).where(
            Payment.payment_method == payment_method,
            Payment.provider_transaction_id == provider_transaction_id,
        )
        return await self.session.scalar(stmt)

    async def mark_failed_by_transactions(
        self,
        payment_method: PaymentMethodEnum,
        transaction_ids: tuple[str, ...],
    ) -> int:
        if not transaction_ids:
            return 0
        stmt = (
            update(Payment)
            .where(
                Payment.payment_method == payment_method,
                Payment.provider_transaction_id.in_(transaction_ids),
                Payment.status.not_in((PaymentStatusEnum.REFUNDED, PaymentStatusEnum.PARTIALLY_REFUNDED)),
            )
            .values(status=PaymentStatusEnum.FAILED)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def list_payments(
        self,
        user_id: UUID,
        role: RoleEnum,
        limit: int,
        offset: int,
    ) -> tuple[list[Payment], int]:
        column = Payment.tutor_id if role == RoleEnum.TUTOR else Payment.student_id
        base_stmt: Select[tuple[Payment]] = select(Payment).where(column == user_id)
        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Payment.payment_date.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def save(self, payment: Payment) -> Payment:
        await self.session.flush()
        return payment
