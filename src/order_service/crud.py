from typing import List
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_service.exceptions import PersistenceError
from order_service.models import (
    PLACEHOLDER_PREFIX,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    utcnow,
)


class OrderStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert(self, order: Order, items: List[OrderItem]) -> UUID:
        """
        Writes the order and its items in one transaction, returns the order id.
        """
        async with self.session_factory() as session:
            try:
                order.items = list(items)
                session.add(order)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(f"Could not store order: {e}") from e
            return order.id

    async def get_by_id(self, order_id: UUID) -> Order | None:
        async with self.session_factory() as session:
            return await session.get(Order, order_id)

    async def get_by_payment_reference(self, payment_reference: str) -> Order | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Order).where(Order.payment_reference == payment_reference)
            )
            return result.scalar_one_or_none()

    async def list_all(self) -> List[Order]:
        async with self.session_factory() as session:
            result = await session.execute(select(Order).order_by(Order.created_at.desc()))
            return list(result.scalars().all())

    async def mark_paid(self, order_id: UUID) -> bool:
        """
        Sets PAID / PROCESSED. Returns False when the order was already paid
        (nothing is written then). The check and the write are one UPDATE, so
        of two concurrent callers exactly one gets True.
        """
        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.payment_status != PaymentStatus.PAID.value)
                    .values(
                        payment_status=PaymentStatus.PAID.value,
                        status=OrderStatus.PROCESSED.value,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(f"Could not mark order {order_id} paid: {e}") from e

            if result.rowcount:
                return True
            if await session.get(Order, order_id) is None:
                raise PersistenceError(f"Order {order_id} not found")
            return False

    async def set_shipping_receipt(self, order_id: UUID, receipt: str, shipped: bool = True) -> Order:
        """
        Stores the receipt on a paid order unless a real receipt is already
        there; in that case the order is returned unchanged.
        """
        values = {"shipping_receipt": receipt, "updated_at": utcnow()}
        if shipped:
            values["status"] = OrderStatus.SHIPPED.value

        async with self.session_factory() as session:
            try:
                await session.execute(
                    update(Order)
                    .where(
                        Order.id == order_id,
                        Order.payment_status == PaymentStatus.PAID.value,
                        or_(
                            Order.shipping_receipt.is_(None),
                            Order.shipping_receipt.startswith(PLACEHOLDER_PREFIX, autoescape=True),
                        ),
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(f"Could not store receipt for order {order_id}: {e}") from e

            order = await session.get(Order, order_id, populate_existing=True)
            if order is None:
                raise PersistenceError(f"Order {order_id} not found")
            if order.payment_status != PaymentStatus.PAID.value:
                raise PersistenceError(f"Order {order_id} is not paid yet")
            return order

    async def delete(self, order_id: UUID) -> bool:
        async with self.session_factory() as session:
            try:
                order = await session.get(Order, order_id)
                if order is None:
                    return False
                await session.delete(order)
                await session.commit()
                return True
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(f"Could not delete order {order_id}: {e}") from e
