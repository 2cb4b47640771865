import logging
import uuid

from fastapi import HTTPException, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.customer import Customer
from app.models.order import Order
from app.models.user import User, UserStatus
from app.schemas.common import PaginationMeta
from app.schemas.customer import CustomerCreate, CustomerStats, CustomerUpdate
from app.services.pagination import paginate

logger = logging.getLogger(__name__)


async def get_customer(session: AsyncSession, customer_id: uuid.UUID) -> Customer:
    customer = await session.get(Customer, customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return customer


async def create_customer(session: AsyncSession, payload: CustomerCreate) -> Customer:
    if not await session.get(User, payload.user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if await session.scalar(select(Customer.id).where(Customer.user_id == payload.user_id)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Customer profile already exists for this user")
    customer = Customer(**payload.model_dump())
    session.add(customer)
    await session.commit()
    await session.refresh(customer)
    logger.info("customer_created", extra={"customer_id": str(customer.id), "user_id": str(customer.user_id)})
    return customer


def _base_query(search: str | None, status_filter: UserStatus | None, include_phone: bool = False):
    query = select(Customer).join(User, User.id == Customer.user_id).order_by(Customer.created_at.desc(), Customer.id)
    if search:
        like = f"%{search.strip()}%"
        columns = [Customer.email, Customer.username, User.name]
        if include_phone:
            columns.append(Customer.phone)
        query = query.where(or_(*(column.ilike(like) for column in columns)))
    if status_filter:
        query = query.where(User.status == status_filter)
    return query


async def list_customers(
    session: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    status_filter: UserStatus | None = None,
) -> tuple[list[Customer], PaginationMeta]:
    return await paginate(session, _base_query(search, status_filter), page, limit, Customer.id)


async def search_customers(
    session: AsyncSession, term: str, page: int = 1, limit: int = 10
) -> tuple[list[Customer], PaginationMeta]:
    term = (term or "").strip()
    if not term:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query cannot be empty")
    return await paginate(session, _base_query(term, None, include_phone=True), page, limit, Customer.id)


async def get_by_user(session: AsyncSession, user_id: uuid.UUID) -> Customer:
    customer = await session.scalar(select(Customer).where(Customer.user_id == user_id))
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return customer


async def get_by_email(session: AsyncSession, email: str) -> Customer:
    customer = await session.scalar(select(Customer).where(func.lower(Customer.email) == email.strip().lower()))
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return customer


async def update_customer(session: AsyncSession, customer: Customer, payload: CustomerUpdate) -> Customer:
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(customer, field, value)
    await session.commit()
    await session.refresh(customer)
    return customer


async def delete_customer(session: AsyncSession, customer: Customer) -> None:
    customer_id = customer.id
    await session.delete(customer)
    await session.commit()
    logger.info("customer_deleted", extra={"customer_id": str(customer_id)})


async def bulk_delete_customers(session: AsyncSession, ids: list[uuid.UUID]) -> int:
    if not ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No customer ids provided")
    await session.execute(delete(Order).where(Order.customer_id.in_(ids)).execution_options(synchronize_session=False))
    result = await session.execute(
        delete(Customer).where(Customer.id.in_(ids)).execution_options(synchronize_session=False)
    )
    await session.commit()
    if not result.rowcount:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No customers found")
    return result.rowcount


async def customer_stats(session: AsyncSession) -> CustomerStats:
    total = await session.scalar(select(func.count(Customer.id))) or 0
    with_orders = await session.scalar(select(func.count(func.distinct(Order.customer_id)))) or 0

    async def _count_status(user_status: UserStatus) -> int:
        return (
            await session.scalar(
                select(func.count(Customer.id))
                .join(User, User.id == Customer.user_id)
                .where(User.status == user_status)
            )
            or 0
        )

    return CustomerStats(
        total_customers=total,
        customers_with_orders=with_orders,
        active_customers=await _count_status(UserStatus.ACTIVE),
        banned_customers=await _count_status(UserStatus.BANNED),
    )
