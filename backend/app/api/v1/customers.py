from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import require_admin
from app.db.session import get_session
from app.models.customer import Customer
from app.models.user import UserStatus
from app.schemas.common import BulkIdsRequest, DeletedCount, Page
from app.schemas.customer import CustomerCreate, CustomerDetail, CustomerRead, CustomerStats, CustomerUpdate
from app.services import customers as customers_service

router = APIRouter(prefix="/customers", tags=["customers"], dependencies=[Depends(require_admin)])


@router.post("", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
async def create_customer(payload: CustomerCreate, session: AsyncSession = Depends(get_session)) -> Customer:
    return await customers_service.create_customer(session, payload)


@router.get("", response_model=Page[CustomerRead])
async def list_customers(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = Query(default=None),
    status_filter: UserStatus | None = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await customers_service.list_customers(session, page, limit, search, status_filter)
    return {"data": items, "pagination": meta}


@router.get("/search", response_model=Page[CustomerRead])
async def search_customers(
    q: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await customers_service.search_customers(session, q, page, limit)
    return {"data": items, "pagination": meta}


@router.get("/stats", response_model=CustomerStats)
async def customer_stats(session: AsyncSession = Depends(get_session)) -> CustomerStats:
    return await customers_service.customer_stats(session)


@router.get("/status/{user_status}", response_model=Page[CustomerRead])
async def list_by_status(
    user_status: UserStatus,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await customers_service.list_customers(session, page, limit, status_filter=user_status)
    return {"data": items, "pagination": meta}


@router.get("/user/{user_id}", response_model=CustomerDetail)
async def get_by_user(user_id: UUID, session: AsyncSession = Depends(get_session)) -> Customer:
    return await customers_service.get_by_user(session, user_id)


@router.get("/email/{email}", response_model=CustomerDetail)
async def get_by_email(email: str, session: AsyncSession = Depends(get_session)) -> Customer:
    return await customers_service.get_by_email(session, email)


@router.post("/bulk-delete", response_model=DeletedCount)
async def bulk_delete_customers(payload: BulkIdsRequest, session: AsyncSession = Depends(get_session)) -> DeletedCount:
    return DeletedCount(deleted_count=await customers_service.bulk_delete_customers(session, payload.ids))


@router.get("/{customer_id}", response_model=CustomerDetail)
async def get_customer(customer_id: UUID, session: AsyncSession = Depends(get_session)) -> Customer:
    return await customers_service.get_customer(session, customer_id)


@router.patch("/{customer_id}", response_model=CustomerRead)
async def update_customer(
    customer_id: UUID, payload: CustomerUpdate, session: AsyncSession = Depends(get_session)
) -> Customer:
    customer = await customers_service.get_customer(session, customer_id)
    return await customers_service.update_customer(session, customer, payload)


@router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(customer_id: UUID, session: AsyncSession = Depends(get_session)) -> None:
    customer = await customers_service.get_customer(session, customer_id)
    await customers_service.delete_customer(session, customer)
