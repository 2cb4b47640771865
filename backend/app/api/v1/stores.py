from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, require_admin
from app.db.session import get_session
from app.models.store import Store, StoreImageType
from app.models.user import User
from app.schemas.common import BulkIdsRequest, DeletedCount, Page
from app.schemas.store import StoreCreate, StoreImageRead, StoreRead, StoreStats, StoreUpdate
from app.services import stores as stores_service

router = APIRouter(prefix="/stores", tags=["stores"])


@router.post("", response_model=StoreRead, status_code=status.HTTP_201_CREATED)
async def create_store(
    payload: StoreCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Store:
    return await stores_service.create_store(session, current_user, payload)


@router.get("", response_model=Page[StoreRead])
async def list_stores(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await stores_service.list_stores(session, page, limit, search)
    return {"data": items, "pagination": meta}


@router.get("/search", response_model=Page[StoreRead])
async def search_stores(
    q: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await stores_service.search_stores(session, q, page, limit)
    return {"data": items, "pagination": meta}


@router.get("/stats", response_model=StoreStats)
async def store_stats(session: AsyncSession = Depends(get_session)) -> StoreStats:
    return await stores_service.store_stats(session)


@router.get("/user/{user_id}", response_model=StoreRead)
async def get_store_by_user(user_id: UUID, session: AsyncSession = Depends(get_session)) -> Store:
    return await stores_service.get_store_by_user(session, user_id)


@router.post("/bulk-delete", response_model=DeletedCount)
async def bulk_delete_stores(
    payload: BulkIdsRequest,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> DeletedCount:
    deleted = await stores_service.bulk_delete_stores(session, payload.ids)
    return DeletedCount(deleted_count=deleted)


@router.get("/{store_id}", response_model=StoreRead)
async def get_store(store_id: UUID, session: AsyncSession = Depends(get_session)) -> Store:
    return await stores_service.get_store(session, store_id)


@router.patch("/{store_id}", response_model=StoreRead)
async def update_store(
    store_id: UUID,
    payload: StoreUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Store:
    store = await stores_service.get_store(session, store_id)
    stores_service.ensure_can_manage(store, current_user)
    return await stores_service.update_store(session, store, payload)


@router.post("/{store_id}/images", response_model=list[StoreImageRead])
async def upload_store_images(
    store_id: UUID,
    logo: UploadFile | None = File(default=None),
    banner: UploadFile | None = File(default=None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list:
    store = await stores_service.get_store(session, store_id)
    if logo is None and banner is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Provide a logo or banner file")
    stores_service.ensure_can_manage(store, current_user)
    saved = []
    for image_type, upload in ((StoreImageType.LOGO, logo), (StoreImageType.BANNER, banner)):
        if upload is not None:
            saved.append(await stores_service.set_store_image(session, store, image_type, upload))
    return saved


@router.delete("/{store_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_store(
    store_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> None:
    store = await stores_service.get_store(session, store_id)
    stores_service.ensure_can_manage(store, current_user)
    await stores_service.delete_store(session, store)
