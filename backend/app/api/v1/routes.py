from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1 import auth
from app.api.v1 import comments
from app.api.v1 import customers
from app.api.v1 import product_attributes
from app.api.v1 import product_images
from app.api.v1 import products
from app.api.v1 import stores
from app.api.v1 import users
from app.db.session import get_session

api_router = APIRouter()

api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(stores.router)
api_router.include_router(products.router)
api_router.include_router(product_images.router)
api_router.include_router(product_attributes.router)
api_router.include_router(comments.router)
api_router.include_router(customers.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/health/ready", tags=["health"])
async def readiness(session: AsyncSession = Depends(get_session)) -> dict[str, str]:
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable") from exc
    return {"status": "ready"}
