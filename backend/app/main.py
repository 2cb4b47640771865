import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.routes import api_router
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.schemas.error import ErrorResponse
from app.services import asset_reconcile
from app.services.assets import AssetHostError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    asset_reconcile.start(app)
    try:
        yield
    finally:
        await asset_reconcile.stop(app)


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    tags_metadata = [
        {"name": "auth", "description": "Authentication, profile and Google login"},
        {"name": "stores", "description": "Stores and their branding"},
        {"name": "products", "description": "Catalog, variants, reviews and the product trash"},
        {"name": "product-images", "description": "Product image management"},
        {"name": "product-attributes", "description": "Free-form product attributes"},
        {"name": "comments", "description": "Product comments and ratings"},
        {"name": "customers", "description": "Customer records (admin)"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        lifespan=lifespan,
        swagger_ui_parameters={"displayRequestDuration": True},
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    media_root = Path(settings.media_root)
    media_root.mkdir(parents=True, exist_ok=True)
    app.include_router(api_router, prefix="/api/v1")
    app.mount("/media", StaticFiles(directory=media_root), name="media")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=None)
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(payload.model_dump()),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error")
        return JSONResponse(status_code=422, content=payload.model_dump())

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(request: Request, exc: IntegrityError):
        logger.warning("integrity_error", extra={"path": request.url.path, "error": str(exc.orig)})
        payload = ErrorResponse(detail="Unique constraint violated", code="conflict")
        return JSONResponse(status_code=400, content=payload.model_dump())

    @app.exception_handler(AssetHostError)
    async def asset_host_exception_handler(request: Request, exc: AssetHostError):
        logger.warning("asset_host_error", extra={"path": request.url.path, "error": str(exc)})
        payload = ErrorResponse(detail="Asset host request failed", code="asset_host_error")
        return JSONResponse(status_code=502, content=payload.model_dump())

    return app


app = get_application()
