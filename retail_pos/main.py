import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from retail_pos.config import settings
from retail_pos.core.exceptions import (
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
    InsufficientStockException,
    ConflictException,
    InternalException,
)
from retail_pos.core.logging import configure_logging
from retail_pos.database import create_db_engine, build_session_factory
from retail_pos.routes import product_routes, variant_routes, inventory_routes, invoice_routes, tenant_routes

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the storage handle once at process start"""
    configure_logging(settings.LOG_LEVEL)
    engine = create_db_engine()
    app.state.session_factory = build_session_factory(engine)
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
    yield
    engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,  # Disable in production
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# CORS middleware
cors_origins = settings.cors_origins_list
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _error(status_code: int, exc: Exception, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "kind": exc.kind, **extra},
    )


# Exception handlers
@app.exception_handler(UnauthorizedException)
async def unauthorized_exception_handler(request: Request, exc: UnauthorizedException):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": str(exc), "kind": exc.kind},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(ForbiddenException)
async def forbidden_exception_handler(request: Request, exc: ForbiddenException):
    return _error(status.HTTP_403_FORBIDDEN, exc)


@app.exception_handler(NotFoundException)
async def not_found_exception_handler(request: Request, exc: NotFoundException):
    return _error(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(ValidationException)
async def validation_exception_handler(request: Request, exc: ValidationException):
    return _error(status.HTTP_400_BAD_REQUEST, exc, errors=exc.errors)


@app.exception_handler(InsufficientStockException)
async def insufficient_stock_exception_handler(request: Request, exc: InsufficientStockException):
    return _error(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        exc,
        variant_id=exc.variant_id,
        available=exc.available,
        requested=exc.requested,
    )


@app.exception_handler(ConflictException)
async def conflict_exception_handler(request: Request, exc: ConflictException):
    return _error(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(InternalException)
async def internal_exception_handler(request: Request, exc: InternalException):
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Root endpoint
@app.get("/")
async def root():
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs" if settings.DEBUG else "Documentation disabled in production",
    }


# Include routers
app.include_router(product_routes.router, prefix="/api/products", tags=["Products"])
app.include_router(variant_routes.router, prefix="/api/variants", tags=["Variants"])
app.include_router(inventory_routes.router, prefix="/api/inventory", tags=["Inventory"])
app.include_router(invoice_routes.router, prefix="/api/invoices", tags=["Invoices"])
app.include_router(tenant_routes.router, prefix="/api/tenants", tags=["Tenants"])
