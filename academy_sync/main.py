from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from academy_sync.config import settings
from academy_sync.core.exceptions import (
    NotFoundException,
    DependencyUnavailableException,
    ConfigurationException,
)
from academy_sync.core.logging_config import configure_logging
from academy_sync.dependencies import get_collections
from academy_sync.routes import enrollment_routes, roster_routes

configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Resolve the collection map once; a bad DISABLED_COLLECTIONS fails startup
    get_collections()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,  # Disable in production
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# Exception handlers
@app.exception_handler(NotFoundException)
async def not_found_exception_handler(request: Request, exc: NotFoundException):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(DependencyUnavailableException)
async def dependency_unavailable_exception_handler(
    request: Request, exc: DependencyUnavailableException
):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)}
    )


@app.exception_handler(ConfigurationException)
async def configuration_exception_handler(request: Request, exc: ConfigurationException):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)}
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Include routers; every maintenance route is scoped to one tenant
app.include_router(
    roster_routes.router, prefix="/api/tenants/{tenant_id}", tags=["Rosters"]
)
app.include_router(
    enrollment_routes.router, prefix="/api/tenants/{tenant_id}", tags=["Enrollments"]
)
