from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sharegate.api.router import api_router
from sharegate.core.config import settings
from sharegate.core.database import AsyncSessionLocal, engine
from sharegate.core.exceptions import ConflictError, ShareGateError
from sharegate.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    async with engine.begin() as conn:
        from sharegate.models.base import Base  # noqa: F811
        await conn.run_sync(Base.metadata.create_all)

    from sharegate.services import policy_service, settings_service

    async with AsyncSessionLocal() as db:
        await policy_service.ensure_fallback_policy(db)
        await settings_service.ensure_default_settings(db)
        await db.commit()
    logger.info("%s started (env=%s)", settings.app_name, settings.env)
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ShareGateError)
async def sharegate_error_handler(request: Request, exc: ShareGateError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail)
    content = {"detail": exc.detail, "code": exc.code}
    if isinstance(exc, ConflictError):
        content["retryable"] = exc.retryable
    return JSONResponse(status_code=exc.status_code, content=content)


app.include_router(api_router, prefix="/api")


@app.get("/health", tags=["system"])
async def health() -> dict[str, str]:
    return {"status": "ok"}
