"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.config import settings
from filevault.database import engine, get_db
from filevault.errors import register_error_handlers
from filevault.models import Base

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check config, create tables on startup, dispose the engine on shutdown."""
    logging.getLogger("filevault").setLevel(settings.LOG_LEVEL.upper())
    if not settings.JWT_SECRET:
        logger.error("JWT_SECRET is not set; refusing to start")
        raise RuntimeError("JWT_SECRET must be set")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("File vault ready, storing ciphertext under %s", settings.FILE_STORAGE_PATH)

    yield

    await engine.dispose()


app = FastAPI(
    title="File Vault API",
    version="1.0.0",
    description="Encrypted file storage with expiring share links.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

register_error_handlers(app)


@app.get("/api/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Verify API and database connectivity."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check failed: %s", e)
        return {"status": "error", "database": "unavailable"}
    return {"status": "ok", "database": "connected"}


# Register routers
from filevault.routes.files import router as files_router
app.include_router(files_router)
