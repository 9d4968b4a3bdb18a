"""
Family Hobbies Batch Jobs - FastAPI Application

HTTP surface of the batch service: the HelloAsso payment webhook and the
admin endpoints for triggering jobs and reading the run audit log.
Scheduled runs happen in Celery beat, not here.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hobbyjobs.api.routes import router as api_router
from hobbyjobs.core.config import settings
from hobbyjobs.core.logging import get_logger, setup_logging
from hobbyjobs.core.middleware import setup_exception_handlers, setup_middleware
from hobbyjobs.core.redis_client import close_redis
from hobbyjobs.db.database import Base, engine

setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")

    yield

    await close_redis()
    await engine.dispose()
    logger.info("Application stopped, connections released")


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "סנכרון תשלומים מול HelloAsso ואנונימיזציה של נתונים אישיים (RGPD) "
        "ב-jobs מתוזמנים."
    ),
    openapi_tags=[
        {"name": "Webhooks", "description": "אירועי תשלום נכנסים מ-HelloAsso."},
        {"name": "admin", "description": "הפעלה ידנית של jobs ושליפת לוג הביקורת של הרצות."},
        {"name": "Health", "description": "בדיקת חיות של התהליך."},
    ],
    lifespan=lifespan,
)

setup_middleware(app)
setup_exception_handlers(app)
app.include_router(api_router, prefix="/api")


@app.get("/health", summary="Liveness probe", tags=["Health"])
async def health_check() -> dict[str, str]:
    """התהליך חי ומגיב, תלויות חיצוניות לא נבדקות"""
    return {"status": "healthy"}
