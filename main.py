from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from framework.config import settings
from framework.database.manager import DatabaseManager
from framework.middleware.logging_md import LoggingMiddleware
from framework.logging.logger import LogConfig, get_logger
from framework.exceptions.handler import BusinessException, global_exception_handler
import apps.models  # noqa: F401  register tables
from apps.audit.worker import create_worker
from apps.cart.api.router import router as cart_router
from apps.catalog.api.router import router as catalog_router
from apps.coupons.api.router import router as coupon_router
from apps.identity.api.router import router as identity_router, users_router
from apps.reviews.api.router import router as review_router
from apps.wishlist.api.router import router as wishlist_router

# Initialize logging configuration
LogConfig.setup_logging()
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open connections, optionally create tables and start the in-process audit writer."""
    manager = DatabaseManager.get_instance()
    await manager.sql.connect()
    if settings.DB_AUTO_CREATE:
        await manager.sql.create_schema()
        logger.info("Database schema ensured")

    audit_worker = None
    if settings.AUDIT_WORKER_ENABLED:
        try:
            audit_worker = await create_worker(settings.AUDIT_WORKER_NAME)
            audit_worker.start()
        except Exception as e:
            logger.warning(f"Audit worker not started, user actions stay queued: {str(e)}")
            audit_worker = None

    logger.info(f"{settings.APP_NAME} started ({settings.APP_ENV})")
    yield

    if audit_worker is not None:
        await audit_worker.stop()
    await manager.redis.disconnect()
    await manager.sql.disconnect()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Register global exception handlers
app.add_exception_handler(BusinessException, global_exception_handler)
app.add_exception_handler(RequestValidationError, global_exception_handler)
app.add_exception_handler(SQLAlchemyError, global_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(LoggingMiddleware)

# Mount routers (prefix from config for easy override)
prefix = settings.API_V1_PREFIX
app.include_router(identity_router, prefix=f"{prefix}/auth", tags=["Identity"])
app.include_router(users_router, prefix=f"{prefix}/users", tags=["Users"])
app.include_router(catalog_router, prefix=prefix)
app.include_router(cart_router, prefix=f"{prefix}/cart", tags=["Cart"])
app.include_router(wishlist_router, prefix=f"{prefix}/wishlist", tags=["Wishlist"])
app.include_router(coupon_router, prefix=f"{prefix}/coupons", tags=["Coupons"])
app.include_router(review_router, prefix=f"{prefix}/reviews", tags=["Reviews"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
