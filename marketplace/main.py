# marketplace/main.py
# Точка входа FastAPI. Создание таблиц выполняется в lifespan с повторными попытками.

import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace.db.session import engine
from marketplace.db.base import Base
from marketplace.core import security
from marketplace.core.config import settings
from marketplace.core.errors import MarketplaceError
from marketplace.api import admin, auth, driver, orders, payments, vendor

# Импорт моделей, чтобы SQLAlchemy видел их определения
import marketplace.models.user
import marketplace.models.product
import marketplace.models.order
import marketplace.models.payout
import marketplace.models.payment
import marketplace.models.driver

# Настройка логирования
# security события идут в логгер marketplace.security, имя логгера видно в формате
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def try_create_tables(retries: int = 5, delay: int = 2) -> bool:
    """
    Пытаемся создать таблицы с повторными попытками.
    Если БД недоступна, логируем ошибку и пробуем снова.

    Args:
        retries: Количество попыток подключения
        delay: Задержка между попытками в секундах

    Returns:
        True если таблицы созданы/существуют, False если все попытки исчерпаны
    """
    for attempt in range(1, retries + 1):
        try:
            logger.info(f"Попытка создания таблиц ({attempt}/{retries})...")
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables created (or already exist).")
            return True
        except Exception as e:
            logger.warning(f"Attempt {attempt}/{retries} failed to create tables: {e}")
            if attempt < retries:
                logger.info(f"Waiting {delay}s before retry...")
                time.sleep(delay)
    logger.error(f"Could not create tables after {retries} retries.")
    return False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Управление жизненным циклом приложения.
    Запускается при старте и завершении приложения.
    """
    logger.info("Marketplace API starting up...")
    if not try_create_tables(retries=5, delay=2):
        # В продакшене без таблиц стартовать нельзя, в разработке продолжаем
        if settings.is_production:
            raise RuntimeError("Cannot start application: database tables creation failed")
        logger.error("Failed to create database tables. Application may not work correctly.")

    yield

    logger.info("Marketplace API shutting down...")
    engine.dispose()


app = FastAPI(
    title="Marketplace Fulfillment API",
    description="Заказы, оплата, доставка и выплаты продавцам",
    version="1.0.0",
    lifespan=lifespan
)

# CORS: в разработке всё открыто, в продакшене только свой домен
if settings.ENVIRONMENT == "development":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.BASE_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["*"],
    )

# Подключаем роутеры
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(payments.router, prefix="/api/payment", tags=["payment"])
app.include_router(driver.router, prefix="/api/driver", tags=["driver"])
app.include_router(vendor.router, prefix="/api/vendor", tags=["vendor"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])


# Базовые health check endpoints
@app.get("/", tags=["health"])
async def root():
    """Базовый health check."""
    return {
        "status": "ok",
        "service": "Marketplace Fulfillment API",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health", tags=["health"])
def health(db: Session = Depends(security.get_db)):
    """Health check с проверкой соединения с БД."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check: database unavailable: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unavailable"})
    return {"status": "healthy", "database": "connected", "version": "1.0.0"}


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    """Доменные ошибки отдаются клиенту как есть."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """401/403 из security, 429 лимитера, 404 неизвестного пути: тот же формат {"error": ...}."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Невалидное тело запроса: 400 в общем формате ошибок."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg', 'invalid')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"error": message})


# Глобальный обработчик исключений
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Глобальный обработчик ошибок."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.ENVIRONMENT == "development" else None,
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "marketplace.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower()
    )
