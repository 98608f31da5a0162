"""
FastAPI приложение для учёта обслуживания ткацких станков
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from loomcare.core.config import Settings, get_settings
from loomcare.core.exceptions import LoomcareError
from loomcare.routers import data, floor_plans, health, history, machines, parts, templates, users
from loomcare.services.storage import DocumentStore
from loomcare.utils.logger import configure_logging, setup_logger

# Настройка логгера
logger = setup_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Контекстный менеджер для управления жизненным циклом приложения
    """
    settings: Settings = app.state.settings

    # Startup
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    try:
        app.state.store.initialize()
        logger.info(f"Document store initialized at {settings.DATA_FILE}")
    except OSError as e:
        logger.error(f"Failed to initialize document store: {str(e)}")
        raise

    logger.info("API startup completed")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")


def _error_response(status_code: int, message: str, error_code: Optional[str]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "error_code": error_code},
    )


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(LoomcareError)
    async def loomcare_error_handler(request: Request, exc: LoomcareError):
        """Обработчик ошибок предметной области и хранилища"""
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Обработчик ошибок валидации запроса"""
        logger.warning(f"Validation error: {exc.errors()}")
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        return _error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            f"Invalid request: {details}",
            "INVALID_REQUEST",
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail), "HTTP_ERROR")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Обработчик общих исключений"""
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            "INTERNAL_ERROR",
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Сборка приложения: хранилище, middleware, обработчики ошибок, роутеры
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        description="""
        REST API для учёта обслуживания ткацких станков.

        ## Возможности:
        * Машины, запчасти, шаблоны обслуживания и история
        * Расчёт остатка часов до обслуживания по компонентам
        * Атомарное завершение обслуживания со списанием запчастей
        * Планы цехов с размещением машин
        * Синхронизация клиента через документ целиком
        """,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.store = DocumentStore.from_settings(settings)

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    register_exception_handlers(app)

    # Подключение роутеров
    for router, tag in (
        (health.router, "health"),
        (data.router, "data"),
        (machines.router, "machines"),
        (parts.router, "parts"),
        (templates.router, "maintenance-templates"),
        (history.router, "maintenance-history"),
        (users.router, "users"),
        (floor_plans.router, "floor-plans"),
    ):
        app.include_router(router, prefix="/api", tags=[tag])

    # Загруженные изображения планов цехов; каталог создаётся при старте
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.UPLOADS_DIR, check_dir=False),
        name="uploads",
    )

    @app.get("/", tags=["root"])
    async def root():
        """Корневой эндпоинт API"""
        return {
            "message": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "status": "/api/status",
            "environment": settings.ENVIRONMENT,
        }

    # Метрики Prometheus
    if settings.ENABLE_METRICS:
        Instrumentator().instrument(app).expose(app)

    return app


app = create_app()


if __name__ == "__main__":
    current = get_settings()
    uvicorn.run(
        "loomcare.main:app",
        host=current.HOST,
        port=current.PORT,
        reload=current.DEBUG,
        log_level=current.LOG_LEVEL.lower(),
        access_log=True,
    )
