"""
Роутер для проверки доступности и мониторинга
"""

import os
import time

import psutil
from fastapi import APIRouter, Depends

from loomcare.core.config import Settings
from loomcare.core.dependencies import get_app_settings, get_store
from loomcare.models import StatusResponse
from loomcare.services.storage import DocumentStore
from loomcare.utils.helpers import utcnow
from loomcare.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)

# Время запуска приложения
START_TIME = time.time()


@router.get(
    "/status",
    summary="Liveness check",
    description="Лёгкая проверка доступности сервера, используется клиентом синхронизации.",
)
async def server_status(settings: Settings = Depends(get_app_settings)):
    return StatusResponse(
        status="online",
        version=settings.APP_VERSION,
        timestamp=utcnow(),
    ).to_wire()


@router.get(
    "/health/detailed",
    summary="Detailed health check",
    description="""
    Подробная проверка состояния сервера.

    ### Проверяет:
    * Доступность файла данных
    * Использование памяти процессом
    * Время работы
    """,
)
async def detailed_health(
    settings: Settings = Depends(get_app_settings),
    store: DocumentStore = Depends(get_store),
):
    document = store.read()
    data_available = document is not None

    memory_info = psutil.Process().memory_info()
    disk = psutil.disk_usage(store.data_dir)

    overall_status = "healthy" if data_available else "degraded"
    logger.debug(f"Detailed health check: status={overall_status}")

    return {
        "status": overall_status,
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "timestamp": utcnow().isoformat(),
        "uptimeSeconds": round(time.time() - START_TIME, 2),
        "memoryUsageMb": round(memory_info.rss / (1024 * 1024), 2),
        "cpuPercent": psutil.cpu_percent(interval=None),
        "storage": {
            "dataFile": store.data_file,
            "available": data_available,
            "lastModified": document.get("lastModified") if data_available else None,
            "sizeBytes": os.path.getsize(store.data_file) if data_available else 0,
            "backups": len(store.list_backups()),
            "diskFreeMb": round(disk.free / (1024 * 1024), 2),
        },
    }
