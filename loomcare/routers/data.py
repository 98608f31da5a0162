"""
Роутер для документа целиком, входа, уведомлений и отчётов
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from loomcare.core.exceptions import ServiceUnavailableError
from loomcare.core.dependencies import get_store
from loomcare.models import ErrorResponse, LoginRequest, LoginResponse, NotificationCreate
from loomcare.services import reports
from loomcare.services.repository import MaintenanceRepository, public_user
from loomcare.services.storage import DocumentStore
from loomcare.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "/data",
    responses={503: {"model": ErrorResponse}},
    summary="Весь документ",
    description="""
    Возвращает документ целиком, включая хеши паролей пользователей
    (нужны клиенту для входа без сети).
    """,
)
async def get_data(store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
    data = store.read()
    if data is None:
        raise ServiceUnavailableError("Data not available, please retry")
    return data


@router.post(
    "/data",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Замена документа",
)
async def replace_data(
    data: Dict[str, Any] = Body(...),
    store: DocumentStore = Depends(get_store),
):
    document = await store.replace(data)
    logger.info(f"Document replaced: {len(document.machines)} machines, "
                f"{len(document.parts)} parts")
    return {
        "success": True,
        "message": "Data saved",
        "lastModified": document.last_modified.isoformat(),
    }


@router.post(
    "/login",
    responses={401: {"model": ErrorResponse}},
    summary="Вход пользователя",
)
async def login(credentials: LoginRequest, store: DocumentStore = Depends(get_store)):
    user = MaintenanceRepository(store.load()).authenticate(
        credentials.username, credentials.password
    )
    logger.info(f"User {user.username} logged in")
    return LoginResponse(user=public_user(user)).to_wire()


@router.get("/notifications", summary="Список уведомлений")
async def list_notifications(unread: bool = False, store: DocumentStore = Depends(get_store)):
    repository = MaintenanceRepository(store.load())
    return [n.to_wire() for n in repository.list_notifications(unread_only=unread)]


@router.post("/notifications", summary="Новое уведомление")
async def create_notification(data: NotificationCreate, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        notification = MaintenanceRepository(document).add_notification(
            data.message, urgent=data.urgent
        )
    return {"success": True, "notification": notification.to_wire()}


@router.get("/reports/dashboard", summary="Статистика для дашборда")
async def dashboard(store: DocumentStore = Depends(get_store)):
    return reports.dashboard_stats(store.load()).to_wire()


@router.get("/reports/low-stock", summary="Запчасти ниже минимального запаса")
async def low_stock(store: DocumentStore = Depends(get_store)):
    return [part.to_wire() for part in reports.low_stock_parts(store.load())]
