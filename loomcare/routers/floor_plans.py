"""
Роутер для планов цехов и размещения машин
"""

import os
import uuid

import aiofiles
from fastapi import APIRouter, Depends, File, Form, UploadFile

from loomcare.core.config import Settings
from loomcare.core.dependencies import get_app_settings, get_store
from loomcare.core.exceptions import PayloadTooLargeError, ValidationError
from loomcare.models import ErrorResponse, FloorPlanCreate, FloorPlanUpdate, MachinePosition
from loomcare.services.repository import MaintenanceRepository
from loomcare.services.storage import DocumentStore
from loomcare.utils.helpers import utcnow
from loomcare.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)

UPLOAD_CHUNK_SIZE = 64 * 1024


@router.get("/floor-plans", summary="Список планов цехов")
async def list_floor_plans(store: DocumentStore = Depends(get_store)):
    repository = MaintenanceRepository(store.load())
    return [plan.to_wire() for plan in repository.list_floor_plans()]


@router.post(
    "/floor-plans",
    responses={400: {"model": ErrorResponse}},
    summary="Создание плана цеха",
)
async def create_floor_plan(data: FloorPlanCreate, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        plan = MaintenanceRepository(document).create_floor_plan(data)
    return {"success": True, "floorPlan": plan.to_wire()}


@router.put(
    "/floor-plans/{plan_id}",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Изменение плана цеха",
)
async def update_floor_plan(plan_id: str, data: FloorPlanUpdate,
                            store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        plan = MaintenanceRepository(document).update_floor_plan(plan_id, data)
    return {"success": True, "floorPlan": plan.to_wire()}


@router.delete(
    "/floor-plans/{plan_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Удаление плана цеха",
)
async def delete_floor_plan(plan_id: str, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        MaintenanceRepository(document).delete_floor_plan(plan_id)
    return {"success": True}


@router.put(
    "/floor-plans/{plan_id}/positions/{machine_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Размещение машины на плане",
)
async def set_position(plan_id: str, machine_id: str, position: MachinePosition,
                       store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        plan = MaintenanceRepository(document).set_machine_position(plan_id, machine_id, position)
    return {"success": True, "floorPlan": plan.to_wire()}


@router.delete(
    "/floor-plans/{plan_id}/positions/{machine_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Удаление машины с плана",
)
async def remove_position(plan_id: str, machine_id: str,
                          store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        plan = MaintenanceRepository(document).remove_machine_position(plan_id, machine_id)
    return {"success": True, "floorPlan": plan.to_wire()}


@router.delete(
    "/floor-plans/{plan_id}/positions",
    responses={404: {"model": ErrorResponse}},
    summary="Очистка всех размещений",
)
async def clear_positions(plan_id: str, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        plan = MaintenanceRepository(document).clear_machine_positions(plan_id)
    return {"success": True, "floorPlan": plan.to_wire()}


@router.post(
    "/floor-plan/upload",
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
    summary="Загрузка изображения плана цеха",
    description="""
    Принимает изображение (jpeg, jpg, png, gif) в поле floorPlan
    и создаёт план цеха со ссылкой /uploads/<файл>.
    """,
)
async def upload_floor_plan(
    file: UploadFile = File(..., alias="floorPlan"),
    name: str = Form("New floor plan"),
    settings: Settings = Depends(get_app_settings),
    store: DocumentStore = Depends(get_store),
):
    original_name = file.filename or ""
    extension = os.path.splitext(original_name)[1].lower().lstrip(".")
    if extension not in settings.ALLOWED_IMAGE_EXTENSIONS:
        raise ValidationError(
            f"Only image files are allowed ({', '.join(settings.ALLOWED_IMAGE_EXTENSIONS)})",
            "INVALID_FILE_TYPE",
        )

    # Читаем частями, чтобы не держать в памяти больше лимита
    chunks = []
    size = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > settings.MAX_UPLOAD_SIZE:
            raise PayloadTooLargeError(
                f"File exceeds maximum size of {settings.MAX_UPLOAD_SIZE} bytes"
            )
        chunks.append(chunk)
    content = b"".join(chunks)

    os.makedirs(settings.UPLOADS_DIR, exist_ok=True)
    filename = f"floorplan-{utcnow().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}.{extension}"
    storage_path = os.path.join(settings.UPLOADS_DIR, filename)
    async with aiofiles.open(storage_path, "wb") as f:
        await f.write(content)

    try:
        async with store.transaction() as document:
            plan = MaintenanceRepository(document).create_floor_plan(
                FloorPlanCreate(name=name, image=f"/uploads/{filename}"),
                filename=filename,
                original_name=original_name,
            )
    except Exception:
        os.remove(storage_path)
        raise

    logger.info(f"Floor plan image {original_name} uploaded as {filename} ({len(content)} bytes)")
    return {"success": True, "floorPlan": plan.to_wire()}
