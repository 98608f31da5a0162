"""
Роутер для запчастей
"""

from fastapi import APIRouter, Depends

from loomcare.core.dependencies import get_store
from loomcare.models import ErrorResponse, PartCreate, PartUpdate, StockAdjustment
from loomcare.services.repository import MaintenanceRepository
from loomcare.services.storage import DocumentStore
from loomcare.utils.metrics import increment_low_stock_alerts

router = APIRouter()


@router.get("/parts", summary="Список запчастей")
async def list_parts(store: DocumentStore = Depends(get_store)):
    return [part.to_wire() for part in MaintenanceRepository(store.load()).list_parts()]


@router.get(
    "/parts/{part_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Запчасть по идентификатору",
)
async def get_part(part_id: str, store: DocumentStore = Depends(get_store)):
    return MaintenanceRepository(store.load()).get_part(part_id).to_wire()


@router.post("/parts", responses={400: {"model": ErrorResponse}}, summary="Создание запчасти")
async def create_part(data: PartCreate, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        part = MaintenanceRepository(document).create_part(data)
    return {"success": True, "part": part.to_wire()}


@router.put(
    "/parts/{part_id}",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Изменение запчасти",
)
async def update_part(part_id: str, data: PartUpdate, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        part = MaintenanceRepository(document).update_part(part_id, data)
    return {"success": True, "part": part.to_wire()}


@router.delete(
    "/parts/{part_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Удаление запчасти",
)
async def delete_part(part_id: str, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        MaintenanceRepository(document).delete_part(part_id)
    return {"success": True}


@router.post(
    "/parts/{part_id}/adjust-stock",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Корректировка запаса",
    description="Изменяет запас на delta единиц; запас не может стать отрицательным.",
)
async def adjust_stock(part_id: str, data: StockAdjustment,
                       store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        repository = MaintenanceRepository(document)
        notifications_before = len(document.notifications)
        part = repository.adjust_stock(part_id, data.delta)
        emitted = len(document.notifications) - notifications_before
    if emitted:
        increment_low_stock_alerts(emitted)
    return {"success": True, "part": part.to_wire()}
