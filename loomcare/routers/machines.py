"""
Роутер для машин и завершения обслуживания
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from loomcare.core.dependencies import get_store
from loomcare.core.exceptions import LoomcareError
from loomcare.models import (
    ErrorResponse,
    MachineCreate,
    MachineStatus,
    MachineUpdate,
    MaintenanceCompletion,
)
from loomcare.services import reports
from loomcare.services.repository import MaintenanceRepository
from loomcare.services.storage import DocumentStore
from loomcare.utils.logger import get_logger
from loomcare.utils.metrics import increment_low_stock_alerts, increment_maintenance_counter

router = APIRouter()
logger = get_logger(__name__)


@router.get("/machines", summary="Список машин с поиском")
async def list_machines(
    q: Optional[str] = Query(None, description="Подстрока имени, серийного номера или места"),
    status: Optional[MachineStatus] = None,
    machine_type: Optional[str] = Query(None, alias="type"),
    store: DocumentStore = Depends(get_store),
):
    machines = reports.search_machines(store.load(), q, status, machine_type)
    return [machine.to_wire() for machine in machines]


@router.get(
    "/machines/{machine_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Машина по идентификатору",
)
async def get_machine(machine_id: str, store: DocumentStore = Depends(get_store)):
    return MaintenanceRepository(store.load()).get_machine(machine_id).to_wire()


@router.post(
    "/machines",
    responses={400: {"model": ErrorResponse}},
    summary="Создание машины",
    description="""
    Создаёт машину. Если указан шаблон обслуживания, состояния всех его
    компонентов инициализируются на текущих часах машины.
    """,
)
async def create_machine(data: MachineCreate, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        machine = MaintenanceRepository(document).create_machine(data)
    return {"success": True, "machine": machine.to_wire()}


@router.put(
    "/machines/{machine_id}",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Изменение машины",
)
async def update_machine(machine_id: str, data: MachineUpdate,
                         store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        machine = MaintenanceRepository(document).update_machine(machine_id, data)
    return {"success": True, "machine": machine.to_wire()}


@router.delete(
    "/machines/{machine_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Удаление машины",
)
async def delete_machine(machine_id: str, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        MaintenanceRepository(document).delete_machine(machine_id)
    return {"success": True}


@router.get(
    "/machines/{machine_id}/health",
    responses={404: {"model": ErrorResponse}},
    summary="Остаток часов по компонентам",
)
async def machine_health(machine_id: str, store: DocumentStore = Depends(get_store)):
    health = MaintenanceRepository(store.load()).machine_health(machine_id)
    return {"success": True, "health": health.to_wire() if health else None}


@router.post(
    "/machines/{machine_id}/maintenance",
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Завершение обслуживания",
    description="""
    Атомарно завершает обслуживание машины.

    ### Выполняет:
    * Проверку компонентов и запаса всех запчастей
    * Списание запчастей и уведомления о низком запасе
    * Сброс состояний обслуженных компонентов
    * Запись в историю обслуживания

    Если хотя бы одна проверка не прошла, ничего не сохраняется.
    """,
)
async def complete_maintenance(machine_id: str, data: MaintenanceCompletion,
                               store: DocumentStore = Depends(get_store)):
    try:
        async with store.transaction() as document:
            result = MaintenanceRepository(document).complete_maintenance(machine_id, data)
    except LoomcareError as e:
        increment_maintenance_counter("rejected")
        logger.warning(f"Maintenance completion for {machine_id} rejected: {e.message}")
        raise

    increment_maintenance_counter("completed")
    if result.notifications:
        increment_low_stock_alerts(len(result.notifications))
    return result.to_wire()
