"""
Роутер для шаблонов обслуживания
"""

from fastapi import APIRouter, Depends

from loomcare.core.dependencies import get_store
from loomcare.models import ErrorResponse, TemplateAssignment, TemplateCreate, TemplateUpdate
from loomcare.services.repository import MaintenanceRepository
from loomcare.services.storage import DocumentStore

router = APIRouter()


@router.get("/maintenance-templates", summary="Список шаблонов обслуживания")
async def list_templates(store: DocumentStore = Depends(get_store)):
    repository = MaintenanceRepository(store.load())
    return [template.to_wire() for template in repository.list_templates()]


@router.get(
    "/maintenance-templates/{template_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Шаблон по идентификатору",
)
async def get_template(template_id: str, store: DocumentStore = Depends(get_store)):
    return MaintenanceRepository(store.load()).get_template(template_id).to_wire()


@router.post(
    "/maintenance-templates",
    responses={400: {"model": ErrorResponse}},
    summary="Создание шаблона",
)
async def create_template(data: TemplateCreate, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        template = MaintenanceRepository(document).create_template(data)
    return {"success": True, "template": template.to_wire()}


@router.put(
    "/maintenance-templates/{template_id}",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Изменение шаблона",
    description="""
    Изменяет шаблон. При замене списка компонентов состояния машин,
    использующих шаблон, согласуются: удалённые компоненты отбрасываются,
    новые начинают отсчёт с текущих часов машины.
    """,
)
async def update_template(template_id: str, data: TemplateUpdate,
                          store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        template = MaintenanceRepository(document).update_template(template_id, data)
    return {"success": True, "template": template.to_wire()}


@router.delete(
    "/maintenance-templates/{template_id}",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Удаление шаблона",
)
async def delete_template(template_id: str, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        MaintenanceRepository(document).delete_template(template_id)
    return {"success": True}


@router.post(
    "/maintenance-templates/{template_id}/assign",
    responses={404: {"model": ErrorResponse}},
    summary="Назначение шаблона машинам",
)
async def assign_template(template_id: str, data: TemplateAssignment,
                          store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        machines = MaintenanceRepository(document).assign_template(template_id, data.machine_ids)
    return {"success": True, "machines": [machine.to_wire() for machine in machines]}
