"""
Роутер для пользователей и типов машин
"""

from fastapi import APIRouter, Depends

from loomcare.core.dependencies import get_store
from loomcare.models import (
    ErrorResponse,
    MachineTypeCreate,
    MachineTypeUpdate,
    UserCreate,
    UserUpdate,
)
from loomcare.services.repository import MaintenanceRepository, public_user
from loomcare.services.storage import DocumentStore

router = APIRouter()


@router.get("/users", summary="Список пользователей без хешей паролей")
async def list_users(store: DocumentStore = Depends(get_store)):
    return [user.to_wire() for user in MaintenanceRepository(store.load()).list_users()]


@router.post(
    "/users",
    responses={409: {"model": ErrorResponse}},
    summary="Создание пользователя",
)
async def create_user(data: UserCreate, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        user = MaintenanceRepository(document).create_user(data)
    return {"success": True, "user": public_user(user).to_wire()}


@router.put(
    "/users/{user_id}",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Изменение пользователя",
)
async def update_user(user_id: str, data: UserUpdate, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        user = MaintenanceRepository(document).update_user(user_id, data)
    return {"success": True, "user": public_user(user).to_wire()}


@router.delete(
    "/users/{user_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Удаление пользователя",
)
async def delete_user(user_id: str, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        MaintenanceRepository(document).delete_user(user_id)
    return {"success": True}


@router.get("/machine-types", summary="Список типов машин")
async def list_machine_types(store: DocumentStore = Depends(get_store)):
    repository = MaintenanceRepository(store.load())
    return [machine_type.to_wire() for machine_type in repository.list_machine_types()]


@router.post(
    "/machine-types",
    responses={409: {"model": ErrorResponse}},
    summary="Создание типа машины",
)
async def create_machine_type(data: MachineTypeCreate, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        machine_type = MaintenanceRepository(document).create_machine_type(data)
    return {"success": True, "machineType": machine_type.to_wire()}


@router.put(
    "/machine-types/{type_id}",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Изменение типа машины",
)
async def update_machine_type(type_id: str, data: MachineTypeUpdate,
                              store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        machine_type = MaintenanceRepository(document).update_machine_type(type_id, data)
    return {"success": True, "machineType": machine_type.to_wire()}


@router.delete(
    "/machine-types/{type_id}",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Удаление типа машины",
)
async def delete_machine_type(type_id: str, store: DocumentStore = Depends(get_store)):
    async with store.transaction() as document:
        MaintenanceRepository(document).delete_machine_type(type_id)
    return {"success": True}
