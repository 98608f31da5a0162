"""
Клиентский менеджер данных: локальная копия документа и синхронизация с сервером

Состояния сессии:
    DISCONNECTED -> CONNECTED   документ получен с сервера
    DISCONNECTED -> DEGRADED    сервер недоступен, используется локальный кэш
    CONNECTED    -> DEGRADED    сетевая ошибка или 5xx при запросе
    DEGRADED     -> CONNECTED   сервер снова отвечает, отложенные изменения отправлены

Изменения применяются к локальной копии сразу (оптимистично) через тот же
MaintenanceRepository, что и на сервере. Конфликты не сливаются:
последний полученный с сервера документ заменяет локальный целиком.
"""

import asyncio
import base64
import contextlib
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from loomcare.core.config import ClientSettings
from loomcare.core.exceptions import AuthenticationError, LoomcareError
from loomcare.models import (
    CompletionResult,
    FloorPlan,
    FloorPlanCreate,
    FloorPlanUpdate,
    MachineCreate,
    MachineHealth,
    MachinePosition,
    MachineTypeCreate,
    MachineTypeUpdate,
    MachineUpdate,
    MaintenanceCompletion,
    MaintenanceDocument,
    MaintenanceRecordCreate,
    PartCreate,
    PartUpdate,
    TemplateCreate,
    TemplateUpdate,
    UserCreate,
    UserPublic,
    UserUpdate,
)
from loomcare.client.local_store import LocalCache
from loomcare.services.repository import MaintenanceRepository, public_user
from loomcare.services.seed import build_default_document
from loomcare.utils.helpers import generate_id, utcnow
from loomcare.utils.logger import get_logger

logger = get_logger(__name__)

COLLECTIONS = (
    "machines",
    "parts",
    "maintenanceHistory",
    "notifications",
    "users",
    "machineTypes",
    "maintenanceTemplates",
    "floorPlans",
)

Listener = Callable[[MaintenanceDocument], None]


class SyncState(str, Enum):
    """Состояние синхронизации клиентской сессии"""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    DEGRADED = "degraded"


@dataclass
class OperationResult:
    """Результат изменения данных; исключения наружу не пробрасываются"""
    ok: bool
    value: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, error_code: Optional[str] = None) -> "OperationResult":
        return cls(ok=False, error=error, error_code=error_code)


@dataclass
class PendingChange:
    """Изменение, которое не удалось отправить на сервер"""
    description: str
    created_at: datetime = field(default_factory=utcnow)


def fingerprint(data: Dict[str, Any]) -> Tuple:
    """Длины коллекций и lastModified документа"""
    return tuple(len(data.get(key) or []) for key in COLLECTIONS) + (data.get("lastModified"),)


def _wire(model: BaseModel, exclude_unset: bool = False) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_unset=exclude_unset)


def _error_from(response: httpx.Response) -> Tuple[str, Optional[str]]:
    try:
        body = response.json()
    except ValueError:
        return f"Server returned {response.status_code}", None
    if isinstance(body, dict):
        return body.get("error") or f"Server returned {response.status_code}", body.get("error_code")
    return f"Server returned {response.status_code}", None


def _with_component_ids(data):
    """Компоненты получают id на клиенте, чтобы сервер сохранил те же id"""
    if not data.components:
        return data
    components = [
        c if c.id else c.model_copy(update={"id": generate_id("cmp")})
        for c in data.components
    ]
    return data.model_copy(update={"components": components})


class DataManager:
    """
    Локальная копия документа с оптимистичными изменениями и
    периодической сверкой с сервером
    """

    def __init__(self, settings: Optional[ClientSettings] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 cache: Optional[LocalCache] = None):
        self.settings = settings or ClientSettings()
        self.client = httpx.AsyncClient(
            base_url=self.settings.SERVER_URL,
            timeout=self.settings.REQUEST_TIMEOUT,
            transport=transport,
        )
        self.cache = cache or LocalCache(self.settings.LOCAL_CACHE_PATH)
        self.state = SyncState.DISCONNECTED
        self.document = MaintenanceDocument()
        self.pending: List[PendingChange] = []
        self._fingerprint: Optional[Tuple] = None
        self._listeners: List[Listener] = []
        self._poll_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Жизненный цикл
    # ------------------------------------------------------------------

    async def start(self) -> SyncState:
        """
        Первичная загрузка: документ с сервера, иначе локальный кэш,
        иначе документ по умолчанию
        """
        try:
            self._apply_server_document(await self._fetch_document())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Server unavailable at startup, working offline: {str(e)}")
            self.document = self._load_offline_document()
            self._save_local()
            self._set_state(SyncState.DEGRADED)
        else:
            self._set_state(SyncState.CONNECTED)

        self._notify()
        return self.state

    def _load_offline_document(self) -> MaintenanceDocument:
        cached = self.cache.load()
        if cached is not None:
            try:
                return MaintenanceDocument.model_validate(cached)
            except PydanticValidationError as e:
                logger.error(f"Local cache is invalid, using default data: {e.error_count()} errors")
        return build_default_document(include_samples=False)

    def start_polling(self):
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def _poll_loop(self):
        while True:
            await asyncio.sleep(self.settings.SYNC_INTERVAL)
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Sync poll failed, retrying on next tick")

    async def close(self):
        if self._poll_task is not None:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None
        await self.client.aclose()

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener(self.document)
            except Exception:
                logger.exception(f"Document listener {listener!r} failed")

    def _set_state(self, state: SyncState):
        if state != self.state:
            logger.info(f"Sync state {self.state.value} -> {state.value}")
            self.state = state

    def _degrade(self, reason: str):
        logger.warning(f"Switching to offline mode: {reason}")
        self._set_state(SyncState.DEGRADED)

    def _queue(self, description: str):
        self.pending.append(PendingChange(description=description))
        logger.info(f"Change queued for later sync: {description} ({len(self.pending)} pending)")

    def _save_local(self):
        self.cache.save(self.document.to_wire())

    # ------------------------------------------------------------------
    # Синхронизация
    # ------------------------------------------------------------------

    async def _fetch_document(self) -> Dict[str, Any]:
        response = await self.client.get("/api/data")
        response.raise_for_status()
        return response.json()

    def _apply_server_document(self, data: Dict[str, Any]):
        self.document = MaintenanceDocument.model_validate(data)
        self._fingerprint = fingerprint(data)
        self.cache.save(data)

    async def check_health(self) -> bool:
        """Проверка доступности сервера с коротким таймаутом"""
        try:
            response = await self.client.get(
                "/api/status", timeout=self.settings.HEALTH_CHECK_TIMEOUT
            )
        except httpx.HTTPError:
            return False
        if response.status_code != 200:
            return False
        try:
            body = response.json()
        except ValueError:
            return False
        return isinstance(body, dict) and body.get("status") == "online"

    async def push_pending(self) -> bool:
        """Отправка документа целиком, если есть отложенные изменения"""
        if not self.pending:
            return True
        try:
            response = await self.client.post("/api/data", json=self.document.to_wire())
        except httpx.HTTPError as e:
            logger.warning(f"Failed to push pending changes: {str(e)}")
            return False
        if response.status_code >= 400:
            error, _ = _error_from(response)
            logger.warning(f"Server rejected pending changes: {error}")
            return False

        logger.info(f"Pushed {len(self.pending)} pending change(s) to server")
        self.pending.clear()
        return True

    async def poll_once(self) -> bool:
        """
        Один такт сверки с сервером.

        Возвращает True, если локальный документ был заменён серверным.
        """
        if self.state == SyncState.DEGRADED:
            if not await self.check_health():
                return False
            if not await self.push_pending():
                return False
            self._set_state(SyncState.CONNECTED)

        try:
            data = await self._fetch_document()
        except (httpx.HTTPError, ValueError) as e:
            self._degrade(f"poll failed: {str(e)}")
            return False

        if self.state == SyncState.DISCONNECTED:
            self._set_state(SyncState.CONNECTED)

        if fingerprint(data) == self._fingerprint:
            return False

        try:
            self._apply_server_document(data)
        except PydanticValidationError as e:
            logger.error(f"Server document failed validation: {e.error_count()} errors")
            return False

        logger.debug("Server document changed, local copy replaced")
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Изменения
    # ------------------------------------------------------------------

    async def _mutate(self, description: str,
                      apply: Callable[[MaintenanceRepository], Any],
                      method: str, path: str, payload: Any = None,
                      reconcile: Optional[Callable[[Any, Dict[str, Any]], Any]] = None
                      ) -> OperationResult:
        snapshot = self.document.model_copy(deep=True)
        try:
            value = apply(MaintenanceRepository(snapshot))
        except LoomcareError as e:
            logger.info(f"{description} rejected locally: {e.message}")
            return OperationResult.failure(e.message, e.error_code)

        previous = self.document
        self.document = snapshot
        self._save_local()

        if self.state != SyncState.CONNECTED:
            self._queue(description)
            return OperationResult.success(value)

        try:
            response = await self.client.request(method, path, json=payload)
        except httpx.HTTPError as e:
            self._degrade(f"{description}: {str(e)}")
            self._queue(description)
            return OperationResult.success(value)

        if response.status_code >= 500:
            self._degrade(f"{description}: server returned {response.status_code}")
            self._queue(description)
            return OperationResult.success(value)

        if response.status_code >= 400:
            error, error_code = _error_from(response)
            logger.info(f"{description} rejected by server: {error}")
            if self.document is snapshot:
                self.document = previous
                self._save_local()
            return OperationResult.failure(error, error_code)

        if reconcile is not None:
            try:
                value = reconcile(value, response.json())
            except (ValueError, AttributeError, TypeError, PydanticValidationError) as e:
                # Сервер изменение принял, оставляем оптимистичную версию
                logger.warning(f"{description}: unreadable server response, keeping local value: {str(e)}")
            self._save_local()
        return OperationResult.success(value)

    def _merge_entity(self, collection: str, optimistic: BaseModel,
                      data: Optional[Dict[str, Any]]) -> BaseModel:
        """Замена оптимистичной сущности серверной версией"""
        if not data:
            return optimistic
        merged = optimistic.model_dump(by_alias=True)
        merged.update(data)
        entity = type(optimistic).model_validate(merged)
        items = getattr(self.document, collection)
        if entity.id != optimistic.id:
            items[:] = [item for item in items if item.id != optimistic.id]
        MaintenanceRepository(self.document).replace_entity(collection, entity)
        return entity

    def _entity_reconciler(self, collection: str, key: str):
        def reconcile(optimistic, body):
            return self._merge_entity(collection, optimistic, body.get(key))
        return reconcile

    # Машины

    async def create_machine(self, data: MachineCreate) -> OperationResult:
        return await self._mutate(
            f"create machine {data.name}",
            lambda repo: repo.create_machine(data),
            "POST", "/api/machines", _wire(data),
            self._entity_reconciler("machines", "machine"),
        )

    async def update_machine(self, machine_id: str, data: MachineUpdate) -> OperationResult:
        return await self._mutate(
            f"update machine {machine_id}",
            lambda repo: repo.update_machine(machine_id, data),
            "PUT", f"/api/machines/{machine_id}", _wire(data, exclude_unset=True),
            self._entity_reconciler("machines", "machine"),
        )

    async def delete_machine(self, machine_id: str) -> OperationResult:
        return await self._mutate(
            f"delete machine {machine_id}",
            lambda repo: repo.delete_machine(machine_id),
            "DELETE", f"/api/machines/{machine_id}",
        )

    def machine_health(self, machine_id: str) -> Optional[MachineHealth]:
        repository = MaintenanceRepository(self.document)
        if repository.find_machine(machine_id) is None:
            return None
        return repository.machine_health(machine_id)

    async def complete_maintenance(self, machine_id: str,
                                   completion: MaintenanceCompletion) -> OperationResult:
        def reconcile(optimistic: CompletionResult, body: Dict[str, Any]) -> CompletionResult:
            result = CompletionResult.model_validate(body)
            repository = MaintenanceRepository(self.document)
            repository.replace_entity("machines", result.machine)
            for part in result.parts:
                repository.replace_entity("parts", part)

            stale = {optimistic.record.id} | {n.id for n in optimistic.notifications}
            self.document.maintenance_history = [
                r for r in self.document.maintenance_history if r.id not in stale
            ]
            self.document.notifications = [
                n for n in self.document.notifications if n.id not in stale
            ]
            self.document.maintenance_history.append(result.record)
            self.document.notifications.extend(result.notifications)
            return result

        return await self._mutate(
            f"complete maintenance on {machine_id}",
            lambda repo: repo.complete_maintenance(machine_id, completion),
            "POST", f"/api/machines/{machine_id}/maintenance", _wire(completion),
            reconcile,
        )

    async def add_maintenance_record(self, data: MaintenanceRecordCreate) -> OperationResult:
        return await self._mutate(
            f"add maintenance record for {data.machine_id}",
            lambda repo: repo.add_record(data),
            "POST", "/api/maintenance-history", _wire(data),
            self._entity_reconciler("maintenance_history", "record"),
        )

    # Запчасти

    async def create_part(self, data: PartCreate) -> OperationResult:
        return await self._mutate(
            f"create part {data.name}",
            lambda repo: repo.create_part(data),
            "POST", "/api/parts", _wire(data),
            self._entity_reconciler("parts", "part"),
        )

    async def update_part(self, part_id: str, data: PartUpdate) -> OperationResult:
        return await self._mutate(
            f"update part {part_id}",
            lambda repo: repo.update_part(part_id, data),
            "PUT", f"/api/parts/{part_id}", _wire(data, exclude_unset=True),
            self._entity_reconciler("parts", "part"),
        )

    async def delete_part(self, part_id: str) -> OperationResult:
        return await self._mutate(
            f"delete part {part_id}",
            lambda repo: repo.delete_part(part_id),
            "DELETE", f"/api/parts/{part_id}",
        )

    async def adjust_stock(self, part_id: str, delta: int) -> OperationResult:
        return await self._mutate(
            f"adjust stock of {part_id} by {delta}",
            lambda repo: repo.adjust_stock(part_id, delta),
            "POST", f"/api/parts/{part_id}/adjust-stock", {"delta": delta},
            self._entity_reconciler("parts", "part"),
        )

    # Шаблоны обслуживания

    async def create_template(self, data: TemplateCreate) -> OperationResult:
        data = _with_component_ids(data)
        return await self._mutate(
            f"create template {data.name}",
            lambda repo: repo.create_template(data),
            "POST", "/api/maintenance-templates", _wire(data),
            self._entity_reconciler("maintenance_templates", "template"),
        )

    async def update_template(self, template_id: str, data: TemplateUpdate) -> OperationResult:
        data = _with_component_ids(data)
        return await self._mutate(
            f"update template {template_id}",
            lambda repo: repo.update_template(template_id, data),
            "PUT", f"/api/maintenance-templates/{template_id}", _wire(data, exclude_unset=True),
            self._entity_reconciler("maintenance_templates", "template"),
        )

    async def delete_template(self, template_id: str) -> OperationResult:
        return await self._mutate(
            f"delete template {template_id}",
            lambda repo: repo.delete_template(template_id),
            "DELETE", f"/api/maintenance-templates/{template_id}",
        )

    async def assign_template(self, template_id: str, machine_ids: List[str]) -> OperationResult:
        def reconcile(optimistic, body):
            return [
                self._merge_entity("machines", machine, data)
                for machine, data in zip(optimistic, body.get("machines") or [])
            ]

        return await self._mutate(
            f"assign template {template_id}",
            lambda repo: repo.assign_template(template_id, machine_ids),
            "POST", f"/api/maintenance-templates/{template_id}/assign",
            {"machineIds": machine_ids},
            reconcile,
        )

    # Пользователи и типы машин

    async def create_user(self, data: UserCreate) -> OperationResult:
        return await self._mutate(
            f"create user {data.username}",
            lambda repo: repo.create_user(data),
            "POST", "/api/users", _wire(data),
            self._entity_reconciler("users", "user"),
        )

    async def update_user(self, user_id: str, data: UserUpdate) -> OperationResult:
        return await self._mutate(
            f"update user {user_id}",
            lambda repo: repo.update_user(user_id, data),
            "PUT", f"/api/users/{user_id}", _wire(data, exclude_unset=True),
            self._entity_reconciler("users", "user"),
        )

    async def delete_user(self, user_id: str) -> OperationResult:
        return await self._mutate(
            f"delete user {user_id}",
            lambda repo: repo.delete_user(user_id),
            "DELETE", f"/api/users/{user_id}",
        )

    async def create_machine_type(self, data: MachineTypeCreate) -> OperationResult:
        return await self._mutate(
            f"create machine type {data.code}",
            lambda repo: repo.create_machine_type(data),
            "POST", "/api/machine-types", _wire(data),
            self._entity_reconciler("machine_types", "machineType"),
        )

    async def update_machine_type(self, type_id: str, data: MachineTypeUpdate) -> OperationResult:
        return await self._mutate(
            f"update machine type {type_id}",
            lambda repo: repo.update_machine_type(type_id, data),
            "PUT", f"/api/machine-types/{type_id}", _wire(data, exclude_unset=True),
            self._entity_reconciler("machine_types", "machineType"),
        )

    async def delete_machine_type(self, type_id: str) -> OperationResult:
        return await self._mutate(
            f"delete machine type {type_id}",
            lambda repo: repo.delete_machine_type(type_id),
            "DELETE", f"/api/machine-types/{type_id}",
        )

    # Планы цехов

    async def create_floor_plan(self, data: FloorPlanCreate) -> OperationResult:
        return await self._mutate(
            f"create floor plan {data.name}",
            lambda repo: repo.create_floor_plan(data),
            "POST", "/api/floor-plans", _wire(data),
            self._entity_reconciler("floor_plans", "floorPlan"),
        )

    async def update_floor_plan(self, plan_id: str, data: FloorPlanUpdate) -> OperationResult:
        return await self._mutate(
            f"update floor plan {plan_id}",
            lambda repo: repo.update_floor_plan(plan_id, data),
            "PUT", f"/api/floor-plans/{plan_id}", _wire(data, exclude_unset=True),
            self._entity_reconciler("floor_plans", "floorPlan"),
        )

    async def delete_floor_plan(self, plan_id: str) -> OperationResult:
        return await self._mutate(
            f"delete floor plan {plan_id}",
            lambda repo: repo.delete_floor_plan(plan_id),
            "DELETE", f"/api/floor-plans/{plan_id}",
        )

    async def set_machine_position(self, plan_id: str, machine_id: str,
                                   position: MachinePosition) -> OperationResult:
        return await self._mutate(
            f"place machine {machine_id} on {plan_id}",
            lambda repo: repo.set_machine_position(plan_id, machine_id, position),
            "PUT", f"/api/floor-plans/{plan_id}/positions/{machine_id}", _wire(position),
            self._entity_reconciler("floor_plans", "floorPlan"),
        )

    async def remove_machine_position(self, plan_id: str, machine_id: str) -> OperationResult:
        return await self._mutate(
            f"remove machine {machine_id} from {plan_id}",
            lambda repo: repo.remove_machine_position(plan_id, machine_id),
            "DELETE", f"/api/floor-plans/{plan_id}/positions/{machine_id}",
            reconcile=self._entity_reconciler("floor_plans", "floorPlan"),
        )

    async def clear_machine_positions(self, plan_id: str) -> OperationResult:
        return await self._mutate(
            f"clear positions on {plan_id}",
            lambda repo: repo.clear_machine_positions(plan_id),
            "DELETE", f"/api/floor-plans/{plan_id}/positions",
            reconcile=self._entity_reconciler("floor_plans", "floorPlan"),
        )

    async def upload_floor_plan(self, content: bytes, filename: str,
                                name: str = "New floor plan") -> OperationResult:
        """
        Загрузка изображения плана: на сервер при наличии связи,
        иначе локально в виде data-URI
        """
        mime_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        if not mime_type.startswith("image/"):
            return OperationResult.failure("Only image files are allowed", "INVALID_FILE_TYPE")

        if self.state == SyncState.CONNECTED:
            try:
                response = await self.client.post(
                    "/api/floor-plan/upload",
                    files={"floorPlan": (filename, content, mime_type)},
                    data={"name": name},
                )
            except httpx.HTTPError as e:
                self._degrade(f"upload {filename}: {str(e)}")
            else:
                if response.status_code < 400:
                    return self._store_uploaded_plan(response.json()["floorPlan"])
                if response.status_code < 500:
                    error, error_code = _error_from(response)
                    return OperationResult.failure(error, error_code)
                self._degrade(f"upload {filename}: server returned {response.status_code}")

        data_uri = f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"
        return await self._mutate(
            f"upload floor plan {filename}",
            lambda repo: repo.create_floor_plan(
                FloorPlanCreate(name=name, image=data_uri),
                filename=filename,
                original_name=filename,
            ),
            "POST", "/api/floor-plans",
        )

    def _store_uploaded_plan(self, data: Dict[str, Any]) -> OperationResult:
        plan = FloorPlan.model_validate(data)
        MaintenanceRepository(self.document).replace_entity("floor_plans", plan)
        self._save_local()
        return OperationResult.success(plan)

    # Уведомления

    async def add_notification(self, message: str, urgent: bool = False) -> OperationResult:
        return await self._mutate(
            "add notification",
            lambda repo: repo.add_notification(message, urgent=urgent),
            "POST", "/api/notifications", {"message": message, "urgent": urgent},
            self._entity_reconciler("notifications", "notification"),
        )

    # Аутентификация

    async def authenticate(self, username: str, password: str) -> OperationResult:
        """
        Вход через сервер; без связи пароль проверяется по локальной копии
        """
        if self.state == SyncState.CONNECTED:
            try:
                response = await self.client.post(
                    "/api/login", json={"username": username, "password": password}
                )
            except httpx.HTTPError as e:
                self._degrade(f"login: {str(e)}")
            else:
                if response.status_code == 200:
                    return OperationResult.success(
                        UserPublic.model_validate(response.json()["user"])
                    )
                if response.status_code < 500:
                    error, error_code = _error_from(response)
                    return OperationResult.failure(error, error_code)
                self._degrade(f"login: server returned {response.status_code}")

        try:
            user = MaintenanceRepository(self.document).authenticate(username, password)
        except AuthenticationError as e:
            return OperationResult.failure(e.message, e.error_code)
        return OperationResult.success(public_user(user))
