"""
Операции над документом обслуживания.

Репозиторий работает с документом в памяти и используется и сервером
(внутри транзакции хранилища), и клиентом (на локальной копии кэша).
Все проверки выполняются до изменения документа; ошибки сообщаются
исключениями из loomcare.core.exceptions.
"""

import json
from datetime import timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from loomcare.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from loomcare.models import (
    CompletionResult,
    Component,
    ComponentIn,
    FloorPlan,
    FloorPlanCreate,
    FloorPlanUpdate,
    Machine,
    MachineCreate,
    MachineHealth,
    MachinePosition,
    MachineStatus,
    MachineType,
    MachineTypeCreate,
    MachineTypeUpdate,
    MachineUpdate,
    MaintenanceCompletion,
    MaintenanceDocument,
    MaintenanceRecord,
    MaintenanceRecordCreate,
    MaintenanceTemplate,
    Notification,
    Part,
    PartCreate,
    PartUpdate,
    PartUsage,
    TemplateCreate,
    TemplateUpdate,
    User,
    UserCreate,
    UserPublic,
    UserUpdate,
)
from loomcare.services import maintenance
from loomcare.services.auth import hash_password, verify_password
from loomcare.utils.helpers import generate_id, utcnow
from loomcare.utils.logger import get_logger

logger = get_logger(__name__)

# Плановая дата следующего обслуживания после завершения работ
NEXT_MAINTENANCE_DAYS = 60


def describe_validation_error(error: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'value'}: {err['msg']}"
        for err in error.errors()
    )


def apply_update(entity: BaseModel, changes: Dict) -> BaseModel:
    """
    Применение явно переданных полей и повторная валидация сущности.

    Поле со значением None очищается; для обязательного поля это ошибка.
    """
    merged = entity.model_dump()
    merged.update(changes)
    try:
        return type(entity).model_validate(merged)
    except PydanticValidationError as e:
        raise ValidationError(describe_validation_error(e)) from e


def public_user(user: User) -> UserPublic:
    return UserPublic.model_validate(user.model_dump())


def _replace_in(collection: List, entity) -> None:
    for index, item in enumerate(collection):
        if item.id == entity.id:
            collection[index] = entity
            return
    collection.append(entity)


class MaintenanceRepository:
    """CRUD и бизнес-операции над MaintenanceDocument"""

    def __init__(self, document: MaintenanceDocument):
        self.document = document

    # ------------------------------------------------------------------
    # Поиск
    # ------------------------------------------------------------------

    @staticmethod
    def _find(collection: List, entity_id: Optional[str]):
        if entity_id is None:
            return None
        return next((item for item in collection if item.id == entity_id), None)

    def _get(self, collection: List, entity_id: str, kind: str):
        entity = self._find(collection, entity_id)
        if entity is None:
            raise NotFoundError(f"{kind} {entity_id} not found")
        return entity

    def find_machine(self, machine_id: Optional[str]) -> Optional[Machine]:
        return self._find(self.document.machines, machine_id)

    def get_machine(self, machine_id: str) -> Machine:
        return self._get(self.document.machines, machine_id, "Machine")

    def find_template(self, template_id: Optional[str]) -> Optional[MaintenanceTemplate]:
        return self._find(self.document.maintenance_templates, template_id)

    def get_template(self, template_id: str) -> MaintenanceTemplate:
        return self._get(self.document.maintenance_templates, template_id, "Maintenance template")

    def find_part(self, part_id: Optional[str]) -> Optional[Part]:
        return self._find(self.document.parts, part_id)

    def get_part(self, part_id: str) -> Part:
        return self._get(self.document.parts, part_id, "Part")

    def get_user(self, user_id: str) -> User:
        return self._get(self.document.users, user_id, "User")

    def get_machine_type(self, type_id: str) -> MachineType:
        return self._get(self.document.machine_types, type_id, "Machine type")

    def get_floor_plan(self, plan_id: str) -> FloorPlan:
        return self._get(self.document.floor_plans, plan_id, "Floor plan")

    def find_machine_type_by_code(self, code: Optional[str]) -> Optional[MachineType]:
        if not code:
            return None
        code = code.strip().upper()
        return next((mt for mt in self.document.machine_types if mt.code == code), None)

    def _require_machine_type(self, code: str):
        if self.find_machine_type_by_code(code) is None:
            raise ValidationError(f"Unknown machine type {code}", "UNKNOWN_MACHINE_TYPE")

    def _require_template(self, template_id: str) -> MaintenanceTemplate:
        template = self.find_template(template_id)
        if template is None:
            raise ValidationError(
                f"Maintenance template {template_id} does not exist", "UNKNOWN_TEMPLATE"
            )
        return template

    def replace_entity(self, collection_name: str, entity) -> None:
        """Замена сущности по id (или добавление, если её нет)"""
        _replace_in(getattr(self.document, collection_name), entity)

    # ------------------------------------------------------------------
    # Машины
    # ------------------------------------------------------------------

    def list_machines(self) -> List[Machine]:
        return list(self.document.machines)

    def create_machine(self, data: MachineCreate, machine_id: Optional[str] = None) -> Machine:
        machine = Machine(id=machine_id or generate_id("id"), **data.model_dump())
        if self.find_machine(machine.id) is not None:
            raise ConflictError(f"Machine {machine.id} already exists", "DUPLICATE_ID")
        self._require_machine_type(machine.type)

        if machine.maintenance_template_id is not None:
            template = self._require_template(machine.maintenance_template_id)
            maintenance.assign_template(machine, template)

        machine.qr_code = json.dumps({
            "id": machine.id,
            "name": machine.name,
            "type": machine.type,
            "serial": machine.serial,
        })
        self.document.machines.append(machine)
        logger.info(f"Machine {machine.id} ({machine.name}) created")
        return machine

    def update_machine(self, machine_id: str, data: MachineUpdate) -> Machine:
        machine = self.get_machine(machine_id)
        changes = data.model_dump(exclude_unset=True)

        new_hours = changes.get("operating_hours")
        if new_hours is not None and new_hours < machine.operating_hours:
            raise ValidationError(
                f"Operating hours cannot decrease ({machine.operating_hours} -> {new_hours})",
                "HOURS_DECREASE",
            )
        if changes.get("type") is not None:
            self._require_machine_type(changes["type"])

        template_changed = (
            "maintenance_template_id" in changes
            and changes["maintenance_template_id"] != machine.maintenance_template_id
        )
        template = None
        if template_changed and changes["maintenance_template_id"] is not None:
            template = self._require_template(changes["maintenance_template_id"])

        updated = apply_update(machine, changes)
        if template_changed:
            if template is None:
                maintenance.clear_template(updated)
            else:
                maintenance.assign_template(updated, template)

        _replace_in(self.document.machines, updated)
        logger.info(f"Machine {machine_id} updated: {sorted(changes)}")
        return updated

    def delete_machine(self, machine_id: str) -> Machine:
        machine = self.get_machine(machine_id)
        self.document.machines.remove(machine)
        for plan in self.document.floor_plans:
            plan.machine_positions.pop(machine_id, None)
        logger.info(f"Machine {machine_id} deleted")
        return machine

    def machine_health(self, machine_id: str) -> Optional[MachineHealth]:
        machine = self.get_machine(machine_id)
        return maintenance.machine_health(
            machine, self.find_template(machine.maintenance_template_id)
        )

    # ------------------------------------------------------------------
    # Запчасти
    # ------------------------------------------------------------------

    def list_parts(self) -> List[Part]:
        return list(self.document.parts)

    def create_part(self, data: PartCreate, part_id: Optional[str] = None) -> Part:
        part = Part(id=part_id or generate_id("part"), **data.model_dump())
        if self.find_part(part.id) is not None:
            raise ConflictError(f"Part {part.id} already exists", "DUPLICATE_ID")
        self.document.parts.append(part)
        logger.info(f"Part {part.id} ({part.name}) created")
        return part

    def update_part(self, part_id: str, data: PartUpdate) -> Part:
        part = self.get_part(part_id)
        updated = apply_update(part, data.model_dump(exclude_unset=True))
        _replace_in(self.document.parts, updated)
        return updated

    def delete_part(self, part_id: str) -> Part:
        part = self.get_part(part_id)
        self.document.parts.remove(part)
        logger.info(f"Part {part_id} deleted")
        return part

    def adjust_stock(self, part_id: str, delta: int) -> Part:
        """
        Ручная корректировка запаса на delta единиц (может быть отрицательной)
        """
        part = self.get_part(part_id)
        new_stock = part.stock + delta
        if new_stock < 0:
            raise ValidationError(
                f"Insufficient stock for {part.name}: {part.stock} available, {-delta} requested",
                "INSUFFICIENT_STOCK",
            )
        part.stock = new_stock
        if delta < 0 and part.is_low_stock:
            self._low_stock_notification(part)
        return part

    def _low_stock_notification(self, part: Part) -> Notification:
        return self.add_notification(
            f"Low stock: {part.name} ({part.stock} left, minimum {part.min_stock})",
            urgent=True,
        )

    # ------------------------------------------------------------------
    # Шаблоны обслуживания
    # ------------------------------------------------------------------

    def list_templates(self) -> List[MaintenanceTemplate]:
        return list(self.document.maintenance_templates)

    @staticmethod
    def _build_components(items: List[ComponentIn]) -> List[Component]:
        components = []
        seen = set()
        for item in items:
            values = item.model_dump(exclude={"id"})
            component = Component(id=item.id or generate_id("cmp"), **values)
            if component.id in seen:
                raise ValidationError(f"Duplicate component id {component.id}", "DUPLICATE_ID")
            seen.add(component.id)
            components.append(component)
        return components

    def create_template(self, data: TemplateCreate,
                        template_id: Optional[str] = None) -> MaintenanceTemplate:
        template = MaintenanceTemplate(
            id=template_id or generate_id("tpl"),
            name=data.name,
            description=data.description,
            machine_type=data.machine_type,
            components=self._build_components(data.components),
        )
        if self.find_template(template.id) is not None:
            raise ConflictError(f"Maintenance template {template.id} already exists", "DUPLICATE_ID")
        if template.machine_type:
            self._require_machine_type(template.machine_type)
        self.document.maintenance_templates.append(template)
        logger.info(f"Maintenance template {template.id} ({template.name}) created "
                    f"with {len(template.components)} components")
        return template

    def update_template(self, template_id: str, data: TemplateUpdate) -> MaintenanceTemplate:
        template = self.get_template(template_id)
        changes = data.model_dump(exclude_unset=True)
        if "components" in changes:
            if data.components is None:
                raise ValidationError("components: cannot be null")
            changes["components"] = [
                c.model_dump() for c in self._build_components(data.components)
            ]
        if changes.get("machine_type"):
            self._require_machine_type(changes["machine_type"])

        updated = apply_update(template, changes)
        _replace_in(self.document.maintenance_templates, updated)

        if "components" in changes:
            now = utcnow()
            for machine in self.document.machines:
                if machine.maintenance_template_id == template_id:
                    maintenance.sync_component_states(machine, updated, now)
        logger.info(f"Maintenance template {template_id} updated: {sorted(changes)}")
        return updated

    def delete_template(self, template_id: str) -> MaintenanceTemplate:
        template = self.get_template(template_id)
        machine_ids = [
            m.id for m in self.document.machines if m.maintenance_template_id == template_id
        ]
        if machine_ids:
            raise ConflictError(
                f"Maintenance template {template_id} is used by {len(machine_ids)} machine(s)",
                "TEMPLATE_IN_USE",
            )
        self.document.maintenance_templates.remove(template)
        logger.info(f"Maintenance template {template_id} deleted")
        return template

    def assign_template(self, template_id: str, machine_ids: List[str]) -> List[Machine]:
        """
        Назначение шаблона нескольким машинам; состояния компонентов
        инициализируются на текущих часах каждой машины
        """
        template = self.get_template(template_id)
        machines = [self.get_machine(machine_id) for machine_id in dict.fromkeys(machine_ids)]
        now = utcnow()
        for machine in machines:
            maintenance.assign_template(machine, template, now)
        logger.info(f"Maintenance template {template_id} assigned to {len(machines)} machine(s)")
        return machines

    # ------------------------------------------------------------------
    # История и завершение обслуживания
    # ------------------------------------------------------------------

    def list_history(self, machine_id: Optional[str] = None) -> List[MaintenanceRecord]:
        records = [
            record for record in self.document.maintenance_history
            if machine_id is None or record.machine_id == machine_id
        ]
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def add_record(self, data: MaintenanceRecordCreate,
                   record_id: Optional[str] = None) -> MaintenanceRecord:
        machine = self.get_machine(data.machine_id)
        values = data.model_dump()
        if values["operating_hours"] is None:
            values["operating_hours"] = machine.operating_hours
        record = MaintenanceRecord(id=record_id or generate_id("mh"), **values)
        self.document.maintenance_history.append(record)
        return record

    def complete_maintenance(self, machine_id: str,
                             completion: MaintenanceCompletion) -> CompletionResult:
        """
        Атомарное завершение обслуживания.

        Сначала проверяются машина, компоненты и запас всех запчастей,
        затем выполняются списание, сброс состояний и запись в историю.
        При любой ошибке проверки документ не изменяется.
        """
        machine = self.get_machine(machine_id)
        template = self.find_template(machine.maintenance_template_id)

        component_ids = list(dict.fromkeys(completion.component_ids))
        if template is not None:
            if not component_ids:
                raise ValidationError(
                    "At least one component must be selected", "NO_COMPONENTS"
                )
            unknown = [cid for cid in component_ids if template.component(cid) is None]
            if unknown:
                raise ValidationError(
                    f"Components {', '.join(unknown)} do not belong to template {template.id}",
                    "UNKNOWN_COMPONENT",
                )
        elif component_ids:
            raise ValidationError(
                f"Machine {machine_id} has no maintenance template assigned", "NO_TEMPLATE"
            )

        hours = completion.operating_hours
        if hours is not None and hours < machine.operating_hours:
            raise ValidationError(
                f"Operating hours cannot decrease ({machine.operating_hours} -> {hours})",
                "HOURS_DECREASE",
            )

        requested: Dict[str, int] = {}
        for usage in completion.parts_used:
            requested[usage.part_id] = requested.get(usage.part_id, 0) + usage.quantity

        for part_id, quantity in requested.items():
            part = self.find_part(part_id)
            if part is None:
                raise ValidationError(f"Part {part_id} not found", "UNKNOWN_PART")
            if part.stock < quantity:
                raise ValidationError(
                    f"Insufficient stock for {part.name}: {part.stock} available, "
                    f"{quantity} requested",
                    "INSUFFICIENT_STOCK",
                )

        # Все проверки пройдены
        now = utcnow()
        parts = []
        notifications = []
        for part_id, quantity in requested.items():
            part = self.find_part(part_id)
            part.stock -= quantity
            parts.append(part)
            if part.is_low_stock:
                notifications.append(self._low_stock_notification(part))

        if hours is not None:
            machine.operating_hours = hours
        maintenance.reset_components(machine, component_ids, now)
        machine.status = MachineStatus.SERVICED
        machine.last_maintenance = now
        machine.next_maintenance = now + timedelta(days=NEXT_MAINTENANCE_DAYS)

        record = MaintenanceRecord(
            id=generate_id("mh"),
            machine_id=machine.id,
            technician=completion.technician,
            timestamp=now,
            operating_hours=machine.operating_hours,
            notes=completion.notes,
            components_serviced=component_ids,
            parts_used=[
                PartUsage(part_id=part_id, quantity=quantity)
                for part_id, quantity in requested.items()
            ],
        )
        self.document.maintenance_history.append(record)

        logger.info(f"Maintenance completed for machine {machine.id}: "
                    f"{len(component_ids)} components, {len(requested)} parts")
        return CompletionResult(
            machine=machine,
            record=record,
            parts=parts,
            notifications=notifications,
        )

    # ------------------------------------------------------------------
    # Уведомления
    # ------------------------------------------------------------------

    def list_notifications(self, unread_only: bool = False) -> List[Notification]:
        return [n for n in self.document.notifications if not (unread_only and n.read)]

    def add_notification(self, message: str, urgent: bool = False) -> Notification:
        notification = Notification(
            id=generate_id("notif"),
            message=message,
            urgent=urgent,
        )
        self.document.notifications.append(notification)
        if urgent:
            logger.warning(f"Urgent notification: {message}")
        return notification

    # ------------------------------------------------------------------
    # Пользователи и аутентификация
    # ------------------------------------------------------------------

    def list_users(self) -> List[UserPublic]:
        return [public_user(user) for user in self.document.users]

    def _check_username(self, username: str, exclude_id: Optional[str] = None):
        for user in self.document.users:
            if user.username == username and user.id != exclude_id:
                raise ConflictError(f"Username {username} already exists", "DUPLICATE_USERNAME")

    def create_user(self, data: UserCreate, user_id: Optional[str] = None) -> User:
        self._check_username(data.username)
        user = User(
            id=user_id or generate_id("user"),
            username=data.username,
            password_hash=hash_password(data.password),
            name=data.name,
            email=data.email,
            role=data.role,
        )
        self.document.users.append(user)
        logger.info(f"User {user.username} created with role {user.role.value}")
        return user

    def update_user(self, user_id: str, data: UserUpdate) -> User:
        user = self.get_user(user_id)
        changes = data.model_dump(exclude_unset=True)
        if "password" in changes:
            password = changes.pop("password")
            if not password:
                raise ValidationError("password: cannot be empty")
            changes["password_hash"] = hash_password(password)
        if changes.get("username"):
            self._check_username(changes["username"], exclude_id=user_id)

        updated = apply_update(user, changes)
        _replace_in(self.document.users, updated)
        return updated

    def delete_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        self.document.users.remove(user)
        logger.info(f"User {user.username} deleted")
        return user

    def authenticate(self, username: str, password: str) -> User:
        user = next((u for u in self.document.users if u.username == username), None)
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid username or password")
        return user

    # ------------------------------------------------------------------
    # Типы машин
    # ------------------------------------------------------------------

    def list_machine_types(self) -> List[MachineType]:
        return list(self.document.machine_types)

    def _type_in_use(self, code: str) -> bool:
        return (
            any(m.type == code for m in self.document.machines)
            or any(t.machine_type == code for t in self.document.maintenance_templates)
        )

    def create_machine_type(self, data: MachineTypeCreate,
                            type_id: Optional[str] = None) -> MachineType:
        machine_type = MachineType(id=type_id or generate_id("mt"), **data.model_dump())
        if self.find_machine_type_by_code(machine_type.code) is not None:
            raise ConflictError(
                f"Machine type code {machine_type.code} already exists", "DUPLICATE_CODE"
            )
        self.document.machine_types.append(machine_type)
        logger.info(f"Machine type {machine_type.code} created")
        return machine_type

    def update_machine_type(self, type_id: str, data: MachineTypeUpdate) -> MachineType:
        machine_type = self.get_machine_type(type_id)
        changes = data.model_dump(exclude_unset=True)
        updated = apply_update(machine_type, changes)

        if updated.code != machine_type.code:
            existing = self.find_machine_type_by_code(updated.code)
            if existing is not None and existing.id != type_id:
                raise ConflictError(
                    f"Machine type code {updated.code} already exists", "DUPLICATE_CODE"
                )
            if self._type_in_use(machine_type.code):
                raise ConflictError(
                    f"Machine type {machine_type.code} is in use and cannot be renamed",
                    "TYPE_IN_USE",
                )

        _replace_in(self.document.machine_types, updated)
        return updated

    def delete_machine_type(self, type_id: str) -> MachineType:
        machine_type = self.get_machine_type(type_id)
        if self._type_in_use(machine_type.code):
            raise ConflictError(
                f"Machine type {machine_type.code} is used by machines or templates",
                "TYPE_IN_USE",
            )
        self.document.machine_types.remove(machine_type)
        logger.info(f"Machine type {machine_type.code} deleted")
        return machine_type

    # ------------------------------------------------------------------
    # Планы цехов
    # ------------------------------------------------------------------

    def list_floor_plans(self) -> List[FloorPlan]:
        return list(self.document.floor_plans)

    def _check_positions(self, positions: Dict[str, MachinePosition]):
        unknown = [mid for mid in positions if self.find_machine(mid) is None]
        if unknown:
            raise ValidationError(f"Unknown machines: {', '.join(unknown)}", "UNKNOWN_MACHINE")

    def create_floor_plan(self, data: FloorPlanCreate, plan_id: Optional[str] = None,
                          filename: Optional[str] = None,
                          original_name: Optional[str] = None) -> FloorPlan:
        self._check_positions(data.machine_positions)
        plan = FloorPlan(
            id=plan_id or generate_id("fp"),
            name=data.name,
            image=data.image,
            filename=filename,
            original_name=original_name,
            machine_positions=data.machine_positions,
            uploaded_at=utcnow(),
        )
        if self._find(self.document.floor_plans, plan.id) is not None:
            raise ConflictError(f"Floor plan {plan.id} already exists", "DUPLICATE_ID")
        self.document.floor_plans.append(plan)
        logger.info(f"Floor plan {plan.id} ({plan.name}) created")
        return plan

    def update_floor_plan(self, plan_id: str, data: FloorPlanUpdate) -> FloorPlan:
        plan = self.get_floor_plan(plan_id)
        if data.machine_positions:
            self._check_positions(data.machine_positions)
        updated = apply_update(plan, data.model_dump(exclude_unset=True))
        _replace_in(self.document.floor_plans, updated)
        return updated

    def delete_floor_plan(self, plan_id: str) -> FloorPlan:
        plan = self.get_floor_plan(plan_id)
        self.document.floor_plans.remove(plan)
        logger.info(f"Floor plan {plan_id} deleted")
        return plan

    def set_machine_position(self, plan_id: str, machine_id: str,
                             position: MachinePosition) -> FloorPlan:
        plan = self.get_floor_plan(plan_id)
        self.get_machine(machine_id)
        plan.machine_positions[machine_id] = position
        return plan

    def remove_machine_position(self, plan_id: str, machine_id: str) -> FloorPlan:
        plan = self.get_floor_plan(plan_id)
        if plan.machine_positions.pop(machine_id, None) is None:
            raise NotFoundError(f"Machine {machine_id} is not placed on floor plan {plan_id}")
        return plan

    def clear_machine_positions(self, plan_id: str) -> FloorPlan:
        plan = self.get_floor_plan(plan_id)
        plan.machine_positions = {}
        return plan
