"""
Pydantic модели сущностей документа и схемы API
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from loomcare.utils.helpers import generate_id, utcnow


class CamelModel(BaseModel):
    """Базовая модель: snake_case в Python, camelCase в JSON"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        """Сериализация в JSON-совместимый словарь с camelCase ключами"""
        return self.model_dump(mode="json", by_alias=True)


class MachineStatus(str, Enum):
    """Статусы машины"""
    OK = "ok"
    MAINTENANCE = "maintenance"
    NOT_OK = "not-ok"
    SERVICED = "serviced"


class UserRole(str, Enum):
    """Роли пользователей"""
    ADMIN = "admin"
    TECHNICIAN = "technician"
    VIEWER = "viewer"


class ComponentCategory(str, Enum):
    """Категории обслуживаемых компонентов"""
    MECHANICAL = "mechanical"
    CLEANING = "cleaning"
    LUBRICATION = "lubrication"
    ELECTRICAL = "electrical"
    PNEUMATIC = "pneumatic"
    OTHER = "other"


class ComponentStatus(str, Enum):
    """Состояние компонента относительно интервала обслуживания"""
    OK = "ok"
    WARNING = "warning"
    OVERDUE = "overdue"


# ---------------------------------------------------------------------------
# Сущности документа
# ---------------------------------------------------------------------------

class ComponentState(CamelModel):
    """Часы машины на момент последнего обслуживания компонента"""
    last_maintenance_hours: int = Field(..., ge=0)
    last_maintenance_date: Optional[datetime] = None


class Component(CamelModel):
    id: str = Field(default_factory=lambda: generate_id("cmp"))
    name: str = Field(..., min_length=1)
    interval_hours: int = Field(..., gt=0)
    category: ComponentCategory = ComponentCategory.OTHER
    tasks: List[str] = Field(default_factory=list)


class MaintenanceTemplate(CamelModel):
    id: str
    name: str = Field(..., min_length=1)
    description: str = ""
    machine_type: Optional[str] = None
    components: List[Component] = Field(default_factory=list)

    @field_validator("machine_type")
    @classmethod
    def normalize_machine_type(cls, v):
        return v.strip().upper() if v else v

    def component(self, component_id: str) -> Optional[Component]:
        return next((c for c in self.components if c.id == component_id), None)


class Machine(CamelModel):
    id: str
    name: str = Field(..., min_length=1)
    type: str
    serial: str = ""
    location: str = ""
    year: Optional[int] = None
    status: MachineStatus = MachineStatus.OK
    operating_hours: int = Field(0, ge=0)
    maintenance_template_id: Optional[str] = None
    component_states: Dict[str, ComponentState] = Field(default_factory=dict)
    last_maintenance: Optional[datetime] = None
    next_maintenance: Optional[datetime] = None
    qr_code: Optional[str] = None

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v):
        return v.strip().upper()


class Part(CamelModel):
    id: str
    name: str = Field(..., min_length=1)
    part_number: str = ""
    stock: int = Field(0, ge=0)
    min_stock: int = Field(0, ge=0)
    machine_types: List[str] = Field(default_factory=list)

    @field_validator("machine_types")
    @classmethod
    def unique_machine_types(cls, v):
        return list(dict.fromkeys(code.strip().upper() for code in v if code.strip()))

    @property
    def is_low_stock(self) -> bool:
        return self.stock < self.min_stock


class PartUsage(CamelModel):
    part_id: str
    quantity: int = Field(..., gt=0)


class MaintenanceRecord(CamelModel):
    id: str
    machine_id: str
    technician: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    operating_hours: int = Field(0, ge=0)
    notes: str = ""
    components_serviced: List[str] = Field(default_factory=list)
    parts_used: List[PartUsage] = Field(default_factory=list)


class User(CamelModel):
    id: str
    username: str = Field(..., min_length=1)
    password_hash: str
    name: str = ""
    email: str = ""
    role: UserRole = UserRole.VIEWER
    created: datetime = Field(default_factory=utcnow)


class UserPublic(CamelModel):
    """Пользователь без хеша пароля"""
    id: str
    username: str
    name: str = ""
    email: str = ""
    role: UserRole
    created: Optional[datetime] = None


class MachineType(CamelModel):
    id: str
    code: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper()


class MachinePosition(CamelModel):
    x: float = Field(..., ge=0)
    y: float = Field(..., ge=0)


class FloorPlan(CamelModel):
    id: str
    name: str = "New floor plan"
    image: Optional[str] = None
    filename: Optional[str] = None
    original_name: Optional[str] = None
    machine_positions: Dict[str, MachinePosition] = Field(default_factory=dict)
    uploaded_at: Optional[datetime] = None


class Notification(CamelModel):
    id: str
    message: str
    urgent: bool = False
    timestamp: datetime = Field(default_factory=utcnow)
    read: bool = False


class MaintenanceDocument(CamelModel):
    """Единый документ со всеми коллекциями"""
    machines: List[Machine] = Field(default_factory=list)
    parts: List[Part] = Field(default_factory=list)
    maintenance_history: List[MaintenanceRecord] = Field(default_factory=list)
    notifications: List[Notification] = Field(default_factory=list)
    users: List[User] = Field(default_factory=list)
    machine_types: List[MachineType] = Field(default_factory=list)
    maintenance_templates: List[MaintenanceTemplate] = Field(default_factory=list)
    floor_plans: List[FloorPlan] = Field(default_factory=list)
    last_modified: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Запросы на создание и обновление
#
# Update-модели применяются через model_dump(exclude_unset=True):
# отсутствующее поле не меняется, явный null очищает поле.
# ---------------------------------------------------------------------------

class MachineCreate(CamelModel):
    name: str = Field(..., min_length=1)
    type: str
    serial: str = ""
    location: str = ""
    year: Optional[int] = None
    status: MachineStatus = MachineStatus.OK
    operating_hours: int = Field(0, ge=0)
    maintenance_template_id: Optional[str] = None
    last_maintenance: Optional[datetime] = None
    next_maintenance: Optional[datetime] = None


class MachineUpdate(CamelModel):
    name: Optional[str] = None
    type: Optional[str] = None
    serial: Optional[str] = None
    location: Optional[str] = None
    year: Optional[int] = None
    status: Optional[MachineStatus] = None
    operating_hours: Optional[int] = Field(None, ge=0)
    maintenance_template_id: Optional[str] = None
    last_maintenance: Optional[datetime] = None
    next_maintenance: Optional[datetime] = None


class PartCreate(CamelModel):
    name: str = Field(..., min_length=1)
    part_number: str = ""
    stock: int = Field(0, ge=0)
    min_stock: int = Field(0, ge=0)
    machine_types: List[str] = Field(default_factory=list)


class PartUpdate(CamelModel):
    name: Optional[str] = None
    part_number: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    min_stock: Optional[int] = Field(None, ge=0)
    machine_types: Optional[List[str]] = None


class StockAdjustment(CamelModel):
    delta: int


class ComponentIn(CamelModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    interval_hours: int = Field(..., gt=0)
    category: ComponentCategory = ComponentCategory.OTHER
    tasks: List[str] = Field(default_factory=list)


class TemplateCreate(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    machine_type: Optional[str] = None
    components: List[ComponentIn] = Field(default_factory=list)


class TemplateUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    machine_type: Optional[str] = None
    components: Optional[List[ComponentIn]] = None


class TemplateAssignment(CamelModel):
    machine_ids: List[str] = Field(..., min_length=1)


class MaintenanceRecordCreate(CamelModel):
    machine_id: str
    technician: str = ""
    operating_hours: Optional[int] = Field(None, ge=0)
    notes: str = ""
    components_serviced: List[str] = Field(default_factory=list)
    parts_used: List[PartUsage] = Field(default_factory=list)


class MaintenanceCompletion(CamelModel):
    """Завершение обслуживания машины"""
    technician: str = ""
    component_ids: List[str] = Field(default_factory=list)
    parts_used: List[PartUsage] = Field(default_factory=list)
    notes: str = ""
    operating_hours: Optional[int] = Field(None, ge=0)


class UserCreate(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    name: str = ""
    email: str = ""
    role: UserRole = UserRole.VIEWER


class UserUpdate(CamelModel):
    username: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None


class MachineTypeCreate(CamelModel):
    code: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""


class MachineTypeUpdate(CamelModel):
    code: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None


class FloorPlanCreate(CamelModel):
    name: str = "New floor plan"
    image: Optional[str] = None
    machine_positions: Dict[str, MachinePosition] = Field(default_factory=dict)


class FloorPlanUpdate(CamelModel):
    name: Optional[str] = None
    image: Optional[str] = None
    machine_positions: Optional[Dict[str, MachinePosition]] = None


class NotificationCreate(CamelModel):
    message: str = Field(..., min_length=1)
    urgent: bool = False


class LoginRequest(CamelModel):
    username: str
    password: str


# ---------------------------------------------------------------------------
# Модели ответов
# ---------------------------------------------------------------------------

class ComponentHealth(CamelModel):
    component_id: str
    name: str
    interval_hours: int
    hours_since_service: Optional[int] = None
    remaining_hours: int
    status: ComponentStatus


class MachineHealth(CamelModel):
    machine_id: str
    template_id: str
    operating_hours: int
    components: List[ComponentHealth]
    next_due_hours: Optional[int] = None
    status: ComponentStatus


class CompletionResult(CamelModel):
    """Результат атомарного завершения обслуживания"""
    success: bool = True
    machine: Machine
    record: MaintenanceRecord
    parts: List[Part] = Field(default_factory=list)
    notifications: List[Notification] = Field(default_factory=list)


class DashboardStats(CamelModel):
    total_machines: int
    ok: int
    maintenance: int
    not_ok: int
    serviced: int
    total_operating_hours: int
    average_operating_hours: float
    maintenance_records: int
    low_stock_parts: int
    components_overdue: int
    components_warning: int


class StatusResponse(CamelModel):
    status: str
    version: str
    timestamp: datetime


class LoginResponse(CamelModel):
    success: bool = True
    user: UserPublic


class ErrorResponse(BaseModel):
    """Стандартный ответ об ошибке"""
    error: str = Field(..., description="Текст ошибки")
    error_code: Optional[str] = Field(None, description="Код ошибки")
