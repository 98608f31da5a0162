"""
Начальный документ для пустого хранилища
"""

from typing import Any, Dict

from loomcare.models import (
    Component,
    ComponentCategory,
    Machine,
    MachineStatus,
    MachineType,
    MaintenanceDocument,
    MaintenanceTemplate,
    Part,
    User,
    UserRole,
)
from loomcare.services.auth import hash_password
from loomcare.services.maintenance import initialize_component_states
from loomcare.utils.helpers import generate_id, utcnow

DEFAULT_USERS = [
    ("admin", "admin123", "Administrator", UserRole.ADMIN),
    ("tech", "tech123", "Technician", UserRole.TECHNICIAN),
    ("viewer", "viewer123", "Viewer", UserRole.VIEWER),
]

DEFAULT_MACHINE_TYPES = [
    ("P2", "Rapier weaving machine P2", "Rapier weaving machine, second generation"),
    ("P1", "Rapier weaving machine P1", "Rapier weaving machine, first generation"),
    ("A1", "Air-jet weaving machine A1", "Air-jet weaving machine"),
    ("LWV", "LWV weaving machine", "Special purpose weaving machine"),
]


def _rapier_template() -> MaintenanceTemplate:
    return MaintenanceTemplate(
        id=generate_id("tpl"),
        name="Rapier standard maintenance",
        description="Standard maintenance plan for rapier weaving machines",
        machine_type="P2",
        components=[
            Component(name="Gripper mechanism", interval_hours=500,
                      category=ComponentCategory.MECHANICAL,
                      tasks=["Inspect", "Lubricate", "Adjust"]),
            Component(name="Drive belt", interval_hours=1000,
                      category=ComponentCategory.MECHANICAL,
                      tasks=["Check tension", "Check for wear"]),
            Component(name="Reed", interval_hours=750,
                      category=ComponentCategory.CLEANING,
                      tasks=["Clean", "Check for damage"]),
            Component(name="Oil level", interval_hours=500,
                      category=ComponentCategory.LUBRICATION,
                      tasks=["Check", "Refill"]),
            Component(name="Electrical connections", interval_hours=2000,
                      category=ComponentCategory.ELECTRICAL,
                      tasks=["Inspect", "Clean contacts"]),
        ],
    )


def _airjet_template() -> MaintenanceTemplate:
    return MaintenanceTemplate(
        id=generate_id("tpl"),
        name="Air-jet standard maintenance",
        description="Standard maintenance plan for air-jet weaving machines",
        machine_type="A1",
        components=[
            Component(name="Air nozzles", interval_hours=250,
                      category=ComponentCategory.PNEUMATIC,
                      tasks=["Clean", "Check for blockage"]),
            Component(name="Air filter", interval_hours=500,
                      category=ComponentCategory.PNEUMATIC,
                      tasks=["Replace"]),
            Component(name="Compressor unit", interval_hours=1000,
                      category=ComponentCategory.PNEUMATIC,
                      tasks=["Service", "Check oil level"]),
            Component(name="Main motor", interval_hours=2000,
                      category=ComponentCategory.MECHANICAL,
                      tasks=["Service"]),
        ],
    )


def build_default_document(include_samples: bool = True) -> MaintenanceDocument:
    """
    Документ по умолчанию: пользователи и типы машин, опционально
    примеры шаблонов, машин и запчастей
    """
    now = utcnow()
    document = MaintenanceDocument(
        users=[
            User(
                id=generate_id("user"),
                username=username,
                password_hash=hash_password(password),
                name=name,
                email=f"{username}@loomcare.local",
                role=role,
                created=now,
            )
            for username, password, name, role in DEFAULT_USERS
        ],
        machine_types=[
            MachineType(id=generate_id("mt"), code=code, name=name, description=description)
            for code, name, description in DEFAULT_MACHINE_TYPES
        ],
    )

    if not include_samples:
        return document

    rapier = _rapier_template()
    airjet = _airjet_template()
    document.maintenance_templates = [rapier, airjet]

    samples = [
        ("Rapier 01", "P2", "P2-1001", "Hall A", 2019, 1200, rapier),
        ("Rapier 02", "P2", "P2-1002", "Hall A", 2020, 450, rapier),
        ("Air-jet 01", "A1", "A1-2001", "Hall B", 2021, 800, airjet),
    ]
    for name, machine_type, serial, location, year, hours, template in samples:
        document.machines.append(Machine(
            id=generate_id("id"),
            name=name,
            type=machine_type,
            serial=serial,
            location=location,
            year=year,
            status=MachineStatus.OK,
            operating_hours=hours,
            maintenance_template_id=template.id,
            component_states=initialize_component_states(template, hours, now),
        ))

    document.parts = [
        Part(id=generate_id("part"), name="Gripper tape", part_number="GT-100",
             stock=12, min_stock=4, machine_types=["P2", "P1"]),
        Part(id=generate_id("part"), name="Drive belt", part_number="DB-220",
             stock=3, min_stock=2, machine_types=["P2"]),
        Part(id=generate_id("part"), name="Air filter cartridge", part_number="AF-050",
             stock=8, min_stock=5, machine_types=["A1"]),
    ]
    return document


def default_document_dict(include_samples: bool = True) -> Dict[str, Any]:
    return build_default_document(include_samples).to_wire()
