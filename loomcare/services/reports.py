"""
Отчёты: статистика для дашборда, поиск машин, экспорт истории
"""

from typing import List, Optional

import pandas as pd

from loomcare.models import (
    ComponentStatus,
    DashboardStats,
    Machine,
    MachineStatus,
    MaintenanceDocument,
    Part,
)
from loomcare.services.maintenance import machine_health

HISTORY_COLUMNS = [
    "timestamp",
    "machineId",
    "machineName",
    "technician",
    "operatingHours",
    "componentsServiced",
    "partsUsed",
    "notes",
]


def dashboard_stats(document: MaintenanceDocument) -> DashboardStats:
    """
    Сводная статистика по парку машин, складу и интервалам обслуживания
    """
    machines = document.machines
    by_status = {status: 0 for status in MachineStatus}
    for machine in machines:
        by_status[machine.status] += 1

    templates = {t.id: t for t in document.maintenance_templates}
    overdue = 0
    warning = 0
    for machine in machines:
        health = machine_health(machine, templates.get(machine.maintenance_template_id))
        if health is None:
            continue
        overdue += sum(1 for c in health.components if c.status == ComponentStatus.OVERDUE)
        warning += sum(1 for c in health.components if c.status == ComponentStatus.WARNING)

    total_hours = sum(m.operating_hours for m in machines)
    return DashboardStats(
        total_machines=len(machines),
        ok=by_status[MachineStatus.OK],
        maintenance=by_status[MachineStatus.MAINTENANCE],
        not_ok=by_status[MachineStatus.NOT_OK],
        serviced=by_status[MachineStatus.SERVICED],
        total_operating_hours=total_hours,
        average_operating_hours=round(total_hours / len(machines), 1) if machines else 0.0,
        maintenance_records=len(document.maintenance_history),
        low_stock_parts=len(low_stock_parts(document)),
        components_overdue=overdue,
        components_warning=warning,
    )


def low_stock_parts(document: MaintenanceDocument) -> List[Part]:
    return [part for part in document.parts if part.is_low_stock]


def search_machines(document: MaintenanceDocument, query: Optional[str] = None,
                    status: Optional[MachineStatus] = None,
                    machine_type: Optional[str] = None) -> List[Machine]:
    """
    Поиск машин по подстроке (имя, серийный номер, место) и фильтрам
    """
    needle = query.strip().lower() if query else ""
    code = machine_type.strip().upper() if machine_type else None

    result = []
    for machine in document.machines:
        if status is not None and machine.status != status:
            continue
        if code is not None and machine.type != code:
            continue
        if needle and not any(
            needle in value.lower()
            for value in (machine.name, machine.serial, machine.location)
        ):
            continue
        result.append(machine)
    return result


def history_dataframe(document: MaintenanceDocument,
                      machine_id: Optional[str] = None) -> pd.DataFrame:
    names = {m.id: m.name for m in document.machines}
    rows = [
        {
            "timestamp": record.timestamp.isoformat(),
            "machineId": record.machine_id,
            "machineName": names.get(record.machine_id, ""),
            "technician": record.technician,
            "operatingHours": record.operating_hours,
            "componentsServiced": ";".join(record.components_serviced),
            "partsUsed": ";".join(f"{u.part_id}x{u.quantity}" for u in record.parts_used),
            "notes": record.notes,
        }
        for record in document.maintenance_history
        if machine_id is None or record.machine_id == machine_id
    ]
    df = pd.DataFrame(rows, columns=HISTORY_COLUMNS)
    return df.sort_values("timestamp", ascending=False, ignore_index=True)


def export_history_csv(document: MaintenanceDocument,
                       machine_id: Optional[str] = None) -> str:
    return history_dataframe(document, machine_id).to_csv(index=False)
