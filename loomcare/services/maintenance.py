"""
Модель интервалов обслуживания: остаток часов по компонентам машины

Состояние компонента хранит часы машины на момент последнего обслуживания.
Компонент без состояния считается никогда не обслуживавшимся и подлежит
обслуживанию немедленно (остаток 0, статус overdue).
"""

from datetime import datetime
from typing import Dict, Iterable, Optional

from loomcare.models import (
    Component,
    ComponentHealth,
    ComponentState,
    ComponentStatus,
    Machine,
    MachineHealth,
    MaintenanceTemplate,
)
from loomcare.utils.helpers import utcnow

# Доля интервала, ниже которой компонент переходит в warning
WARNING_RATIO_DENOMINATOR = 10

_SEVERITY = {
    ComponentStatus.OK: 0,
    ComponentStatus.WARNING: 1,
    ComponentStatus.OVERDUE: 2,
}


def hours_since_service(state: ComponentState, operating_hours: int) -> int:
    return operating_hours - state.last_maintenance_hours


def remaining_hours(component: Component,
                    state: Optional[ComponentState],
                    operating_hours: int) -> int:
    """
    Остаток часов до обслуживания компонента
    """
    if state is None:
        return 0
    return component.interval_hours - hours_since_service(state, operating_hours)


def classify(remaining: int, interval_hours: int) -> ComponentStatus:
    """
    Классификация остатка: <= 0 overdue, <= 10% интервала warning, иначе ok
    """
    if remaining <= 0:
        return ComponentStatus.OVERDUE
    # Целочисленное сравнение с 10% интервала
    if remaining * WARNING_RATIO_DENOMINATOR <= interval_hours:
        return ComponentStatus.WARNING
    return ComponentStatus.OK


def component_health(machine: Machine, component: Component) -> ComponentHealth:
    state = machine.component_states.get(component.id)
    remaining = remaining_hours(component, state, machine.operating_hours)
    return ComponentHealth(
        component_id=component.id,
        name=component.name,
        interval_hours=component.interval_hours,
        hours_since_service=(
            hours_since_service(state, machine.operating_hours) if state else None
        ),
        remaining_hours=remaining,
        status=classify(remaining, component.interval_hours),
    )


def machine_health(machine: Machine,
                   template: Optional[MaintenanceTemplate]) -> Optional[MachineHealth]:
    """
    Сводное состояние машины по всем компонентам шаблона.

    Возвращает None, если шаблон не назначен или ссылка на него
    не разрешается (документ не проверяет внешние ключи).
    """
    if template is None or machine.maintenance_template_id != template.id:
        return None

    components = [component_health(machine, c) for c in template.components]
    if components:
        next_due = min(c.remaining_hours for c in components)
        worst = max((c.status for c in components), key=_SEVERITY.__getitem__)
    else:
        next_due = None
        worst = ComponentStatus.OK

    return MachineHealth(
        machine_id=machine.id,
        template_id=template.id,
        operating_hours=machine.operating_hours,
        components=components,
        next_due_hours=next_due,
        status=worst,
    )


def initialize_component_states(template: Optional[MaintenanceTemplate],
                                operating_hours: int,
                                when: Optional[datetime] = None) -> Dict[str, ComponentState]:
    """
    Новые состояния всех компонентов шаблона на текущих часах машины
    """
    if template is None:
        return {}
    when = when or utcnow()
    return {
        component.id: ComponentState(
            last_maintenance_hours=operating_hours,
            last_maintenance_date=when,
        )
        for component in template.components
    }


def assign_template(machine: Machine, template: MaintenanceTemplate,
                    when: Optional[datetime] = None):
    """
    Назначение шаблона: прежние состояния отбрасываются целиком
    """
    machine.maintenance_template_id = template.id
    machine.component_states = initialize_component_states(
        template, machine.operating_hours, when
    )


def clear_template(machine: Machine):
    machine.maintenance_template_id = None
    machine.component_states = {}


def sync_component_states(machine: Machine, template: MaintenanceTemplate,
                          when: Optional[datetime] = None):
    """
    Согласование состояний после изменения шаблона: удалённые компоненты
    отбрасываются, новые инициализируются на текущих часах
    """
    when = when or utcnow()
    component_ids = {c.id for c in template.components}
    states = {
        cid: state for cid, state in machine.component_states.items()
        if cid in component_ids
    }
    for component in template.components:
        if component.id not in states:
            states[component.id] = ComponentState(
                last_maintenance_hours=machine.operating_hours,
                last_maintenance_date=when,
            )
    machine.component_states = states


def reset_components(machine: Machine, component_ids: Iterable[str],
                     when: Optional[datetime] = None):
    """
    Отметка обслуживания компонентов на текущих часах машины
    """
    when = when or utcnow()
    for component_id in component_ids:
        machine.component_states[component_id] = ComponentState(
            last_maintenance_hours=machine.operating_hours,
            last_maintenance_date=when,
        )
