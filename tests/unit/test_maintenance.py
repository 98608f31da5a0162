"""
Unit тесты модели интервалов обслуживания
"""

import pytest

from loomcare.models import (
    Component,
    ComponentIn,
    ComponentState,
    ComponentStatus,
    Machine,
    MachineCreate,
    MachineUpdate,
    MaintenanceTemplate,
    TemplateCreate,
)
from loomcare.services import maintenance


def _template(*intervals) -> MaintenanceTemplate:
    return MaintenanceTemplate(
        id="tpl-1",
        name="Test template",
        components=[
            Component(id=f"cmp-{i}", name=f"Component {i}", interval_hours=interval)
            for i, interval in enumerate(intervals)
        ],
    )


def _machine(hours: int, template: MaintenanceTemplate = None) -> Machine:
    machine = Machine(id="id-1", name="M1", type="P2", operating_hours=hours)
    if template is not None:
        maintenance.assign_template(machine, template)
    return machine


class TestClassify:
    """Тесты классификации остатка часов"""

    def test_ok(self):
        assert maintenance.classify(51, 500) == ComponentStatus.OK

    def test_warning_at_ten_percent(self):
        """Остаток ровно 10% интервала уже warning"""
        assert maintenance.classify(50, 500) == ComponentStatus.WARNING

    def test_overdue_at_zero(self):
        assert maintenance.classify(0, 500) == ComponentStatus.OVERDUE

    def test_overdue_negative(self):
        assert maintenance.classify(-1, 500) == ComponentStatus.OVERDUE

    @pytest.mark.parametrize("interval", [1, 7, 10, 99, 100, 500, 1000])
    def test_threshold_properties(self, interval):
        """remaining < 0 => overdue, 0 < remaining < 10% => warning, > 10% => ok"""
        for elapsed in range(0, 2 * interval + 2):
            remaining = interval - elapsed
            status = maintenance.classify(remaining, interval)
            if remaining < 0:
                assert status == ComponentStatus.OVERDUE
            elif 0 < remaining < 0.1 * interval:
                assert status == ComponentStatus.WARNING
            elif remaining > 0.1 * interval:
                assert status == ComponentStatus.OK


class TestRemainingHours:
    """Тесты расчёта остатка часов"""

    def test_remaining_is_interval_minus_elapsed(self):
        component = Component(id="c", name="Belt", interval_hours=1000)
        state = ComponentState(last_maintenance_hours=200)

        assert maintenance.remaining_hours(component, state, 950) == 250

    def test_missing_state_is_due_now(self):
        """Компонент без состояния считается подлежащим обслуживанию"""
        template = _template(500)
        machine = _machine(100)
        machine.maintenance_template_id = template.id

        health = maintenance.component_health(machine, template.components[0])

        assert health.remaining_hours == 0
        assert health.hours_since_service is None
        assert health.status == ComponentStatus.OVERDUE


class TestTemplateAssignment:
    """Тесты назначения шаблона и сброса состояний"""

    def test_fresh_assignment_has_full_intervals(self):
        template = _template(250, 500, 2000)
        machine = _machine(1234, template)

        health = maintenance.machine_health(machine, template)

        assert [c.remaining_hours for c in health.components] == [250, 500, 2000]
        assert health.status == ComponentStatus.OK

    def test_reassignment_discards_old_states(self):
        old = _template(500)
        machine = _machine(100, old)
        machine.operating_hours = 700

        new = MaintenanceTemplate(
            id="tpl-2",
            name="Other",
            components=[Component(id="cmp-x", name="Nozzle", interval_hours=250)],
        )
        maintenance.assign_template(machine, new)

        assert set(machine.component_states) == {"cmp-x"}
        assert machine.component_states["cmp-x"].last_maintenance_hours == 700

    def test_reset_restores_full_interval(self):
        template = _template(500)
        machine = _machine(0, template)
        machine.operating_hours = 480

        maintenance.reset_components(machine, ["cmp-0"])
        health = maintenance.machine_health(machine, template)

        assert health.components[0].remaining_hours == 500

    def test_sync_drops_removed_and_initializes_new(self):
        template = _template(500, 1000)
        machine = _machine(0, template)
        machine.operating_hours = 300

        changed = MaintenanceTemplate(
            id=template.id,
            name=template.name,
            components=[
                template.components[0],
                Component(id="cmp-new", name="Reed", interval_hours=750),
            ],
        )
        maintenance.sync_component_states(machine, changed)

        assert set(machine.component_states) == {"cmp-0", "cmp-new"}
        assert machine.component_states["cmp-0"].last_maintenance_hours == 0
        assert machine.component_states["cmp-new"].last_maintenance_hours == 300


class TestMachineHealth:
    """Тесты сводного состояния машины"""

    def test_without_template(self):
        assert maintenance.machine_health(_machine(100), None) is None

    def test_dangling_template_reference(self):
        machine = _machine(100)
        machine.maintenance_template_id = "tpl-missing"

        assert maintenance.machine_health(machine, _template(500)) is None

    def test_worst_status_and_next_due(self):
        template = _template(100, 1000)
        machine = _machine(0, template)
        machine.operating_hours = 95

        health = maintenance.machine_health(machine, template)

        assert health.next_due_hours == 5
        assert health.status == ComponentStatus.WARNING
        assert health.components[1].status == ComponentStatus.OK


class TestEndToEndScenario:
    """Сценарий: тип P2, шаблон с интервалом 500, наработка 0 -> 450 -> 500"""

    def test_warning_then_overdue(self, repository):
        template = repository.create_template(TemplateCreate(
            name="T1",
            machine_type="P2",
            components=[ComponentIn(name="Gripper", interval_hours=500)],
        ))
        machine = repository.create_machine(MachineCreate(
            name="M1",
            type="P2",
            operating_hours=0,
            maintenance_template_id=template.id,
        ))

        health = repository.machine_health(machine.id)
        assert health.components[0].remaining_hours == 500
        assert health.components[0].status == ComponentStatus.OK

        repository.update_machine(machine.id, MachineUpdate(operating_hours=450))
        health = repository.machine_health(machine.id)
        assert health.components[0].remaining_hours == 50
        assert health.components[0].status == ComponentStatus.WARNING

        repository.update_machine(machine.id, MachineUpdate(operating_hours=500))
        health = repository.machine_health(machine.id)
        assert health.components[0].remaining_hours == 0
        assert health.components[0].status == ComponentStatus.OVERDUE
