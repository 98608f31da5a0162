"""
Unit тесты операций над документом
"""

import pytest

from loomcare.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from loomcare.models import (
    ComponentIn,
    FloorPlanCreate,
    MachineCreate,
    MachinePosition,
    MachineStatus,
    MachineTypeCreate,
    MachineUpdate,
    MaintenanceCompletion,
    PartCreate,
    PartUpdate,
    PartUsage,
    TemplateCreate,
    TemplateUpdate,
    UserCreate,
    UserUpdate,
)


class TestCompleteMaintenance:
    """Тесты атомарного завершения обслуживания"""

    def test_parts_deducted_and_low_stock_notification(self, repository, serviced_machine):
        machine, template, part = serviced_machine
        component_id = template.components[0].id

        result = repository.complete_maintenance(machine.id, MaintenanceCompletion(
            technician="Tech",
            component_ids=[component_id],
            parts_used=[PartUsage(part_id=part.id, quantity=2)],
        ))

        assert repository.get_part(part.id).stock == 1
        assert len(result.notifications) == 1
        assert result.notifications[0].urgent is True
        assert "Gripper tape" in result.notifications[0].message
        assert len(repository.document.maintenance_history) == 1
        assert result.record.parts_used[0].quantity == 2

    def test_insufficient_stock_changes_nothing(self, repository, serviced_machine):
        machine, template, part = serviced_machine
        states_before = dict(machine.component_states)

        with pytest.raises(ValidationError) as exc_info:
            repository.complete_maintenance(machine.id, MaintenanceCompletion(
                component_ids=[template.components[0].id],
                parts_used=[PartUsage(part_id=part.id, quantity=5)],
            ))

        assert exc_info.value.error_code == "INSUFFICIENT_STOCK"
        assert repository.get_part(part.id).stock == 3
        assert repository.document.maintenance_history == []
        assert repository.document.notifications == []
        assert repository.get_machine(machine.id).status == MachineStatus.OK
        assert repository.get_machine(machine.id).component_states == states_before

    def test_all_parts_checked_before_deduction(self, repository, serviced_machine):
        machine, template, part = serviced_machine
        plenty = repository.create_part(PartCreate(name="Oil", stock=50))

        with pytest.raises(ValidationError):
            repository.complete_maintenance(machine.id, MaintenanceCompletion(
                component_ids=[template.components[0].id],
                parts_used=[
                    PartUsage(part_id=plenty.id, quantity=10),
                    PartUsage(part_id=part.id, quantity=4),
                ],
            ))

        assert repository.get_part(plenty.id).stock == 50
        assert repository.get_part(part.id).stock == 3

    def test_repeated_part_quantities_are_summed(self, repository, serviced_machine):
        machine, template, part = serviced_machine

        with pytest.raises(ValidationError):
            repository.complete_maintenance(machine.id, MaintenanceCompletion(
                component_ids=[template.components[0].id],
                parts_used=[
                    PartUsage(part_id=part.id, quantity=2),
                    PartUsage(part_id=part.id, quantity=2),
                ],
            ))

        assert repository.get_part(part.id).stock == 3

    def test_component_state_reset_and_status(self, repository, serviced_machine):
        machine, template, _ = serviced_machine
        component_id = template.components[0].id

        result = repository.complete_maintenance(machine.id, MaintenanceCompletion(
            component_ids=[component_id],
            operating_hours=580,
        ))

        updated = result.machine
        assert updated.operating_hours == 580
        assert updated.component_states[component_id].last_maintenance_hours == 580
        assert updated.status == MachineStatus.SERVICED
        assert (updated.next_maintenance - updated.last_maintenance).days == 60
        health = repository.machine_health(machine.id)
        assert health.components[0].remaining_hours == 500
        # Необслуженный компонент продолжает отсчёт
        assert health.components[1].remaining_hours == 1000 - 480

    def test_unknown_component_rejected(self, repository, serviced_machine):
        machine, _, _ = serviced_machine

        with pytest.raises(ValidationError) as exc_info:
            repository.complete_maintenance(machine.id, MaintenanceCompletion(
                component_ids=["cmp-unknown"],
            ))

        assert exc_info.value.error_code == "UNKNOWN_COMPONENT"

    def test_component_required_when_template_assigned(self, repository, serviced_machine):
        machine, _, _ = serviced_machine

        with pytest.raises(ValidationError):
            repository.complete_maintenance(machine.id, MaintenanceCompletion())

    def test_hours_cannot_decrease(self, repository, serviced_machine):
        machine, template, _ = serviced_machine

        with pytest.raises(ValidationError):
            repository.complete_maintenance(machine.id, MaintenanceCompletion(
                component_ids=[template.components[0].id],
                operating_hours=50,
            ))

    def test_unknown_machine(self, repository):
        with pytest.raises(NotFoundError):
            repository.complete_maintenance("id-missing", MaintenanceCompletion())


class TestTemplates:
    """Тесты шаблонов обслуживания"""

    def test_delete_referenced_template_is_blocked(self, repository, serviced_machine):
        _, template, _ = serviced_machine

        with pytest.raises(ConflictError) as exc_info:
            repository.delete_template(template.id)

        assert exc_info.value.error_code == "TEMPLATE_IN_USE"
        assert [t.id for t in repository.list_templates()] == [template.id]

    def test_delete_unreferenced_template(self, repository):
        template = repository.create_template(TemplateCreate(name="Unused"))

        repository.delete_template(template.id)

        assert repository.list_templates() == []

    def test_update_components_resyncs_machines(self, repository, serviced_machine):
        machine, template, _ = serviced_machine
        kept = template.components[0]
        repository.update_machine(machine.id, MachineUpdate(operating_hours=300))

        repository.update_template(template.id, TemplateUpdate(components=[
            ComponentIn(id=kept.id, name=kept.name, interval_hours=kept.interval_hours),
            ComponentIn(name="Reed", interval_hours=750),
        ]))

        states = repository.get_machine(machine.id).component_states
        assert len(states) == 2
        assert states[kept.id].last_maintenance_hours == 100
        new_id = next(cid for cid in states if cid != kept.id)
        assert states[new_id].last_maintenance_hours == 300

    def test_assign_template_to_machines(self, repository, serviced_machine):
        machine, template, _ = serviced_machine
        other = repository.create_machine(MachineCreate(name="M2", type="A1", operating_hours=900))

        machines = repository.assign_template(template.id, [other.id])

        assert machines[0].maintenance_template_id == template.id
        health = repository.machine_health(other.id)
        assert [c.remaining_hours for c in health.components] == [500, 1000]

    def test_duplicate_component_ids_rejected(self, repository):
        with pytest.raises(ValidationError):
            repository.create_template(TemplateCreate(name="Dup", components=[
                ComponentIn(id="cmp-a", name="A", interval_hours=10),
                ComponentIn(id="cmp-a", name="B", interval_hours=20),
            ]))


class TestUpdates:
    """Тесты явных обновлений: пропущенное поле не меняется, null очищает"""

    def test_omitted_fields_unchanged(self, repository, serviced_machine):
        machine, _, _ = serviced_machine

        updated = repository.update_machine(machine.id, MachineUpdate(location="Hall C"))

        assert updated.location == "Hall C"
        assert updated.name == "M1"
        assert updated.operating_hours == 100

    def test_explicit_null_clears_nullable_field(self, repository, serviced_machine):
        machine, _, _ = serviced_machine

        updated = repository.update_machine(
            machine.id, MachineUpdate(maintenance_template_id=None, year=None)
        )

        assert updated.maintenance_template_id is None
        assert updated.component_states == {}
        assert repository.machine_health(machine.id) is None

    def test_explicit_null_on_required_field_rejected(self, repository, serviced_machine):
        machine, _, _ = serviced_machine

        with pytest.raises(ValidationError):
            repository.update_machine(machine.id, MachineUpdate(name=None))

    def test_operating_hours_cannot_decrease(self, repository, serviced_machine):
        machine, _, _ = serviced_machine

        with pytest.raises(ValidationError) as exc_info:
            repository.update_machine(machine.id, MachineUpdate(operating_hours=99))

        assert exc_info.value.error_code == "HOURS_DECREASE"

    def test_unknown_machine_type_rejected(self, repository):
        with pytest.raises(ValidationError):
            repository.create_machine(MachineCreate(name="X", type="ZZ"))

    def test_part_update_revalidates(self, repository):
        part = repository.create_part(PartCreate(name="Belt", stock=2))

        with pytest.raises(ValidationError):
            repository.update_part(part.id, PartUpdate(min_stock=None))

    def test_adjust_stock_never_negative(self, repository):
        part = repository.create_part(PartCreate(name="Belt", stock=2, min_stock=1))

        with pytest.raises(ValidationError):
            repository.adjust_stock(part.id, -3)

        assert repository.adjust_stock(part.id, -2).stock == 0
        assert len(repository.list_notifications()) == 1

    def test_consumption_below_minimum_notifies_each_time(self, repository):
        part = repository.create_part(PartCreate(name="Gripper tape", stock=3, min_stock=5))

        assert repository.adjust_stock(part.id, -2).stock == 1
        assert len(repository.list_notifications()) == 1
        assert repository.list_notifications()[0].urgent is True

        repository.adjust_stock(part.id, -1)
        assert len(repository.list_notifications()) == 2

    def test_restock_does_not_notify(self, repository):
        part = repository.create_part(PartCreate(name="Gripper tape", stock=1, min_stock=5))

        repository.adjust_stock(part.id, 2)

        assert repository.list_notifications() == []


class TestReferences:
    """Тесты ссылочной целостности и уникальности"""

    def test_duplicate_username(self, repository):
        with pytest.raises(ConflictError):
            repository.create_user(UserCreate(username="admin", password="x"))

    def test_duplicate_machine_type_code(self, repository):
        with pytest.raises(ConflictError):
            repository.create_machine_type(MachineTypeCreate(code="p2"))

    def test_delete_referenced_machine_type(self, repository, serviced_machine):
        p2 = repository.find_machine_type_by_code("P2")

        with pytest.raises(ConflictError):
            repository.delete_machine_type(p2.id)

    def test_delete_unused_machine_type(self, repository):
        lwv = repository.find_machine_type_by_code("LWV")

        repository.delete_machine_type(lwv.id)

        assert repository.find_machine_type_by_code("LWV") is None

    def test_delete_machine_removes_floor_plan_positions(self, repository, serviced_machine):
        machine, _, _ = serviced_machine
        plan = repository.create_floor_plan(FloorPlanCreate(name="Hall A"))
        repository.set_machine_position(plan.id, machine.id, MachinePosition(x=10, y=20))

        repository.delete_machine(machine.id)

        assert repository.get_floor_plan(plan.id).machine_positions == {}

    def test_position_for_unknown_machine(self, repository):
        plan = repository.create_floor_plan(FloorPlanCreate(name="Hall A"))

        with pytest.raises(NotFoundError):
            repository.set_machine_position(plan.id, "id-missing", MachinePosition(x=1, y=1))


class TestAuthentication:
    """Тесты проверки учётных данных"""

    def test_valid_credentials(self, repository):
        user = repository.authenticate("admin", "admin123")

        assert user.role.value == "admin"

    def test_wrong_password(self, repository):
        with pytest.raises(AuthenticationError):
            repository.authenticate("admin", "wrong")

    def test_password_change(self, repository):
        user = repository.create_user(UserCreate(username="anna", password="first"))
        repository.update_user(user.id, UserUpdate(password="second"))

        assert repository.authenticate("anna", "second").id == user.id
        with pytest.raises(AuthenticationError):
            repository.authenticate("anna", "first")

    def test_public_users_have_no_hash(self, repository):
        for user in repository.list_users():
            assert "password_hash" not in user.model_dump()
