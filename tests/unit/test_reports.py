"""
Unit тесты отчётов
"""

from datetime import timedelta

from loomcare.models import (
    MachineCreate,
    MachineStatus,
    MachineUpdate,
    MaintenanceCompletion,
    PartCreate,
)
from loomcare.services import reports


class TestDashboard:
    """Тесты статистики для дашборда"""

    def test_empty_document(self, repository):
        stats = reports.dashboard_stats(repository.document)

        assert stats.total_machines == 0
        assert stats.average_operating_hours == 0.0

    def test_counts_statuses_and_components(self, repository, serviced_machine):
        machine, _, _ = serviced_machine
        repository.create_machine(MachineCreate(
            name="M2", type="A1", operating_hours=300, status=MachineStatus.NOT_OK,
        ))
        repository.update_machine(machine.id, MachineUpdate(operating_hours=560))

        stats = reports.dashboard_stats(repository.document)

        assert stats.total_machines == 2
        assert stats.ok == 1
        assert stats.not_ok == 1
        assert stats.total_operating_hours == 860
        assert stats.average_operating_hours == 430.0
        assert stats.components_warning == 1
        assert stats.components_overdue == 0
        assert stats.low_stock_parts == 1


class TestSearch:
    """Тесты поиска машин"""

    def test_query_matches_serial_and_location(self, repository):
        repository.create_machine(MachineCreate(name="Rapier 01", type="P2", serial="SN-77"))
        repository.create_machine(MachineCreate(name="Rapier 02", type="P2", location="Hall B"))

        assert [m.name for m in reports.search_machines(repository.document, "sn-77")] == ["Rapier 01"]
        assert [m.name for m in reports.search_machines(repository.document, "hall b")] == ["Rapier 02"]

    def test_filters(self, repository):
        repository.create_machine(MachineCreate(name="Rapier 01", type="P2"))
        repository.create_machine(MachineCreate(name="Airjet 01", type="A1",
                                                status=MachineStatus.MAINTENANCE))

        by_type = reports.search_machines(repository.document, machine_type="a1")
        by_status = reports.search_machines(repository.document, status=MachineStatus.OK)

        assert [m.name for m in by_type] == ["Airjet 01"]
        assert [m.name for m in by_status] == ["Rapier 01"]


class TestHistoryExport:
    """Тесты выгрузки истории"""

    def test_dataframe_newest_first(self, repository, serviced_machine):
        machine, template, part = serviced_machine
        first = repository.complete_maintenance(machine.id, MaintenanceCompletion(
            component_ids=[template.components[0].id],
        ))
        first.record.timestamp -= timedelta(days=1)
        repository.complete_maintenance(machine.id, MaintenanceCompletion(
            component_ids=[template.components[1].id],
            parts_used=[{"partId": part.id, "quantity": 1}],
        ))

        df = reports.history_dataframe(repository.document)

        assert list(df.columns) == reports.HISTORY_COLUMNS
        assert len(df) == 2
        assert df.iloc[0]["partsUsed"] == f"{part.id}x1"
        assert df.iloc[1]["machineName"] == "M1"

    def test_filter_by_machine(self, repository, serviced_machine):
        machine, template, _ = serviced_machine
        repository.complete_maintenance(machine.id, MaintenanceCompletion(
            component_ids=[template.components[0].id],
        ))

        assert len(reports.history_dataframe(repository.document, "id-other")) == 0
        csv = reports.export_history_csv(repository.document, machine.id)
        assert csv.splitlines()[0] == ",".join(reports.HISTORY_COLUMNS)

    def test_low_stock_parts(self, repository):
        repository.create_part(PartCreate(name="Belt", stock=1, min_stock=2))
        repository.create_part(PartCreate(name="Oil", stock=9, min_stock=2))

        assert [p.name for p in reports.low_stock_parts(repository.document)] == ["Belt"]
