"""
Unit тесты хранилища документа
"""

import glob
import json
import os

import pytest

from loomcare.core.exceptions import ServiceUnavailableError, StorageError, ValidationError
from loomcare.services.storage import DocumentStore
from loomcare.utils.helpers import utcnow


def _sample_document():
    return {
        "machines": [
            {
                "id": "id-1",
                "name": "Rapier 01",
                "type": "P2",
                "operatingHours": 1200,
                "componentStates": {
                    "cmp-1": {"lastMaintenanceHours": 1000, "lastMaintenanceDate": None}
                },
            }
        ],
        "parts": [{"id": "part-1", "name": "Belt", "stock": 4, "minStock": 2}],
        "maintenanceHistory": [],
        "notifications": [],
        "users": [],
        "machineTypes": [{"id": "mt-1", "code": "P2", "name": "Rapier"}],
        "maintenanceTemplates": [],
        "floorPlans": [],
    }


class TestDocumentStore:
    """Тесты чтения и записи документа"""

    def test_initialize_seeds_default_document(self, store):
        data = store.read()

        assert {u["username"] for u in data["users"]} == {"admin", "tech", "viewer"}
        assert {t["code"] for t in data["machineTypes"]} == {"P2", "P1", "A1", "LWV"}
        assert all("password" not in u for u in data["users"])
        assert data["lastModified"] is not None

    def test_round_trip(self, store):
        document = _sample_document()

        store.write(document)
        loaded = store.read()

        assert loaded.pop("lastModified") is not None
        assert loaded == document

    def test_write_stamps_last_modified(self, store):
        before = utcnow().isoformat()
        written = store.write(_sample_document())

        assert written["lastModified"] >= before
        assert store.read()["lastModified"] == written["lastModified"]

    def test_backups_are_pruned(self, store):
        for i in range(15):
            document = _sample_document()
            document["parts"][0]["stock"] = i
            store.write(document)

        backups = store.list_backups()
        assert len(backups) == 10
        # Самая новая копия содержит предпоследнюю запись
        with open(backups[-1], encoding="utf-8") as f:
            assert json.load(f)["parts"][0]["stock"] == 13

    def test_failed_backup_does_not_block_write(self, store, monkeypatch):
        def failing_open(*args, **kwargs):
            raise OSError("read-only backup location")

        monkeypatch.setattr("loomcare.services.storage.open", failing_open, raising=False)

        store.write(_sample_document())

        assert store.read()["parts"][0]["name"] == "Belt"

    def test_failed_write_keeps_previous_file(self, store, monkeypatch):
        store.write(_sample_document())
        previous = store.read()

        def failing_save(data, path):
            raise OSError("disk full")

        monkeypatch.setattr("loomcare.services.storage.save_json", failing_save)

        with pytest.raises(StorageError):
            store.write({"machines": []})

        assert store.read() == previous
        assert glob.glob(os.path.join(store.data_dir, ".maintenance-*.tmp")) == []

    def test_read_missing_file_returns_none(self, tmp_path):
        document_store = DocumentStore(str(tmp_path / "absent.json"))

        assert document_store.read() is None
        with pytest.raises(ServiceUnavailableError):
            document_store.load()

    def test_read_corrupt_file_returns_none(self, store):
        with open(store.data_file, "w", encoding="utf-8") as f:
            f.write('{"machines": [')

        assert store.read() is None
        with pytest.raises(ServiceUnavailableError):
            store.load()


class TestTransactions:
    """Тесты транзакций чтения-изменения-записи"""

    @pytest.mark.asyncio
    async def test_transaction_persists_changes(self, store):
        async with store.transaction() as document:
            document.machine_types = [mt for mt in document.machine_types if mt.code != "LWV"]

        codes = {mt["code"] for mt in store.read()["machineTypes"]}
        assert "LWV" not in codes

    @pytest.mark.asyncio
    async def test_transaction_discards_changes_on_error(self, store):
        before = store.read()

        with pytest.raises(ValidationError):
            async with store.transaction() as document:
                document.machine_types = []
                raise ValidationError("rejected")

        assert store.read() == before

    @pytest.mark.asyncio
    async def test_replace_rejects_invalid_document(self, store):
        with pytest.raises(ValidationError):
            await store.replace({"machines": [{"id": "id-1"}]})

    @pytest.mark.asyncio
    async def test_replace_round_trip(self, store):
        document = await store.replace(_sample_document())

        assert document.last_modified is not None
        assert store.load().machines[0].operating_hours == 1200
