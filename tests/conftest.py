"""
Конфигурация pytest для всех тестов
"""

import os

import pytest
from fastapi.testclient import TestClient

from loomcare.core.config import ClientSettings, Settings
from loomcare.main import create_app
from loomcare.models import ComponentIn, MachineCreate, PartCreate, TemplateCreate
from loomcare.services.repository import MaintenanceRepository
from loomcare.services.seed import build_default_document
from loomcare.services.storage import DocumentStore


def pytest_configure(config):
    """Конфигурация pytest при старте"""
    config.addinivalue_line(
        "markers", "integration: маркер для интеграционных тестов"
    )
    config.addinivalue_line(
        "markers", "slow: маркер для медленных тестов"
    )


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Фикстура тестовых настроек с каталогами во временной папке"""
    return Settings(
        ENVIRONMENT="testing",
        DEBUG=True,
        DATA_DIR=str(tmp_path / "data"),
        UPLOADS_DIR=str(tmp_path / "uploads"),
        SEED_SAMPLE_DATA=False,
        ENABLE_METRICS=False,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def client_settings(tmp_path) -> ClientSettings:
    """Фикстура настроек клиента синхронизации"""
    return ClientSettings(
        SERVER_URL="http://testserver",
        LOCAL_CACHE_PATH=str(tmp_path / "client" / "local-cache.json"),
        SYNC_INTERVAL=0.05,
    )


@pytest.fixture
def app(test_settings):
    """Фикстура приложения"""
    return create_app(test_settings)


@pytest.fixture
def client(app) -> TestClient:
    """Фикстура тестового клиента"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def store(tmp_path) -> DocumentStore:
    """Фикстура хранилища с начальным документом"""
    document_store = DocumentStore(
        data_file=os.path.join(str(tmp_path), "store", "maintenance-data.json"),
        max_backups=10,
        seed_samples=False,
    )
    document_store.initialize()
    return document_store


@pytest.fixture
def repository() -> MaintenanceRepository:
    """Репозиторий над документом по умолчанию (пользователи и типы машин)"""
    return MaintenanceRepository(build_default_document(include_samples=False))


@pytest.fixture
def serviced_machine(repository):
    """Машина P2 с шаблоном из двух компонентов и запчастью с низким запасом"""
    template = repository.create_template(TemplateCreate(
        name="Rapier basic",
        machine_type="P2",
        components=[
            ComponentIn(name="Gripper", interval_hours=500),
            ComponentIn(name="Drive belt", interval_hours=1000),
        ],
    ))
    machine = repository.create_machine(MachineCreate(
        name="M1",
        type="P2",
        operating_hours=100,
        maintenance_template_id=template.id,
    ))
    part = repository.create_part(PartCreate(
        name="Gripper tape",
        stock=3,
        min_stock=5,
        machine_types=["P2"],
    ))
    return machine, template, part
