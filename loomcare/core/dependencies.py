"""
Зависимости FastAPI: доступ к настройкам и хранилищу приложения
"""

from fastapi import Request

from loomcare.core.config import Settings
from loomcare.services.storage import DocumentStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store
