"""
Контекст клиентского приложения: менеджер данных и текущий пользователь
"""

from typing import Optional

import httpx

from loomcare.client.local_store import LocalCache
from loomcare.client.sync import DataManager, OperationResult
from loomcare.core.config import ClientSettings
from loomcare.models import UserPublic, UserRole
from loomcare.utils.logger import get_logger

logger = get_logger(__name__)


class Session:
    """
    Создаётся при запуске клиента и передаётся слоям, которым нужны данные.
    Пользователь устанавливается при входе и сбрасывается при выходе.
    """

    def __init__(self, manager: DataManager):
        self.manager = manager
        self.current_user: Optional[UserPublic] = None

    @classmethod
    async def open(cls, settings: Optional[ClientSettings] = None,
                   transport: Optional[httpx.AsyncBaseTransport] = None,
                   cache: Optional[LocalCache] = None,
                   poll: bool = True) -> "Session":
        manager = DataManager(settings=settings, transport=transport, cache=cache)
        await manager.start()
        if poll:
            manager.start_polling()
        return cls(manager)

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def has_role(self, *roles: UserRole) -> bool:
        return self.current_user is not None and self.current_user.role in roles

    async def login(self, username: str, password: str) -> OperationResult:
        result = await self.manager.authenticate(username, password)
        if result.ok:
            self.current_user = result.value
            logger.info(f"User {username} logged in ({self.manager.state.value})")
        else:
            logger.warning(f"Login failed for {username}: {result.error}")
        return result

    def logout(self):
        if self.current_user is not None:
            logger.info(f"User {self.current_user.username} logged out")
        self.current_user = None

    async def close(self):
        self.logout()
        await self.manager.close()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
