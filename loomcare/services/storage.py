"""
Хранилище единого JSON документа с резервными копиями
"""

import asyncio
import glob
import os
import tempfile
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from loomcare.core.exceptions import ServiceUnavailableError, StorageError, ValidationError
from loomcare.models import MaintenanceDocument
from loomcare.services.seed import default_document_dict
from loomcare.utils.helpers import load_json, save_json, utcnow
from loomcare.utils.logger import get_logger
from loomcare.utils.metrics import increment_storage_error, record_storage_write_time

logger = get_logger(__name__)

BACKUP_PREFIX = "backup-"


class DocumentStore:
    """
    Документ целиком читается и перезаписывается при каждом изменении.

    Запись идёт во временный файл того же каталога с последующим
    os.replace, поэтому читатель никогда не видит частично записанный файл.
    Изменения внутри процесса сериализуются через transaction().
    """

    def __init__(self, data_file: str, max_backups: int = 10,
                 uploads_dir: Optional[str] = None, seed_samples: bool = True):
        self.data_file = data_file
        self.data_dir = os.path.dirname(os.path.abspath(data_file))
        self.max_backups = max_backups
        self.uploads_dir = uploads_dir
        self.seed_samples = seed_samples
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings) -> "DocumentStore":
        return cls(
            data_file=settings.DATA_FILE,
            max_backups=settings.MAX_BACKUPS,
            uploads_dir=settings.UPLOADS_DIR,
            seed_samples=settings.SEED_SAMPLE_DATA,
        )

    def initialize(self):
        """
        Создание каталогов и начального документа при первом запуске
        """
        os.makedirs(self.data_dir, exist_ok=True)
        if self.uploads_dir:
            os.makedirs(self.uploads_dir, exist_ok=True)

        if os.path.exists(self.data_file):
            logger.info(f"Using existing data file {self.data_file}")
            return

        logger.info(f"Data file {self.data_file} not found, seeding default document")
        self.write(default_document_dict(self.seed_samples))

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Чтение документа. None, если файл отсутствует или повреждён
        """
        try:
            data = load_json(self.data_file)
        except FileNotFoundError:
            logger.error(f"Data file {self.data_file} does not exist")
            increment_storage_error("missing")
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read data file {self.data_file}: {str(e)}")
            increment_storage_error("corrupt")
            return None

        if not isinstance(data, dict):
            logger.error(f"Data file {self.data_file} does not contain a JSON object")
            increment_storage_error("corrupt")
            return None
        return data

    def write(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Атомарная запись документа с резервной копией предыдущей версии.

        Возвращает записанный документ с обновлённым lastModified.
        """
        start_time = time.time()
        self._backup_current()

        document = dict(data)
        document["lastModified"] = utcnow().isoformat()

        fd, tmp_path = tempfile.mkstemp(
            prefix=".maintenance-", suffix=".tmp", dir=self.data_dir
        )
        os.close(fd)
        try:
            save_json(document, tmp_path)
            os.replace(tmp_path, self.data_file)
        except (OSError, TypeError, ValueError) as e:
            increment_storage_error("write")
            logger.error(f"Failed to write data file {self.data_file}: {str(e)}")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageError(f"Failed to save data: {str(e)}") from e

        self._prune_backups()
        record_storage_write_time(time.time() - start_time)
        logger.debug(f"Document written to {self.data_file}")
        return document

    def list_backups(self) -> List[str]:
        """Резервные копии от старых к новым"""
        pattern = os.path.join(self.data_dir, f"{BACKUP_PREFIX}*.json")
        return sorted(glob.glob(pattern))

    def _backup_current(self):
        if not os.path.exists(self.data_file):
            return

        timestamp = utcnow().strftime("%Y%m%dT%H%M%S%fZ")
        backup_file = os.path.join(self.data_dir, f"{BACKUP_PREFIX}{timestamp}.json")
        counter = 1
        while os.path.exists(backup_file):
            backup_file = os.path.join(
                self.data_dir, f"{BACKUP_PREFIX}{timestamp}{counter:03d}.json"
            )
            counter += 1

        try:
            with open(self.data_file, "rb") as src, open(backup_file, "wb") as dst:
                dst.write(src.read())
        except OSError as e:
            # Запись продолжается без резервной копии
            increment_storage_error("backup")
            logger.warning(f"Failed to create backup {backup_file}: {str(e)}")

    def _prune_backups(self):
        backups = self.list_backups()
        for old_backup in backups[:max(len(backups) - self.max_backups, 0)]:
            try:
                os.remove(old_backup)
            except OSError as e:
                increment_storage_error("prune")
                logger.warning(f"Failed to remove old backup {old_backup}: {str(e)}")

    # ------------------------------------------------------------------
    # Типизированный доступ
    # ------------------------------------------------------------------

    def load(self) -> MaintenanceDocument:
        """
        Загрузка типизированного документа.

        Raises:
            ServiceUnavailableError: файл отсутствует или не проходит валидацию
        """
        data = self.read()
        if data is None:
            raise ServiceUnavailableError("Data not available, please retry")
        try:
            return MaintenanceDocument.model_validate(data)
        except PydanticValidationError as e:
            increment_storage_error("invalid")
            logger.error(f"Data file {self.data_file} failed validation: {e.error_count()} errors")
            raise ServiceUnavailableError("Stored data is invalid") from e

    def save(self, document: MaintenanceDocument) -> MaintenanceDocument:
        written = self.write(document.to_wire())
        document.last_modified = datetime.fromisoformat(written["lastModified"])
        return document

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MaintenanceDocument]:
        """
        Чтение-изменение-запись под единственным писателем.

        Документ записывается только если тело блока завершилось без ошибок.
        """
        async with self._lock:
            document = self.load()
            yield document
            self.save(document)

    async def replace(self, data: Dict[str, Any]) -> MaintenanceDocument:
        """Полная замена документа (POST /api/data)"""
        try:
            document = MaintenanceDocument.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid document: {e.error_count()} validation errors") from e
        async with self._lock:
            return self.save(document)
