"""
Локальная копия документа для работы без сервера
"""

import os
from typing import Any, Dict, Optional

from loomcare.utils.helpers import load_json, save_json
from loomcare.utils.logger import get_logger

logger = get_logger(__name__)


class LocalCache:
    """JSON файл с последним известным состоянием документа"""

    def __init__(self, path: str):
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.exists():
            return None
        try:
            data = load_json(self.path)
        except (OSError, ValueError) as e:
            logger.warning(f"Local cache {self.path} is unreadable: {str(e)}")
            return None
        return data if isinstance(data, dict) else None

    def save(self, data: Dict[str, Any]):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        try:
            save_json(data, tmp_path)
            os.replace(tmp_path, self.path)
        except OSError as e:
            # Кэш в памяти остаётся актуальным, следующая запись повторит попытку
            logger.error(f"Failed to write local cache {self.path}: {str(e)}")
