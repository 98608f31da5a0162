import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict


def utcnow() -> datetime:
    """Текущее время в UTC (timezone-aware)"""
    return datetime.now(timezone.utc)


def generate_id(prefix: str = "id") -> str:
    """Генерация идентификатора сущности вида <prefix>-<hex>"""
    return f"{prefix}-{uuid.uuid4().hex}"


def save_json(data: Dict[str, Any], path: str):
    """Сохранение данных в JSON"""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def load_json(path: str) -> Dict[str, Any]:
    """Загрузка данных из JSON"""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)
