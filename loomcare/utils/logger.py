"""
Настройка логирования приложения
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    """
    Настройка корневого логгера пакета (консоль + опционально файл)
    """
    global _configured

    root = logging.getLogger("loomcare")
    root.setLevel(level.upper())

    if _configured:
        return root

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    _configured = True
    return root


def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Логгер модуля с опциональным уровнем"""
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(level.upper())
    return logger


def get_logger(name: str) -> logging.Logger:
    """Получение логгера по имени модуля"""
    return logging.getLogger(name)
