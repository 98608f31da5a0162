"""
Исключения предметной области и хранилища
"""

from fastapi import status


class LoomcareError(Exception):
    """Базовое исключение приложения"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code

    def to_dict(self) -> dict:
        return {"error": self.message, "error_code": self.error_code}


class ValidationError(LoomcareError):
    """Ошибка валидации бизнес-логики (нехватка запаса, неверные часы и т.п.)"""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"


class ConflictError(ValidationError):
    """Нарушение ссылочной целостности или уникальности"""

    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class NotFoundError(LoomcareError):
    """Сущность с указанным идентификатором не найдена"""

    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class AuthenticationError(LoomcareError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "INVALID_CREDENTIALS"


class StorageError(LoomcareError):
    """Ошибка записи документа на диск"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "STORAGE_ERROR"


class ServiceUnavailableError(LoomcareError):
    """Документ недоступен (файл отсутствует или повреждён), запрос можно повторить"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "DATA_UNAVAILABLE"


class PayloadTooLargeError(ValidationError):
    """Загружаемый файл превышает допустимый размер"""

    status_code = status.HTTP_413_CONTENT_TOO_LARGE
    default_code = "FILE_TOO_LARGE"
