"""
Хеширование и проверка паролей пользователей
"""

from passlib.context import CryptContext

# PBKDF2-SHA256 с солью; чистая реализация passlib без нативных зависимостей
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Хеш неизвестного формата
        return False
