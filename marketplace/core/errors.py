# marketplace/core/errors.py
# Таксономия доменных ошибок. Сервисы бросают их, а обработчик в main.py
# превращает в JSON ответ {"error": message} с нужным статусом.

import logging

security_logger = logging.getLogger("marketplace.security")


class MarketplaceError(Exception):
    """Базовая ошибка домена."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketplaceError):
    """Некорректный ввод, координаты вне диапазона, нехватка остатка."""

    status_code = 400


class AuthError(MarketplaceError):
    status_code = 401


class PermissionDenied(AuthError):
    """Пользователь известен, но роль или владение не подходят."""

    status_code = 403


class NotFoundError(MarketplaceError):
    status_code = 404


class ConflictError(MarketplaceError):
    """Заказ уже занят, недопустимый переход статуса и т.п."""

    status_code = 400


class IntegrityError(MarketplaceError):
    """Подпись webhook не совпала или истёк timestamp.

    Пишется в отдельный security лог, чтобы не смешивать с обычной валидацией.
    """

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        security_logger.warning(f"Integrity check failed: {message}")


class ExternalServiceError(MarketplaceError):
    """Ошибка платёжного шлюза или доставки уведомлений."""

    status_code = 502


class ServiceUnavailable(MarketplaceError):
    """Внешний сервис не настроен."""

    status_code = 503
