"""
Кастомные исключения для системы удостоверений и счетов.
"""


class CertDeskError(Exception):
    """Базовое исключение для всех ошибок системы."""
    pass


class ValidationError(CertDeskError):
    """Ошибка валидации входных данных."""
    pass


class StatusValidationError(ValidationError):
    """Недопустимый статус счета."""
    pass


class AmountValidationError(ValidationError):
    """Некорректная сумма счета."""
    pass


class NotFoundError(CertDeskError):
    """Запрошенная запись не найдена."""
    pass


class StudentNotFoundError(NotFoundError):
    """Студент не найден в реестре."""
    pass


class DocumentNotFoundError(NotFoundError):
    """Удостоверение не найдено."""
    pass


class InvoiceNotFoundError(NotFoundError):
    """Счет не найден."""
    pass


class AlreadyExistsError(CertDeskError):
    """Запись уже существует."""
    pass


class StudentExistsError(AlreadyExistsError):
    """Студент с таким JShShIR уже существует."""
    pass


class CertificateNumberExistsError(AlreadyExistsError):
    """Номер удостоверения уже занят."""
    pass


class StorageError(CertDeskError):
    """Ошибка работы с базой данных."""
    pass


class EncodingError(CertDeskError):
    """Ошибка генерации QR-кода."""
    pass
