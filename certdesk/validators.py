"""
Модуль валидации входных данных удостоверений и счетов.
"""

from typing import List, Optional

from .exceptions import StatusValidationError
from .models import InvoiceStatus

# Масштаб и максимум колонки invoices.amount NUMERIC(14, 2)
AMOUNT_SCALE = 2
MAX_INVOICE_AMOUNT = 999_999_999_999.99


class CommissionNumberNormalizer:
    """Нормализация номера комиссии."""

    def __init__(self, default: str = "15"):
        self.default = default

    def normalize(self, commission_number: Optional[str]) -> str:
        """
        Обрезает пробелы; пустое значение заменяется номером по умолчанию.

        Args:
            commission_number: Номер комиссии из запроса

        Returns:
            str: Нормализованный номер
        """
        value = (commission_number or "").strip()
        return value or self.default


class CertificateNumberValidator:
    """Валидатор номеров удостоверений."""

    def is_blank(self, certificate_number: Optional[str]) -> bool:
        """Пустой номер означает, что его нужно выдать автоматически."""
        return not certificate_number or not certificate_number.strip()


class InvoiceValidator:
    """Валидатор данных счета."""

    def validate_student_reference(self, student_jshshir: Optional[str]) -> bool:
        return bool(student_jshshir and student_jshshir.strip())

    def validate_amount(self, amount) -> bool:
        """
        Сумма должна быть числом больше нуля, помещающимся в NUMERIC(14, 2).

        Проверяется значение, округленное до копеек, то есть то, что
        будет сохранено в БД.

        Args:
            amount: Сумма из запроса

        Returns:
            bool: True если сумму можно сохранить
        """
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            return False
        stored = round(amount, AMOUNT_SCALE)
        return 0 < stored <= MAX_INVOICE_AMOUNT


class StatusValidator:
    """Валидатор статусов счета."""

    def parse(self, status: Optional[str]) -> InvoiceStatus:
        """
        Приводит строку к статусу счета.

        Args:
            status: Строка статуса из запроса

        Returns:
            InvoiceStatus: Статус

        Raises:
            StatusValidationError: Если статус не из допустимого набора
        """
        try:
            return InvoiceStatus(status)
        except ValueError:
            allowed = ", ".join(InvoiceStatus.values())
            raise StatusValidationError(f"Недопустимый статус: {status!r}. Допустимые: {allowed}")


class DataValidator:
    """Общий валидатор для всех типов данных."""

    def __init__(self, default_commission_number: str = "15"):
        self.commission_normalizer = CommissionNumberNormalizer(default_commission_number)
        self.certificate_number_validator = CertificateNumberValidator()
        self.invoice_validator = InvoiceValidator()
        self.status_validator = StatusValidator()

    def validate_invoice(self, student_jshshir: Optional[str], amount) -> List[str]:
        """
        Валидация данных для создания счета.

        Args:
            student_jshshir: JShShIR студента
            amount: Сумма

        Returns:
            List[str]: Список ошибок валидации (пустой если все в порядке)
        """
        errors = []

        if not self.invoice_validator.validate_student_reference(student_jshshir):
            errors.append("Не указан JShShIR студента")

        if not self.invoice_validator.validate_amount(amount):
            errors.append(f"Некорректная сумма: {amount}")

        return errors
