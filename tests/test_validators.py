"""
Тесты для модуля валидации
"""
import pytest

from certdesk.exceptions import StatusValidationError
from certdesk.models import InvoiceStatus, DocumentRequest, InvoiceRequest
from certdesk.validators import (
    CommissionNumberNormalizer, CertificateNumberValidator, InvoiceValidator,
    StatusValidator, DataValidator
)


class TestCommissionNumberNormalizer:
    """Тесты нормализации номера комиссии"""

    @pytest.mark.parametrize("value,expected", [
        ("", "15"),
        ("   ", "15"),
        (None, "15"),
        (" 21 ", "21"),
        ("7", "7"),
    ])
    def test_normalize(self, value, expected):
        assert CommissionNumberNormalizer().normalize(value) == expected

    def test_custom_default(self):
        assert CommissionNumberNormalizer("3").normalize("") == "3"


class TestCertificateNumberValidator:
    """Тесты валидатора номеров удостоверений"""

    def test_is_blank(self):
        validator = CertificateNumberValidator()

        assert validator.is_blank("") is True
        assert validator.is_blank("  ") is True
        assert validator.is_blank("0001") is False


class TestInvoiceValidator:
    """Тесты валидатора счетов"""

    @pytest.mark.parametrize("amount", [1500000, 0.01, 0.005001, 999_999_999_999.99])
    def test_validate_amount_valid(self, amount):
        assert InvoiceValidator().validate_amount(amount) is True

    @pytest.mark.parametrize("amount", [0, -1, 0.001, 0.004, 1e12, 1_000_000_000_000, "100", None, True])
    def test_validate_amount_invalid(self, amount):
        """Сумма, которая округляется до нуля или не помещается в NUMERIC(14, 2)"""
        assert InvoiceValidator().validate_amount(amount) is False

    def test_validate_invoice_errors(self):
        errors = DataValidator().validate_invoice("", 0)

        assert len(errors) == 2

    def test_validate_invoice_ok(self):
        assert DataValidator().validate_invoice("12345678901234", 100.5) == []


class TestStatusValidator:
    """Тесты валидатора статусов"""

    @pytest.mark.parametrize("status", InvoiceStatus.values())
    def test_parse_valid(self, status):
        assert StatusValidator().parse(status).value == status

    @pytest.mark.parametrize("status", ["", "Paid", "to'landi", None])
    def test_parse_invalid(self, status):
        with pytest.raises(StatusValidationError):
            StatusValidator().parse(status)


class TestRequestModels:
    """Тесты нормализации в моделях запросов"""

    def test_empty_dates_become_none(self):
        request = DocumentRequest(course_start="", course_end="  ", exam_date="2024-03-15")

        assert request.course_start is None
        assert request.course_end is None
        assert request.exam_date.isoformat() == "2024-03-15"

    def test_strip_references(self):
        assert DocumentRequest(student_jshshir=" 123 ", certificate_number=" 0001 ").certificate_number == "0001"
        assert InvoiceRequest(student_jshshir=" 123 ").student_jshshir == "123"
