"""
Pydantic модели для валидации и сериализации удостоверений и счетов.
"""

from datetime import date
from enum import Enum
from typing import Optional, Dict, FrozenSet

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN_STUDENT = "Noma'lum talaba"


class InvoiceStatus(str, Enum):
    """Статусы счета. Значения - внешний контракт интерфейса на узбекском."""
    PENDING = "To'lov kutilmoqda"
    PAID = "To'landi"
    CANCELLED = "Bekor qilindi"

    @classmethod
    def values(cls) -> list:
        return [status.value for status in cls]


# Таблица переходов для строгого режима; Paid и Cancelled конечные
ALLOWED_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}


def _empty_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class StudentRequest(BaseModel):
    """Модель запроса на создание студента."""
    jshshir: str = Field(..., min_length=1, max_length=20, description="JShShIR студента")
    full_name: str = Field(..., min_length=1, max_length=255, description="Ф.И.О.")
    birth_date: str = Field(default="", description="Дата рождения")
    phone: str = Field(default="", description="Телефон")

    @field_validator('jshshir', 'full_name')
    @classmethod
    def strip_value(cls, v):
        return v.strip()


class StudentUpdateRequest(BaseModel):
    """Модель запроса на обновление студента."""
    full_name: str = Field(..., min_length=1, max_length=255, description="Ф.И.О.")
    birth_date: str = Field(default="", description="Дата рождения")
    phone: str = Field(default="", description="Телефон")


class StudentOut(BaseModel):
    """Студент в ответе API."""
    jshshir: str
    full_name: str
    birth_date: str = ""
    phone: str = ""


class DocumentRequest(BaseModel):
    """Модель запроса на создание или обновление удостоверения."""
    title: str = Field(default="", description="Название")
    student_jshshir: str = Field(default="", description="JShShIR студента")
    student_name: str = Field(default="", description="Имя студента")
    course_start: Optional[date] = Field(default=None, description="Начало курса")
    course_end: Optional[date] = Field(default=None, description="Окончание курса")
    exam_date: Optional[date] = Field(default=None, description="Дата экзамена")
    categories: str = Field(default="", description="Категории")
    course_hours: int = Field(default=0, description="Часы курса")
    grade1: int = Field(default=0, description="Оценка 1")
    grade2: int = Field(default=0, description="Оценка 2")
    certificate_number: str = Field(default="", description="Номер удостоверения (пусто - выдать автоматически)")
    status: str = Field(default="", description="Статус")
    commission_number: str = Field(default="", description="Номер комиссии")
    director_name: str = Field(default="", description="Директор")

    @field_validator('course_start', 'course_end', 'exam_date', mode='before')
    @classmethod
    def empty_date_to_none(cls, v):
        """Пустая строка из формы означает отсутствие даты."""
        return _empty_to_none(v)

    @field_validator('student_jshshir', 'certificate_number')
    @classmethod
    def strip_value(cls, v):
        return v.strip()

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Traktorchi-mashinist",
                "student_jshshir": "12345678901234",
                "student_name": "Aliyev Vali",
                "course_start": "2024-01-10",
                "course_end": "2024-03-10",
                "exam_date": "2024-03-15",
                "categories": "A, B",
                "course_hours": 120,
                "grade1": 5,
                "grade2": 4,
                "certificate_number": "",
                "status": "active",
                "commission_number": "",
                "director_name": "Karimov K."
            }
        }
    )


class DocumentOut(BaseModel):
    """
    Удостоверение в ответе API.

    Пустые поля БД (NULL) отдаются как пустая строка или 0.
    """
    id: int
    title: str = ""
    student_jshshir: str = ""
    student_name: str = ""
    course_start: str = ""
    course_end: str = ""
    exam_date: str = ""
    categories: str = ""
    course_hours: int = 0
    grade1: int = 0
    grade2: int = 0
    certificate_number: str = ""
    status: str = ""
    commission_number: str = ""
    director_name: str = ""
    created_at: str = ""


class DocumentDetail(DocumentOut):
    """Удостоверение с данными студента и QR-кодом."""
    student_birth_date: str = ""
    student_phone: str = ""
    qr_code_base64: str = ""
    verify_url: str = ""


class DocumentCreated(BaseModel):
    """Ответ на создание удостоверения."""
    status: str = "success"
    message: str = "Guvohnoma muvaffaqiyatli yaratildi"
    id: int
    certificate_number: str
    commission_number: str


class VerificationSummary(BaseModel):
    """Публичные данные удостоверения для проверки."""
    id: int
    certificate_number: str = ""
    student_name: str = ""
    student_jshshir: str = ""
    course_start: str = ""
    course_end: str = ""
    exam_date: str = ""
    categories: str = ""
    course_hours: int = 0
    grade1: int = 0
    grade2: int = 0
    status: str = ""
    director_name: str = ""


class InvoiceRequest(BaseModel):
    """Модель запроса на создание счета."""
    student_jshshir: str = Field(default="", description="JShShIR студента")
    description: str = Field(default="", description="Описание")
    amount: float = Field(default=0, description="Сумма")

    @field_validator('student_jshshir')
    @classmethod
    def strip_value(cls, v):
        return v.strip()

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "student_jshshir": "12345678901234",
                "description": "Kurs to'lovi",
                "amount": 1500000
            }
        }
    )


class InvoiceStatusRequest(BaseModel):
    """Модель запроса на смену статуса счета."""
    status: str = Field(..., description="Новый статус")


class InvoiceOut(BaseModel):
    """Счет в ответе API."""
    id: int
    student_jshshir: str
    student_name: str = ""
    description: str = ""
    amount: float
    status: str
    invoice_number: str = ""
    created_at: str = ""
    issue_date: str = ""
    due_date: str = ""
    payment_date: str = ""


class InvoiceDetail(InvoiceOut):
    """Счет с данными студента."""
    student_birth_date: str = ""
    student_phone: str = ""


class InvoiceCreated(BaseModel):
    """Ответ на создание счета."""
    success: bool = True
    message: str = "Invoyis muvaffaqiyatli yaratildi"
    id: int
    invoice_number: str
    student_name: str


class InvoiceStatusChanged(BaseModel):
    """Ответ на смену статуса счета."""
    success: bool = True
    message: str = "Invoyis holati yangilandi"
    status: str
    payment_date: str = ""


class Dashboard(BaseModel):
    """Счетчики для главной страницы."""
    students: int
    documents: int
    invoices: int
