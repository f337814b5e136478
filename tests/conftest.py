"""
Общие фикстуры для тестов
"""
from datetime import date

import pytest

from certdesk.database import DatabaseManager, StudentRepository, DocumentRepository, InvoiceRepository
from certdesk.generator import CertificateNumberAllocator, InvoiceNumberGenerator
from certdesk.models import StudentRequest, DocumentRequest
from certdesk.service import build_services, InvoiceService
from certdesk.validators import DataValidator
from config.settings import Settings

TODAY = date(2024, 5, 1)


@pytest.fixture
def settings(tmp_path):
    """Настройки с файловой SQLite во временной директории"""
    return Settings(
        _env_file=None,
        db_url=f"sqlite:///{tmp_path / 'certdesk.db'}",
        log_file=tmp_path / "logs" / "certdesk.log",
    )


@pytest.fixture
def db_manager(settings):
    """Менеджер БД с созданными таблицами"""
    manager = DatabaseManager(settings.database_url)
    manager.create_tables()
    yield manager
    manager.dispose()


@pytest.fixture
def student_repo(db_manager):
    return StudentRepository(db_manager)


@pytest.fixture
def document_repo(db_manager):
    return DocumentRepository(db_manager)


@pytest.fixture
def invoice_repo(db_manager):
    return InvoiceRepository(db_manager)


@pytest.fixture
def allocator(db_manager):
    return CertificateNumberAllocator(db_manager)


@pytest.fixture
def services(db_manager, settings):
    """Сервисы поверх тестовой БД"""
    return build_services(db_manager, settings)


@pytest.fixture
def invoice_service(invoice_repo, student_repo):
    """Сервис счетов с фиксированной текущей датой"""
    return InvoiceService(
        invoice_repo,
        student_repo,
        InvoiceNumberGenerator(),
        validator=DataValidator(),
        today=lambda: TODAY,
    )


@pytest.fixture
def sample_student(services):
    """Зарегистрированный студент"""
    return services.students.create_student(StudentRequest(
        jshshir="12345678901234",
        full_name="Aliyev Vali",
        birth_date="2000-01-15",
        phone="+998901234567",
    ))


@pytest.fixture
def document_request(sample_student):
    """Запрос на удостоверение без номера"""
    return DocumentRequest(
        title="Traktorchi-mashinist",
        student_jshshir=sample_student.jshshir,
        student_name=sample_student.full_name,
        course_start="2024-01-10",
        course_end="2024-03-10",
        exam_date="2024-03-15",
        categories="A, B",
        course_hours=120,
        grade1=5,
        grade2=4,
        status="active",
        director_name="Karimov K.",
    )
