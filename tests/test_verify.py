"""
Тесты для публичной проверки удостоверений
"""
import pytest

from certdesk.database import Document
from certdesk.exceptions import DocumentNotFoundError, ValidationError
from certdesk.models import DocumentRequest


@pytest.fixture
def stored_documents(db_manager):
    """Удостоверения с заданными ID"""
    with db_manager.get_session() as session:
        session.add_all([
            Document(id=5, certificate_number="X-1", student_name="Birinchi"),
            Document(id=42, certificate_number="0007", student_name="Aliyev Vali", categories="A, B"),
            Document(id=50, certificate_number="5", student_name="Ikkinchi"),
        ])
        session.commit()


class TestVerificationService:
    """Тесты для VerificationService"""

    def test_by_number_and_by_id(self, services, stored_documents):
        by_number = services.verification.verify("0007")
        by_id = services.verification.verify("42")

        assert by_number == by_id
        assert by_number.id == 42
        assert by_number.student_name == "Aliyev Vali"
        assert by_number.categories == "A, B"

    def test_number_has_priority_over_id(self, services, stored_documents):
        """Совпадение по номеру важнее совпадения по ID"""
        assert services.verification.verify("5").id == 50

    def test_not_found(self, services, stored_documents):
        with pytest.raises(DocumentNotFoundError):
            services.verification.verify("9999")

    def test_token_trimmed(self, services, stored_documents):
        assert services.verification.verify("  0007 ").id == 42

    def test_empty_token(self, services):
        with pytest.raises(ValidationError):
            services.verification.verify("   ")

    def test_null_fields_as_empty(self, services, stored_documents):
        summary = services.verification.verify("X-1")

        assert summary.exam_date == ""
        assert summary.course_hours == 0

    def test_deleted_id_not_resolved_to_new_document(self, services):
        """Проверка по ID удаленного удостоверения не находит новое"""
        removed = services.documents.create_document(DocumentRequest(certificate_number="A-1"))
        services.documents.delete_document(removed.id)
        services.documents.create_document(DocumentRequest(certificate_number="B-1"))

        with pytest.raises(DocumentNotFoundError):
            services.verification.verify(str(removed.id))
