"""
Тесты для сервиса удостоверений
"""
import pytest

from certdesk.database import DocumentRepository
from certdesk.exceptions import (
    StudentNotFoundError, DocumentNotFoundError, CertificateNumberExistsError
)
from certdesk.generator import CertificateNumberAllocator
from certdesk.models import DocumentRequest
from certdesk.qr import QRCodeEncoder, QRPayloadBuilder
from certdesk.service import DocumentService


class TestDocumentService:
    """Тесты для DocumentService"""

    def test_create_assigns_number_and_commission(self, services, document_request):
        created = services.documents.create_document(document_request)

        assert created.status == "success"
        assert created.certificate_number == "0001"
        assert created.commission_number == "15"

    def test_create_keeps_given_values(self, services, document_request):
        request = document_request.model_copy(update={
            "certificate_number": "A-77",
            "commission_number": " 21 ",
        })

        created = services.documents.create_document(request)

        assert created.certificate_number == "A-77"
        assert created.commission_number == "21"

    def test_create_unknown_student(self, services, document_request):
        request = document_request.model_copy(update={"student_jshshir": "00000000000000"})

        with pytest.raises(StudentNotFoundError):
            services.documents.create_document(request)

        assert services.documents.list_documents() == []

    def test_create_without_student(self, services):
        """Студент не обязателен"""
        created = services.documents.create_document(DocumentRequest(title="Bo'sh"))

        document = services.documents.get_document(created.id)
        assert document.student_jshshir == ""
        assert document.course_start == ""
        assert document.course_hours == 0

    def test_empty_dates_stored_as_null(self, services):
        request = DocumentRequest(course_start="", course_end="", exam_date="2024-03-15")

        created = services.documents.create_document(request)
        document = services.documents.get_document(created.id)

        assert document.course_start == ""
        assert document.exam_date == "2024-03-15"

    def test_duplicate_numbers_allowed_by_default(self, services):
        services.documents.create_document(DocumentRequest(certificate_number="0005"))
        services.documents.create_document(DocumentRequest(certificate_number="0005"))

        assert len(services.documents.list_documents()) == 2

    def test_duplicate_numbers_rejected_when_enforced(self, db_manager, services):
        service = DocumentService(
            DocumentRepository(db_manager),
            services.documents.student_repo,
            CertificateNumberAllocator(db_manager),
            QRPayloadBuilder(QRCodeEncoder(), "MMM"),
            enforce_unique_numbers=True,
        )
        service.create_document(DocumentRequest(certificate_number="0005"))

        with pytest.raises(CertificateNumberExistsError):
            service.create_document(DocumentRequest(certificate_number="0005"))

    def test_list_newest_first(self, services):
        first = services.documents.create_document(DocumentRequest())
        second = services.documents.create_document(DocumentRequest())

        ids = [d.id for d in services.documents.list_documents()]

        assert ids == [second.id, first.id]

    def test_get_missing(self, services):
        with pytest.raises(DocumentNotFoundError):
            services.documents.get_document(999)

        with pytest.raises(DocumentNotFoundError):
            services.documents.get_document_detail(999)

    def test_detail_dangling_student(self, services, document_request, sample_student):
        """Удаленный студент не ломает чтение удостоверения"""
        created = services.documents.create_document(document_request)
        services.students.delete_student(sample_student.jshshir)

        detail = services.documents.get_document_detail(created.id)

        assert detail.student_name == "Aliyev Vali"
        assert detail.student_phone == ""

    def test_update_overwrites_fields(self, services, document_request):
        created = services.documents.create_document(document_request)
        request = document_request.model_copy(update={
            "categories": "C",
            "grade1": 3,
            "certificate_number": "0100",
            "commission_number": "",
        })

        updated = services.documents.update_document(created.id, request)

        assert updated.categories == "C"
        assert updated.grade1 == 3
        assert updated.certificate_number == "0100"
        # При обновлении номер комиссии не подставляется по умолчанию
        assert updated.commission_number == ""

    def test_update_missing(self, services):
        with pytest.raises(DocumentNotFoundError):
            services.documents.update_document(999, DocumentRequest())

    def test_update_unknown_student(self, services):
        created = services.documents.create_document(DocumentRequest())

        with pytest.raises(StudentNotFoundError):
            services.documents.update_document(
                created.id, DocumentRequest(student_jshshir="00000000000000")
            )

    def test_delete(self, services):
        created = services.documents.create_document(DocumentRequest())

        services.documents.delete_document(created.id)

        with pytest.raises(DocumentNotFoundError):
            services.documents.get_document(created.id)
        with pytest.raises(DocumentNotFoundError):
            services.documents.delete_document(created.id)

    def test_ids_not_reused_after_delete(self, services):
        """ID удаленного удостоверения не выдается новому"""
        first = services.documents.create_document(DocumentRequest(title="A"))
        services.documents.delete_document(first.id)

        second = services.documents.create_document(DocumentRequest(title="B"))

        assert second.id > first.id
