"""
API для удостоверений, счетов и реестра студентов
"""
import logging
from typing import List

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .exceptions import (
    CertDeskError, ValidationError, NotFoundError, AlreadyExistsError, StorageError
)
from .models import (
    StudentRequest, StudentUpdateRequest, StudentOut,
    DocumentRequest, DocumentOut, DocumentDetail, DocumentCreated, VerificationSummary,
    InvoiceRequest, InvoiceStatusRequest, InvoiceOut, InvoiceDetail, InvoiceCreated,
    InvoiceStatusChanged, Dashboard
)
from .service import Services

# Коды ответа для ветвей иерархии исключений
ERROR_STATUS_CODES = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (AlreadyExistsError, 409),
    (StorageError, 500),
)


def _sanitize(obj):
    """Байты в деталях ошибки заменяются описанием, иначе JSON не соберется."""
    if isinstance(obj, (bytes, bytearray)):
        return f"<bytes:{len(obj)}>"
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, Exception):
        return str(obj)
    return obj


def _success(message: str) -> dict:
    return {"status": "success", "message": message}


class CertificateAPI:
    """API для удостоверений и счетов"""

    def __init__(self, services: Services):
        self.services = services
        self.logger = logging.getLogger(__name__)

        self.app = FastAPI(
            title="Certificate & Invoice API",
            description="API для выдачи удостоверений и учета счетов",
            version="1.0.0"
        )

        self._setup_exception_handlers()
        self._setup_routes()

    def _setup_exception_handlers(self):
        """Перевод исключений в HTTP ответы"""

        @self.app.exception_handler(CertDeskError)
        async def domain_error_handler(request: Request, exc: CertDeskError):
            status_code = 500
            for error_class, code in ERROR_STATUS_CODES:
                if isinstance(exc, error_class):
                    status_code = code
                    break

            if status_code >= 500:
                self.logger.error(f"Ошибка хранилища: {exc}")
                detail = "Ошибка базы данных"
            else:
                self.logger.warning(f"{request.method} {request.url.path}: {exc}")
                detail = str(exc)

            return JSONResponse(status_code=status_code, content={"detail": detail})

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            self.logger.warning(f"Некорректный запрос {request.method} {request.url.path}")
            return JSONResponse(status_code=400, content={"detail": _sanitize(exc.errors())})

        @self.app.exception_handler(Exception)
        async def unexpected_error_handler(request: Request, exc: Exception):
            self.logger.error(f"Неожиданная ошибка: {exc}")
            return JSONResponse(status_code=500, content={"detail": "Внутренняя ошибка сервера"})

    def _setup_routes(self):
        """Настройка маршрутов API"""
        services = self.services

        # Студенты

        @self.app.get("/api/students", response_model=List[StudentOut])
        def list_students():
            """Список студентов"""
            return services.students.list_students()

        @self.app.post("/api/students", response_model=StudentOut)
        def create_student(request: StudentRequest):
            """Регистрация студента"""
            return services.students.create_student(request)

        @self.app.get("/api/students/{jshshir}", response_model=StudentOut)
        def get_student(jshshir: str):
            return services.students.get_student(jshshir)

        @self.app.put("/api/students/{jshshir}", response_model=StudentOut)
        def update_student(jshshir: str, request: StudentUpdateRequest):
            return services.students.update_student(jshshir, request)

        @self.app.delete("/api/students/{jshshir}")
        def delete_student(jshshir: str):
            services.students.delete_student(jshshir)
            return _success("Talaba o'chirildi")

        # Удостоверения

        @self.app.get("/api/documents", response_model=List[DocumentOut])
        def list_documents():
            """Список удостоверений, новые первыми"""
            return services.documents.list_documents()

        @self.app.post("/api/documents", response_model=DocumentCreated)
        def create_document(request: DocumentRequest):
            """Создание удостоверения"""
            return services.documents.create_document(request)

        @self.app.get("/api/documents/next-number")
        def next_certificate_number():
            """Номер, который получит следующее удостоверение"""
            return {"certificate_number": services.documents.next_certificate_number()}

        @self.app.get("/api/documents/{document_id}", response_model=DocumentOut)
        def get_document(document_id: int):
            return services.documents.get_document(document_id)

        @self.app.get("/api/documents/{document_id}/details", response_model=DocumentDetail)
        def get_document_detail(document_id: int):
            """Удостоверение с данными студента и QR-кодом"""
            return services.documents.get_document_detail(document_id)

        @self.app.put("/api/documents/{document_id}", response_model=DocumentOut)
        def update_document(document_id: int, request: DocumentRequest):
            return services.documents.update_document(document_id, request)

        @self.app.delete("/api/documents/{document_id}")
        def delete_document(document_id: int):
            services.documents.delete_document(document_id)
            return _success("Guvohnoma o'chirildi")

        # Счета

        @self.app.get("/api/invoices", response_model=List[InvoiceOut])
        def list_invoices():
            """Список счетов, новые первыми"""
            return services.invoices.list_invoices()

        @self.app.post("/api/invoices", response_model=InvoiceCreated)
        def create_invoice(request: InvoiceRequest):
            """Выставление счета"""
            return services.invoices.create_invoice(request)

        @self.app.get("/api/invoices/search", response_model=List[InvoiceOut])
        def search_invoices(q: str = Query(default="")):
            """Поиск по JShShIR, имени, описанию и номеру счета"""
            return services.invoices.search_invoices(q)

        @self.app.get("/api/invoices/{invoice_id}/details", response_model=InvoiceDetail)
        def get_invoice_detail(invoice_id: int):
            return services.invoices.get_invoice_detail(invoice_id)

        @self.app.put("/api/invoices/{invoice_id}/status", response_model=InvoiceStatusChanged)
        def update_invoice_status(invoice_id: int, request: InvoiceStatusRequest):
            """Смена статуса счета"""
            return services.invoices.update_status(invoice_id, request.status)

        @self.app.delete("/api/invoices/{invoice_id}")
        def delete_invoice(invoice_id: int):
            services.invoices.delete_invoice(invoice_id)
            return _success("Invoyis o'chirildi")

        # Проверка и статистика

        @self.app.get("/api/verify", response_model=VerificationSummary)
        def verify_certificate(cert: str = Query(default="")):
            """Публичная проверка удостоверения по номеру или ID"""
            return services.verification.verify(cert)

        @self.app.get("/api/dashboard", response_model=Dashboard)
        def dashboard():
            return services.dashboard.get_dashboard()
