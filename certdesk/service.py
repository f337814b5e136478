"""
Основная бизнес-логика: удостоверения, счета, проверка и реестр студентов.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, NamedTuple, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config.settings import Settings
from .database import (
    DatabaseManager, Document as DBDocument, Invoice as DBInvoice, Student as DBStudent,
    StudentRepository, DocumentRepository, InvoiceRepository
)
from .exceptions import (
    CertDeskError, ValidationError, AmountValidationError, StorageError, EncodingError,
    StudentNotFoundError, DocumentNotFoundError, InvoiceNotFoundError,
    StudentExistsError, CertificateNumberExistsError
)
from .generator import CertificateNumberAllocator, InvoiceNumberGenerator
from .models import (
    StudentRequest, StudentUpdateRequest, StudentOut,
    DocumentRequest, DocumentOut, DocumentDetail, DocumentCreated, VerificationSummary,
    InvoiceRequest, InvoiceOut, InvoiceDetail, InvoiceCreated, InvoiceStatusChanged,
    InvoiceStatus, ALLOWED_TRANSITIONS, UNKNOWN_STUDENT, Dashboard
)
from .qr import QRCodeEncoder, QRPayloadBuilder
from .validators import DataValidator

logger = logging.getLogger(__name__)


def _text(value) -> str:
    """NULL из БД отдается как пустая строка."""
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _number(value) -> int:
    return value if value is not None else 0


class StudentService:
    """Сервис реестра студентов."""

    def __init__(self, student_repo: StudentRepository):
        self.student_repo = student_repo

    def list_students(self) -> List[StudentOut]:
        try:
            return [self._convert_db_to_pydantic(s) for s in self.student_repo.list_all()]
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения списка студентов: {e}")
            raise StorageError(f"Ошибка при получении студентов: {e}") from e

    def get_student(self, jshshir: str) -> StudentOut:
        try:
            student = self.student_repo.get(jshshir)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения студента {jshshir}: {e}")
            raise StorageError(f"Ошибка при получении студента: {e}") from e

        if student is None:
            raise StudentNotFoundError(f"Студент {jshshir} не найден")
        return self._convert_db_to_pydantic(student)

    def create_student(self, request: StudentRequest) -> StudentOut:
        """
        Регистрирует студента.

        Raises:
            StudentExistsError: Если JShShIR уже зарегистрирован
            StorageError: При ошибке БД
        """
        logger.info(f"Регистрация студента {request.jshshir}")

        try:
            if self.student_repo.exists(request.jshshir):
                raise StudentExistsError(f"Студент {request.jshshir} уже существует")
            student = self.student_repo.create(request.model_dump())
        except IntegrityError as e:
            raise StudentExistsError(f"Студент {request.jshshir} уже существует") from e
        except SQLAlchemyError as e:
            logger.error(f"Ошибка регистрации студента: {e}")
            raise StorageError(f"Ошибка при регистрации студента: {e}") from e

        return self._convert_db_to_pydantic(student)

    def update_student(self, jshshir: str, request: StudentUpdateRequest) -> StudentOut:
        try:
            updated = self.student_repo.update(jshshir, request.model_dump())
        except SQLAlchemyError as e:
            logger.error(f"Ошибка обновления студента {jshshir}: {e}")
            raise StorageError(f"Ошибка при обновлении студента: {e}") from e

        if not updated:
            raise StudentNotFoundError(f"Студент {jshshir} не найден")
        return StudentOut(jshshir=jshshir, **request.model_dump())

    def delete_student(self, jshshir: str) -> None:
        try:
            deleted = self.student_repo.delete(jshshir)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка удаления студента {jshshir}: {e}")
            raise StorageError(f"Ошибка при удалении студента: {e}") from e

        if not deleted:
            raise StudentNotFoundError(f"Студент {jshshir} не найден")
        logger.info(f"Студент {jshshir} удален")

    def _convert_db_to_pydantic(self, student: DBStudent) -> StudentOut:
        return StudentOut(
            jshshir=student.jshshir,
            full_name=student.full_name,
            birth_date=_text(student.birth_date),
            phone=_text(student.phone),
        )


class DocumentService:
    """Сервис для работы с удостоверениями."""

    def __init__(self, document_repo: DocumentRepository, student_repo: StudentRepository,
                 allocator: CertificateNumberAllocator, qr_builder: QRPayloadBuilder,
                 validator: Optional[DataValidator] = None,
                 enforce_unique_numbers: bool = False):
        """
        Инициализация сервиса.

        Args:
            document_repo: Репозиторий удостоверений
            student_repo: Реестр студентов
            allocator: Генератор номеров удостоверений
            qr_builder: Построитель QR-кодов
            validator: Валидатор входных данных
            enforce_unique_numbers: Проверять уникальность номеров, переданных вручную
        """
        self.document_repo = document_repo
        self.student_repo = student_repo
        self.allocator = allocator
        self.qr_builder = qr_builder
        self.validator = validator or DataValidator()
        self.enforce_unique_numbers = enforce_unique_numbers

    def create_document(self, request: DocumentRequest) -> DocumentCreated:
        """
        Создает удостоверение.

        Если номер не передан, он выдается атомарно вместе со вставкой.

        Args:
            request: Данные удостоверения

        Returns:
            DocumentCreated: ID, номер удостоверения и номер комиссии

        Raises:
            StudentNotFoundError: Если указанный студент не существует
            CertificateNumberExistsError: Если включена проверка и номер занят
            StorageError: При ошибке БД
        """
        logger.info(f"Создание удостоверения для студента {request.student_jshshir or '-'}")

        commission_number = self.validator.commission_normalizer.normalize(request.commission_number)
        if commission_number != request.commission_number:
            logger.info(f"Номер комиссии пуст, установлен {commission_number}")

        data = self._request_to_row(request)
        data["commission_number"] = commission_number
        auto_number = self.validator.certificate_number_validator.is_blank(request.certificate_number)

        try:
            self._ensure_student_exists(request.student_jshshir)

            if not auto_number:
                self._ensure_number_free(request.certificate_number)

            document = self.document_repo.create_document(
                data,
                allocate_number=self.allocator.allocate if auto_number else None
            )

        except CertDeskError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка создания удостоверения: {e}")
            raise StorageError(f"Ошибка при создании удостоверения: {e}") from e

        logger.info(f"Удостоверение {document.id} создано с номером {document.certificate_number}")
        return DocumentCreated(
            id=document.id,
            certificate_number=document.certificate_number,
            commission_number=document.commission_number,
        )

    def get_document(self, document_id: int) -> DocumentOut:
        """
        Получает удостоверение по ID.

        Raises:
            DocumentNotFoundError: Если удостоверение не найдено
        """
        try:
            document = self.document_repo.get(document_id)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения удостоверения {document_id}: {e}")
            raise StorageError(f"Ошибка при получении удостоверения: {e}") from e

        if document is None:
            raise DocumentNotFoundError(f"Удостоверение {document_id} не найдено")
        return self._convert_db_to_pydantic(document)

    def get_document_detail(self, document_id: int) -> DocumentDetail:
        """
        Получает удостоверение с данными студента и QR-кодом.

        Ошибка генерации QR-кода не прерывает запрос: поле qr_code_base64
        остается пустым.

        Args:
            document_id: ID удостоверения

        Returns:
            DocumentDetail: Подробные данные удостоверения

        Raises:
            DocumentNotFoundError: Если удостоверение не найдено
        """
        try:
            row = self.document_repo.get_with_student(document_id)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения удостоверения {document_id}: {e}")
            raise StorageError(f"Ошибка при получении удостоверения: {e}") from e

        if row is None:
            raise DocumentNotFoundError(f"Удостоверение {document_id} не найдено")

        document, birth_date, phone = row
        detail = DocumentDetail(
            **self._convert_db_to_pydantic(document).model_dump(),
            student_birth_date=_text(birth_date),
            student_phone=_text(phone),
            verify_url=self.qr_builder.verification_url(_text(document.certificate_number)),
        )

        payload = self.qr_builder.build_verification_payload(detail)
        try:
            detail.qr_code_base64 = self.qr_builder.encode_payload(payload)
        except EncodingError as e:
            logger.error(f"Ошибка генерации QR-кода для удостоверения {document_id}: {e}")
            detail.qr_code_base64 = ""

        return detail

    def list_documents(self) -> List[DocumentOut]:
        """Возвращает все удостоверения, новые первыми."""
        try:
            documents = self.document_repo.list_all()
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения списка удостоверений: {e}")
            raise StorageError(f"Ошибка при получении удостоверений: {e}") from e

        return [self._convert_db_to_pydantic(d) for d in documents]

    def update_document(self, document_id: int, request: DocumentRequest) -> DocumentOut:
        """
        Перезаписывает все изменяемые поля удостоверения.

        Args:
            document_id: ID удостоверения
            request: Новые данные

        Returns:
            DocumentOut: Обновленное удостоверение

        Raises:
            StudentNotFoundError: Если указанный студент не существует
            DocumentNotFoundError: Если удостоверение не найдено
        """
        logger.info(f"Обновление удостоверения {document_id}")

        try:
            self._ensure_student_exists(request.student_jshshir)

            if request.certificate_number:
                self._ensure_number_free(request.certificate_number, exclude_id=document_id)

            updated = self.document_repo.update(document_id, self._request_to_row(request))

        except CertDeskError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка обновления удостоверения {document_id}: {e}")
            raise StorageError(f"Ошибка при обновлении удостоверения: {e}") from e

        if not updated:
            raise DocumentNotFoundError(f"Удостоверение {document_id} не найдено")

        logger.info(f"Удостоверение {document_id} успешно обновлено")
        return self.get_document(document_id)

    def delete_document(self, document_id: int) -> None:
        """
        Удаляет удостоверение.

        Raises:
            DocumentNotFoundError: Если удостоверение не найдено
        """
        try:
            deleted = self.document_repo.delete(document_id)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка удаления удостоверения {document_id}: {e}")
            raise StorageError(f"Ошибка при удалении удостоверения: {e}") from e

        if not deleted:
            raise DocumentNotFoundError(f"Удостоверение {document_id} не найдено")
        logger.info(f"Удостоверение {document_id} удалено")

    def next_certificate_number(self) -> str:
        """Возвращает номер, который получит следующее удостоверение."""
        try:
            return self.allocator.next_certificate_number()
        except SQLAlchemyError as e:
            logger.error(f"Ошибка вычисления следующего номера: {e}")
            raise StorageError(f"Ошибка при вычислении номера: {e}") from e

    def _ensure_student_exists(self, student_jshshir: str):
        if not student_jshshir:
            return
        if not self.student_repo.exists(student_jshshir):
            logger.warning(f"Студент с JShShIR {student_jshshir} не найден")
            raise StudentNotFoundError(f"Студент {student_jshshir} не найден")

    def _ensure_number_free(self, certificate_number: str, exclude_id: Optional[int] = None):
        # Без enforce_unique_numbers номер, переданный вручную, не проверяется
        if not self.enforce_unique_numbers:
            return
        if self.document_repo.certificate_number_exists(certificate_number, exclude_id=exclude_id):
            raise CertificateNumberExistsError(f"Номер удостоверения {certificate_number} уже занят")

    def _request_to_row(self, request: DocumentRequest) -> dict:
        return request.model_dump()

    def _convert_db_to_pydantic(self, document: DBDocument) -> DocumentOut:
        """
        Конвертирует объект БД в Pydantic модель.

        Args:
            document: Объект удостоверения из БД

        Returns:
            DocumentOut: Удостоверение с NULL, замененными на "" и 0
        """
        return DocumentOut(
            id=document.id,
            title=_text(document.title),
            student_jshshir=_text(document.student_jshshir),
            student_name=_text(document.student_name),
            course_start=_text(document.course_start),
            course_end=_text(document.course_end),
            exam_date=_text(document.exam_date),
            categories=_text(document.categories),
            course_hours=_number(document.course_hours),
            grade1=_number(document.grade1),
            grade2=_number(document.grade2),
            certificate_number=_text(document.certificate_number),
            status=_text(document.status),
            commission_number=_text(document.commission_number),
            director_name=_text(document.director_name),
            created_at=_text(document.created_at),
        )


class InvoiceService:
    """Сервис жизненного цикла счетов."""

    def __init__(self, invoice_repo: InvoiceRepository, student_repo: StudentRepository,
                 number_generator: InvoiceNumberGenerator,
                 validator: Optional[DataValidator] = None,
                 due_days: int = 30,
                 strict_transitions: bool = False,
                 today: Callable[[], date] = date.today):
        """
        Инициализация сервиса.

        Args:
            invoice_repo: Репозиторий счетов
            student_repo: Реестр студентов
            number_generator: Генератор номеров счетов
            validator: Валидатор входных данных
            due_days: Срок оплаты в днях от даты выставления
            strict_transitions: Запрещать переходы вне ALLOWED_TRANSITIONS
            today: Источник текущей даты
        """
        self.invoice_repo = invoice_repo
        self.student_repo = student_repo
        self.number_generator = number_generator
        self.validator = validator or DataValidator()
        self.due_days = due_days
        self.strict_transitions = strict_transitions
        self.today = today

    def create_invoice(self, request: InvoiceRequest) -> InvoiceCreated:
        """
        Выставляет счет студенту.

        Args:
            request: Данные счета

        Returns:
            InvoiceCreated: ID, номер счета и имя студента

        Raises:
            ValidationError: Если не указан студент
            AmountValidationError: Если сумма не больше нуля или не помещается в БД
            StudentNotFoundError: Если студент не зарегистрирован
            StorageError: При ошибке БД
        """
        logger.info(f"Создание счета: JShShIR={request.student_jshshir}, сумма={request.amount}")

        errors = self.validator.validate_invoice(request.student_jshshir, request.amount)
        if errors:
            logger.warning(f"Ошибка валидации счета: {errors}")
            if not self.validator.invoice_validator.validate_amount(request.amount):
                raise AmountValidationError("; ".join(errors))
            raise ValidationError("; ".join(errors))

        try:
            student = self.student_repo.get(request.student_jshshir)
            if student is None:
                logger.warning(f"Студент с JShShIR {request.student_jshshir} не найден")
                raise StudentNotFoundError(
                    "Talaba topilmadi. Avval talabani ro'yxatga oling."
                )

            issue_date = self.today()
            invoice = self.invoice_repo.create_invoice(
                {
                    "student_jshshir": request.student_jshshir,
                    "student_name": student.full_name,
                    "description": request.description,
                    "amount": request.amount,
                    "status": InvoiceStatus.PENDING.value,
                    "issue_date": issue_date,
                    "due_date": issue_date + timedelta(days=self.due_days),
                },
                make_number=self.number_generator.generate,
            )

        except CertDeskError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка создания счета: {e}")
            raise StorageError(f"Ошибка при создании счета: {e}") from e

        logger.info(f"Счет создан: ID={invoice.id}, номер={invoice.invoice_number}")
        return InvoiceCreated(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            student_name=invoice.student_name,
        )

    def list_invoices(self) -> List[InvoiceOut]:
        return self.search_invoices("")

    def search_invoices(self, query: str = "") -> List[InvoiceOut]:
        """
        Поиск счетов по JShShIR, имени студента, описанию или номеру.

        Args:
            query: Подстрока; пустая строка возвращает все счета

        Returns:
            List[InvoiceOut]: Найденные счета, новые первыми
        """
        query = (query or "").strip()
        try:
            rows = self.invoice_repo.search(query)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка поиска счетов: {e}")
            raise StorageError(f"Ошибка при поиске счетов: {e}") from e

        logger.info(f"Найдено счетов: {len(rows)} (запрос: {query!r})")
        return [
            self._convert_db_to_pydantic(invoice, student_name=registry_name or UNKNOWN_STUDENT)
            for invoice, registry_name in rows
        ]

    def get_invoice_detail(self, invoice_id: int) -> InvoiceDetail:
        """
        Получает счет с датой рождения и телефоном студента.

        Raises:
            InvoiceNotFoundError: Если счет не найден
        """
        try:
            row = self.invoice_repo.get_with_student(invoice_id)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения счета {invoice_id}: {e}")
            raise StorageError(f"Ошибка при получении счета: {e}") from e

        if row is None:
            raise InvoiceNotFoundError(f"Счет {invoice_id} не найден")

        invoice, birth_date, phone = row
        return InvoiceDetail(
            **self._convert_db_to_pydantic(invoice).model_dump(),
            student_birth_date=_text(birth_date),
            student_phone=_text(phone),
        )

    def update_status(self, invoice_id: int, status: str) -> InvoiceStatusChanged:
        """
        Меняет статус счета.

        Переход в To'landi проставляет дату оплаты текущей датой, любой
        другой статус ее очищает.

        Args:
            invoice_id: ID счета
            status: Новый статус

        Returns:
            InvoiceStatusChanged: Примененный статус и дата оплаты

        Raises:
            StatusValidationError: Если статус не из допустимого набора
            ValidationError: Если включен строгий режим и переход запрещен
            InvoiceNotFoundError: Если счет не найден
        """
        new_status = self.validator.status_validator.parse(status)

        try:
            invoice = self.invoice_repo.get(invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(f"Счет {invoice_id} не найден")

            self._check_transition(invoice, new_status)

            payment_date = self.today() if new_status is InvoiceStatus.PAID else None
            updated = self.invoice_repo.update_status(invoice_id, new_status.value, payment_date)

        except CertDeskError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка обновления статуса счета {invoice_id}: {e}")
            raise StorageError(f"Ошибка при обновлении статуса счета: {e}") from e

        if not updated:
            raise InvoiceNotFoundError(f"Счет {invoice_id} не найден")

        logger.info(f"Счет {invoice_id}: статус {invoice.status!r} -> {new_status.value!r}")
        return InvoiceStatusChanged(status=new_status.value, payment_date=_text(payment_date))

    def delete_invoice(self, invoice_id: int) -> None:
        """
        Удаляет счет.

        Raises:
            InvoiceNotFoundError: Если счет не найден
        """
        try:
            if self.invoice_repo.get(invoice_id) is None:
                raise InvoiceNotFoundError(f"Счет {invoice_id} не найден")
            deleted = self.invoice_repo.delete(invoice_id)
        except CertDeskError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка удаления счета {invoice_id}: {e}")
            raise StorageError(f"Ошибка при удалении счета: {e}") from e

        if not deleted:
            raise InvoiceNotFoundError(f"Счет {invoice_id} не найден")
        logger.info(f"Счет {invoice_id} удален")

    def _check_transition(self, invoice: DBInvoice, new_status: InvoiceStatus):
        try:
            current = InvoiceStatus(invoice.status)
        except ValueError:
            # Статус вне набора (старые данные): переход не проверяется
            return

        if new_status is current or new_status in ALLOWED_TRANSITIONS[current]:
            return

        message = f"Переход статуса счета {invoice.id}: {current.value!r} -> {new_status.value!r} вне таблицы переходов"
        if self.strict_transitions:
            raise ValidationError(message)
        logger.warning(message)

    def _convert_db_to_pydantic(self, invoice: DBInvoice, student_name: Optional[str] = None) -> InvoiceOut:
        return InvoiceOut(
            id=invoice.id,
            student_jshshir=invoice.student_jshshir,
            student_name=student_name if student_name is not None else _text(invoice.student_name),
            description=_text(invoice.description),
            amount=float(invoice.amount),
            status=invoice.status,
            # Номер может отсутствовать у записей, созданных до атомарной выдачи
            invoice_number=invoice.invoice_number or self.number_generator.generate(invoice.id),
            created_at=_text(invoice.created_at),
            issue_date=_text(invoice.issue_date),
            due_date=_text(invoice.due_date),
            payment_date=_text(invoice.payment_date),
        )


class VerificationService:
    """Публичная проверка удостоверений."""

    def __init__(self, document_repo: DocumentRepository):
        self.document_repo = document_repo

    def verify(self, token: str) -> VerificationSummary:
        """
        Ищет удостоверение по номеру или по ID.

        Args:
            token: Номер удостоверения или его ID

        Returns:
            VerificationSummary: Публичные данные удостоверения

        Raises:
            ValidationError: Если токен пустой
            DocumentNotFoundError: Если ничего не найдено
        """
        token = (token or "").strip()
        if not token:
            raise ValidationError("Не указан номер удостоверения")

        logger.info(f"Проверка удостоверения {token}")

        try:
            document = self.document_repo.find_by_token(token)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка проверки удостоверения {token}: {e}")
            raise StorageError(f"Ошибка при проверке удостоверения: {e}") from e

        if document is None:
            logger.info(f"Удостоверение {token} не найдено")
            raise DocumentNotFoundError(f"Удостоверение {token} не найдено")

        return VerificationSummary(
            id=document.id,
            certificate_number=_text(document.certificate_number),
            student_name=_text(document.student_name),
            student_jshshir=_text(document.student_jshshir),
            course_start=_text(document.course_start),
            course_end=_text(document.course_end),
            exam_date=_text(document.exam_date),
            categories=_text(document.categories),
            course_hours=_number(document.course_hours),
            grade1=_number(document.grade1),
            grade2=_number(document.grade2),
            status=_text(document.status),
            director_name=_text(document.director_name),
        )


class DashboardService:
    """Счетчики для главной страницы."""

    def __init__(self, student_repo: StudentRepository, document_repo: DocumentRepository,
                 invoice_repo: InvoiceRepository):
        self.student_repo = student_repo
        self.document_repo = document_repo
        self.invoice_repo = invoice_repo

    def get_dashboard(self) -> Dashboard:
        try:
            return Dashboard(
                students=self.student_repo.count(),
                documents=self.document_repo.count(),
                invoices=self.invoice_repo.count(),
            )
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения статистики: {e}")
            raise StorageError(f"Ошибка при получении статистики: {e}") from e


class Services(NamedTuple):
    """Набор сервисов, собранных вокруг одного менеджера БД."""
    students: StudentService
    documents: DocumentService
    invoices: InvoiceService
    verification: VerificationService
    dashboard: DashboardService


def build_services(db_manager: DatabaseManager, settings: Settings,
                   qr_encoder: Optional[QRCodeEncoder] = None) -> Services:
    """
    Собирает сервисы с явно переданными зависимостями.

    Args:
        db_manager: Менеджер базы данных
        settings: Настройки приложения
        qr_encoder: Кодировщик QR (для подмены в тестах)

    Returns:
        Services: Готовые сервисы
    """
    student_repo = StudentRepository(db_manager)
    document_repo = DocumentRepository(db_manager)
    invoice_repo = InvoiceRepository(db_manager)
    validator = DataValidator(settings.default_commission_number)

    qr_builder = QRPayloadBuilder(
        encoder=qr_encoder or QRCodeEncoder(pixel_size=settings.qr_pixel_size),
        organization_label=settings.organization_label,
        verify_base_url=settings.verify_base_url,
    )

    return Services(
        students=StudentService(student_repo),
        documents=DocumentService(
            document_repo,
            student_repo,
            CertificateNumberAllocator(db_manager, width=settings.certificate_number_width),
            qr_builder,
            validator=validator,
            enforce_unique_numbers=settings.enforce_unique_certificate_numbers,
        ),
        invoices=InvoiceService(
            invoice_repo,
            student_repo,
            InvoiceNumberGenerator(width=settings.invoice_number_width),
            validator=validator,
            due_days=settings.invoice_due_days,
            strict_transitions=settings.strict_invoice_transitions,
        ),
        verification=VerificationService(document_repo),
        dashboard=DashboardService(student_repo, document_repo, invoice_repo),
    )
