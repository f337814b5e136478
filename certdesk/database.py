"""
Модели SQLAlchemy и репозитории для работы с базой данных.
"""

import logging
from datetime import datetime, date
from typing import Optional, List, Tuple, Callable

from sqlalchemy import (
    create_engine, String, Integer, DateTime, Date, Numeric, Text,
    Index, select, update, delete, func, cast, case, or_, text
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker, Session

logger = logging.getLogger(__name__)

CERTIFICATE_SEQUENCE = "certificate_number"


class Base(DeclarativeBase):
    """Базовый класс для моделей."""
    pass


class Student(Base):
    """Модель студента (реестр)."""

    __tablename__ = "students"

    jshshir: Mapped[str] = mapped_column(String(20), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    birth_date: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    def __repr__(self):
        return f"<Student(jshshir={self.jshshir}, full_name={self.full_name})>"


class Document(Base):
    """Модель удостоверения."""

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Без внешнего ключа: висячая ссылка на удаленного студента допустима
    student_jshshir: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    student_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    course_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    course_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    exam_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    categories: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    course_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    grade1: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    grade2: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    certificate_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    status: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    commission_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    director_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.now, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index('idx_documents_created_at', 'created_at'),
        # Без AUTOINCREMENT SQLite повторно выдает ID удаленной записи
        {'sqlite_autoincrement': True},
    )

    def __repr__(self):
        return f"<Document(id={self.id}, certificate_number={self.certificate_number})>"


class Invoice(Base):
    """Модель счета."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_jshshir: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    amount: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=False)
    status: Mapped[str] = mapped_column(String(64), nullable=False)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.now, server_default=func.now(), nullable=False
    )
    issue_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index('idx_invoices_created_at', 'created_at'),
        {'sqlite_autoincrement': True},
    )

    def __repr__(self):
        return f"<Invoice(id={self.id}, invoice_number={self.invoice_number})>"


class NumberingLock(Base):
    """Строка-замок, сериализующая выдачу номеров удостоверений."""

    __tablename__ = "numbering_locks"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    touched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class DatabaseManager:
    """Менеджер для работы с базой данных."""

    def __init__(self, database_url: str, pool_size: int = 10, echo: bool = False):
        """
        Инициализация менеджера БД.

        Args:
            database_url: URL подключения к БД
            pool_size: Размер пула соединений
            echo: Логировать SQL запросы
        """
        engine_kwargs = {"pool_pre_ping": True, "echo": echo}

        if database_url.startswith("sqlite"):
            # Потоки FastAPI делят один файл БД; ждем снятия блокировки записи
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        else:
            engine_kwargs.update(pool_size=pool_size, max_overflow=pool_size * 2, pool_recycle=3600)

        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

    def create_tables(self):
        """Создает все таблицы и служебную строку нумерации."""
        Base.metadata.create_all(bind=self.engine)

        with self.get_session() as session:
            if session.get(NumberingLock, CERTIFICATE_SEQUENCE) is None:
                session.add(NumberingLock(name=CERTIFICATE_SEQUENCE))
                session.commit()

        logger.info("Таблицы базы данных созданы успешно")

    def get_session(self) -> Session:
        """Возвращает новую сессию для работы с БД."""
        return self.SessionLocal()

    def health_check(self) -> bool:
        """Проверяет подключение к базе данных."""
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
                return True
        except SQLAlchemyError as e:
            logger.error(f"Ошибка подключения к БД: {e}")
            return False

    def dispose(self):
        """Закрывает пул соединений."""
        self.engine.dispose()


class StudentRepository:
    """Репозиторий реестра студентов."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def exists(self, jshshir: str) -> bool:
        with self.db_manager.get_session() as session:
            found = session.execute(
                select(Student.jshshir).where(Student.jshshir == jshshir)
            ).first()
            return found is not None

    def get(self, jshshir: str) -> Optional[Student]:
        with self.db_manager.get_session() as session:
            return session.get(Student, jshshir)

    def list_all(self) -> List[Student]:
        with self.db_manager.get_session() as session:
            return list(session.scalars(select(Student).order_by(Student.full_name)))

    def create(self, data: dict) -> Student:
        with self.db_manager.get_session() as session:
            student = Student(**data)
            session.add(student)
            session.commit()
            return student

    def update(self, jshshir: str, data: dict) -> bool:
        """
        Обновляет данные студента.

        Returns:
            bool: False если студент не найден
        """
        with self.db_manager.get_session() as session:
            result = session.execute(
                update(Student).where(Student.jshshir == jshshir).values(**data)
            )
            session.commit()
            return result.rowcount > 0

    def delete(self, jshshir: str) -> bool:
        with self.db_manager.get_session() as session:
            result = session.execute(delete(Student).where(Student.jshshir == jshshir))
            session.commit()
            return result.rowcount > 0

    def count(self) -> int:
        with self.db_manager.get_session() as session:
            return session.scalar(select(func.count()).select_from(Student))


class DocumentRepository:
    """Репозиторий удостоверений."""

    def __init__(self, db_manager: DatabaseManager):
        """
        Инициализация репозитория.

        Args:
            db_manager: Менеджер базы данных
        """
        self.db_manager = db_manager

    def create_document(self, data: dict,
                        allocate_number: Optional[Callable[[Session], str]] = None) -> Document:
        """
        Создает удостоверение.

        Если передан allocate_number, номер выдается внутри той же транзакции,
        что и вставка, поэтому параллельные вызовы получают разные номера.

        Args:
            data: Данные удостоверения
            allocate_number: Функция выдачи номера, работающая в сессии вставки

        Returns:
            Document: Созданное удостоверение
        """
        with self.db_manager.get_session() as session:
            if allocate_number is not None:
                data = dict(data, certificate_number=allocate_number(session))

            document = Document(**data)
            session.add(document)
            session.commit()
            return document

    def get(self, document_id: int) -> Optional[Document]:
        with self.db_manager.get_session() as session:
            return session.get(Document, document_id)

    def get_with_student(self, document_id: int) -> Optional[Tuple[Document, Optional[str], Optional[str]]]:
        """
        Получает удостоверение вместе с датой рождения и телефоном студента.

        Args:
            document_id: ID удостоверения

        Returns:
            Кортеж (удостоверение, дата рождения, телефон) или None
        """
        with self.db_manager.get_session() as session:
            row = session.execute(
                select(Document, Student.birth_date, Student.phone)
                .outerjoin(Student, Document.student_jshshir == Student.jshshir)
                .where(Document.id == document_id)
            ).first()
            return tuple(row) if row else None

    def list_all(self) -> List[Document]:
        with self.db_manager.get_session() as session:
            return list(session.scalars(
                select(Document).order_by(Document.created_at.desc(), Document.id.desc())
            ))

    def update(self, document_id: int, data: dict) -> bool:
        """
        Перезаписывает изменяемые поля удостоверения.

        Returns:
            bool: False если удостоверение не найдено
        """
        with self.db_manager.get_session() as session:
            result = session.execute(
                update(Document).where(Document.id == document_id).values(**data)
            )
            session.commit()
            return result.rowcount > 0

    def delete(self, document_id: int) -> bool:
        with self.db_manager.get_session() as session:
            result = session.execute(delete(Document).where(Document.id == document_id))
            session.commit()
            return result.rowcount > 0

    def certificate_number_exists(self, certificate_number: str,
                                  exclude_id: Optional[int] = None) -> bool:
        """Проверяет, занят ли номер удостоверения другой записью."""
        with self.db_manager.get_session() as session:
            query = select(Document.id).where(Document.certificate_number == certificate_number)
            if exclude_id is not None:
                query = query.where(Document.id != exclude_id)
            return session.execute(query.limit(1)).first() is not None

    def find_by_token(self, token: str) -> Optional[Document]:
        """
        Ищет удостоверение по номеру или по внутреннему ID.

        Совпадение по номеру имеет приоритет над совпадением по ID.

        Args:
            token: Номер удостоверения или ID в виде строки

        Returns:
            Optional[Document]: Найденное удостоверение или None
        """
        number_match = Document.certificate_number == token
        with self.db_manager.get_session() as session:
            return session.scalars(
                select(Document)
                .where(or_(number_match, cast(Document.id, String) == token))
                .order_by(case((number_match, 0), else_=1), Document.id)
                .limit(1)
            ).first()

    def count(self) -> int:
        with self.db_manager.get_session() as session:
            return session.scalar(select(func.count()).select_from(Document))


class InvoiceRepository:
    """Репозиторий счетов."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def create_invoice(self, data: dict, make_number: Callable[[int], str]) -> Invoice:
        """
        Создает счет и присваивает ему номер в одной транзакции.

        Args:
            data: Данные счета
            make_number: Функция, строящая номер счета по его ID

        Returns:
            Invoice: Созданный счет с номером
        """
        with self.db_manager.get_session() as session:
            invoice = Invoice(**data)
            session.add(invoice)
            # flush выдает ID, номер попадает в тот же коммит
            session.flush()
            invoice.invoice_number = make_number(invoice.id)
            session.commit()
            return invoice

    def get(self, invoice_id: int) -> Optional[Invoice]:
        with self.db_manager.get_session() as session:
            return session.get(Invoice, invoice_id)

    def get_with_student(self, invoice_id: int) -> Optional[Tuple[Invoice, Optional[str], Optional[str]]]:
        """Получает счет вместе с датой рождения и телефоном студента."""
        with self.db_manager.get_session() as session:
            row = session.execute(
                select(Invoice, Student.birth_date, Student.phone)
                .outerjoin(Student, Invoice.student_jshshir == Student.jshshir)
                .where(Invoice.id == invoice_id)
            ).first()
            return tuple(row) if row else None

    def search(self, query: str = "") -> List[Tuple[Invoice, Optional[str]]]:
        """
        Поиск счетов по подстроке без учета регистра.

        Пустой запрос возвращает все счета.

        Args:
            query: Подстрока для поиска

        Returns:
            Список кортежей (счет, актуальное имя студента из реестра)
        """
        statement = (
            select(Invoice, Student.full_name)
            .outerjoin(Student, Invoice.student_jshshir == Student.jshshir)
            .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        )

        if query:
            pattern = f"%{query}%"
            statement = statement.where(or_(
                Invoice.student_jshshir.ilike(pattern),
                Invoice.student_name.ilike(pattern),
                Invoice.description.ilike(pattern),
                Invoice.invoice_number.ilike(pattern),
            ))

        with self.db_manager.get_session() as session:
            return [tuple(row) for row in session.execute(statement)]

    def update_status(self, invoice_id: int, status: str, payment_date: Optional[date]) -> bool:
        """
        Обновляет статус и дату оплаты счета.

        Returns:
            bool: False если счет не найден
        """
        with self.db_manager.get_session() as session:
            result = session.execute(
                update(Invoice)
                .where(Invoice.id == invoice_id)
                .values(status=status, payment_date=payment_date)
            )
            session.commit()
            return result.rowcount > 0

    def delete(self, invoice_id: int) -> bool:
        with self.db_manager.get_session() as session:
            result = session.execute(delete(Invoice).where(Invoice.id == invoice_id))
            session.commit()
            return result.rowcount > 0

    def count(self) -> int:
        with self.db_manager.get_session() as session:
            return session.scalar(select(func.count()).select_from(Invoice))
