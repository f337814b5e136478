"""
Выдача последовательных номеров удостоверений и номеров счетов.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, select, update, func, cast, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .database import DatabaseManager, Document, NumberingLock, CERTIFICATE_SEQUENCE

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV-"


class CertificateNumberAllocator:
    """Генератор последовательных номеров удостоверений."""

    # Номером считается только строка из цифр
    NUMERIC_PATTERN = r"^[0-9]+$"

    def __init__(self, db_manager: DatabaseManager, width: int = 4,
                 sequence_name: str = CERTIFICATE_SEQUENCE):
        """
        Args:
            db_manager: Менеджер базы данных
            width: Количество цифр в номере (с ведущими нулями)
            sequence_name: Имя строки-замка в таблице numbering_locks
        """
        self.db_manager = db_manager
        self.width = width
        self.sequence_name = sequence_name

    def format_number(self, value: int) -> str:
        """
        Форматирует номер с ведущими нулями.

        Args:
            value: Порядковый номер

        Returns:
            str: Номер вида 0001
        """
        return f"{value:0{self.width}d}"

    def allocate(self, session: Session) -> str:
        """
        Выдает следующий номер внутри транзакции вставки.

        Сначала берется блокировка строки нумерации, затем ищется максимум.
        Блокировка держится до коммита вставки, поэтому два параллельных
        вызова не могут прочитать один и тот же максимум.

        Args:
            session: Сессия, в которой затем будет вставлено удостоверение

        Returns:
            str: Следующий номер удостоверения
        """
        self._acquire_lock(session)
        number = self.format_number(self._next_value(session))
        logger.info(f"Выдан номер удостоверения {number}")
        return number

    def next_certificate_number(self) -> str:
        """
        Возвращает номер, который получит следующее удостоверение.

        Только чтение: номер не резервируется.

        Returns:
            str: Следующий номер удостоверения
        """
        with self.db_manager.get_session() as session:
            return self.format_number(self._next_value(session))

    def _acquire_lock(self, session: Session):
        # UPDATE блокирует строку в PostgreSQL и всю БД на запись в SQLite
        result = session.execute(
            update(NumberingLock)
            .where(NumberingLock.name == self.sequence_name)
            .values(touched_at=datetime.now())
        )
        if result.rowcount == 0:
            session.add(NumberingLock(name=self.sequence_name, touched_at=datetime.now()))
            session.flush()

    def _next_value(self, session: Session) -> int:
        """
        Вычисляет следующий порядковый номер.

        При ошибке поиска максимума номера использует максимальный ID
        удостоверения, а если и он недоступен, начинает с 1.
        """
        try:
            with session.begin_nested():
                max_number = self._max_numeric_number(session)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка поиска максимального номера удостоверения: {e}")
            return self._fallback_value(session)

        return (max_number or 0) + 1

    def _fallback_value(self, session: Session) -> int:
        try:
            with session.begin_nested():
                max_id = session.scalar(select(func.max(Document.id)))
        except SQLAlchemyError as e:
            logger.error(f"Ошибка поиска максимального ID удостоверения: {e}")
            return 1

        return (max_id or 0) + 1

    def _max_numeric_number(self, session: Session) -> Optional[int]:
        is_numeric = Document.certificate_number.regexp_match(self.NUMERIC_PATTERN)
        return session.scalar(
            select(func.max(case((is_numeric, cast(Document.certificate_number, BigInteger)))))
        )


class InvoiceNumberGenerator:
    """Генератор номеров счетов по их ID."""

    def __init__(self, width: int = 6, prefix: str = INVOICE_PREFIX):
        self.width = width
        self.prefix = prefix

    def generate(self, invoice_id: int) -> str:
        """
        Строит номер счета.

        Args:
            invoice_id: ID счета в БД

        Returns:
            str: Номер вида INV-000042
        """
        return f"{self.prefix}{invoice_id:0{self.width}d}"
