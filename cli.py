"""
CLI интерфейс для удостоверений и счетов
"""
import argparse
import logging
import sys
from typing import Optional

from certdesk.database import DatabaseManager
from certdesk.exceptions import CertDeskError, ValidationError, NotFoundError
from certdesk.service import Services, build_services
from config.settings import Settings, get_settings, setup_logging


class CertificateCLI:
    """CLI интерфейс для обслуживания БД, проверки удостоверений и счетов"""

    def __init__(self, settings: Optional[Settings] = None,
                 db_manager: Optional[DatabaseManager] = None,
                 services: Optional[Services] = None):
        self.settings = settings or get_settings()
        self.logger = logging.getLogger(__name__)
        self.db_manager = db_manager or DatabaseManager(
            self.settings.database_url, pool_size=self.settings.db_pool_size
        )
        self.services = services or build_services(self.db_manager, self.settings)

    def init_db(self, args):
        """Создание таблиц"""
        try:
            self.db_manager.create_tables()
            print("✓ Таблицы базы данных созданы")
        except Exception as e:
            print(f"✗ Ошибка создания таблиц: {e}")
            self.logger.error(f"Ошибка создания таблиц: {e}")
            sys.exit(1)

    def next_number(self, args):
        """Следующий номер удостоверения"""
        try:
            number = self.services.documents.next_certificate_number()
            print(f"✓ Следующий номер удостоверения: {number}")
        except CertDeskError as e:
            print(f"✗ Ошибка: {e}")
            sys.exit(1)

    def verify_certificate(self, args):
        """Проверка удостоверения через CLI"""
        token = args.token

        try:
            summary = self.services.verification.verify(token)
        except NotFoundError:
            print(f"✗ Удостоверение {token} не найдено")
            return
        except CertDeskError as e:
            print(f"✗ Ошибка проверки: {e}")
            self.logger.error(f"Ошибка проверки удостоверения: {e}")
            sys.exit(1)

        print("✓ Удостоверение найдено:")
        print(f"  ID: {summary.id}")
        print(f"  Номер: {summary.certificate_number}")
        print(f"  Студент: {summary.student_name}")
        print(f"  JShShIR: {summary.student_jshshir}")
        print(f"  Категории: {summary.categories}")
        print(f"  Экзамен: {summary.exam_date}")
        print(f"  Директор: {summary.director_name}")

        self.logger.info(f"Проверено удостоверение {token}")

    def invoice_status(self, args):
        """Смена статуса счета"""
        try:
            changed = self.services.invoices.update_status(args.invoice_id, args.status)
        except ValidationError as e:
            print(f"✗ Ошибка валидации: {e}")
            sys.exit(1)
        except NotFoundError as e:
            print(f"✗ {e}")
            sys.exit(1)
        except CertDeskError as e:
            print(f"✗ Ошибка: {e}")
            self.logger.error(f"Ошибка смены статуса счета {args.invoice_id}: {e}")
            sys.exit(1)

        print(f"✓ Статус счета {args.invoice_id}: {changed.status}")
        if changed.payment_date:
            print(f"  Дата оплаты: {changed.payment_date}")

    def main(self, argv=None):
        """Главная функция CLI"""
        parser = argparse.ArgumentParser(
            description="Удостоверения и счета",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Примеры использования:
  %(prog)s init-db
  %(prog)s next-number
  %(prog)s verify 0007
  %(prog)s invoice-status 12 "To'landi"
            """
        )

        subparsers = parser.add_subparsers(dest='command', help='Доступные команды')

        subparsers.add_parser('init-db', help='Создание таблиц')
        subparsers.add_parser('next-number', help='Следующий номер удостоверения')

        verify_parser = subparsers.add_parser('verify', help='Проверка удостоверения')
        verify_parser.add_argument('token', help='Номер удостоверения или его ID')

        status_parser = subparsers.add_parser('invoice-status', help='Смена статуса счета')
        status_parser.add_argument('invoice_id', type=int, help='ID счета')
        status_parser.add_argument('status', help='Новый статус')

        args = parser.parse_args(argv)

        if not args.command:
            parser.print_help()
            return

        commands = {
            'init-db': self.init_db,
            'next-number': self.next_number,
            'verify': self.verify_certificate,
            'invoice-status': self.invoice_status,
        }
        commands[args.command](args)


def main(argv=None):
    settings = get_settings()
    setup_logging(settings)
    CertificateCLI(settings).main(argv)


if __name__ == '__main__':
    main()
