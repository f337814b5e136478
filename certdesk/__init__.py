"""
Основной модуль бизнес-логики: удостоверения, счета и реестр студентов.
"""

from .service import Services, build_services
from .models import InvoiceStatus, DocumentRequest, InvoiceRequest, StudentRequest
from .generator import CertificateNumberAllocator, InvoiceNumberGenerator
from .validators import DataValidator
from .database import DatabaseManager

__version__ = "1.0.0"

__all__ = [
    'Services',
    'build_services',
    'InvoiceStatus',
    'DocumentRequest',
    'InvoiceRequest',
    'StudentRequest',
    'CertificateNumberAllocator',
    'InvoiceNumberGenerator',
    'DataValidator',
    'DatabaseManager'
]
