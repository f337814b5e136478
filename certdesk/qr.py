"""
Построение данных для QR-кода проверки удостоверения.
"""

import base64
import io
import logging
from typing import Optional

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_M

from .exceptions import EncodingError

logger = logging.getLogger(__name__)


class QRCodeEncoder:
    """Кодирует текст в PNG изображение QR-кода."""

    def __init__(self, pixel_size: int = 256, error_correction: int = ERROR_CORRECT_M):
        """
        Args:
            pixel_size: Сторона итогового изображения в пикселях
            error_correction: Уровень коррекции ошибок qrcode
        """
        self.pixel_size = pixel_size
        self.error_correction = error_correction

    def encode(self, data: str) -> bytes:
        """
        Генерирует PNG с QR-кодом.

        Args:
            data: Текст для кодирования

        Returns:
            bytes: PNG изображение

        Raises:
            EncodingError: При ошибке генерации
        """
        try:
            qr = qrcode.QRCode(error_correction=self.error_correction, box_size=10, border=4)
            qr.add_data(data)
            qr.make(fit=True)
            img = qr.make_image(fill_color="black", back_color="white")

            raw_buf = io.BytesIO()
            img.save(raw_buf, format="PNG")
            raw_buf.seek(0)

            resized = Image.open(raw_buf).resize((self.pixel_size, self.pixel_size), Image.NEAREST)
            png_buf = io.BytesIO()
            resized.save(png_buf, format="PNG")
            return png_buf.getvalue()

        except Exception as e:
            raise EncodingError(f"Не удалось сгенерировать QR-код: {e}") from e


class QRPayloadBuilder:
    """Собирает текст проверки удостоверения и кодирует его в QR."""

    def __init__(self, encoder: QRCodeEncoder, organization_label: str,
                 verify_base_url: Optional[str] = None):
        self.encoder = encoder
        self.organization_label = organization_label
        self.verify_base_url = verify_base_url

    def verification_url(self, certificate_number: str) -> str:
        """
        Возвращает публичную ссылку проверки или пустую строку.

        Args:
            certificate_number: Номер удостоверения
        """
        if not self.verify_base_url or not certificate_number:
            return ""
        return f"{self.verify_base_url}/verify.html?cert={certificate_number}"

    def build_verification_payload(self, document) -> str:
        """
        Строит многострочный текст для QR-кода.

        Args:
            document: Удостоверение (DocumentOut или DocumentDetail)

        Returns:
            str: Текст для кодирования
        """
        lines = [
            self.organization_label,
            f"Guvohnoma: {document.certificate_number}",
            f"Raqam: {document.id}",
            f"Talaba: {document.student_name}",
            f"JShShIR: {document.student_jshshir}",
            f"Sana: {document.created_at}",
            f"Toifalar: {document.categories}",
            f"Imtihon: {document.exam_date}",
        ]

        url = self.verification_url(document.certificate_number)
        if url:
            lines.append(f"Tekshirish: {url}")

        return "\n".join(lines)

    def encode_payload(self, payload: str) -> str:
        """
        Кодирует текст в QR и возвращает PNG в base64.

        Raises:
            EncodingError: При ошибке генерации
        """
        png_bytes = self.encoder.encode(payload)
        return base64.b64encode(png_bytes).decode("ascii")
