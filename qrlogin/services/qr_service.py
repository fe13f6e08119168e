import base64
import io
import urllib.parse

import qrcode


class QRService:
    def __init__(self, link_base: str = "qrlogin://qr-login"):
        self.link_base = link_base

    def build_payload(self, ticket_id: str) -> str:
        """
        The string encoded in the QR code: a deep link the mobile app opens,
        carrying only the ticket id.
        """
        return f"{self.link_base}?{urllib.parse.urlencode({'ticketId': ticket_id})}"

    @staticmethod
    def parse_payload(payload: str) -> str:
        """
        Extracts the ticket id from a scanned payload. Accepts the deep link
        or a bare ticket id. Raises ValueError on anything else.
        """
        payload = (payload or "").strip()
        if not payload:
            raise ValueError("Empty QR payload")

        if "?" not in payload and "://" not in payload:
            return payload

        qs = urllib.parse.parse_qs(urllib.parse.urlsplit(payload).query)
        values = qs.get("ticketId")
        if not values or not values[0]:
            raise ValueError("QR payload carries no ticket id")
        return values[0]

    @staticmethod
    def create_qr_png(data_str: str) -> bytes:
        """
        Creates a QR code image and returns the PNG bytes
        """
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(data_str)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        return buffered.getvalue()

    def create_qr_image(self, data_str: str) -> str:
        """
        Creates a QR code image and returns it as a base64 string
        """
        return base64.b64encode(self.create_qr_png(data_str)).decode()
