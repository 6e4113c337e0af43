"""QR session token generation and payload encoding."""
import base64
import io
import json
import secrets
import string
import time
from typing import Any, Dict, Optional

import qrcode

BASE36_ALPHABET = string.digits + string.ascii_lowercase
REQUIRED_PAYLOAD_FIELDS = ('sessionId', 'token', 'expiresAt')


def now_ms() -> int:
    """Current wall-clock time as milliseconds since the epoch."""
    return int(time.time() * 1000)


def to_base36(value: int) -> str:
    """Encode a non-negative integer in lowercase base 36."""
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if value == 0:
        return '0'
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return ''.join(reversed(digits))


class QRService:
    """Service for session identifiers, tokens and QR images."""

    FRAGMENT_LENGTH = 13
    SESSION_SUFFIX_LENGTH = 9

    @staticmethod
    def _random_fragment(length: int) -> str:
        return ''.join(secrets.choice(BASE36_ALPHABET) for _ in range(length))

    @classmethod
    def generate_session_id(cls, timestamp_ms: Optional[int] = None) -> str:
        """Timestamp plus a random suffix; unique enough for one store."""
        timestamp_ms = now_ms() if timestamp_ms is None else timestamp_ms
        return f"session_{timestamp_ms}_{cls._random_fragment(cls.SESSION_SUFFIX_LENGTH)}"

    @classmethod
    def generate_token(cls, timestamp_ms: Optional[int] = None) -> str:
        """
        Two random base-36 fragments followed by the base-36 timestamp.

        The token is an unguessable-enough lookup string, not a signed
        credential.
        """
        timestamp_ms = now_ms() if timestamp_ms is None else timestamp_ms
        return (
            cls._random_fragment(cls.FRAGMENT_LENGTH)
            + cls._random_fragment(cls.FRAGMENT_LENGTH)
            + to_base36(timestamp_ms)
        )

    @staticmethod
    def build_payload(
        session_id: str,
        token: str,
        academic_level: str,
        subject: str,
        timestamp: int,
        expires_at: int
    ) -> str:
        """Serialize the QR payload exactly as scanners expect it."""
        payload = {
            'sessionId': session_id,
            'token': token,
            'academicLevel': academic_level,
            'subject': subject,
            'timestamp': timestamp,
            'expiresAt': expires_at
        }
        return json.dumps(payload, separators=(',', ':'), ensure_ascii=False)

    @staticmethod
    def parse_payload(payload: str) -> Dict[str, Any]:
        """Parse scanned text; raises ValueError when it is not JSON."""
        return json.loads(payload)

    @staticmethod
    def render_qr_image(payload: str) -> str:
        """
        Render payload text as a PNG QR code.
        Returns: data URI suitable for an <img> tag
        """
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
