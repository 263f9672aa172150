"""
TOTP (Time-based One-Time Password) support, RFC 6238.

6-digit codes, 30-second step, HMAC-SHA1, Base32 secrets: compatible with
Google Authenticator, Authy and Aegis.
"""
import base64
import io
from dataclasses import dataclass

import pyotp
import qrcode

from app.config import settings


@dataclass(frozen=True)
class TwoFactorSetup:
    secret: str
    provisioning_uri: str
    qr_code: str


def get_provisioning_uri(secret: str, account_label: str, issuer: str) -> str:
    """otpauth://totp/{issuer}:{account}?secret=...&issuer=..."""
    return pyotp.TOTP(secret).provisioning_uri(name=account_label, issuer_name=issuer)


def render_qr_data_url(uri: str) -> str:
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
    return f"data:image/png;base64,{encoded}"


def generate_secret(account_label: str, issuer: str | None = None) -> TwoFactorSetup:
    """Create a candidate secret. Nothing is persisted here."""
    secret = pyotp.random_base32()
    uri = get_provisioning_uri(secret, account_label, issuer or settings.TWO_FACTOR_ISSUER)
    return TwoFactorSetup(secret=secret, provisioning_uri=uri, qr_code=render_qr_data_url(uri))


def verify_code(secret: str | None, code: str | None, window_steps: int = 2) -> bool:
    if not secret or not code:
        return False

    code = code.strip().replace(" ", "")
    if len(code) != 6 or not code.isdigit():
        return False

    try:
        return pyotp.TOTP(secret).verify(code, valid_window=window_steps)
    except (ValueError, TypeError):
        # Malformed base32 secret
        return False
