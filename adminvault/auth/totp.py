"""
TOTP (Time-based One-Time Password) Implementation

RFC 6238 codes on top of the RFC 4226 HOTP primitive from ``cryptography``.

Features:
- Secret generation and base32 encoding
- Code generation for any timestamp
- Verification with a +/- N time-step window (clock drift, latency)
- otpauth:// provisioning URI and an SVG QR code data URL

Compatible with Google Authenticator, Authy, Microsoft Authenticator
and any other RFC 6238 authenticator.
"""

import base64
import hmac
import io
import secrets
import time
from typing import Optional
from urllib.parse import quote

import qrcode
import qrcode.image.svg
from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.twofactor.hotp import HOTP


# TOTP configuration (RFC 6238 defaults)
TOTP_DIGITS = 6
TOTP_TIME_STEP = 30
TOTP_SECRET_BYTES = 32
TOTP_WINDOW = 2  # accept codes from +/- this many time steps


def generate_secret(length: int = TOTP_SECRET_BYTES) -> str:
    """
    Generate a random secret.

    Args:
        length: Secret length in bytes

    Returns:
        Base32-encoded secret (no padding)
    """
    return secret_to_base32(secrets.token_bytes(length))


def secret_to_base32(secret: bytes) -> str:
    return base64.b32encode(secret).decode('ascii').rstrip('=')


def base32_to_secret(encoded: str) -> bytes:
    """
    Decode a base32 secret, tolerating missing padding, spaces and case.
    """
    encoded = encoded.replace(' ', '').upper()
    padding = -len(encoded) % 8
    return base64.b32decode(encoded + '=' * padding)


def get_time_counter(timestamp: Optional[float] = None,
                     time_step: int = TOTP_TIME_STEP) -> int:
    """T = floor(unix_time / time_step)."""
    if timestamp is None:
        timestamp = time.time()
    return int(timestamp) // time_step


def hotp(secret: bytes, counter: int, digits: int = TOTP_DIGITS) -> str:
    """
    HOTP value for ``counter`` (RFC 4226, HMAC-SHA1).

    Args:
        secret: Shared secret key (at least 16 bytes)
        counter: Counter value
        digits: Number of digits (6-8)

    Returns:
        Zero-padded OTP string
    """
    return HOTP(secret, digits, SHA1()).generate(counter).decode('ascii')


def totp(secret: bytes, timestamp: Optional[float] = None,
         digits: int = TOTP_DIGITS,
         time_step: int = TOTP_TIME_STEP) -> str:
    """TOTP value for ``timestamp`` (current time if None)."""
    return hotp(secret, get_time_counter(timestamp, time_step), digits)


def verify_totp(secret: bytes, code: str,
                timestamp: Optional[float] = None,
                digits: int = TOTP_DIGITS,
                time_step: int = TOTP_TIME_STEP,
                window: int = TOTP_WINDOW) -> bool:
    """
    Verify a code against the current step and +/- ``window`` steps.

    Args:
        secret: Shared secret key
        code: Code submitted by the user (spaces ignored)
        timestamp: Unix timestamp (uses current time if None)
        digits: Expected number of digits
        time_step: Time step in seconds
        window: Steps accepted on either side of the current one

    Returns:
        True if the code matches any step in the window
    """
    if timestamp is None:
        timestamp = time.time()

    code = str(code).replace(' ', '').strip()
    if len(code) != digits or not code.isdigit():
        return False

    current = get_time_counter(timestamp, time_step)
    matched = False
    for offset in range(-window, window + 1):
        expected = hotp(secret, current + offset, digits)
        # no early exit: every step in the window is always computed
        if hmac.compare_digest(code.encode(), expected.encode()):
            matched = True
    return matched


def provisioning_uri(secret_b32: str, account_name: str, issuer: str,
                     digits: int = TOTP_DIGITS,
                     time_step: int = TOTP_TIME_STEP) -> str:
    """
    otpauth:// URI for authenticator enrollment.

    Returns:
        otpauth://totp/<issuer>:<account>?secret=...&issuer=...
    """
    label = f"{issuer}:{account_name}"
    params = {
        'secret': secret_b32,
        'issuer': issuer,
        'algorithm': 'SHA1',
        'digits': str(digits),
        'period': str(time_step),
    }
    param_str = '&'.join(f"{k}={quote(str(v))}" for k, v in params.items())
    return f"otpauth://totp/{quote(label)}?{param_str}"


def qr_code_data_url(uri: str) -> str:
    """Render ``uri`` as an SVG QR code and wrap it in a data: URL."""
    image = qrcode.make(uri, image_factory=qrcode.image.svg.SvgPathImage)
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
    return f"data:image/svg+xml;base64,{encoded}"
