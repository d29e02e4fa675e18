"""
Unit tests for the TOTP primitives.

Tests:
- RFC 4226 / RFC 6238 test vectors
- +/-2 step tolerance window
- Invalid code formats
- Provisioning URI and QR payload
"""

import base64

import pyotp
import pytest

from adminvault.auth.totp import (
    TOTP_DIGITS, TOTP_TIME_STEP,
    base32_to_secret, generate_secret, get_time_counter, hotp,
    provisioning_uri, qr_code_data_url, secret_to_base32, totp, verify_totp,
)


RFC_SECRET = b"12345678901234567890"


class TestHOTP:
    """RFC 4226 Appendix D."""

    def test_rfc4226_vectors(self):
        """All ten published HOTP values should match."""
        expected = [
            "755224", "287082", "359152", "969429", "338314",
            "254676", "287922", "162583", "399871", "520489",
        ]
        assert [hotp(RFC_SECRET, c) for c in range(10)] == expected

    def test_zero_padded(self):
        """Codes are always exactly TOTP_DIGITS characters."""
        secret = base32_to_secret(generate_secret())
        for counter in range(50):
            code = hotp(secret, counter)
            assert len(code) == TOTP_DIGITS
            assert code.isdigit()


class TestTOTP:
    """RFC 6238 Appendix B (SHA-1 rows)."""

    @pytest.mark.parametrize("timestamp, expected", [
        (59, "94287082"),
        (1111111109, "07081804"),
        (1111111111, "14050471"),
        (1234567890, "89005924"),
        (2000000000, "69279037"),
    ])
    def test_rfc6238_vectors(self, timestamp, expected):
        assert totp(RFC_SECRET, timestamp, digits=8) == expected

    def test_matches_pyotp(self):
        """Independent implementation should agree."""
        secret_b32 = generate_secret()
        reference = pyotp.TOTP(secret_b32)
        for ts in (0, 1_700_000_000, 1_767_268_800, 1_767_268_829):
            assert totp(base32_to_secret(secret_b32), ts) == reference.at(ts)

    def test_time_counter(self):
        assert get_time_counter(59) == 1
        assert get_time_counter(60) == 2
        assert get_time_counter(89, time_step=TOTP_TIME_STEP) == 2


class TestVerifyWindow:
    """A code for step T is accepted at T-2..T+2 only."""

    def setup_method(self):
        self.secret = base32_to_secret(generate_secret())
        self.base = 1_767_268_800  # step boundary
        self.code = totp(self.secret, self.base)

    @pytest.mark.parametrize("steps", [-2, -1, 0, 1, 2])
    def test_accepted_inside_window(self, steps):
        ts = self.base + steps * TOTP_TIME_STEP
        assert verify_totp(self.secret, self.code, ts, window=2)

    @pytest.mark.parametrize("steps", [-4, -3, 3, 4, 60])
    def test_rejected_outside_window(self, steps):
        ts = self.base + steps * TOTP_TIME_STEP
        if totp(self.secret, ts) == self.code:
            pytest.skip("random collision with a neighbouring step")
        assert not verify_totp(self.secret, self.code, ts, window=2)

    def test_spaces_ignored(self):
        spaced = f"{self.code[:3]} {self.code[3:]}"
        assert verify_totp(self.secret, spaced, self.base)


class TestInvalidCodes:
    """Malformed input never verifies."""

    @pytest.mark.parametrize("code", [
        "", "12345", "1234567", "abcdef", "12ab56",
        "1' OR '1'='1", "'; DROP TABLE users;--",
    ])
    def test_rejected(self, code):
        secret = base32_to_secret(generate_secret())
        assert not verify_totp(secret, code, 1_767_268_800)

    def test_wrong_secret(self):
        a = base32_to_secret(generate_secret())
        b = base32_to_secret(generate_secret())
        ts = 1_767_268_800
        code = totp(a, ts)
        if verify_totp(b, code, ts):
            pytest.skip("random collision")
        assert not verify_totp(b, code, ts)


class TestSecrets:
    """Secret encoding."""

    def test_secret_is_32_bytes(self):
        assert len(base32_to_secret(generate_secret())) == 32

    def test_base32_unpadded(self):
        encoded = secret_to_base32(b"\x00" * 32)
        assert "=" not in encoded
        assert base32_to_secret(encoded) == b"\x00" * 32

    def test_lowercase_accepted(self):
        encoded = generate_secret()
        assert base32_to_secret(encoded.lower()) == base32_to_secret(encoded)


class TestProvisioning:
    """otpauth URI and QR payload."""

    def test_provisioning_uri(self):
        secret = generate_secret()
        uri = provisioning_uri(secret, "a@x.com", "AdminVault")
        assert uri.startswith("otpauth://totp/AdminVault%3Aa%40x.com?")
        assert f"secret={secret}" in uri
        assert "period=30" in uri
        assert "digits=6" in uri

    def test_pyotp_parses_uri(self):
        secret = generate_secret()
        parsed = pyotp.parse_uri(provisioning_uri(secret, "a@x.com", "AdminVault"))
        assert parsed.secret == secret
        assert parsed.issuer == "AdminVault"

    def test_qr_code_data_url(self):
        url = qr_code_data_url("otpauth://totp/AdminVault:a@x.com?secret=ABC")
        assert url.startswith("data:image/svg+xml;base64,")
        svg = base64.b64decode(url.split(",", 1)[1])
        assert b"<svg" in svg
