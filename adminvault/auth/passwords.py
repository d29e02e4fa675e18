"""
Password Verification Module

Argon2id password hashing and verification for admin credentials.

Security considerations:
- argon2-cffi verifies in constant time with respect to the hash
- Salt and parameters are embedded in the hash string
- Hashes made with outdated parameters can be upgraded on login
- A dummy hash is verified for unknown accounts so that response time
  does not reveal whether an email exists
"""

import logging
import re
from typing import Dict, List, Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

logger = logging.getLogger(__name__)


# Argon2id configuration
# - time_cost: number of iterations
# - memory_cost: memory usage in KiB
# - parallelism: number of parallel threads
ARGON2_CONFIG = {
    'time_cost': 3,
    'memory_cost': 65536,    # 64 MiB
    'parallelism': 4,
    'hash_len': 32,
    'salt_len': 16,
    'type': Type.ID,
}

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def password_problems(password: str) -> List[str]:
    """
    List the strength requirements a new admin password fails.

    Args:
        password: Candidate password

    Returns:
        Human-readable problems (empty if acceptable)
    """
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"Must be at most {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r'[A-Z]', password):
        errors.append("Must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        errors.append("Must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        errors.append("Must contain at least one digit")
    if not re.search(r'[^A-Za-z0-9]', password):
        errors.append("Must contain at least one special character")
    return errors


class PasswordVerifier:
    """
    Argon2id hasher/verifier.

    Example:
        >>> verifier = PasswordVerifier()
        >>> stored = verifier.hash_password("Correct1!")
        >>> verifier.verify("Correct1!", stored)
        True
    """

    def __init__(self, **overrides):
        """
        Args:
            **overrides: Override default Argon2 parameters (tests use
                cheap settings)
        """
        config: Dict = ARGON2_CONFIG.copy()
        config.update(overrides)
        self._hasher = PasswordHasher(**config)
        self._dummy_hash: Optional[str] = None

    def hash_password(self, password: str) -> str:
        """
        Hash a new admin password.

        Raises:
            ValueError: If the password does not meet the requirements
        """
        problems = password_problems(password)
        if problems:
            raise ValueError(f"Password too weak: {', '.join(problems)}")
        return self._hasher.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """
        Check a password against a stored hash.

        Malformed hashes are treated as a mismatch rather than an error.
        """
        try:
            return self._hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError):
            logger.warning("Stored password hash could not be parsed")
            return False

    def burn(self, password: str) -> None:
        """Spend one verification's worth of work for an unknown account."""
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash("dummy-Password-1")
        self.verify(password, self._dummy_hash)

    def needs_rehash(self, password_hash: str) -> bool:
        try:
            return self._hasher.check_needs_rehash(password_hash)
        except InvalidHashError:
            return False

    def rehash(self, password: str) -> str:
        """Re-hash an already accepted password with current parameters."""
        return self._hasher.hash(password)
