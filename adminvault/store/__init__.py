# Storage Module
"""
Credential store contract and the in-process reference implementation.
"""

from .base import CredentialStore
from .memory import InMemoryCredentialStore

__all__ = [
    'CredentialStore',
    'InMemoryCredentialStore',
]
