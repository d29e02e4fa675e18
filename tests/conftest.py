"""
Shared fixtures: a controllable clock, cheap Argon2 parameters and a
wired coordinator over the in-memory store.
"""

import pytest

from adminvault.api import AdminAuthAPI
from adminvault.auth.coordinator import AuthenticationCoordinator
from adminvault.auth.passwords import PasswordVerifier
from adminvault.config import AuthSettings
from adminvault.store.memory import InMemoryCredentialStore

from tests.helpers import ADMIN_EMAIL, ADMIN_ID, ADMIN_PASSWORD, FakeClock, current_code


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def verifier():
    return PasswordVerifier(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def settings():
    return AuthSettings(session_secret="00" * 32)


@pytest.fixture
def store():
    return InMemoryCredentialStore(lock_timeout=2.0)


@pytest.fixture
def admin(store, verifier):
    return store.add_admin(ADMIN_ID, ADMIN_EMAIL, verifier.hash_password(ADMIN_PASSWORD))


@pytest.fixture
def coordinator(store, settings, verifier, clock):
    return AuthenticationCoordinator.from_settings(
        store, settings, passwords=verifier, clock=clock)


@pytest.fixture
def api(coordinator):
    return AdminAuthAPI(coordinator)


@pytest.fixture
def enrolled(coordinator, admin, clock):
    """Admin with two-factor enabled; returns the TwoFactorSetup."""
    setup = coordinator.two_factor.setup(admin.user_id)
    assert coordinator.two_factor.enable(admin.user_id, current_code(setup.secret, clock))
    return setup
