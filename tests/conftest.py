"""
Shared fixtures.

Argon2 runs with minimal cost parameters so the suite stays fast; every
time-dependent component receives the same controllable clock.
"""

import pytest

from loginflow import create_app
from loginflow.auth.credentials import PasswordHasher_, UserStore
from loginflow.auth.session import SessionState
from loginflow.config import AuthConfig
from loginflow.tokens import ActionKind

FAST_ARGON2 = {'time_cost': 1, 'memory_cost': 8, 'parallelism': 1}

PASSWORD = "SecurePass123!"
NEW_PASSWORD = "NewSecurePass456!"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hasher():
    return PasswordHasher_(**FAST_ARGON2)


@pytest.fixture
def users(hasher):
    return UserStore(hasher)


@pytest.fixture
def config():
    return AuthConfig(argon2=dict(FAST_ARGON2))


@pytest.fixture
def app(config, clock):
    return create_app(config, clock=clock)


@pytest.fixture
def state():
    return SessionState()


def make_user(app, email="alice@example.com", username=None,
              password=PASSWORD, activate=True):
    """Create a principal, activated unless asked otherwise."""
    username = username or email.split('@')[0].replace('-', '.')
    principal = app.users.create_user(email, username, password)
    if activate:
        app.users.apply_action(principal.principal_id, ActionKind.ACTIVATE)
    return principal.principal_id


@pytest.fixture
def alice(app):
    return make_user(app)


def grant_enrollment(app, principal_id):
    """Give the principal the grant an EnrollFactor token would."""
    app.users.apply_action(principal_id, ActionKind.ENROLL_FACTOR)
