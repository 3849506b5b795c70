"""
Unit tests for admin authentication.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

import config.settings as settings
from herbful.errors import ValidationFailed
from herbful.models.account import AdminUser, Credentials
from herbful.services.auth import AdminAuth, AuthState
from herbful.utils.storage import LocalStateStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


CREDENTIALS_KEY = settings.CREDENTIALS_STORAGE_KEY
SESSION_KEY = settings.AUTH_STORAGE_KEY


def settings_credentials():
    return Credentials(
        username=settings.DEFAULT_ADMIN_USERNAME,
        password=settings.DEFAULT_ADMIN_PASSWORD,
        email=settings.DEFAULT_ADMIN_EMAIL
    )


@pytest.fixture
def auth():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield AdminAuth(
            LocalStateStore(tmpdir),
            default_credentials=settings_credentials(),
            credentials_key=CREDENTIALS_KEY,
            session_key=SESSION_KEY,
            session_ttl=timedelta(hours=settings.SESSION_TTL_HOURS),
            clock=FakeClock()
        )


def test_default_credentials_seeded(auth):
    """Test that first use stores the default account."""
    stored = auth.state.get_item(CREDENTIALS_KEY)
    assert stored == {"username": "admin", "password": "admin123", "email": "admin@herbful.com"}
    assert auth.auth_state == AuthState.ANONYMOUS


def test_configured_credentials_and_keys_used():
    """Test that the seeded account and state keys come from the caller."""
    with tempfile.TemporaryDirectory() as tmpdir:
        state = LocalStateStore(tmpdir)
        auth = AdminAuth(
            state,
            default_credentials=Credentials(username="herbalist", password="leaves42", email="h@herbful.com"),
            credentials_key="ops_credentials",
            session_key="ops_session",
            clock=FakeClock()
        )

        assert state.get_item(CREDENTIALS_KEY) is None
        assert state.get_item("ops_credentials")["username"] == "herbalist"
        assert not auth.login("admin", "admin123")
        assert auth.login("herbalist", "leaves42")
        assert state.get_item("ops_session") is not None
        assert state.get_item(SESSION_KEY) is None


def test_login_by_username_or_email(auth):
    """Test case-insensitive login with either identifier."""
    assert auth.login("admin", "admin123")
    assert auth.current_user() == AdminUser("admin", "admin@herbful.com")
    auth.logout()
    assert auth.current_user() is None

    assert auth.login("  ADMIN@Herbful.com ", "admin123")
    assert auth.auth_state == AuthState.AUTHENTICATED


def test_login_rejected(auth):
    assert not auth.login("admin", "wrong")
    assert not auth.login("someone", "admin123")
    assert auth.current_user() is None


def test_session_expires(auth):
    """Test that a session is dropped after its lifetime."""
    auth.login("admin", "admin123")
    auth.clock.now += timedelta(hours=23)
    assert auth.current_user() is not None

    auth.clock.now += timedelta(hours=2)
    assert auth.current_user() is None
    assert auth.state.get_item(SESSION_KEY) is None


def test_malformed_session_cleared(auth):
    auth.state.set_item(SESSION_KEY, {"user": "admin"})
    assert auth.current_user() is None
    assert not os.path.exists(os.path.join(auth.state.state_dir, f"{SESSION_KEY}.json"))


def test_password_change_flow(auth):
    """Test that a password change signs out and only the new password works."""
    assert auth.login("admin", "admin123")
    assert auth.update_password("admin123", "NewPass1")

    assert auth.current_user() is None
    assert not auth.login("admin", "admin123")
    assert auth.login("admin", "NewPass1")


def test_password_change_rejected(auth):
    """Test wrong current password and weak new password."""
    assert not auth.update_password("nope", "NewPass1")
    with pytest.raises(ValidationFailed):
        auth.update_password("admin123", "weak")
    assert auth.login("admin", "admin123")


def test_username_change_signs_out(auth):
    auth.login("admin", "admin123")
    assert auth.update_username("herb_admin", "admin123")

    assert auth.current_user() is None
    assert auth.login("herb_admin", "admin123")
    assert not auth.login("admin", "admin123")


def test_email_change_keeps_session(auth):
    """Test that an email change updates the signed-in user in place."""
    auth.login("admin", "admin123")
    assert auth.update_email("ops@herbful.com", "admin123")

    assert auth.current_user() == AdminUser("admin", "ops@herbful.com")
    assert auth.state.get_item(CREDENTIALS_KEY)["email"] == "ops@herbful.com"

    with pytest.raises(ValidationFailed):
        auth.update_email("OPS@herbful.com", "admin123")
    assert not auth.update_email("new@herbful.com", "wrong")


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
