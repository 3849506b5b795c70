"""
Admin authentication.

A single admin account kept in local state with a plaintext password.
This is a convenience gate for the back-office screens, not a security
boundary.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from herbful.models.account import AdminUser, Credentials
from herbful.services.validation import validate_email, validate_new_password, validate_username
from herbful.utils.clock import parse_iso, to_iso, utc_now
from herbful.utils.storage import LocalStateStore

logger = logging.getLogger(__name__)


class AuthState(Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class AdminAuth:
    """
    Login, logout and account changes for the admin.

    Username and password changes end the session; an email change keeps
    it and refreshes the stored user.
    """

    def __init__(
        self,
        state: LocalStateStore,
        default_credentials: Credentials,
        credentials_key: str,
        session_key: str,
        session_ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Args:
            state: Local state holding credentials and session
            default_credentials: Seeded on first use
            credentials_key: State key of the stored credentials
            session_key: State key of the current session
            session_ttl: Session lifetime from login
            clock: Current time (aware datetime)
        """
        self.state = state
        self.default_credentials = default_credentials
        self.session_ttl = session_ttl
        self.clock = clock
        self.credentials_key = credentials_key
        self.session_key = session_key

        if self.state.get_item(credentials_key) is None:
            self.state.set_item(credentials_key, default_credentials.to_dict())
            logger.info("Seeded default admin credentials")

    def _credentials(self) -> Credentials:
        data = self.state.get_item(self.credentials_key)
        if data is not None:
            try:
                return Credentials.from_dict(data)
            except KeyError as e:
                logger.warning(f"Stored credentials missing {e}, using defaults")
        return Credentials.from_dict(self.default_credentials.to_dict())

    def _save_credentials(self, credentials: Credentials) -> None:
        self.state.set_item(self.credentials_key, credentials.to_dict())

    def login(self, identifier: str, password: str) -> bool:
        """
        Sign in with the username or the email (case-insensitive).

        Returns:
            True if a session was started
        """
        credentials = self._credentials()
        wanted = (identifier or "").strip().lower()
        if wanted not in (credentials.username.lower(), credentials.email.lower()):
            logger.info("Login rejected: unknown user")
            return False
        if password != credentials.password:
            logger.info("Login rejected: wrong password")
            return False

        user = AdminUser(username=credentials.username, email=credentials.email)
        self.state.set_item(self.session_key, {
            "user": user.to_dict(),
            "expiresAt": to_iso(self.clock() + self.session_ttl)
        })
        logger.info(f"Admin {user.username} signed in")
        return True

    def logout(self) -> None:
        self.state.remove_item(self.session_key)
        logger.info("Admin signed out")

    def current_user(self) -> Optional[AdminUser]:
        """
        The signed-in admin, or None.

        An expired or malformed session is cleared on read.
        """
        session = self.state.get_item(self.session_key)
        if session is None:
            return None
        try:
            user = AdminUser(**session["user"])
            expires_at = session["expiresAt"]
        except (KeyError, TypeError) as e:
            logger.warning(f"Discarding malformed session: {e}")
            self.state.remove_item(self.session_key)
            return None

        if parse_iso(expires_at) <= self.clock():
            logger.info("Session expired")
            self.state.remove_item(self.session_key)
            return None
        return user

    @property
    def auth_state(self) -> AuthState:
        return AuthState.AUTHENTICATED if self.current_user() else AuthState.ANONYMOUS

    def _verify(self, current_password: str) -> Optional[Credentials]:
        credentials = self._credentials()
        if current_password != credentials.password:
            logger.info("Account change rejected: wrong current password")
            return None
        return credentials

    def update_username(self, new_username: str, current_password: str) -> bool:
        """
        Change the username, then sign out.

        Raises:
            ValidationFailed: If the new username is invalid
        """
        new_username = validate_username(new_username)
        credentials = self._verify(current_password)
        if credentials is None:
            return False
        credentials.username = new_username
        self._save_credentials(credentials)
        logger.info(f"Username changed to {new_username}")
        self.logout()
        return True

    def update_email(self, new_email: str, current_password: str) -> bool:
        """
        Change the email and refresh the session's user in place.

        Raises:
            ValidationFailed: If the new email is invalid or unchanged
        """
        credentials = self._credentials()
        new_email = validate_email(new_email, current_email=credentials.email)
        credentials = self._verify(current_password)
        if credentials is None:
            return False
        credentials.email = new_email
        self._save_credentials(credentials)

        session = self.state.get_item(self.session_key)
        if session is not None and isinstance(session.get("user"), dict):
            session["user"]["email"] = new_email
            self.state.set_item(self.session_key, session)
        logger.info("Admin email changed")
        return True

    def update_password(self, current_password: str, new_password: str) -> bool:
        """
        Change the password, then sign out.

        Raises:
            ValidationFailed: If the new password breaks the password rules
        """
        validate_new_password(new_password, current_password=current_password)
        credentials = self._verify(current_password)
        if credentials is None:
            return False
        credentials.password = new_password
        self._save_credentials(credentials)
        logger.info("Admin password changed")
        self.logout()
        return True
