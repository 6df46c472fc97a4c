"""
Account use cases that sit in front of the storage gateway.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
import logging

from thoughtbox.core.security import hash_password, verify_password
from thoughtbox.domain.records import (
    ROLE_USER,
    ROLES,
    NewClinic,
    NewUser,
    SetupResult,
    User,
    UserWithClinic,
)
from thoughtbox.repositories import get_storage
from thoughtbox.repositories.base import DuplicateUserError, Storage

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


class AccountError(Exception):
    """Base class for account-related exceptions."""


class RegistrationError(AccountError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AccountExistsError(AccountError):
    pass


class InvalidCredentialsError(AccountError):
    pass


class SetupCompletedError(AccountError):
    pass


class UserNotFoundError(AccountError):
    pass


@dataclass
class AccountService:
    """Handles first-time setup, user creation, sign-in checks and password changes."""

    storage: Optional[Storage] = field(default=None)

    def __post_init__(self):
        if self.storage is None:
            self.storage = get_storage()

    # -------------------------------------- helpers --------------------------------------
    def _validate(self, username: str, email: str, password: str) -> None:
        if len(username) < MIN_USERNAME_LENGTH:
            raise RegistrationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters")
        if "@" not in email:
            raise RegistrationError("Invalid email address")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise RegistrationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    # -------------------------------------- setup --------------------------------------
    def needs_setup(self) -> bool:
        return not self.storage.has_any_users()

    def setup(
        self,
        username: str,
        email: str,
        password: str,
        clinic_name: str,
        clinic_url: str | None = None,
    ) -> SetupResult:
        if self.storage.has_any_users():
            raise SetupCompletedError("System already set up")
        username = (username or "").strip()
        email = (email or "").strip()
        name = (clinic_name or "").strip()
        self._validate(username, email, password)
        if not name:
            raise RegistrationError("Clinic name is required")

        result = self.storage.setup_first_admin(
            NewUser(username=username, email=email, password=hash_password(password)),
            NewClinic(name=name, url=(clinic_url or "").strip() or None),
        )
        if result is None:
            raise SetupCompletedError("System already set up")
        logger.info("First-time setup completed for clinic %s", result.clinic.id)
        return result

    # -------------------------------------- users --------------------------------------
    def create_user(
        self,
        admin_id: int,
        username: str,
        email: str,
        password: str,
        role: str = ROLE_USER,
        clinic_id: int | None = None,
    ) -> User:
        username = (username or "").strip()
        email = (email or "").strip()
        self._validate(username, email, password)
        if role not in ROLES:
            raise RegistrationError(f"Unknown role: {role}")
        if self.storage.get_user_by_username(username):
            raise AccountExistsError("Username already exists")
        if clinic_id is None:
            admin = self.storage.get_user(admin_id)
            clinic_id = admin.clinic_id if admin else None
        try:
            return self.storage.create_user(
                NewUser(
                    username=username,
                    email=email,
                    password=hash_password(password),
                    role=role,
                    clinic_id=clinic_id,
                )
            )
        except DuplicateUserError as exc:
            raise AccountExistsError(str(exc)) from exc

    # -------------------------------------- login --------------------------------------
    def authenticate(self, username: str, password: str) -> UserWithClinic:
        user = self.storage.get_user_by_username((username or "").strip())
        if not user or not verify_password(password, user.password):
            raise InvalidCredentialsError("Invalid credentials")
        found = self.storage.get_user_with_clinic(user.id)
        if found is None:
            raise InvalidCredentialsError("Invalid credentials")
        return found

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        user = self.storage.get_user(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        if not verify_password(current_password, user.password):
            raise InvalidCredentialsError("Current password is incorrect")
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise RegistrationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        self.storage.update_user(user_id, {"password": hash_password(new_password)})
