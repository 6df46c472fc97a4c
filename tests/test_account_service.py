from __future__ import annotations

from datetime import timezone

import pytest

from thoughtbox.core.security import hash_password, verify_password
from thoughtbox.repositories.memory_storage import MemoryStorage
from thoughtbox.services.account_service import (
    AccountExistsError,
    AccountService,
    InvalidCredentialsError,
    RegistrationError,
    SetupCompletedError,
    UserNotFoundError,
)


@pytest.fixture()
def service(clock):
    return AccountService(storage=MemoryStorage(clock=clock, tz=timezone.utc))


@pytest.fixture()
def configured(service):
    result = service.setup("admin", "admin@clinic.test", "secret123", "Main Clinic", "https://main.test")
    return service, result


def test_hash_and_verify_password():
    stored = hash_password("secret123")
    assert stored != "secret123"
    assert verify_password("secret123", stored) is True
    assert verify_password("wrong", stored) is False
    assert verify_password("secret123", "") is False
    assert verify_password("secret123", "not-a-hash") is False


def test_setup_hashes_password_and_creates_admin(configured):
    service, result = configured
    assert service.needs_setup() is False
    assert result.user.role == "admin"
    assert result.user.password != "secret123"
    assert verify_password("secret123", result.user.password)
    assert result.clinic.departments == ["General", "Administration"]


def test_setup_runs_only_once(configured):
    service, _result = configured
    with pytest.raises(SetupCompletedError):
        service.setup("other", "other@clinic.test", "secret123", "Second")


@pytest.mark.parametrize(
    "username,email,password,clinic",
    [
        ("ab", "a@b.c", "secret123", "Main"),
        ("admin", "no-at-sign", "secret123", "Main"),
        ("admin", "a@b.c", "short", "Main"),
        ("admin", "a@b.c", "secret123", "   "),
    ],
)
def test_setup_validates_input(service, username, email, password, clinic):
    with pytest.raises(RegistrationError):
        service.setup(username, email, password, clinic)
    assert service.needs_setup() is True


def test_create_user_defaults_to_admin_clinic(configured):
    service, result = configured
    user = service.create_user(result.user.id, "nurse", "nurse@clinic.test", "secret123")
    assert user.clinic_id == result.clinic.id
    assert user.role == "user"

    with pytest.raises(AccountExistsError):
        service.create_user(result.user.id, "nurse", "nurse2@clinic.test", "secret123")
    with pytest.raises(AccountExistsError):
        service.create_user(result.user.id, "nurse2", "nurse@clinic.test", "secret123")
    with pytest.raises(RegistrationError):
        service.create_user(result.user.id, "nurse3", "nurse3@clinic.test", "secret123", role="owner")


def test_authenticate(configured):
    service, result = configured
    found = service.authenticate("admin", "secret123")
    assert found.user.id == result.user.id
    assert found.clinic.id == result.clinic.id

    with pytest.raises(InvalidCredentialsError):
        service.authenticate("admin", "wrong-password")
    with pytest.raises(InvalidCredentialsError):
        service.authenticate("ghost", "secret123")


def test_change_password(configured):
    service, result = configured
    with pytest.raises(InvalidCredentialsError):
        service.change_password(result.user.id, "wrong", "newsecret")
    with pytest.raises(RegistrationError):
        service.change_password(result.user.id, "secret123", "123")
    with pytest.raises(UserNotFoundError):
        service.change_password(999, "secret123", "newsecret")

    service.change_password(result.user.id, "secret123", "newsecret")
    assert service.authenticate("admin", "newsecret").user.id == result.user.id
