"""
User and clinic CRUD plus first-time setup, against both backends.
"""
from __future__ import annotations

from datetime import timezone

import pytest

from thoughtbox.domain.records import NewClinic, NewThought, NewUser
from thoughtbox.repositories.base import DuplicateUserError
from thoughtbox.repositories.sql_repository import SQLRepository


def test_setup_first_admin_creates_clinic_and_forces_admin(storage):
    assert storage.has_any_users() is False
    result = storage.setup_first_admin(
        NewUser(username="boss", email="boss@clinic.test", password="hash", role="user"),
        NewClinic(name="Main", url="https://main.test"),
    )

    assert result.user.role == "admin"
    assert result.user.clinic_id == result.clinic.id
    assert result.clinic.departments == ["General", "Administration"]
    assert result.clinic.url == "https://main.test"
    assert storage.has_any_users() is True
    assert storage.get_users_by_clinic(result.clinic.id)[0].username == "boss"


def test_setup_first_admin_refuses_when_users_exist(storage):
    storage.create_user(NewUser(username="first", email="first@clinic.test", password="hash"))
    result = storage.setup_first_admin(
        NewUser(username="boss", email="boss@clinic.test", password="hash"),
        NewClinic(name="Main"),
    )
    assert result is None
    assert storage.get_all_clinics() == []
    assert storage.get_user_by_username("boss") is None


def test_create_user_defaults_and_lookups(storage, clinic_with_admin):
    clinic, admin, member = clinic_with_admin
    assert member.role == "user"
    assert member.created_at is not None
    assert storage.get_user(member.id).username == "nurse"
    assert storage.get_user_by_username("nurse").id == member.id
    assert storage.get_user_by_username("NURSE") is None

    joined = storage.get_user_with_clinic(admin.id)
    assert joined.user.id == admin.id
    assert joined.clinic.name == "Main Clinic"

    loner = storage.create_user(NewUser(username="loner", email="loner@x.test", password="hash", role="superuser"))
    assert loner.role == "user"
    assert storage.get_user_with_clinic(loner.id).clinic is None
    assert storage.get_user_with_clinic(999) is None


@pytest.mark.parametrize(
    "username,email,field",
    [
        ("nurse", "other@clinic.test", "username"),
        ("other", "nurse@clinic.test", "email"),
    ],
)
def test_create_user_rejects_duplicates(storage, clinic_with_admin, username, email, field):
    with pytest.raises(DuplicateUserError) as exc:
        storage.create_user(NewUser(username=username, email=email, password="hash"))
    assert exc.value.field == field


def test_update_user_is_partial_and_ignores_unknown_fields(storage, clinic_with_admin):
    _clinic, admin, member = clinic_with_admin
    updated = storage.update_user(member.id, {"email": "new@clinic.test", "id": 42, "bogus": True})
    assert updated.id == member.id
    assert updated.email == "new@clinic.test"
    assert updated.username == "nurse"

    with pytest.raises(DuplicateUserError):
        storage.update_user(member.id, {"username": admin.username})
    assert storage.get_user(member.id).username == "nurse"
    assert storage.update_user(999, {"email": "x@y.z"}) is None


def test_delete_user(storage, clinic_with_admin):
    _clinic, _admin, member = clinic_with_admin
    assert storage.delete_user(member.id) is True
    assert storage.get_user(member.id) is None
    assert storage.delete_user(member.id) is False


def test_clinic_crud(storage):
    created = storage.create_clinic(NewClinic(name="North", departments=[" Lab ", "lab", "Desk"]))
    assert created.departments == ["Lab", "Desk"]
    assert storage.create_clinic(NewClinic(name="South")).departments == ["General"]

    updated = storage.update_clinic(created.id, {"name": "North Wing", "logo_url": "/logo.png", "created_at": None})
    assert updated.name == "North Wing"
    assert updated.logo_url == "/logo.png"
    assert updated.created_at is not None

    kept = storage.update_clinic(created.id, {"departments": []})
    assert kept.departments == ["Lab", "Desk"]

    assert [c.name for c in storage.get_all_clinics()] == ["North Wing", "South"]
    assert storage.update_clinic(999, {"name": "x"}) is None


def test_delete_clinic_detaches_members_and_keeps_thoughts(storage, clinic_with_admin):
    clinic, _admin, member = clinic_with_admin
    thought = storage.create_thought(NewThought(clinic_id=clinic.id, title="kept", content="x"), member.id)

    assert storage.delete_clinic(clinic.id) is True
    assert storage.get_clinic(clinic.id) is None
    assert storage.get_user(member.id).clinic_id is None
    assert storage.get_thought(thought.id) is not None
    assert storage.delete_clinic(clinic.id) is False


def test_sql_commit_race_reports_the_clashing_field(sql_env, clock, monkeypatch):
    storage = SQLRepository(clock=clock, tz=timezone.utc)
    storage.create_user(NewUser(username="first", email="shared@clinic.test", password="hash"))

    # let the pre-insert check pass once, as when a concurrent writer commits in between
    real_check = SQLRepository._check_unique_user
    calls = []

    def check_after_first(self, session, username, email, **kwargs):
        calls.append(username)
        if len(calls) > 1:
            real_check(self, session, username, email, **kwargs)

    monkeypatch.setattr(SQLRepository, "_check_unique_user", check_after_first)

    with pytest.raises(DuplicateUserError) as exc:
        storage.create_user(NewUser(username="second", email="shared@clinic.test", password="hash"))
    assert exc.value.field == "email"
    assert len(calls) == 2
    assert storage.get_user_by_username("second") is None
