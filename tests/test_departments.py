"""
Unit tests for the case-insensitive department list.
"""
from __future__ import annotations

import pytest

from thoughtbox.domain.departments import (
    DepartmentError,
    DepartmentList,
    departments_or_default,
    normalize_departments,
)


def test_constructor_trims_and_drops_case_insensitive_duplicates():
    departments = DepartmentList([" General ", "general", "", "Cardiology", "CARDIOLOGY"])
    assert departments.names() == ["General", "Cardiology"]
    assert "cardiology" in departments
    assert departments.find("GENERAL") == 0


def test_add_keeps_original_casing_and_rejects_duplicates():
    departments = DepartmentList(["General"])
    assert departments.add("  Pediatrics ") == "Pediatrics"
    assert departments.names() == ["General", "Pediatrics"]

    with pytest.raises(DepartmentError) as exc:
        departments.add("PEDIATRICS")
    assert exc.value.reason == "already_exists"

    with pytest.raises(DepartmentError) as exc:
        departments.add("   ")
    assert exc.value.reason == "empty_name"


def test_rename_preserves_position_and_returns_stored_name():
    departments = DepartmentList(["General", "Cardiology", "Radiology"])
    previous, renamed = departments.rename("cardiology", " Heart ")
    assert (previous, renamed) == ("Cardiology", "Heart")
    assert departments.names() == ["General", "Heart", "Radiology"]
    assert departments.find("cardiology") is None
    assert departments.find("heart") == 1


def test_rename_allows_case_change_of_same_slot():
    departments = DepartmentList(["General", "cardiology"])
    assert departments.rename("Cardiology", "Cardiology") == ("cardiology", "Cardiology")
    assert departments.names() == ["General", "Cardiology"]


def test_rename_rejects_collision_with_other_slot():
    departments = DepartmentList(["General", "Cardiology"])
    with pytest.raises(DepartmentError) as exc:
        departments.rename("Cardiology", "general")
    assert exc.value.reason == "already_exists"
    assert departments.names() == ["General", "Cardiology"]


@pytest.mark.parametrize(
    "old,new,reason",
    [
        ("", "Heart", "empty_name"),
        ("Cardiology", "  ", "empty_name"),
        ("Oncology", "Heart", "not_found"),
    ],
)
def test_rename_failures(old, new, reason):
    departments = DepartmentList(["General", "Cardiology"])
    with pytest.raises(DepartmentError) as exc:
        departments.rename(old, new)
    assert exc.value.reason == reason


def test_remove_returns_new_first_department_as_fallback():
    departments = DepartmentList(["General", "Cardiology", "Radiology"])
    assert departments.remove("general") == ("General", "Cardiology")
    assert departments.names() == ["Cardiology", "Radiology"]
    assert departments.find("radiology") == 1


def test_remove_never_empties_the_list():
    departments = DepartmentList(["Only"])
    with pytest.raises(DepartmentError) as exc:
        departments.remove("Only")
    assert exc.value.reason == "last_department"
    assert departments.names() == ["Only"]


def test_add_then_remove_restores_previous_list():
    original = ["General", "Cardiology", "Radiology"]
    departments = DepartmentList(original)
    departments.add("X")
    departments.remove("x")
    assert departments.names() == original


def test_normalize_helpers():
    assert normalize_departments(None) == []
    assert departments_or_default([]) == ["General"]
    assert departments_or_default(["  ", "Lab"]) == ["Lab"]
