import pytest

from tsukumart.errors import InvalidUniversity
from tsukumart.models.university import (
    DEPARTMENTS_BY_SCHOOL,
    Department,
    Graduate,
    GraduateNotTsukuba,
    GraduateTsukuba,
    NotGraduate,
    university_from_internal,
    university_to_internal,
)


def test_department_only_is_undergraduate():
    assert university_from_internal("coins", None) == NotGraduate(department=Department.coins)


def test_graduate_only_is_graduate_from_elsewhere():
    assert university_from_internal(None, "sie") == GraduateNotTsukuba(graduate=Graduate.sie)


def test_both_columns_is_graduate_with_department():
    university = university_from_internal("mast", "slis")
    assert university == GraduateTsukuba(graduate=Graduate.slis, department=Department.mast)


def test_neither_column_is_rejected():
    with pytest.raises(InvalidUniversity):
        university_from_internal(None, None)
    with pytest.raises(InvalidUniversity):
        university_from_internal("", "")


def test_unknown_value_is_rejected():
    with pytest.raises(InvalidUniversity):
        university_from_internal("astrology", None)


def test_conversion_back_to_columns():
    assert university_to_internal(NotGraduate(department=Department.klis)) == ("klis", None)
    assert university_to_internal(GraduateNotTsukuba(graduate=Graduate.global_)) == (None, "global")
    assert university_to_internal(
        GraduateTsukuba(graduate=Graduate.pas, department=Department.phys)
    ) == ("phys", "pas")


def test_every_department_belongs_to_exactly_one_school():
    listed = [d for departments in DEPARTMENTS_BY_SCHOOL.values() for d in departments]
    assert sorted(listed) == sorted(Department)
    assert len(listed) == len(set(listed))
