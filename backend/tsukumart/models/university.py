"""University affiliation of a user.

A user is exactly one of:

* ``NotGraduate`` - undergraduate with a department
* ``GraduateTsukuba`` - graduate student who also has a department here
* ``GraduateNotTsukuba`` - graduate student without a department here

Records store the affiliation as two nullable columns
(``school_and_department``, ``graduate``). :func:`university_from_internal`
and :func:`university_to_internal` are the only conversions between the two
representations; a record with neither column set is rejected.
"""

import enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from tsukumart.errors import InvalidUniversity


class School(str, enum.Enum):
    humcul = "humcul"
    socint = "socint"
    human = "human"
    life = "life"
    sse = "sse"
    info = "info"
    med = "med"
    aandd = "aandd"
    sport = "sport"


class Department(str, enum.Enum):
    humanity = "humanity"
    culture = "culture"
    japanese = "japanese"
    social = "social"
    cis = "cis"
    education = "education"
    psyche = "psyche"
    disability = "disability"
    biol = "biol"
    bres = "bres"
    earth = "earth"
    math = "math"
    phys = "phys"
    chem = "chem"
    coens = "coens"
    esys = "esys"
    pandps = "pandps"
    coins = "coins"
    mast = "mast"
    klis = "klis"
    med = "med"
    nurse = "nurse"
    ms = "ms"
    aandd = "aandd"
    sport = "sport"


class Graduate(str, enum.Enum):
    education = "education"
    hass = "hass"
    gabs = "gabs"
    pas = "pas"
    sie = "sie"
    life = "life"
    chs = "chs"
    slis = "slis"
    global_ = "global"


DEPARTMENTS_BY_SCHOOL: dict[School, tuple[Department, ...]] = {
    School.humcul: (Department.humanity, Department.culture, Department.japanese),
    School.socint: (Department.social, Department.cis),
    School.human: (Department.education, Department.psyche, Department.disability),
    School.life: (Department.biol, Department.bres, Department.earth),
    School.sse: (
        Department.math,
        Department.phys,
        Department.chem,
        Department.coens,
        Department.esys,
        Department.pandps,
    ),
    School.info: (Department.coins, Department.mast, Department.klis),
    School.med: (Department.med, Department.nurse, Department.ms),
    School.aandd: (Department.aandd,),
    School.sport: (Department.sport,),
}


class NotGraduate(BaseModel):
    model_config = ConfigDict(frozen=True)

    department: Department


class GraduateTsukuba(BaseModel):
    model_config = ConfigDict(frozen=True)

    graduate: Graduate
    department: Department


class GraduateNotTsukuba(BaseModel):
    model_config = ConfigDict(frozen=True)

    graduate: Graduate


University = Union[NotGraduate, GraduateTsukuba, GraduateNotTsukuba]


def university_from_internal(
    school_and_department: Optional[str], graduate: Optional[str]
) -> University:
    """Build the affiliation from its stored columns.

    Raises InvalidUniversity when neither column is set or a value is unknown.
    """
    try:
        department = Department(school_and_department) if school_and_department else None
        graduate_value = Graduate(graduate) if graduate else None
    except ValueError as e:
        raise InvalidUniversity(f"Unknown university value: {e}")

    if department is not None and graduate_value is not None:
        return GraduateTsukuba(graduate=graduate_value, department=department)
    if department is not None:
        return NotGraduate(department=department)
    if graduate_value is not None:
        return GraduateNotTsukuba(graduate=graduate_value)
    raise InvalidUniversity()


def university_to_internal(university: University) -> tuple[Optional[str], Optional[str]]:
    """Return ``(school_and_department, graduate)`` for storage."""
    if isinstance(university, GraduateTsukuba):
        return university.department.value, university.graduate.value
    if isinstance(university, NotGraduate):
        return university.department.value, None
    if isinstance(university, GraduateNotTsukuba):
        return None, university.graduate.value
    raise InvalidUniversity(f"Unsupported university value: {university!r}")
