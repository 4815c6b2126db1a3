"""Canonical entity and attribute enums used by the cascade registry."""

from enum import Enum as PyEnum


class EntityType(str, PyEnum):
    """Canonical entities whose attributes are copied elsewhere"""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    NON_INSTRUCTOR = "non_instructor"
    COURSE = "course"
    COHORT = "cohort"


class CanonicalField(str, PyEnum):
    """Canonical attributes that have denormalized copies"""

    DISPLAY_NAME = "display_name"
    EMAIL = "email"
    CATEGORY = "category"
    COURSE_TYPE = "course_type"


class MatchBy(str, PyEnum):
    """
    How a dependent record is located for a cascade.

    - ID: the dependent record carries the canonical entity's id
    - VALUE: the dependent record only stored the old attribute value
    - ELEMENT: an array of {id, name} sub-documents; the element with the
      entity's id gets its name overwritten
    """

    ID = "id"
    VALUE = "value"
    ELEMENT = "element"
