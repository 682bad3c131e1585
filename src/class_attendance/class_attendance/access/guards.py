"""Role and course-ownership checks shared by the services.

Only role and instructor-of-record are consulted; identity itself is
established upstream.
"""

from __future__ import annotations

from typing import Optional

from ..core.enums import Role
from ..core.exceptions import AuthenticationError, AuthorizationError
from ..courses.model import Course
from .model import Principal


def require_principal(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise AuthenticationError("Login required")
    return principal


def require_student(principal: Optional[Principal]) -> Principal:
    principal = require_principal(principal)
    if principal.role != Role.STUDENT:
        raise AuthorizationError("Only students can perform this action")
    return principal


def is_course_staff(principal: Principal, course: Course) -> bool:
    if principal.role == Role.ADMIN:
        return True
    return principal.role == Role.INSTRUCTOR and course.instructor_id == principal.user_id


def require_course_staff(principal: Optional[Principal], course: Course) -> Principal:
    principal = require_principal(principal)
    if not is_course_staff(principal, course):
        raise AuthorizationError("Only the course instructor or an administrator can do this")
    return principal
