from __future__ import annotations

from typing import Optional

from ..access.guards import require_course_staff, require_principal
from ..access.model import Principal
from ..common.validators import require_min_int
from ..core.enums import Role
from ..core.exceptions import AuthorizationError, NotFoundError
from ..courses.repository import CourseRepository
from ..effects.model import EffectLog
from ..effects.runner import EffectRunner
from .model import AttendancePolicy
from .repository import PolicyRepository


class PolicyService:
    def __init__(self, policies: PolicyRepository, courses: CourseRepository, effects: EffectRunner):
        self._policies = policies
        self._courses = courses
        self._effects = effects

    def get_policy(self, course_id: int) -> AttendancePolicy:
        """Stored policy, or the documented defaults when none was set."""

        return self._policies.get(int(course_id)) or AttendancePolicy(course_id=int(course_id), is_default=True)

    def view_policy(self, principal: Optional[Principal], course_id: int) -> AttendancePolicy:
        principal = require_principal(principal)
        course = self._courses.get_by_id(int(course_id))
        if not course:
            raise NotFoundError("Course not found")
        if principal.role == Role.INSTRUCTOR and course.instructor_id != principal.user_id:
            raise AuthorizationError("Only the course instructor or an administrator can do this")
        return self.get_policy(course.course_id)

    def set_policy(
        self,
        principal: Optional[Principal],
        *,
        course_id: int,
        max_absent,
        late_to_absent,
    ) -> AttendancePolicy:
        course = self._courses.get_by_id(int(course_id))
        if not course:
            raise NotFoundError("Course not found")
        actor = require_course_staff(principal, course)

        max_absent = require_min_int(max_absent, "max_absent", 0)
        late_to_absent = require_min_int(late_to_absent, "late_to_absent", 1)

        old = self._policies.get(course.course_id)
        policy = self._policies.upsert(course_id=course.course_id, max_absent=max_absent, late_to_absent=late_to_absent)

        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="POLICY_UPDATE" if old else "POLICY_CREATE",
            target_type="AttendancePolicy",
            target_id=course.course_id,
            old_value=old.as_dict() if old else None,
            new_value=policy.as_dict(),
        )
        self._effects.dispatch(log.items)
        return policy
