from __future__ import annotations

import pytest

from src.class_attendance.class_attendance.core.exceptions import AuthorizationError, NotFoundError, ValidationError


def test_defaults_when_no_policy_is_stored(world):
    policy = world.container.policy_service.get_policy(1)

    assert (policy.max_absent, policy.late_to_absent) == (3, 3)
    assert policy.is_default is True


def test_set_policy_creates_then_updates_with_audit(world):
    service = world.container.policy_service

    service.set_policy(world.instructor, course_id=1, max_absent=4, late_to_absent=2)
    updated = service.set_policy(world.admin, course_id=1, max_absent="5", late_to_absent=2)

    assert (updated.max_absent, updated.late_to_absent) == (5, 2)
    assert service.get_policy(1).is_default is False
    assert world.audit.actions() == ["POLICY_CREATE", "POLICY_UPDATE"]
    assert world.audit.entries[1]["old_value"] == {"max_absent": 4, "late_to_absent": 2}
    assert world.audit.entries[1]["new_value"] == {"max_absent": 5, "late_to_absent": 2}


@pytest.mark.parametrize(
    "max_absent,late_to_absent",
    [(-1, 3), (3, 0), ("x", 3), (3, None), (True, 3)],
)
def test_set_policy_validates_bounds(world, max_absent, late_to_absent):
    with pytest.raises(ValidationError):
        world.container.policy_service.set_policy(
            world.instructor, course_id=1, max_absent=max_absent, late_to_absent=late_to_absent
        )
    assert world.policies.get(1) is None


def test_zero_absences_allowed(world):
    policy = world.container.policy_service.set_policy(world.instructor, course_id=1, max_absent=0, late_to_absent=1)

    assert policy.max_absent == 0


def test_set_policy_requires_course_staff(world):
    service = world.container.policy_service

    for principal in (world.other_instructor, world.student_a):
        with pytest.raises(AuthorizationError):
            service.set_policy(principal, course_id=1, max_absent=3, late_to_absent=3)
    with pytest.raises(NotFoundError):
        service.set_policy(world.admin, course_id=42, max_absent=3, late_to_absent=3)


def test_view_policy_rules(world):
    service = world.container.policy_service

    assert service.view_policy(world.student_a, 1).max_absent == 3
    with pytest.raises(AuthorizationError):
        service.view_policy(world.other_instructor, 1)
