from __future__ import annotations

import random
from datetime import datetime

import pytest

from conftest import build_world
from src.class_attendance.class_attendance.core.enums import (
    AttendanceMethod,
    AttendanceStatus,
    NotificationType,
    SessionState,
)
from src.class_attendance.class_attendance.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    InvalidCodeError,
    InvalidTransitionError,
    NotFoundError,
    SessionInUseError,
    ValidationError,
    WrongMethodError,
)


def test_open_code_session_issues_four_digit_code(world):
    sess = world.new_session(method=AttendanceMethod.CODE)

    opened = world.container.session_service.open(world.instructor, sess.session_id)

    assert opened.state == SessionState.OPEN
    assert opened.attendance_code is not None
    assert len(opened.attendance_code) == 4
    assert 1000 <= int(opened.attendance_code) <= 9999
    assert world.sessions.get_by_id(sess.session_id).attendance_code == opened.attendance_code


def test_open_keeps_existing_code(world):
    sess = world.new_session(method=AttendanceMethod.CODE, code="4321")

    opened = world.container.session_service.open(world.instructor, sess.session_id)

    assert opened.attendance_code == "4321"


def test_open_direct_session_has_no_code(world):
    sess = world.new_session()

    opened = world.container.session_service.open(world.admin, sess.session_id)

    assert opened.attendance_code is None
    assert opened.is_open and not opened.is_closed


def test_open_notifies_enrolled_students_and_audits(world):
    sess = world.new_session(method=AttendanceMethod.CODE)

    opened = world.container.session_service.open(world.instructor, sess.session_id)

    notified = world.notifications.of_type(NotificationType.ATTENDANCE_OPEN)
    assert sorted(n.user_id for n in notified) == [3, 4, 5]
    entry = world.audit.entries[-1]
    assert entry["action"] == "SESSION_OPEN"
    assert entry["old_value"] == {"is_open": False, "attendance_code": None}
    assert entry["new_value"] == {"is_open": True, "attendance_code": opened.attendance_code}


def test_open_twice_is_invalid_transition(world):
    sess = world.new_session()
    world.container.session_service.open(world.instructor, sess.session_id)

    with pytest.raises(InvalidTransitionError):
        world.container.session_service.open(world.instructor, sess.session_id)


def test_reopen_closed_session_is_rejected(world):
    sess = world.new_session(state=SessionState.CLOSED)

    with pytest.raises(InvalidTransitionError):
        world.container.session_service.open(world.instructor, sess.session_id)


def test_close_requires_open_session(world):
    sess = world.new_session()

    with pytest.raises(InvalidTransitionError):
        world.container.session_service.close(world.instructor, sess.session_id)

    assert world.attendance.all() == []


def test_close_reconciles_enrolled_students(world):
    sess = world.new_session(state=SessionState.OPEN)
    world.record(sess, world.student_a, AttendanceStatus.PRESENT)
    world.record(sess, world.student_b, AttendanceStatus.PENDING)

    result = world.container.session_service.close(world.instructor, sess.session_id)

    assert result.session.is_closed and not result.session.is_open
    assert world.sessions.get_by_id(sess.session_id).state == SessionState.CLOSED
    assert world.status_of(sess, world.student_a) == AttendanceStatus.PRESENT
    assert world.status_of(sess, world.student_b) == AttendanceStatus.ABSENT
    assert world.status_of(sess, world.student_c) == AttendanceStatus.ABSENT
    assert result.reconciliation.as_dict() == {
        "session_id": sess.session_id,
        "created_absent": 1,
        "pending_to_absent": 1,
        "untouched": 1,
    }


def test_close_leaves_no_pending_records(world):
    sess = world.new_session(state=SessionState.OPEN)
    for student in (world.student_a, world.student_b, world.student_c):
        world.record(sess, student, AttendanceStatus.PENDING)

    world.container.session_service.close(world.instructor, sess.session_id)

    statuses = [r.status for r in world.attendance.list_for_session(sess.session_id)]
    assert len(statuses) == 3
    assert AttendanceStatus.PENDING not in statuses


def test_close_audits_summary_and_notifies(world):
    sess = world.new_session(state=SessionState.OPEN)

    world.container.session_service.close(world.instructor, sess.session_id)

    close_entry = [e for e in world.audit.entries if e["action"] == "SESSION_CLOSE"][0]
    assert close_entry["new_value"]["is_closed"] is True
    assert close_entry["new_value"]["created_absent"] == 3
    closed = world.notifications.of_type(NotificationType.ATTENDANCE_CLOSE)
    assert sorted(n.user_id for n in closed) == [3, 4, 5]


def test_close_warns_students_near_the_absence_limit(world):
    world.policies.upsert(course_id=1, max_absent=2, late_to_absent=3)
    earlier = world.new_session(state=SessionState.CLOSED, day=0)
    world.record(earlier, world.student_a, AttendanceStatus.PRESENT)
    world.record(earlier, world.student_b, AttendanceStatus.ABSENT)
    world.record(earlier, world.student_c, AttendanceStatus.PRESENT)

    sess = world.new_session(state=SessionState.OPEN, day=7)
    world.record(sess, world.student_a, AttendanceStatus.PRESENT)

    world.container.session_service.close(world.instructor, sess.session_id)

    warnings = {n.user_id: n for n in world.notifications.of_type(NotificationType.ABSENCE_WARNING)}
    # B: 2 absences (limit reached); C: 1 absence (one short); A: none.
    assert sorted(warnings) == [4, 5]
    assert warnings[4].title == "Absence limit reached"
    assert warnings[5].title == "Absence warning"


def test_regenerate_code_invalidates_old_code(world):
    sess = world.new_session(method=AttendanceMethod.CODE)
    opened = world.container.session_service.open(world.instructor, sess.session_id)

    updated = world.container.session_service.regenerate_code(world.instructor, sess.session_id)

    assert updated.attendance_code != opened.attendance_code
    with pytest.raises(InvalidCodeError):
        world.container.attendance_service.check_in(world.student_a, session_id=sess.session_id, code=opened.attendance_code)
    assert world.attendance.all() == []

    rec = world.container.attendance_service.check_in(world.student_a, session_id=sess.session_id, code=updated.attendance_code)
    assert rec.status == AttendanceStatus.PRESENT
    assert world.audit.actions()[-2] == "SESSION_CODE_REGENERATE"


def test_regenerate_code_differs_even_when_rng_repeats():
    rng = random.Random(7)
    world = build_world(rng=rng)
    sess = world.new_session(method=AttendanceMethod.CODE)
    state = rng.getstate()
    first = world.container.session_service.open(world.instructor, sess.session_id).attendance_code

    rng.setstate(state)
    second = world.container.session_service.regenerate_code(world.instructor, sess.session_id).attendance_code

    assert second != first


def test_regenerate_code_requires_code_method(world):
    sess = world.new_session(state=SessionState.OPEN)

    with pytest.raises(WrongMethodError):
        world.container.session_service.regenerate_code(world.instructor, sess.session_id)


def test_regenerate_code_allowed_in_any_state(world):
    sess = world.new_session(method=AttendanceMethod.CODE, state=SessionState.CLOSED, code="1111")

    updated = world.container.session_service.regenerate_code(world.instructor, sess.session_id)

    assert updated.attendance_code != "1111"


@pytest.mark.parametrize("who", ["other_instructor", "student_a"])
def test_lifecycle_requires_course_staff(world, who):
    sess = world.new_session(method=AttendanceMethod.CODE)
    principal = getattr(world, who)

    with pytest.raises(AuthorizationError):
        world.container.session_service.open(principal, sess.session_id)
    with pytest.raises(AuthorizationError):
        world.container.session_service.regenerate_code(principal, sess.session_id)
    assert world.sessions.get_by_id(sess.session_id).state == SessionState.SCHEDULED


def test_anonymous_caller_is_unauthorized(world):
    sess = world.new_session()

    with pytest.raises(AuthenticationError):
        world.container.session_service.open(None, sess.session_id)


def test_unknown_session_is_not_found(world):
    with pytest.raises(NotFoundError):
        world.container.session_service.open(world.instructor, 999)


def test_concurrent_close_has_single_winner(world):
    sess = world.new_session(state=SessionState.OPEN)
    service = world.container.session_service
    stale = world.sessions.get_by_id(sess.session_id)

    service.close(world.instructor, sess.session_id)

    # A second closer that read OPEN before the first commit loses the compare-and-set.
    real_get = world.sessions.get_by_id
    calls = {"n": 0}

    def get_stale_first(session_id):
        calls["n"] += 1
        return stale if calls["n"] == 1 else real_get(session_id)

    world.sessions.get_by_id = get_stale_first
    with pytest.raises(InvalidTransitionError):
        service.close(world.instructor, sess.session_id)
    assert world.tx.rollbacks == 1
    assert len(world.attendance.list_for_session(sess.session_id)) == 3


def test_close_rolls_back_when_reconciliation_fails(world):
    sess = world.new_session(state=SessionState.OPEN)
    world.record(sess, world.student_b, AttendanceStatus.PENDING)

    def boom(**kwargs):
        raise RuntimeError("store down")

    world.attendance.update_status = boom

    with pytest.raises(RuntimeError):
        world.container.session_service.close(world.instructor, sess.session_id)

    assert world.sessions.get_by_id(sess.session_id).state == SessionState.OPEN
    assert [r.student_id for r in world.attendance.list_for_session(sess.session_id)] == [4]
    assert "SESSION_CLOSE" not in world.audit.actions()


def test_schedule_creates_scheduled_session(world):
    sess = world.container.session_service.schedule(
        world.instructor,
        course_id=1,
        start_at="2026-03-16T09:00",
        end_at="2026-03-16T10:30",
        room=" B-202 ",
        attendance_method="code",
        week=3,
    )

    assert sess.state == SessionState.SCHEDULED
    assert sess.attendance_method == AttendanceMethod.CODE
    assert sess.start_at == datetime(2026, 3, 16, 9, 0)
    assert sess.room == "B-202"
    assert sess.week == 3
    assert world.audit.actions() == ["SESSION_CREATE"]


def test_schedule_rejects_end_before_start(world):
    with pytest.raises(ValidationError):
        world.container.session_service.schedule(
            world.instructor,
            course_id=1,
            start_at="2026-03-16T10:30",
            end_at="2026-03-16T09:00",
        )


def test_schedule_rejects_foreign_instructor(world):
    with pytest.raises(AuthorizationError):
        world.container.session_service.schedule(
            world.other_instructor,
            course_id=1,
            start_at="2026-03-16T09:00",
            end_at="2026-03-16T10:30",
        )


def test_code_qr_png_renders_current_code(world):
    sess = world.new_session(method=AttendanceMethod.CODE, state=SessionState.OPEN, code="2468")

    png = world.container.session_service.code_qr_png(world.instructor, sess.session_id)

    assert png.startswith(b"\x89PNG")


def test_code_qr_png_requires_code_method(world):
    sess = world.new_session(state=SessionState.OPEN)

    with pytest.raises(WrongMethodError):
        world.container.session_service.code_qr_png(world.instructor, sess.session_id)


def test_student_sees_enrolled_sessions_only(world):
    world.new_session()

    assert len(world.container.session_service.list_sessions(world.student_a, 1)) == 1
    with pytest.raises(AuthorizationError):
        world.container.session_service.list_sessions(world.outsider, 1)


def test_close_keeps_code_regenerated_after_load(world, monkeypatch):
    sess = world.new_session(method=AttendanceMethod.CODE, state=SessionState.OPEN, code="1111")
    stale = world.sessions.get_by_id(sess.session_id)
    world.sessions.set_code(session_id=sess.session_id, attendance_code="2222")

    real_get = world.sessions.get_by_id
    calls = {"n": 0}

    def get_by_id(session_id):
        calls["n"] += 1
        return stale if calls["n"] == 1 else real_get(session_id)

    monkeypatch.setattr(world.sessions, "get_by_id", get_by_id)

    result = world.container.session_service.close(world.instructor, sess.session_id)

    assert real_get(sess.session_id).attendance_code == "2222"
    assert result.session.attendance_code == "2222"
    assert result.session.state == SessionState.CLOSED


def test_update_session_fields_and_audit(world):
    sess = world.new_session()

    updated = world.container.session_service.update(
        world.instructor,
        sess.session_id,
        start_at="2026-03-02T10:00",
        end_at="2026-03-02T11:30",
        room="C-202",
        week=3,
    )

    assert updated.start_at == datetime(2026, 3, 2, 10, 0)
    assert updated.room == "C-202"
    assert updated.week == 3
    assert updated.attendance_method == AttendanceMethod.DIRECT
    entry = world.audit.entries[-1]
    assert entry["action"] == "SESSION_UPDATE"
    assert entry["old_value"]["room"] == "B-101"
    assert entry["new_value"]["room"] == "C-202"


def test_update_switching_methods_issues_and_drops_code(world):
    service = world.container.session_service
    sess = world.new_session(state=SessionState.OPEN)

    to_code = service.update(world.instructor, sess.session_id, attendance_method="CODE")
    assert to_code.attendance_method == AttendanceMethod.CODE
    assert to_code.attendance_code is not None
    assert 1000 <= int(to_code.attendance_code) <= 9999

    to_direct = service.update(world.instructor, sess.session_id, attendance_method="DIRECT")
    assert to_direct.attendance_code is None


def test_update_keeps_code_when_method_unchanged(world):
    sess = world.new_session(method=AttendanceMethod.CODE, state=SessionState.OPEN, code="4321")

    updated = world.container.session_service.update(world.instructor, sess.session_id, room="")

    assert updated.attendance_code == "4321"
    assert updated.room is None


def test_update_validates_times_and_closed_method(world):
    service = world.container.session_service
    sess = world.new_session()

    with pytest.raises(ValidationError):
        service.update(world.instructor, sess.session_id, end_at="2026-03-02T08:00")
    with pytest.raises(AuthorizationError):
        service.update(world.other_instructor, sess.session_id, room="X")

    closed = world.new_session(state=SessionState.CLOSED, day=1)
    with pytest.raises(InvalidTransitionError):
        service.update(world.instructor, closed.session_id, attendance_method="CODE")
    assert service.update(world.instructor, closed.session_id, room="D-1").room == "D-1"


def test_delete_unused_session(world):
    sess = world.new_session()

    world.container.session_service.delete(world.instructor, sess.session_id)

    assert world.sessions.get_by_id(sess.session_id) is None
    assert world.audit.actions()[-1] == "SESSION_DELETE"
    with pytest.raises(NotFoundError):
        world.container.session_service.delete(world.instructor, sess.session_id)


def test_delete_refused_while_records_or_excuses_exist(world):
    service = world.container.session_service
    with_record = world.new_session(state=SessionState.OPEN)
    world.record(with_record, world.student_a, AttendanceStatus.PRESENT)
    with_excuse = world.new_session(day=1)
    world.container.request_service.submit_excuse(world.student_b, session_id=with_excuse.session_id, reason="Sick")

    for sess in (with_record, with_excuse):
        with pytest.raises(SessionInUseError):
            service.delete(world.instructor, sess.session_id)
        assert world.sessions.get_by_id(sess.session_id) is not None
