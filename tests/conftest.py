from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

import pytest

from src.class_attendance.class_attendance.access.model import Principal
from src.class_attendance.class_attendance.attendance.model import AttendanceRecord
from src.class_attendance.class_attendance.container import Container, assemble
from src.class_attendance.class_attendance.core.enums import (
    AttendanceMethod,
    AttendanceStatus,
    RequestStatus,
    Role,
    SessionState,
)
from src.class_attendance.class_attendance.core.exceptions import DuplicateActiveRequestError, DuplicateRecordError
from src.class_attendance.class_attendance.courses.model import Course
from src.class_attendance.class_attendance.effects.model import Notification
from src.class_attendance.class_attendance.policies.model import AttendancePolicy
from src.class_attendance.class_attendance.requests.model import AppealRecord, ExcuseRequest
from src.class_attendance.class_attendance.sessions.model import ClassSession

FIXED_NOW = datetime(2026, 3, 2, 9, 5, 0)
ACTIVE = (RequestStatus.PENDING, RequestStatus.APPROVED)


def fixed_clock() -> datetime:
    return FIXED_NOW


class InMemoryCourses:
    def __init__(self):
        self.courses: dict[int, Course] = {}
        self.enrollments: dict[int, set[int]] = {}

    def add(self, course: Course, student_ids=()) -> None:
        self.courses[course.course_id] = course
        self.enrollments[course.course_id] = set(student_ids)

    def get_by_id(self, course_id: int) -> Optional[Course]:
        return self.courses.get(int(course_id))

    def list_enrolled_student_ids(self, course_id: int):
        return sorted(self.enrollments.get(int(course_id), set()))

    def is_enrolled(self, course_id: int, student_id: int) -> bool:
        return int(student_id) in self.enrollments.get(int(course_id), set())

    def list_courses_for_instructor(self, instructor_id: int):
        return [c for c in self.courses.values() if c.instructor_id == int(instructor_id)]


class InMemorySessions:
    def __init__(self):
        self._items: dict[int, ClassSession] = {}
        self._id = 0
        self._lock = threading.Lock()

    def snapshot(self):
        return dict(self._items), self._id

    def restore(self, state) -> None:
        self._items, self._id = dict(state[0]), state[1]

    def get_by_id(self, session_id: int) -> Optional[ClassSession]:
        return self._items.get(int(session_id))

    def create(self, *, course_id, start_at, end_at, room, attendance_method, week=None) -> int:
        with self._lock:
            self._id += 1
            self._items[self._id] = ClassSession(
                session_id=self._id,
                course_id=int(course_id),
                start_at=start_at,
                end_at=end_at,
                room=room,
                attendance_method=attendance_method,
                attendance_code=None,
                state=SessionState.SCHEDULED,
                week=week,
            )
            return self._id

    def update_state(self, *, session_id, expected, state, attendance_code) -> bool:
        with self._lock:
            current = self._items.get(int(session_id))
            if not current or current.state != expected:
                return False
            self._items[current.session_id] = replace(current, state=state, attendance_code=attendance_code)
            return True

    def set_state(self, *, session_id, expected, state) -> bool:
        with self._lock:
            current = self._items.get(int(session_id))
            if not current or current.state != expected:
                return False
            self._items[current.session_id] = replace(current, state=state)
            return True

    def set_code(self, *, session_id, attendance_code) -> bool:
        with self._lock:
            current = self._items.get(int(session_id))
            if not current:
                return False
            self._items[current.session_id] = replace(current, attendance_code=attendance_code)
            return True

    def update_details(self, *, session_id, start_at, end_at, room, week) -> bool:
        with self._lock:
            current = self._items.get(int(session_id))
            if not current:
                return False
            self._items[current.session_id] = replace(current, start_at=start_at, end_at=end_at, room=room, week=week)
            return True

    def set_method(self, *, session_id, attendance_method, attendance_code) -> bool:
        with self._lock:
            current = self._items.get(int(session_id))
            if not current:
                return False
            self._items[current.session_id] = replace(
                current, attendance_method=attendance_method, attendance_code=attendance_code
            )
            return True

    def delete(self, session_id: int) -> bool:
        with self._lock:
            return self._items.pop(int(session_id), None) is not None

    def list_for_course(self, course_id: int, *, state=None):
        items = [
            s
            for s in self._items.values()
            if s.course_id == int(course_id) and (state is None or s.state == state)
        ]
        items.sort(key=lambda s: (s.start_at, s.session_id))
        return items


class InMemoryAttendance:
    def __init__(self, sessions: InMemorySessions):
        self._sessions = sessions
        self._items: dict[int, AttendanceRecord] = {}
        self._id = 0
        self._lock = threading.Lock()

    def snapshot(self):
        return dict(self._items), self._id

    def restore(self, state) -> None:
        self._items, self._id = dict(state[0]), state[1]

    def all(self):
        return list(self._items.values())

    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        return self._items.get(int(attendance_id))

    def get_for_session_and_student(self, session_id: int, student_id: int) -> Optional[AttendanceRecord]:
        for r in self._items.values():
            if r.session_id == int(session_id) and r.student_id == int(student_id):
                return r
        return None

    def list_for_session(self, session_id: int):
        return sorted((r for r in self._items.values() if r.session_id == int(session_id)), key=lambda r: r.student_id)

    def list_for_course(self, course_id: int, *, student_id=None):
        out = []
        for r in self._items.values():
            sess = self._sessions.get_by_id(r.session_id)
            if sess is None or sess.course_id != int(course_id):
                continue
            if student_id is not None and r.student_id != int(student_id):
                continue
            out.append((sess.start_at, r.student_id, r))
        out.sort(key=lambda t: (t[0], t[1]))
        return [t[2] for t in out]

    def create(self, *, session_id, student_id, status, checked_at=None) -> AttendanceRecord:
        with self._lock:
            if self.get_for_session_and_student(session_id, student_id):
                raise DuplicateRecordError("An attendance record already exists for this student and session")
            self._id += 1
            rec = AttendanceRecord(
                attendance_id=self._id,
                session_id=int(session_id),
                student_id=int(student_id),
                status=status,
                checked_at=checked_at,
            )
            self._items[self._id] = rec
            return rec

    def update_status(self, *, attendance_id, status, expected=None, checked_at=None) -> bool:
        with self._lock:
            rec = self._items.get(int(attendance_id))
            if not rec or (expected is not None and rec.status != expected):
                return False
            self._items[rec.attendance_id] = replace(
                rec,
                status=status,
                checked_at=checked_at if checked_at is not None else rec.checked_at,
            )
            return True


class InMemoryPolicies:
    def __init__(self):
        self._items: dict[int, AttendancePolicy] = {}

    def snapshot(self):
        return dict(self._items)

    def restore(self, state) -> None:
        self._items = dict(state)

    def get(self, course_id: int) -> Optional[AttendancePolicy]:
        return self._items.get(int(course_id))

    def upsert(self, *, course_id, max_absent, late_to_absent) -> AttendancePolicy:
        policy = AttendancePolicy(course_id=int(course_id), max_absent=max_absent, late_to_absent=late_to_absent)
        self._items[int(course_id)] = policy
        return policy


class InMemoryRequests:
    def __init__(self, sessions: InMemorySessions, attendance: InMemoryAttendance):
        self._sessions = sessions
        self._attendance = attendance
        self._excuses: dict[int, ExcuseRequest] = {}
        self._appeals: dict[int, AppealRecord] = {}
        self._id = 0
        self._lock = threading.Lock()

    def snapshot(self):
        return dict(self._excuses), dict(self._appeals), self._id

    def restore(self, state) -> None:
        self._excuses, self._appeals, self._id = dict(state[0]), dict(state[1]), state[2]

    def _course_of_session(self, session_id: int) -> Optional[int]:
        sess = self._sessions.get_by_id(session_id)
        return sess.course_id if sess else None

    # Excuses
    def create_excuse(self, *, session_id, student_id, reason, reason_code, files) -> ExcuseRequest:
        with self._lock:
            if self._active_excuse(session_id, student_id):
                raise DuplicateActiveRequestError("An excuse request for this session is already pending or approved")
            self._id += 1
            excuse = ExcuseRequest(
                request_id=self._id,
                session_id=int(session_id),
                student_id=int(student_id),
                reason=reason,
                reason_code=reason_code,
                files=tuple(files),
                status=RequestStatus.PENDING,
                created_at=FIXED_NOW + timedelta(seconds=self._id),
            )
            self._excuses[self._id] = excuse
            return excuse

    def get_excuse(self, *, request_id):
        return self._excuses.get(int(request_id))

    def find_active_excuse(self, *, session_id, student_id):
        return self._active_excuse(session_id, student_id)

    def _active_excuse(self, session_id, student_id):
        for e in self._excuses.values():
            if e.session_id == int(session_id) and e.student_id == int(student_id) and e.status in ACTIVE:
                return e
        return None

    def list_excuses(self, *, status=None, student_id=None, course_ids=None, session_id=None, limit=200):
        out = []
        for e in self._excuses.values():
            if status is not None and e.status != status:
                continue
            if student_id is not None and e.student_id != int(student_id):
                continue
            if session_id is not None and e.session_id != int(session_id):
                continue
            if course_ids is not None and self._course_of_session(e.session_id) not in set(course_ids):
                continue
            out.append(e)
        out.sort(key=lambda e: e.request_id, reverse=True)
        return out[:limit]

    def count_excuses_by_course(self, *, course_ids=None):
        counts: dict[tuple[int, RequestStatus], int] = {}
        for e in self._excuses.values():
            course_id = self._course_of_session(e.session_id)
            if course_ids is not None and course_id not in set(course_ids):
                continue
            counts[(course_id, e.status)] = counts.get((course_id, e.status), 0) + 1
        return [(c, s, n) for (c, s), n in sorted(counts.items(), key=lambda kv: (kv[0][0], kv[0][1].value))]

    def decide_excuse(self, *, request_id, status, decided_by, decided_at, instructor_comment=None) -> bool:
        with self._lock:
            e = self._excuses.get(int(request_id))
            if not e or e.status != RequestStatus.PENDING:
                return False
            self._excuses[e.request_id] = replace(
                e,
                status=status,
                decided_by=decided_by,
                decided_at=decided_at,
                instructor_comment=instructor_comment,
            )
            return True

    # Appeals
    def create_appeal(self, *, attendance_id, student_id, message, requested_status) -> AppealRecord:
        with self._lock:
            if self._active_appeal(attendance_id):
                raise DuplicateActiveRequestError("An appeal for this record is already pending or approved")
            self._id += 1
            appeal = AppealRecord(
                appeal_id=self._id,
                attendance_id=int(attendance_id),
                student_id=int(student_id),
                message=message,
                requested_status=requested_status,
                status=RequestStatus.PENDING,
                created_at=FIXED_NOW + timedelta(seconds=self._id),
            )
            self._appeals[self._id] = appeal
            return appeal

    def get_appeal(self, *, appeal_id):
        return self._appeals.get(int(appeal_id))

    def find_active_appeal(self, *, attendance_id):
        return self._active_appeal(attendance_id)

    def _active_appeal(self, attendance_id):
        for a in self._appeals.values():
            if a.attendance_id == int(attendance_id) and a.status in ACTIVE:
                return a
        return None

    def list_appeals(self, *, status=None, student_id=None, course_ids=None, limit=200):
        out = []
        for a in self._appeals.values():
            if status is not None and a.status != status:
                continue
            if student_id is not None and a.student_id != int(student_id):
                continue
            if course_ids is not None:
                rec = self._attendance.get_by_id(a.attendance_id)
                if rec is None or self._course_of_session(rec.session_id) not in set(course_ids):
                    continue
            out.append(a)
        out.sort(key=lambda a: a.appeal_id, reverse=True)
        return out[:limit]

    def decide_appeal(
        self,
        *,
        appeal_id,
        status,
        decided_by,
        decided_at,
        corrected_status=None,
        instructor_comment=None,
    ) -> bool:
        with self._lock:
            a = self._appeals.get(int(appeal_id))
            if not a or a.status != RequestStatus.PENDING:
                return False
            self._appeals[a.appeal_id] = replace(
                a,
                status=status,
                decided_by=decided_by,
                decided_at=decided_at,
                corrected_status=corrected_status,
                instructor_comment=instructor_comment,
            )
            return True


class RecordingNotifications:
    def __init__(self):
        self.items: list[Notification] = []

    def notify(self, user_ids, *, type, title, content, link=None) -> None:
        for user_id in user_ids:
            self.items.append(
                Notification(
                    notification_id=len(self.items) + 1,
                    user_id=int(user_id),
                    type=type,
                    title=title,
                    content=content,
                    link=link,
                    is_read=False,
                    created_at=FIXED_NOW,
                )
            )

    def of_type(self, type):
        return [n for n in self.items if n.type == type]

    def list_for_user(self, user_id: int, *, unread_only: bool = False, limit: int = 50):
        items = [n for n in self.items if n.user_id == int(user_id) and not (unread_only and n.is_read)]
        return list(reversed(items))[:limit]

    def mark_read(self, *, user_id: int, notification_id: int) -> bool:
        for i, n in enumerate(self.items):
            if n.notification_id == int(notification_id) and n.user_id == int(user_id):
                self.items[i] = replace(n, is_read=True)
                return True
        return False


class RecordingAudit:
    def __init__(self):
        self.entries: list[dict] = []

    def record(self, *, actor_id, action, target_type, target_id, old_value=None, new_value=None) -> None:
        self.entries.append(
            {
                "actor_id": actor_id,
                "action": action,
                "target_type": target_type,
                "target_id": target_id,
                "old_value": old_value,
                "new_value": new_value,
            }
        )

    def actions(self) -> list[str]:
        return [e["action"] for e in self.entries]


class FailingSink:
    """Notification and audit sink that always raises."""

    def __init__(self):
        self.calls = 0

    def notify(self, user_ids, *, type, title, content, link=None) -> None:
        self.calls += 1
        raise RuntimeError("notification transport down")

    def record(self, *, actor_id, action, target_type, target_id, old_value=None, new_value=None) -> None:
        self.calls += 1
        raise RuntimeError("audit store down")

    def list_for_user(self, user_id, *, unread_only=False, limit=50):
        return []

    def mark_read(self, *, user_id, notification_id) -> bool:
        return False


class InMemoryStorage:
    def __init__(self):
        self.stored: list[tuple[str, str, int]] = []

    def store(self, data: bytes, filename: str, content_type: str) -> str:
        self.stored.append((filename, content_type, len(data)))
        return f"/uploads/{len(self.stored)}_{filename}"


class SnapshotTransaction:
    """All-or-nothing scope over the in-memory repositories."""

    def __init__(self, *repos):
        self._repos = repos
        self._depth = 0
        self._lock = threading.RLock()
        self.commits = 0
        self.rollbacks = 0

    @contextmanager
    def transaction(self):
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snaps = [r.snapshot() for r in self._repos]
            self._depth = 1
            try:
                yield
                self.commits += 1
            except Exception:
                for repo, snap in zip(self._repos, snaps):
                    repo.restore(snap)
                self.rollbacks += 1
                raise
            finally:
                self._depth = 0


ADMIN = Principal(user_id=1, role=Role.ADMIN)
INSTRUCTOR = Principal(user_id=2, role=Role.INSTRUCTOR)
STUDENT_A = Principal(user_id=3, role=Role.STUDENT)
STUDENT_B = Principal(user_id=4, role=Role.STUDENT)
STUDENT_C = Principal(user_id=5, role=Role.STUDENT)
OTHER_INSTRUCTOR = Principal(user_id=9, role=Role.INSTRUCTOR)
OUTSIDER = Principal(user_id=6, role=Role.STUDENT)


@dataclass
class World:
    container: Container
    courses: InMemoryCourses
    sessions: InMemorySessions
    attendance: InMemoryAttendance
    policies: InMemoryPolicies
    requests: InMemoryRequests
    notifications: RecordingNotifications
    audit: RecordingAudit
    storage: InMemoryStorage
    tx: SnapshotTransaction

    admin: Principal = ADMIN
    instructor: Principal = INSTRUCTOR
    other_instructor: Principal = OTHER_INSTRUCTOR
    student_a: Principal = STUDENT_A
    student_b: Principal = STUDENT_B
    student_c: Principal = STUDENT_C
    outsider: Principal = OUTSIDER

    def new_session(
        self,
        *,
        course_id: int = 1,
        method: AttendanceMethod = AttendanceMethod.DIRECT,
        state: SessionState = SessionState.SCHEDULED,
        code: Optional[str] = None,
        day: int = 0,
    ) -> ClassSession:
        start = datetime(2026, 3, 2, 9, 0) + timedelta(days=day)
        session_id = self.sessions.create(
            course_id=course_id,
            start_at=start,
            end_at=start + timedelta(minutes=90),
            room="B-101",
            attendance_method=method,
        )
        if state != SessionState.SCHEDULED or code:
            self.sessions.update_state(
                session_id=session_id,
                expected=SessionState.SCHEDULED,
                state=state,
                attendance_code=code,
            )
        return self.sessions.get_by_id(session_id)

    def record(self, session: ClassSession, student: Principal, status: AttendanceStatus) -> AttendanceRecord:
        return self.attendance.create(session_id=session.session_id, student_id=student.user_id, status=status)

    def status_of(self, session: ClassSession, student: Principal) -> Optional[AttendanceStatus]:
        rec = self.attendance.get_for_session_and_student(session.session_id, student.user_id)
        return rec.status if rec else None


def build_world(*, notifications=None, audit=None, allow_post_close_corrections: bool = True, rng=None) -> World:
    courses = InMemoryCourses()
    courses.add(Course(course_id=1, title="Databases 101", instructor_id=2), [3, 4, 5])
    courses.add(Course(course_id=2, title="Networks", instructor_id=9), [6])

    sessions = InMemorySessions()
    attendance = InMemoryAttendance(sessions)
    policies = InMemoryPolicies()
    requests = InMemoryRequests(sessions, attendance)
    recording_notifications = RecordingNotifications()
    recording_audit = RecordingAudit()
    storage = InMemoryStorage()
    tx = SnapshotTransaction(sessions, attendance, policies, requests)

    container = assemble(
        tx=tx,
        courses_repo=courses,
        sessions_repo=sessions,
        attendance_repo=attendance,
        policies_repo=policies,
        requests_repo=requests,
        notification_inbox=notifications or recording_notifications,
        audit_sink=audit or recording_audit,
        storage=storage,
        allow_post_close_corrections=allow_post_close_corrections,
        clock=fixed_clock,
        rng=rng,
    )
    return World(
        container=container,
        courses=courses,
        sessions=sessions,
        attendance=attendance,
        policies=policies,
        requests=requests,
        notifications=recording_notifications,
        audit=recording_audit,
        storage=storage,
        tx=tx,
    )


@pytest.fixture
def world() -> World:
    return build_world()


@pytest.fixture
def strict_world() -> World:
    """Post-close corrections disabled."""

    return build_world(allow_post_close_corrections=False)


@pytest.fixture
def failing_world() -> World:
    sink = FailingSink()
    return build_world(notifications=sink, audit=sink)
