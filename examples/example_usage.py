"""Example: drive the service layer directly (no Flask).

Controllers are thin; every rule lives in the services. Run against the
seeded demo database (scripts/init_db.py then scripts/seed_db.py).
"""

import importlib

from config import get_settings_module

from src.class_attendance.class_attendance.access.model import Principal
from src.class_attendance.class_attendance.container import build_container
from src.class_attendance.class_attendance.core.enums import Role


def main():
    settings = importlib.import_module(get_settings_module())
    container = build_container(settings)

    instructor = Principal(user_id=2, role=Role.INSTRUCTOR)
    student = Principal(user_id=3, role=Role.STUDENT)

    opened = container.session_service.open(instructor, 2)
    print("opened:", opened.as_dict())

    container.attendance_service.check_in(student, session_id=2, code=opened.attendance_code)
    result = container.session_service.close(instructor, 2)
    print("closed:", result.as_dict())

    print(container.report_service.course_report(instructor, 1).as_dict())


if __name__ == "__main__":
    main()
