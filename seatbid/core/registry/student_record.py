"""
Student Record - Completed-course registry used as the prerequisite oracle.

Kept separate from the University: it has its own chief and administrators,
and the University only ever asks `has_completed(student, code)`.
"""

from typing import Dict, Iterable, List, Protocol, Set

from seatbid.core.errors import AuthorizationError
from seatbid.utils.logger import get_logger
from seatbid.utils.validation import validate_course_code, validate_identity

logger = get_logger("student_record")


class PrerequisiteOracle(Protocol):
    """Anything that can answer whether a student completed a course."""

    def has_completed(self, student: str, course_code: str) -> bool:
        ...


class StudentRecord:
    """
    Record of passed courses per student.
    """

    def __init__(self, chief: str):
        self.chief = chief
        self.admins: Set[str] = set()
        self._completed: Dict[str, Set[str]] = {}

    def add_admins(self, caller: str, admins: Iterable[str]) -> None:
        if caller != self.chief:
            raise AuthorizationError(f"{caller} is not the record chief")
        admins = list(admins)
        for admin in admins:
            is_valid, error = validate_identity(admin, "admin")
            if not is_valid:
                raise AuthorizationError(error)
        self.admins.update(admins)

    def pass_course(self, caller: str, course_code: str, student: str) -> None:
        """Record that `student` completed `course_code`."""
        if caller not in self.admins:
            raise AuthorizationError(f"{caller} is not a record administrator")
        is_valid, error = validate_course_code(course_code)
        if not is_valid:
            raise ValueError(error)

        self._completed.setdefault(student, set()).add(course_code)
        logger.info(f"Recorded {student[:10]}... passed {course_code}")

    def has_completed(self, student: str, course_code: str) -> bool:
        return course_code in self._completed.get(student, ())

    def completed_courses(self, student: str) -> List[str]:
        return sorted(self._completed.get(student, ()))

    def to_dict(self) -> dict:
        return {
            "chief": self.chief,
            "admins": sorted(self.admins),
            "completed": {k: sorted(v) for k, v in self._completed.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StudentRecord":
        record = cls(data["chief"])
        record.admins = set(data.get("admins", []))
        record._completed = {k: set(v) for k, v in data.get("completed", {}).items()}
        return record
