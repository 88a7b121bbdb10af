"""Role and student-record registries"""
from seatbid.core.registry.roles import Role, RoleRegistry
from seatbid.core.registry.student_record import PrerequisiteOracle, StudentRecord

__all__ = [
    "Role",
    "RoleRegistry",
    "PrerequisiteOracle",
    "StudentRecord",
]
