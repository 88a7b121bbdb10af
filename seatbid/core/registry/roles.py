"""
Role Registry - Identity and role bookkeeping for the university.

Every address holds exactly one role:

    Chief     - sets fees, manages administrators
    Admin     - adds lecturers, creates courses, runs bidding rounds,
                signs enrolment approvals
    Lecturer  - owns courses, signs prerequisite waivers
    Student   - pays fees, bids, trades tokens
    Unknown   - everyone else

The engine itself is role-agnostic; the University gates each operation
with `require()`.
"""

from enum import Enum
from typing import Dict, Iterable, List

from seatbid.core.errors import AuthorizationError
from seatbid.utils.logger import get_logger
from seatbid.utils.validation import validate_identity

logger = get_logger("registry")


# =============================================================================
# Enums
# =============================================================================


class Role(str, Enum):
    """Role held by an address. Values are the display names."""
    UNKNOWN = "Unknown"
    STUDENT = "Student"
    ADMIN = "Admin"
    LECTURER = "Lecturer"
    CHIEF = "Chief"


# =============================================================================
# Role Registry
# =============================================================================


class RoleRegistry:
    """
    Address -> Role mapping with a single chief.
    """

    def __init__(self, chief: str):
        self._check_identity(chief)
        self._roles: Dict[str, Role] = {chief: Role.CHIEF}
        self._chief = chief

    @property
    def chief(self) -> str:
        return self._chief

    def role_of(self, identity: str) -> Role:
        return self._roles.get(identity, Role.UNKNOWN)

    def members(self, role: Role) -> List[str]:
        return sorted(addr for addr, r in self._roles.items() if r == role)

    def require(self, identity: str, *roles: Role) -> None:
        """
        Raises:
            AuthorizationError: identity does not hold one of the roles
        """
        actual = self.role_of(identity)
        if actual not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise AuthorizationError(f"{identity} is {actual.value}, requires {allowed}")

    # =========================================================================
    # Chief Operations
    # =========================================================================

    def transfer_chief(self, caller: str, new_chief: str) -> None:
        """Hand the chief role to another address. The old chief becomes Unknown."""
        self.require(caller, Role.CHIEF)
        self._check_identity(new_chief)
        if new_chief == caller:
            return
        self._require_assignable(new_chief, allow=(Role.ADMIN,))

        del self._roles[caller]
        self._roles[new_chief] = Role.CHIEF
        self._chief = new_chief
        logger.info(f"Chief transferred to {new_chief}")

    def add_admins(self, caller: str, admins: Iterable[str]) -> None:
        """Grant Admin to each address. All-or-nothing."""
        self.require(caller, Role.CHIEF)
        admins = list(admins)
        for admin in admins:
            self._check_identity(admin)
            self._require_assignable(admin, allow=(Role.ADMIN,))

        for admin in admins:
            self._roles[admin] = Role.ADMIN
        logger.info(f"Added {len(admins)} administrator(s)")

    def remove_admin(self, caller: str, admin: str) -> None:
        self.require(caller, Role.CHIEF)
        if self.role_of(admin) != Role.ADMIN:
            raise AuthorizationError(f"{admin} is not an administrator")
        del self._roles[admin]
        logger.info(f"Removed administrator {admin}")

    # =========================================================================
    # Admin Operations
    # =========================================================================

    def add_lecturer(self, caller: str, lecturer: str) -> None:
        self.require(caller, Role.ADMIN)
        self._check_identity(lecturer)
        self._require_assignable(lecturer, allow=(Role.LECTURER,))
        self._roles[lecturer] = Role.LECTURER
        logger.info(f"Added lecturer {lecturer}")

    def add_student(self, student: str) -> None:
        """Grant Student to an Unknown address (authorisation checked by the caller)."""
        self._check_identity(student)
        self._require_assignable(student)
        self._roles[student] = Role.STUDENT

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _check_identity(identity: str) -> None:
        is_valid, error = validate_identity(identity)
        if not is_valid:
            raise AuthorizationError(error)

    def _require_assignable(self, identity: str, allow=()) -> None:
        current = self.role_of(identity)
        if current != Role.UNKNOWN and current not in allow:
            raise AuthorizationError(f"{identity} already holds role {current.value}")

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_dict(self) -> dict:
        return {
            "chief": self._chief,
            "roles": {addr: role.value for addr, role in self._roles.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RoleRegistry":
        registry = cls(data["chief"])
        registry._roles = {addr: Role(value) for addr, value in data["roles"].items()}
        if registry._roles.get(registry._chief) != Role.CHIEF:
            raise ValueError("Role snapshot does not record the chief")
        return registry
