from __future__ import annotations

from dataclasses import dataclass

from werkzeug.security import check_password_hash

from ..common.validators import require_non_empty
from ..core.enums import Role
from ..core.exceptions import AuthenticationError
from .repository import UserRepository

_STAFF_ROLES = (Role.ADMIN, Role.INSTRUCTOR)


@dataclass(frozen=True)
class SessionUser:
    """What we store into Flask session after login."""

    user_id: int
    full_name: str
    role: Role


class AuthService:
    """Use case: authenticate a staff user (login).

    Learners never log in: their signature token is their only credential.
    """

    def __init__(self, users: UserRepository):
        self._users = users

    def authenticate(self, email: str, password: str) -> SessionUser:
        email = require_non_empty(email, "Email").lower()
        user = self._users.get_by_email(email)
        if not user or not user.is_active or user.role not in _STAFF_ROLES:
            raise AuthenticationError("Identifiants invalides")

        try:
            ok = check_password_hash(user.password_hash, password or "")
        except ValueError:
            # e.g. empty or placeholder hashes on learner-imported accounts
            ok = False

        if not ok:
            raise AuthenticationError("Identifiants invalides")

        return SessionUser(user_id=user.user_id, full_name=user.full_name, role=user.role)
