from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import pytest
from werkzeug.security import generate_password_hash

from cfa_attendance.core.enums import Role
from cfa_attendance.core.exceptions import AuthenticationError
from cfa_attendance.users.model import User
from cfa_attendance.users.service import AuthService


@dataclass
class InMemoryUsers:
    users_by_email: dict[str, User]

    def get_by_email(self, email: str) -> Optional[User]:
        return self.users_by_email.get(email)

    def get_by_id(self, user_id: int) -> Optional[User]:
        return next((u for u in self.users_by_email.values() if u.user_id == user_id), None)


def make_users() -> InMemoryUsers:
    def user(user_id, email, role, password="secret", active=True):
        return User(
            user_id=user_id,
            first_name="Claire",
            last_name="Martin",
            email=email,
            password_hash=generate_password_hash(password),
            role=role,
            is_active=active,
        )

    users = [
        user(1, "formateur@cfa.local", Role.INSTRUCTOR),
        user(2, "apprenti@cfa.local", Role.LEARNER),
        user(3, "ancien@cfa.local", Role.INSTRUCTOR, active=False),
    ]
    return InMemoryUsers({u.email: u for u in users})


def test_authenticate_instructor():
    s_user = AuthService(make_users()).authenticate(" Formateur@CFA.local ", "secret")

    assert s_user.user_id == 1
    assert s_user.role == Role.INSTRUCTOR
    assert s_user.full_name == "Claire Martin"


@pytest.mark.parametrize(
    "email, password",
    [
        ("formateur@cfa.local", "wrong"),
        ("apprenti@cfa.local", "secret"),
        ("ancien@cfa.local", "secret"),
        ("inconnu@cfa.local", "secret"),
    ],
)
def test_authenticate_rejects(email, password):
    with pytest.raises(AuthenticationError):
        AuthService(make_users()).authenticate(email, password)
