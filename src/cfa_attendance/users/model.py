from __future__ import annotations

from dataclasses import dataclass

from ..core.enums import Role


@dataclass(frozen=True)
class User:
    """Domain entity: application user (admin, instructor or learner).

    Note: Plain data object, no DB access code.
    """

    user_id: int
    first_name: str
    last_name: str
    email: str
    password_hash: str
    role: Role
    is_active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
