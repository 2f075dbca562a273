from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional


@dataclass(frozen=True)
class ClassSession:
    """Domain entity: one scheduled class (seance) of a training session."""

    class_session_id: int
    training_session_id: int
    session_date: date
    start_time: time
    end_time: time
    subject_label: Optional[str] = None
    instructor_ids: tuple[int, ...] = field(default_factory=tuple)

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.session_date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.session_date, self.end_time)

    @property
    def title(self) -> str:
        return self.subject_label or "Cours"

    def is_taught_by(self, user_id: int) -> bool:
        return int(user_id) in self.instructor_ids


@dataclass(frozen=True)
class Learner:
    """Read-model: a learner with a validated enrollment in the class's training session."""

    user_id: int
    first_name: str
    last_name: str
    email: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
