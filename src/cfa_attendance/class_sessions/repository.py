from __future__ import annotations

from datetime import date
from typing import Optional, Protocol, Sequence

from .model import ClassSession, Learner


class ClassSessionRepository(Protocol):
    def get_by_id(self, class_session_id: int) -> Optional[ClassSession]:
        raise NotImplementedError

    def list_for_day(self, day: date, *, instructor_id: Optional[int] = None) -> Sequence[ClassSession]:
        raise NotImplementedError

    def list_enrolled_learners(self, class_session: ClassSession) -> Sequence[Learner]:
        """Learners with a validated enrollment, sorted by last then first name."""

        raise NotImplementedError

    def get_learners_by_ids(self, user_ids: Sequence[int]) -> dict[int, Learner]:
        raise NotImplementedError
