from __future__ import annotations

from datetime import date
from typing import Optional, Protocol, Sequence

from ..class_sessions.model import Learner
from .model import AbsenceRecord


class AbsenceRepository(Protocol):
    def get_learner(self, learner_id: int) -> Optional[Learner]:
        raise NotImplementedError

    def list_learners(self, *, search: Optional[str] = None) -> Sequence[Learner]:
        """Active learners sorted by last then first name; `search` matches name or email."""

        raise NotImplementedError

    def list_records(self, learner_ids: Sequence[int], start: date, end: date) -> Sequence[AbsenceRecord]:
        """Presences of the given learners for class sessions dated within [start, end],
        most recent first."""

        raise NotImplementedError
