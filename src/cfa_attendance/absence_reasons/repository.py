from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import AbsenceReason


class AbsenceReasonRepository(Protocol):
    def get_by_id(self, reason_id: int) -> Optional[AbsenceReason]:
        raise NotImplementedError

    def list_active(self) -> Sequence[AbsenceReason]:
        raise NotImplementedError
