from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AbsenceReason:
    """Predefined reason an instructor can attach when justifying an absence."""

    reason_id: int
    label: str
    code: str
    description: Optional[str] = None
    proof_required: bool = False
    active: bool = True
    position: int = 0
