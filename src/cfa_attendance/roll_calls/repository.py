from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import Presence, RollCall


class RollCallRepository(Protocol):
    def get_by_id(self, roll_call_id: int) -> Optional[RollCall]:
        """Roll-call with its presences loaded."""

        raise NotImplementedError

    def find_open_for_session(self, class_session_id: int) -> Optional[RollCall]:
        raise NotImplementedError

    def list_for_session(self, class_session_id: int) -> Sequence[RollCall]:
        """Most recent first, presences loaded."""

        raise NotImplementedError

    def list_expired_open(self, now: datetime) -> Sequence[RollCall]:
        raise NotImplementedError

    def create(self, roll_call: RollCall) -> RollCall:
        """Insert the roll-call and its presences atomically; ids are set on the objects."""

        raise NotImplementedError

    def mark_emails_sent(self, roll_call_id: int, *, at: datetime) -> None:
        raise NotImplementedError

    def close(self, roll_call_id: int, *, at: datetime) -> bool:
        """Close the roll-call and turn its still-pending presences into not signed,
        in one transaction. False when it was already closed."""

        raise NotImplementedError

    def reopen(self, roll_call: RollCall, presences: Sequence[Presence]) -> list[Presence]:
        """Store the new expiry and the latecomers' tokens. Presences that left
        pending/not signed since they were loaded are skipped; returns the ones stored."""

        raise NotImplementedError

    def delete(self, roll_call_id: int) -> bool:
        raise NotImplementedError


class PresenceRepository(Protocol):
    def get_by_id(self, presence_id: int) -> Optional[Presence]:
        raise NotImplementedError

    def get_by_token(self, token: str) -> Optional[Presence]:
        raise NotImplementedError

    def token_exists(self, token: str) -> bool:
        raise NotImplementedError

    def mark_emails_sent(self, presence_ids: Sequence[int], *, at: datetime) -> None:
        """Touches the email columns only, never the status."""

        raise NotImplementedError

    def record_signature(self, presence: Presence, *, now: datetime) -> bool:
        """Persist a signature only if the row is still pending and its roll-call
        still open and unexpired at write time. Returns False when the check fails."""

        raise NotImplementedError

    def record_justification(self, presence: Presence) -> bool:
        """Persist a justification only if the row is still absent or not signed."""

        raise NotImplementedError

    def expire_pending(self, roll_call_id: int, *, now: datetime) -> int:
        """Mark pending presences not signed if the roll-call is still open and
        expired at write time. Returns the number of rows changed."""

        raise NotImplementedError
