from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ..core.enums import PresenceStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone, in_clause
from .model import JUSTIFIABLE_STATUSES, Presence
from .repository import PresenceRepository

PRESENCE_COLUMNS = (
    "presence_id, roll_call_id, learner_id, status, token, signed_at, signer_ip, signer_user_agent, "
    "email_sent, email_sent_at, absence_reason_id, justification_comment, late_minutes, comment, "
    "created_at, updated_at"
)

# Statuses a latecomer reopen may overwrite.
REOPENABLE_STATUSES = (PresenceStatus.PENDING.value, PresenceStatus.NOT_SIGNED.value)


def to_presence(r: Dict[str, Any]) -> Presence:
    return Presence(
        presence_id=int(r["presence_id"]),
        roll_call_id=int(r["roll_call_id"]),
        learner_id=int(r["learner_id"]),
        status=PresenceStatus(r["status"]),
        token=r.get("token"),
        signed_at=r.get("signed_at"),
        signer_ip=r.get("signer_ip"),
        signer_user_agent=r.get("signer_user_agent"),
        email_sent=bool(r.get("email_sent")),
        email_sent_at=r.get("email_sent_at"),
        absence_reason_id=int(r["absence_reason_id"]) if r.get("absence_reason_id") is not None else None,
        justification_comment=r.get("justification_comment"),
        late_minutes=int(r["late_minutes"]) if r.get("late_minutes") is not None else None,
        comment=r.get("comment"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


def reopen_presence(cur, p: Presence) -> bool:
    """Hand a new token to a latecomer unless the row was signed or justified meanwhile."""
    cur.execute(
        f"""
        UPDATE presences
        SET status=%s, token=%s, late_minutes=%s, email_sent=0, email_sent_at=NULL, updated_at=%s
        WHERE presence_id=%s AND status IN ({in_clause(list(REOPENABLE_STATUSES))})
        """,
        (p.status.value, p.token, p.late_minutes, p.updated_at, p.presence_id, *REOPENABLE_STATUSES),
    )
    return cur.rowcount == 1


def mark_pending_not_signed(cur, roll_call_id: int, at: datetime) -> int:
    cur.execute(
        "UPDATE presences SET status='not_signed', updated_at=%s WHERE roll_call_id=%s AND status='pending'",
        (at, int(roll_call_id)),
    )
    return int(cur.rowcount)


class MySQLPresenceRepository(PresenceRepository):
    """Every write is a guarded UPDATE: the WHERE clause re-checks the status
    at write time, so a concurrent signature is never overwritten."""

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, presence_id: int) -> Optional[Presence]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {PRESENCE_COLUMNS} FROM presences WHERE presence_id=%s", (int(presence_id),))
            r = fetchone(cur)
            return to_presence(r) if r else None

    def get_by_token(self, token: str) -> Optional[Presence]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {PRESENCE_COLUMNS} FROM presences WHERE token=%s", (token,))
            r = fetchone(cur)
            return to_presence(r) if r else None

    def token_exists(self, token: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT 1 AS found FROM presences WHERE token=%s LIMIT 1", (token,))
            return fetchone(cur) is not None

    def mark_emails_sent(self, presence_ids: Sequence[int], *, at: datetime) -> None:
        ids = [int(i) for i in presence_ids]
        if not ids:
            return
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE presences SET email_sent=1, email_sent_at=%s WHERE presence_id IN ({in_clause(ids)})",
                (at, *ids),
            )

    def record_signature(self, presence: Presence, *, now: datetime) -> bool:
        # A concurrent close, expiry or second signature makes this a no-op.
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE presences p
                JOIN roll_calls r ON r.roll_call_id = p.roll_call_id
                SET p.status=%s, p.signed_at=%s, p.signer_ip=%s, p.signer_user_agent=%s,
                    p.late_minutes=%s, p.updated_at=%s
                WHERE p.presence_id=%s AND p.status='pending'
                  AND r.closed=0 AND r.expires_at > %s
                """,
                (
                    presence.status.value,
                    presence.signed_at,
                    presence.signer_ip,
                    presence.signer_user_agent,
                    presence.late_minutes,
                    presence.updated_at,
                    presence.presence_id,
                    now,
                ),
            )
            return cur.rowcount == 1

    def record_justification(self, presence: Presence) -> bool:
        statuses = sorted(s.value for s in JUSTIFIABLE_STATUSES)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE presences
                SET status=%s, absence_reason_id=%s, justification_comment=%s, updated_at=%s
                WHERE presence_id=%s AND status IN ({in_clause(statuses)})
                """,
                (
                    presence.status.value,
                    presence.absence_reason_id,
                    presence.justification_comment,
                    presence.updated_at,
                    presence.presence_id,
                    *statuses,
                ),
            )
            return cur.rowcount == 1

    def expire_pending(self, roll_call_id: int, *, now: datetime) -> int:
        # Re-checks the expiry: a reopen that pushed expires_at forward wins.
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE presences p
                JOIN roll_calls r ON r.roll_call_id = p.roll_call_id
                SET p.status='not_signed', p.updated_at=%s
                WHERE p.roll_call_id=%s AND p.status='pending'
                  AND r.closed=0 AND r.expires_at <= %s
                """,
                (now, int(roll_call_id), now),
            )
            return int(cur.rowcount)
