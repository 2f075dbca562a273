from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause
from .model import Presence, RollCall
from .mysql_presence_repository import PRESENCE_COLUMNS, mark_pending_not_signed, reopen_presence, to_presence
from .repository import RollCallRepository

_COLUMNS = (
    "roll_call_id, class_session_id, instructor_id, created_at, expires_at, "
    "emails_sent, emails_sent_at, closed, closed_at, comment"
)


def _to_roll_call(r: Dict[str, Any]) -> RollCall:
    return RollCall(
        roll_call_id=int(r["roll_call_id"]),
        class_session_id=int(r["class_session_id"]),
        instructor_id=int(r["instructor_id"]),
        created_at=r["created_at"],
        expires_at=r["expires_at"],
        emails_sent=bool(r.get("emails_sent")),
        emails_sent_at=r.get("emails_sent_at"),
        closed=bool(r.get("closed")),
        closed_at=r.get("closed_at"),
        comment=r.get("comment"),
    )


class MySQLRollCallRepository(RollCallRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _load(self, where: str, params: tuple, order: str = "") -> List[RollCall]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM roll_calls WHERE {where} {order}", params)
            roll_calls = [_to_roll_call(r) for r in fetchall(cur)]
            if not roll_calls:
                return []

            by_id = {rc.roll_call_id: rc for rc in roll_calls}
            ids = list(by_id)
            cur.execute(
                f"SELECT {PRESENCE_COLUMNS} FROM presences WHERE roll_call_id IN ({in_clause(ids)}) "
                "ORDER BY presence_id",
                tuple(ids),
            )
            for r in fetchall(cur):
                presence = to_presence(r)
                by_id[presence.roll_call_id].presences.append(presence)
            return roll_calls

    def get_by_id(self, roll_call_id: int) -> Optional[RollCall]:
        found = self._load("roll_call_id=%s", (int(roll_call_id),))
        return found[0] if found else None

    def find_open_for_session(self, class_session_id: int) -> Optional[RollCall]:
        found = self._load(
            "class_session_id=%s AND closed=0",
            (int(class_session_id),),
            "ORDER BY created_at DESC, roll_call_id DESC LIMIT 1",
        )
        return found[0] if found else None

    def list_for_session(self, class_session_id: int) -> Sequence[RollCall]:
        return self._load(
            "class_session_id=%s",
            (int(class_session_id),),
            "ORDER BY created_at DESC, roll_call_id DESC",
        )

    def list_expired_open(self, now: datetime) -> Sequence[RollCall]:
        return self._load("closed=0 AND expires_at <= %s", (now,), "ORDER BY roll_call_id")

    def create(self, roll_call: RollCall) -> RollCall:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO roll_calls (class_session_id, instructor_id, created_at, expires_at,
                                        emails_sent, closed, comment)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    roll_call.class_session_id,
                    roll_call.instructor_id,
                    roll_call.created_at,
                    roll_call.expires_at,
                    1 if roll_call.emails_sent else 0,
                    1 if roll_call.closed else 0,
                    roll_call.comment,
                ),
            )
            roll_call.roll_call_id = int(cur.lastrowid)

            for p in roll_call.presences:
                p.roll_call_id = roll_call.roll_call_id
                cur.execute(
                    """
                    INSERT INTO presences (roll_call_id, learner_id, status, token, signed_at,
                                           late_minutes, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        p.roll_call_id,
                        p.learner_id,
                        p.status.value,
                        p.token,
                        p.signed_at,
                        p.late_minutes,
                        p.created_at or roll_call.created_at,
                    ),
                )
                p.presence_id = int(cur.lastrowid)
        return roll_call

    def mark_emails_sent(self, roll_call_id: int, *, at: datetime) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE roll_calls SET emails_sent=1, emails_sent_at=%s WHERE roll_call_id=%s",
                (at, int(roll_call_id)),
            )

    def close(self, roll_call_id: int, *, at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE roll_calls SET closed=1, closed_at=%s WHERE roll_call_id=%s AND closed=0",
                (at, int(roll_call_id)),
            )
            if cur.rowcount != 1:
                return False
            # Signatures committed before the flag flipped are no longer pending.
            mark_pending_not_signed(cur, roll_call_id, at)
            return True

    def reopen(self, roll_call: RollCall, presences: Sequence[Presence]) -> List[Presence]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE roll_calls SET closed=0, closed_at=NULL, expires_at=%s WHERE roll_call_id=%s",
                (roll_call.expires_at, roll_call.roll_call_id),
            )
            return [p for p in presences if reopen_presence(cur, p)]

    def delete(self, roll_call_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM presences WHERE roll_call_id=%s", (int(roll_call_id),))
            cur.execute("DELETE FROM roll_calls WHERE roll_call_id=%s", (int(roll_call_id),))
            return cur.rowcount > 0
