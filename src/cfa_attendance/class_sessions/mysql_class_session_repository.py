from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, normalize_mysql_time
from .model import ClassSession, Learner
from .repository import ClassSessionRepository

_SELECT = """
    SELECT cs.class_session_id, cs.training_session_id, cs.subject_label,
           cs.session_date, cs.start_time, cs.end_time,
           GROUP_CONCAT(csi.user_id) AS instructor_ids
    FROM class_sessions cs
    LEFT JOIN class_session_instructors csi ON csi.class_session_id = cs.class_session_id
"""


def to_class_session(r: Dict[str, Any]) -> ClassSession:
    raw_ids = r.get("instructor_ids") or ""
    if isinstance(raw_ids, (bytes, bytearray)):
        raw_ids = raw_ids.decode()
    return ClassSession(
        class_session_id=int(r["class_session_id"]),
        training_session_id=int(r["training_session_id"]),
        subject_label=r.get("subject_label"),
        session_date=r["session_date"],
        start_time=normalize_mysql_time(r["start_time"]),
        end_time=normalize_mysql_time(r["end_time"]),
        instructor_ids=tuple(int(x) for x in str(raw_ids).split(",") if x),
    )


def to_learner(r: Dict[str, Any]) -> Learner:
    return Learner(
        user_id=int(r["user_id"]),
        first_name=r["first_name"],
        last_name=r["last_name"],
        email=r["email"],
    )


class MySQLClassSessionRepository(ClassSessionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, class_session_id: int) -> Optional[ClassSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT + " WHERE cs.class_session_id=%s GROUP BY cs.class_session_id",
                (int(class_session_id),),
            )
            r = fetchone(cur)
            return to_class_session(r) if r else None

    def list_for_day(self, day: date, *, instructor_id: Optional[int] = None) -> Sequence[ClassSession]:
        clauses = ["cs.session_date=%s"]
        params: list[object] = [day]
        if instructor_id is not None:
            clauses.append(
                "EXISTS (SELECT 1 FROM class_session_instructors x "
                "WHERE x.class_session_id = cs.class_session_id AND x.user_id=%s)"
            )
            params.append(int(instructor_id))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT
                + " WHERE "
                + " AND ".join(clauses)
                + " GROUP BY cs.class_session_id ORDER BY cs.start_time",
                tuple(params),
            )
            return [to_class_session(r) for r in fetchall(cur)]

    def list_enrolled_learners(self, class_session: ClassSession) -> Sequence[Learner]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT u.user_id, u.first_name, u.last_name, u.email
                FROM enrollments e
                JOIN users u ON u.user_id = e.user_id
                WHERE e.training_session_id=%s AND e.status='validated' AND u.is_active=1
                ORDER BY u.last_name, u.first_name
                """,
                (class_session.training_session_id,),
            )
            return [to_learner(r) for r in fetchall(cur)]

    def get_learners_by_ids(self, user_ids: Sequence[int]) -> dict[int, Learner]:
        ids = [int(x) for x in user_ids]
        if not ids:
            return {}
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT user_id, first_name, last_name, email FROM users WHERE user_id IN ({in_clause(ids)})",
                tuple(ids),
            )
            return {int(r["user_id"]): to_learner(r) for r in fetchall(cur)}
