from __future__ import annotations

from datetime import date
from typing import Optional, Sequence

from ..class_sessions.model import Learner
from ..class_sessions.mysql_class_session_repository import to_class_session, to_learner
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause
from ..roll_calls.mysql_presence_repository import PRESENCE_COLUMNS, to_presence
from .model import AbsenceRecord
from .repository import AbsenceRepository

_P_COLUMNS = ", ".join(f"p.{c.strip()}" for c in PRESENCE_COLUMNS.split(","))


class MySQLAbsenceRepository(AbsenceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_learner(self, learner_id: int) -> Optional[Learner]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT user_id, first_name, last_name, email FROM users WHERE user_id=%s AND role='learner'",
                (int(learner_id),),
            )
            r = fetchone(cur)
            return to_learner(r) if r else None

    def list_learners(self, *, search: Optional[str] = None) -> Sequence[Learner]:
        sql = "SELECT user_id, first_name, last_name, email FROM users WHERE role='learner' AND is_active=1"
        params: list[object] = []
        if search:
            like = f"%{search}%"
            sql += " AND (first_name LIKE %s OR last_name LIKE %s OR email LIKE %s)"
            params.extend([like, like, like])
        sql += " ORDER BY last_name, first_name"

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [to_learner(r) for r in fetchall(cur)]

    def list_records(self, learner_ids: Sequence[int], start: date, end: date) -> Sequence[AbsenceRecord]:
        ids = [int(x) for x in learner_ids]
        if not ids:
            return []
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_P_COLUMNS},
                       cs.class_session_id, cs.training_session_id, cs.subject_label,
                       cs.session_date, cs.start_time, cs.end_time,
                       GROUP_CONCAT(csi.user_id) AS instructor_ids
                FROM presences p
                JOIN roll_calls r ON r.roll_call_id = p.roll_call_id
                JOIN class_sessions cs ON cs.class_session_id = r.class_session_id
                LEFT JOIN class_session_instructors csi ON csi.class_session_id = cs.class_session_id
                WHERE p.learner_id IN ({in_clause(ids)}) AND cs.session_date BETWEEN %s AND %s
                GROUP BY p.presence_id
                ORDER BY cs.session_date DESC, cs.start_time DESC, p.presence_id DESC
                """,
                (*ids, start, end),
            )
            return [AbsenceRecord(to_presence(r), to_class_session(r)) for r in fetchall(cur)]
