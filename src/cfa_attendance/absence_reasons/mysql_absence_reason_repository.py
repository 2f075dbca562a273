from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import AbsenceReason
from .repository import AbsenceReasonRepository

_COLUMNS = "reason_id, label, code, description, proof_required, active, position"


def _to_reason(r: Dict[str, Any]) -> AbsenceReason:
    return AbsenceReason(
        reason_id=int(r["reason_id"]),
        label=r["label"],
        code=r["code"],
        description=r.get("description"),
        proof_required=bool(r["proof_required"]),
        active=bool(r["active"]),
        position=int(r["position"]),
    )


class MySQLAbsenceReasonRepository(AbsenceReasonRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, reason_id: int) -> Optional[AbsenceReason]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM absence_reasons WHERE reason_id=%s", (int(reason_id),))
            r = fetchone(cur)
            return _to_reason(r) if r else None

    def list_active(self) -> Sequence[AbsenceReason]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM absence_reasons WHERE active=1 ORDER BY position, label")
            return [_to_reason(r) for r in fetchall(cur)]
