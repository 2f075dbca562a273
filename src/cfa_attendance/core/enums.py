from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User role used for access control."""

    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    LEARNER = "learner"


class PresenceStatus(str, Enum):
    """Normalized presence status stored in the database."""

    PENDING = "pending"
    PRESENT = "present"
    ABSENT = "absent"
    ABSENT_JUSTIFIED = "absent_justified"
    LATE = "late"
    NOT_SIGNED = "not_signed"

    @property
    def label(self) -> str:
        return {
            PresenceStatus.PENDING: "En attente de signature",
            PresenceStatus.PRESENT: "Présent",
            PresenceStatus.ABSENT: "Absent",
            PresenceStatus.ABSENT_JUSTIFIED: "Absent justifié",
            PresenceStatus.LATE: "Retard",
            PresenceStatus.NOT_SIGNED: "Non signé",
        }[self]

    @property
    def css_class(self) -> str:
        return {
            PresenceStatus.PENDING: "bg-warning text-dark",
            PresenceStatus.PRESENT: "bg-success",
            PresenceStatus.ABSENT: "bg-danger",
            PresenceStatus.ABSENT_JUSTIFIED: "bg-info",
            PresenceStatus.LATE: "bg-warning text-dark",
            PresenceStatus.NOT_SIGNED: "bg-danger",
        }[self]

    @property
    def counts_as_present(self) -> bool:
        return self in (PresenceStatus.PRESENT, PresenceStatus.LATE)


class SignatureCode(str, Enum):
    """Outcome codes of a signature attempt, shown on the learner error page."""

    OK = "OK"
    TOKEN_INVALID = "TOKEN_INVALIDE"
    ALREADY_SIGNED = "DEJA_SIGNE"
    ROLL_CALL_CLOSED = "APPEL_CLOTURE"
    LINK_EXPIRED = "LIEN_EXPIRE"
    NOT_SIGNABLE = "SIGNATURE_IMPOSSIBLE"


class EmailKind(str, Enum):
    """Flavour of signature email (drives subject and template wording)."""

    INITIAL = "initial"
    REMINDER = "reminder"
    LATECOMER = "latecomer"
