from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence

from ..absence_reasons.repository import AbsenceReasonRepository
from ..class_sessions.model import ClassSession, Learner
from ..class_sessions.repository import ClassSessionRepository
from ..common.datetime_utils import Clock, format_fr, now_local
from ..common.tokens import generate_unique_token
from ..common.validators import choose_allowed, optional_text
from ..core.constants import (
    ALLOWED_EXPIRATION_MINUTES,
    DEFAULT_CREATE_EXPIRATION_MINUTES,
    DEFAULT_REOPEN_EXPIRATION_MINUTES,
)
from ..core.enums import EmailKind, PresenceStatus, SignatureCode
from ..core.exceptions import NotFoundError, StateConflictError, ValidationError
from ..mail.email_service import EmailResult
from .factory import SignatureStrategyFactory
from .mailer import SignatureNotifier
from .model import Presence, RollCall, RollCallStats
from .repository import PresenceRepository, RollCallRepository
from .time_windows import expiration_from, is_session_live, late_minutes_since

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignatureOutcome:
    success: bool
    code: SignatureCode
    message: str
    presence: Optional[Presence] = None


@dataclass(frozen=True)
class SignatureCheck:
    """What the public signature page needs to render a token."""

    outcome: SignatureOutcome
    presence: Optional[Presence] = None
    roll_call: Optional[RollCall] = None
    session: Optional[ClassSession] = None
    learner: Optional[Learner] = None


@dataclass(frozen=True)
class EmailDetail:
    learner_name: str
    email: str
    success: bool
    message: str


@dataclass(frozen=True)
class EmailBatchResult:
    sent: int
    failed: int
    details: tuple[EmailDetail, ...] = ()


@dataclass(frozen=True)
class ReopenResult:
    latecomers: int
    skipped: int
    late_minutes: int
    emails_sent: int
    expires_at: datetime


@dataclass(frozen=True)
class ExpirySweepResult:
    roll_calls: int
    presences: int


@dataclass(frozen=True)
class PresenceRow:
    presence: Presence
    learner: Optional[Learner]

    @property
    def learner_name(self) -> str:
        return self.learner.full_name if self.learner else f"Apprenti #{self.presence.learner_id}"


class RollCallService:
    """Roll-call workflow: creation, signature emails, signatures, reopen, close.

    Instructors never set a presence themselves: apart from the initial
    selection at creation, the only instructor mutation is justifying an absence.
    """

    def __init__(
        self,
        roll_calls: RollCallRepository,
        presences: PresenceRepository,
        class_sessions: ClassSessionRepository,
        absence_reasons: AbsenceReasonRepository,
        notifier: SignatureNotifier,
        *,
        strategy_factory: SignatureStrategyFactory | None = None,
        clock: Clock = now_local,
    ):
        self._roll_calls = roll_calls
        self._presences = presences
        self._sessions = class_sessions
        self._reasons = absence_reasons
        self._notifier = notifier
        self._factory = strategy_factory or SignatureStrategyFactory()
        self._clock = clock

    # ---- lookups -------------------------------------------------------

    def get_roll_call(self, roll_call_id: int) -> RollCall:
        roll_call = self._roll_calls.get_by_id(int(roll_call_id))
        if not roll_call:
            raise NotFoundError("Appel introuvable")
        return roll_call

    def get_presence(self, presence_id: int) -> Presence:
        presence = self._presences.get_by_id(int(presence_id))
        if not presence:
            raise NotFoundError("Présence introuvable")
        return presence

    def get_class_session(self, class_session_id: int) -> ClassSession:
        session = self._sessions.get_by_id(int(class_session_id))
        if not session:
            raise NotFoundError("Séance introuvable")
        return session

    def list_roll_calls_for_session(self, class_session_id: int) -> Sequence[RollCall]:
        return self._roll_calls.list_for_session(int(class_session_id))

    def latest_for_session(self, class_session_id: int) -> Optional[RollCall]:
        roll_calls = self._roll_calls.list_for_session(int(class_session_id))
        return roll_calls[0] if roll_calls else None

    def is_session_live(self, session: ClassSession) -> bool:
        return is_session_live(session, self._clock())

    def list_sessions_for_day(self, *, instructor_id: Optional[int] = None) -> Sequence[ClassSession]:
        return self._sessions.list_for_day(self._clock().date(), instructor_id=instructor_id)

    def list_enrolled_learners(self, session: ClassSession) -> Sequence[Learner]:
        return self._sessions.list_enrolled_learners(session)

    def list_absence_reasons(self):
        return self._reasons.list_active()

    def presence_rows(self, roll_call: RollCall) -> list[PresenceRow]:
        learners = self._sessions.get_learners_by_ids([p.learner_id for p in roll_call.presences])
        rows = [PresenceRow(p, learners.get(p.learner_id)) for p in roll_call.presences]
        rows.sort(key=lambda r: (r.learner.last_name, r.learner.first_name) if r.learner else ("~", ""))
        return rows

    # ---- creation ------------------------------------------------------

    def create_roll_call(
        self,
        session: ClassSession,
        instructor_id: int,
        present_learner_ids: Iterable[int] = (),
        expiration_minutes: Optional[int] = None,
    ) -> RollCall:
        now = self._clock()
        if not is_session_live(session, now):
            raise ValidationError(
                "L'appel ne peut être fait que pendant le cours "
                f"(de {session.start_time.strftime('%H:%M')} à {session.end_time.strftime('%H:%M')})."
            )

        if self._roll_calls.find_open_for_session(session.class_session_id):
            raise StateConflictError(
                "Un appel est déjà en cours pour cette séance. Clôturez-le avant d'en créer un nouveau."
            )

        minutes = choose_allowed(
            expiration_minutes, ALLOWED_EXPIRATION_MINUTES, DEFAULT_CREATE_EXPIRATION_MINUTES
        )

        learners = self._sessions.list_enrolled_learners(session)
        if not learners:
            raise ValidationError("Aucun apprenti inscrit à cette séance.")

        present_ids = {int(x) for x in present_learner_ids}
        unknown = present_ids - {l.user_id for l in learners}
        if unknown:
            logger.warning(
                "Ignoring non-enrolled learner ids %s for session %s",
                sorted(unknown),
                session.class_session_id,
            )

        roll_call = RollCall(
            class_session_id=session.class_session_id,
            instructor_id=int(instructor_id),
            created_at=now,
            expires_at=expiration_from(now, minutes),
        )

        reserved: set[str] = set()
        for learner in learners:
            if learner.user_id in present_ids:
                presence = Presence(
                    learner_id=learner.user_id,
                    status=PresenceStatus.PRESENT,
                    signed_at=now,
                    created_at=now,
                )
            else:
                presence = Presence(
                    learner_id=learner.user_id,
                    status=PresenceStatus.PENDING,
                    token=generate_unique_token(self._presences.token_exists, reserved=reserved),
                    created_at=now,
                )
            roll_call.presences.append(presence)

        created = self._roll_calls.create(roll_call)

        logger.info(
            "Roll-call %s created for session %s by instructor %s "
            "(%d presences, %d pending, expires in %d min)",
            created.roll_call_id,
            session.class_session_id,
            instructor_id,
            len(created.presences),
            created.pending_count,
            minutes,
        )
        return created

    # ---- emails --------------------------------------------------------

    def _send(
        self,
        presence: Presence,
        roll_call: RollCall,
        session: ClassSession,
        learner: Optional[Learner],
        kind: EmailKind,
    ) -> EmailResult:
        if learner is None:
            return EmailResult(False, "Apprenti introuvable")
        try:
            return self._notifier.send_signature_request(
                presence=presence, roll_call=roll_call, session=session, learner=learner, kind=kind
            )
        except Exception as e:
            # One recipient's failure must not abort the batch.
            logger.exception("Signature email for presence %s could not be prepared", presence.presence_id)
            return EmailResult(False, f"Erreur : {e}")

    def send_signature_emails(self, roll_call: RollCall) -> EmailBatchResult:
        if roll_call.closed:
            raise StateConflictError("Impossible d'envoyer des emails pour un appel clôturé.")
        if roll_call.emails_sent:
            raise StateConflictError("Les emails ont déjà été envoyés pour cet appel.")

        session = self.get_class_session(roll_call.class_session_id)
        pending = roll_call.pending()
        learners = self._sessions.get_learners_by_ids([p.learner_id for p in pending])

        sent = 0
        failed = 0
        details: list[EmailDetail] = []
        delivered: list[int] = []
        for presence in pending:
            learner = learners.get(presence.learner_id)
            result = self._send(presence, roll_call, session, learner, EmailKind.INITIAL)
            if result.success:
                delivered.append(presence.presence_id)
                sent += 1
            else:
                failed += 1
            details.append(
                EmailDetail(
                    learner_name=learner.full_name if learner else f"#{presence.learner_id}",
                    email=learner.email if learner else "",
                    success=result.success,
                    message=result.message,
                )
            )

        # Email columns only: learners who signed during the batch keep their status.
        now = self._clock()
        self._presences.mark_emails_sent(delivered, at=now)
        self._roll_calls.mark_emails_sent(roll_call.roll_call_id, at=now)

        logger.info(
            "Signature emails for roll-call %s: %d sent, %d failed", roll_call.roll_call_id, sent, failed
        )
        return EmailBatchResult(sent=sent, failed=failed, details=tuple(details))

    def resend_email(self, presence: Presence) -> bool:
        now = self._clock()
        roll_call = self.get_roll_call(presence.roll_call_id)
        if self._signature_block(presence, roll_call, now) is not None:
            return False

        session = self.get_class_session(roll_call.class_session_id)
        learner = self._sessions.get_learners_by_ids([presence.learner_id]).get(presence.learner_id)
        result = self._send(presence, roll_call, session, learner, EmailKind.REMINDER)
        if result.success:
            self._presences.mark_emails_sent([presence.presence_id], at=now)

        logger.info("Reminder for presence %s: %s", presence.presence_id, result.message)
        return result.success

    # ---- signature -----------------------------------------------------

    @staticmethod
    def _fail(code: SignatureCode, message: str, presence: Optional[Presence] = None) -> SignatureOutcome:
        return SignatureOutcome(success=False, code=code, message=message, presence=presence)

    def _signature_block(
        self, presence: Presence, roll_call: Optional[RollCall], now: datetime
    ) -> Optional[SignatureOutcome]:
        """Reason the presence cannot be signed right now, or None when it can."""
        if presence.has_signed():
            suffix = " (avec retard)" if presence.status == PresenceStatus.LATE else ""
            message = f"Vous avez déjà signé votre présence{suffix}."
            return self._fail(SignatureCode.ALREADY_SIGNED, message, presence)
        if roll_call is None or not presence.token:
            return self._fail(SignatureCode.TOKEN_INVALID, "Ce lien de signature n'existe pas ou a expiré.")
        if roll_call.closed:
            return self._fail(
                SignatureCode.ROLL_CALL_CLOSED,
                "L'appel a été clôturé par le formateur. Vous ne pouvez plus signer.",
            )
        if roll_call.is_expired(now):
            return self._fail(
                SignatureCode.LINK_EXPIRED,
                f"Le délai de signature a expiré le {format_fr(roll_call.expires_at)}. "
                "Veuillez contacter votre formateur.",
            )
        if presence.status != PresenceStatus.PENDING:
            return self._fail(
                SignatureCode.NOT_SIGNABLE, "Vous ne pouvez pas signer votre présence pour le moment."
            )
        return None

    def inspect_token(self, token: str) -> SignatureCheck:
        """Read-only check used to render the confirmation page."""
        presence = self._presences.get_by_token(token) if token else None
        if not presence:
            return SignatureCheck(
                self._fail(SignatureCode.TOKEN_INVALID, "Ce lien de signature n'existe pas ou a expiré.")
            )

        roll_call = self._roll_calls.get_by_id(presence.roll_call_id)
        session = self._sessions.get_by_id(roll_call.class_session_id) if roll_call else None
        learner = self._sessions.get_learners_by_ids([presence.learner_id]).get(presence.learner_id)

        blocked = self._signature_block(presence, roll_call, self._clock())
        outcome = blocked or SignatureOutcome(True, SignatureCode.OK, "Signature possible.", presence)
        return SignatureCheck(outcome, presence, roll_call, session, learner)

    def process_signature(self, token: str, ip: str, user_agent: str) -> SignatureOutcome:
        now = self._clock()
        presence = self._presences.get_by_token(token) if token else None
        if not presence:
            logger.info("Signature attempt with unknown token")
            return self._fail(SignatureCode.TOKEN_INVALID, "Lien de signature invalide ou expiré.")

        roll_call = self._roll_calls.get_by_id(presence.roll_call_id)
        blocked = self._signature_block(presence, roll_call, now)
        if blocked is not None:
            logger.info("Signature refused for presence %s: %s", presence.presence_id, blocked.code.value)
            return blocked

        session = self.get_class_session(roll_call.class_session_id)
        strategy = self._factory.for_signature(now=now, session=session, presence=presence)
        decision = strategy.decide(now=now, session=session, presence=presence)

        presence.sign(
            decision.status,
            at=now,
            ip=(ip or "unknown")[:45],
            user_agent=(user_agent or "unknown")[:255],
            late_minutes=decision.late_minutes,
        )

        if not self._presences.record_signature(presence, now=now):
            # Lost a race with close/expiry/another signature: report the current state.
            fresh = self._presences.get_by_token(token)
            fresh_roll_call = self._roll_calls.get_by_id(presence.roll_call_id)
            blocked = self._signature_block(fresh, fresh_roll_call, now) if fresh else None
            logger.warning("Signature for presence %s rejected at write time", presence.presence_id)
            return blocked or self._fail(SignatureCode.NOT_SIGNABLE, "Signature impossible.")

        logger.info(
            "Presence %s signed (%s, late=%s) from %s",
            presence.presence_id,
            presence.status.value,
            presence.late_minutes,
            presence.signer_ip,
        )

        message = "Votre présence a été enregistrée avec succès."
        if presence.status == PresenceStatus.LATE and presence.late_minutes:
            message += f" (Retard : {presence.late_minutes} minutes)"
        return SignatureOutcome(True, SignatureCode.OK, message, presence)

    # ---- reopen / close --------------------------------------------------

    def reopen_roll_call(
        self,
        roll_call: RollCall,
        latecomer_learner_ids: Iterable[int],
        expiration_minutes: Optional[int] = None,
    ) -> ReopenResult:
        now = self._clock()
        session = self.get_class_session(roll_call.class_session_id)
        if not is_session_live(session, now):
            raise ValidationError("Impossible de rouvrir l'appel : le cours est terminé.")

        ids = list(dict.fromkeys(int(x) for x in latecomer_learner_ids))
        if not ids:
            raise ValidationError("Veuillez sélectionner au moins un retardataire.")

        eligible: list[Presence] = []
        skipped = 0
        for learner_id in ids:
            presence = roll_call.presence_for(learner_id)
            if presence is None or not presence.can_transition_to(PresenceStatus.PENDING):
                skipped += 1
                continue
            eligible.append(presence)

        if not eligible:
            raise StateConflictError(
                "Aucun retardataire éligible : les apprentis sélectionnés ont déjà un statut définitif."
            )

        minutes = choose_allowed(
            expiration_minutes, ALLOWED_EXPIRATION_MINUTES, DEFAULT_REOPEN_EXPIRATION_MINUTES
        )
        late = late_minutes_since(session.starts_at, now)
        expires_at = expiration_from(now, minutes)

        roll_call.reopen(expires_at=expires_at)
        reserved: set[str] = set()
        for presence in eligible:
            token = generate_unique_token(self._presences.token_exists, reserved=reserved)
            presence.reopen_for_latecomer(token=token, late_minutes=late, at=now)

        # Tokens are stored before any email goes out so the links work at once.
        reopened = self._roll_calls.reopen(roll_call, eligible)
        skipped += len(eligible) - len(reopened)

        learners = self._sessions.get_learners_by_ids([p.learner_id for p in reopened])
        delivered: list[int] = []
        for presence in reopened:
            learner = learners.get(presence.learner_id)
            result = self._send(presence, roll_call, session, learner, EmailKind.LATECOMER)
            if result.success:
                delivered.append(presence.presence_id)
        self._presences.mark_emails_sent(delivered, at=self._clock())

        logger.info(
            "Roll-call %s reopened: %d latecomers (%d skipped), late %d min, %d emails, expires %s",
            roll_call.roll_call_id,
            len(reopened),
            skipped,
            late,
            len(delivered),
            expires_at.isoformat(),
        )
        return ReopenResult(
            latecomers=len(reopened),
            skipped=skipped,
            late_minutes=late,
            emails_sent=len(delivered),
            expires_at=expires_at,
        )

    def close_roll_call(self, roll_call: RollCall) -> RollCallStats:
        now = self._clock()
        roll_call.close(at=now)
        if not self._roll_calls.close(roll_call.roll_call_id, at=now):
            raise StateConflictError("Cet appel est déjà clôturé.")

        # Reload: signatures recorded since `roll_call` was read are kept.
        stats = self.get_roll_call(roll_call.roll_call_id).statistics()
        logger.info(
            "Roll-call %s closed: %d attended, %d absent, %d not signed, rate %.1f%%",
            roll_call.roll_call_id,
            stats.attended,
            stats.absent,
            stats.not_signed,
            stats.attendance_rate,
        )
        return stats

    def delete_roll_call(self, roll_call: RollCall) -> None:
        if roll_call.closed:
            raise StateConflictError("Impossible de supprimer un appel clôturé.")
        if not self._roll_calls.delete(roll_call.roll_call_id):
            raise NotFoundError("Appel introuvable")
        logger.info("Roll-call %s deleted", roll_call.roll_call_id)

    # ---- justification ---------------------------------------------------

    def justify_absence(
        self,
        presence: Presence,
        reason_id: Optional[int],
        comment: Optional[str] = None,
    ) -> Presence:
        if not presence.can_be_justified():
            raise StateConflictError("Seule une absence peut être justifiée.")

        comment = optional_text(comment)
        if reason_id is None and not comment:
            raise ValidationError("Un motif est obligatoire pour justifier une absence.")

        if reason_id is not None:
            reason = self._reasons.get_by_id(int(reason_id))
            if not reason:
                raise NotFoundError("Motif d'absence introuvable")
            if not reason.active:
                raise ValidationError("Ce motif d'absence n'est plus utilisable.")

        presence.justify(reason_id=reason_id, comment=comment, at=self._clock())
        if not self._presences.record_justification(presence):
            raise StateConflictError("Cette présence a changé entre-temps. Rechargez la page.")

        logger.info("Absence justified for presence %s (reason=%s)", presence.presence_id, reason_id)
        return presence

    # ---- statistics / sweep ----------------------------------------------

    def get_statistics(self, roll_call: RollCall) -> RollCallStats:
        return roll_call.statistics()

    def expire_overdue_roll_calls(self, *, dry_run: bool = False) -> ExpirySweepResult:
        """Mark still-pending presences of expired open roll-calls as not signed.

        The roll-calls stay open: closing remains an explicit instructor action.
        """
        now = self._clock()
        touched = 0
        marked = 0
        for roll_call in self._roll_calls.list_expired_open(now):
            pending = roll_call.pending()
            if not pending:
                continue
            if dry_run:
                touched += 1
                marked += len(pending)
                continue
            changed = self._presences.expire_pending(roll_call.roll_call_id, now=now)
            if changed:
                touched += 1
                marked += changed

        if touched:
            logger.info(
                "Expiry sweep%s: %d roll-calls, %d presences not signed",
                " (dry run)" if dry_run else "",
                touched,
                marked,
            )
        return ExpirySweepResult(roll_calls=touched, presences=marked)

    def get_live_state(self, roll_call: RollCall, session: ClassSession) -> dict:
        now = self._clock()
        presences = []
        for entry in self.presence_rows(roll_call):
            presence = entry.presence
            learner = entry.learner
            presences.append(
                {
                    "id": presence.presence_id,
                    "learner": {
                        "id": presence.learner_id,
                        "firstName": learner.first_name if learner else None,
                        "lastName": learner.last_name if learner else None,
                    },
                    "status": presence.status.value,
                    "statusLabel": presence.status.label,
                    "statusClass": presence.status.css_class,
                    "signedAt": presence.signed_at.strftime("%H:%M:%S") if presence.signed_at else None,
                    "emailSent": presence.email_sent,
                    "lateMinutes": presence.late_minutes,
                }
            )

        return {
            "success": True,
            "stats": roll_call.statistics().as_dict(),
            "presences": presences,
            "closed": roll_call.closed,
            "linksValid": roll_call.links_valid(now),
            "sessionLive": is_session_live(session, now),
            "expiresAt": roll_call.expires_at.strftime("%Y-%m-%d %H:%M:%S"),
            "timestamp": now.strftime("%Y-%m-%d %H:%M:%S"),
        }
