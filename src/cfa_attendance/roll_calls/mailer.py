from __future__ import annotations

from typing import Callable, Optional, Protocol

from ..class_sessions.model import ClassSession, Learner
from ..core.constants import EMAIL_SUBJECT_PREFIX
from ..core.enums import EmailKind
from ..mail.email_service import EmailResult, EmailService
from .model import Presence, RollCall

LinkBuilder = Callable[[str], str]
Renderer = Callable[..., str]

_SUBJECT_TAGS = {
    EmailKind.INITIAL: "",
    EmailKind.REMINDER: "RAPPEL - ",
    EmailKind.LATECOMER: "RETARD - ",
}


class SignatureNotifier(Protocol):
    def send_signature_request(
        self,
        *,
        presence: Presence,
        roll_call: RollCall,
        session: ClassSession,
        learner: Learner,
        kind: EmailKind,
    ) -> EmailResult:
        raise NotImplementedError


def signature_subject(session: ClassSession, kind: EmailKind, *, late: bool = False) -> str:
    tag = _SUBJECT_TAGS[kind]
    if kind == EmailKind.REMINDER and late:
        tag = "RAPPEL RETARD - "
    return (
        f"{EMAIL_SUBJECT_PREFIX} {tag}Signature de présence - "
        f"{session.title} du {session.session_date.strftime('%d/%m/%Y')}"
    )


class SignatureMailer(SignatureNotifier):
    """Compose signature emails from templates and hand them to the SMTP service.

    `link_builder` turns a token into an absolute signature URL; `render` renders
    a Jinja template name with a context (flask.render_template in the app).
    """

    def __init__(self, email_service: EmailService, link_builder: LinkBuilder, render: Renderer):
        self._email = email_service
        self._link = link_builder
        self._render = render

    def send_signature_request(
        self,
        *,
        presence: Presence,
        roll_call: RollCall,
        session: ClassSession,
        learner: Learner,
        kind: EmailKind,
    ) -> EmailResult:
        if not presence.token:
            return EmailResult(False, "Aucun jeton de signature")

        context = dict(
            learner=learner,
            session=session,
            roll_call=roll_call,
            signature_link=self._link(presence.token),
            expires_at=roll_call.expires_at,
            is_reminder=kind == EmailKind.REMINDER,
            is_latecomer=bool(presence.late_minutes),
            late_minutes=presence.late_minutes,
        )
        subject = signature_subject(session, kind, late=bool(presence.late_minutes))
        text_body = self._render("emails/signature_presence.txt", **context)
        html_body: Optional[str] = self._render("emails/signature_presence.html", **context)
        return self._email.send(learner.email, subject, text_body, html_body)
