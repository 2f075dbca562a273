from __future__ import annotations

from dataclasses import dataclass

from flask import render_template, url_for

from .absence_reasons.mysql_absence_reason_repository import MySQLAbsenceReasonRepository
from .absences.mysql_absence_repository import MySQLAbsenceRepository
from .absences.service import AbsenceService
from .class_sessions.mysql_class_session_repository import MySQLClassSessionRepository
from .core.constants import DEFAULT_LATE_GRACE_MINUTES
from .database.connection import DBConfig, DatabaseConnection
from .mail.email_service import EmailService, MailSettings
from .roll_calls.factory import SignatureStrategyFactory
from .roll_calls.mailer import SignatureMailer
from .roll_calls.mysql_presence_repository import MySQLPresenceRepository
from .roll_calls.mysql_roll_call_repository import MySQLRollCallRepository
from .roll_calls.service import RollCallService
from .users.mysql_user_repository import MySQLUserRepository
from .users.service import AuthService


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection

    users_repo: MySQLUserRepository
    class_sessions_repo: MySQLClassSessionRepository
    absence_reasons_repo: MySQLAbsenceReasonRepository
    roll_calls_repo: MySQLRollCallRepository
    presences_repo: MySQLPresenceRepository
    absences_repo: MySQLAbsenceRepository

    email_service: EmailService
    auth_service: AuthService
    roll_call_service: RollCallService
    absence_service: AbsenceService


def signature_link(token: str) -> str:
    return url_for("signature_sign", token=token, _external=True)


def build_container(*, db_config: dict, settings=None) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))

    users_repo = MySQLUserRepository(conn)
    class_sessions_repo = MySQLClassSessionRepository(conn)
    absence_reasons_repo = MySQLAbsenceReasonRepository(conn)
    roll_calls_repo = MySQLRollCallRepository(conn)
    presences_repo = MySQLPresenceRepository(conn)
    absences_repo = MySQLAbsenceRepository(conn)

    email_service = EmailService(MailSettings.from_settings(settings) if settings else MailSettings())
    mailer = SignatureMailer(email_service, signature_link, render_template)

    auth_service = AuthService(users_repo)
    roll_call_service = RollCallService(
        roll_calls_repo,
        presences_repo,
        class_sessions_repo,
        absence_reasons_repo,
        mailer,
        strategy_factory=SignatureStrategyFactory(
            grace_minutes=int(getattr(settings, "LATE_GRACE_MINUTES", DEFAULT_LATE_GRACE_MINUTES))
        ),
    )

    absence_service = AbsenceService(absences_repo, presences_repo, absence_reasons_repo)

    return Container(
        conn=conn,
        users_repo=users_repo,
        class_sessions_repo=class_sessions_repo,
        absence_reasons_repo=absence_reasons_repo,
        roll_calls_repo=roll_calls_repo,
        presences_repo=presences_repo,
        absences_repo=absences_repo,
        email_service=email_service,
        auth_service=auth_service,
        roll_call_service=roll_call_service,
        absence_service=absence_service,
    )
