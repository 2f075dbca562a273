from __future__ import annotations

import logging

from flask import Flask, flash, jsonify, redirect, render_template, request, session, url_for

from ..class_sessions.model import ClassSession
from ..common.csrf import validate_csrf_token
from ..common.validators import parse_int_list
from ..common.web import login_required, roles_required
from ..core.enums import Role
from ..core.exceptions import (
    AuthorizationError,
    DomainError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ..container import Container

logger = logging.getLogger(__name__)

STAFF = (Role.INSTRUCTOR, Role.ADMIN)


def register(app: Flask, container: Container) -> None:
    service = container.roll_call_service

    def _can_manage(class_session: ClassSession) -> bool:
        if session.get("role") == Role.ADMIN.value:
            return True
        return class_session.is_taught_by(int(session["user_id"]))

    def _ensure_can_manage(class_session: ClassSession) -> None:
        if not _can_manage(class_session):
            raise AuthorizationError("Vous n'animez pas cette séance.")

    def _flash_error(e: Exception, fallback: str) -> None:
        if isinstance(e, (ValidationError, NotFoundError)):
            flash(str(e), "warning")
        elif isinstance(e, DomainError):
            flash(str(e), "danger")
        else:
            logger.exception(fallback)
            if bool(app.config.get("DEBUG", False)):
                flash(f"{fallback} : {e}", "danger")
            else:
                flash(fallback, "danger")

    def _csrf_ok(scope: str) -> bool:
        if validate_csrf_token(scope, request.form.get("_token")):
            return True
        logger.warning("Invalid CSRF token for scope %s", scope)
        flash("Jeton de sécurité invalide. Veuillez recharger la page.", "danger")
        return False

    def _optional_int(name: str):
        raw = (request.form.get(name) or "").strip()
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    def _load_roll_call(roll_call_id: int):
        roll_call = service.get_roll_call(roll_call_id)
        class_session = service.get_class_session(roll_call.class_session_id)
        return roll_call, class_session

    @app.route("/", endpoint="dashboard")
    @login_required
    def dashboard():
        instructor_id = None if session.get("role") == Role.ADMIN.value else int(session["user_id"])
        sessions = service.list_sessions_for_day(instructor_id=instructor_id)
        rows = []
        for class_session in sessions:
            rows.append(
                {
                    "session": class_session,
                    "live": service.is_session_live(class_session),
                    "roll_call": service.latest_for_session(class_session.class_session_id),
                }
            )
        return render_template("dashboard.html", name=session.get("name"), rows=rows, active_page="dashboard")

    @app.route("/roll-calls/session/<int:class_session_id>", methods=["GET"], endpoint="roll_call_session")
    @roles_required(*STAFF)
    def roll_call_session(class_session_id: int):
        try:
            class_session = service.get_class_session(class_session_id)
        except NotFoundError as e:
            flash(str(e), "warning")
            return redirect(url_for("dashboard"))
        _ensure_can_manage(class_session)

        latest = service.latest_for_session(class_session_id)
        # ?new=1 shows the creation form again once the latest roll-call is closed.
        if latest is not None and not (latest.closed and request.args.get("new")):
            return redirect(url_for("roll_call_follow", roll_call_id=latest.roll_call_id))

        return render_template(
            "roll_calls/session.html",
            class_session=class_session,
            learners=service.list_enrolled_learners(class_session),
            session_live=service.is_session_live(class_session),
            default_minutes=int(app.config.get("DEFAULT_EXPIRATION_MINUTES", 20)),
            active_page="roll_calls",
        )

    @app.route("/roll-calls/session/<int:class_session_id>/create", methods=["POST"], endpoint="roll_call_create")
    @roles_required(*STAFF)
    def roll_call_create(class_session_id: int):
        back = url_for("roll_call_session", class_session_id=class_session_id)
        if not _csrf_ok(f"roll_call_create_{class_session_id}"):
            return redirect(back)

        try:
            class_session = service.get_class_session(class_session_id)
            _ensure_can_manage(class_session)
            roll_call = service.create_roll_call(
                class_session,
                int(session["user_id"]),
                parse_int_list(request.form.getlist("present_learners[]")),
                _optional_int("expiration_minutes"),
            )
        except AuthorizationError:
            raise
        except Exception as e:
            _flash_error(e, "Erreur lors de la création de l'appel")
            return redirect(back)

        flash(
            f"Appel créé : {roll_call.pending_count} apprenti(s) doivent signer. "
            "Vous pouvez maintenant envoyer les emails.",
            "success",
        )
        return redirect(url_for("roll_call_follow", roll_call_id=roll_call.roll_call_id))

    @app.route("/roll-calls/<int:roll_call_id>", methods=["GET"], endpoint="roll_call_follow")
    @roles_required(*STAFF)
    def roll_call_follow(roll_call_id: int):
        try:
            roll_call, class_session = _load_roll_call(roll_call_id)
        except NotFoundError as e:
            flash(str(e), "warning")
            return redirect(url_for("dashboard"))
        _ensure_can_manage(class_session)

        return render_template(
            "roll_calls/follow.html",
            roll_call=roll_call,
            class_session=class_session,
            rows=service.presence_rows(roll_call),
            stats=service.get_statistics(roll_call),
            reasons=service.list_absence_reasons(),
            history=service.list_roll_calls_for_session(class_session.class_session_id),
            session_live=service.is_session_live(class_session),
            active_page="roll_calls",
        )

    @app.route("/roll-calls/<int:roll_call_id>/send-emails", methods=["POST"], endpoint="roll_call_send_emails")
    @roles_required(*STAFF)
    def roll_call_send_emails(roll_call_id: int):
        back = url_for("roll_call_follow", roll_call_id=roll_call_id)
        if not _csrf_ok(f"roll_call_emails_{roll_call_id}"):
            return redirect(back)

        try:
            roll_call, class_session = _load_roll_call(roll_call_id)
            _ensure_can_manage(class_session)
            result = service.send_signature_emails(roll_call)
        except AuthorizationError:
            raise
        except Exception as e:
            _flash_error(e, "Erreur lors de l'envoi des emails")
            return redirect(back)

        if result.failed:
            flash(f"{result.sent} email(s) envoyé(s), {result.failed} échec(s).", "warning")
        else:
            flash(f"{result.sent} email(s) de signature envoyé(s).", "success")
        return redirect(back)

    @app.route("/roll-calls/presences/<int:presence_id>/resend", methods=["POST"], endpoint="presence_resend_email")
    @roles_required(*STAFF)
    def presence_resend_email(presence_id: int):
        if not _csrf_ok(f"resend_email_{presence_id}"):
            return redirect(request.referrer or url_for("dashboard"))

        try:
            presence = service.get_presence(presence_id)
            back = url_for("roll_call_follow", roll_call_id=presence.roll_call_id)
            _, class_session = _load_roll_call(presence.roll_call_id)
            _ensure_can_manage(class_session)
            sent = service.resend_email(presence)
        except AuthorizationError:
            raise
        except Exception as e:
            _flash_error(e, "Erreur lors du renvoi de l'email")
            return redirect(request.referrer or url_for("dashboard"))

        if sent:
            flash("Email de rappel envoyé.", "success")
        else:
            flash("Impossible d'envoyer le rappel : la présence n'est plus signable.", "warning")
        return redirect(back)

    @app.route("/roll-calls/<int:roll_call_id>/reopen", methods=["POST"], endpoint="roll_call_reopen")
    @roles_required(*STAFF)
    def roll_call_reopen(roll_call_id: int):
        back = url_for("roll_call_follow", roll_call_id=roll_call_id)
        if not _csrf_ok(f"roll_call_reopen_{roll_call_id}"):
            return redirect(back)

        try:
            roll_call, class_session = _load_roll_call(roll_call_id)
            _ensure_can_manage(class_session)
            result = service.reopen_roll_call(
                roll_call,
                parse_int_list(request.form.getlist("latecomers[]")),
                _optional_int("expiration_minutes"),
            )
        except AuthorizationError:
            raise
        except Exception as e:
            _flash_error(e, "Erreur lors de la réouverture de l'appel")
            return redirect(back)

        message = (
            f"Appel rouvert pour {result.latecomers} retardataire(s) "
            f"({result.late_minutes} min de retard, {result.emails_sent} email(s) envoyé(s))."
        )
        if result.skipped:
            message += f" {result.skipped} apprenti(s) ignoré(s) : statut déjà définitif."
        flash(message, "success")
        return redirect(back)

    @app.route("/roll-calls/<int:roll_call_id>/close", methods=["POST"], endpoint="roll_call_close")
    @roles_required(*STAFF)
    def roll_call_close(roll_call_id: int):
        back = url_for("roll_call_follow", roll_call_id=roll_call_id)
        if not _csrf_ok(f"roll_call_close_{roll_call_id}"):
            return redirect(back)

        try:
            roll_call, class_session = _load_roll_call(roll_call_id)
            _ensure_can_manage(class_session)
            stats = service.close_roll_call(roll_call)
        except AuthorizationError:
            raise
        except Exception as e:
            _flash_error(e, "Erreur lors de la clôture de l'appel")
            return redirect(back)

        flash(
            f"Appel clôturé : {stats.attended} présent(s), {stats.absent + stats.absent_justified} absent(s), "
            f"{stats.not_signed} non signé(s). Taux de présence : {stats.attendance_rate}%.",
            "success",
        )
        return redirect(back)

    @app.route("/roll-calls/<int:roll_call_id>/delete", methods=["POST"], endpoint="roll_call_delete")
    @roles_required(*STAFF)
    def roll_call_delete(roll_call_id: int):
        back = url_for("roll_call_follow", roll_call_id=roll_call_id)
        if not _csrf_ok(f"roll_call_delete_{roll_call_id}"):
            return redirect(back)

        try:
            roll_call, class_session = _load_roll_call(roll_call_id)
            _ensure_can_manage(class_session)
            service.delete_roll_call(roll_call)
        except AuthorizationError:
            raise
        except Exception as e:
            _flash_error(e, "Erreur lors de la suppression de l'appel")
            return redirect(back)

        flash("Appel supprimé.", "success")
        return redirect(url_for("roll_call_session", class_session_id=class_session.class_session_id))

    @app.route("/roll-calls/presences/<int:presence_id>/justify", methods=["POST"], endpoint="presence_justify")
    @roles_required(*STAFF)
    def presence_justify(presence_id: int):
        if not _csrf_ok(f"justify_absence_{presence_id}"):
            return redirect(request.referrer or url_for("dashboard"))

        try:
            presence = service.get_presence(presence_id)
            back = url_for("roll_call_follow", roll_call_id=presence.roll_call_id)
            _, class_session = _load_roll_call(presence.roll_call_id)
            _ensure_can_manage(class_session)
            service.justify_absence(presence, _optional_int("reason_id"), request.form.get("comment"))
        except AuthorizationError:
            raise
        except Exception as e:
            _flash_error(e, "Erreur lors de la justification de l'absence")
            return redirect(request.referrer or url_for("dashboard"))

        flash("Absence justifiée.", "success")
        return redirect(back)

    @app.route("/roll-calls/<int:roll_call_id>/state", methods=["GET"], endpoint="roll_call_state")
    @roles_required(*STAFF)
    def roll_call_state(roll_call_id: int):
        try:
            roll_call, class_session = _load_roll_call(roll_call_id)
        except NotFoundError as e:
            return jsonify({"success": False, "message": str(e)}), 404
        except PersistenceError as e:
            return jsonify({"success": False, "message": str(e)}), 500
        if not _can_manage(class_session):
            return jsonify({"success": False, "message": "Accès refusé"}), 403
        return jsonify(service.get_live_state(roll_call, class_session))
