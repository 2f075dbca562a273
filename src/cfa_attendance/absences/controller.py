from __future__ import annotations

import csv
import io
import logging
from typing import Optional

from flask import Flask, flash, redirect, render_template, request, url_for

from ..common.csrf import validate_csrf_token
from ..common.datetime_utils import parse_iso_date
from ..common.validators import parse_int_list
from ..common.web import roles_required
from ..core.constants import DEFAULT_ABSENCE_ALERT_HOURS
from ..core.enums import PresenceStatus, Role
from ..core.exceptions import DomainError, NotFoundError, ValidationError
from ..container import Container
from .service import REPORT_CSV_FIELDS

logger = logging.getLogger(__name__)


def register(app: Flask, container: Container) -> None:
    """Admin absence follow-up pages."""

    service = container.absence_service

    def _period():
        default_start, default_end = service.default_period()
        return (
            parse_iso_date(request.args.get("start"), default_start),
            parse_iso_date(request.args.get("end"), default_end),
        )

    def _optional_float(name: str) -> Optional[float]:
        raw = (request.args.get(name) or "").strip().replace(",", ".")
        if not raw:
            return None
        try:
            return float(raw)
        except ValueError:
            raise ValidationError(f"Valeur numérique invalide pour {name}")

    def _status_filter() -> Optional[PresenceStatus]:
        raw = (request.args.get("status") or "").strip()
        if not raw:
            return None
        try:
            return PresenceStatus(raw)
        except ValueError:
            raise ValidationError(f"Statut inconnu : {raw}")

    @app.route("/absences", methods=["GET"], endpoint="absence_index")
    @roles_required(Role.ADMIN)
    def absence_index():
        try:
            start, end = _period()
            rows = service.list_learner_summaries(
                start=start,
                end=end,
                search=request.args.get("q"),
                min_hours=_optional_float("min_hours"),
            )
        except ValidationError as e:
            flash(str(e), "warning")
            return redirect(url_for("absence_index"))

        return render_template(
            "absences/index.html",
            rows=rows,
            start=start.strftime("%Y-%m-%d"),
            end=end.strftime("%Y-%m-%d"),
            q=request.args.get("q", ""),
            min_hours=request.args.get("min_hours", ""),
            active_page="absences",
        )

    @app.route("/absences/learners/<int:learner_id>", methods=["GET"], endpoint="absence_show")
    @roles_required(Role.ADMIN)
    def absence_show(learner_id: int):
        try:
            start, end = _period()
            history = service.learner_history(learner_id, start=start, end=end, status=_status_filter())
        except NotFoundError as e:
            flash(str(e), "warning")
            return redirect(url_for("absence_index"))
        except ValidationError as e:
            flash(str(e), "warning")
            return redirect(url_for("absence_show", learner_id=learner_id))

        return render_template(
            "absences/learner.html",
            history=history,
            reasons=service.list_absence_reasons(),
            statuses=list(PresenceStatus),
            start=history.start.strftime("%Y-%m-%d"),
            end=history.end.strftime("%Y-%m-%d"),
            active_page="absences",
        )

    @app.route("/absences/learners/<int:learner_id>/justify", methods=["POST"], endpoint="absence_justify_many")
    @roles_required(Role.ADMIN)
    def absence_justify_many(learner_id: int):
        back = url_for("absence_show", learner_id=learner_id)
        if not validate_csrf_token(f"justify_absences_{learner_id}", request.form.get("_token")):
            logger.warning("Invalid CSRF token for bulk justification of learner %s", learner_id)
            flash("Jeton de sécurité invalide. Veuillez recharger la page.", "danger")
            return redirect(back)

        raw_reason = (request.form.get("reason_id") or "").strip()
        try:
            result = service.justify_absences(
                learner_id,
                parse_int_list(request.form.getlist("presences[]")),
                int(raw_reason) if raw_reason.isdigit() else None,
                request.form.get("comment"),
            )
        except (ValidationError, NotFoundError) as e:
            flash(str(e), "warning")
            return redirect(back)
        except DomainError as e:
            flash(str(e), "danger")
            return redirect(back)

        if result.justified:
            flash(f"{result.justified} absence(s) justifiée(s).", "success")
        if result.ignored:
            flash(
                f"{result.ignored} absence(s) ignorée(s) (déjà justifiées ou statut incompatible).",
                "warning",
            )
        return redirect(back)

    def _report_from_args():
        start, end = _period()
        threshold = _optional_float("threshold")
        return service.build_report(
            start=start,
            end=end,
            threshold_hours=DEFAULT_ABSENCE_ALERT_HOURS if threshold is None else threshold,
        )

    @app.route("/absences/report", methods=["GET"], endpoint="absence_report")
    @roles_required(Role.ADMIN)
    def absence_report():
        try:
            report = _report_from_args()
        except ValidationError as e:
            flash(str(e), "warning")
            return redirect(url_for("absence_report"))

        return render_template(
            "absences/report.html",
            report=report,
            start=report.start.strftime("%Y-%m-%d"),
            end=report.end.strftime("%Y-%m-%d"),
            active_page="absences",
        )

    @app.route("/absences/report.csv", methods=["GET"], endpoint="absence_report_csv")
    @roles_required(Role.ADMIN)
    def absence_report_csv():
        try:
            report = _report_from_args()
        except ValidationError as e:
            flash(str(e), "warning")
            return redirect(url_for("absence_report"))

        out = io.StringIO()
        writer = csv.DictWriter(out, fieldnames=REPORT_CSV_FIELDS, delimiter=";")
        writer.writeheader()
        for row in service.report_csv_rows(report):
            writer.writerow(row)

        filename = f"absences_{report.start.strftime('%Y%m%d')}_{report.end.strftime('%Y%m%d')}.csv"
        return app.response_class(
            out.getvalue().encode("utf-8-sig"),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
