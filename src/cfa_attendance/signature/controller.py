from __future__ import annotations

import logging

from flask import Flask, render_template, request

from ..common.csrf import validate_csrf_token
from ..core.enums import SignatureCode
from ..core.exceptions import DomainError
from ..container import Container

logger = logging.getLogger(__name__)

_ERROR_TITLES = {
    SignatureCode.TOKEN_INVALID: "Lien invalide",
    SignatureCode.ROLL_CALL_CLOSED: "Appel clôturé",
    SignatureCode.LINK_EXPIRED: "Lien expiré",
    SignatureCode.NOT_SIGNABLE: "Signature impossible",
}


def register(app: Flask, container: Container) -> None:
    """Public signature pages: no login, the token in the URL is the credential."""

    service = container.roll_call_service

    def _render_outcome(outcome, check=None):
        if outcome.code == SignatureCode.ALREADY_SIGNED:
            return render_template("signature/already_signed.html", outcome=outcome, presence=outcome.presence)
        status = 404 if outcome.code == SignatureCode.TOKEN_INVALID else 200
        return (
            render_template(
                "signature/error.html",
                outcome=outcome,
                code=outcome.code.value,
                title=_ERROR_TITLES.get(outcome.code, "Erreur"),
                session=check.session if check else None,
            ),
            status,
        )

    @app.route("/signature/help", methods=["GET"], endpoint="signature_help")
    def signature_help():
        return render_template("signature/help.html")

    @app.route("/signature/<token>", methods=["GET", "POST"], endpoint="signature_sign")
    def signature_sign(token: str):
        if request.method == "POST":
            if not validate_csrf_token(f"signature_{token}", request.form.get("_token")):
                logger.warning("Signature POST with invalid CSRF token")
                check = service.inspect_token(token)
                if not check.outcome.success:
                    return _render_outcome(check.outcome, check)
                return (
                    render_template(
                        "signature/confirm.html",
                        check=check,
                        token=token,
                        error="Jeton de sécurité invalide. Veuillez réessayer.",
                    ),
                    400,
                )

            try:
                outcome = service.process_signature(
                    token,
                    request.remote_addr or "unknown",
                    request.headers.get("User-Agent", "unknown"),
                )
            except DomainError as e:
                logger.exception("Signature failed")
                return (
                    render_template(
                        "signature/error.html",
                        outcome=None,
                        code=SignatureCode.NOT_SIGNABLE.value,
                        title="Erreur",
                        message=str(e),
                        session=None,
                    ),
                    500,
                )

            if not outcome.success:
                return _render_outcome(outcome)
            return render_template("signature/success.html", outcome=outcome, presence=outcome.presence)

        check = service.inspect_token(token)
        if not check.outcome.success:
            return _render_outcome(check.outcome, check)
        return render_template("signature/confirm.html", check=check, token=token, error=None)
