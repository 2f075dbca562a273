from __future__ import annotations

from functools import wraps

from flask import Flask, flash, redirect, render_template, request, session, url_for

from ..core.enums import Role
from ..core.exceptions import AuthorizationError


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            flash("Veuillez vous connecter pour continuer.", "warning")
            return redirect(url_for("login", next=request.path))
        return view(*args, **kwargs)

    return wrapper


def roles_required(*roles: Role):
    """Restrict a view to the given roles; anonymous users go to the login page."""
    allowed = {r.value for r in roles}

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return redirect(url_for("login", next=request.path))

            if session.get("role") not in allowed:
                raise AuthorizationError("Accès réservé")

            return view(*args, **kwargs)

        return wrapper

    return decorator


def init_error_handlers(app: Flask) -> None:
    @app.errorhandler(AuthorizationError)
    def forbidden(e: AuthorizationError):
        current_user = {"full_name": session.get("name"), "role": session.get("role")}
        return render_template("403.html", current_user=current_user), 403
