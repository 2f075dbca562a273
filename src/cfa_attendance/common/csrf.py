"""Scoped CSRF tokens.

A token is an itsdangerous-signed payload holding the form scope (for example
``signature_<token>`` or ``roll_call_close_<id>``) and a nonce kept in the
Flask session, so it is only valid for one form and one browser session.
"""
from __future__ import annotations

import secrets
from typing import Optional

from flask import Flask, current_app, session
from itsdangerous import BadSignature, URLSafeTimedSerializer

_SESSION_KEY = "_csrf_nonce"
_SALT = "cfa-attendance-csrf"
MAX_AGE_SECONDS = 4 * 3600


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.secret_key, salt=_SALT)


def _nonce() -> str:
    nonce = session.get(_SESSION_KEY)
    if not nonce:
        nonce = secrets.token_hex(16)
        session[_SESSION_KEY] = nonce
    return nonce


def generate_csrf_token(scope: str) -> str:
    return _serializer().dumps({"scope": scope, "nonce": _nonce()})


def validate_csrf_token(scope: str, token: Optional[str]) -> bool:
    if not token:
        return False
    try:
        data = _serializer().loads(token, max_age=MAX_AGE_SECONDS)
    except BadSignature:
        return False
    if not isinstance(data, dict):
        return False
    return data.get("scope") == scope and data.get("nonce") == session.get(_SESSION_KEY)


def init_csrf(app: Flask) -> None:
    app.jinja_env.globals["csrf_token"] = generate_csrf_token
