from flask import Flask, session

from cfa_attendance.common.csrf import generate_csrf_token, init_csrf, validate_csrf_token


def make_app() -> Flask:
    app = Flask(__name__)
    app.secret_key = "test-secret"
    init_csrf(app)
    return app


def test_token_is_bound_to_its_scope():
    app = make_app()
    with app.test_request_context("/"):
        token = generate_csrf_token("roll_call_close_1")

        assert validate_csrf_token("roll_call_close_1", token)
        assert not validate_csrf_token("roll_call_close_2", token)
        assert not validate_csrf_token("roll_call_close_1", token + "x")
        assert not validate_csrf_token("roll_call_close_1", None)


def test_token_is_bound_to_the_browser_session():
    app = make_app()
    with app.test_request_context("/"):
        token = generate_csrf_token("signature_abc")
        session.clear()

        assert not validate_csrf_token("signature_abc", token)


def test_csrf_token_is_a_template_global():
    app = make_app()

    assert app.jinja_env.globals["csrf_token"] is generate_csrf_token
