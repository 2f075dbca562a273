import pytest

from cfa_attendance.common.tokens import generate_unique_token, new_token
from cfa_attendance.core.exceptions import PersistenceError


def test_new_token_is_url_safe_and_fixed_length():
    token = new_token()

    assert len(token) == 43
    assert all(c.isalnum() or c in "-_" for c in token)
    assert new_token() != token


def test_generate_unique_token_retries_on_collision():
    drawn = iter(["taken", "batch", "fresh"])

    token = generate_unique_token(
        lambda t: t == "taken",
        reserved={"batch"},
        factory=lambda: next(drawn),
    )

    assert token == "fresh"


def test_generate_unique_token_reserves_within_a_batch():
    reserved: set[str] = set()

    first = generate_unique_token(lambda t: False, reserved=reserved)
    second = generate_unique_token(lambda t: False, reserved=reserved)

    assert first != second
    assert reserved == {first, second}


def test_generate_unique_token_gives_up():
    with pytest.raises(PersistenceError):
        generate_unique_token(lambda t: True, factory=lambda: "same", max_attempts=3)
