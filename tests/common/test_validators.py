import pytest

from cfa_attendance.common.validators import choose_allowed, optional_text, parse_int_list, require_non_empty
from cfa_attendance.core.exceptions import ValidationError


def test_parse_int_list_ignores_blanks():
    assert parse_int_list(["101", " ", "", "102 "]) == [101, 102]


def test_parse_int_list_rejects_garbage():
    with pytest.raises(ValidationError):
        parse_int_list(["101", "abc"])


def test_choose_allowed_falls_back_to_default():
    assert choose_allowed(40, (15, 20, 40), 20) == 40
    assert choose_allowed(25, (15, 20, 40), 20) == 20
    assert choose_allowed(None, (15, 20, 40), 15) == 15


def test_text_helpers():
    assert optional_text("  ") is None
    assert optional_text(" motif ") == "motif"
    assert require_non_empty(" a@b.c ", "Email") == "a@b.c"
    with pytest.raises(ValidationError):
        require_non_empty("", "Email")
