from __future__ import annotations

from typing import Iterable, Optional

from ..core.exceptions import ValidationError


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field_name} est obligatoire")
    return value.strip()


def optional_text(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


def parse_int_list(values: Iterable[str]) -> list[int]:
    """Parse a multi-valued form field into ints, ignoring blanks."""
    result: list[int] = []
    for v in values:
        v = (v or "").strip()
        if not v:
            continue
        try:
            result.append(int(v))
        except ValueError:
            raise ValidationError(f"Identifiant invalide: {v!r}")
    return result


def choose_allowed(value: Optional[int], allowed: Iterable[int], default: int) -> int:
    """Return value when it is one of the allowed choices, else the default."""
    if value is None:
        return default
    return value if value in tuple(allowed) else default
