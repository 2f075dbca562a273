from __future__ import annotations

import secrets
from typing import Callable

from ..core.constants import TOKEN_BYTES, TOKEN_LENGTH, TOKEN_MAX_ATTEMPTS
from ..core.exceptions import PersistenceError


def new_token() -> str:
    """Opaque URL-safe signature token of fixed length."""
    return secrets.token_urlsafe(TOKEN_BYTES)[:TOKEN_LENGTH]


def generate_unique_token(
    exists: Callable[[str], bool],
    *,
    reserved: set[str] | None = None,
    factory: Callable[[], str] = new_token,
    max_attempts: int = TOKEN_MAX_ATTEMPTS,
) -> str:
    """Draw tokens until one is unknown to storage and to the current batch.

    `reserved` holds tokens handed out earlier in the same batch (not yet persisted).
    """
    reserved = reserved if reserved is not None else set()
    for _ in range(max_attempts):
        token = factory()
        if token in reserved or exists(token):
            continue
        reserved.add(token)
        return token
    raise PersistenceError("Impossible de générer un jeton de signature unique")
