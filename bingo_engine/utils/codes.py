"""Human-readable code generation."""

from __future__ import annotations

import secrets

# No ambiguous glyphs (0/O, 1/I/l).
CODE_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
CARD_CODE_PREFIX = "SB"
CARD_CODE_LENGTH = 8


def generate_card_code() -> str:
    """Return a card code such as ``SB-7KQ2M9XD``.

    Uniqueness is not checked here; the card generator retries on collision.
    """

    body = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CARD_CODE_LENGTH))
    return f"{CARD_CODE_PREFIX}-{body}"
