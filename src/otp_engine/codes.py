"""Code generation and comparison helpers."""

from __future__ import annotations

import secrets
import string

# Characters used in backup codes (exclude ambiguous: 0, O, 1, I)
BACKUP_CODE_ALPHABET = string.ascii_uppercase.replace("O", "").replace(
    "I", ""
) + string.digits.replace("0", "").replace("1", "")


def generate_numeric_code(digits: int = 6) -> str:
    """Generate a numeric code uniformly over ``[10**(d-1), 10**d - 1]``.

    ``secrets.randbelow`` draws by rejection sampling, so there is no
    modulo bias, and the lower bound keeps the first digit non-zero.
    """
    if digits < 1:
        raise ValueError(f'"digits" must be >= 1: {digits}')
    low = 10 ** (digits - 1)
    high = 10**digits
    return str(low + secrets.randbelow(high - low))


def constant_time_equals(expected: str, provided: str) -> bool:
    """Compare two codes or secrets without a timing side channel."""
    return secrets.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def generate_backup_codes(count: int = 8, length: int = 8) -> list[str]:
    """Generate single-use recovery codes formatted as ``XXXX-XXXX``."""
    codes = []
    for _ in range(count):
        raw = "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(length))
        codes.append("-".join(raw[i : i + 4] for i in range(0, len(raw), 4)))
    return codes


__all__: list[str] = [
    "BACKUP_CODE_ALPHABET",
    "generate_numeric_code",
    "constant_time_equals",
    "generate_backup_codes",
]
