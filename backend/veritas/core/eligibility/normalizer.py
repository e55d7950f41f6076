"""
Criteria Normalizer — fixed-width circuit encodings of medical values.

Numeric measurements become fixed-point integers (two decimals), coded
tokens (ICD-10 codes, medication and allergy names) become a single BN254
field element. Both encodings are what the eligibility circuit expects; a study
commitment only matches codes built with the same encodings.
"""

import math
from typing import Union

from veritas.core.errors import ValidationError

NUMERIC_SCALE: int = 100
# 31 bytes always fit below the 254-bit field modulus
MAX_TOKEN_BYTES: int = 31
ABSENCE_PREFIX: str = "NO_"


def normalize_numeric(value: float) -> int:
    """
    6.5 -> 650.

    Multiplies by 100 in IEEE double arithmetic and truncates toward zero,
    so 8.2 encodes as 819, not 820.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Numeric value expected", component="normalizer")
    if not math.isfinite(value):
        raise ValidationError("Numeric value must be finite", component="normalizer")
    if value < 0:
        raise ValidationError(
            "Numeric value must be non-negative to encode as a field element",
            component="normalizer",
        )
    return math.trunc(value * NUMERIC_SCALE)


def string_to_field_element(token: Union[str, bytes]) -> int:
    """
    Pack the first 31 UTF-8 bytes of the uppercased token big-endian.

    Tokens sharing a 31-byte prefix collide; callers keep codes shorter.
    """
    if isinstance(token, bytes):
        try:
            token = token.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError("Token is not valid UTF-8", component="normalizer") from exc
    if not isinstance(token, str):
        raise ValidationError("Token must be a string", component="normalizer")

    try:
        raw = token.upper().encode("utf-8")
    except UnicodeEncodeError as exc:
        raise ValidationError("Token is not valid UTF-8", component="normalizer") from exc

    return int.from_bytes(raw[:MAX_TOKEN_BYTES], "big")


def absence_token(name: str) -> str:
    """Token proving a satisfied exclusion, e.g. NO_WARFARIN."""
    return f"{ABSENCE_PREFIX}{name}"


def canonical_token(token: str) -> str:
    """Case-insensitive comparison key for coded lists."""
    return token.upper()
