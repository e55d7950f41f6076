"""
Field arithmetic and circuit-safe hashing.

Public API:
    - BN254_SCALAR_FIELD:  Prime of the field every circuit value lives in.
    - CircuitHasher:       Protocol for pluggable in-circuit hash functions.
    - PoseidonHasher:      circomlib Poseidon, computed by circomlibjs.
"""

from veritas.core.crypto.field import (
    BN254_BASE_FIELD,
    BN254_SCALAR_FIELD,
    decode_field_elements_le,
    encode_field_elements_le,
    is_field_element,
)
from veritas.core.crypto.hashing import (
    CircuitHasher,
    PoseidonHasher,
    get_default_hasher,
)

__all__ = [
    "BN254_BASE_FIELD",
    "BN254_SCALAR_FIELD",
    "decode_field_elements_le",
    "encode_field_elements_le",
    "is_field_element",
    "CircuitHasher",
    "PoseidonHasher",
    "get_default_hasher",
]
