"""
BN254 scalar field helpers.

All circuit inputs, commitments and public signals are elements of the
scalar field of the BN254 (alt_bn128) curve used by circom/snarkjs and by
the Halo2 age-range circuit.
"""

from typing import Iterable, List

# r = 21888242871839275222246405745257275088548364400416034343698204186575808495617
BN254_SCALAR_FIELD: int = int(
    "21888242871839275222246405745257275088548364400416034343698204186575808495617"
)

# q, the base field: curve point coordinates live here, not in r
BN254_BASE_FIELD: int = int(
    "21888242871839275222246405745257275088696311157297823662689037894645226208583"
)

FIELD_ELEMENT_BYTES: int = 32


def is_field_element(value) -> bool:
    """True for plain ints (not bools) in [0, r)."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < BN254_SCALAR_FIELD
    )


def encode_field_elements_le(values: Iterable[int]) -> bytes:
    """Concatenate field elements as 32-byte little-endian words (Halo2 `Fr` repr)."""
    out = bytearray()
    for v in values:
        if not is_field_element(v):
            raise ValueError("value is not a BN254 field element")
        out += v.to_bytes(FIELD_ELEMENT_BYTES, "little")
    return bytes(out)


def decode_field_elements_le(blob: bytes) -> List[int]:
    """Inverse of encode_field_elements_le."""
    if len(blob) % FIELD_ELEMENT_BYTES != 0:
        raise ValueError(
            f"blob length {len(blob)} is not a multiple of {FIELD_ELEMENT_BYTES}"
        )
    values = []
    for offset in range(0, len(blob), FIELD_ELEMENT_BYTES):
        v = int.from_bytes(blob[offset:offset + FIELD_ELEMENT_BYTES], "little")
        if v >= BN254_SCALAR_FIELD:
            raise ValueError("decoded word exceeds the BN254 scalar field")
        values.append(v)
    return values
