"""
Proof Format Translator — native proof artifacts ⇄ on-chain verifier calldata.

Groth16 (snarkjs → Solidity verifier):

    snarkjs proof.json                      verifyProof(pA, pB, pC, pubSignals)
    pi_a = [ax, ay, "1"]              →     pA = [ax, ay]
    pi_b = [[bx0, bx1], [by0, by1],   →     pB = [[bx1, bx0], [by1, by0]]
            ["1", "0"]]
    pi_c = [cx, cy, "1"]              →     pC = [cx, cy]
    public_signals = ["h"]            →     pubSignals = [h]

snarkjs writes G2 coordinates of pi_b as (c0, c1) while the EVM pairing
precompile expects (c1, c0). That swap is reverse_curve_point_order() and
its inverse is restore_curve_point_order(); nothing else in the translation
reorders coordinates.

Halo2 (native → AgeRangeVerifier.verify(bytes, uint256[])):

    proof          →  proofBytes (unchanged)
    public_inputs  →  publicInputs, 32-byte little-endian words → uint256[]

translate() only accepts artifacts it can reproduce exactly, so
detranslate(translate(p)) == p for every accepted p.
"""

import logging
import re
from typing import List, Sequence, Tuple, Union

from veritas.core.crypto.field import (
    BN254_BASE_FIELD,
    BN254_SCALAR_FIELD,
    decode_field_elements_le,
    encode_field_elements_le,
)
from veritas.core.errors import FormatTranslationError
from veritas.schemas.zkp import (
    Groth16Artifact,
    Groth16Calldata,
    Groth16Proof,
    Halo2Artifact,
    Halo2Calldata,
    ProofBackendKind,
)

logger = logging.getLogger(__name__)

GROTH16_PUBLIC_SIGNALS: int = 1
HALO2_PUBLIC_INPUTS: int = 3

_CANONICAL_DECIMAL = re.compile(r"^(0|[1-9][0-9]*)$")

G2Point = Tuple[Tuple[int, int], Tuple[int, int]]


# ═══════════════════════════════════════════════════════════════════════════════
# COORDINATE ORDER
# ═══════════════════════════════════════════════════════════════════════════════

def reverse_curve_point_order(point: Sequence[Sequence[int]]) -> G2Point:
    """
    Swap the two Fp2 components of each G2 coordinate: (c0, c1) → (c1, c0).

    Applied to pi_b when moving from snarkjs order to the order expected by
    the pairing precompile used by the Solidity verifier.
    """
    if len(point) != 2 or any(len(coord) != 2 for coord in point):
        raise FormatTranslationError("G2 point must be [[x0, x1], [y0, y1]]")
    (x0, x1), (y0, y1) = point
    return (x1, x0), (y1, y0)


def restore_curve_point_order(point: Sequence[Sequence[int]]) -> G2Point:
    """Inverse of reverse_curve_point_order (the swap is an involution)."""
    if len(point) != 2 or any(len(coord) != 2 for coord in point):
        raise FormatTranslationError("G2 point must be [[x1, x0], [y1, y0]]")
    (x1, x0), (y1, y0) = point
    return (x0, x1), (y0, y1)


# ═══════════════════════════════════════════════════════════════════════════════
# DECIMAL PARSING
# ═══════════════════════════════════════════════════════════════════════════════

def _parse_decimal(value: str, modulus: int, what: str) -> int:
    if not isinstance(value, str) or not _CANONICAL_DECIMAL.match(value):
        raise FormatTranslationError(f"{what} is not a canonical decimal string")
    parsed = int(value)
    if parsed >= modulus:
        raise FormatTranslationError(f"{what} exceeds the field modulus")
    return parsed


def _check_range(value: int, modulus: int, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < modulus:
        raise FormatTranslationError(f"{what} is outside the field")
    return value


def _affine_g1(coords: List[str], name: str) -> Tuple[int, int]:
    if len(coords) != 3:
        raise FormatTranslationError(f"{name} must have 3 projective coordinates, got {len(coords)}")
    if coords[2] != "1":
        raise FormatTranslationError(f"{name} is not in affine form (z != 1)")
    return (
        _parse_decimal(coords[0], BN254_BASE_FIELD, f"{name}.x"),
        _parse_decimal(coords[1], BN254_BASE_FIELD, f"{name}.y"),
    )


def _affine_g2(coords: List[List[str]]) -> G2Point:
    if len(coords) != 3:
        raise FormatTranslationError(f"pi_b must have 3 projective coordinates, got {len(coords)}")
    if list(coords[2]) != ["1", "0"]:
        raise FormatTranslationError("pi_b is not in affine form (z != [1, 0])")
    parsed = []
    for i, coord in enumerate(coords[:2]):
        if len(coord) != 2:
            raise FormatTranslationError(f"pi_b[{i}] must have 2 components")
        parsed.append(tuple(
            _parse_decimal(c, BN254_BASE_FIELD, f"pi_b[{i}][{j}]") for j, c in enumerate(coord)
        ))
    return parsed[0], parsed[1]


# ═══════════════════════════════════════════════════════════════════════════════
# GROTH16
# ═══════════════════════════════════════════════════════════════════════════════

def to_groth16_calldata(artifact: Groth16Artifact) -> Groth16Calldata:
    """snarkjs proof + public signals → verifyProof(uint[2], uint[2][2], uint[2], uint[1])."""
    proof = artifact.proof
    if proof.protocol != "groth16" or proof.curve != "bn128":
        raise FormatTranslationError(
            f"Unsupported proof {proof.protocol}/{proof.curve}", backend=ProofBackendKind.GROTH16.value,
        )
    if len(artifact.public_signals) != GROTH16_PUBLIC_SIGNALS:
        raise FormatTranslationError(
            f"Expected {GROTH16_PUBLIC_SIGNALS} public signal, got {len(artifact.public_signals)}",
            backend=ProofBackendKind.GROTH16.value,
        )

    p_a = _affine_g1(proof.pi_a, "pi_a")
    p_b = reverse_curve_point_order(_affine_g2(proof.pi_b))
    p_c = _affine_g1(proof.pi_c, "pi_c")
    signals = tuple(
        _parse_decimal(s, BN254_SCALAR_FIELD, "public signal") for s in artifact.public_signals
    )
    return Groth16Calldata(p_a=p_a, p_b=p_b, p_c=p_c, public_signals=signals)


def from_groth16_calldata(calldata: Groth16Calldata) -> Groth16Artifact:
    """Rebuild the snarkjs proof (affine points in projective form)."""
    if len(calldata.public_signals) != GROTH16_PUBLIC_SIGNALS:
        raise FormatTranslationError(
            f"Expected {GROTH16_PUBLIC_SIGNALS} public signal, got {len(calldata.public_signals)}",
            backend=ProofBackendKind.GROTH16.value,
        )
    for name, values in (("pA", calldata.p_a), ("pC", calldata.p_c), *(
        (f"pB[{i}]", pair) for i, pair in enumerate(calldata.p_b)
    )):
        for value in values:
            _check_range(value, BN254_BASE_FIELD, name)
    for value in calldata.public_signals:
        _check_range(value, BN254_SCALAR_FIELD, "public signal")

    (bx0, bx1), (by0, by1) = restore_curve_point_order(calldata.p_b)
    proof = Groth16Proof(
        pi_a=[str(calldata.p_a[0]), str(calldata.p_a[1]), "1"],
        pi_b=[[str(bx0), str(bx1)], [str(by0), str(by1)], ["1", "0"]],
        pi_c=[str(calldata.p_c[0]), str(calldata.p_c[1]), "1"],
    )
    return Groth16Artifact(proof=proof, public_signals=[str(s) for s in calldata.public_signals])


# ═══════════════════════════════════════════════════════════════════════════════
# HALO2
# ═══════════════════════════════════════════════════════════════════════════════

def to_halo2_calldata(artifact: Halo2Artifact) -> Halo2Calldata:
    """Native proof + LE public-input words → verify(bytes, uint256[])."""
    if not artifact.proof:
        raise FormatTranslationError("Proof blob is empty", backend=ProofBackendKind.HALO2.value)
    try:
        inputs = decode_field_elements_le(artifact.public_inputs)
    except ValueError as exc:
        raise FormatTranslationError(
            f"Public inputs are not field elements: {exc}", backend=ProofBackendKind.HALO2.value,
        ) from exc
    if len(inputs) != HALO2_PUBLIC_INPUTS:
        raise FormatTranslationError(
            f"Expected {HALO2_PUBLIC_INPUTS} public inputs, got {len(inputs)}",
            backend=ProofBackendKind.HALO2.value,
        )
    return Halo2Calldata(proof_bytes=artifact.proof, public_inputs=tuple(inputs))


def from_halo2_calldata(calldata: Halo2Calldata) -> Halo2Artifact:
    if len(calldata.public_inputs) != HALO2_PUBLIC_INPUTS:
        raise FormatTranslationError(
            f"Expected {HALO2_PUBLIC_INPUTS} public inputs, got {len(calldata.public_inputs)}",
            backend=ProofBackendKind.HALO2.value,
        )
    try:
        blob = encode_field_elements_le(calldata.public_inputs)
    except ValueError as exc:
        raise FormatTranslationError(
            f"Public inputs are not field elements: {exc}", backend=ProofBackendKind.HALO2.value,
        ) from exc
    return Halo2Artifact(proof=calldata.proof_bytes, public_inputs=blob)


# ═══════════════════════════════════════════════════════════════════════════════
# DISPATCH
# ═══════════════════════════════════════════════════════════════════════════════

def translate(artifact: Union[Groth16Artifact, Halo2Artifact]) -> Union[Groth16Calldata, Halo2Calldata]:
    """Translate any proof artifact into its verifier's calldata, by backend tag."""
    if isinstance(artifact, Groth16Artifact):
        calldata = to_groth16_calldata(artifact)
    elif isinstance(artifact, Halo2Artifact):
        calldata = to_halo2_calldata(artifact)
    else:
        raise FormatTranslationError(f"Unknown proof artifact type {type(artifact).__name__}")
    logger.info(f"[CALLDATA] Translated {artifact.backend.value} proof to verifier calldata")
    return calldata


def detranslate(calldata: Union[Groth16Calldata, Halo2Calldata]) -> Union[Groth16Artifact, Halo2Artifact]:
    """Inverse of translate()."""
    if isinstance(calldata, Groth16Calldata):
        return from_groth16_calldata(calldata)
    if isinstance(calldata, Halo2Calldata):
        return from_halo2_calldata(calldata)
    raise FormatTranslationError(f"Unknown calldata type {type(calldata).__name__}")
