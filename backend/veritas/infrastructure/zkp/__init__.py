"""
Zero-knowledge proof backends and calldata translation.

Public API:
    - Groth16Backend:        Eligibility-code proofs via snarkjs.
    - Halo2AgeRangeBackend:  Age-range proofs via the native Halo2 engine.
    - translate/detranslate: Native proof ⇄ on-chain verifier calldata.
"""

from veritas.infrastructure.zkp.base import BackendState, ProofBackend
from veritas.infrastructure.zkp.calldata import (
    detranslate,
    restore_curve_point_order,
    reverse_curve_point_order,
    translate,
)
from veritas.infrastructure.zkp.groth16_backend import Groth16Backend
from veritas.infrastructure.zkp.halo2_backend import Halo2AgeRangeBackend
from veritas.infrastructure.zkp.key_store import KeyStore

__all__ = [
    "BackendState",
    "ProofBackend",
    "detranslate",
    "restore_curve_point_order",
    "reverse_curve_point_order",
    "translate",
    "Groth16Backend",
    "Halo2AgeRangeBackend",
    "KeyStore",
]
