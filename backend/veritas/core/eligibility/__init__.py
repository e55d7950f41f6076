"""
Eligibility criteria: normalization, evaluation and commitment.

Public API:
    - check_eligibility:         Fast pre-check with per-criterion detail.
    - check_eligibility_strict:  Gate used before any commitment is built.
    - generate_commitment:       Eligibility code + Poseidon commitment.
"""

from veritas.core.eligibility.codes import (
    ELIGIBILITY_CODE_LENGTH,
    EligibilityCategory,
    EligibilityCommitment,
    generate_commitment,
    generate_eligibility_code,
    hash_eligibility_code,
)
from veritas.core.eligibility.evaluator import (
    EligibilityCheck,
    EligibilityReport,
    check_eligibility,
    check_eligibility_strict,
)

__all__ = [
    "ELIGIBILITY_CODE_LENGTH",
    "EligibilityCategory",
    "EligibilityCommitment",
    "generate_commitment",
    "generate_eligibility_code",
    "hash_eligibility_code",
    "EligibilityCheck",
    "EligibilityReport",
    "check_eligibility",
    "check_eligibility_strict",
]
