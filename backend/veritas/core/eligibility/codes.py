"""
Commitment Generator — eligibility code and code commitment.

The eligibility code is a fixed 4-element vector, one Poseidon digest per
semantic bucket, in this order:

    [0] biomarkers          hba1c, cholesterol, ldl, hdl, triglycerides
    [1] vitals              systolic_bp, diastolic_bp, bmi, heart_rate
    [2] medication/allergy  required meds, NO_<excluded med>, NO_<excluded allergy>
    [3] diagnoses           required dx, NO_<excluded dx>

A bucket hashes only the inputs contributed by criteria present for that
bucket, in the order above. A bucket without contributing criteria is the
neutral value 0. The commitment is Poseidon(code) and is the only value
that ever leaves the process.

Satisfied exclusions contribute an absence token (`NO_` + criterion name)
instead of being dropped, so the code attests that the excluded item is
absent. Excluded medications get one too, so studies whose commitment
was published without medication absence tokens will not match.
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Sequence, Tuple

from veritas.core.crypto.field import is_field_element
from veritas.core.crypto.hashing import CircuitHasher, get_default_hasher
from veritas.core.eligibility.evaluator import check_eligibility_strict
from veritas.core.eligibility.normalizer import (
    absence_token,
    canonical_token,
    normalize_numeric,
    string_to_field_element,
)
from veritas.core.errors import IneligibleError, ValidationError
from veritas.schemas.medical import (
    BIOMARKER_FIELDS,
    VITAL_FIELDS,
    EligibilityCriteria,
    PatientMedicalData,
)

logger = logging.getLogger(__name__)

ELIGIBILITY_CODE_LENGTH: int = 4
NEUTRAL_SUB_COMMITMENT: int = 0


class EligibilityCategory(IntEnum):
    """Bucket index inside the eligibility code."""
    BIOMARKERS = 0
    VITALS = 1
    MEDICATION_ALLERGY = 2
    DIAGNOSES = 3


@dataclass(frozen=True)
class EligibilityCommitment:
    """Private code plus its public commitment. The code is kept out of repr."""
    code: Tuple[int, ...] = field(repr=False)
    commitment: int


# ═══════════════════════════════════════════════════════════════════════════════
# BUCKET INPUTS
# ═══════════════════════════════════════════════════════════════════════════════

def _numeric_inputs(
    data: PatientMedicalData,
    criteria: EligibilityCriteria,
    fields: Sequence[str],
) -> List[int]:
    inputs = []
    for name in fields:
        value = data.value_of(name)
        if criteria.range_for(name) is not None and value is not None:
            inputs.append(normalize_numeric(value))
    return inputs


def _matched(patient_tokens: Optional[Sequence[str]], wanted: Optional[Sequence[str]]) -> List[int]:
    if not wanted or patient_tokens is None:
        return []
    present = {canonical_token(t) for t in patient_tokens}
    return [string_to_field_element(t) for t in wanted if canonical_token(t) in present]


def _absent(patient_tokens: Optional[Sequence[str]], excluded: Optional[Sequence[str]]) -> List[int]:
    if not excluded or patient_tokens is None:
        return []
    present = {canonical_token(t) for t in patient_tokens}
    return [
        string_to_field_element(absence_token(t))
        for t in excluded
        if canonical_token(t) not in present
    ]


def collect_category_inputs(
    data: PatientMedicalData,
    criteria: EligibilityCriteria,
) -> Dict[EligibilityCategory, List[int]]:
    """Ordered normalized inputs per bucket. Empty list means neutral bucket."""
    return {
        EligibilityCategory.BIOMARKERS: _numeric_inputs(data, criteria, BIOMARKER_FIELDS),
        EligibilityCategory.VITALS: _numeric_inputs(data, criteria, VITAL_FIELDS),
        EligibilityCategory.MEDICATION_ALLERGY: (
            _matched(data.medications, criteria.required_medications)
            + _absent(data.medications, criteria.excluded_medications)
            + _absent(data.allergies, criteria.excluded_allergies)
        ),
        EligibilityCategory.DIAGNOSES: (
            _matched(data.diagnoses, criteria.required_diagnoses)
            + _absent(data.diagnoses, criteria.excluded_diagnoses)
        ),
    }


# ═══════════════════════════════════════════════════════════════════════════════
# CODE + COMMITMENT
# ═══════════════════════════════════════════════════════════════════════════════

def _require_eligible(data: PatientMedicalData, criteria: EligibilityCriteria) -> None:
    report = check_eligibility_strict(data, criteria)
    if not report.is_eligible:
        raise IneligibleError(
            "Patient does not meet eligibility criteria",
            failed_checks=report.critical_failures,
            component="commitment",
        )


def generate_eligibility_code(
    data: PatientMedicalData,
    criteria: EligibilityCriteria,
    hasher: Optional[CircuitHasher] = None,
) -> List[int]:
    """
    Build the 4-element eligibility code.

    Raises:
        IneligibleError: A critical criterion fails or cannot be evaluated.
            Raised before any hashing happens.
    """
    _require_eligible(data, criteria)
    hasher = hasher or get_default_hasher()

    inputs = collect_category_inputs(data, criteria)
    populated = [cat for cat in EligibilityCategory if inputs[cat]]
    digests = hasher.hash_many([inputs[cat] for cat in populated])

    code = [NEUTRAL_SUB_COMMITMENT] * ELIGIBILITY_CODE_LENGTH
    for cat, digest in zip(populated, digests):
        code[cat] = digest
    return code


def hash_eligibility_code(
    code: Sequence[int],
    hasher: Optional[CircuitHasher] = None,
) -> int:
    """Reduce an eligibility code to its public commitment."""
    if len(code) != ELIGIBILITY_CODE_LENGTH:
        raise ValidationError(
            f"Eligibility code must have exactly {ELIGIBILITY_CODE_LENGTH} elements",
            component="commitment",
        )
    if not all(is_field_element(element) for element in code):
        raise ValidationError(
            "Eligibility code elements must be BN254 field elements",
            component="commitment",
        )
    hasher = hasher or get_default_hasher()
    return hasher.hash(list(code))


def generate_commitment(
    data: PatientMedicalData,
    criteria: EligibilityCriteria,
    hasher: Optional[CircuitHasher] = None,
) -> EligibilityCommitment:
    """Eligibility code and commitment for one application attempt."""
    hasher = hasher or get_default_hasher()
    code = generate_eligibility_code(data, criteria, hasher)
    commitment = hash_eligibility_code(code, hasher)
    logger.info(f"[COMMITMENT] Generated code commitment {str(commitment)[:12]}...")
    return EligibilityCommitment(code=tuple(code), commitment=commitment)
