import pytest

from veritas.core.crypto.field import BN254_SCALAR_FIELD
from veritas.core.eligibility.codes import (
    ELIGIBILITY_CODE_LENGTH,
    NEUTRAL_SUB_COMMITMENT,
    EligibilityCategory,
    collect_category_inputs,
    generate_commitment,
    generate_eligibility_code,
    hash_eligibility_code,
)
from veritas.core.eligibility.normalizer import string_to_field_element
from veritas.core.errors import IneligibleError, ValidationError
from veritas.schemas.medical import EligibilityCriteria, NumericRange, PatientMedicalData

# ═══════════════════════════════════════════════════════════════════════════════
# SCENARIOS
# ═══════════════════════════════════════════════════════════════════════════════

def test_scenario_a_wrong_code_length(hasher):
    with pytest.raises(ValidationError) as exc_info:
        hash_eligibility_code([1, 2, 3], hasher)

    assert exc_info.value.message == "Eligibility code must have exactly 4 elements"
    assert hasher.calls == []

def test_scenario_b_code_is_populated(patient_b, criteria_b, hasher):
    code = generate_eligibility_code(patient_b, criteria_b, hasher)

    assert len(code) == ELIGIBILITY_CODE_LENGTH
    assert all(element != 0 for element in code)
    assert all(0 < element < BN254_SCALAR_FIELD for element in code)

def test_scenario_b_bucket_inputs(patient_b, criteria_b):
    inputs = collect_category_inputs(patient_b, criteria_b)

    assert inputs[EligibilityCategory.BIOMARKERS] == [819, 11500]
    assert inputs[EligibilityCategory.VITALS] == [3150]
    assert inputs[EligibilityCategory.MEDICATION_ALLERGY] == [
        string_to_field_element("NO_WARFARIN"),
        string_to_field_element("NO_METFORMIN"),
    ]
    assert inputs[EligibilityCategory.DIAGNOSES] == [string_to_field_element("E11.9")]

def test_scenario_c_refuses_before_hashing(patient_c, criteria_b, hasher):
    with pytest.raises(IneligibleError) as exc_info:
        generate_commitment(patient_c, criteria_b, hasher)

    assert hasher.calls == []
    assert [c.criterion for c in exc_info.value.failed_checks] == ["Biomarker: HbA1c"]
    assert exc_info.value.component == "commitment"

def test_commitment_is_hash_of_code(patient_b, criteria_b, hasher):
    result = generate_commitment(patient_b, criteria_b, hasher)
    assert result.commitment == hasher.hash(list(result.code))

def test_commitment_repr_hides_code(patient_b, criteria_b, hasher):
    result = generate_commitment(patient_b, criteria_b, hasher)
    assert "code" not in repr(result)
    assert str(result.commitment) in repr(result)

# ═══════════════════════════════════════════════════════════════════════════════
# PROPERTIES
# ═══════════════════════════════════════════════════════════════════════════════

def test_determinism(patient_b, criteria_b, hasher):
    first = generate_commitment(patient_b, criteria_b, hasher)
    second = generate_commitment(patient_b, criteria_b, hasher)
    assert first == second

def test_axis_independence_biomarker_axis(patient_b, criteria_b, hasher):
    patient = patient_b.model_copy(update={"cholesterol": 190})
    base = generate_eligibility_code(patient, criteria_b, hasher)
    extended = generate_eligibility_code(
        patient, criteria_b.model_copy(update={"cholesterol_range": NumericRange(min=100, max=200)}), hasher,
    )

    assert extended[EligibilityCategory.BIOMARKERS] != base[EligibilityCategory.BIOMARKERS]
    assert extended[1:] == base[1:]

def test_axis_independence_diagnosis_axis(patient_b, criteria_b, hasher):
    base = generate_eligibility_code(patient_b, criteria_b, hasher)
    extended = generate_eligibility_code(
        patient_b, criteria_b.model_copy(update={"excluded_diagnoses": ["I10"]}), hasher,
    )

    assert extended[EligibilityCategory.DIAGNOSES] != base[EligibilityCategory.DIAGNOSES]
    assert extended[:3] == base[:3]

def test_neutral_bucket_ignores_unrelated_patient_data(hasher):
    criteria = EligibilityCriteria(hba1cRange=[7, 10])
    lean = PatientMedicalData(hba1c=8)
    rich = PatientMedicalData(hba1c=8, bmi=31.5, heart_rate=80, diagnoses=["E11.9"], medications=["X"])

    lean_code = generate_eligibility_code(lean, criteria, hasher)
    rich_code = generate_eligibility_code(rich, criteria, hasher)

    assert lean_code == rich_code
    assert lean_code[1:] == [NEUTRAL_SUB_COMMITMENT] * 3

def test_only_populated_buckets_are_hashed(hasher):
    criteria = EligibilityCriteria(requiredDiagnoses=["E11.9"])
    generate_eligibility_code(PatientMedicalData(diagnoses=["e11.9"]), criteria, hasher)
    assert hasher.calls == [[[string_to_field_element("E11.9")]]]

def test_satisfied_exclusion_contributes_absence_token(hasher):
    criteria = EligibilityCriteria(excludedMedications=["WARFARIN"])
    inputs = collect_category_inputs(PatientMedicalData(medications=[]), criteria)
    assert inputs[EligibilityCategory.MEDICATION_ALLERGY] == [string_to_field_element("NO_WARFARIN")]

def test_strict_gate_refuses_missing_data(patient_b, criteria_b, hasher):
    patient = patient_b.model_copy(update={"ldl": None})
    with pytest.raises(IneligibleError):
        generate_eligibility_code(patient, criteria_b, hasher)
    assert hasher.calls == []

def test_non_field_code_element_rejected(hasher):
    with pytest.raises(ValidationError):
        hash_eligibility_code([0, 1, 2, BN254_SCALAR_FIELD], hasher)
